"""Common generator - the render loop shared by every backend"""

from dataclasses import dataclass, field
from typing import Optional

from .config import Backend, BackendOptions
from .errors import UnmappableType
from .graph import Ordering
from .logging import get_logger
from .type_mapper import TypeMapper, mapper_for
from .types import Constant, Declaration, EnumDecl, FunctionDecl, OpaqueType, StructDecl, TypeAlias

logger = get_logger("generator")

HEADER = "// AUTO-GENERATED - DO NOT EDIT"


@dataclass
class RenderResult:
    """Text of one backend plus what was rendered and what failed"""
    text: str = ""
    rendered: list = field(default_factory=list)
    errors: list = field(default_factory=list)


class Generator:
    """Renders an ordered interface model for one backend.

    Subclasses implement one ``render_*`` method per declaration kind, each
    returning the lines of that declaration. A declaration whose types cannot
    be mapped is skipped and recorded; declarations depending on it fail with
    it through ``TypeMapper.failed``.
    """

    backend: Backend = None

    HANDLERS = {
        FunctionDecl: "render_function",
        StructDecl: "render_struct",
        EnumDecl: "render_enum",
        TypeAlias: "render_alias",
        OpaqueType: "render_opaque",
        Constant: "render_constant",
    }

    def __init__(self, ordering: Ordering, options: Optional[BackendOptions] = None,
                 lib_name: str = "native", mapper: Optional[TypeMapper] = None):
        self.ordering = ordering
        self.model = ordering.model
        self.options = options or BackendOptions()
        self.lib_name = lib_name
        self.mapper = mapper or mapper_for(self.backend, self.model, self.options, lib_name)
        self.body: list[str] = []
        # Names of callback, option and exception types already emitted
        self.emitted: set = set()

    def generate(self) -> RenderResult:
        result = RenderResult()
        for decl in self.ordering:
            state = self.mapper.snapshot()
            try:
                lines = getattr(self, self.HANDLERS[type(decl)])(decl)
            except UnmappableType as exc:
                self.mapper.restore(state)
                self.mapper.failed.add(decl.name)
                error = exc.for_declaration(decl.name)
                logger.warning(error.format(self.backend.display_name))
                result.errors.append(error)
                continue
            self.emit_types(self.pending_types())
            self.emit(decl, lines)
            result.rendered.append(decl.name)

        logger.debug(
            "%s: rendered %d of %d declarations",
            self.backend.display_name, len(result.rendered), len(self.ordering),
        )
        if result.errors and not result.rendered:
            return result
        result.text = "\n".join(self.prologue() + self.body + self.epilogue()).rstrip("\n") + "\n"
        return result

    def emit(self, decl: Declaration, lines: list[str]):
        self.body.extend(lines)

    def emit_types(self, lines: list[str]):
        self.body.extend(lines)

    def pending_types(self) -> list[str]:
        """Definitions of helper types the last declaration introduced"""
        lines = []
        for name, value in list(self.mapper.option_types.items()):
            if name not in self.emitted:
                self.emitted.add(name)
                lines.extend(self.render_option_type(name, value))
        for name, err in list(self.mapper.exceptions.items()):
            if name not in self.emitted:
                self.emitted.add(name)
                lines.extend(self.render_exception(name, err))
        # Rendering a callback can register the callbacks of its own parameters
        while pending := [n for n in self.mapper.callbacks if n not in self.emitted]:
            for name in pending:
                self.emitted.add(name)
                lines.extend(self.render_callback(name, self.mapper.callbacks[name]))
        return lines

    def prologue(self) -> list[str]:
        return [HEADER]

    def epilogue(self) -> list[str]:
        return []

    def render_option_type(self, name, value) -> list[str]:
        return []

    def render_exception(self, name, err) -> list[str]:
        return []

    def render_callback(self, name, callback) -> list[str]:
        return []

    # -- doc comments ------------------------------------------------------

    def doc_comment(self, doc: Optional[str], indent: str = "", notes: tuple = ()) -> list[str]:
        """Forwarded doc comment plus generated ``notes``"""
        lines = []
        if doc and not self.options.strip_doc_comments:
            lines.extend(doc.splitlines())
        if notes:
            if lines:
                lines.append("")
            lines.extend(notes)
        if not lines:
            return []
        return self.comment_block(lines, indent)

    def comment_block(self, lines: list[str], indent: str) -> list[str]:
        lines = [line.replace("*/", "* /") for line in lines]
        if len(lines) == 1:
            return [f"{indent}/** {lines[0]} */"]
        return [f"{indent}/**"] + [f"{indent} * {line}".rstrip() for line in lines] + [f"{indent} */"]
