"""Declaration extractor: pulls the exported surface out of Rust syntax trees.

Only items that can be called or laid out from C are extracted:

  * ``#[no_mangle] pub extern "C" fn`` functions
  * ``#[repr(C)]`` structs and enums (enums may use a primitive repr)
  * opaque markers (unit structs, single-field tuple structs, empty enums)
  * ``pub type`` aliases and ``pub const`` literals

Anything else that is exported but has no stable foreign ABI is reported as
an ``UnsupportedConstruct`` warning and left out.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from tree_sitter import Node

from .errors import UnsupportedConstruct
from .logging import get_logger
from .parser import SourceModule
from .types import (
    C_CHAR, C_PRIMITIVES, PRIMITIVES, VOID,
    Callback, Constant, Declaration, EnumDecl, Field, FixedArray, FunctionDecl, Named,
    OpaqueType, Option, Param, Pointer, Primitive, ResultLike, StructDecl,
    TypeAlias, TypeRef, Variant, walk,
)

logger = get_logger("extractor")

C_ABIS = ("C", "cdecl", "stdcall", "fastcall", "system")
C_TYPE_MODULES = ("libc", "std::os::raw", "core::ffi", "std::ffi", "core::os::raw")
LOCAL_PREFIXES = ("crate", "self", "super")
INTEGER_REPRS = ("i8", "i16", "i32", "i64", "u8", "u16", "u32", "u64", "isize", "usize")
DEFAULT_ENUM_REPR = C_PRIMITIVES["c_int"]

_NO_MANGLE = re.compile(r"^#\[\s*(?:unsafe\s*\(\s*)?no_mangle\b")
_REPR = re.compile(r"^#\[\s*repr\s*\((.*)\)\s*\]$", re.DOTALL)
_DOC_ATTR = re.compile(r'^#\[\s*doc\s*=\s*"((?:[^"\\]|\\.)*)"\s*\]$', re.DOTALL)
_STR_REF = re.compile(r"^&\s*(?:'static\s+)?str$")
_INT_SUFFIX = re.compile(r"(i8|i16|i32|i64|i128|isize|u8|u16|u32|u64|u128|usize)$")
_NOT_PARAMS = ("attribute_item", "line_comment", "block_comment")
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", "0": "\0", "'": "'", '"': '"'}


@dataclass
class Extraction:
    """Raw declarations in source order plus the items that were dropped"""
    declarations: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


@dataclass
class _Item:
    module: SourceModule
    node: Node
    attrs: list
    docs: list

    def text(self, node: Node) -> str:
        return self.module.text(node)

    @property
    def name(self) -> str:
        name = self.node.child_by_field_name("name")
        return self.text(name) if name is not None else "<anonymous>"

    @property
    def doc(self) -> Optional[str]:
        return "\n".join(self.docs) if self.docs else None

    @property
    def is_pub(self) -> bool:
        vis = next((c for c in self.node.children if c.type == "visibility_modifier"), None)
        return vis is not None and self.text(vis) == "pub"

    @property
    def repr(self) -> Optional[list]:
        for attr in self.attrs:
            if m := _REPR.match(attr):
                return [a.strip() for a in m.group(1).split(",") if a.strip()]
        return None

    @property
    def no_mangle(self) -> bool:
        return any(_NO_MANGLE.match(attr) for attr in self.attrs)


def _doc_text(comment: str) -> Optional[str]:
    """Return the documentation carried by an outer doc comment, if any"""
    if comment.startswith("///") and not comment.startswith("////"):
        line = comment[3:].rstrip("\r\n")
        return line[1:] if line.startswith(" ") else line
    if comment.startswith("/**") and not comment.startswith("/***") and comment != "/**/":
        lines = []
        for line in comment[3:-2].strip("\n").splitlines():
            line = line.strip()
            if line.startswith("*"):
                line = line[1:]
                line = line[1:] if line.startswith(" ") else line
            lines.append(line)
        return "\n".join(lines).strip("\n")
    return None


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.append(ch)
            i += 1
            continue
        nxt = body[i + 1]
        if nxt in _ESCAPES:
            out.append(_ESCAPES[nxt])
            i += 2
        elif nxt == "x":
            out.append(chr(int(body[i + 2:i + 4], 16)))
            i += 4
        elif nxt == "u":
            end = body.index("}", i)
            out.append(chr(int(body[i + 3:end], 16)))
            i = end + 1
        elif nxt == "\n":
            # Line continuation: skip the newline and leading whitespace
            i += 2
            while i < len(body) and body[i] in " \t\n\r":
                i += 1
        else:
            out.append(nxt)
            i += 2
    return "".join(out)


def _binding_name(item: _Item, pattern: Optional[Node], index: int) -> str:
    """Name bound by a parameter pattern; ``mut x``, ``ref x`` and ``r#x`` all bind ``x``"""
    while pattern is not None and pattern.type in ("mut_pattern", "ref_pattern"):
        pattern = pattern.named_children[-1]
    name = item.text(pattern).removeprefix("r#") if pattern is not None else ""
    return name if name.isidentifier() else f"arg{index}"


def _annotated(module: SourceModule, container: Node) -> Iterator[_Item]:
    """Yield the named children of ``container`` with their attributes and doc comments"""
    attrs: list = []
    docs: list = []
    for child in container.named_children:
        if child.type == "attribute_item":
            text = module.text(child)
            if m := _DOC_ATTR.match(text):
                docs.append(_unescape(m.group(1)).strip())
            else:
                attrs.append(text)
            continue
        if child.type in ("line_comment", "block_comment"):
            doc = _doc_text(module.text(child))
            if doc is not None:
                docs.append(doc)
            continue
        yield _Item(module, child, attrs, docs)
        attrs, docs = [], []


class DeclarationExtractor:
    """Walks parsed modules and produces raw declarations in source order"""

    HANDLERS = {
        "function_item": "_extract_function",
        "struct_item": "_extract_struct",
        "enum_item": "_extract_enum",
        "union_item": "_extract_union",
        "type_item": "_extract_alias",
        "const_item": "_extract_constant",
    }

    def __init__(self):
        self._next_index = 0

    def extract(self, module: SourceModule) -> Extraction:
        result = Extraction()
        self._walk(module, module.root, result)
        logger.debug(
            "%s: %d declarations, %d skipped",
            "::".join(module.module), len(result.declarations), len(result.warnings),
        )
        return result

    def extract_all(self, modules: Iterable[SourceModule]) -> Extraction:
        result = Extraction()
        for module in modules:
            partial = self.extract(module)
            result.declarations.extend(partial.declarations)
            result.warnings.extend(partial.warnings)
        return result

    def _walk(self, module: SourceModule, container: Node, result: Extraction):
        for item in _annotated(module, container):
            if item.node.type == "mod_item":
                body = item.node.child_by_field_name("body")
                if body is not None:
                    self._walk(module, body, result)
                continue
            handler = self.HANDLERS.get(item.node.type)
            if handler is None:
                continue
            try:
                decl = getattr(self, handler)(item)
            except UnsupportedConstruct as exc:
                logger.warning("%s: %s", module.location(item.node), exc.format())
                result.warnings.append(exc)
                continue
            if decl is not None:
                result.declarations.append(decl)

    def _take_index(self) -> int:
        index = self._next_index
        self._next_index += 1
        return index

    # -- items ---------------------------------------------------------------

    def _extract_function(self, item: _Item) -> Optional[FunctionDecl]:
        if not item.is_pub or not item.no_mangle:
            return None
        abi = self._function_abi(item, item.node)
        # Rust-ABI functions are not callable from C
        if abi not in C_ABIS:
            return None
        name = item.name
        self._reject_generics(item, name)

        params = []
        parameters = item.node.child_by_field_name("parameters")
        for i, p in enumerate(n for n in parameters.named_children if n.type not in _NOT_PARAMS):
            if p.type == "self_parameter":
                raise UnsupportedConstruct(name, "methods taking `self` cannot be exported")
            if p.type == "variadic_parameter":
                raise UnsupportedConstruct(name, "variadic functions are not supported")
            if p.type != "parameter":
                raise UnsupportedConstruct(name, f"unsupported parameter `{item.text(p)}`")
            pname = _binding_name(item, p.child_by_field_name("pattern"), i)
            ptype = self._type(item, p.child_by_field_name("type"), name)
            self._reject_results(name, ptype)
            params.append(Param(pname, ptype))

        returns = VOID
        ret_node = item.node.child_by_field_name("return_type")
        if ret_node is not None:
            returns = self._type(item, ret_node, name)
            if isinstance(returns, ResultLike):
                self._reject_results(name, returns.ok, returns.err)
            else:
                self._reject_results(name, returns)

        return FunctionDecl(
            name=name, params=tuple(params), returns=returns, abi=abi,
            index=self._take_index(), doc=item.doc,
        )

    def _extract_struct(self, item: _Item) -> Optional[Declaration]:
        if not item.is_pub:
            return None
        name = item.name
        self._reject_generics(item, name)
        reprs = item.repr or []
        if "C" not in reprs:
            raise UnsupportedConstruct(
                name, "struct is not #[repr(C)]; its layout is not ABI-stable"
            )
        packed = any(r.startswith("packed") for r in reprs)

        body = item.node.child_by_field_name("body")
        if body is None:
            return OpaqueType(name, index=self._take_index(), doc=item.doc)
        if body.type == "ordered_field_declaration_list":
            # #[repr(C)] pub struct Foo(Bar);  =>  typedef struct Foo Foo;
            if len(body.children_by_field_name("type")) == 1:
                return OpaqueType(name, index=self._take_index(), doc=item.doc)
            raise UnsupportedConstruct(
                name, "tuple structs with more than one field have no named C layout"
            )

        fields = []
        for f in _annotated(item.module, body):
            if f.node.type != "field_declaration":
                continue
            fname = item.text(f.node.child_by_field_name("name"))
            ftype = self._type(item, f.node.child_by_field_name("type"), name)
            self._reject_results(name, ftype)
            fields.append(Field(fname, ftype, f.doc))

        if all(f.name.startswith("_") and isinstance(f.type, FixedArray) and f.type.length == 0
               for f in fields):
            return OpaqueType(name, index=self._take_index(), doc=item.doc)
        return StructDecl(
            name=name, fields=tuple(fields), packed=packed,
            index=self._take_index(), doc=item.doc,
        )

    def _extract_enum(self, item: _Item) -> Optional[Declaration]:
        if not item.is_pub:
            return None
        name = item.name
        self._reject_generics(item, name)
        body = item.node.child_by_field_name("body")
        variant_items = [v for v in _annotated(item.module, body) if v.node.type == "enum_variant"]
        if not variant_items:
            return OpaqueType(name, index=self._take_index(), doc=item.doc)

        reprs = item.repr or []
        int_reprs = [r for r in reprs if r in INTEGER_REPRS]
        if "C" not in reprs and not int_reprs:
            raise UnsupportedConstruct(
                name, "enum is not #[repr(C)] or a primitive representation; its layout is not ABI-stable"
            )
        storage = PRIMITIVES[int_reprs[0]] if int_reprs else DEFAULT_ENUM_REPR

        variants = []
        for v in variant_items:
            vname = item.text(v.node.child_by_field_name("name"))
            payload = None
            vbody = v.node.child_by_field_name("body")
            if vbody is not None:
                types = vbody.children_by_field_name("type")
                if vbody.type != "ordered_field_declaration_list" or len(types) != 1:
                    raise UnsupportedConstruct(
                        name, f"variant `{vname}` must carry exactly one unnamed field"
                    )
                payload = self._type(item, types[0], name)
                self._reject_results(name, payload)
            value = None
            value_node = v.node.child_by_field_name("value")
            if value_node is not None:
                value = self._int_literal(item, value_node)
                if value is None:
                    raise UnsupportedConstruct(
                        name, f"discriminant of `{vname}` is not an integer literal"
                    )
            variants.append(Variant(vname, value, payload, v.doc))

        if any(v.payload is not None for v in variants) and "C" not in reprs:
            raise UnsupportedConstruct(
                name, "enums with fields need #[repr(C)] to get a tag-plus-union layout"
            )
        return EnumDecl(
            name=name, variants=tuple(variants), repr=storage,
            index=self._take_index(), doc=item.doc,
        )

    def _extract_union(self, item: _Item) -> None:
        if item.is_pub:
            raise UnsupportedConstruct(item.name, "untagged unions are not supported")

    def _extract_alias(self, item: _Item) -> Optional[TypeAlias]:
        if not item.is_pub:
            return None
        name = item.name
        self._reject_generics(item, name)
        target = self._type(item, item.node.child_by_field_name("type"), name)
        self._reject_results(name, target)
        return TypeAlias(name, target, index=self._take_index(), doc=item.doc)

    def _extract_constant(self, item: _Item) -> Optional[Constant]:
        if not item.is_pub:
            return None
        name = item.name
        type_node = item.node.child_by_field_name("type")
        value_node = item.node.child_by_field_name("value")
        type_text = item.text(type_node)

        if _STR_REF.match(type_text):
            if value_node.type == "string_literal":
                text = item.text(value_node)
                value = _unescape(text[1:-1])
            elif value_node.type == "raw_string_literal":
                text = item.text(value_node)
                value = text[text.index('"') + 1:text.rindex('"')]
            else:
                raise UnsupportedConstruct(name, "string constants must be string literals")
            return Constant(name, Pointer(C_CHAR), value, index=self._take_index(), doc=item.doc)

        ty = self._type(item, type_node, name)
        if not isinstance(ty, Primitive) or ty.is_void:
            raise UnsupportedConstruct(name, f"constant of non-primitive type `{type_text}`")

        value = None
        if ty.kind == "bool":
            if value_node.type == "boolean_literal":
                value = item.text(value_node) == "true"
        elif ty.kind == "float":
            value = self._float_literal(item, value_node)
        else:
            value = self._int_literal(item, value_node)
        if value is None:
            raise UnsupportedConstruct(
                name, f"non-primitive default value `{item.text(value_node)}`"
            )
        return Constant(name, ty, value, index=self._take_index(), doc=item.doc)

    # -- checks ----------------------------------------------------------------

    def _reject_generics(self, item: _Item, name: str):
        if item.node.child_by_field_name("type_parameters") is not None:
            raise UnsupportedConstruct(name, "generic parameters are not supported")
        if any(c.type == "where_clause" for c in item.node.children):
            raise UnsupportedConstruct(name, "trait bounds are not supported")

    def _reject_results(self, name: str, *types: TypeRef):
        for ty in types:
            if any(isinstance(t, ResultLike) for t in walk(ty)):
                raise UnsupportedConstruct(name, "`Result` is only supported as a function return type")

    def _function_abi(self, item: _Item, node: Node) -> Optional[str]:
        modifiers = next((c for c in node.children if c.type == "function_modifiers"), None)
        if modifiers is None:
            return None
        extern = next((c for c in modifiers.children if c.type == "extern_modifier"), None)
        if extern is None:
            return None
        literal = next((c for c in extern.children if c.type == "string_literal"), None)
        return item.text(literal).strip('"') if literal is not None else "C"

    # -- types -----------------------------------------------------------------

    def _type(self, item: _Item, node: Node, owner: str) -> TypeRef:
        kind = node.type
        text = item.text(node)
        if kind == "primitive_type":
            if text in PRIMITIVES:
                return PRIMITIVES[text]
            raise UnsupportedConstruct(owner, f"type `{text}` has no stable C ABI")
        if kind == "unit_type":
            return VOID
        if kind == "never_type":
            raise UnsupportedConstruct(owner, "`!` cannot be returned across a C boundary")
        if kind == "type_identifier":
            return C_PRIMITIVES.get(text) or Named(text)
        if kind == "scoped_type_identifier":
            path = item.text(node.child_by_field_name("path"))
            return self._scoped(path, item.text(node.child_by_field_name("name")), owner)
        if kind in ("pointer_type", "reference_type"):
            mutable = any(c.type == "mutable_specifier" for c in node.children)
            return Pointer(self._type(item, node.child_by_field_name("type"), owner), mutable)
        if kind == "array_type":
            length_node = node.child_by_field_name("length")
            if length_node is None:
                raise UnsupportedConstruct(owner, f"slice `{text}` has no fixed size")
            length = self._int_literal(item, length_node)
            if length is None or length < 0:
                raise UnsupportedConstruct(owner, f"array length in `{text}` is not an integer literal")
            return FixedArray(self._type(item, node.child_by_field_name("element"), owner), length)
        if kind == "function_type":
            return self._callback(item, node, owner)
        if kind == "generic_type":
            return self._generic(item, node, owner)
        if kind == "tuple_type":
            raise UnsupportedConstruct(owner, f"tuple `{text}` has no stable C layout")
        if kind in ("abstract_type", "dynamic_type", "bounded_type"):
            raise UnsupportedConstruct(owner, f"trait object `{text}` cannot cross the boundary")
        raise UnsupportedConstruct(owner, f"unsupported type `{text}`")

    def _scoped(self, path: str, name: str, owner: str) -> TypeRef:
        if path in C_TYPE_MODULES:
            return C_PRIMITIVES.get(name) or Named(name)
        if path.split("::")[0] in LOCAL_PREFIXES:
            return Named(name)
        raise UnsupportedConstruct(
            owner, f"type `{path}::{name}` lives in another module (only libc and std::os::raw are known)"
        )

    def _generic(self, item: _Item, node: Node, owner: str) -> TypeRef:
        base = item.text(node.child_by_field_name("type")).split("::")[-1]
        arguments = node.child_by_field_name("type_arguments")
        args = [
            self._type(item, a, owner)
            for a in arguments.named_children
            if a.type not in ("lifetime", "line_comment", "block_comment")
        ]
        if base == "Option" and len(args) == 1:
            return Option(args[0])
        if base == "Result" and len(args) == 2:
            return ResultLike(args[0], args[1])
        if base in ("Box", "NonNull") and len(args) == 1:
            return Pointer(args[0], True)
        raise UnsupportedConstruct(owner, f"generic type `{item.text(node)}` cannot cross the boundary")

    def _callback(self, item: _Item, node: Node, owner: str) -> Callback:
        if any(c.type == "for_lifetimes" for c in node.children):
            raise UnsupportedConstruct(owner, "function pointers with lifetimes are not supported")
        abi = self._function_abi(item, node)
        if abi not in C_ABIS:
            raise UnsupportedConstruct(
                owner, f"function pointer `{item.text(node)}` must use an extern \"C\" ABI"
            )
        params = []
        names = []
        for i, p in enumerate(n for n in node.child_by_field_name("parameters").named_children
                              if n.type not in _NOT_PARAMS):
            if p.type == "parameter":
                names.append(_binding_name(item, p.child_by_field_name("pattern"), i))
                p = p.child_by_field_name("type")
            else:
                names.append(f"arg{i}")
            params.append(self._type(item, p, owner))
        returns = VOID
        ret_node = node.child_by_field_name("return_type")
        if ret_node is not None:
            returns = self._type(item, ret_node, owner)
        return Callback(tuple(params), returns, tuple(names), abi)

    # -- literals ----------------------------------------------------------------

    def _int_literal(self, item: _Item, node: Node) -> Optional[int]:
        if node.type == "parenthesized_expression":
            return self._int_literal(item, node.named_children[0])
        if node.type in ("unary_expression", "negative_literal"):
            text = item.text(node).replace(" ", "")
            if not text.startswith("-"):
                return None
            inner = node.named_children[0] if node.named_children else None
            if inner is None:
                return _parse_int(text[1:])
            value = self._int_literal(item, inner)
            return None if value is None else -value
        if node.type == "integer_literal":
            return _parse_int(item.text(node))
        return None

    def _float_literal(self, item: _Item, node: Node) -> Optional[float]:
        if node.type in ("unary_expression", "negative_literal"):
            inner = node.named_children[0] if node.named_children else None
            value = self._float_literal(item, inner) if inner is not None else None
            return None if value is None else -value
        if node.type == "float_literal":
            text = item.text(node).replace("_", "")
            text = re.sub(r"f(32|64)$", "", text)
            return float(text)
        if node.type == "integer_literal":
            value = _parse_int(item.text(node))
            return None if value is None else float(value)
        return None


def _parse_int(text: str) -> Optional[int]:
    # Suffixes start with `i` or `u`, neither of which is a hex digit
    text = _INT_SUFFIX.sub("", text.replace("_", ""))
    try:
        if text[:2].lower() in ("0x", "0o", "0b"):
            return int(text, 0)
        return int(text, 10)
    except ValueError:
        return None


def extract(module: SourceModule) -> Extraction:
    """Extract the declarations of a single module"""
    return DeclarationExtractor().extract(module)
