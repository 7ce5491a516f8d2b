"""Generation pipeline: extraction, model, ordering and one render per backend"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .c_header_generator import CHeaderGenerator
from .config import Backend, GenerationConfig
from .csharp_generator import CSharpGenerator
from .errors import UnbreakableCycle
from .extractor import DeclarationExtractor
from .graph import Ordering, order_model
from .jni_generator import JNIGenerator
from .logging import get_logger
from .model import build_model
from .parser import SourceModule

logger = get_logger("pipeline")

GENERATORS = {
    Backend.C: CHeaderGenerator,
    Backend.JVM: JNIGenerator,
    Backend.DOTNET: CSharpGenerator,
}


@dataclass
class BackendOutput:
    """Generated text of one backend; empty when nothing survived"""
    backend: Backend
    text: str = ""
    warnings: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.text) and not self.errors


@dataclass
class GenerationRun:
    """Report of a whole run: per-backend outputs plus run-wide diagnostics"""
    outputs: Dict[Backend, BackendOutput] = field(default_factory=dict)
    warnings: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    ordering: Optional[Ordering] = None

    @property
    def exit_status(self) -> int:
        if self.errors or any(not o.succeeded for o in self.outputs.values()):
            return 1
        return 0

    def diagnostics(self) -> list[str]:
        """Every diagnostic as a printable line, run-wide ones first, then grouped by backend"""
        lines = [d.format() for d in self.warnings + self.errors]
        for backend, output in self.outputs.items():
            lines.extend(d.format(backend.display_name) for d in output.warnings + output.errors)
        return lines


def render(backend: Backend, ordering: Ordering, config: GenerationConfig) -> BackendOutput:
    """Render ``ordering`` for one backend"""
    generator = GENERATORS[backend](ordering, config.options_for(backend), config.lib_name)
    result = generator.generate()
    return BackendOutput(backend, result.text, errors=list(result.errors))


def generate(modules: Iterable[SourceModule], config: Optional[GenerationConfig] = None) -> GenerationRun:
    """Run every stage over ``modules`` and render each configured backend"""
    config = config or GenerationConfig()
    run = GenerationRun()

    extraction = DeclarationExtractor().extract_all(modules)
    run.warnings.extend(extraction.warnings)

    build = build_model(extraction.declarations)
    run.warnings.extend(build.warnings)
    run.errors.extend(build.errors)

    try:
        ordering = order_model(build.model)
    except UnbreakableCycle as exc:
        logger.error(exc.format())
        run.errors.append(exc)
        return run
    run.ordering = ordering

    if config.parallel and len(config.backends) > 1:
        with ThreadPoolExecutor(max_workers=len(config.backends)) as pool:
            futures = [pool.submit(render, b, ordering, config) for b in config.backends]
            outputs = [f.result() for f in futures]
    else:
        outputs = [render(b, ordering, config) for b in config.backends]

    for output in outputs:
        run.outputs[output.backend] = output
        logger.info(
            "%s: %s (%d errors)",
            output.backend.display_name, "generated" if output.text else "no output", len(output.errors),
        )
    return run
