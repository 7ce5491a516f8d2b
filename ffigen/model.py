"""Interface model builder: turns raw declarations into one resolved, immutable model"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Iterable

from .errors import DiscriminantOutOfRange, DuplicateDiscriminant, UnresolvedType, UnsupportedConstruct
from .logging import get_logger
from .types import (
    Constant, Declaration, EnumDecl, FunctionDecl, InterfaceModel, Named,
    Param, Primitive, ResultLike, StructDecl, TypeAlias, rust_name, transform, walk,
)

logger = get_logger("model")


@dataclass
class ModelBuild:
    """The built model and what had to be left out of it"""
    model: InterfaceModel
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


def storage_range(repr: Primitive) -> tuple:
    """Inclusive value range of an integer storage type"""
    width = repr.width or 64
    if repr.signed:
        return -(1 << (width - 1)), (1 << (width - 1)) - 1
    return 0, (1 << width) - 1


def _references(decl: Declaration) -> Iterable[str]:
    for ty in decl.types():
        for t in walk(ty):
            if isinstance(t, Named):
                yield t.name


class ModelBuilder:
    """Single build pass over raw declarations"""

    def __init__(self, declarations: Iterable[Declaration]):
        self.raw = sorted(declarations, key=lambda d: d.index)
        self.errors = []
        self.warnings = []

    def build(self) -> ModelBuild:
        decls = self._dedupe(self.raw)
        decls = [self._normalize(d) for d in decls]
        decls = [d for d in decls if d is not None]
        decls = self._drop_unresolved(decls)

        index = {d.name: i for i, d in enumerate(decls)}

        def bind(named: Named) -> Named:
            return replace(named, decl_id=index[named.name])

        resolved = tuple(self._resolve(d, bind, i) for i, d in enumerate(decls))
        model = InterfaceModel(resolved, MappingProxyType(index))
        logger.debug(
            "built model: %d declarations, %d errors, %d warnings",
            len(model), len(self.errors), len(self.warnings),
        )
        return ModelBuild(model, self.errors, self.warnings)

    def _dedupe(self, decls: list) -> list:
        seen = set()
        unique = []
        for decl in decls:
            if decl.name in seen:
                self.warnings.append(UnsupportedConstruct(
                    decl.name, "declared more than once; keeping the first declaration"
                ))
                continue
            seen.add(decl.name)
            unique.append(decl)
        return unique

    def _normalize(self, decl: Declaration):
        if isinstance(decl, EnumDecl):
            return self._normalize_enum(decl)
        if isinstance(decl, FunctionDecl):
            return replace(decl, error_out=isinstance(decl.returns, ResultLike))
        return decl

    def _normalize_enum(self, decl: EnumDecl):
        """Fill in implicit discriminants: each one is the previous value plus one"""
        low, high = storage_range(decl.repr)
        owners = {}
        variants = []
        previous = None
        for variant in decl.variants:
            value = variant.value
            if value is None:
                value = 0 if previous is None else previous + 1
            if not low <= value <= high:
                self.errors.append(DiscriminantOutOfRange(
                    decl.name, variant.name, value, rust_name(decl.repr)
                ))
                return None
            if value in owners:
                self.errors.append(DuplicateDiscriminant(decl.name, value, (owners[value], variant.name)))
                return None
            owners[value] = variant.name
            variants.append(replace(variant, value=value))
            previous = value
        return replace(decl, variants=tuple(variants))

    def _drop_unresolved(self, decls: list) -> list:
        """Drop declarations with missing references until nothing else changes"""
        while True:
            names = {d.name for d in decls}
            kept = []
            for decl in decls:
                missing = next((n for n in _references(decl) if n not in names), None)
                if missing is None:
                    kept.append(decl)
                else:
                    self.errors.append(UnresolvedType(missing, decl.name))
            if len(kept) == len(decls):
                return kept
            decls = kept

    def _resolve(self, decl: Declaration, bind, decl_id: int) -> Declaration:
        if isinstance(decl, FunctionDecl):
            return replace(
                decl,
                params=tuple(Param(p.name, transform(p.type, bind)) for p in decl.params),
                returns=transform(decl.returns, bind),
                index=decl_id,
            )
        if isinstance(decl, StructDecl):
            return replace(
                decl,
                fields=tuple(replace(f, type=transform(f.type, bind)) for f in decl.fields),
                index=decl_id,
            )
        if isinstance(decl, EnumDecl):
            return replace(
                decl,
                variants=tuple(
                    v if v.payload is None else replace(v, payload=transform(v.payload, bind))
                    for v in decl.variants
                ),
                index=decl_id,
            )
        if isinstance(decl, TypeAlias):
            return replace(decl, target=transform(decl.target, bind), index=decl_id)
        if isinstance(decl, Constant):
            return replace(decl, type=transform(decl.type, bind), index=decl_id)
        return replace(decl, index=decl_id)


def build_model(declarations: Iterable[Declaration]) -> ModelBuild:
    """Resolve and normalize raw declarations into an ``InterfaceModel``"""
    return ModelBuilder(declarations).build()
