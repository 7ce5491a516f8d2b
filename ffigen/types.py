"""Data types for the interface model"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Iterator, Mapping, Optional, Union


# ---------------------------------------------------------------------------
# Type references
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Primitive:
    """Fixed-width scalar. A width of 0 means the width depends on the platform."""
    kind: str
    width: int = 0
    signed: bool = False
    c_name: str = ""

    @property
    def is_void(self) -> bool:
        return self.kind == "void"

    @property
    def is_integer(self) -> bool:
        return self.kind in ("int", "size", "char")


@dataclass(frozen=True)
class Pointer:
    """Raw pointer"""
    target: "TypeRef"
    mutable: bool = False


@dataclass(frozen=True)
class FixedArray:
    """Fixed-size array"""
    element: "TypeRef"
    length: int


@dataclass(frozen=True)
class Named:
    """Reference to another declaration, resolved by the model builder"""
    name: str
    decl_id: Optional[int] = None


@dataclass(frozen=True)
class Callback:
    """Function pointer type"""
    params: tuple = ()
    returns: "TypeRef" = None
    param_names: tuple = ()
    abi: str = "C"


@dataclass(frozen=True)
class Option:
    """Nullable wrapper"""
    inner: "TypeRef"


@dataclass(frozen=True)
class ResultLike:
    """Two-channel return: success payload or error code"""
    ok: "TypeRef"
    err: "TypeRef"


TypeRef = Union[Primitive, Pointer, FixedArray, Named, Callback, Option, ResultLike]

VOID = Primitive("void")
BOOL = Primitive("bool", 8)
C_CHAR = Primitive("char", 8, True, "char")

# Rust primitive names
PRIMITIVES = {
    "()": VOID,
    "bool": BOOL,
    "i8": Primitive("int", 8, True),
    "i16": Primitive("int", 16, True),
    "i32": Primitive("int", 32, True),
    "i64": Primitive("int", 64, True),
    "u8": Primitive("int", 8, False),
    "u16": Primitive("int", 16, False),
    "u32": Primitive("int", 32, False),
    "u64": Primitive("int", 64, False),
    "isize": Primitive("size", 0, True),
    "usize": Primitive("size", 0, False),
    "f32": Primitive("float", 32, True),
    "f64": Primitive("float", 64, True),
}

# C types re-exported by libc, std::os::raw and core::ffi
C_PRIMITIVES = {
    "c_void": VOID,
    "c_char": C_CHAR,
    "c_schar": Primitive("int", 8, True, "signed char"),
    "c_uchar": Primitive("int", 8, False, "unsigned char"),
    "c_short": Primitive("int", 16, True, "short"),
    "c_ushort": Primitive("int", 16, False, "unsigned short"),
    "c_int": Primitive("int", 32, True, "int"),
    "c_uint": Primitive("int", 32, False, "unsigned int"),
    "c_long": Primitive("int", 0, True, "long"),
    "c_ulong": Primitive("int", 0, False, "unsigned long"),
    "c_longlong": Primitive("int", 64, True, "long long"),
    "c_ulonglong": Primitive("int", 64, False, "unsigned long long"),
    "c_float": Primitive("float", 32, True, "float"),
    "c_double": Primitive("float", 64, True, "double"),
    "size_t": Primitive("size", 0, False, "size_t"),
    "ssize_t": Primitive("size", 0, True, "ssize_t"),
}


def rust_name(ty: TypeRef) -> str:
    """Render a type back in source syntax, for diagnostics and generated names"""
    if isinstance(ty, Primitive):
        if ty.c_name:
            return next(k for k, v in C_PRIMITIVES.items() if v == ty)
        return next((k for k, v in PRIMITIVES.items() if v == ty), ty.kind)
    if isinstance(ty, Pointer):
        return f"*{'mut' if ty.mutable else 'const'} {rust_name(ty.target)}"
    if isinstance(ty, FixedArray):
        return f"[{rust_name(ty.element)}; {ty.length}]"
    if isinstance(ty, Named):
        return ty.name
    if isinstance(ty, Callback):
        params = ", ".join(rust_name(p) for p in ty.params)
        ret = "" if ty.returns == VOID else f" -> {rust_name(ty.returns)}"
        return f'extern "{ty.abi}" fn({params}){ret}'
    if isinstance(ty, Option):
        return f"Option<{rust_name(ty.inner)}>"
    if isinstance(ty, ResultLike):
        return f"Result<{rust_name(ty.ok)}, {rust_name(ty.err)}>"
    raise TypeError(f"not a type reference: {ty!r}")


def walk(ty: TypeRef) -> Iterator[TypeRef]:
    """Yield ``ty`` and every type nested inside it, depth first"""
    yield ty
    if isinstance(ty, Pointer):
        yield from walk(ty.target)
    elif isinstance(ty, FixedArray):
        yield from walk(ty.element)
    elif isinstance(ty, Option):
        yield from walk(ty.inner)
    elif isinstance(ty, ResultLike):
        yield from walk(ty.ok)
        yield from walk(ty.err)
    elif isinstance(ty, Callback):
        for p in ty.params:
            yield from walk(p)
        yield from walk(ty.returns)


def transform(ty: TypeRef, fn: Callable[[Named], Named]) -> TypeRef:
    """Rebuild ``ty`` with every Named reference replaced by ``fn(named)``"""
    if isinstance(ty, Named):
        return fn(ty)
    if isinstance(ty, Pointer):
        return replace(ty, target=transform(ty.target, fn))
    if isinstance(ty, FixedArray):
        return replace(ty, element=transform(ty.element, fn))
    if isinstance(ty, Option):
        return replace(ty, inner=transform(ty.inner, fn))
    if isinstance(ty, ResultLike):
        return replace(ty, ok=transform(ty.ok, fn), err=transform(ty.err, fn))
    if isinstance(ty, Callback):
        return replace(
            ty,
            params=tuple(transform(p, fn) for p in ty.params),
            returns=transform(ty.returns, fn),
        )
    return ty


def is_c_string(ty: TypeRef) -> bool:
    """``*const c_char`` carries a UTF-8 string across the boundary"""
    return isinstance(ty, Pointer) and not ty.mutable and ty.target == C_CHAR


def is_pointer_like(ty: TypeRef) -> bool:
    """Types with a null representation, usable directly as ``Option<T>``"""
    return isinstance(ty, (Pointer, Callback))


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Param:
    """Function parameter"""
    name: str
    type: TypeRef


@dataclass(frozen=True)
class Field:
    """Struct field"""
    name: str
    type: TypeRef
    doc: Optional[str] = None


@dataclass(frozen=True)
class Variant:
    """Enum variant, with an optional payload for tagged unions"""
    name: str
    value: Optional[int] = None
    payload: Optional[TypeRef] = None
    doc: Optional[str] = None


@dataclass(frozen=True)
class FunctionDecl:
    """Exported function"""
    name: str
    params: tuple = ()
    returns: TypeRef = VOID
    abi: str = "C"
    error_out: bool = False
    index: int = 0
    doc: Optional[str] = None

    def types(self) -> Iterator[TypeRef]:
        for p in self.params:
            yield p.type
        yield self.returns


@dataclass(frozen=True)
class StructDecl:
    """``#[repr(C)]`` struct with named fields"""
    name: str
    fields: tuple = ()
    packed: bool = False
    index: int = 0
    doc: Optional[str] = None

    def types(self) -> Iterator[TypeRef]:
        for f in self.fields:
            yield f.type


@dataclass(frozen=True)
class EnumDecl:
    """Plain discriminant list or tagged union"""
    name: str
    variants: tuple = ()
    repr: Primitive = Primitive("int", 32, True, "int")
    index: int = 0
    doc: Optional[str] = None

    @property
    def is_tagged_union(self) -> bool:
        return any(v.payload is not None for v in self.variants)

    def types(self) -> Iterator[TypeRef]:
        for v in self.variants:
            if v.payload is not None:
                yield v.payload


@dataclass(frozen=True)
class TypeAlias:
    """``pub type Name = Target;``"""
    name: str
    target: TypeRef = VOID
    index: int = 0
    doc: Optional[str] = None

    def types(self) -> Iterator[TypeRef]:
        yield self.target


@dataclass(frozen=True)
class OpaqueType:
    """Type exposed only as an identity token"""
    name: str
    index: int = 0
    doc: Optional[str] = None

    def types(self) -> Iterator[TypeRef]:
        return iter(())


@dataclass(frozen=True)
class Constant:
    """``pub const NAME: T = literal;``"""
    name: str
    type: TypeRef = VOID
    value: Union[int, float, bool, str] = 0
    index: int = 0
    doc: Optional[str] = None

    def types(self) -> Iterator[TypeRef]:
        yield self.type


Declaration = Union[FunctionDecl, StructDecl, EnumDecl, TypeAlias, OpaqueType, Constant]


@dataclass(frozen=True)
class InterfaceModel:
    """Complete, resolved set of declarations"""
    declarations: tuple = ()
    index: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def __iter__(self) -> Iterator[Declaration]:
        return iter(self.declarations)

    def __len__(self) -> int:
        return len(self.declarations)

    def __contains__(self, name: str) -> bool:
        return name in self.index

    def get(self, name: str) -> Optional[Declaration]:
        decl_id = self.index.get(name)
        return None if decl_id is None else self.declarations[decl_id]

    def resolve(self, ty: Named) -> Declaration:
        """Return the declaration a resolved Named reference points at"""
        return self.declarations[ty.decl_id]

    def unalias(self, ty: TypeRef) -> TypeRef:
        """Follow type aliases until a non-alias type is reached"""
        seen = set()
        while isinstance(ty, Named) and ty.decl_id not in seen:
            seen.add(ty.decl_id)
            decl = self.resolve(ty)
            if not isinstance(decl, TypeAlias):
                break
            ty = decl.target
        return ty
