"""Type mapping from interface types to C, JVM and .NET types"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional

from .config import Backend, BackendOptions
from .errors import UnmappableType
from .naming import pascal_case, sanitise_id
from .types import (
    Callback, Declaration, EnumDecl, FixedArray, InterfaceModel, Named, OpaqueType,
    Option, Pointer, Primitive, ResultLike, StructDecl, TypeAlias, TypeRef,
    is_c_string, is_pointer_like, rust_name,
)


class Position(str, Enum):
    PARAM = "param"
    RETURN = "return"
    FIELD = "field"
    # Pointee of a pointer; void and opaque types are valid only here
    TARGET = "target"


class Marshal(str, Enum):
    DIRECT = "direct"
    HANDLE = "handle"
    UTF8 = "utf8"
    ARRAY_COPY = "array_copy"
    CALLBACK = "callback"
    OPTIONAL_VALUE = "optional_value"
    STATUS = "status"
    STRUCT = "struct"
    ENUM = "enum"


@dataclass(frozen=True)
class MappedType:
    """Target representation of one type at one position.

    ``native`` is the type at the native boundary (C declaration, JNI
    ``native`` method, ``DllImport`` signature); ``public`` is the type the
    generated wrapper exposes to callers.
    """
    native: str
    public: str = ""
    by_reference: bool = False
    marshal: Marshal = Marshal.DIRECT
    descriptor: str = ""
    element: Optional["MappedType"] = None
    length: int = 0
    nullable: bool = False
    decl: Optional[str] = None
    attribute: str = ""
    declarator: str = ""

    def __post_init__(self):
        if not self.public:
            object.__setattr__(self, "public", self.native)

    @property
    def is_void(self) -> bool:
        return self.native == "void"


@dataclass(frozen=True)
class Trampoline:
    """What the runtime side needs to adapt a foreign callback to the native convention"""
    name: str
    params: tuple
    returns: str
    descriptor: str
    convention: str


# Rust ABI string -> calling convention name
CONVENTIONS = {
    "C": "cdecl",
    "cdecl": "cdecl",
    "system": "winapi",
    "stdcall": "stdcall",
    "fastcall": "fastcall",
}


def _key(ty: Primitive) -> tuple:
    return ty.kind, ty.width, ty.signed


class TypeMapper:
    """Maps interface types for one backend.

    Dispatch goes through ``RULES``, keyed by the ``TypeRef`` class. Callback
    types and optional value structs met while mapping are recorded on the
    mapper so the generator can emit their definitions.
    """

    backend: Backend = None

    RULES = {
        Primitive: "_primitive",
        Pointer: "_pointer",
        FixedArray: "_array",
        Named: "_named",
        Callback: "_callback",
        Option: "_option",
        ResultLike: "_result",
    }

    # Per-run state recorded while mapping
    REGISTRIES = ("callbacks", "_contexts", "option_types", "exceptions")

    def __init__(self, model: InterfaceModel, options: Optional[BackendOptions] = None, lib_name: str = "native"):
        self.model = model
        self.options = options or BackendOptions()
        self.lib_name = lib_name
        # Names of declarations this backend failed to render
        self.failed: set = set()
        self.callbacks: Dict[str, Callback] = {}
        self._contexts: Dict[str, str] = {}
        self.option_types: Dict[str, MappedType] = {}
        # Exception name -> error enum, or None for raw integer statuses
        self.exceptions: Dict[str, Optional[EnumDecl]] = {}

    def snapshot(self) -> tuple:
        """Copy of the type registries, restored when a declaration fails half way"""
        return tuple(dict(getattr(self, r)) for r in self.REGISTRIES)

    def restore(self, state: tuple):
        for registry, saved in zip(self.REGISTRIES, state):
            setattr(self, registry, dict(saved))

    def map(self, ty: TypeRef, position=Position.PARAM, context: str = "") -> MappedType:
        """Map ``ty`` at ``position``; ``context`` names anonymous callback types"""
        rule = self.RULES.get(type(ty))
        if rule is None:
            raise self.unmappable(ty, "unknown type")
        return getattr(self, rule)(ty, Position(position), context)

    def unmappable(self, ty: TypeRef, reason: str = "") -> UnmappableType:
        return UnmappableType(rust_name(ty), self.backend.display_name, reason)

    def type_name(self, name: str) -> str:
        return f"{self.options.symbol_prefix}{name}"

    def callback_name(self, context: str) -> str:
        return self.type_name(pascal_case(context) if context else "Callback")

    def option_name(self, inner: TypeRef) -> str:
        return self.type_name("Option_" + sanitise_id(rust_name(inner)))

    def declaration_of(self, ty: Named) -> Declaration:
        if ty.name in self.failed:
            raise self.unmappable(ty, f"`{ty.name}` could not be rendered")
        decl = self.model.get(ty.name) if ty.decl_id is None else self.model.resolve(ty)
        if decl is None:
            raise self.unmappable(ty, "unknown declaration")
        return decl

    def pointee(self, ty: TypeRef) -> Optional[Declaration]:
        """Declaration a pointer target resolves to after aliases, checked for failures"""
        while isinstance(ty, Named):
            decl = self.declaration_of(ty)
            if not isinstance(decl, TypeAlias):
                return decl
            ty = decl.target
        return None

    def exception_name(self, err: TypeRef) -> str:
        """Exception raised by wrappers when a status-returning call fails"""
        target = self.model.unalias(err)
        if isinstance(target, Primitive) and target.kind == "int":
            name = self.type_name("NativeStatusException")
            self.exceptions.setdefault(name, None)
            return name
        decl = self.pointee(err)
        if isinstance(decl, EnumDecl) and not decl.is_tagged_union:
            if any(v.value == 0 for v in decl.variants):
                raise self.unmappable(err, "status 0 means success, error enums cannot use it")
            if any(not -(1 << 31) <= v.value < (1 << 31) for v in decl.variants):
                raise self.unmappable(err, "error discriminants must fit a 32-bit status")
            name = self.type_name(f"{decl.name}Exception")
            self.exceptions.setdefault(name, decl)
            return name
        raise self.unmappable(err, "errors must be a plain enum or an integer")

    def callback_signature(self, name: str, ty: Callback) -> tuple:
        """Mapped parameters and return of the registered callback ``name``"""
        return self._callback_signature(ty, self._contexts.get(name, name))

    def trampoline(self, name: str, ty: Callback) -> Trampoline:
        params, returns = self.callback_signature(name, ty)
        descriptor = "(" + "".join(p.descriptor for p in params) + ")" + returns.descriptor
        return Trampoline(
            name=name,
            params=tuple(p.native for p in params),
            returns=returns.native,
            descriptor=descriptor if returns.descriptor else "",
            convention=CONVENTIONS.get(ty.abi, "cdecl"),
        )

    def out_parameter(self, ok: MappedType) -> MappedType:
        raise NotImplementedError

    # -- shared rules ------------------------------------------------------

    def _check_void(self, ty: Primitive, position: Position):
        if ty.is_void and position not in (Position.RETURN, Position.TARGET):
            raise self.unmappable(ty, "void is only valid as a return type")

    def _named(self, ty: Named, position: Position, context: str) -> MappedType:
        decl = self.declaration_of(ty)
        if isinstance(decl, TypeAlias):
            return self._alias(decl, position)
        if isinstance(decl, OpaqueType):
            if position is not Position.TARGET:
                raise self.unmappable(ty, "opaque types can only be used behind a pointer")
            return MappedType(self.type_name(decl.name), marshal=Marshal.HANDLE, decl=self.type_name(decl.name))
        if isinstance(decl, StructDecl):
            return self._struct(decl, position)
        if isinstance(decl, EnumDecl):
            if decl.is_tagged_union:
                return self._struct(decl, position)
            return self._enum(decl, position)
        raise self.unmappable(ty, f"`{ty.name}` is a constant, not a type")

    def _alias(self, decl: TypeAlias, position: Position) -> MappedType:
        return self.map(decl.target, position, decl.name)

    def _option(self, ty: Option, position: Position, context: str) -> MappedType:
        inner = self.model.unalias(ty.inner)
        if is_pointer_like(inner):
            return replace(self.map(ty.inner, position, context), nullable=True)
        if isinstance(inner, (FixedArray, Option, ResultLike)) or (isinstance(inner, Primitive) and inner.is_void):
            raise self.unmappable(ty, "only pointers, callbacks, primitives, structs and enums can be optional")
        if isinstance(inner, Named) and isinstance(self.pointee(inner), OpaqueType):
            raise self.unmappable(ty, "opaque types can only be used behind a pointer")
        return self._optional_value(ty, self.map(ty.inner, Position.FIELD, context))

    def _result(self, ty: ResultLike, position: Position, context: str) -> MappedType:
        if position is not Position.RETURN:
            raise self.unmappable(ty, "results can only be returned")
        exception = self.exception_name(ty.err)
        if isinstance(self.model.unalias(ty.ok), (Callback, FixedArray)):
            raise self.unmappable(ty, "the success value cannot be written through an out-parameter")
        ok = self.map(ty.ok, Position.FIELD if not self._is_void(ty.ok) else Position.RETURN, context)
        return self._status(ok, exception)

    def _is_void(self, ty: TypeRef) -> bool:
        target = self.model.unalias(ty)
        return isinstance(target, Primitive) and target.is_void

    def _array_element(self, ty: FixedArray, position: Position) -> MappedType:
        if position is Position.RETURN:
            raise self.unmappable(ty, "arrays cannot be returned by value")
        if position is Position.TARGET:
            raise self.unmappable(ty, "pointers to arrays are not supported")
        if isinstance(self.model.unalias(ty.element), FixedArray):
            raise self.unmappable(ty, "nested arrays are not supported")
        return self.map(ty.element, Position.FIELD)

    def _callback_signature(self, ty: Callback, context: str) -> tuple:
        params = tuple(self.map(p, Position.PARAM, f"{context}_{i}") for i, p in enumerate(ty.params))
        returns = self.map(ty.returns, Position.RETURN, f"{context}_result")
        return params, returns

    def _register_callback(self, ty: Callback, context: str) -> tuple:
        name = self.callback_name(context)
        params, returns = self._callback_signature(ty, context or name)
        self.callbacks.setdefault(name, ty)
        self._contexts.setdefault(name, context or name)
        return name, params, returns


class CTypeMapper(TypeMapper):
    """Maps interface types to C declarations"""

    backend = Backend.C

    PRIMITIVES = {
        ("void", 0, False): "void",
        ("bool", 8, False): "bool",
        ("int", 8, True): "int8_t",
        ("int", 16, True): "int16_t",
        ("int", 32, True): "int32_t",
        ("int", 64, True): "int64_t",
        ("int", 8, False): "uint8_t",
        ("int", 16, False): "uint16_t",
        ("int", 32, False): "uint32_t",
        ("int", 64, False): "uint64_t",
        ("size", 0, True): "intptr_t",
        ("size", 0, False): "uintptr_t",
        ("float", 32, True): "float",
        ("float", 64, True): "double",
    }

    KEYWORDS = {
        "stdcall": "__stdcall",
        "fastcall": "__fastcall",
    }

    def declaration(self, mapped: MappedType, name: str) -> str:
        """Declarator for ``name`` of type ``mapped``: ``T name``, ``T name[N]`` or a function pointer"""
        if mapped.declarator:
            return mapped.declarator.replace("{name}", name)
        if mapped.length and not mapped.by_reference:
            return f"{mapped.native} {name}[{mapped.length}]"
        return f"{mapped.native} {name}".rstrip()

    def out_parameter(self, ok: MappedType) -> MappedType:
        return MappedType(f"{ok.native}*", by_reference=True, element=ok)

    def _primitive(self, ty: Primitive, position: Position, context: str) -> MappedType:
        self._check_void(ty, position)
        if ty.c_name:
            return MappedType(ty.c_name)
        if (name := self.PRIMITIVES.get(_key(ty))) is None:
            raise self.unmappable(ty, "no fixed-width C type")
        return MappedType(name)

    def _pointer(self, ty: Pointer, position: Position, context: str) -> MappedType:
        inner = self.map(ty.target, Position.TARGET, context)
        if is_c_string(ty) and position is not Position.FIELD:
            marshal = Marshal.UTF8
        elif inner.marshal is Marshal.HANDLE and not inner.by_reference:
            marshal = Marshal.HANDLE
        else:
            marshal = Marshal.DIRECT
        if inner.declarator:
            star = "*{name}" if ty.mutable else "const *{name}"
            declarator = inner.declarator.replace("{name}", star)
            return MappedType(declarator.replace("{name}", ""), by_reference=True, declarator=declarator)
        native = f"{inner.native}*" if ty.mutable else f"{inner.native} const*"
        return MappedType(native, by_reference=True, marshal=marshal, decl=inner.decl)

    def _array(self, ty: FixedArray, position: Position, context: str) -> MappedType:
        element = self._array_element(ty, position)
        if element.declarator:
            raise self.unmappable(ty, "arrays of function pointers are not supported")
        if position is Position.FIELD:
            return MappedType(element.native, marshal=Marshal.ARRAY_COPY, element=element, length=ty.length)
        return MappedType(
            f"{element.native}*", by_reference=True, marshal=Marshal.ARRAY_COPY, element=element, length=ty.length
        )

    def _alias(self, decl: TypeAlias, position: Position) -> MappedType:
        # Aliases stay typedef names in C; the target is mapped to validate the use
        target = self.map(decl.target, position, decl.name)
        if target.marshal is Marshal.STATUS:
            return target
        return replace(
            target, native=self.type_name(decl.name), public="", declarator="", length=0, element=None,
        )

    def _struct(self, decl: Declaration, position: Position) -> MappedType:
        name = self.type_name(decl.name)
        return MappedType(name, marshal=Marshal.STRUCT, decl=name)

    def _enum(self, decl: EnumDecl, position: Position) -> MappedType:
        name = self.type_name(decl.name)
        return MappedType(name, marshal=Marshal.ENUM, decl=name)

    def _callback(self, ty: Callback, position: Position, context: str) -> MappedType:
        _, params, returns = self._register_callback(ty, context)
        if returns.declarator:
            raise self.unmappable(ty, "callbacks returning function pointers are not supported")
        names = list(ty.param_names) + [""] * (len(params) - len(ty.param_names))
        args = ", ".join(self.declaration(p, n or "") for p, n in zip(params, names)) or "void"
        keyword = self.KEYWORDS.get(ty.abi, "")
        keyword = f"{keyword} " if keyword else ""
        declarator = f"{returns.native} ({keyword}*{{name}})({args})"
        return MappedType(
            declarator.replace("{name}", ""), by_reference=True, marshal=Marshal.CALLBACK, declarator=declarator,
        )

    def _optional_value(self, ty: Option, value: MappedType) -> MappedType:
        name = self.option_name(ty.inner)
        self.option_types.setdefault(name, value)
        return MappedType(name, marshal=Marshal.OPTIONAL_VALUE, element=value, nullable=True, decl=name)

    def _status(self, ok: MappedType, exception: str) -> MappedType:
        return MappedType("int32_t", public=ok.public, marshal=Marshal.STATUS, element=ok, decl=exception)


class JvmTypeMapper(TypeMapper):
    """Maps interface types to Java types and JNI descriptors"""

    backend = Backend.JVM

    REGISTRIES = TypeMapper.REGISTRIES + ("pointed_structs",)

    # (kind, width, signed) -> (java type, descriptor)
    PRIMITIVES = {
        ("void", 0, False): ("void", "V"),
        ("bool", 8, False): ("boolean", "Z"),
        ("int", 8, True): ("byte", "B"),
        ("int", 16, True): ("short", "S"),
        ("int", 32, True): ("int", "I"),
        ("int", 64, True): ("long", "J"),
        ("int", 0, True): ("long", "J"),
        ("size", 0, True): ("long", "J"),
        ("char", 8, True): ("byte", "B"),
        ("float", 32, True): ("float", "F"),
        ("float", 64, True): ("double", "D"),
        # Unsigned types widen to the next signed type
        ("int", 8, False): ("short", "S"),
        ("int", 16, False): ("int", "I"),
        ("int", 32, False): ("long", "J"),
    }

    BOXED = {
        "boolean": "Boolean",
        "byte": "Byte",
        "short": "Short",
        "int": "Integer",
        "long": "Long",
        "float": "Float",
        "double": "Double",
    }

    def __init__(self, model: InterfaceModel, options: Optional[BackendOptions] = None, lib_name: str = "native"):
        super().__init__(model, options, lib_name)
        self.class_name = pascal_case(lib_name)
        package = self.options.namespace
        self.class_path = f"{package.replace('.', '/')}/{self.class_name}" if package else self.class_name
        # Structs used behind pointers get native read/write accessors
        self.pointed_structs: Dict[str, StructDecl] = {}

    def nested_descriptor(self, name: str) -> str:
        return f"L{self.class_path}${name};"

    def out_parameter(self, ok: MappedType) -> MappedType:
        return MappedType(f"{ok.native}[]", by_reference=True, descriptor=f"[{ok.descriptor}", element=ok)

    def _primitive(self, ty: Primitive, position: Position, context: str) -> MappedType:
        self._check_void(ty, position)
        if (entry := self.PRIMITIVES.get(_key(ty))) is None:
            raise self.unmappable(ty, "the JVM has no unsigned 64-bit or unsigned pointer-sized integer")
        return MappedType(entry[0], descriptor=entry[1])

    def _pointer(self, ty: Pointer, position: Position, context: str) -> MappedType:
        if is_c_string(ty) and position is not Position.FIELD:
            return MappedType("byte[]", "String", by_reference=True, marshal=Marshal.UTF8, descriptor="[B")
        decl = self.pointee(ty.target)
        if position is not Position.FIELD:
            if isinstance(decl, OpaqueType):
                name = self.type_name(decl.name)
                return MappedType("long", name, by_reference=True, marshal=Marshal.HANDLE, descriptor="J", decl=name)
            if isinstance(decl, StructDecl):
                self.pointed_structs.setdefault(decl.name, decl)
        return MappedType("long", by_reference=True, descriptor="J")

    def _array(self, ty: FixedArray, position: Position, context: str) -> MappedType:
        element = self._array_element(ty, position)
        if element.marshal not in (Marshal.DIRECT, Marshal.STRUCT):
            raise self.unmappable(ty, "only arrays of primitives and structs are supported")
        return MappedType(
            f"{element.native}[]",
            by_reference=True,
            marshal=Marshal.ARRAY_COPY,
            descriptor=f"[{element.descriptor}",
            element=element,
            length=ty.length,
        )

    def _struct(self, decl: Declaration, position: Position) -> MappedType:
        name = self.type_name(decl.name)
        return MappedType(name, marshal=Marshal.STRUCT, descriptor=self.nested_descriptor(name), decl=name)

    def enum_storage(self, decl: EnumDecl) -> MappedType:
        return self._primitive(decl.repr, Position.FIELD, decl.name)

    def _enum(self, decl: EnumDecl, position: Position) -> MappedType:
        storage = self.enum_storage(decl)
        name = self.type_name(decl.name)
        return MappedType(storage.native, name, marshal=Marshal.ENUM, descriptor=storage.descriptor, decl=name)

    def _callback(self, ty: Callback, position: Position, context: str) -> MappedType:
        name, _, _ = self._register_callback(ty, context)
        return MappedType(
            name, by_reference=True, marshal=Marshal.CALLBACK, descriptor=self.nested_descriptor(name), decl=name,
        )

    def _optional_value(self, ty: Option, value: MappedType) -> MappedType:
        if value.marshal is Marshal.STRUCT:
            return replace(value, nullable=True)
        boxed = self.BOXED[value.native]
        return MappedType(
            boxed,
            public=value.public if value.marshal is Marshal.ENUM else boxed,
            marshal=Marshal.OPTIONAL_VALUE,
            descriptor=f"Ljava/lang/{boxed};",
            element=value,
            nullable=True,
            decl=value.decl,
        )

    def _status(self, ok: MappedType, exception: str) -> MappedType:
        return MappedType("int", public=ok.public, marshal=Marshal.STATUS, descriptor="I", element=ok, decl=exception)


class DotnetTypeMapper(TypeMapper):
    """Maps interface types to C# platform-invoke types"""

    backend = Backend.DOTNET

    PRIMITIVES = {
        ("void", 0, False): "void",
        ("bool", 8, False): "bool",
        ("int", 8, True): "sbyte",
        ("int", 16, True): "short",
        ("int", 32, True): "int",
        ("int", 64, True): "long",
        ("int", 8, False): "byte",
        ("int", 16, False): "ushort",
        ("int", 32, False): "uint",
        ("int", 64, False): "ulong",
        ("int", 0, True): "CLong",
        ("int", 0, False): "CULong",
        ("size", 0, True): "nint",
        ("size", 0, False): "nuint",
        ("char", 8, True): "sbyte",
        ("float", 32, True): "float",
        ("float", 64, True): "double",
    }

    # Valid underlying types of a C# enum
    ENUM_STORAGE = ("sbyte", "byte", "short", "ushort", "int", "uint", "long", "ulong")

    BOOL_ATTRIBUTE = "MarshalAs(UnmanagedType.I1)"

    def out_parameter(self, ok: MappedType) -> MappedType:
        return replace(ok, native=f"out {ok.native}", by_reference=True, element=ok)

    def _primitive(self, ty: Primitive, position: Position, context: str) -> MappedType:
        self._check_void(ty, position)
        if (name := self.PRIMITIVES.get(_key(ty))) is None:
            raise self.unmappable(ty, "no fixed-width .NET type")
        return MappedType(name, attribute=self.BOOL_ATTRIBUTE if name == "bool" else "")

    def _pointer(self, ty: Pointer, position: Position, context: str) -> MappedType:
        if is_c_string(ty) and position is not Position.FIELD:
            return MappedType("IntPtr", "string", by_reference=True, marshal=Marshal.UTF8)
        decl = self.pointee(ty.target)
        if isinstance(decl, OpaqueType) and position is not Position.FIELD:
            name = self.type_name(decl.name)
            return MappedType(name, by_reference=True, marshal=Marshal.HANDLE, decl=name)
        return MappedType("IntPtr", by_reference=True)

    def _array(self, ty: FixedArray, position: Position, context: str) -> MappedType:
        element = self._array_element(ty, position)
        if element.marshal not in (Marshal.DIRECT, Marshal.STRUCT, Marshal.ENUM) or element.native == "IntPtr":
            raise self.unmappable(ty, "only arrays of primitives, enums and structs are supported")
        subtype = ", ArraySubType = UnmanagedType.I1" if element.attribute else ""
        if position is Position.FIELD:
            attribute = f"MarshalAs(UnmanagedType.ByValArray, SizeConst = {ty.length}{subtype})"
        else:
            attribute = f"MarshalAs(UnmanagedType.LPArray, SizeConst = {ty.length}{subtype})"
        return MappedType(
            f"{element.native}[]",
            by_reference=True,
            marshal=Marshal.ARRAY_COPY,
            element=element,
            length=ty.length,
            attribute=attribute,
        )

    def _struct(self, decl: Declaration, position: Position) -> MappedType:
        name = self.type_name(decl.name)
        return MappedType(name, marshal=Marshal.STRUCT, decl=name)

    def enum_storage(self, decl: EnumDecl) -> str:
        storage = self._primitive(decl.repr, Position.FIELD, decl.name).native
        if storage not in self.ENUM_STORAGE:
            raise self.unmappable(decl.repr, "not a valid enum underlying type")
        return storage

    def _enum(self, decl: EnumDecl, position: Position) -> MappedType:
        self.enum_storage(decl)
        name = self.type_name(decl.name)
        return MappedType(name, marshal=Marshal.ENUM, decl=name)

    def _callback(self, ty: Callback, position: Position, context: str) -> MappedType:
        name, _, _ = self._register_callback(ty, context)
        return MappedType(name, by_reference=True, marshal=Marshal.CALLBACK, decl=name)

    def _optional_value(self, ty: Option, value: MappedType) -> MappedType:
        name = self.option_name(ty.inner)
        self.option_types.setdefault(name, value)
        return MappedType(
            name, public=f"{value.public}?", marshal=Marshal.OPTIONAL_VALUE, element=value, nullable=True, decl=name,
        )

    def _status(self, ok: MappedType, exception: str) -> MappedType:
        return MappedType("int", public=ok.public, marshal=Marshal.STATUS, element=ok, decl=exception)


MAPPERS = {
    Backend.C: CTypeMapper,
    Backend.JVM: JvmTypeMapper,
    Backend.DOTNET: DotnetTypeMapper,
}


def mapper_for(backend, model: InterfaceModel, options: Optional[BackendOptions] = None,
               lib_name: str = "native") -> TypeMapper:
    """Create the type mapper of ``backend`` over ``model``"""
    return MAPPERS[Backend(backend)](model, options, lib_name)
