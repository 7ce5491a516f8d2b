"""C Header Generator - generates the C header of an exported interface"""

from .common_generator import HEADER, Generator
from .config import Backend
from .errors import UnmappableType
from .naming import fresh_name, quote_c, upper_snake
from .type_mapper import CTypeMapper, MappedType, Position
from .types import (
    Constant, Declaration, EnumDecl, FunctionDecl, Named, OpaqueType, Primitive, StructDecl,
    TypeAlias, is_c_string,
)

# repr(C) enums are stored as a C int; anything else gets a storage typedef
C_INT = Primitive("int", 32, True, "int")


class CHeaderGenerator(Generator):
    """Generates one C header: types, constants and function prototypes"""

    backend = Backend.C
    mapper: CTypeMapper

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.guard = f"{upper_snake(self.options.symbol_prefix + self.lib_name)}_H"
        # Struct tags and aliases with a forward typedef already emitted
        self.declared: set = set()

    def prologue(self) -> list[str]:
        return [
            HEADER,
            f"#ifndef {self.guard}",
            f"#define {self.guard}",
            "",
            "#include <stdbool.h>",
            "#include <stddef.h>",
            "#include <stdint.h>",
            "",
            "#ifdef __cplusplus",
            'extern "C" {',
            "#endif",
            "",
        ]

    def epilogue(self) -> list[str]:
        return [
            "#ifdef __cplusplus",
            "}",
            "#endif",
            "",
            f"#endif // {self.guard}",
        ]

    def _forward_declarations(self, decl: Declaration) -> list[str]:
        """``typedef struct X X;`` for every target this declaration uses before its definition.

        A target reached through aliases is declared as its struct tag followed
        by the alias typedefs, innermost first.
        """
        lines = []
        declared = set(self.declared)
        for target_id in self.ordering.forward_targets(decl.index):
            target = self.model.declarations[target_id]
            aliases = []
            while isinstance(target, TypeAlias) and isinstance(target.target, Named):
                aliases.append(target)
                target = self.model.resolve(target.target)
            if not isinstance(target, (StructDecl, EnumDecl, OpaqueType)) or (
                isinstance(target, EnumDecl) and not target.is_tagged_union
            ):
                raise UnmappableType(target.name, self.backend.display_name, "cannot be forward-declared")
            name = self.mapper.type_name(target.name)
            if name not in declared:
                declared.add(name)
                lines.append(f"typedef struct {name} {name};")
            for alias in reversed(aliases):
                alias_name = self.mapper.type_name(alias.name)
                if alias_name not in declared:
                    declared.add(alias_name)
                    aliased = self.mapper.type_name(self.model.resolve(alias.target).name)
                    lines.append(f"typedef {aliased} {alias_name};")
        self.declared = declared
        return lines + [""] if lines else lines

    def _struct_open(self, name: str) -> str:
        return f"struct {name} {{" if name in self.declared else f"typedef struct {name} {{"

    def _struct_close(self, name: str) -> str:
        return "};" if name in self.declared else f"}} {name};"

    def _field(self, name: str, mapped: MappedType) -> str:
        return f"    {self.mapper.declaration(mapped, name)};"

    # -- declarations ------------------------------------------------------

    def render_struct(self, decl: StructDecl) -> list[str]:
        fields = [(f, self.mapper.map(f.type, Position.FIELD, f"{decl.name}_{f.name}")) for f in decl.fields]
        lines = self._forward_declarations(decl)
        name = self.mapper.type_name(decl.name)
        lines.extend(self.doc_comment(decl.doc))
        if decl.packed:
            lines.append("#pragma pack(push, 1)")
        lines.append(self._struct_open(name))
        for f, mapped in fields:
            notes = (f"Fixed array of {mapped.length} elements.",) if mapped.length else ()
            lines.extend(self.doc_comment(f.doc, "    ", notes))
            lines.append(self._field(f.name, mapped))
        lines.append(self._struct_close(name))
        if decl.packed:
            lines.append("#pragma pack(pop)")
        lines.append("")
        return lines

    def render_opaque(self, decl: OpaqueType) -> list[str]:
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc)
        if name in self.declared:
            return []
        self.declared.add(name)
        return lines + [f"typedef struct {name} {name};", ""]

    def _enumerators(self, decl: EnumDecl, name: str) -> list[str]:
        lines = []
        for v in decl.variants:
            lines.extend(self.doc_comment(v.doc, "    "))
            lines.append(f"    {name}_{v.name} = {v.value},")
        return lines

    def _plain_enum(self, decl: EnumDecl, name: str, doc) -> list[str]:
        lines = self.doc_comment(doc)
        if decl.repr == C_INT:
            lines.append(f"typedef enum {name} {{")
            lines.extend(self._enumerators(decl, name))
            lines.append(f"}} {name};")
        else:
            # The enum only names the values; the typedef fixes the storage width
            storage = self.mapper.map(decl.repr, Position.FIELD).native
            lines.append(f"enum {name} {{")
            lines.extend(self._enumerators(decl, name))
            lines.append("};")
            lines.append(f"typedef {storage} {name};")
        lines.append("")
        return lines

    def render_enum(self, decl: EnumDecl) -> list[str]:
        name = self.mapper.type_name(decl.name)
        if not decl.is_tagged_union:
            return self._plain_enum(decl, name, decl.doc)

        payloads = [
            (v, self.mapper.map(v.payload, Position.FIELD, f"{decl.name}_{v.name}"))
            for v in decl.variants if v.payload is not None
        ]
        lines = self._forward_declarations(decl)
        lines.extend(self._plain_enum(decl, f"{name}_Tag", None))
        lines.append(f"typedef union {name}_Body {{")
        for v, mapped in payloads:
            lines.extend(self.doc_comment(v.doc, "    "))
            lines.append(self._field(_member(v.name), mapped))
        lines.append(f"}} {name}_Body;")
        lines.append("")
        lines.extend(self.doc_comment(decl.doc))
        lines.append(self._struct_open(name))
        lines.append(f"    {name}_Tag tag;")
        lines.append(f"    {name}_Body body;")
        lines.append(self._struct_close(name))
        lines.append("")
        return lines

    def render_alias(self, decl: TypeAlias) -> list[str]:
        mapped = self.mapper.map(decl.target, Position.FIELD, decl.name)
        if self.mapper.type_name(decl.name) in self.declared:
            # Already typedef'd ahead of a struct that reaches it through a cycle
            return []
        lines = self._forward_declarations(decl)
        lines.extend(self.doc_comment(decl.doc))
        lines.append(f"typedef {self.mapper.declaration(mapped, self.mapper.type_name(decl.name))};")
        lines.append("")
        return lines

    def render_constant(self, decl: Constant) -> list[str]:
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc)
        if is_c_string(decl.type):
            lines.append(f"#define {name} {quote_c(decl.value)}")
        elif isinstance(decl.value, bool):
            lines.append(f"#define {name} {'true' if decl.value else 'false'}")
        else:
            mapped = self.mapper.map(decl.type, Position.FIELD)
            lines.append(f"#define {name} (({mapped.native}){_c_number(decl.value, decl.type)})")
        lines.append("")
        return lines

    def render_option_type(self, name: str, value: MappedType) -> list[str]:
        return [
            "typedef struct {",
            "    bool has_value;",
            self._field("value", value),
            f"}} {name};",
            "",
        ]

    def render_function(self, decl: FunctionDecl) -> list[str]:
        params = [
            self.mapper.declaration(self.mapper.map(p.type, Position.PARAM, f"{decl.name}_{p.name}"), p.name)
            for p in decl.params
        ]
        ret = self.mapper.map(decl.returns, Position.RETURN, f"{decl.name}_result")
        notes = []
        if decl.error_out:
            if not ret.element.is_void:
                out = fresh_name("out_result", {p.name for p in decl.params})
                params.append(self.mapper.declaration(self.mapper.out_parameter(ret.element), out))
                notes.append(f"Returns 0 on success and writes the result to `{out}`;")
                notes.append(f"any other value is an error code and `{out}` is left untouched.")
            else:
                notes.append("Returns 0 on success; any other value is an error code.")

        keyword = CTypeMapper.KEYWORDS.get(decl.abi, "")
        keyword = f"{keyword} " if keyword else ""
        signature = f"{keyword}{decl.name}({', '.join(params) or 'void'})"
        lines = self._forward_declarations(decl)
        lines.extend(self.doc_comment(decl.doc, notes=tuple(notes)))
        lines.append(f"{self.mapper.declaration(ret, signature)};")
        lines.append("")
        return lines


def _member(variant: str) -> str:
    """Union member name of a variant: ``BigCircle`` -> ``big_circle``"""
    return upper_snake(variant).lower()


def _c_number(value, ty) -> str:
    if isinstance(value, float):
        return repr(value)
    signed = not isinstance(ty, Primitive) or ty.signed
    if not -(1 << 31) <= value < (1 << 31) or (isinstance(ty, Primitive) and ty.width == 64):
        return f"{value}{'LL' if signed else 'ULL'}"
    return str(value) if signed else f"{value}U"
