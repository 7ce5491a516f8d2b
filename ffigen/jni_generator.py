"""JNI Generator - generates the Java side of Java Native Interface bindings"""

from .common_generator import HEADER, Generator
from .config import Backend
from .naming import camel_case, fresh_name, jni_symbol, pascal_case, quote_unicode
from .type_mapper import JvmTypeMapper, MappedType, Marshal, Position
from .types import (
    Callback, Constant, EnumDecl, FunctionDecl, OpaqueType, StructDecl, TypeAlias, is_c_string,
)

JAVA_KEYWORDS = frozenset("""
    abstract assert boolean break byte case catch char class const continue default do double
    else enum extends false final finally float for goto if implements import instanceof int
    interface long native new null package private protected public return short static strictfp
    super switch synchronized this throw throws transient true try var void volatile while yield
""".split())


def _java_name(name: str) -> str:
    return f"{name}_" if name in JAVA_KEYWORDS else name


def _literal(value, java_type: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value!r}f" if java_type == "float" else repr(value)
    if java_type == "long":
        return f"{value}L"
    if java_type in ("byte", "short"):
        return f"({java_type}) {value}"
    return str(value)


class JNIGenerator(Generator):
    """Generates one Java class with nested types, wrappers and native methods"""

    backend = Backend.JVM
    mapper: JvmTypeMapper

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.class_name = self.mapper.class_name
        self.natives: list[str] = []
        self.uses_utf8 = False

    def prologue(self) -> list[str]:
        lines = [HEADER]
        if self.options.namespace:
            lines.extend([f"package {self.options.namespace};", ""])
        if self.uses_utf8:
            lines.extend(["import java.nio.charset.StandardCharsets;", ""])
        lines.extend([
            f"/** Bindings for the native library {self.lib_name}. */",
            f"public final class {self.class_name} {{",
            "",
            "    static {",
            f'        System.loadLibrary("{self.lib_name}");',
            "    }",
            "",
            f"    private {self.class_name}() {{",
            "    }",
            "",
        ])
        return lines

    def epilogue(self) -> list[str]:
        lines = []
        for decl in self.mapper.pointed_structs.values():
            if decl.name in self.mapper.failed:
                continue
            lines.extend(self._struct_accessors(self.mapper.type_name(decl.name)))
        if self.uses_utf8:
            lines.extend([
                "    private static byte[] toUtf8(String value) {",
                "        return value == null ? null : value.getBytes(StandardCharsets.UTF_8);",
                "    }",
                "",
                "    private static String fromUtf8(byte[] bytes) {",
                "        return bytes == null ? null : new String(bytes, StandardCharsets.UTF_8);",
                "    }",
                "",
            ])
        lines.append("    // Native methods")
        lines.extend(self.natives)
        lines.append("}")
        return lines

    # -- helpers -----------------------------------------------------------

    def _native(self, name: str, params: list, ret: MappedType) -> list[str]:
        """``private static native`` declaration preceded by its JNI symbol and descriptor"""
        descriptor = "(" + "".join(m.descriptor for _, m in params) + ")" + ret.descriptor
        args = ", ".join(f"{m.native} {n}" for n, m in params)
        return [
            f"    // JNI: {jni_symbol(self.mapper.class_path, name)} {descriptor}",
            f"    private static native {ret.native} {name}({args});",
            "",
        ]

    def _to_native(self, mapped: MappedType, expr: str) -> str:
        if mapped.marshal is Marshal.UTF8:
            return f"toUtf8({expr})"
        if mapped.marshal is Marshal.HANDLE:
            return f"({expr} == null ? 0L : {expr}.address())" if mapped.nullable else f"{expr}.address()"
        if mapped.marshal is Marshal.ENUM:
            return f"{expr}.getValue()"
        if mapped.marshal is Marshal.OPTIONAL_VALUE and mapped.element.marshal is Marshal.ENUM:
            return f"({expr} == null ? null : {mapped.native}.valueOf({expr}.getValue()))"
        return expr

    def _from_native(self, mapped: MappedType, expr: str) -> str:
        if mapped.marshal is Marshal.UTF8:
            return f"fromUtf8({expr})"
        if mapped.marshal is Marshal.HANDLE:
            if mapped.nullable:
                return f"{expr} == 0L ? null : new {mapped.public}({expr})"
            return f"new {mapped.public}({expr})"
        if mapped.marshal is Marshal.ENUM:
            return f"{mapped.public}.fromValue({expr})"
        if mapped.marshal is Marshal.OPTIONAL_VALUE and mapped.element.marshal is Marshal.ENUM:
            return f"{expr} == null ? null : {mapped.public}.fromValue({expr})"
        return expr

    def _uses_expr_twice(self, mapped: MappedType) -> bool:
        return (mapped.marshal is Marshal.HANDLE and mapped.nullable) or (
            mapped.marshal is Marshal.OPTIONAL_VALUE and mapped.element.marshal is Marshal.ENUM
        )

    def _enum_body(self, name: str, variants, storage: str, indent: str) -> list[str]:
        lines = []
        for i, v in enumerate(variants):
            end = "," if i < len(variants) - 1 else ";"
            lines.extend(self.doc_comment(v.doc, indent + "    "))
            lines.append(f"{indent}    {_java_name(v.name)}({_literal(v.value, storage)}){end}")
        lines.extend([
            "",
            f"{indent}    private final {storage} value;",
            "",
            f"{indent}    {name}({storage} value) {{",
            f"{indent}        this.value = value;",
            f"{indent}    }}",
            "",
            f"{indent}    public {storage} getValue() {{",
            f"{indent}        return value;",
            f"{indent}    }}",
            "",
            f"{indent}    public static {name} fromValue({storage} value) {{",
            f"{indent}        for ({name} e : values()) {{",
            f"{indent}            if (e.value == value) return e;",
            f"{indent}        }}",
            f'{indent}        throw new IllegalArgumentException("Unknown {name} value: " + value);',
            f"{indent}    }}",
        ])
        return lines

    def _struct_accessors(self, name: str) -> list[str]:
        read, write = f"nativeRead{name}", f"nativeWrite{name}"
        address = MappedType("long", descriptor="J")
        value = MappedType(name, descriptor=self.mapper.nested_descriptor(name))
        self.natives.extend(self._native(read, [("address", address)], value))
        self.natives.extend(self._native(write, [("address", address), ("value", value)], MappedType("void", descriptor="V")))
        return [
            f"    /** Copies the {name} stored at {{@code address}} out of native memory. */",
            f"    public static {name} read{name}(long address) {{",
            f"        return {read}(address);",
            "    }",
            "",
            f"    /** Copies {{@code value}} into native memory at {{@code address}}. */",
            f"    public static void write{name}(long address, {name} value) {{",
            f"        {write}(address, value);",
            "    }",
            "",
        ]

    # -- declarations ------------------------------------------------------

    def render_constant(self, decl: Constant) -> list[str]:
        lines = self.doc_comment(decl.doc, "    ")
        if is_c_string(decl.type):
            lines.append(f"    public static final String {decl.name} = {quote_unicode(decl.value)};")
        else:
            java_type = self.mapper.map(decl.type, Position.FIELD).native
            lines.append(f"    public static final {java_type} {decl.name} = {_literal(decl.value, java_type)};")
        lines.append("")
        return lines

    def render_enum(self, decl: EnumDecl) -> list[str]:
        if decl.is_tagged_union:
            return self._tagged_union(decl)
        storage = self.mapper.enum_storage(decl).native
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc, "    ")
        lines.append(f"    public enum {name} {{")
        lines.extend(self._enum_body(name, decl.variants, storage, "    "))
        lines.extend(["    }", ""])
        return lines

    def _tagged_union(self, decl: EnumDecl) -> list[str]:
        storage = self.mapper.enum_storage(decl).native
        payloads = {
            v.name: self.mapper.map(v.payload, Position.FIELD, f"{decl.name}_{v.name}")
            for v in decl.variants if v.payload is not None
        }
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc, "    ")
        lines.extend([
            f"    public static final class {name} {{",
            "        public enum Tag {",
        ])
        lines.extend(self._enum_body("Tag", decl.variants, storage, "        "))
        lines.extend([
            "        }",
            "",
            "        private final Tag tag;",
            "        private final Object value;",
            "",
            f"        private {name}(Tag tag, Object value) {{",
            "            this.tag = tag;",
            "            this.value = value;",
            "        }",
            "",
        ])
        for v in decl.variants:
            factory = _java_name(camel_case(v.name))
            tag = f"Tag.{_java_name(v.name)}"
            lines.extend(self.doc_comment(v.doc, "        "))
            if v.name in payloads:
                lines.extend([
                    f"        public static {name} {factory}({payloads[v.name].native} value) {{",
                    f"            return new {name}({tag}, value);",
                    "        }",
                    "",
                ])
            else:
                lines.extend([
                    f"        public static {name} {factory}() {{",
                    f"            return new {name}({tag}, null);",
                    "        }",
                    "",
                ])
        lines.extend([
            "        public Tag getTag() {",
            "            return tag;",
            "        }",
            "",
        ])
        for v in decl.variants:
            if v.name not in payloads:
                continue
            payload = payloads[v.name].native
            boxed = JvmTypeMapper.BOXED.get(payload, payload)
            tag = f"Tag.{_java_name(v.name)}"
            lines.extend([
                f"        public {payload} as{pascal_case(v.name)}() {{",
                f"            if (tag != {tag}) {{",
                f'                throw new IllegalStateException("{name} holds " + tag + ", not {v.name}");',
                "            }",
                f"            return ({boxed}) value;",
                "        }",
                "",
            ])
        lines[-1:] = ["    }", ""]
        return lines

    def render_struct(self, decl: StructDecl) -> list[str]:
        fields = [
            (_java_name(f.name), f, self.mapper.map(f.type, Position.FIELD, f"{decl.name}_{f.name}"))
            for f in decl.fields
        ]
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc, "    ")
        lines.append(f"    public static final class {name} {{")
        for field_name, f, mapped in fields:
            if mapped.marshal is Marshal.ARRAY_COPY:
                note = (
                    f"Holds a copy of the {mapped.length}-element native array; "
                    "changes reach native memory only when the struct is passed back.",
                )
                lines.extend(self.doc_comment(f.doc, "        ", note))
                lines.append(f"        public {mapped.native} {field_name} = new {mapped.element.native}[{mapped.length}];")
            else:
                lines.extend(self.doc_comment(f.doc, "        "))
                lines.append(f"        public {mapped.native} {field_name};")
        lines.extend([
            "",
            f"        public {name}() {{",
            "        }",
        ])
        if fields:
            params = ", ".join(f"{m.native} {n}" for n, _, m in fields)
            lines.extend(["", f"        public {name}({params}) {{"])
            lines.extend(f"            this.{n} = {n};" for n, _, _ in fields)
            lines.append("        }")
        for field_name, _, mapped in fields:
            if mapped.marshal is not Marshal.ENUM:
                continue
            accessor = pascal_case(field_name)
            lines.extend([
                "",
                f"        public {mapped.public} get{accessor}() {{",
                f"            return {mapped.public}.fromValue({field_name});",
                "        }",
                "",
                f"        public void set{accessor}({mapped.public} value) {{",
                f"            this.{field_name} = value.getValue();",
                "        }",
            ])
        lines.extend(["    }", ""])
        return lines

    def render_opaque(self, decl: OpaqueType) -> list[str]:
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc, "    ")
        lines.extend([
            f"    public static final class {name} {{",
            "        private final long address;",
            "",
            f"        public {name}(long address) {{",
            "            this.address = address;",
            "        }",
            "",
            "        public long address() {",
            "            return address;",
            "        }",
            "    }",
            "",
        ])
        return lines

    def render_alias(self, decl: TypeAlias) -> list[str]:
        # Aliases dissolve into their target; callback aliases name an interface
        self.mapper.map(decl.target, Position.FIELD, decl.name)
        return []

    def render_exception(self, name: str, err) -> list[str]:
        if err is None:
            return [
                "    /** Thrown when a native call returns a non-zero status. */",
                f"    public static final class {name} extends RuntimeException {{",
                "        private final int status;",
                "",
                f"        public {name}(int status) {{",
                '            super("native call failed with status " + status);',
                "            this.status = status;",
                "        }",
                "",
                "        public int getStatus() {",
                "            return status;",
                "        }",
                "    }",
                "",
            ]
        error = self.mapper.type_name(err.name)
        return [
            f"    /** Thrown when a native call reports a {{@link {error}}}. */",
            f"    public static final class {name} extends RuntimeException {{",
            f"        private final {error} error;",
            "",
            f"        public {name}({error} error) {{",
            '            super("native call failed: " + error);',
            "            this.error = error;",
            "        }",
            "",
            f"        public {error} getError() {{",
            "            return error;",
            "        }",
            "    }",
            "",
        ]

    def render_callback(self, name: str, callback: Callback) -> list[str]:
        trampoline = self.mapper.trampoline(name, callback)
        names = list(callback.param_names) + [""] * (len(callback.params) - len(callback.param_names))
        params = ", ".join(
            f"{native} {_java_name(n) if n else f'arg{i}'}"
            for i, (native, n) in enumerate(zip(trampoline.params, names))
        )
        return [
            f"    // Trampoline: {trampoline.descriptor} {trampoline.convention}",
            "    @FunctionalInterface",
            f"    public interface {name} {{",
            f"        {trampoline.returns} invoke({params});",
            "    }",
            "",
        ]

    def render_function(self, decl: FunctionDecl) -> list[str]:
        params = [
            (_java_name(p.name), self.mapper.map(p.type, Position.PARAM, f"{decl.name}_{p.name}"))
            for p in decl.params
        ]
        ret = self.mapper.map(decl.returns, Position.RETURN, f"{decl.name}_result")
        native_name = f"native{pascal_case(decl.name)}"
        native_params = list(params)
        ok = ret.element if ret.marshal is Marshal.STATUS else None
        # Generated locals must not shadow a parameter
        taken = {n for n, _ in params}
        out, status, result = (fresh_name(n, taken) for n in ("out", "status", "result"))
        if ok is not None and not ok.is_void:
            native_params.append((fresh_name("out_result", taken), self.mapper.out_parameter(ok)))

        args = ", ".join(self._to_native(m, n) for n, m in params)
        call_args = ", ".join(filter(None, [args, out if len(native_params) > len(params) else ""]))
        call = f"{native_name}({call_args})"

        notes = []
        for n, m in params:
            if m.marshal is Marshal.ARRAY_COPY:
                notes.append(f"@param {n} copied to native memory; must hold {m.length} elements")
        if ok is not None:
            notes.append(f"@throws {ret.decl} if the native call returns a non-zero status")

        public_ret = "void" if ok is not None and ok.is_void else ret.public
        signature = ", ".join(f"{m.public} {n}" for n, m in params)
        lines = self.doc_comment(decl.doc, "    ", tuple(notes))
        lines.append(f"    public static {public_ret} {_java_name(camel_case(decl.name))}({signature}) {{")
        for n, m in params:
            if m.marshal is Marshal.ARRAY_COPY:
                lines.extend([
                    f"        if ({n}.length != {m.length}) {{",
                    f'            throw new IllegalArgumentException("{n} must have {m.length} elements");',
                    "        }",
                ])
        if ok is not None:
            lines.extend(self._status_call(ret, ok, call, out, status))
        elif ret.is_void:
            lines.append(f"        {call};")
        elif self._uses_expr_twice(ret):
            lines.append(f"        {ret.native} {result} = {call};")
            lines.append(f"        return {self._from_native(ret, result)};")
        else:
            lines.append(f"        return {self._from_native(ret, call)};")
        lines.extend(["    }", ""])

        self.natives.extend(self._native(native_name, native_params, ret))
        if any(m.marshal is Marshal.UTF8 for _, m in params + [("", ret)]):
            self.uses_utf8 = True
        return lines

    def _status_call(self, ret: MappedType, ok: MappedType, call: str, out: str, status: str) -> list[str]:
        lines = []
        if not ok.is_void:
            lines.append(f"        {ok.native}[] {out} = new {ok.native}[1];")
        lines.append(f"        int {status} = {call};")
        lines.append(f"        if ({status} != 0) {{")
        err = self.mapper.exceptions.get(ret.decl)
        if err is None:
            lines.append(f"            throw new {ret.decl}({status});")
        else:
            error = self.mapper.type_name(err.name)
            storage = self.mapper.enum_storage(err).native
            value = status if storage in ("int", "long") else f"({storage}) {status}"
            lines.append(f"            throw new {ret.decl}({error}.fromValue({value}));")
        lines.append("        }")
        if not ok.is_void:
            lines.append(f"        return {self._from_native(ok, f'{out}[0]')};")
        return lines
