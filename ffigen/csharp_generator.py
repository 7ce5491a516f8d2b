"""C# Generator - generates .NET platform-invoke bindings"""

from xml.sax.saxutils import escape

from .common_generator import HEADER, Generator
from .config import Backend
from .naming import fresh_name, pascal_case, quote_unicode
from .type_mapper import CONVENTIONS, DotnetTypeMapper, MappedType, Marshal, Position
from .types import (
    Callback, Constant, Declaration, EnumDecl, FunctionDecl, OpaqueType, StructDecl, TypeAlias,
    is_c_string,
)

CSHARP_KEYWORDS = frozenset("""
    abstract as base bool break byte case catch char checked class const continue decimal default
    delegate do double else enum event explicit extern false finally fixed float for foreach goto
    if implicit in int interface internal is lock long namespace new null object operator out
    override params private protected public readonly ref return sbyte sealed short sizeof
    stackalloc static string struct switch this throw true try typeof uint ulong unchecked unsafe
    ushort using virtual void volatile while
""".split())

CALLING_CONVENTIONS = {
    "cdecl": "CallingConvention.Cdecl",
    "stdcall": "CallingConvention.StdCall",
    "fastcall": "CallingConvention.FastCall",
    "winapi": "CallingConvention.Winapi",
}

# Suffixes that keep a literal at its declared type
LITERAL_SUFFIXES = {
    "uint": "U",
    "long": "L",
    "ulong": "UL",
    "float": "f",
    "double": "d",
}

UTF8_MARSHAL = [
    "/// <summary>UTF-8 conversions to and from NUL-terminated native strings.</summary>",
    "internal static class Utf8Marshal",
    "{",
    "    public static IntPtr ToNative(string value)",
    "    {",
    "        if (value == null)",
    "        {",
    "            return IntPtr.Zero;",
    "        }",
    "        byte[] bytes = Encoding.UTF8.GetBytes(value);",
    "        IntPtr buffer = Marshal.AllocHGlobal(bytes.Length + 1);",
    "        Marshal.Copy(bytes, 0, buffer, bytes.Length);",
    "        Marshal.WriteByte(buffer, bytes.Length, 0);",
    "        return buffer;",
    "    }",
    "",
    "    // char const* carries no length; the NUL terminator marks the end",
    "    public static string FromNative(IntPtr value)",
    "    {",
    "        if (value == IntPtr.Zero)",
    "        {",
    "            return null;",
    "        }",
    "        int length = 0;",
    "        while (Marshal.ReadByte(value, length) != 0)",
    "        {",
    "            length++;",
    "        }",
    "        return Marshal.PtrToStringUTF8(value, length);",
    "    }",
    "",
    "    public static void Free(IntPtr value)",
    "    {",
    "        if (value != IntPtr.Zero)",
    "        {",
    "            Marshal.FreeHGlobal(value);",
    "        }",
    "    }",
    "}",
    "",
]


def _cs_name(name: str) -> str:
    return f"@{name}" if name in CSHARP_KEYWORDS else name


def _literal(value, cs_type: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value!r}{LITERAL_SUFFIXES[cs_type]}"
    return f"{value}{LITERAL_SUFFIXES.get(cs_type, '')}"


def _attributed(mapped: MappedType, text: str) -> str:
    return f"[{mapped.attribute}] {text}" if mapped.attribute else text


class CSharpGenerator(Generator):
    """Generates one C# source: namespace types plus a static class of wrappers and DllImports"""

    backend = Backend.DOTNET
    mapper: DotnetTypeMapper

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.class_name = pascal_case(self.lib_name)
        self.namespace = self.options.namespace or f"{self.class_name}.Interop"
        self.members: list[str] = []
        self.natives: list[str] = []
        self.uses_utf8 = False

    def emit(self, decl: Declaration, lines: list[str]):
        if isinstance(decl, (FunctionDecl, Constant)):
            self.members.extend(lines)
        else:
            self.body.extend(lines)

    def prologue(self) -> list[str]:
        return [
            "// <auto-generated />",
            HEADER,
            "using System;",
            "using System.Runtime.InteropServices;",
            "using System.Text;",
            "",
            f"namespace {self.namespace};",
            "",
        ]

    def epilogue(self) -> list[str]:
        lines = [
            f"/// <summary>Bindings for the native library {escape(self.lib_name)}.</summary>",
            f"public static class {self.class_name}",
            "{",
            f'    public const string LibraryName = "{self.lib_name}";',
            "",
        ]
        lines.extend(self.members)
        lines.extend([
            "    internal static class NativeMethods",
            "    {",
        ])
        lines.extend(self.natives)
        if lines[-1] == "":
            lines.pop()
        lines.extend(["    }", "}", ""])
        if self.uses_utf8:
            lines.extend(UTF8_MARSHAL)
        return lines

    def comment_block(self, lines: list[str], indent: str) -> list[str]:
        out = [f"{indent}/// <summary>"]
        out.extend(f"{indent}/// {escape(line)}".rstrip() for line in lines)
        out.append(f"{indent}/// </summary>")
        return out

    # -- declarations ------------------------------------------------------

    def render_constant(self, decl: Constant) -> list[str]:
        lines = self.doc_comment(decl.doc, "    ")
        if is_c_string(decl.type):
            lines.append(f"    public const string {decl.name} = {quote_unicode(decl.value)};")
        else:
            cs_type = self.mapper.map(decl.type, Position.FIELD).native
            if cs_type in ("CLong", "CULong"):
                lines.append(f"    public static readonly {cs_type} {decl.name} = new {cs_type}({decl.value});")
            else:
                lines.append(f"    public const {cs_type} {decl.name} = {_literal(decl.value, cs_type)};")
        lines.append("")
        return lines

    def _enum(self, name: str, variants, storage: str, doc) -> list[str]:
        lines = self.doc_comment(doc)
        lines.append(f"public enum {name} : {storage}")
        lines.append("{")
        for v in variants:
            lines.extend(self.doc_comment(v.doc, "    "))
            lines.append(f"    {_cs_name(v.name)} = {v.value},")
        lines.extend(["}", ""])
        return lines

    def render_enum(self, decl: EnumDecl) -> list[str]:
        storage = self.mapper.enum_storage(decl)
        name = self.mapper.type_name(decl.name)
        if not decl.is_tagged_union:
            return self._enum(name, decl.variants, storage, decl.doc)

        payloads = [
            (v, self.mapper.map(v.payload, Position.FIELD, f"{decl.name}_{v.name}"))
            for v in decl.variants if v.payload is not None
        ]
        for v, mapped in payloads:
            if mapped.marshal in (Marshal.ARRAY_COPY, Marshal.CALLBACK):
                raise self.mapper.unmappable(v.payload, "managed references cannot overlap in an explicit layout")
        lines = self._enum(f"{name}Tag", decl.variants, storage, None)
        lines.extend([
            "[StructLayout(LayoutKind.Explicit)]",
            f"public struct {name}Body",
            "{",
        ])
        for v, mapped in payloads:
            lines.extend(self.doc_comment(v.doc, "    "))
            lines.append("    [FieldOffset(0)]")
            lines.append("    " + _attributed(mapped, f"public {mapped.native} {_cs_name(v.name)};"))
        lines.extend(["}", ""])
        lines.extend(self.doc_comment(decl.doc))
        lines.extend([
            "[StructLayout(LayoutKind.Sequential)]",
            f"public struct {name}",
            "{",
            f"    public {name}Tag Tag;",
            f"    public {name}Body Body;",
            "}",
            "",
        ])
        return lines

    def render_struct(self, decl: StructDecl) -> list[str]:
        fields = [(f, self.mapper.map(f.type, Position.FIELD, f"{decl.name}_{f.name}")) for f in decl.fields]
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc)
        lines.append("[StructLayout(LayoutKind.Sequential, Pack = 1)]" if decl.packed
                     else "[StructLayout(LayoutKind.Sequential)]")
        lines.append(f"public struct {name}")
        lines.append("{")
        for f, mapped in fields:
            notes = ()
            if mapped.marshal is Marshal.ARRAY_COPY:
                notes = (f"Copied by value: {mapped.length} elements marshalled in and out with the struct.",)
            lines.extend(self.doc_comment(f.doc, "    ", notes))
            if mapped.attribute:
                lines.append(f"    [{mapped.attribute}]")
            lines.append(f"    public {mapped.native} {_cs_name(f.name)};")
        lines.extend(["}", ""])
        return lines

    def render_opaque(self, decl: OpaqueType) -> list[str]:
        name = self.mapper.type_name(decl.name)
        lines = self.doc_comment(decl.doc)
        lines.extend([
            "[StructLayout(LayoutKind.Sequential)]",
            f"public readonly struct {name}",
            "{",
            "    public readonly IntPtr Handle;",
            "",
            f"    public {name}(IntPtr handle)",
            "    {",
            "        Handle = handle;",
            "    }",
            "",
            "    public bool IsNull => Handle == IntPtr.Zero;",
            "}",
            "",
        ])
        return lines

    def render_alias(self, decl: TypeAlias) -> list[str]:
        # Aliases dissolve into their target; callback aliases name a delegate
        self.mapper.map(decl.target, Position.FIELD, decl.name)
        return []

    def render_option_type(self, name: str, value: MappedType) -> list[str]:
        public = value.public
        return [
            "[StructLayout(LayoutKind.Sequential)]",
            f"public struct {name}",
            "{",
            "    [MarshalAs(UnmanagedType.I1)]",
            "    public bool HasValue;",
            "    " + _attributed(value, f"public {value.native} Value;"),
            "",
            f"    public static {name} From({public}? value)",
            "    {",
            f"        return value.HasValue ? new {name} {{ HasValue = true, Value = value.Value }} : default;",
            "    }",
            "",
            f"    public {public}? ToNullable()",
            "    {",
            f"        return HasValue ? Value : ({public}?)null;",
            "    }",
            "}",
            "",
        ]

    def render_exception(self, name: str, err) -> list[str]:
        if err is None:
            return [
                "/// <summary>Thrown when a native call returns a non-zero status.</summary>",
                f"public sealed class {name} : Exception",
                "{",
                f"    public {name}(int status)",
                '        : base($"native call failed with status {status}")',
                "    {",
                "        Status = status;",
                "    }",
                "",
                "    public int Status { get; }",
                "}",
                "",
            ]
        error = self.mapper.type_name(err.name)
        return [
            f'/// <summary>Thrown when a native call reports a <see cref="{error}"/>.</summary>',
            f"public sealed class {name} : Exception",
            "{",
            f"    public {name}({error} error)",
            '        : base($"native call failed: {error}")',
            "    {",
            "        Error = error;",
            "    }",
            "",
            f"    public {error} Error {{ get; }}",
            "}",
            "",
        ]

    def render_callback(self, name: str, callback: Callback) -> list[str]:
        trampoline = self.mapper.trampoline(name, callback)
        params, returns = self.mapper.callback_signature(name, callback)
        names = list(callback.param_names) + [""] * (len(params) - len(callback.param_names))
        args = ", ".join(
            _attributed(m, f"{m.native} {_cs_name(n) if n else f'arg{i}'}")
            for i, (m, n) in enumerate(zip(params, names))
        )
        lines = [f"[UnmanagedFunctionPointer({CALLING_CONVENTIONS[trampoline.convention]})]"]
        if returns.attribute:
            lines.append(f"[return: {returns.attribute}]")
        lines.extend([f"public delegate {returns.native} {name}({args});", ""])
        return lines

    def render_function(self, decl: FunctionDecl) -> list[str]:
        params = [
            (_cs_name(p.name), self.mapper.map(p.type, Position.PARAM, f"{decl.name}_{p.name}"))
            for p in decl.params
        ]
        ret = self.mapper.map(decl.returns, Position.RETURN, f"{decl.name}_result")
        ok = ret.element if ret.marshal is Marshal.STATUS else None
        native_params = list(params)
        # Generated locals must not shadow a parameter; @name is the identifier name
        taken = {n.lstrip("@") for n, _ in params}
        utf8 = {}
        for n, m in params:
            if m.marshal is Marshal.UTF8:
                utf8[n] = fresh_name(f"{n.lstrip('@')}Utf8", taken)
                taken.add(utf8[n])
        status, result = fresh_name("status", taken), fresh_name("result", taken)
        if ok is not None and not ok.is_void:
            native_params.append((fresh_name("out_result", taken), self.mapper.out_parameter(ok)))

        convention = CALLING_CONVENTIONS[CONVENTIONS.get(decl.abi, "cdecl")]
        native_args = ", ".join(_attributed(m, f"{m.native} {n}") for n, m in native_params)
        native_decl = [
            f'        [DllImport(LibraryName, EntryPoint = "{decl.name}", CallingConvention = {convention})]',
        ]
        if ret.attribute and ok is None:
            native_decl.append(f"        [return: {ret.attribute}]")
        native_decl.extend([f"        internal static extern {ret.native} {decl.name}({native_args});", ""])

        notes = []
        if ok is not None:
            notes.append(f"Throws {ret.decl} when the native call returns a non-zero status.")
        if any(m.marshal is Marshal.ARRAY_COPY for _, m in params):
            notes.append("Arrays are copied to native memory for the duration of the call.")

        strings = [n for n, m in params if m.marshal is Marshal.UTF8]
        args = []
        for n, m in params:
            if m.marshal is Marshal.UTF8:
                args.append(utf8[n])
            elif m.marshal is Marshal.OPTIONAL_VALUE:
                args.append(f"{m.native}.From({n})")
            else:
                args.append(n)
        if ok is not None and not ok.is_void:
            args.append(f"out var {result}")
        call = f"NativeMethods.{decl.name}({', '.join(args)})"

        public_ret = "void" if ok is not None and ok.is_void else ret.public
        signature = ", ".join(f"{m.public} {n}" for n, m in params)
        lines = self.doc_comment(decl.doc, "    ", tuple(notes))
        lines.append(f"    public static {public_ret} {pascal_case(decl.name)}({signature})")
        lines.append("    {")
        body = []
        for n, m in params:
            if m.marshal is Marshal.ARRAY_COPY:
                body.extend([
                    f"if ({n}.Length != {m.length})",
                    "{",
                    f'    throw new ArgumentException("{n} must have {m.length} elements", nameof({n}));',
                    "}",
                ])
        inner = self._call_body(ret, ok, call, status, result)
        if strings:
            body.extend(f"IntPtr {utf8[n]} = Utf8Marshal.ToNative({n});" for n in strings)
            body.append("try")
            body.append("{")
            body.extend(f"    {line}" for line in inner)
            body.append("}")
            body.append("finally")
            body.append("{")
            body.extend(f"    Utf8Marshal.Free({utf8[n]});" for n in strings)
            body.append("}")
        else:
            body.extend(inner)
        lines.extend(f"        {line}" for line in body)
        lines.extend(["    }", ""])

        self.natives.extend(native_decl)
        if strings or ret.marshal is Marshal.UTF8:
            self.uses_utf8 = True
        return lines

    def _call_body(self, ret: MappedType, ok, call: str, status: str, result: str) -> list[str]:
        if ok is not None:
            err = self.mapper.exceptions.get(ret.decl)
            error = status if err is None else f"({self.mapper.type_name(err.name)}){status}"
            lines = [
                f"int {status} = {call};",
                f"if ({status} != 0)",
                "{",
                f"    throw new {ret.decl}({error});",
                "}",
            ]
            if not ok.is_void:
                lines.append(f"return {self._from_native(ok, result)};")
            return lines
        if ret.is_void:
            return [f"{call};"]
        return [f"return {self._from_native(ret, call)};"]

    def _from_native(self, mapped: MappedType, expr: str) -> str:
        if mapped.marshal is Marshal.UTF8:
            return f"Utf8Marshal.FromNative({expr})"
        if mapped.marshal is Marshal.OPTIONAL_VALUE:
            return f"{expr}.ToNullable()"
        return expr
