from ffigen import Backend


def csharp(run, source, **config):
    result = run(source, **config)
    output = result.outputs[Backend.DOTNET]
    assert output.errors == []
    return output.text


def test_file_layout(run, sample):
    text = csharp(run, sample)
    lines = text.splitlines()
    assert lines[:2] == ["// <auto-generated />", "// AUTO-GENERATED - DO NOT EDIT"]
    assert "using System.Runtime.InteropServices;" in lines
    assert "namespace Native.Interop;" in lines
    assert "public static class Native" in lines
    assert '    public const string LibraryName = "native";' in lines
    assert "internal static class Utf8Marshal" in lines
    assert text.endswith("}\n")


def test_namespace_option(run, sample):
    text = csharp(run, sample, dotnet={"namespace": "Geometry.Bindings"})
    assert "namespace Geometry.Bindings;" in text


def test_types(run, sample):
    text = csharp(run, sample)
    assert (
        "/// <summary>\n"
        "/// A 2D point.\n"
        "/// </summary>\n"
        "[StructLayout(LayoutKind.Sequential)]\n"
        "public struct Point\n"
        "{\n"
        "    public double x;\n"
        "    public double y;\n"
        "}\n"
    ) in text
    assert "public enum ErrorCode : int\n{\n    NotFound = 1,\n    Invalid = 2,\n}\n" in text
    assert "public readonly struct Context\n{\n    public readonly IntPtr Handle;\n" in text
    assert "public sealed class ErrorCodeException : Exception\n" in text
    assert "[UnmanagedFunctionPointer(CallingConvention.Cdecl)]\npublic delegate void OnEventCb(int code);\n" in text


def test_constants(run, sample):
    text = csharp(run, sample)
    assert "    public const uint MAX_POINTS = 64U;\n" in text
    assert '    public const string GREETING = "hi";\n' in text


def test_wrappers_and_imports(run, sample):
    text = csharp(run, sample)
    assert (
        "    public static int Add(int a, int b)\n"
        "    {\n"
        "        return NativeMethods.add(a, b);\n"
        "    }\n"
    ) in text
    assert (
        '        [DllImport(LibraryName, EntryPoint = "add", CallingConvention = CallingConvention.Cdecl)]\n'
        "        internal static extern int add(int a, int b);\n"
    ) in text
    assert "    public static Context ContextNew()\n    {\n        return NativeMethods.context_new();\n" in text
    assert "        internal static extern Context context_new();\n" in text
    assert "    public static void OnEvent(OnEventCb cb)\n    {\n        NativeMethods.on_event(cb);\n" in text


def test_result_throws_typed_exception(run, sample):
    text = csharp(run, sample)
    assert (
        "    public static int ParseNumber(string text)\n"
        "    {\n"
        "        IntPtr textUtf8 = Utf8Marshal.ToNative(text);\n"
        "        try\n"
        "        {\n"
        "            int status = NativeMethods.parse_number(textUtf8, out var result);\n"
        "            if (status != 0)\n"
        "            {\n"
        "                throw new ErrorCodeException((ErrorCode)status);\n"
        "            }\n"
        "            return result;\n"
        "        }\n"
        "        finally\n"
        "        {\n"
        "            Utf8Marshal.Free(textUtf8);\n"
        "        }\n"
        "    }\n"
    ) in text
    assert "        internal static extern int parse_number(IntPtr text, out int out_result);\n" in text


def test_generated_locals_do_not_shadow_parameters(run):
    text = csharp(run, """
        #[repr(C)]
        pub enum ErrorCode {
            Invalid = 1,
        }

        #[no_mangle]
        pub extern "C" fn store(status: i32, result: i32, out: i32, out_result: i32) -> Result<i32, ErrorCode> {
            unimplemented!()
        }
    """)
    assert (
        "    public static int Store(int status, int result, int @out, int out_result)\n"
        "    {\n"
        "        int status_ = NativeMethods.store(status, result, @out, out_result, out var result_);\n"
        "        if (status_ != 0)\n"
        "        {\n"
        "            throw new ErrorCodeException((ErrorCode)status_);\n"
        "        }\n"
        "        return result_;\n"
        "    }\n"
    ) in text
    assert (
        "        internal static extern int store(int status, int result, int @out, int out_result, out int out_result_);\n"
    ) in text


def test_string_temporaries_of_keyword_parameters_are_plain_identifiers(run):
    text = csharp(run, """
        #[no_mangle]
        pub extern "C" fn greet(string: *const c_char, stringUtf8: *const c_char) {}
    """)
    assert "        IntPtr stringUtf8_ = Utf8Marshal.ToNative(@string);\n" in text
    assert "        IntPtr stringUtf8Utf8 = Utf8Marshal.ToNative(stringUtf8);\n" in text
    assert "            NativeMethods.greet(stringUtf8_, stringUtf8Utf8);\n" in text


def test_bools_are_marshalled_as_one_byte(run):
    text = csharp(run, """
        #[no_mangle]
        pub extern "C" fn set_flag(flag: bool) -> bool { flag }
    """)
    assert (
        "        [return: MarshalAs(UnmanagedType.I1)]\n"
        "        internal static extern bool set_flag([MarshalAs(UnmanagedType.I1)] bool flag);\n"
    ) in text
    assert "    public static bool SetFlag(bool flag)\n" in text


def test_struct_layout_attributes(run):
    text = csharp(run, """
        #[repr(C, packed)]
        pub struct Config {
            pub enabled: bool,
            pub key: [u8; 4],
        }
    """)
    assert (
        "[StructLayout(LayoutKind.Sequential, Pack = 1)]\n"
        "public struct Config\n"
        "{\n"
        "    [MarshalAs(UnmanagedType.I1)]\n"
        "    public bool enabled;\n"
        "    /// <summary>\n"
        "    /// Copied by value: 4 elements marshalled in and out with the struct.\n"
        "    /// </summary>\n"
        "    [MarshalAs(UnmanagedType.ByValArray, SizeConst = 4)]\n"
        "    public byte[] key;\n"
        "}\n"
    ) in text


def test_optional_values_use_nullable(run):
    text = csharp(run, """
        #[no_mangle]
        pub extern "C" fn find(id: Option<u32>) -> Option<f64> { None }
    """)
    assert "public struct Option_u32\n{\n    [MarshalAs(UnmanagedType.I1)]\n    public bool HasValue;\n" in text
    assert "    public static Option_u32 From(uint? value)\n" in text
    assert "    public static double? Find(uint? id)\n" in text
    assert "        return NativeMethods.find(Option_u32.From(id)).ToNullable();\n" in text
    assert "        internal static extern Option_f64 find(Option_u32 id);\n" in text


def test_tagged_union_uses_explicit_layout(run):
    text = csharp(run, """
        #[repr(C)]
        pub enum Shape {
            Circle(f64),
            Empty,
        }
    """)
    assert "public enum ShapeTag : int\n{\n    Circle = 0,\n    Empty = 1,\n}\n" in text
    assert "[StructLayout(LayoutKind.Explicit)]\npublic struct ShapeBody\n{\n    [FieldOffset(0)]\n    public double Circle;\n}\n" in text
    assert "public struct Shape\n{\n    public ShapeTag Tag;\n    public ShapeBody Body;\n}\n" in text


def test_calling_conventions(run):
    text = csharp(run, """
        #[no_mangle]
        pub extern "system" fn tick() {}

        #[no_mangle]
        pub extern "stdcall" fn tock() {}
    """)
    assert 'EntryPoint = "tick", CallingConvention = CallingConvention.Winapi)]' in text
    assert 'EntryPoint = "tock", CallingConvention = CallingConvention.StdCall)]' in text


def test_keywords_are_escaped(run):
    text = csharp(run, """
        #[no_mangle]
        pub extern "C" fn lookup(object: i32) {}
    """)
    assert "    public static void Lookup(int @object)\n" in text
    assert "        internal static extern void lookup(int @object);\n" in text


def test_returned_strings_are_measured_up_to_the_terminator(run):
    text = csharp(run, """
        #[no_mangle]
        pub extern "C" fn version() -> *const c_char {
            unimplemented!()
        }
    """)
    assert "        return Utf8Marshal.FromNative(NativeMethods.version());\n" in text
    assert (
        "    // char const* carries no length; the NUL terminator marks the end\n"
        "    public static string FromNative(IntPtr value)\n"
    ) in text
    assert "        while (Marshal.ReadByte(value, length) != 0)\n" in text
