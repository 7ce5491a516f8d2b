from ffigen import (
    Callback, Constant, EnumDecl, FunctionDecl, OpaqueType, Option, Param, Pointer, ResultLike,
    StructDecl, TypeAlias, UnsupportedConstruct, extract,
)
from ffigen.types import C_CHAR, C_PRIMITIVES, PRIMITIVES, VOID, FixedArray, Named

I32 = PRIMITIVES["i32"]


def test_exported_function(parse):
    result = extract(parse("""
        /// Adds two numbers.
        #[no_mangle]
        pub extern "C" fn add(a: i32, b: i32) -> i32 {
            a + b
        }
    """))
    assert result.warnings == []
    (decl,) = result.declarations
    assert isinstance(decl, FunctionDecl)
    assert decl.name == "add"
    assert decl.params == (Param("a", I32), Param("b", I32))
    assert decl.returns == I32
    assert decl.abi == "C"
    assert decl.doc == "Adds two numbers."


def test_functions_without_export_markers_are_skipped(parse):
    result = extract(parse("""
        pub fn helper() {}

        #[no_mangle]
        fn private_fn() {}

        #[no_mangle]
        pub fn rust_abi() {}

        #[no_mangle]
        pub extern "stdcall" fn win_callback() {}
    """))
    assert result.warnings == []
    assert [d.name for d in result.declarations] == ["win_callback"]
    assert result.declarations[0].abi == "stdcall"


def test_generic_function_is_rejected(parse):
    result = extract(parse("""
        #[no_mangle]
        pub extern "C" fn ident<T>(x: T) -> T { x }

        #[no_mangle]
        pub extern "C" fn add(a: i32, b: i32) -> i32 { a + b }
    """))
    assert [d.name for d in result.declarations] == ["add"]
    (warning,) = result.warnings
    assert isinstance(warning, UnsupportedConstruct)
    assert warning.declaration == "ident"
    assert "generic" in warning.reason


def test_diverging_function_is_rejected(parse):
    result = extract(parse("""
        #[no_mangle]
        pub extern "C" fn abort_now() -> ! { loop {} }
    """))
    assert result.declarations == []
    assert "cannot be returned across a C boundary" in result.warnings[0].reason


def test_struct_fields_and_docs(parse):
    result = extract(parse("""
        /// A point.
        #[repr(C)]
        pub struct Point {
            /// Horizontal.
            pub x: f64,
            pub y: f64,
            pub tag: [u8; 4],
        }
    """))
    (decl,) = result.declarations
    assert isinstance(decl, StructDecl)
    assert [f.name for f in decl.fields] == ["x", "y", "tag"]
    assert decl.fields[0].doc == "Horizontal."
    assert decl.fields[2].type == FixedArray(PRIMITIVES["u8"], 4)
    assert decl.doc == "A point."
    assert not decl.packed


def test_packed_struct(parse):
    result = extract(parse("""
        #[repr(C, packed)]
        pub struct Header {
            pub kind: u8,
            pub len: u32,
        }
    """))
    assert result.declarations[0].packed


def test_struct_without_repr_c_is_reported(parse):
    result = extract(parse("""
        pub struct Plain {
            pub x: i32,
        }
    """))
    assert result.declarations == []
    assert result.warnings[0].declaration == "Plain"
    assert "repr(C)" in result.warnings[0].reason


def test_opaque_markers(parse):
    result = extract(parse("""
        #[repr(C)]
        pub struct Context;

        #[repr(C)]
        pub struct Wrapper(u64);

        #[repr(C)]
        pub struct Hidden {
            _private: [u8; 0],
        }

        pub enum Session {}
    """))
    assert result.warnings == []
    assert [type(d) for d in result.declarations] == [OpaqueType] * 4
    assert [d.name for d in result.declarations] == ["Context", "Wrapper", "Hidden", "Session"]


def test_enums(parse):
    result = extract(parse("""
        #[repr(u8)]
        pub enum Level {
            Low = 1,
            High,
        }

        #[repr(C)]
        pub enum Shape {
            Circle(f64),
            Empty,
        }
    """))
    level, shape = result.declarations
    assert isinstance(level, EnumDecl)
    assert level.repr == PRIMITIVES["u8"]
    assert [(v.name, v.value) for v in level.variants] == [("Low", 1), ("High", None)]
    assert shape.is_tagged_union
    assert shape.variants[0].payload == PRIMITIVES["f64"]
    assert shape.repr == C_PRIMITIVES["c_int"]


def test_data_enum_needs_repr_c(parse):
    result = extract(parse("""
        #[repr(u8)]
        pub enum Shape {
            Circle(f64),
        }
    """))
    assert result.declarations == []
    assert result.warnings[0].declaration == "Shape"


def test_aliases_and_constants(parse):
    result = extract(parse("""
        pub type Handle = *mut u8;

        /// Library version.
        pub const VERSION: &str = "1.0\\n";
        pub const MAX_ITEMS: u32 = 0x10;
        pub const OFFSET: i32 = -5;
        pub const SCALE: f32 = 2.5;
        pub const ENABLED: bool = true;
    """))
    assert result.warnings == []
    alias, version, max_items, offset, scale, enabled = result.declarations
    assert alias == TypeAlias("Handle", Pointer(PRIMITIVES["u8"], True), index=alias.index)
    assert isinstance(version, Constant)
    assert version.type == Pointer(C_CHAR)
    assert version.value == "1.0\n"
    assert version.doc == "Library version."
    assert max_items.value == 16
    assert offset.value == -5
    assert scale.value == 2.5
    assert enabled.value is True


def test_wrapper_types(parse):
    result = extract(parse("""
        #[no_mangle]
        pub extern "C" fn subscribe(
            cb: Option<extern "C" fn(code: i32)>,
            name: *const libc::c_char,
            target: Box<Point>,
        ) -> Result<i32, ErrorCode> {
            unimplemented!()
        }
    """))
    (decl,) = result.declarations
    cb, name, target = (p.type for p in decl.params)
    assert cb == Option(Callback((I32,), VOID, ("code",), "C"))
    assert name == Pointer(C_CHAR)
    assert target == Pointer(Named("Point"), True)
    assert decl.returns == ResultLike(I32, Named("ErrorCode"))


def test_result_outside_return_is_rejected(parse):
    result = extract(parse("""
        #[repr(C)]
        pub struct Holder {
            pub value: Result<i32, i32>,
        }
    """))
    assert result.declarations == []
    assert "return type" in result.warnings[0].reason


def test_foreign_module_paths_are_rejected(parse):
    result = extract(parse("""
        #[no_mangle]
        pub extern "C" fn open(path: *const std::path::Path) {}
    """))
    assert result.declarations == []
    assert "another module" in result.warnings[0].reason


def test_inline_modules_are_walked_in_source_order(parse):
    result = extract(parse("""
        #[no_mangle]
        pub extern "C" fn first() {}

        pub mod inner {
            #[no_mangle]
            pub extern "C" fn second() {}
        }

        #[no_mangle]
        pub extern "C" fn third() {}
    """))
    assert [d.name for d in result.declarations] == ["first", "second", "third"]
    assert [d.index for d in result.declarations] == [0, 1, 2]


def test_parameter_patterns_bind_plain_names(parse):
    result = extract(parse("""
        #[no_mangle]
        pub extern "C" fn bump(mut count: i32, r#type: u8) -> i32 {
            count += 1;
            count
        }
    """))
    (decl,) = result.declarations
    assert [p.name for p in decl.params] == ["count", "type"]
