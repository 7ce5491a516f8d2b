from ffigen import Backend


def header(run, source, **config):
    result = run(source, **config)
    output = result.outputs[Backend.C]
    assert output.errors == []
    return output.text


def test_boilerplate(run, sample):
    text = header(run, sample)
    lines = text.splitlines()
    assert lines[0] == "// AUTO-GENERATED - DO NOT EDIT"
    assert lines[1:3] == ["#ifndef NATIVE_H", "#define NATIVE_H"]
    assert "#include <stdint.h>" in lines
    assert "#include <stdbool.h>" in lines
    assert 'extern "C" {' in lines
    assert text.endswith("#endif // NATIVE_H\n")


def test_declarations(run, sample):
    text = header(run, sample)
    assert "/** A 2D point. */\ntypedef struct Point {\n    double x;\n    double y;\n} Point;\n" in text
    assert "typedef enum ErrorCode {\n    ErrorCode_NotFound = 1,\n    ErrorCode_Invalid = 2,\n} ErrorCode;\n" in text
    assert "typedef struct Context Context;\n" in text
    assert "#define MAX_POINTS ((uint32_t)64U)\n" in text
    assert '#define GREETING "hi"\n' in text
    assert "/** Adds two numbers. */\nint32_t add(int32_t a, int32_t b);\n" in text
    assert "Context* context_new(void);\n" in text
    assert "void on_event(void (*cb)(int32_t code));\n" in text


def test_result_uses_status_and_out_parameter(run, sample):
    text = header(run, sample)
    assert (
        "/**\n"
        " * Returns 0 on success and writes the result to `out_result`;\n"
        " * any other value is an error code and `out_result` is left untouched.\n"
        " */\n"
        "int32_t parse_number(char const* text, int32_t* out_result);\n"
    ) in text


def test_unit_result(run):
    text = header(run, """
        #[no_mangle]
        pub extern "C" fn reset() -> Result<(), i32> {
            Ok(())
        }
    """)
    assert "/** Returns 0 on success; any other value is an error code. */\nint32_t reset(void);\n" in text


def test_out_parameter_does_not_shadow_a_parameter(run):
    text = header(run, """
        #[no_mangle]
        pub extern "C" fn store(out_result: i32) -> Result<i32, i32> {
            unimplemented!()
        }
    """)
    assert "int32_t store(int32_t out_result, int32_t* out_result_);\n" in text
    assert "writes the result to `out_result_`;" in text


def test_self_referencing_struct_is_forward_declared(run):
    text = header(run, """
        #[repr(C)]
        pub struct Node {
            pub value: i32,
            pub next: *mut Node,
        }
    """)
    assert "typedef struct Node Node;\n\nstruct Node {\n    int32_t value;\n    Node* next;\n};\n" in text


def test_cycle_through_an_alias_declares_the_alias_up_front(run):
    text = header(run, """
        #[repr(C)]
        pub struct Node {
            pub value: i32,
            pub next: *mut NodeRef,
        }

        pub type NodeRef = Node;
    """)
    assert (
        "typedef struct Node Node;\n"
        "typedef Node NodeRef;\n"
        "\n"
        "struct Node {\n"
        "    int32_t value;\n"
        "    NodeRef* next;\n"
        "};\n"
    ) in text
    assert text.count("NodeRef;") == 1


def test_mutual_references(run):
    text = header(run, """
        #[repr(C)]
        pub struct A {
            pub b: *const B,
        }

        #[repr(C)]
        pub struct B {
            pub a: *const A,
        }
    """)
    assert text.index("typedef struct B B;") < text.index("typedef struct A {")
    assert text.index("typedef struct A {") < text.index("struct B {\n    A const* a;\n};")


def test_dependencies_are_defined_before_use(run):
    text = header(run, """
        #[repr(C)]
        pub struct Outer {
            pub inner: Inner,
        }

        #[repr(C)]
        pub struct Inner {
            pub value: i32,
        }
    """)
    assert text.index("} Inner;") < text.index("typedef struct Outer {")


def test_tagged_union(run):
    text = header(run, """
        #[repr(C)]
        pub enum Shape {
            Circle(f64),
            BigSquare(f64),
            Empty,
        }
    """)
    assert "typedef enum Shape_Tag {\n    Shape_Tag_Circle = 0,\n    Shape_Tag_BigSquare = 1,\n" in text
    assert "typedef union Shape_Body {\n    double circle;\n    double big_square;\n} Shape_Body;\n" in text
    assert "typedef struct Shape {\n    Shape_Tag tag;\n    Shape_Body body;\n} Shape;\n" in text


def test_primitive_repr_enum_gets_a_storage_typedef(run):
    text = header(run, """
        #[repr(u8)]
        pub enum Level {
            Low = 1,
            High,
        }
    """)
    assert "enum Level {\n    Level_Low = 1,\n    Level_High = 2,\n};\ntypedef uint8_t Level;\n" in text


def test_packed_struct_and_arrays(run):
    text = header(run, """
        #[repr(C, packed)]
        pub struct Key {
            pub kind: u8,
            pub bytes: [u8; 16],
        }
    """)
    assert "#pragma pack(push, 1)\ntypedef struct Key {\n    uint8_t kind;\n" in text
    assert "    /** Fixed array of 16 elements. */\n    uint8_t bytes[16];\n} Key;\n#pragma pack(pop)\n" in text


def test_optional_value_struct(run):
    text = header(run, """
        #[no_mangle]
        pub extern "C" fn find(id: Option<u32>) -> i32 { 0 }
    """)
    assert "typedef struct {\n    bool has_value;\n    uint32_t value;\n} Option_u32;\n" in text
    assert text.index("} Option_u32;") < text.index("int32_t find(Option_u32 id);")


def test_callback_alias(run):
    text = header(run, """
        pub type EventHandler = extern "C" fn(value: i32) -> bool;

        #[no_mangle]
        pub extern "C" fn set_handler(handler: EventHandler) {}
    """)
    assert "typedef bool (*EventHandler)(int32_t value);\n" in text
    assert "void set_handler(EventHandler handler);\n" in text


def test_calling_conventions(run):
    text = header(run, """
        #[no_mangle]
        pub extern "stdcall" fn tick() {}
    """)
    assert "void __stdcall tick(void);\n" in text


def test_symbol_prefix(run, sample):
    text = header(run, sample, c={"symbol_prefix": "geo_"})
    assert "#ifndef GEO_NATIVE_H" in text
    assert "typedef struct geo_Point {" in text
    assert "#define geo_MAX_POINTS ((uint32_t)64U)" in text
    # link names never change
    assert "int32_t add(int32_t a, int32_t b);" in text


def test_strip_doc_comments_keeps_generated_notes(run, sample):
    text = header(run, sample, c={"strip_doc_comments": True})
    assert "Adds two numbers." not in text
    assert "A 2D point." not in text
    assert "Returns 0 on success" in text
