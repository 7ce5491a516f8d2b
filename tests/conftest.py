import textwrap

import pytest

from ffigen import RustParser, build_model, config_from_mapping, extract, generate


@pytest.fixture(scope="session")
def rust():
    return RustParser()


@pytest.fixture
def parse(rust):
    """Parse a dedented Rust snippet into a source module"""
    def _parse(source, module=("ffi",)):
        return rust.parse(textwrap.dedent(source), module)
    return _parse


@pytest.fixture
def model_of(parse):
    """Build the interface model of a Rust snippet"""
    def _model(source):
        return build_model(extract(parse(source)).declarations)
    return _model


@pytest.fixture
def run(parse):
    """Run the whole pipeline over a Rust snippet with a config given as plain data"""
    def _run(source, **config):
        return generate([parse(source)], config_from_mapping(config))
    return _run


SAMPLE = """
    /// A 2D point.
    #[repr(C)]
    pub struct Point {
        pub x: f64,
        pub y: f64,
    }

    #[repr(C)]
    pub enum ErrorCode {
        NotFound = 1,
        Invalid = 2,
    }

    #[repr(C)]
    pub struct Context;

    pub const MAX_POINTS: u32 = 64;
    pub const GREETING: &str = "hi";

    /// Adds two numbers.
    #[no_mangle]
    pub extern "C" fn add(a: i32, b: i32) -> i32 {
        a + b
    }

    #[no_mangle]
    pub extern "C" fn parse_number(text: *const c_char) -> Result<i32, ErrorCode> {
        unimplemented!()
    }

    #[no_mangle]
    pub extern "C" fn context_new() -> *mut Context {
        unimplemented!()
    }

    #[no_mangle]
    pub extern "C" fn on_event(cb: extern "C" fn(code: i32)) {}
"""


@pytest.fixture
def sample():
    """Rust surface touching structs, enums, handles, constants, results and callbacks"""
    return SAMPLE
