import pytest

from ffigen.naming import (
    camel_case, jni_mangle, jni_symbol, pascal_case, quote_c, quote_unicode, sanitise_id, upper_snake,
)


@pytest.mark.parametrize("name, expected", [
    ("my_lib", "MyLib"),
    ("on_event_cb", "OnEventCb"),
    ("MyLib", "MyLib"),
    ("", "_"),
])
def test_pascal_case(name, expected):
    assert pascal_case(name) == expected


def test_camel_case():
    assert camel_case("new_point") == "newPoint"
    assert camel_case("Add") == "add"


def test_upper_snake():
    assert upper_snake("MyLib") == "MY_LIB"
    assert upper_snake("my-lib") == "MY_LIB"


def test_sanitise_id():
    assert sanitise_id("*const u8") == "_const_u8"
    assert sanitise_id("3d") == "_3d"


def test_jni_symbols():
    assert jni_mangle("com/example/Native") == "com_example_Native"
    assert jni_mangle("native_add") == "native_1add"
    assert jni_mangle("Outer$Inner") == "Outer_00024Inner"
    assert jni_symbol("com/example/MyLib", "nativeAdd") == "Java_com_example_MyLib_nativeAdd"


def test_quote_c_escapes_bytes():
    assert quote_c('say "hi"') == '"say \\"hi\\""'
    assert quote_c("é\n") == '"\\303\\251\\012"'


def test_quote_unicode_uses_utf16_escapes():
    assert quote_unicode("é") == '"\\u00e9"'
    assert quote_unicode("\U0001F600") == '"\\ud83d\\ude00"'
    assert quote_unicode("a\\b") == '"a\\\\b"'
