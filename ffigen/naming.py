"""Identifier helpers shared by the type mappers and generators"""

import re

_WORD = re.compile(r"[A-Za-z0-9]+")


def sanitise_id(name: str) -> str:
    """Replace everything that cannot appear in a C identifier with ``_``"""
    ident = re.sub(r"\W", "_", name, flags=re.ASCII)
    if not ident or ident[0].isdigit():
        ident = f"_{ident}"
    return ident


def pascal_case(name: str) -> str:
    """``my_lib`` -> ``MyLib``; already capitalised words are kept"""
    return "".join(w[0].upper() + w[1:] for w in _WORD.findall(name)) or "_"


def camel_case(name: str) -> str:
    """``new_point`` -> ``newPoint``"""
    pascal = pascal_case(name)
    return pascal[0].lower() + pascal[1:]


def upper_snake(name: str) -> str:
    """``MyLib`` / ``my-lib`` -> ``MY_LIB``"""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name)
    return sanitise_id(spaced).upper()


def jni_mangle(name: str) -> str:
    """Escape a binary class or method name for a JNI symbol"""
    out = []
    for ch in name:
        if ch in "/.":
            out.append("_")
        elif ch == "_":
            out.append("_1")
        elif ch == ";":
            out.append("_2")
        elif ch == "[":
            out.append("_3")
        elif ch.isascii() and ch.isalnum():
            out.append(ch)
        else:
            out.append(f"_0{ord(ch):04x}")
    return "".join(out)


def jni_symbol(class_path: str, method: str) -> str:
    """Symbol the JVM looks up for ``static native`` method ``method`` of ``class_path``"""
    return f"Java_{jni_mangle(class_path)}_{jni_mangle(method)}"


def quote_c(text: str) -> str:
    """C string literal; non-printable bytes become octal escapes"""
    out = []
    for byte in text.encode("utf-8"):
        ch = chr(byte)
        if ch in '"\\':
            out.append("\\" + ch)
        elif 0x20 <= byte < 0x7f:
            out.append(ch)
        else:
            out.append(f"\\{byte:03o}")
    return '"' + "".join(out) + '"'


def quote_unicode(text: str) -> str:
    """Java / C# string literal using ``\\uXXXX`` escapes"""
    out = []
    for ch in text:
        if ch in '"\\':
            out.append("\\" + ch)
        elif 0x20 <= ord(ch) < 0x7f:
            out.append(ch)
        elif ord(ch) > 0xffff:
            encoded = ch.encode("utf-16-be")
            out.append(f"\\u{encoded[:2].hex()}\\u{encoded[2:].hex()}")
        else:
            out.append(f"\\u{ord(ch):04x}")
    return '"' + "".join(out) + '"'


def fresh_name(base: str, taken) -> str:
    """``base`` with ``_`` appended until it is not one of ``taken``"""
    name = base
    while name in taken:
        name += "_"
    return name
