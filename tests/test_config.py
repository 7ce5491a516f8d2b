import pytest

from ffigen import Backend, BackendOptions, ConfigError, GenerationConfig, config_from_mapping, load_config


def test_defaults():
    config = config_from_mapping({})
    assert config == GenerationConfig()
    assert config.backends == (Backend.C, Backend.JVM, Backend.DOTNET)
    assert config.options_for(Backend.JVM) == BackendOptions()


def test_backends_are_case_insensitive_and_deduplicated():
    config = config_from_mapping({"backends": ["c", "JVM", "c"]})
    assert config.backends == (Backend.C, Backend.JVM)


def test_unknown_backend():
    with pytest.raises(ConfigError, match="unknown backend 'swift'"):
        config_from_mapping({"backends": ["swift"]})


def test_backend_options():
    config = config_from_mapping({
        "lib_name": "geometry",
        "jvm": {"namespace": "com.example.geometry", "strip_doc_comments": True},
        "c": {"symbol_prefix": "geo_"},
    })
    assert config.lib_name == "geometry"
    assert config.options_for(Backend.JVM) == BackendOptions(True, "com.example.geometry", "")
    assert config.options_for(Backend.C).symbol_prefix == "geo_"
    assert config.options_for(Backend.DOTNET) == BackendOptions()


@pytest.mark.parametrize("data, message", [
    ({"backends": "c"}, "backends must be a list"),
    ({"c": "geo_"}, r"\[c\] must be a table"),
    ({"c": {"strip_doc_comments": "yes"}}, "strip_doc_comments must be a boolean"),
    ({"lib_name": 3}, "lib_name must be a string"),
])
def test_invalid_values(data, message):
    with pytest.raises(ConfigError, match=message):
        config_from_mapping(data)


def test_load_config(tmp_path):
    path = tmp_path / "ffigen.toml"
    path.write_text(
        '[ffigen]\n'
        'lib_name = "shapes"\n'
        'backends = ["dotnet"]\n'
        'parallel = true\n'
        '\n'
        '[ffigen.dotnet]\n'
        'namespace = "Shapes.Native"\n',
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.lib_name == "shapes"
    assert config.backends == (Backend.DOTNET,)
    assert config.parallel
    assert config.options_for(Backend.DOTNET).namespace == "Shapes.Native"


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "absent.toml") == GenerationConfig()


def test_malformed_toml(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("lib_name = ", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)
