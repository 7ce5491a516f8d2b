"""Generation settings: which backends to run and how to render them."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple


class ConfigError(RuntimeError):
    """Raised when a configuration cannot be parsed."""


class Backend(str, Enum):
    C = "c"
    JVM = "jvm"
    DOTNET = "dotnet"

    @property
    def display_name(self) -> str:
        return {"c": "C", "jvm": "JVM", "dotnet": ".NET"}[self.value]


@dataclass(frozen=True)
class BackendOptions:
    """Per-backend rendering options."""

    strip_doc_comments: bool = False
    namespace: str = ""
    symbol_prefix: str = ""


@dataclass(frozen=True)
class GenerationConfig:
    """Settings for one generation run."""

    lib_name: str = "native"
    backends: Tuple[Backend, ...] = (Backend.C, Backend.JVM, Backend.DOTNET)
    options: Mapping[Backend, BackendOptions] = field(default_factory=dict)
    parallel: bool = False

    def options_for(self, backend: Backend) -> BackendOptions:
        return self.options.get(backend) or BackendOptions()


def load_config(path: Path) -> GenerationConfig:
    """Load a ``[ffigen]`` table from a TOML file; a missing file yields defaults."""
    if not path.exists():
        return GenerationConfig()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    return config_from_mapping(data.get("ffigen", data))


def config_from_mapping(data: Mapping[str, Any]) -> GenerationConfig:
    """Build a config from plain data (TOML tables, dictionaries in tests)."""
    if not isinstance(data, Mapping):
        raise ConfigError("configuration must be a table")

    lib_name = _as_str(data.get("lib_name"), "lib_name") or "native"
    backends = _parse_backends(data.get("backends"))

    options: Dict[Backend, BackendOptions] = {}
    for backend in Backend:
        table = data.get(backend.value)
        if table is None:
            continue
        if not isinstance(table, Mapping):
            raise ConfigError(f"[{backend.value}] must be a table")
        options[backend] = BackendOptions(
            strip_doc_comments=_as_bool(table.get("strip_doc_comments"), "strip_doc_comments"),
            namespace=_as_str(table.get("namespace"), "namespace"),
            symbol_prefix=_as_str(table.get("symbol_prefix"), "symbol_prefix"),
        )

    return GenerationConfig(
        lib_name=lib_name,
        backends=backends,
        options=options,
        parallel=_as_bool(data.get("parallel"), "parallel"),
    )


def _parse_backends(value: Any) -> Tuple[Backend, ...]:
    if value is None:
        return tuple(Backend)
    if not isinstance(value, (list, tuple)):
        raise ConfigError("backends must be a list")
    backends = []
    for item in value:
        try:
            backend = Backend(str(item).lower())
        except ValueError:
            choices = ", ".join(b.value for b in Backend)
            raise ConfigError(f"unknown backend {item!r} (expected one of {choices})") from None
        if backend not in backends:
            backends.append(backend)
    return tuple(backends)


def _as_str(value: Any, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    return value


def _as_bool(value: Optional[Any], key: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean")
    return value
