#!/usr/bin/env python3
"""
FFI Binding Generator

Reads Rust sources exporting an extern "C" surface and generates:
  1. C header
  2. Java class with JNI native methods
  3. C# class with P/Invoke declarations

Usage:
    python generate_bindings.py src/ffi.rs --output-dir generated/
    python generate_bindings.py src/ffi.rs --config ffigen.toml --backend c --backend jvm
"""

import argparse
import sys
import time
from dataclasses import replace
from pathlib import Path

# Add parent directory to path so the ffigen package can be found
sys.path.insert(0, str(Path(__file__).parent.parent))

from ffigen import Backend, ConfigError, RustParser, generate, load_config
from ffigen.logging import configure_logging
from ffigen.naming import pascal_case


def output_path(output_dir: Path, backend: Backend, lib_name: str, namespace: str) -> Path:
    if backend is Backend.C:
        return output_dir / f"{lib_name}.h"
    if backend is Backend.JVM:
        # Java sources live under their package directory
        package_dir = output_dir / "java" / namespace.replace(".", "/") if namespace else output_dir / "java"
        return package_dir / f"{pascal_case(lib_name)}.java"
    return output_dir / "dotnet" / f"{pascal_case(lib_name)}.cs"


def main() -> int:
    start_time = time.perf_counter()

    parser = argparse.ArgumentParser(description="Generate bindings from Rust extern \"C\" declarations")
    parser.add_argument("sources", nargs="+", help="Rust source files")
    parser.add_argument("--config", "-c", default="ffigen.toml", help="TOML configuration file")
    parser.add_argument("--output-dir", "-o", default="generated", help="Output directory")
    parser.add_argument("--lib-name", default="", help="Native library name (overrides the config)")
    parser.add_argument(
        "--backend", "-b", action="append", choices=[b.value for b in Backend],
        help="Backend to generate (repeatable; defaults to the config)",
    )
    parser.add_argument("--parallel", action="store_true", help="Render backends in parallel")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(verbose=args.verbose)

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    if args.lib_name:
        config = replace(config, lib_name=args.lib_name)
    if args.backend:
        config = replace(config, backends=tuple(dict.fromkeys(Backend(b) for b in args.backend)))
    if args.parallel:
        config = replace(config, parallel=True)

    rust = RustParser()
    modules = [rust.parse_file(Path(source)) for source in args.sources]
    run = generate(modules, config)

    for line in run.diagnostics():
        print(line, file=sys.stderr)

    output_dir = Path(args.output_dir)
    for backend, output in run.outputs.items():
        if not output.text:
            continue
        path = output_path(output_dir, backend, config.lib_name, config.options_for(backend).namespace)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(output.text, encoding="utf-8")
        print(f"Generated: {path}")

    elapsed = time.perf_counter() - start_time
    print(f"Generation completed in {elapsed*1000:.2f} ms")
    return run.exit_status


if __name__ == "__main__":
    sys.exit(main())
