"""Rust source parsing via tree-sitter"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import tree_sitter_rust as ts_rust
from tree_sitter import Language, Node, Parser, Tree

RUST_LANGUAGE = Language(ts_rust.language())


@dataclass(frozen=True)
class SourceModule:
    """One parsed source file"""
    module: tuple
    source: bytes
    tree: Tree
    path: Optional[Path] = None

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return self.source[node.start_byte:node.end_byte].decode("utf-8")

    def location(self, node: Node) -> str:
        where = str(self.path) if self.path else "::".join(self.module)
        return f"{where}:{node.start_point[0] + 1}"


class RustParser:
    """Parses Rust source into syntax trees"""

    def __init__(self):
        self.parser = Parser(RUST_LANGUAGE)

    def parse(self, content: str, module: tuple = ("ffi",), path: Optional[Path] = None) -> SourceModule:
        source = content.encode("utf-8")
        return SourceModule(module=tuple(module), source=source, tree=self.parser.parse(source), path=path)

    def parse_file(self, path: Path) -> SourceModule:
        return self.parse(path.read_text(encoding="utf-8"), module=(path.stem,), path=path)
