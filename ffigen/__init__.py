"""
FFI Binding Generator Package

Extracts the exported extern "C" surface of Rust sources and generates:
  1. A C header
  2. A Java class with JNI native methods
  3. A C# class with P/Invoke declarations
"""

from .types import (
    Callback, Constant, EnumDecl, Field, FixedArray, FunctionDecl, InterfaceModel, Named,
    OpaqueType, Option, Param, Pointer, Primitive, ResultLike, StructDecl, TypeAlias, Variant,
)
from .errors import (
    DiscriminantOutOfRange, DuplicateDiscriminant, FfigenError, UnbreakableCycle,
    UnmappableType, UnresolvedType, UnsupportedConstruct,
)
from .config import Backend, BackendOptions, ConfigError, GenerationConfig, config_from_mapping, load_config
from .parser import RustParser, SourceModule
from .extractor import DeclarationExtractor, extract
from .model import build_model
from .graph import DependencyGraph, Ordering, order_model
from .type_mapper import MappedType, Marshal, Position, TypeMapper, mapper_for
from .c_header_generator import CHeaderGenerator
from .jni_generator import JNIGenerator
from .csharp_generator import CSharpGenerator
from .pipeline import BackendOutput, GenerationRun, generate

__all__ = [
    'Callback', 'Constant', 'EnumDecl', 'Field', 'FixedArray', 'FunctionDecl', 'InterfaceModel',
    'Named', 'OpaqueType', 'Option', 'Param', 'Pointer', 'Primitive', 'ResultLike', 'StructDecl',
    'TypeAlias', 'Variant',
    'FfigenError', 'UnsupportedConstruct', 'UnresolvedType', 'DuplicateDiscriminant',
    'DiscriminantOutOfRange', 'UnbreakableCycle', 'UnmappableType',
    'Backend', 'BackendOptions', 'ConfigError', 'GenerationConfig', 'config_from_mapping', 'load_config',
    'RustParser', 'SourceModule', 'DeclarationExtractor', 'extract', 'build_model',
    'DependencyGraph', 'Ordering', 'order_model',
    'MappedType', 'Marshal', 'Position', 'TypeMapper', 'mapper_for',
    'CHeaderGenerator', 'JNIGenerator', 'CSharpGenerator',
    'BackendOutput', 'GenerationRun', 'generate',
]
