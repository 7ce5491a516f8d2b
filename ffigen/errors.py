"""Diagnostics raised and collected while generating bindings.

Every error is raised inside the narrowest scope it affects (one type, one
declaration) and caught at the stage boundary, where it is appended to the
stage's result. A generation run therefore always finishes with a complete
report instead of stopping at the first failure.
"""

from typing import Optional


class FfigenError(Exception):
    """Base class for every diagnostic produced by the engine"""

    #: Warnings never affect the exit status
    is_warning = False

    def __init__(self, declaration: Optional[str], message: str):
        super().__init__(message)
        self.declaration = declaration
        self.message = message

    def format(self, backend: Optional[str] = None) -> str:
        level = "warning" if self.is_warning else "error"
        scope = f"[{backend}] " if backend else ""
        where = f"{self.declaration}: " if self.declaration else ""
        return f"{level}: {scope}{where}{self.message}"

    def __eq__(self, other):
        return (
            type(self) is type(other)
            and self.declaration == other.declaration
            and self.message == other.message
        )

    def __hash__(self):
        return hash((type(self), self.declaration, self.message))


class UnsupportedConstruct(FfigenError):
    """An exported item uses something that has no stable foreign ABI.

    The item is dropped from the model and reported as a warning.
    """

    is_warning = True

    def __init__(self, declaration: str, reason: str):
        super().__init__(declaration, reason)
        self.reason = reason


class UnresolvedType(FfigenError):
    """A declaration references a type that is not part of the model"""

    def __init__(self, name: str, referencing: str):
        super().__init__(referencing, f"unresolved type `{name}`")
        self.name = name
        self.referencing = referencing


class DuplicateDiscriminant(FfigenError):
    """Two variants of the same enum share a discriminant"""

    def __init__(self, enum: str, value: int, variants: tuple):
        names = " and ".join(f"`{v}`" for v in variants)
        super().__init__(enum, f"variants {names} share discriminant {value}")
        self.value = value
        self.variants = variants


class DiscriminantOutOfRange(FfigenError):
    """A discriminant does not fit the enum's storage type"""

    def __init__(self, enum: str, variant: str, value: int, storage: str):
        super().__init__(
            enum, f"discriminant {value} of `{variant}` does not fit in `{storage}`"
        )
        self.variant = variant
        self.value = value


class UnbreakableCycle(FfigenError):
    """Declarations depend on each other in a way no forward reference can break"""

    def __init__(self, members: tuple):
        chain = " -> ".join(members)
        super().__init__(None, f"unbreakable dependency cycle: {chain}")
        self.members = members


class UnmappableType(FfigenError):
    """A type has no faithful representation in one backend"""

    def __init__(self, type_name: str, backend: str, reason: str = "", declaration: Optional[str] = None):
        detail = f": {reason}" if reason else ""
        super().__init__(declaration, f"type `{type_name}` cannot be mapped to {backend}{detail}")
        self.type_name = type_name
        self.backend = backend
        self.reason = reason

    def for_declaration(self, declaration: str) -> "UnmappableType":
        return UnmappableType(self.type_name, self.backend, self.reason, declaration)
