"""
Type descriptors: the abstract type tree handed to the schema compiler.

Descriptors compare and hash by identity (``eq=False``). The same logical type
reached twice, e.g. through a recursive structure, must be the same object;
cycle detection in the compiler relies on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

PrimitiveKind = Literal["number", "string", "boolean"]
LiteralValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class SourceLocation:
    file_path: str
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"


@dataclass(eq=False)
class TypeDescriptor:
    source: Optional[SourceLocation] = field(default=None, kw_only=True)

    def label(self) -> str:
        return type(self).__name__


@dataclass(eq=False)
class PrimitiveDescriptor(TypeDescriptor):
    kind: PrimitiveKind

    def label(self) -> str:
        return self.kind


@dataclass(eq=False)
class LiteralDescriptor(TypeDescriptor):
    kind: PrimitiveKind
    value: LiteralValue

    def label(self) -> str:
        return repr(self.value)


@dataclass(eq=False)
class ArrayDescriptor(TypeDescriptor):
    element: TypeDescriptor


@dataclass(eq=False)
class TupleDescriptor(TypeDescriptor):
    elements: list[TypeDescriptor] = field(default_factory=list)


@dataclass(eq=False)
class PropertyDescriptor:
    name: str
    type: TypeDescriptor
    optional: bool = False
    # JSON-decoded values scoped to this property (pattern, minimum, description, ignore, type...)
    annotations: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class ObjectDescriptor(TypeDescriptor):
    # filled after construction for recursive shapes
    properties: list[PropertyDescriptor] = field(default_factory=list)
    index_signature: Optional[TypeDescriptor] = None
    name: str = ""

    def label(self) -> str:
        return self.name or "object"


@dataclass(eq=False)
class UnionDescriptor(TypeDescriptor):
    members: list[TypeDescriptor] = field(default_factory=list)


@dataclass(eq=False)
class IntersectionDescriptor(TypeDescriptor):
    members: list[TypeDescriptor] = field(default_factory=list)


@dataclass(eq=False)
class EnumDescriptor(TypeDescriptor):
    values: list[Union[str, int, float]] = field(default_factory=list)
    name: str = ""

    def label(self) -> str:
        return self.name or "enum"


@dataclass(eq=False)
class NullDescriptor(TypeDescriptor):
    pass


@dataclass(eq=False)
class AnyDescriptor(TypeDescriptor):
    pass


@dataclass(eq=False)
class OpaqueDescriptor(TypeDescriptor):
    """A type the introspector could not describe. Never convertible."""

    name: str = "unknown"

    def label(self) -> str:
        return self.name


def is_string_literal(descriptor: TypeDescriptor) -> bool:
    return isinstance(descriptor, LiteralDescriptor) and descriptor.kind == "string"


def is_number_literal(descriptor: TypeDescriptor) -> bool:
    return isinstance(descriptor, LiteralDescriptor) and descriptor.kind == "number"


def is_boolean_literal(descriptor: TypeDescriptor) -> bool:
    return isinstance(descriptor, LiteralDescriptor) and descriptor.kind == "boolean"
