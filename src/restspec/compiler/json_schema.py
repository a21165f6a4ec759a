"""
Type descriptor -> JSON Schema compiler.

``to_json_schema(descriptor, path, visited)`` returns a schema fragment whose
``$ref`` values are JSON pointers relative to the root of the current
compilation call. ``path`` is where the fragment will live under that root;
``visited`` lists the object descriptors currently being expanded together
with the path at which each was entered.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from restspec.domain.descriptors import (
    AnyDescriptor,
    ArrayDescriptor,
    EnumDescriptor,
    IntersectionDescriptor,
    LiteralDescriptor,
    NullDescriptor,
    ObjectDescriptor,
    PrimitiveDescriptor,
    TupleDescriptor,
    TypeDescriptor,
    UnionDescriptor,
    is_boolean_literal,
    is_number_literal,
    is_string_literal,
)
from restspec.errors import TypeNotConvertibleError

JSONSchema = dict[str, Any]
Path = tuple[str, ...]


@dataclass(frozen=True)
class VisitedType:
    descriptor: ObjectDescriptor
    path: Path


Visited = tuple[VisitedType, ...]


def escape_pointer_segment(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def json_pointer(path: Sequence[str]) -> str:
    """("properties", "a/b") -> "#/properties/a~1b"; () -> "#"."""
    return "#" + "".join("/" + escape_pointer_segment(str(p)) for p in path)


# ----------------------------
# Converters
# ----------------------------


def _convert_primitive(t: PrimitiveDescriptor, path: Path, visited: Visited) -> JSONSchema:
    return {"type": t.kind}


def _convert_literal(t: LiteralDescriptor, path: Path, visited: Visited) -> JSONSchema:
    return {"type": t.kind, "enum": [t.value]}


def _convert_array(t: ArrayDescriptor, path: Path, visited: Visited) -> JSONSchema:
    return {
        "type": "array",
        "items": to_json_schema(t.element, (*path, "items"), visited),
    }


def _convert_tuple(t: TupleDescriptor, path: Path, visited: Visited) -> JSONSchema:
    return {
        "type": "array",
        "items": [
            to_json_schema(sub, (*path, "items", str(index)), visited)
            for index, sub in enumerate(t.elements)
        ],
    }


def _convert_object(t: ObjectDescriptor, path: Path, visited: Visited) -> JSONSchema:
    # Already being expanded higher up: we are in a recursion, point back at it.
    for entry in visited:
        if entry.descriptor is t:
            return {"$ref": json_pointer(entry.path)}

    inner_visited = (*visited, VisitedType(descriptor=t, path=path))

    required: list[str] = []
    properties: dict[str, JSONSchema] = {}
    for prop in t.properties:
        annotations = prop.annotations
        if "ignore" in annotations:
            continue

        if not prop.optional:
            required.append(prop.name)

        if "type" in annotations:
            schema = dict(annotations)
        else:
            converted = to_json_schema(prop.type, (*path, "properties", prop.name), inner_visited)
            schema = {**annotations, **converted}
        properties[prop.name] = schema

    additional: Any = False
    if t.index_signature is not None:
        additional = to_json_schema(
            t.index_signature, (*path, "additionalProperties"), inner_visited
        )

    out: JSONSchema = {"type": "object", "additionalProperties": additional}
    if required:
        out["required"] = required
    if properties:
        out["properties"] = properties
    return out


def _sorted_unique(values: list[Any]) -> list[Any]:
    return sorted(set(values))


def _convert_union(t: UnionDescriptor, path: Path, visited: Visited) -> JSONSchema:
    members = t.members

    if members and all(is_string_literal(m) for m in members):
        return {"type": "string", "enum": _sorted_unique([m.value for m in members])}

    if members and all(is_number_literal(m) for m in members):
        return {"type": "number", "enum": _sorted_unique([m.value for m in members])}

    # Boolean literals are folded into a single "boolean" branch.
    booleans = [m for m in members if is_boolean_literal(m)]
    others = [m for m in members if not is_boolean_literal(m)]

    any_of = [
        to_json_schema(sub, (*path, "anyOf", str(index)), visited)
        for index, sub in enumerate(others)
    ]

    if booleans:
        branch: JSONSchema = {"type": "boolean"}
        distinct = {bool(b.value) for b in booleans}
        if len(distinct) == 1:
            branch["enum"] = [distinct.pop()]
        any_of.append(branch)

    return {"anyOf": any_of}


def _convert_intersection(t: IntersectionDescriptor, path: Path, visited: Visited) -> JSONSchema:
    acc: JSONSchema = {"type": "object", "additionalProperties": False}
    for sub in t.members:
        schema = to_json_schema(sub, path, visited)

        required = list(acc.get("required", []))
        for name in schema.get("required", []):
            if name not in required:
                required.append(name)
        properties = {**acc.get("properties", {}), **schema.get("properties", {})}

        additional = schema.get("additionalProperties")
        if additional is not None and additional is not False:
            acc["additionalProperties"] = additional
        if required:
            acc["required"] = required
        if properties:
            acc["properties"] = properties
    return acc


def _convert_enum(t: EnumDescriptor, path: Path, visited: Visited) -> JSONSchema:
    if not t.values:
        return {}
    first = t.values[0]
    numeric = isinstance(first, (int, float)) and not isinstance(first, bool)
    return {"type": "number" if numeric else "string", "enum": list(t.values)}


def _convert_null(t: NullDescriptor, path: Path, visited: Visited) -> JSONSchema:
    return {"type": "null"}


def _convert_any(t: AnyDescriptor, path: Path, visited: Visited) -> JSONSchema:
    return {}


# First match wins. Literal is listed before primitive.
_CONVERTERS: list[tuple[type, Callable[[Any, Path, Visited], JSONSchema]]] = [
    (LiteralDescriptor, _convert_literal),
    (PrimitiveDescriptor, _convert_primitive),
    (ArrayDescriptor, _convert_array),
    (TupleDescriptor, _convert_tuple),
    (ObjectDescriptor, _convert_object),
    (EnumDescriptor, _convert_enum),
    (UnionDescriptor, _convert_union),
    (IntersectionDescriptor, _convert_intersection),
    (NullDescriptor, _convert_null),
    (AnyDescriptor, _convert_any),
]


def to_json_schema(
    descriptor: TypeDescriptor,
    path: Optional[Sequence[str]] = None,
    visited: Optional[Sequence[VisitedType]] = None,
) -> JSONSchema:
    """
    Convert a type descriptor to a JSON Schema fragment.

    Raises TypeNotConvertibleError when no rule applies.
    """
    path_t: Path = tuple(path or ())
    visited_t: Visited = tuple(visited or ())

    for kind, converter in _CONVERTERS:
        if isinstance(descriptor, kind):
            return converter(descriptor, path_t, visited_t)

    raise TypeNotConvertibleError(descriptor, descriptor.source)
