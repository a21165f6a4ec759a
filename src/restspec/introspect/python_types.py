"""
Python type hints -> type descriptors.

Class-based object types (TypedDict, dataclasses, pydantic models) are
memoized per introspector, so a recursive class always yields the same
ObjectDescriptor and the compiler can detect the cycle by identity.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import logging
import types
import typing
from typing import Any, Optional

from pydantic import BaseModel

from restspec.compiler.annotations import collect_mappings, merge_annotations, parse_annotation_text
from restspec.domain.descriptors import (
    AnyDescriptor,
    ArrayDescriptor,
    EnumDescriptor,
    LiteralDescriptor,
    NullDescriptor,
    ObjectDescriptor,
    OpaqueDescriptor,
    PrimitiveDescriptor,
    PropertyDescriptor,
    SourceLocation,
    TupleDescriptor,
    TypeDescriptor,
    UnionDescriptor,
)
from restspec.introspect.attribute_docs import attribute_docstrings, source_location

logger = logging.getLogger(__name__)

_ARRAY_ORIGINS = {
    list,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
    collections.abc.Iterable,
    collections.abc.Collection,
}
_MAPPING_ORIGINS = {dict, collections.abc.Mapping, collections.abc.MutableMapping}


def _is_union(origin: Any) -> bool:
    return origin is typing.Union or origin is types.UnionType


def _strip_required(hint: Any) -> Any:
    if typing.get_origin(hint) in (typing.Required, typing.NotRequired):
        return typing.get_args(hint)[0]
    return hint


def _split_annotated(hint: Any) -> tuple[Any, dict[str, Any]]:
    """Annotated[T, {...}, ...] -> (T, merged mapping metadata)."""
    annotations: dict[str, Any] = {}
    while typing.get_origin(hint) is typing.Annotated:
        annotations = merge_annotations(collect_mappings(hint.__metadata__), annotations)
        hint = hint.__origin__
    return hint, annotations


def _split_optional(hint: Any) -> tuple[Any, bool]:
    """X | None -> (X, True). Other hints are returned unchanged."""
    if not _is_union(typing.get_origin(hint)):
        return hint, False
    args = typing.get_args(hint)
    rest = [a for a in args if a is not type(None)]
    if len(rest) == len(args):
        return hint, False
    if len(rest) == 1:
        return rest[0], True
    return typing.Union[tuple(rest)], True


def _literal_kind(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


def _type_hints(obj: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except (NameError, TypeError) as e:
        # unresolvable forward reference: keep raw annotations
        logger.debug("Falling back to raw annotations for %r: %s", obj, e)
        return dict(getattr(obj, "__annotations__", {}))


class PythonTypeIntrospector:
    """Builds descriptors from Python annotations."""

    def __init__(self) -> None:
        self._objects: dict[Any, ObjectDescriptor] = {}

    def describe(self, hint: Any, source: Optional[SourceLocation] = None) -> TypeDescriptor:
        hint, annotations = _split_annotated(_strip_required(hint))
        if annotations:
            # use-site annotations only apply to properties; top-level ones are ignored
            logger.debug("Ignoring top-level annotations %r", annotations)
        return self._describe(hint, source)

    # ----------------------------
    # dispatch
    # ----------------------------

    def _describe(self, hint: Any, source: Optional[SourceLocation]) -> TypeDescriptor:
        if hint is None or hint is type(None):
            return NullDescriptor(source=source)
        if hint is typing.Any or hint is object:
            return AnyDescriptor(source=source)
        if hint is bool:
            return PrimitiveDescriptor("boolean", source=source)
        if hint is int or hint is float:
            return PrimitiveDescriptor("number", source=source)
        if hint is str:
            return PrimitiveDescriptor("string", source=source)

        origin = typing.get_origin(hint)
        args = typing.get_args(hint)

        if origin is typing.Annotated:
            return self.describe(hint, source)

        if origin is typing.Literal:
            return self._describe_literal(args, hint, source)

        if _is_union(origin):
            return UnionDescriptor(
                members=[self.describe(a, source) for a in args], source=source
            )

        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return ArrayDescriptor(self.describe(args[0], source), source=source)
            return TupleDescriptor(elements=[self.describe(a, source) for a in args], source=source)

        if isinstance(hint, type) and (hint in _ARRAY_ORIGINS or hint is tuple):
            return ArrayDescriptor(AnyDescriptor(source=source), source=source)
        if origin in _ARRAY_ORIGINS:
            element = self.describe(args[0], source) if args else AnyDescriptor(source=source)
            return ArrayDescriptor(element, source=source)

        if isinstance(hint, type) and hint in _MAPPING_ORIGINS:
            return ObjectDescriptor(index_signature=AnyDescriptor(source=source), source=source)
        if origin in _MAPPING_ORIGINS:
            value = self.describe(args[1], source) if len(args) == 2 else AnyDescriptor(source=source)
            return ObjectDescriptor(index_signature=value, source=source)

        if isinstance(hint, type) and origin is None:
            if issubclass(hint, enum.Enum):
                return EnumDescriptor(
                    values=[m.value for m in hint], name=hint.__name__, source=source_location(hint)
                )
            if typing.is_typeddict(hint) or dataclasses.is_dataclass(hint) or issubclass(hint, BaseModel):
                return self._describe_class(hint)

        return OpaqueDescriptor(name=getattr(hint, "__name__", repr(hint)), source=source)

    def _describe_literal(
        self, values: tuple[Any, ...], hint: Any, source: Optional[SourceLocation]
    ) -> TypeDescriptor:
        literals: list[TypeDescriptor] = []
        for value in values:
            kind = _literal_kind(value)
            if kind is None:
                # Literal[None] or enum members
                if value is None:
                    literals.append(NullDescriptor(source=source))
                    continue
                return OpaqueDescriptor(name=repr(hint), source=source)
            literals.append(LiteralDescriptor(kind, value, source=source))  # type: ignore[arg-type]
        if len(literals) == 1:
            return literals[0]
        return UnionDescriptor(members=literals, source=source)

    # ----------------------------
    # object types
    # ----------------------------

    def _describe_class(self, cls: type) -> ObjectDescriptor:
        cached = self._objects.get(cls)
        if cached is not None:
            return cached

        location = source_location(cls)
        descriptor = ObjectDescriptor(name=cls.__name__, source=location)
        # registered before walking fields so self references resolve to it
        self._objects[cls] = descriptor

        docs = attribute_docstrings(cls)
        for name, hint, optional, extra in self._fields(cls):
            hint, use_site = _split_annotated(_strip_required(hint))
            hint, nullable = _split_optional(hint)
            descriptor.properties.append(
                PropertyDescriptor(
                    name=name,
                    type=self._describe(hint, location),
                    optional=optional or nullable,
                    annotations=merge_annotations(parse_annotation_text(docs.get(name)), extra, use_site),
                )
            )
        return descriptor

    def _fields(self, cls: type) -> list[tuple[str, Any, bool, dict[str, Any]]]:
        """(name, hint, optional, annotations) for every declared field."""
        if issubclass(cls, BaseModel):
            out = []
            for name, info in cls.model_fields.items():
                extra: dict[str, Any] = {}
                if isinstance(info.json_schema_extra, dict):
                    extra.update(info.json_schema_extra)
                if info.description:
                    extra["description"] = info.description
                out.append((info.alias or name, info.annotation, not info.is_required(), extra))
            return out

        hints = _type_hints(cls)

        if typing.is_typeddict(cls):
            required = getattr(cls, "__required_keys__", frozenset(hints))
            return [(name, hint, name not in required, {}) for name, hint in hints.items()]

        out = []
        for f in dataclasses.fields(cls):
            has_default = (
                f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
            )
            extra = dict(f.metadata.get("schema", {}))
            out.append((f.name, hints.get(f.name, f.type), has_default, extra))
        return out
