from __future__ import annotations

import copy
import math
import re
from typing import Any, Optional

from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7

_ROOT_URI = "urn:restspec:schema"
_INTEGER_STRING = re.compile(r"^-?\d+$")


def _is_type(value: Any, name: str) -> bool:
    if name == "null":
        return value is None
    if name == "boolean":
        return isinstance(value, bool)
    if name == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if name == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if name == "string":
        return isinstance(value, str)
    if name == "object":
        return isinstance(value, dict)
    if name == "array":
        return isinstance(value, list)
    return True


def _parse_number(text: str) -> Optional[float | int]:
    text = text.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _coerce_scalar(value: Any, target: str) -> tuple[bool, Any]:
    """(converted?, new value) for one target type."""
    if target in ("number", "integer"):
        if isinstance(value, bool):
            return True, int(value)
        if value is None:
            return True, 0
        if isinstance(value, str):
            if target == "integer":
                if _INTEGER_STRING.match(value.strip()):
                    return True, int(value)
                return False, value
            number = _parse_number(value)
            if number is not None:
                return True, number
        return False, value

    if target == "string":
        if value is None:
            return True, ""
        if isinstance(value, bool):
            return True, "true" if value else "false"
        if isinstance(value, (int, float)):
            if isinstance(value, float) and value.is_integer():
                return True, str(int(value))
            return True, str(value)
        return False, value

    if target == "boolean":
        if value is None:
            return True, False
        if value in ("true", "false"):
            return True, value == "true"
        if not isinstance(value, bool) and isinstance(value, (int, float)) and value in (0, 1):
            return True, bool(value)
        return False, value

    if target == "null":
        if value == "" or (value is not None and not isinstance(value, (dict, list)) and value == 0):
            return True, None
        return False, value

    return False, value


class Coercer:
    """
    Applies primitive type coercion to a deep copy of a value before it is
    validated against ``schema``. Unconvertible values are left untouched for
    the ``type`` keyword to report.
    """

    def __init__(self, schema: dict[str, Any]):
        self.schema = schema
        resource: Resource = DRAFT7.create_resource(schema)
        self._resolver = Registry().with_resource(_ROOT_URI, resource).resolver(base_uri=_ROOT_URI)

    def coerce(self, value: Any) -> Any:
        return self._walk(copy.deepcopy(value), self.schema, self._resolver)

    def _walk(self, value: Any, schema: Any, resolver) -> Any:
        if not isinstance(schema, dict):
            return value

        ref = schema.get("$ref")
        if isinstance(ref, str) and ref.startswith("#"):
            try:
                resolved = resolver.lookup(ref)
            except Unresolvable:
                return value
            return self._walk(value, resolved.contents, resolved.resolver)

        value = self._coerce_type(value, schema.get("type"))

        if isinstance(value, dict):
            props = schema.get("properties") or {}
            extra = schema.get("additionalProperties")
            for key in list(value):
                if key in props:
                    value[key] = self._walk(value[key], props[key], resolver)
                elif isinstance(extra, dict):
                    value[key] = self._walk(value[key], extra, resolver)
        elif isinstance(value, list):
            items = schema.get("items")
            if isinstance(items, list):
                for i, sub in enumerate(items[: len(value)]):
                    value[i] = self._walk(value[i], sub, resolver)
            elif isinstance(items, dict):
                value[:] = [self._walk(v, items, resolver) for v in value]

        return value

    def _coerce_type(self, value: Any, declared: Any) -> Any:
        if declared is None:
            return value
        types = declared if isinstance(declared, list) else [declared]
        if any(_is_type(value, t) for t in types):
            return value
        for target in types:
            converted, new_value = _coerce_scalar(value, target)
            if converted:
                return new_value
        return value
