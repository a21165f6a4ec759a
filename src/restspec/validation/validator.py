"""
Per-action compiled validators and the request/response runner.

Validators are compiled lazily on first use of an ActionMetadata instance and
kept for the life of the Validator. Failures are returned as data.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError

from restspec.compiler.json_schema import escape_pointer_segment
from restspec.domain.http import RequestLike, ResponseLike
from restspec.domain.models import ActionMetadata
from restspec.validation.coerce import Coercer

logger = logging.getLogger(__name__)

_LIMIT_KEYWORDS = {
    "minimum": ">=",
    "maximum": "<=",
    "exclusiveMinimum": ">",
    "exclusiveMaximum": "<",
    "minLength": None,
    "maxLength": None,
    "minItems": None,
    "maxItems": None,
    "minProperties": None,
    "maxProperties": None,
}


# ----------------------------
# Results
# ----------------------------


@dataclass(frozen=True)
class ValidationOutcome:
    value: Any
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ValidationErrors:
    source: str  # body | params | query
    errors: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "errors": self.errors}


# ----------------------------
# Error translation
# ----------------------------


def _pointer(parts) -> str:
    return "".join("/" + escape_pointer_segment(str(p)) for p in parts)


def _extra_properties(error: ValidationError) -> list[str]:
    schema = error.schema if isinstance(error.schema, dict) else {}
    declared = schema.get("properties") or {}
    patterns = list((schema.get("patternProperties") or {}).keys())
    return [
        k
        for k in error.instance
        if k not in declared and not any(re.search(p, k) for p in patterns)
    ]


def _params_for(error: ValidationError) -> dict[str, Any]:
    keyword = error.validator
    value = error.validator_value
    if keyword == "type":
        return {"type": ",".join(value) if isinstance(value, list) else value}
    if keyword == "enum":
        return {"allowedValues": value}
    if keyword == "const":
        return {"allowedValue": value}
    if keyword == "pattern":
        return {"pattern": value}
    if keyword == "format":
        return {"format": value}
    if keyword in _LIMIT_KEYWORDS:
        comparison = _LIMIT_KEYWORDS[keyword]
        if comparison is None:
            return {"limit": value}
        return {"comparison": comparison, "limit": value}
    return {}


def translate_errors(errors: list[ValidationError]) -> list[dict[str, Any]]:
    """jsonschema errors -> {instancePath, keyword, message, params, schemaPath}.

    ``required`` and ``additionalProperties`` failures are split into one
    entry per property name.
    """
    out: list[dict[str, Any]] = []
    seen_required: Counter[tuple] = Counter()

    for error in errors:
        instance_path = _pointer(error.absolute_path)
        schema_path = "#" + _pointer(error.absolute_schema_path)
        keyword = str(error.validator)

        if keyword == "required" and isinstance(error.instance, dict):
            key = (tuple(error.absolute_path), tuple(error.absolute_schema_path))
            missing = [p for p in error.validator_value if p not in error.instance]
            index = seen_required[key]
            seen_required[key] += 1
            name = missing[index] if index < len(missing) else None
            out.append(
                {
                    "instancePath": instance_path,
                    "keyword": keyword,
                    "message": f"must have required property '{name}'",
                    "params": {"missingProperty": name},
                    "schemaPath": schema_path,
                }
            )
            continue

        if keyword == "additionalProperties" and isinstance(error.instance, dict):
            for name in _extra_properties(error):
                out.append(
                    {
                        "instancePath": instance_path,
                        "keyword": keyword,
                        "message": "must NOT have additional properties",
                        "params": {"additionalProperty": name},
                        "schemaPath": schema_path,
                    }
                )
            continue

        out.append(
            {
                "instancePath": instance_path,
                "keyword": keyword,
                "message": error.message,
                "params": _params_for(error),
                "schemaPath": schema_path,
            }
        )
    return out


# ----------------------------
# Compiled validator
# ----------------------------


class CompiledValidator:
    def __init__(self, schema: dict[str, Any]):
        self.schema = schema
        self._coercer = Coercer(schema)
        self._validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)

    def validate(self, value: Any) -> ValidationOutcome:
        coerced = self._coercer.coerce(value)
        errors = translate_errors(list(self._validator.iter_errors(coerced)))
        return ValidationOutcome(value=coerced, errors=errors)


def compile_schema(schema: dict[str, Any]) -> CompiledValidator:
    return CompiledValidator(schema)


@dataclass(frozen=True)
class ActionValidators:
    params: CompiledValidator
    query: CompiledValidator
    body: CompiledValidator
    response_body: CompiledValidator


@dataclass(frozen=True)
class RequestCheck:
    errors: list[ValidationErrors]
    # coerced copies of the request slots
    body: Any = None
    params: Any = None
    query: Any = None

    @property
    def valid(self) -> bool:
        return not self.errors


# ----------------------------
# Runner
# ----------------------------


class Validator:
    def __init__(self) -> None:
        # id(action) -> (action, validators); the action is held so its id stays unique
        self._cache: dict[int, tuple[ActionMetadata, ActionValidators]] = {}

    def get_validators(self, action: ActionMetadata) -> ActionValidators:
        entry = self._cache.get(id(action))
        if entry is not None and entry[0] is action:
            return entry[1]

        validators = ActionValidators(
            params=compile_schema(action.params_schema),
            query=compile_schema(action.query_schema),
            body=compile_schema(action.body_schema),
            response_body=compile_schema(action.return_schema),
        )
        self._cache[id(action)] = (action, validators)
        logger.debug("Compiled validators for action %s", action.name)
        return validators

    def check_request(self, action: ActionMetadata, request: RequestLike) -> RequestCheck:
        """Validate body, params and query; the request itself is left untouched."""
        validators = self.get_validators(action)
        checks = (
            ("body", validators.body, request.get_body()),
            ("params", validators.params, request.get_params()),
            ("query", validators.query, request.get_query()),
        )

        failures: list[ValidationErrors] = []
        coerced: dict[str, Any] = {}
        for source, compiled, value in checks:
            outcome = compiled.validate(value)
            coerced[source] = outcome.value
            if not outcome.valid:
                failures.append(ValidationErrors(source=source, errors=outcome.errors))
        return RequestCheck(errors=failures, **coerced)

    def validate_request(
        self, action: ActionMetadata, request: RequestLike
    ) -> Optional[list[ValidationErrors]]:
        return self.check_request(action, request).errors or None

    def validate_response(
        self, action: ActionMetadata, response: ResponseLike
    ) -> Optional[list[ValidationErrors]]:
        outcome = self.get_validators(action).response_body.validate(response.get_body())
        if outcome.valid:
            return None
        return [ValidationErrors(source="body", errors=outcome.errors)]
