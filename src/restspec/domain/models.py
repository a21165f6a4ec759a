from __future__ import annotations

from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

HTTP_METHODS: tuple[str, ...] = ("get", "post", "put", "patch", "delete", "options", "head")

JSONSchema = dict[str, Any]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ErrorMetadata(_Frozen):
    code: str
    description: Optional[str] = None
    payload_schema: JSONSchema = Field(default_factory=dict, alias="payloadType")


class ActionMetadata(_Frozen):
    """
    Compiled contract of one controller action.

    Immutable once generated. Instance identity keys the validator cache, so
    two equal instances are still two cache entries.
    """

    name: str
    owner_name: Optional[str] = Field(default=None, alias="controllerName")
    operation_id: Optional[str] = Field(default=None, alias="operationId")
    description: Optional[str] = None
    return_description: Optional[str] = Field(default=None, alias="returnDescription")
    default_status_code: int = Field(default=200, alias="defaultStatusCode")
    validate_input: bool = Field(default=True, alias="validateInput")
    validate_output: bool = Field(default=True, alias="validateOutput")

    params_schema: JSONSchema = Field(default_factory=dict, alias="paramsType")
    query_schema: JSONSchema = Field(default_factory=dict, alias="queryType")
    body_schema: JSONSchema = Field(default_factory=dict, alias="bodyType")
    return_schema: JSONSchema = Field(default_factory=dict, alias="returnType")
    errors: tuple[ErrorMetadata, ...] = ()


class RouteEntry(_Frozen):
    pattern: str            # encoded matcher: "/<source>/<flags>"
    path: str               # literal path template, e.g. /users/:id
    action: ActionMetadata = Field(alias="actionMetadata")


class MetadataSnapshot(_Frozen):
    """method (lowercase) -> routes, in registration order. Replaced wholesale, never edited."""

    routes: dict[str, tuple[RouteEntry, ...]] = Field(default_factory=dict)

    def for_method(self, method: str) -> tuple[RouteEntry, ...]:
        return self.routes.get(method.lower(), ())

    def iter_routes(self) -> Iterator[tuple[str, RouteEntry]]:
        for method, entries in self.routes.items():
            for entry in entries:
                yield method, entry

    def to_document(self) -> dict[str, list[dict[str, Any]]]:
        """Persisted form: {method: [{pattern, path, actionMetadata}]}."""
        return {
            method: [e.model_dump(by_alias=True, mode="json") for e in entries]
            for method, entries in self.routes.items()
        }

    @classmethod
    def from_document(cls, document: dict[str, list[dict[str, Any]]]) -> "MetadataSnapshot":
        return cls(
            routes={
                method.lower(): tuple(RouteEntry.model_validate(e) for e in entries)
                for method, entries in document.items()
            }
        )
