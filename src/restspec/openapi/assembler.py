"""
OpenAPI document assembly.

Generated path items are merged under the static template's ``paths``
(template operations win), and every ``$ref`` inside a generated ``schema``
is rewritten from compilation-relative to document-absolute.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from restspec.compiler.json_schema import JSONSchema, json_pointer
from restspec.domain.models import ActionMetadata, MetadataSnapshot
from restspec.events import EventManager, PostGenerateSchemaEvent, PreGenerateSchemaEvent
from restspec.registry.metadata import MetadataRegistry

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
DEFAULT_SUCCESS_DESCRIPTION = "Success response"


def default_template(title: str = "REST API", version: str = "1.0.0") -> dict[str, Any]:
    return {"openapi": "3.0.3", "info": {"title": title, "version": version}, "paths": {}}


def _json_content(schema: JSONSchema) -> Optional[dict[str, Any]]:
    if schema.get("type") == "null":
        return None
    return {JSON_MEDIA_TYPE: {"schema": schema}}


def _response(description: str, schema: JSONSchema) -> dict[str, Any]:
    out: dict[str, Any] = {"description": description}
    content = _json_content(schema)
    if content is not None:
        out["content"] = content
    return out


def build_operation(action: ActionMetadata) -> dict[str, Any]:
    params = action.params_schema
    query = action.query_schema
    query_required = set(query.get("required") or ())

    parameters = [
        {"name": name, "in": "path", "required": True, "schema": schema}
        for name, schema in (params.get("properties") or {}).items()
    ]
    parameters += [
        {"name": name, "in": "query", "required": name in query_required, "schema": schema}
        for name, schema in (query.get("properties") or {}).items()
    ]

    operation: dict[str, Any] = {"operationId": action.operation_id or action.name}
    if action.description is not None:
        operation["description"] = action.description
    operation["parameters"] = parameters

    if action.body_schema.get("properties"):
        operation["requestBody"] = {
            "required": True,
            "content": {JSON_MEDIA_TYPE: {"schema": action.body_schema}},
        }

    responses = {
        str(action.default_status_code): _response(
            action.return_description or DEFAULT_SUCCESS_DESCRIPTION, action.return_schema
        )
    }
    for error in action.errors:
        responses[str(error.code)] = _response(
            error.description or f"{error.code} Error", error.payload_schema
        )
    operation["responses"] = responses
    return operation


def build_paths(snapshot: MetadataSnapshot) -> dict[str, dict[str, Any]]:
    paths: dict[str, dict[str, Any]] = {}
    for method, entry in snapshot.iter_routes():
        paths.setdefault(entry.path, {})[method] = build_operation(entry.action)
    return paths


def rebase_refs(node: Any, path: tuple[str, ...] = (), schema_root: Optional[tuple[str, ...]] = None) -> Any:
    """Prefix local refs with the pointer of their outermost enclosing ``schema`` key."""
    if isinstance(node, list):
        return [rebase_refs(v, path + (str(i),), schema_root) for i, v in enumerate(node)]
    if not isinstance(node, dict):
        return node

    out: dict[str, Any] = {}
    for key, value in node.items():
        if key == "$ref" and schema_root is not None and isinstance(value, str) and value.startswith("#"):
            out[key] = json_pointer(schema_root) + value[1:]
            continue
        child = path + (key,)
        root = schema_root
        if root is None and key == "schema":
            root = child
        out[key] = rebase_refs(value, child, root)
    return out


class OpenAPIAssembler:
    def __init__(
        self,
        registry: MetadataRegistry,
        events: Optional[EventManager] = None,
        template: Optional[dict[str, Any]] = None,
    ):
        self.registry = registry
        self.events = events or EventManager()
        self.template = template if template is not None else default_template()
        self._document: Optional[dict[str, Any]] = None

    def get_document(self) -> dict[str, Any]:
        if self._document is not None:
            return self._document

        pre = self.events.emit(PreGenerateSchemaEvent(self.registry.get_snapshot()))
        snapshot = pre.get_metadata()

        generated = build_paths(snapshot)
        paths: dict[str, dict[str, Any]] = {}
        for path, item in generated.items():
            paths[path] = rebase_refs(item, ("paths", path))

        template = copy.deepcopy(self.template)
        for path, item in (template.get("paths") or {}).items():
            paths[path] = {**paths.get(path, {}), **item}

        document = {**template, "paths": paths}

        post = self.events.emit(PostGenerateSchemaEvent(snapshot, document))
        self._document = post.get_document()
        logger.debug("Assembled OpenAPI document with %d path(s)", len(paths))
        return self._document

    def reset(self) -> None:
        self._document = None
