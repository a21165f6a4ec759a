from restspec.domain.models import ActionMetadata, ErrorMetadata, MetadataSnapshot, RouteEntry
from restspec.events import EventManager, PostGenerateSchemaEvent, PreGenerateSchemaEvent
from restspec.openapi.assembler import OpenAPIAssembler, default_template, rebase_refs
from restspec.registry.metadata import MetadataRegistry
from restspec.registry.paths import compile_path

TREE = {
    "type": "object",
    "additionalProperties": False,
    "required": ["name"],
    "properties": {
        "name": {"type": "string"},
        "children": {"type": "array", "items": {"$ref": "#"}},
    },
}


def route(path: str, action: ActionMetadata) -> RouteEntry:
    return RouteEntry(pattern=compile_path(path).encode(), path=path, action=action)


def registry_with(snapshot: MetadataSnapshot) -> MetadataRegistry:
    registry = MetadataRegistry(introspector=None)
    registry.install(snapshot)
    return registry


def sample_snapshot() -> MetadataSnapshot:
    get_user = ActionMetadata(
        name="get_user",
        description="Fetch one user.",
        params_schema={
            "type": "object",
            "required": ["id"],
            "properties": {"id": {"type": "string"}},
        },
        query_schema={
            "type": "object",
            "required": ["expand"],
            "properties": {"expand": {"type": "boolean"}, "fields": {"type": "string"}},
        },
        return_schema=TREE,
        errors=(
            ErrorMetadata(code="404", description="Unknown user", payload_schema={"type": "null"}),
            ErrorMetadata(code="409", payload_schema={"type": "string"}),
        ),
    )
    create_user = ActionMetadata(
        name="create_user",
        operation_id="createUser",
        default_status_code=201,
        return_description="Created",
        body_schema={"type": "object", "properties": {"name": {"type": "string"}}},
        return_schema={"type": "null"},
    )
    ping = ActionMetadata(name="ping", body_schema={"type": "object", "additionalProperties": False})
    return MetadataSnapshot(
        routes={
            "get": (route("/users/:id", get_user), route("/ping", ping)),
            "post": (route("/users", create_user),),
        }
    )


def test_operation_shape():
    doc = OpenAPIAssembler(registry_with(sample_snapshot())).get_document()

    op = doc["paths"]["/users/:id"]["get"]
    assert op["operationId"] == "get_user"
    assert op["description"] == "Fetch one user."
    assert op["parameters"] == [
        {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
        {"name": "expand", "in": "query", "required": True, "schema": {"type": "boolean"}},
        {"name": "fields", "in": "query", "required": False, "schema": {"type": "string"}},
    ]
    assert "requestBody" not in op
    assert op["responses"]["200"]["description"] == "Success response"
    assert op["responses"]["404"] == {"description": "Unknown user"}
    assert op["responses"]["409"] == {
        "description": "409 Error",
        "content": {"application/json": {"schema": {"type": "string"}}},
    }

    create = doc["paths"]["/users"]["post"]
    assert create["operationId"] == "createUser"
    assert create["requestBody"] == {
        "required": True,
        "content": {
            "application/json": {"schema": {"type": "object", "properties": {"name": {"type": "string"}}}}
        },
    }
    assert create["responses"] == {"201": {"description": "Created"}}

    assert "requestBody" not in doc["paths"]["/ping"]["get"]
    assert doc["info"] == default_template()["info"]


def test_refs_rebased_under_schema_key():
    doc = OpenAPIAssembler(registry_with(sample_snapshot())).get_document()
    schema = doc["paths"]["/users/:id"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]
    assert schema["properties"]["children"]["items"]["$ref"] == (
        "#/paths/~1users~1:id/get/responses/200/content/application~1json/schema"
    )
    # the stored action keeps its relative ref
    assert TREE["properties"]["children"]["items"]["$ref"] == "#"


def test_rebase_nested_ref_keeps_relative_tail():
    item = {"schema": {"properties": {"a": {"$ref": "#/properties/b"}}}}
    assert rebase_refs(item, ("paths", "/x", "get")) == {
        "schema": {"properties": {"a": {"$ref": "#/paths/~1x/get/schema/properties/b"}}}
    }


def test_template_operations_take_precedence():
    template = {
        "openapi": "3.0.3",
        "info": {"title": "Users", "version": "2.0.0"},
        "paths": {
            "/users": {"post": {"operationId": "custom"}},
            "/health": {"get": {"operationId": "health"}},
        },
    }
    doc = OpenAPIAssembler(registry_with(sample_snapshot()), template=template).get_document()

    assert doc["info"]["title"] == "Users"
    assert doc["paths"]["/users"]["post"] == {"operationId": "custom"}
    assert doc["paths"]["/health"]["get"] == {"operationId": "health"}
    assert doc["paths"]["/users/:id"]["get"]["operationId"] == "get_user"


def test_document_memoized_and_hooks_run_once():
    events = EventManager()
    calls = []
    events.on(PreGenerateSchemaEvent, lambda e: calls.append("pre"))
    events.on(PostGenerateSchemaEvent, lambda e: calls.append("post"))
    assembler = OpenAPIAssembler(registry_with(sample_snapshot()), events)

    first = assembler.get_document()
    second = assembler.get_document()

    assert first is second
    assert calls == ["pre", "post"]


def test_hooks_can_substitute_snapshot_and_document():
    events = EventManager()
    only_ping = MetadataSnapshot(routes={"get": (sample_snapshot().routes["get"][1],)})
    events.on(PreGenerateSchemaEvent, lambda e: e.set_metadata(only_ping))

    seen = {}

    def post(e):
        seen["paths"] = sorted(e.get_document()["paths"])
        e.set_document({**e.get_document(), "x-generated": True})

    events.on(PostGenerateSchemaEvent, post)

    doc = OpenAPIAssembler(registry_with(sample_snapshot()), events).get_document()

    assert seen["paths"] == ["/ping"]
    assert doc["x-generated"] is True
    assert list(doc["paths"]) == ["/ping"]
