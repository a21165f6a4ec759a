import gc
import logging

import pytest

from restspec.config import Settings
from restspec.domain.http import Request, Response
from restspec.domain.models import ActionMetadata, MetadataSnapshot, RouteEntry
from restspec.enforcement.contract import ContractEnforcer
from restspec.errors import HttpError
from restspec.events import (
    EventManager,
    InvalidRequestEvent,
    InvalidResponseEvent,
    PostValidateRequestEvent,
    PreValidateRequestEvent,
)
from restspec.openapi.assembler import OpenAPIAssembler
from restspec.registry.metadata import MetadataRegistry
from restspec.registry.paths import compile_path
from restspec.validation.validator import Validator

USER = {
    "type": "object",
    "additionalProperties": False,
    "required": ["id"],
    "properties": {"id": {"type": "number"}},
}


def make_enforcer(events=None, **settings) -> ContractEnforcer:
    create = ActionMetadata(
        name="create_user",
        default_status_code=201,
        body_schema={
            "type": "object",
            "required": ["name"],
            "properties": {"name": {"type": "string"}},
        },
        return_schema=USER,
    )
    raw = ActionMetadata(name="raw", validate_input=False, validate_output=False, body_schema=USER)
    items = ActionMetadata(
        name="list_items",
        query_schema={"type": "object", "properties": {"page": {"type": "number"}}},
    )
    registry = MetadataRegistry(introspector=None)
    registry.install(
        MetadataSnapshot(
            routes={
                "post": (
                    RouteEntry(pattern=compile_path("/users").encode(), path="/users", action=create),
                    RouteEntry(pattern=compile_path("/raw").encode(), path="/raw", action=raw),
                ),
                "get": (
                    RouteEntry(pattern=compile_path("/items").encode(), path="/items", action=items),
                ),
            }
        )
    )
    events = events or EventManager()
    return ContractEnforcer(
        registry,
        Validator(),
        events,
        Settings(**settings),
        assembler=OpenAPIAssembler(registry, events),
    )


def test_valid_request_and_response_flow():
    enforcer = make_enforcer()
    request = Request("POST", "/users", body={"name": "Ada"})
    response = Response()

    action = enforcer.before_action(request)
    assert action.name == "create_user"

    enforcer.after_action(request, response, {"id": 1})
    assert response.status == 201
    assert response.body == {"id": 1}


def test_invalid_request_raises_400_with_events():
    events = EventManager()
    seen = []
    events.on(PreValidateRequestEvent, lambda e: seen.append("pre"))
    events.on(InvalidRequestEvent, lambda e: seen.append("invalid"))
    events.on(PostValidateRequestEvent, lambda e: seen.append("post"))
    enforcer = make_enforcer(events)

    with pytest.raises(HttpError) as exc:
        enforcer.before_action(Request("post", "/users", body={}))

    assert exc.value.code == 400
    data = exc.value.get_data()
    assert data["payload"][0]["source"] == "body"
    assert data["payload"][0]["errors"][0]["params"] == {"missingProperty": "name"}
    assert seen == ["pre", "invalid"]


def test_invalid_event_can_rewrite_errors():
    events = EventManager()

    def redact(e):
        e.errors = ["invalid"]

    events.on(InvalidRequestEvent, redact)
    enforcer = make_enforcer(events)

    with pytest.raises(HttpError) as exc:
        enforcer.before_action(Request("post", "/users", body={}))
    assert exc.value.payload == ["invalid"]


def test_unknown_route_passes_through():
    enforcer = make_enforcer()
    request = Request("get", "/unknown")
    response = Response(status=404)

    assert enforcer.before_action(request) is None
    enforcer.after_action(request, response, {"anything": True})
    assert response.status == 404
    assert response.body == {"anything": True}


def test_validation_flags_on_action_are_honoured():
    enforcer = make_enforcer()
    request = Request("post", "/raw", body={"id": "not a number"})
    response = Response()

    enforcer.before_action(request)
    enforcer.after_action(request, response, {"nope": 1})
    assert response.status == 200


def test_invalid_response_logged_by_default(caplog: pytest.LogCaptureFixture):
    events = EventManager()
    invalid = []
    events.on(InvalidResponseEvent, invalid.append)
    enforcer = make_enforcer(events)
    request = Request("post", "/users", body={"name": "Ada"})
    enforcer.before_action(request)

    with caplog.at_level(logging.WARNING, logger="restspec.enforcement.contract"):
        enforcer.after_action(request, Response(), {"id": "x", "extra": True})

    assert len(invalid) == 1
    assert "create_user" in caplog.text


def test_invalid_response_raised_when_configured():
    enforcer = make_enforcer(return_response_errors=True, response_error_status_code=502)
    request = Request("post", "/users", body={"name": "Ada"})
    enforcer.before_action(request)

    with pytest.raises(HttpError) as exc:
        enforcer.after_action(request, Response(), {"id": "x"})
    assert exc.value.code == 502


def test_request_validation_disabled_by_settings():
    enforcer = make_enforcer(validate_requests=False)
    assert enforcer.before_action(Request("post", "/users", body={})).name == "create_user"


def test_schema_document_served_on_configured_path():
    enforcer = make_enforcer(schema_path="/docs.json")
    doc = enforcer.schema_document("/docs.json")
    assert "/users" in doc["paths"]
    assert enforcer.schema_document("/openapi.json") is None

    disabled = make_enforcer(schema_enable=False)
    assert disabled.schema_document("/openapi.json") is None


def test_controller_reads_coerced_query():
    enforcer = make_enforcer()
    request = Request("get", "/items", query={"page": "2"})
    seen = []

    def list_items(req):
        seen.append(req.get_query())
        return []

    enforcer.before_action(request)
    enforcer.after_action(request, Response(), list_items(request))

    assert seen == [{"page": 2}]
    assert isinstance(seen[0]["page"], int)


def serve(enforcer, request, controller):
    enforcer.before_action(request)
    try:
        returned = controller(request)
    except RuntimeError:
        enforcer.release(request)
        return None
    return enforcer.after_action(request, Response(), returned)


def test_failing_controller_leaves_nothing_pending():
    enforcer = make_enforcer()

    def explode(req):
        raise RuntimeError("boom")

    assert serve(enforcer, Request("get", "/items"), explode) is None
    assert enforcer._pending == {}


def test_abandoned_request_is_not_retained():
    enforcer = make_enforcer()
    request = Request("post", "/users", body={"name": "Ada"})
    enforcer.before_action(request)
    assert len(enforcer._pending) == 1

    del request
    gc.collect()
    assert enforcer._pending == {}


def test_rejected_request_is_released():
    enforcer = make_enforcer()
    request = Request("post", "/users", body={})
    with pytest.raises(HttpError):
        enforcer.before_action(request)
    assert enforcer._pending == {}
