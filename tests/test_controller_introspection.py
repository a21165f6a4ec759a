from pathlib import Path
import textwrap

import pytest

from restspec.domain.descriptors import NullDescriptor, ObjectDescriptor
from restspec.introspect.controllers import PythonControllerIntrospector, route
from restspec.registry.metadata import MetadataRegistry


CONTROLLERS = """
from typing import NotRequired, TypedDict

from restspec.domain.http import Request
from restspec.introspect.controllers import Controller, ErrorResponse, get, post, route


class UserParams(TypedDict):
    id: str


class ListQuery(TypedDict):
    limit: NotRequired[int]


class NewUser(TypedDict):
    name: str
    \"\"\"Display name.

    @minLength 1
    \"\"\"


class User(TypedDict):
    id: str
    name: str


class NotFound(TypedDict):
    message: str


class UserController(Controller):
    @get("/users/:id", raises=[ErrorResponse(404, NotFound, "Unknown user")])
    def get_user(self, request: Request[UserParams, None, None]) -> User:
        \"\"\"Fetch one user.

        Looks the user up by id.
        \"\"\"

    @get("/users")
    @get("/people")
    def list_users(self, request: Request[None, ListQuery, None]) -> list[User]:
        ...

    @post("/users", status_code=201, returns="The created user", operation_id="createUser", validate_output=False)
    def create_user(self, request: Request[None, None, NewUser]) -> User:
        ...

    def helper(self):
        ...


class EmptyController(Controller):
    def nothing(self):
        ...


class AdminController(Controller):
    @route("DELETE", "/users/:id")
    async def delete_user(self, request: Request[UserParams, None, None]) -> None:
        ...

    @get("/admin/ping")
    def ping(self):
        ...
"""


def write(p: Path, s: str) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")
    return p


def test_describe_controllers_from_file(tmp_path: Path):
    source = write(tmp_path / "controllers.py", CONTROLLERS)

    controllers = PythonControllerIntrospector().describe(str(source))

    assert [c.owner_name for c in controllers] == ["UserController", "AdminController"]
    users = controllers[0]
    assert [a.name for a in users.actions] == ["get_user", "list_users", "create_user"]

    get_user = users.actions[0]
    assert [(r.method, r.path) for r in get_user.routes] == [("get", "/users/:id")]
    assert isinstance(get_user.params_type, ObjectDescriptor)
    assert get_user.query_type is None and get_user.body_type is None
    assert get_user.description == "Fetch one user."
    assert get_user.errors[0].code == "404"
    assert get_user.errors[0].description == "Unknown user"
    assert get_user.source is not None and get_user.source.file_path.endswith("controllers.py")

    list_users = users.actions[1]
    assert [r.path for r in list_users.routes] == ["/users", "/people"]

    create = users.actions[2]
    assert create.default_status_code == 201
    assert create.operation_id == "createUser"
    assert create.return_description == "The created user"
    assert create.validate_input is True and create.validate_output is False

    admin = controllers[1]
    delete_user = admin.actions[0]
    assert delete_user.routes[0].method == "delete"
    assert isinstance(delete_user.return_type, NullDescriptor)
    ping = admin.actions[1]
    assert ping.params_type is None and ping.return_type is None


def test_generate_from_python_controllers(tmp_path: Path):
    source = write(tmp_path / "user_controllers.py", CONTROLLERS)
    registry = MetadataRegistry(PythonControllerIntrospector(), sources=[str(source)])

    snapshot = registry.generate()

    assert [e.path for e in snapshot.routes["get"]] == ["/users/:id", "/users", "/people", "/admin/ping"]
    create = registry.find("post", "/users")
    assert create.body_schema == {
        "type": "object",
        "additionalProperties": False,
        "required": ["name"],
        "properties": {"name": {"description": "Display name.", "minLength": 1, "type": "string"}},
    }
    listing = registry.find("get", "/people")
    assert listing.query_schema["properties"] == {"limit": {"type": "number"}}
    assert "required" not in listing.query_schema
    assert listing.return_schema["type"] == "array"

    get_user = registry.find("get", "/users/1")
    assert get_user.errors[0].payload_schema["required"] == ["message"]
    assert registry.find("delete", "/users/1").return_schema == {"type": "null"}
    assert registry.find("get", "/admin/ping").params_schema == {}


def test_unknown_http_method_is_rejected():
    with pytest.raises(ValueError):
        route("fetch", "/x")
