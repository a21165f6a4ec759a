"""
Controller declarations and their reflection into action descriptions.

    class UserController(Controller):
        @get("/users/:id", raises=[ErrorResponse(404, NotFound, "Unknown user")])
        def get_user(self, request: Request[UserParams, None, None]) -> User:
            \"\"\"Fetch one user.\"\"\"

Routes are read at runtime from the decorated methods; type hints go
through PythonTypeIntrospector.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import inspect
import linecache
import logging
import sys
import typing
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional, Protocol, Sequence

from restspec.domain.descriptors import SourceLocation, TypeDescriptor
from restspec.domain.http import Request
from restspec.domain.models import HTTP_METHODS
from restspec.introspect.attribute_docs import source_location
from restspec.introspect.python_types import PythonTypeIntrospector

logger = logging.getLogger(__name__)

_ROUTES_ATTR = "__restspec_routes__"
_OPTIONS_ATTR = "__restspec_options__"


# ----------------------------
# Declarations
# ----------------------------


class Controller:
    """Base class of every controller picked up by the introspector."""


@dataclass(frozen=True)
class RouteDecl:
    method: str
    path: str


@dataclass(frozen=True)
class ErrorResponse:
    code: int | str
    payload_type: Any = None
    description: Optional[str] = None


def route(
    method: str,
    path: str,
    *,
    status_code: Optional[int] = None,
    validate_input: Optional[bool] = None,
    validate_output: Optional[bool] = None,
    operation_id: Optional[str] = None,
    description: Optional[str] = None,
    returns: Optional[str] = None,
    raises: Optional[Sequence[ErrorResponse]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    options = {
        "status_code": status_code,
        "validate_input": validate_input,
        "validate_output": validate_output,
        "operation_id": operation_id,
        "description": description,
        "returns": returns,
        "raises": tuple(raises) if raises is not None else None,
    }

    if method.lower() not in HTTP_METHODS:
        raise ValueError(f"Unsupported HTTP method: {method}")

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        # decorators apply bottom-up; prepend to keep source order
        routes = (RouteDecl(method.lower(), path), *getattr(fn, _ROUTES_ATTR, ()))
        setattr(fn, _ROUTES_ATTR, routes)

        merged = dict(getattr(fn, _OPTIONS_ATTR, {}))
        merged.update({k: v for k, v in options.items() if v is not None})
        setattr(fn, _OPTIONS_ATTR, merged)
        return fn

    return decorator


def get(path: str, **options: Any):
    return route("get", path, **options)


def post(path: str, **options: Any):
    return route("post", path, **options)


def put(path: str, **options: Any):
    return route("put", path, **options)


def patch(path: str, **options: Any):
    return route("patch", path, **options)


def delete(path: str, **options: Any):
    return route("delete", path, **options)


def options(path: str, **opts: Any):
    return route("options", path, **opts)


def head(path: str, **options: Any):
    return route("head", path, **options)


# ----------------------------
# Reflection output
# ----------------------------


@dataclass(frozen=True)
class ErrorDescription:
    code: str
    payload_type: TypeDescriptor
    description: Optional[str] = None


@dataclass(frozen=True)
class ActionDescription:
    name: str
    routes: tuple[RouteDecl, ...]
    params_type: Optional[TypeDescriptor] = None
    query_type: Optional[TypeDescriptor] = None
    body_type: Optional[TypeDescriptor] = None
    return_type: Optional[TypeDescriptor] = None
    errors: tuple[ErrorDescription, ...] = ()
    default_status_code: int = 200
    validate_input: bool = True
    validate_output: bool = True
    description: Optional[str] = None
    return_description: Optional[str] = None
    operation_id: Optional[str] = None
    source: Optional[SourceLocation] = None


@dataclass(frozen=True)
class ControllerDescription:
    owner_name: str
    actions: tuple[ActionDescription, ...] = field(default_factory=tuple)


class ControllerIntrospector(Protocol):
    def describe(self, source: str) -> list[ControllerDescription]: ...


# ----------------------------
# Python implementation
# ----------------------------


def load_source_module(source: str) -> ModuleType:
    """Import a dotted module name or execute a .py file as a module."""
    logger.debug("Loading controllers from %s", source)
    path = Path(source)
    if source.endswith(".py") or path.is_file():
        path = path.resolve()
        digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:10]
        name = f"_restspec_{path.stem}_{digest}"
        linecache.checkcache(str(path))
        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load controller source: {source}")
        module = importlib.util.module_from_spec(spec)
        # registered first: inspect.getsource and dataclasses look it up
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(name, None)
            raise
        return module
    return importlib.import_module(source)


def _first_paragraph(doc: Optional[str]) -> Optional[str]:
    if not doc:
        return None
    return doc.strip().split("\n\n", 1)[0].strip() or None


class PythonControllerIntrospector:
    def __init__(self, types: Optional[PythonTypeIntrospector] = None):
        self.types = types or PythonTypeIntrospector()

    def describe(self, source: str) -> list[ControllerDescription]:
        module = load_source_module(source)

        out: list[ControllerDescription] = []
        for obj in list(vars(module).values()):
            if not (isinstance(obj, type) and issubclass(obj, Controller)):
                continue
            if obj is Controller or obj.__module__ != module.__name__:
                continue
            actions = tuple(self._describe_actions(obj))
            if not actions:
                continue
            out.append(ControllerDescription(owner_name=obj.__name__, actions=actions))
        return out

    def _describe_actions(self, cls: type) -> list[ActionDescription]:
        actions: list[ActionDescription] = []
        for name, fn in vars(cls).items():
            routes = getattr(fn, _ROUTES_ATTR, None)
            if not routes:
                continue
            actions.append(self._describe_action(name, fn, routes))
        return actions

    def _describe_action(self, name: str, fn: Any, routes: tuple[RouteDecl, ...]) -> ActionDescription:
        opts: dict[str, Any] = getattr(fn, _OPTIONS_ATTR, {})
        location = source_location(fn)
        hints = typing.get_type_hints(fn, include_extras=True)

        params_t = query_t = body_t = None
        positional = [p for p in inspect.signature(fn).parameters.values() if p.name != "self"]
        if positional:
            request_hint = hints.get(positional[0].name)
            if typing.get_origin(request_hint) is Request:
                slots = typing.get_args(request_hint)
                params_t, query_t, body_t = (self._slot(s, location) for s in slots)

        return_t = None
        if "return" in hints:
            return_t = self.types.describe(hints["return"], location)

        errors = tuple(
            ErrorDescription(
                code=str(e.code),
                payload_type=self.types.describe(e.payload_type, location),
                description=e.description,
            )
            for e in opts.get("raises", ())
        )

        return ActionDescription(
            name=name,
            routes=routes,
            params_type=params_t,
            query_type=query_t,
            body_type=body_t,
            return_type=return_t,
            errors=errors,
            default_status_code=opts.get("status_code", 200),
            validate_input=opts.get("validate_input", True),
            validate_output=opts.get("validate_output", True),
            description=opts.get("description") or _first_paragraph(inspect.getdoc(fn)),
            return_description=opts.get("returns"),
            operation_id=opts.get("operation_id"),
            source=location,
        )

    def _slot(self, hint: Any, location: Optional[SourceLocation]) -> Optional[TypeDescriptor]:
        if hint is None or hint is type(None):
            return None
        return self.types.describe(hint, location)
