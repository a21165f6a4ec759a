from __future__ import annotations

from typing import Any, Generic, Optional, Protocol, TypeVar

P = TypeVar("P")
Q = TypeVar("Q")
B = TypeVar("B")


class RequestLike(Protocol):
    def get_method(self) -> str: ...

    def get_path(self) -> str: ...

    def get_body(self) -> Any: ...

    def get_params(self) -> Any: ...

    def get_query(self) -> Any: ...

    def set_body(self, body: Any) -> Any: ...

    def set_params(self, params: Any) -> Any: ...

    def set_query(self, query: Any) -> Any: ...


class ResponseLike(Protocol):
    def get_body(self) -> Any: ...

    def set_body(self, body: Any) -> Any: ...

    def set_status(self, status: int) -> Any: ...


class Request(Generic[P, Q, B]):
    """
    Minimal request carrier.

    As an annotation, ``Request[Params, Query, Body]`` on a controller action
    declares the shapes to validate; ``None`` in a slot declares nothing.
    """

    def __init__(
        self,
        method: str = "get",
        path: str = "/",
        *,
        params: Optional[dict[str, Any]] = None,
        query: Optional[dict[str, Any]] = None,
        body: Any = None,
    ):
        self.method = method
        self.path = path
        self.params = params if params is not None else {}
        self.query = query if query is not None else {}
        self.body = body

    def get_method(self) -> str:
        return self.method

    def get_path(self) -> str:
        return self.path

    def get_params(self) -> Any:
        return self.params

    def get_query(self) -> Any:
        return self.query

    def get_body(self) -> Any:
        return self.body

    def set_body(self, body: Any) -> "Request":
        self.body = body
        return self

    def set_params(self, params: Any) -> "Request":
        self.params = params
        return self

    def set_query(self, query: Any) -> "Request":
        self.query = query
        return self


class Response:
    def __init__(self, status: int = 200, body: Any = None):
        self.status = status
        self.body = body

    def get_body(self) -> Any:
        return self.body

    def set_body(self, body: Any) -> "Response":
        self.body = body
        return self

    def set_status(self, status: int) -> "Response":
        self.status = status
        return self
