from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from restspec.domain.descriptors import SourceLocation, TypeDescriptor


class RestSpecError(Exception):
    """Base class for every error raised by restspec."""


class TypeNotConvertibleError(RestSpecError):
    """
    A type descriptor has no JSON Schema conversion rule.

    Fatal for the metadata generation run that triggered it.
    """

    def __init__(
        self,
        descriptor: "TypeDescriptor",
        source: Optional["SourceLocation"],
        message: str = 'Type is not supported. Please check that it does not evaluate to "never"',
    ):
        self.descriptor = descriptor
        self.source = source
        self.message = message
        where = f" ({source})" if source is not None else ""
        super().__init__(f"{message}: {descriptor.label()}{where}")


class MetadataNotLoadedError(RestSpecError, RuntimeError):
    def __init__(self, message: str = "Controllers metadata is not loaded"):
        super().__init__(message)


class SnapshotNotFoundError(RestSpecError, FileNotFoundError):
    def __init__(self, path: Any):
        self.path = path
        super().__init__(f"No persisted metadata snapshot at {path}")


class HttpError(RestSpecError):
    """Error meant to be turned into an HTTP response by the caller."""

    def __init__(self, code: int, payload: Any):
        self.code = code
        self.payload = payload
        super().__init__(f"HTTP Error: {code}")

    def get_data(self) -> dict[str, Any]:
        return {"code": self.code, "payload": self.payload}


def create_http_error(code: int, payload: Any) -> HttpError:
    return HttpError(code, payload)
