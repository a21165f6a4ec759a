"""
Synchronous pre/post extension points.

Handlers run in registration order. Each receives the event and may replace
its payload through the setter; the emitter continues with whatever the event
holds after the last handler.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, TypeVar

from restspec.domain.models import ActionMetadata, MetadataSnapshot

E = TypeVar("E")


class PreGenerateSchemaEvent:
    def __init__(self, metadata: MetadataSnapshot):
        self._metadata = metadata

    def get_metadata(self) -> MetadataSnapshot:
        return self._metadata

    def set_metadata(self, metadata: MetadataSnapshot) -> None:
        self._metadata = metadata


class PostGenerateSchemaEvent:
    def __init__(self, metadata: MetadataSnapshot, document: dict[str, Any]):
        self._metadata = metadata
        self._document = document

    def get_metadata(self) -> MetadataSnapshot:
        return self._metadata

    def get_document(self) -> dict[str, Any]:
        return self._document

    def set_document(self, document: dict[str, Any]) -> None:
        self._document = document


class _ValidationEvent:
    def __init__(self, action: ActionMetadata, request: Any, response: Any = None, errors: Any = None):
        self.action = action
        self.request = request
        self.response = response
        self.errors = errors


class PreValidateRequestEvent(_ValidationEvent):
    pass


class InvalidRequestEvent(_ValidationEvent):
    pass


class PostValidateRequestEvent(_ValidationEvent):
    pass


class PreValidateResponseEvent(_ValidationEvent):
    pass


class InvalidResponseEvent(_ValidationEvent):
    pass


class PostValidateResponseEvent(_ValidationEvent):
    pass


class EventManager:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def on(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        self._handlers[event_type].append(handler)

    def emit(self, event: E) -> E:
        for handler in list(self._handlers.get(type(event), ())):
            handler(event)
        return event
