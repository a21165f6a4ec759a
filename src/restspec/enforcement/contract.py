"""
Framework-agnostic request/response contract enforcement.

An HTTP adapter calls ``before_action`` ahead of the controller and
``after_action`` with its return value. Invalid requests raise
HttpError(400); valid ones get their coerced values written back. Invalid
responses raise or are logged depending on settings.
"""

from __future__ import annotations

import logging
import weakref
from typing import Any, Optional

from restspec.config import Settings
from restspec.domain.http import RequestLike, ResponseLike
from restspec.domain.models import ActionMetadata
from restspec.errors import create_http_error
from restspec.events import (
    EventManager,
    InvalidRequestEvent,
    InvalidResponseEvent,
    PostValidateRequestEvent,
    PostValidateResponseEvent,
    PreValidateRequestEvent,
    PreValidateResponseEvent,
)
from restspec.openapi.assembler import OpenAPIAssembler
from restspec.registry.metadata import MetadataRegistry
from restspec.validation.validator import ValidationErrors, Validator

logger = logging.getLogger(__name__)


def _payload(errors: Any) -> Any:
    if isinstance(errors, list):
        return [e.to_dict() if isinstance(e, ValidationErrors) else e for e in errors]
    return errors


class ContractEnforcer:
    def __init__(
        self,
        registry: MetadataRegistry,
        validator: Validator,
        events: EventManager,
        settings: Settings,
        assembler: Optional[OpenAPIAssembler] = None,
    ):
        self.registry = registry
        self.validator = validator
        self.events = events
        self.settings = settings
        self.assembler = assembler
        # id(request) -> (weakref to request, action); entries die with the request
        self._pending: dict[int, tuple[weakref.ref, Optional[ActionMetadata]]] = {}

    def _remember(self, request: RequestLike, action: Optional[ActionMetadata]) -> None:
        key = id(request)
        pending = self._pending

        def forget(ref: weakref.ref) -> None:
            entry = pending.get(key)
            if entry is not None and entry[0] is ref:
                del pending[key]

        pending[key] = (weakref.ref(request, forget), action)

    def _action_for(self, request: RequestLike) -> Optional[ActionMetadata]:
        entry = self._pending.get(id(request))
        if entry is not None and entry[0]() is request:
            return entry[1]
        action = self.registry.find(request.get_method(), request.get_path())
        self._remember(request, action)
        return action

    def release(self, request: RequestLike) -> None:
        """Forget the action resolved for ``request``. Safe to call more than once."""
        entry = self._pending.get(id(request))
        if entry is not None and entry[0]() is request:
            del self._pending[id(request)]

    def before_action(self, request: RequestLike) -> Optional[ActionMetadata]:
        """
        Resolve and validate ``request``.

        On success the coerced body, params and query are written back to the
        request so the controller reads the validated values. Adapters whose
        controller may raise should call ``release`` in a ``finally`` block
        when ``after_action`` is skipped.
        """
        action = self._action_for(request)
        if action is None:
            return None
        if not (self.settings.validate_requests and action.validate_input):
            return action

        self.events.emit(PreValidateRequestEvent(action, request))
        check = self.validator.check_request(action, request)
        if not check.valid:
            invalid = self.events.emit(InvalidRequestEvent(action, request, errors=check.errors))
            self.release(request)
            raise create_http_error(400, _payload(invalid.errors))

        request.set_body(check.body)
        request.set_params(check.params)
        request.set_query(check.query)
        self.events.emit(PostValidateRequestEvent(action, request))
        return action

    def after_action(
        self,
        request: RequestLike,
        response: ResponseLike,
        returned_value: Any = None,
    ) -> ResponseLike:
        action = self._action_for(request)
        self.release(request)

        if returned_value is not None:
            response.set_body(returned_value)
        if action is None:
            return response

        response.set_status(action.default_status_code)
        if not (self.settings.validate_responses and action.validate_output):
            return response

        self.events.emit(PreValidateResponseEvent(action, request, response))
        errors = self.validator.validate_response(action, response)
        if errors:
            invalid = self.events.emit(InvalidResponseEvent(action, request, response, errors=errors))
            if self.settings.return_response_errors:
                raise create_http_error(
                    self.settings.response_error_status_code, _payload(invalid.errors)
                )
            logger.warning(
                "Response of %s does not match its contract: %s",
                action.name,
                _payload(invalid.errors),
            )
        self.events.emit(PostValidateResponseEvent(action, request, response))
        return response

    def schema_document(self, path: str) -> Optional[dict[str, Any]]:
        if not self.settings.schema_enable or self.assembler is None:
            return None
        if path.split("?", 1)[0] != self.settings.schema_path:
            return None
        return self.assembler.get_document()
