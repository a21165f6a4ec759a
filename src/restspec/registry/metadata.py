from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from restspec.compiler.json_schema import JSONSchema, to_json_schema
from restspec.config import Settings
from restspec.domain.descriptors import TypeDescriptor
from restspec.domain.models import ActionMetadata, ErrorMetadata, MetadataSnapshot, RouteEntry
from restspec.errors import MetadataNotLoadedError, RestSpecError
from restspec.introspect.controllers import (
    ActionDescription,
    ControllerIntrospector,
    PythonControllerIntrospector,
)
from restspec.registry.paths import compile_path, match_params, parse_pattern
from restspec.store.sqlite_store import SnapshotSQLiteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteMatch:
    method: str
    entry: RouteEntry
    params: dict[str, str]

    @property
    def action(self) -> ActionMetadata:
        return self.entry.action


def _schema(descriptor: Optional[TypeDescriptor]) -> JSONSchema:
    if descriptor is None:
        return {}
    return to_json_schema(descriptor)


def build_action_metadata(owner_name: str, action: ActionDescription) -> ActionMetadata:
    """Compile every declared type of one action. TypeNotConvertibleError propagates."""
    return ActionMetadata(
        name=action.name,
        owner_name=owner_name,
        operation_id=action.operation_id,
        description=action.description,
        return_description=action.return_description,
        default_status_code=action.default_status_code,
        validate_input=action.validate_input,
        validate_output=action.validate_output,
        params_schema=_schema(action.params_type),
        query_schema=_schema(action.query_type),
        body_schema=_schema(action.body_type),
        return_schema=_schema(action.return_type),
        errors=tuple(
            ErrorMetadata(
                code=e.code,
                description=e.description,
                payload_schema=_schema(e.payload_type),
            )
            for e in action.errors
        ),
    )


class MetadataRegistry:
    """
    Route -> action index built from controller sources.

    The snapshot is replaced wholesale by ``generate``/``load``; lookups
    before either has completed raise MetadataNotLoadedError.
    """

    def __init__(
        self,
        introspector: ControllerIntrospector,
        store: Optional[SnapshotSQLiteStore] = None,
        sources: Sequence[str] = (),
        *,
        live: bool = False,
        disable_generation: bool = False,
    ):
        self.introspector = introspector
        self.store = store
        self.sources = tuple(sources)
        self.live = live
        self.disable_generation = disable_generation
        self._snapshot: Optional[MetadataSnapshot] = None

    @classmethod
    def from_settings(
        cls, settings: Settings, introspector: Optional[ControllerIntrospector] = None
    ) -> "MetadataRegistry":
        return cls(
            introspector or PythonControllerIntrospector(),
            SnapshotSQLiteStore(settings.metadata_path),
            settings.metadata_sources,
            live=settings.is_live,
            disable_generation=settings.disable_metadata_generation,
        )

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def generate(self, sources: Optional[Sequence[str]] = None) -> MetadataSnapshot:
        sources = tuple(sources) if sources is not None else self.sources

        buckets: dict[str, list[RouteEntry]] = {}
        for source in sources:
            for controller in self.introspector.describe(source):
                for action in controller.actions:
                    if not action.routes:
                        continue
                    metadata = build_action_metadata(controller.owner_name, action)
                    for route in action.routes:
                        method = route.method.lower()
                        entry = RouteEntry(
                            pattern=compile_path(route.path).encode(),
                            path=route.path,
                            action=metadata,
                        )
                        buckets.setdefault(method, []).append(entry)
                        logger.debug(
                            "Registered %s %s -> %s.%s",
                            method.upper(),
                            route.path,
                            controller.owner_name,
                            action.name,
                        )

        snapshot = MetadataSnapshot(routes={m: tuple(entries) for m, entries in buckets.items()})
        self._snapshot = snapshot
        logger.info(
            "Generated metadata for %d source(s): %d route(s)",
            len(sources),
            sum(len(v) for v in snapshot.routes.values()),
        )
        return snapshot

    def persist(self, snapshot: Optional[MetadataSnapshot] = None) -> int:
        store = self._require_store()
        return store.replace_snapshot(snapshot if snapshot is not None else self.get_snapshot())

    def load(self) -> MetadataSnapshot:
        if self.live and not self.disable_generation:
            logger.info("Live mode: regenerating controller metadata")
            snapshot = self.generate()
            if self.store is not None:
                self.store.replace_snapshot(snapshot)
            return snapshot

        store = self._require_store()
        logger.info("Loading controller metadata from %s", store.db_path)
        snapshot = store.read_snapshot()
        self._snapshot = snapshot
        return snapshot

    def install(self, snapshot: MetadataSnapshot) -> None:
        self._snapshot = snapshot

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    def get_snapshot(self) -> MetadataSnapshot:
        if self._snapshot is None:
            raise MetadataNotLoadedError()
        return self._snapshot

    # ----------------------------
    # Lookup
    # ----------------------------

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        snapshot = self.get_snapshot()
        method = method.lower()
        path = path.split("?", 1)[0]

        for entry in snapshot.for_method(method):
            pattern = parse_pattern(entry.pattern)
            if pattern is None:
                logger.warning("Skipping unparsable route pattern %r (%s)", entry.pattern, entry.path)
                continue
            params = match_params(pattern, path)
            if params is not None:
                return RouteMatch(method=method, entry=entry, params=params)
        return None

    def find(self, method: str, path: str) -> Optional[ActionMetadata]:
        found = self.match(method, path)
        return found.action if found else None

    def _require_store(self) -> SnapshotSQLiteStore:
        if self.store is None:
            raise RestSpecError("No metadata store configured")
        return self.store
