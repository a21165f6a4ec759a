from pathlib import Path

import pytest

from restspec.domain.models import ActionMetadata, ErrorMetadata, MetadataSnapshot, RouteEntry
from restspec.errors import SnapshotNotFoundError
from restspec.registry.paths import compile_path
from restspec.store.sqlite_store import SnapshotSQLiteStore


def entry(path: str, name: str) -> RouteEntry:
    return RouteEntry(
        pattern=compile_path(path).encode(),
        path=path,
        action=ActionMetadata(
            name=name,
            owner_name="UserController",
            params_schema={"type": "object", "properties": {"id": {"type": "string"}}},
            errors=(ErrorMetadata(code="404", payload_schema={"type": "null"}),),
        ),
    )


def test_replace_and_read_round_trip(tmp_path: Path):
    store = SnapshotSQLiteStore(SnapshotSQLiteStore.db_path_for_project(tmp_path))
    snapshot = MetadataSnapshot(
        routes={
            "post": (entry("/users", "create"),),
            "get": (entry("/users/:id", "get_one"), entry("/users", "list_all")),
        }
    )

    assert store.replace_snapshot(snapshot) == 3
    assert store.exists()
    assert store.read_snapshot() == snapshot
    assert store.generated_at() is not None


def test_replace_discards_previous_rows(tmp_path: Path):
    store = SnapshotSQLiteStore(tmp_path / "m.db")
    store.replace_snapshot(MetadataSnapshot(routes={"get": (entry("/a", "a"), entry("/b", "b"))}))
    store.replace_snapshot(MetadataSnapshot(routes={"delete": (entry("/c", "c"),)}))

    rows = store.list_routes()
    assert [(r["method"], r["path"]) for r in rows] == [("delete", "/c")]
    assert store.list_routes(method="GET") == []


def test_read_missing_snapshot_raises(tmp_path: Path):
    store = SnapshotSQLiteStore(tmp_path / "missing.db")
    with pytest.raises(SnapshotNotFoundError):
        store.read_snapshot()


def test_persisted_form_uses_camel_case_aliases(tmp_path: Path):
    snapshot = MetadataSnapshot(routes={"get": (entry("/users/:id", "get_one"),)})
    doc = snapshot.to_document()
    action = doc["get"][0]["actionMetadata"]
    assert action["controllerName"] == "UserController"
    assert action["defaultStatusCode"] == 200
    assert action["paramsType"]["properties"]["id"] == {"type": "string"}
    assert action["errors"][0]["payloadType"] == {"type": "null"}
    assert MetadataSnapshot.from_document(doc) == snapshot
