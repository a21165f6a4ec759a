from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Optional

from restspec.domain.models import MetadataSnapshot
from restspec.errors import SnapshotNotFoundError

logger = logging.getLogger(__name__)


def _now_ts() -> int:
    return int(time.time())


class SnapshotSQLiteStore:
    """SQLite file holding one persisted metadata snapshot.

    Rows keep the per-method registration order through ``position``.
    The whole snapshot is replaced in a single transaction.
    """

    SCHEMA_VERSION = "1.0"

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    @staticmethod
    def db_path_for_project(project_root: Path) -> Path:
        return project_root / ".restspec" / "metadata.db"

    def exists(self) -> bool:
        return self.db_path.is_file()

    # ----------------------------
    # Connection / schema
    # ----------------------------

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self.db_path))
        con.row_factory = sqlite3.Row
        return con

    def _init_db(self, con: sqlite3.Connection) -> None:
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS routes (
                method TEXT NOT NULL,
                position INTEGER NOT NULL,
                pattern TEXT NOT NULL,
                path TEXT NOT NULL,
                action_json TEXT NOT NULL,
                PRIMARY KEY (method, position)
            );
            """
        )
        if self._get_meta(con, "schema_version") is None:
            self._set_meta(con, "schema_version", self.SCHEMA_VERSION)

    # ----------------------------
    # Snapshot
    # ----------------------------

    def replace_snapshot(self, snapshot: MetadataSnapshot) -> int:
        """Delete the persisted snapshot and write ``snapshot``.

        Returns number of routes written.
        """
        to_insert = []
        for method, entries in snapshot.routes.items():
            for position, entry in enumerate(entries):
                to_insert.append(
                    (
                        method,
                        position,
                        entry.pattern,
                        entry.path,
                        json.dumps(entry.action.model_dump(by_alias=True, mode="json")),
                    )
                )

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        con = self._connect()
        try:
            with con:
                self._init_db(con)
                con.execute("DELETE FROM routes;")
                con.executemany(
                    """
                    INSERT INTO routes(method, position, pattern, path, action_json)
                    VALUES(?,?,?,?,?)
                    """,
                    to_insert,
                )
                self._set_meta(con, "generated_at", str(_now_ts()))
        finally:
            con.close()

        logger.debug("Persisted %d routes to %s", len(to_insert), self.db_path)
        return len(to_insert)

    def read_snapshot(self) -> MetadataSnapshot:
        if not self.exists():
            raise SnapshotNotFoundError(self.db_path)

        document: dict[str, list[dict]] = {}
        for row in self.list_routes():
            document.setdefault(row["method"], []).append(
                {
                    "pattern": row["pattern"],
                    "path": row["path"],
                    "actionMetadata": json.loads(row["action_json"]),
                }
            )
        return MetadataSnapshot.from_document(document)

    def list_routes(self, method: Optional[str] = None) -> list[dict]:
        q = "SELECT method, position, pattern, path, action_json FROM routes"
        params: list[object] = []
        if method:
            q += " WHERE method = ?"
            params.append(method.lower())
        # rowid follows insertion order: methods and routes come back as registered
        q += " ORDER BY rowid"

        con = self._connect()
        try:
            self._init_db(con)
            rows = con.execute(q, tuple(params)).fetchall()
            return [dict(r) for r in rows]
        finally:
            con.close()

    def generated_at(self) -> Optional[int]:
        con = self._connect()
        try:
            self._init_db(con)
            value = self._get_meta(con, "generated_at")
            return int(value) if value is not None else None
        finally:
            con.close()

    # ----------------------------
    # internal helpers
    # ----------------------------

    def _get_meta(self, con: sqlite3.Connection, key: str) -> Optional[str]:
        row = con.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def _set_meta(self, con: sqlite3.Connection, key: str, value: str) -> None:
        con.execute(
            """
            INSERT INTO meta(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )

