from __future__ import annotations

import json
import sqlite3
from typing import Any

_DEFAULT_NAMESPACE = "default"


class SQLiteKeyValueStore:
    """SQLite-backed implementation of ``KeyValueStorePort``.

    Values are stored as JSON text, so anything ``json.dumps`` accepts
    round-trips through ``get``/``set``.
    """

    _SCHEMA_SQL = """\
    CREATE TABLE IF NOT EXISTS kv_store (
        namespace TEXT NOT NULL,
        key       TEXT NOT NULL,
        value     TEXT NOT NULL,
        PRIMARY KEY (namespace, key)
    );
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        namespace: str = _DEFAULT_NAMESPACE,
    ) -> None:
        self._conn = sqlite3.connect(db_path)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(self._SCHEMA_SQL)
        self._namespace = namespace

    def __enter__(self) -> "SQLiteKeyValueStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def get(self, key: str) -> Any | None:
        row = self._conn.execute(
            "SELECT value FROM kv_store WHERE namespace = ? AND key = ?",
            (self._namespace, key),
        ).fetchone()
        return json.loads(row[0]) if row else None

    def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            "INSERT INTO kv_store (namespace, key, value) VALUES (?, ?, ?) "
            "ON CONFLICT(namespace, key) DO UPDATE SET value=excluded.value",
            (self._namespace, key, json.dumps(value)),
        )
        self._conn.commit()

    def remove(self, key: str) -> None:
        self._conn.execute(
            "DELETE FROM kv_store WHERE namespace = ? AND key = ?",
            (self._namespace, key),
        )
        self._conn.commit()

    def keys(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT key FROM kv_store WHERE namespace = ? ORDER BY key",
            (self._namespace,),
        ).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        self._conn.close()
