"""SQLite-backed persistence adapters for domain storage ports."""

from .sqlite_key_value_store import SQLiteKeyValueStore

__all__ = ["SQLiteKeyValueStore"]
