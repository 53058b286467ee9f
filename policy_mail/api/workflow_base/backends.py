"""
Durable key/value backends shared by the cache and the workflow state store.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Protocol

from .exceptions import CacheError

logger = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    """Protocol for durable string key/value stores."""

    def get(self, key: str) -> str | None:
        """Return the stored payload or None."""

    def set(self, key: str, value: str) -> None:
        """Store a payload under key."""

    def delete(self, key: str) -> bool:
        """Remove key, returning whether it existed."""

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""

    def clear(self) -> None:
        """Remove every key."""


class InMemoryKeyValueBackend:
    """Process-local backend, mainly for tests and single-process deployments."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def clear(self) -> None:
        self._data.clear()


class SQLiteKeyValueBackend:
    """Persist key/value payloads in a SQLite table."""

    def __init__(self, db_path: str | Path, table: str = "kv_store"):
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table}")
        self.db_path = str(db_path)
        self.table = table
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._conn.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table} (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._conn.commit()

    def _execute(self, operation: str, key: str | None, query: str, *params) -> sqlite3.Cursor:
        try:
            cur = self._conn.execute(query, params)
            self._conn.commit()
            return cur
        except sqlite3.Error as e:
            raise CacheError(operation, key, str(e)) from e

    def get(self, key: str) -> str | None:
        row = self._execute(
            "get", key, f"SELECT value FROM {self.table} WHERE key = ?", key
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._execute(
            "set",
            key,
            f"INSERT OR REPLACE INTO {self.table} (key, value) VALUES (?, ?)",
            key,
            value,
        )

    def delete(self, key: str) -> bool:
        cur = self._execute("delete", key, f"DELETE FROM {self.table} WHERE key = ?", key)
        return cur.rowcount > 0

    def keys(self, prefix: str = "") -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self._execute(
            "keys",
            None,
            f"SELECT key FROM {self.table} WHERE key LIKE ? ESCAPE '\\' ORDER BY rowid",
            f"{escaped}%",
        ).fetchall()
        return [row[0] for row in rows]

    def clear(self) -> None:
        self._execute("clear", None, f"DELETE FROM {self.table}")

    def close(self) -> None:
        self._conn.close()
