"""Key-value storage backends for persisted chat state."""

import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """String key-value capability the store persists into."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    @abstractmethod
    def iter_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        """Yield ``(key, value)`` pairs whose key starts with ``prefix``."""

    def close(self) -> None:
        """Release any underlying resources."""


class MemoryStorage(KeyValueStorage):
    """In-process storage, mainly for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def iter_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        for key in sorted(self._data):
            if key.startswith(prefix):
                yield key, self._data[key]


class SQLiteStorage(KeyValueStorage):
    """Durable key-value storage in a single SQLite table."""

    def __init__(self, db_path: Path):
        """Open (and create if needed) the storage database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._ensure_tables()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        return self._conn

    def _ensure_tables(self) -> None:
        conn = self._get_conn()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def get(self, key: str) -> Optional[str]:
        row = self._get_conn().execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """
            INSERT INTO kv_store (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        conn.commit()

    def delete(self, key: str) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()

    def iter_prefix(self, prefix: str) -> Iterator[Tuple[str, str]]:
        # substr() instead of LIKE so that % and _ in keys match literally.
        cursor = self._get_conn().execute(
            "SELECT key, value FROM kv_store"
            " WHERE substr(key, 1, ?) = ? ORDER BY key ASC",
            (len(prefix), prefix),
        )
        for key, value in cursor.fetchall():
            yield key, value

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
