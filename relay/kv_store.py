"""Key-value stores with TTL support backing the relay."""

from __future__ import annotations

import json
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable


Clock = Callable[[], float]


class KVStore(ABC):
    """Minimal TTL key-value interface: scalar entries plus ordered lists."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the live value for key, or None if missing or expired."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store value, replacing any previous value and expiry."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def expire(self, key: str, ttl: float) -> bool:
        """Reset the expiry of a live key. Returns False if the key is gone."""
        ...

    @abstractmethod
    def replace(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Overwrite a live key's value and expiry. Returns False, writing nothing, if it is gone."""
        ...

    @abstractmethod
    def rpush(self, key: str, value: Any, ttl: float | None = None) -> int:
        """Append to the list at key, refresh its TTL, return the new length."""
        ...

    @abstractmethod
    def pop_all(self, key: str) -> list[Any]:
        """Return the whole list at key and remove it."""
        ...

    @abstractmethod
    def scan(self, prefix: str) -> list[tuple[str, Any]]:
        """Return live scalar entries whose key starts with prefix."""
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        """Delete every expired key. Returns the number of keys removed."""
        ...


class MemoryKVStore(KVStore):
    """Process-local store. Every operation holds one lock, so pop_all is atomic."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        with self._lock:
            self._entries[key] = (value, self._deadline(ttl))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def expire(self, key: str, ttl: float) -> bool:
        with self._lock:
            value = self._live(key)
            if value is None:
                return False
            self._entries[key] = (value, self._deadline(ttl))
            return True

    def replace(self, key: str, value: Any, ttl: float | None = None) -> bool:
        with self._lock:
            if self._live(key) is None:
                return False
            self._entries[key] = (value, self._deadline(ttl))
            return True

    def rpush(self, key: str, value: Any, ttl: float | None = None) -> int:
        with self._lock:
            items = self._live(key)
            if not isinstance(items, list):
                items = []
            items.append(value)
            self._entries[key] = (items, self._deadline(ttl))
            return len(items)

    def pop_all(self, key: str) -> list[Any]:
        with self._lock:
            items = self._live(key)
            self._entries.pop(key, None)
            return list(items) if isinstance(items, list) else []

    def scan(self, prefix: str) -> list[tuple[str, Any]]:
        with self._lock:
            result = []
            for key in sorted(k for k in self._entries if k.startswith(prefix)):
                value = self._live(key)
                if value is not None and not isinstance(value, list):
                    result.append((key, value))
            return result

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [
                key for key, (_, deadline) in self._entries.items()
                if deadline is not None and deadline <= now
            ]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def _live(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if deadline is not None and deadline <= self._clock():
            del self._entries[key]
            return None
        return value

    def _deadline(self, ttl: float | None) -> float | None:
        return None if ttl is None else self._clock() + ttl


class SQLiteKVStore(KVStore):
    """SQLite-backed store that several server processes can share."""

    def __init__(self, db_path: str, clock: Clock = time.time):
        self.db_path = db_path
        self._clock = clock
        self._ensure_directory()
        self._init_db()

    def get(self, key: str) -> Any | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM entries WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (key, self._clock()),
            ).fetchone()
        return json.loads(row["value"]) if row else None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO entries (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at
                """,
                (key, json.dumps(value), self._deadline(ttl)),
            )

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM entries WHERE key = ?", (key,))
            return cur.rowcount > 0

    def expire(self, key: str, ttl: float) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE entries SET expires_at = ?
                WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
                """,
                (self._deadline(ttl), key, self._clock()),
            )
            return cur.rowcount > 0

    def replace(self, key: str, value: Any, ttl: float | None = None) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE entries SET value = ?, expires_at = ?
                WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
                """,
                (json.dumps(value), self._deadline(ttl), key, self._clock()),
            )
            return cur.rowcount > 0

    def rpush(self, key: str, value: Any, ttl: float | None = None) -> int:
        now = self._clock()
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            self._drop_expired_list(conn, key, now)
            conn.execute(
                "INSERT INTO list_items (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )
            conn.execute(
                """
                INSERT INTO lists (key, expires_at) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET expires_at = excluded.expires_at
                """,
                (key, self._deadline(ttl)),
            )
            count = conn.execute(
                "SELECT COUNT(1) AS cnt FROM list_items WHERE key = ?", (key,)
            ).fetchone()["cnt"]
            conn.execute("COMMIT")
            return count
        except Exception:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def pop_all(self, key: str) -> list[Any]:
        now = self._clock()
        conn = self._connect()
        try:
            # One write transaction: a concurrent rpush lands either before
            # the read (and is returned) or after the delete (and is kept).
            conn.execute("BEGIN IMMEDIATE")
            if self._drop_expired_list(conn, key, now):
                conn.execute("COMMIT")
                return []
            rows = conn.execute(
                "SELECT value FROM list_items WHERE key = ? ORDER BY id ASC", (key,)
            ).fetchall()
            conn.execute("DELETE FROM list_items WHERE key = ?", (key,))
            conn.execute("DELETE FROM lists WHERE key = ?", (key,))
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        return [json.loads(r["value"]) for r in rows]

    def scan(self, prefix: str) -> list[tuple[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT key, value FROM entries
                WHERE substr(key, 1, ?) = ? AND (expires_at IS NULL OR expires_at > ?)
                ORDER BY key ASC
                """,
                (len(prefix), prefix, self._clock()),
            ).fetchall()
        return [(r["key"], json.loads(r["value"])) for r in rows]

    def purge_expired(self) -> int:
        now = self._clock()
        with self._connect() as conn:
            removed = conn.execute(
                "DELETE FROM entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            ).rowcount
            expired = conn.execute(
                "SELECT key FROM lists WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (now,),
            ).fetchall()
            for row in expired:
                conn.execute("DELETE FROM list_items WHERE key = ?", (row["key"],))
                conn.execute("DELETE FROM lists WHERE key = ?", (row["key"],))
        return removed + len(expired)

    def _drop_expired_list(self, conn: sqlite3.Connection, key: str, now: float) -> bool:
        row = conn.execute(
            "SELECT expires_at FROM lists WHERE key = ?", (key,)
        ).fetchone()
        if row is None or row["expires_at"] is None or row["expires_at"] > now:
            return False
        conn.execute("DELETE FROM list_items WHERE key = ?", (key,))
        conn.execute("DELETE FROM lists WHERE key = ?", (key,))
        return True

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                );

                CREATE TABLE IF NOT EXISTS lists (
                    key TEXT PRIMARY KEY,
                    expires_at REAL
                );

                CREATE TABLE IF NOT EXISTS list_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_list_items_key ON list_items(key);
                """
            )

    def _ensure_directory(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _deadline(self, ttl: float | None) -> float | None:
        return None if ttl is None else self._clock() + ttl


def create_store(config) -> KVStore:
    """Build the store selected by a RelayConfig."""
    if config.backend == "sqlite":
        return SQLiteKVStore(config.storage_path)
    return MemoryKVStore()
