"""Key-value stores behind the result cache and the variety bank.

Both implementations keep insertion order: ``keys()`` runs oldest first and
``set`` on an existing key replaces the value wholesale and moves the key to
the newest position. Callers build eviction on that order.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Optional

from mealweave.db.connection import DatabaseConnection


class KeyValueStore(ABC):
    """Ordered mapping of string keys to JSON-serializable values."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any existing one and marking it newest."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    @abstractmethod
    def keys(self) -> list[str]:
        """All keys, oldest first."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""

    @abstractmethod
    def __len__(self) -> int:
        ...

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """In-process store backed by an OrderedDict."""

    def __init__(self) -> None:
        self._data: OrderedDict[str, Any] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class SqliteStore(KeyValueStore):
    """Store persisted in the ``kv_entries`` table, one namespace per store.

    Values are stored as JSON text. A per-namespace sequence number keeps
    insertion order across processes.
    """

    def __init__(self, db: DatabaseConnection, namespace: str):
        self.db = db
        self.namespace = namespace
        self.db.initialize_schema()

    def get(self, key: str) -> Optional[Any]:
        rows = self.db.fetch_all(
            "SELECT value FROM kv_entries WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        )
        return json.loads(rows[0]["value"]) if rows else None

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, sort_keys=True)
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(seq), 0) + 1 FROM kv_entries WHERE namespace = ?",
                (self.namespace,),
            ).fetchone()
            conn.execute(
                """
                INSERT OR REPLACE INTO kv_entries (namespace, key, value, seq, updated_at)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                """,
                (self.namespace, key, payload, row[0]),
            )

    def delete(self, key: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM kv_entries WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            )
            return cursor.rowcount > 0

    def keys(self) -> list[str]:
        rows = self.db.fetch_all(
            "SELECT key FROM kv_entries WHERE namespace = ? ORDER BY seq",
            (self.namespace,),
        )
        return [row["key"] for row in rows]

    def clear(self) -> None:
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM kv_entries WHERE namespace = ?", (self.namespace,))

    def __len__(self) -> int:
        rows = self.db.fetch_all(
            "SELECT COUNT(*) AS n FROM kv_entries WHERE namespace = ?",
            (self.namespace,),
        )
        return int(rows[0]["n"])
