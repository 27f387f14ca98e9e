"""SQLite access for persisted stores (result cache, variety bank)."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from mealweave.db.schema import get_schema_sql


class DatabaseConnection:
    """Opens short-lived sqlite3 connections to one database file.

    Each call gets its own connection, so a store can be used from the
    event loop thread and from worker threads alike. Writes go through
    :meth:`transaction`, which takes the write lock up front so the
    per-namespace sequence number is computed and used atomically.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0):
        """
        Args:
            db_path: SQLite file; parent directories are created
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path).expanduser()
        self.timeout = timeout
        self._schema_ready = False
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run statements in one write transaction.

        Commits on success and rolls back if the block raises.
        """
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def fetch_all(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._open()
        try:
            return conn.execute(query, params).fetchall()
        finally:
            conn.close()

    def initialize_schema(self) -> None:
        """Create the tables once per instance."""
        if self._schema_ready:
            return
        conn = self._open()
        try:
            conn.executescript(get_schema_sql())
        finally:
            conn.close()
        self._schema_ready = True


# Shared instance used by the CLI
_db: Optional[DatabaseConnection] = None


def get_db() -> DatabaseConnection:
    """Return the shared database at ``settings.storage.path``, creating it on first use."""
    global _db
    if _db is None:
        from mealweave.config import get_settings

        _db = DatabaseConnection(get_settings().storage.path)
        _db.initialize_schema()
    return _db


def set_db(db: Optional[DatabaseConnection]) -> None:
    """Replace the shared database (tests pass a temporary one, or None to reset)."""
    global _db
    _db = db
