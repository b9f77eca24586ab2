"""SQLite access shared by API handlers and streaming responses."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA busy_timeout=5000;",
    "PRAGMA temp_store=MEMORY;",
)

Params = Sequence[Any]


class SQLiteDatabase:
    """One connection, serialized by a lock.

    Request handlers run on the event loop while sync dependencies and test
    clients may call in from worker threads, so every statement goes through
    ``_lock``. Writes commit immediately unless grouped in :meth:`transaction`.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path.expanduser()
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            for pragma in DEFAULT_PRAGMAS:
                self._connection.execute(pragma)
        return self._connection

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def write(self, sql: str, params: Params | None = None) -> int:
        """Run one statement in its own transaction and return the affected row count."""
        with self.transaction() as cursor:
            cursor.execute(sql, params or [])
            return cursor.rowcount

    def query(self, sql: str, params: Params | None = None) -> list[sqlite3.Row]:
        with self._lock:
            return self._connect().execute(sql, params or []).fetchall()

    def query_one(self, sql: str, params: Params | None = None) -> sqlite3.Row | None:
        with self._lock:
            return self._connect().execute(sql, params or []).fetchone()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        if schema_sql is None:
            schema_sql = Path(__file__).with_name("schema.sql").read_text(encoding="utf-8")
        with self._lock:
            self._connect().executescript(schema_sql)


__all__ = ["SQLiteDatabase"]
