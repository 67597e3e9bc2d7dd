"""SQLite driver handle over the stdlib sqlite3 module."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ormforge.drivers.base import ExecResult, Rows

logger = logging.getLogger(__name__)


def _adapt(value: Any) -> Any:
    # Dates are stored as ISO text.
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return value


def _params(args: list[Any]) -> list[Any]:
    return [_adapt(a) for a in args]


class _FetchedCursor:
    """Rows already read from a sqlite3 cursor."""

    def __init__(self, cursor: sqlite3.Cursor):
        self.description = cursor.description
        self._rows = cursor.fetchall()
        cursor.close()

    def fetchone(self) -> tuple | None:
        return self._rows.pop(0) if self._rows else None

    def close(self) -> None:
        self._rows = []


class SQLiteTransaction:
    """Explicit BEGIN ... COMMIT/ROLLBACK on an autocommit connection.

    Holds the driver lock from BEGIN until COMMIT or ROLLBACK, so no
    other thread's statements land inside this transaction.
    """

    def __init__(self, conn: sqlite3.Connection, lock: threading.RLock):
        self.conn = conn
        self._lock = lock
        self._lock.acquire()
        try:
            self.conn.execute("BEGIN")
        except Exception:
            self._lock.release()
            raise

    def exec(self, sql: str, args: list[Any]) -> ExecResult:
        cursor = self.conn.execute(sql, _params(args))
        return ExecResult(rows_affected=cursor.rowcount, last_insert_id=cursor.lastrowid)

    def query_row(self, sql: str, args: list[Any]) -> tuple | None:
        row = self.conn.execute(sql, _params(args)).fetchone()
        return tuple(row) if row is not None else None

    def commit(self) -> None:
        # A failed COMMIT leaves the transaction open; rollback() releases.
        self.conn.execute("COMMIT")
        self._lock.release()

    def rollback(self) -> None:
        logger.debug("Rolling back SQLite transaction")
        try:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
        finally:
            self._lock.release()


class SQLiteDriver:
    """Driver handle for a sqlite3 connection.

    The connection runs in autocommit mode (isolation_level=None) so
    transactions are only opened through begin(). Engines on different
    threads share the connection; a lock serializes their transactions
    and statements.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.isolation_level = None
        self.conn: sqlite3.Connection | None = conn
        self._lock = threading.RLock()

    @classmethod
    def connect(cls, db_path: Path | str = ":memory:") -> "SQLiteDriver":
        """Open a database file (or an in-memory database)."""
        logger.debug("Opening SQLite database %s", db_path)
        return cls(sqlite3.connect(str(db_path), check_same_thread=False))

    def _require_conn(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Database not connected")
        return self.conn

    def begin(self) -> SQLiteTransaction:
        return SQLiteTransaction(self._require_conn(), self._lock)

    def exec(self, sql: str, args: list[Any]) -> ExecResult:
        with self._lock:
            cursor = self._require_conn().execute(sql, _params(args))
            return ExecResult(rows_affected=cursor.rowcount, last_insert_id=cursor.lastrowid)

    def query(self, sql: str, args: list[Any]) -> Rows:
        with self._lock:
            return Rows(_FetchedCursor(self._require_conn().execute(sql, _params(args))))

    def query_row(self, sql: str, args: list[Any]) -> tuple | None:
        with self._lock:
            row = self._require_conn().execute(sql, _params(args)).fetchone()
        return tuple(row) if row is not None else None

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
