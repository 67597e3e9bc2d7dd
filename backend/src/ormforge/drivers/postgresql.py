"""PostgreSQL driver handle.

Uses psycopg v3 (psycopg[binary]>=3.2) with raw cursors, which send
``$N`` placeholders to the server unchanged. The connection runs in
autocommit mode; begin() issues an explicit BEGIN.
"""

from __future__ import annotations

import threading
from typing import Any

from ormforge.drivers.base import ExecResult, Rows


class PsycopgTransaction:
    """BEGIN ... COMMIT/ROLLBACK holding the driver lock throughout."""

    def __init__(self, conn: Any, lock: threading.RLock):
        self.conn = conn
        self._lock = lock
        self._lock.acquire()
        try:
            self.conn.execute("BEGIN")
        except Exception:
            self._lock.release()
            raise

    def exec(self, sql: str, args: list[Any]) -> ExecResult:
        cursor = self.conn.execute(sql, args)
        return ExecResult(
            rows_affected=cursor.rowcount,
            last_insert_id=getattr(cursor, "lastrowid", None),
        )

    def query_row(self, sql: str, args: list[Any]) -> tuple | None:
        row = self.conn.execute(sql, args).fetchone()
        return tuple(row) if row is not None else None

    def commit(self) -> None:
        self.conn.execute("COMMIT")
        self._lock.release()

    def rollback(self) -> None:
        try:
            self.conn.execute("ROLLBACK")
        finally:
            self._lock.release()


class PsycopgDriver:
    """Driver handle for a psycopg connection.

    Engines on different threads share the connection; a lock keeps
    each transaction's statements together.
    """

    def __init__(self, conn: Any):
        self.conn: Any = conn
        self._lock = threading.RLock()

    @classmethod
    def connect(cls, url: str) -> "PsycopgDriver":
        """Establish database connection."""
        import psycopg

        # psycopg.connect() wants a plain libpq URL, without the
        # +psycopg driver suffix SQLAlchemy-style URLs carry.
        url = url.replace("postgresql+psycopg://", "postgresql://", 1)
        conn = psycopg.connect(url, autocommit=True, cursor_factory=psycopg.RawCursor)
        return cls(conn)

    def _require_conn(self) -> Any:
        if self.conn is None:
            raise RuntimeError("Database not connected")
        return self.conn

    def begin(self) -> PsycopgTransaction:
        return PsycopgTransaction(self._require_conn(), self._lock)

    def exec(self, sql: str, args: list[Any]) -> ExecResult:
        with self._lock:
            cursor = self._require_conn().execute(sql, args)
        return ExecResult(rows_affected=cursor.rowcount)

    def query(self, sql: str, args: list[Any]) -> Rows:
        # Client-side cursors hold the whole result once execute returns.
        with self._lock:
            return Rows(self._require_conn().execute(sql, args))

    def query_row(self, sql: str, args: list[Any]) -> tuple | None:
        with self._lock:
            row = self._require_conn().execute(sql, args).fetchone()
        return tuple(row) if row is not None else None

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
