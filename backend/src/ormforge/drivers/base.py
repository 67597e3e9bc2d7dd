"""Driver handle Protocol: the database surface the execution stages use."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Protocol, runtime_checkable


@dataclass
class ExecResult:
    """Outcome of a statement executed for its side effects."""

    rows_affected: int = 0
    last_insert_id: int | None = None


class Rows:
    """Result rows of a query, read from a DB-API cursor.

    Iterating yields tuples in column order; ``columns`` holds the
    column names reported by the driver.
    """

    def __init__(self, cursor: Any):
        self._cursor = cursor
        description = cursor.description or []
        self.columns: list[str] = [d[0] for d in description]

    def __iter__(self) -> Iterator[tuple]:
        while True:
            row = self._cursor.fetchone()
            if row is None:
                return
            yield tuple(row)

    def close(self) -> None:
        self._cursor.close()

    def __enter__(self) -> "Rows":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


@runtime_checkable
class Transaction(Protocol):
    def exec(self, sql: str, args: list[Any]) -> ExecResult: ...

    def query_row(self, sql: str, args: list[Any]) -> tuple | None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@runtime_checkable
class Driver(Protocol):
    """Interface all driver handles must implement.

    A driver may be shared by several engines; each begin() opens an
    independent transaction.
    """

    def begin(self) -> Transaction: ...

    def exec(self, sql: str, args: list[Any]) -> ExecResult: ...

    def query(self, sql: str, args: list[Any]) -> Rows: ...

    def query_row(self, sql: str, args: list[Any]) -> tuple | None: ...

    def close(self) -> None: ...
