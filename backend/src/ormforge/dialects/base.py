"""Dialect Protocol: per-backend SQL capabilities consumed by the core."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ormforge.drivers.base import Driver

# Token a returning suffix may use for a bind marker; the create stage
# normalizes it to the dialect's parameter_marker.
RETURNING_PLACEHOLDER = "$$"


@runtime_checkable
class Dialect(Protocol):
    """Interface all dialects must implement.

    A dialect is a read-only capability object shared by every engine
    opened on the same database. Existence checks go through the driver
    handle the dialect was created with.
    """

    name: str
    parameter_marker: str
    needs_generated_key_update: bool

    def quote(self, identifier: str) -> str: ...

    def bind_var(self, index: int) -> str: ...

    def query_field_name(self, quoted_table: str) -> str: ...

    def has_table(self, table_name: str) -> bool: ...

    def has_column(self, table_name: str, column_name: str) -> bool: ...

    def last_insert_id_returning_suffix(self, table: str, column: str) -> str: ...

    def rewrite_generated_key_update(
        self, sql: str, sql_vars: list[Any]
    ) -> tuple[str, list[Any], bool]: ...


class BaseDialect:
    """Defaults shared by the bundled dialects."""

    name = "base"
    parameter_marker = "?"
    needs_generated_key_update = False

    def __init__(self, driver: Driver | None = None):
        self.driver = driver

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def bind_var(self, index: int) -> str:
        return f"{self.parameter_marker}{index}"

    def query_field_name(self, quoted_table: str) -> str:
        """Prefix used to qualify a column with its table."""
        return f"{quoted_table}."

    def last_insert_id_returning_suffix(self, table: str, column: str) -> str:
        return ""

    def rewrite_generated_key_update(
        self, sql: str, sql_vars: list[Any]
    ) -> tuple[str, list[Any], bool]:
        return sql, sql_vars, False

    def _require_driver(self) -> Driver:
        if self.driver is None:
            raise RuntimeError("Database not connected")
        return self.driver

    def _count(self, sql: str, args: list[Any]) -> int:
        row = self._require_driver().query_row(sql, args)
        return int(row[0]) if row else 0
