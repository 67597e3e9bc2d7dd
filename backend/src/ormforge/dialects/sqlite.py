"""SQLite dialects.

Two flavours share the stdlib sqlite3 driver:

- ``sqlite``: tables declare ``id INTEGER PRIMARY KEY``; the generated
  key comes back through ``cursor.lastrowid``.
- ``sqlite-rowid``: tables keep their user-visible ``id`` as a plain
  column and the engine-assigned key only lives in the hidden rowid.
  After an INSERT the record's ``id`` is written back with an UPDATE
  keyed by ``rowid`` (see rewrite_generated_key_update).

Both use numbered ``?N`` placeholders, which sqlite3 binds positionally.
"""

from __future__ import annotations

import re
from typing import Any

from ormforge.dialects.base import BaseDialect

INT64_MAX = 2**63 - 1
UINT64_RANGE = 2**64


class SQLiteDialect(BaseDialect):
    """SQLite dialect with quoted identifiers."""

    name = "sqlite"
    parameter_marker = "?"

    def has_table(self, table_name: str) -> bool:
        sql = "SELECT count(*) FROM sqlite_master WHERE type = 'table' AND name = ?1"
        return self._count(sql, [table_name]) > 0

    def has_column(self, table_name: str, column_name: str) -> bool:
        sql = "SELECT count(*) FROM pragma_table_info(?1) WHERE name = ?2"
        return self._count(sql, [table_name, column_name]) > 0


def to_signed_int64(value: Any) -> Any:
    """Reinterpret an unsigned 64-bit integer as signed."""
    if isinstance(value, int) and not isinstance(value, bool) and value > INT64_MAX:
        return value - UINT64_RANGE
    return value


class SQLiteRowidDialect(SQLiteDialect):
    """SQLite tables whose engine-assigned key is the hidden rowid.

    Identifiers are emitted unquoted and unqualified so the key
    comparison in an UPDATE reads `` id = ?N`` and can be rewritten to
    target the rowid. This dialect is the only one that needs the
    post-create UPDATE.
    """

    name = "sqlite-rowid"
    needs_generated_key_update = True

    KEY_COMPARISON = " id = "
    ROWID_COMPARISON = " rowid = "
    _BIND = re.compile(r"\?(\d+)")

    def quote(self, identifier: str) -> str:
        return identifier

    def query_field_name(self, quoted_table: str) -> str:
        return ""

    def rewrite_generated_key_update(
        self, sql: str, sql_vars: list[Any]
    ) -> tuple[str, list[Any], bool]:
        """Point the last `` id = ?N`` comparison of an UPDATE at the rowid.

        Only fires when the statement has a WHERE clause and the last
        `` id = `` token comes after the last WHERE. The bound key is
        coerced to signed 64-bit, the rowid type.
        """
        last_where = sql.rfind("WHERE")
        if last_where == -1:
            return sql, sql_vars, False
        last_id = sql.rfind(self.KEY_COMPARISON)
        if last_id == -1 or last_id < last_where:
            return sql, sql_vars, False

        rest = sql[last_id + len(self.KEY_COMPARISON):]
        match = self._BIND.match(rest)
        if match is None:
            raise ValueError(f"expected a bind variable after 'id =' in: {sql}")

        rewritten = sql[:last_id] + self.ROWID_COMPARISON + rest
        index = int(match.group(1)) - 1
        new_vars = list(sql_vars)
        new_vars[index] = to_signed_int64(new_vars[index])
        return rewritten, new_vars, True
