"""PostgreSQL dialect.

Uses ``$N`` placeholders (psycopg raw cursors pass them to the server
untouched) and ``RETURNING`` to hand back generated keys from INSERT.

Identifier quoting strategy
----------------------------
PostgreSQL folds unquoted identifiers to lowercase, so every table and
column name is double-quoted. Existence checks take the unquoted name.
"""

from __future__ import annotations

from ormforge.dialects.base import BaseDialect


class PostgreSQLDialect(BaseDialect):
    """PostgreSQL dialect using psycopg v3."""

    name = "postgresql"
    parameter_marker = "$"

    def has_table(self, table_name: str) -> bool:
        sql = (
            "SELECT count(*) FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = $1"
        )
        return self._count(sql, [table_name]) > 0

    def has_column(self, table_name: str, column_name: str) -> bool:
        sql = (
            "SELECT count(*) FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = $1 "
            "AND column_name = $2"
        )
        return self._count(sql, [table_name, column_name]) > 0

    def last_insert_id_returning_suffix(self, table: str, column: str) -> str:
        return f"RETURNING {table}.{column}"
