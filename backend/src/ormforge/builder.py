"""Condition and SELECT statement builders.

combined_condition() renders the WHERE clause shared by UPDATE, DELETE
and SELECT: the record's primary key (when set), the Search where
clauses, and the soft-delete filter for records with a ``deleted_at``
field.
"""

from __future__ import annotations

from typing import Any

from ormforge import scope
from ormforge.engine import Engine

SOFT_DELETE_COLUMN = "deleted_at"


def _column_prefix(e: Engine, value: Any) -> str:
    return e.dialect.query_field_name(scope.quoted_table_name(e, value))


def _bind_placeholders(e: Engine, query: str, args: tuple[Any, ...]) -> str:
    """Replace each ``?`` in a user condition with a dialect bind variable.

    A list or tuple argument expands to comma-separated placeholders,
    for ``IN (?)`` style conditions.
    """
    parts = query.split("?")
    if len(parts) - 1 != len(args):
        raise ValueError(
            f"condition {query!r} has {len(parts) - 1} placeholders "
            f"but {len(args)} arguments were given"
        )
    out = [parts[0]]
    for arg, part in zip(args, parts[1:]):
        if isinstance(arg, (list, tuple)):
            out.append(", ".join(scope.add_to_vars(e, a) for a in arg))
        else:
            out.append(scope.add_to_vars(e, arg))
        out.append(part)
    return "".join(out)


def _equalities(e: Engine, value: Any, pairs: dict[str, Any]) -> str:
    prefix = _column_prefix(e, value)
    conditions = [
        f"({prefix}{scope.quote(e, column)} = {scope.add_to_vars(e, v)})"
        for column, v in pairs.items()
    ]
    return " AND ".join(conditions)


def where_condition(e: Engine, value: Any, query: Any, args: tuple[Any, ...]) -> str:
    """Render one where clause.

    Accepts a SQL fragment with ``?`` placeholders, a {column: value}
    mapping, a record (its non-blank columns), or a bare primary key.
    """
    if isinstance(query, str):
        if not query.strip():
            return ""
        return f"({_bind_placeholders(e, query, args)})"
    if isinstance(query, dict):
        return _equalities(e, value, query)
    if scope.is_record(query):
        pairs = {
            f.db_name: f.get()
            for f in scope.fields(e, query)
            if f.is_normal and not f.is_blank
        }
        return _equalities(e, value, pairs)
    if isinstance(query, (int, float)) and not isinstance(query, bool):
        struct = scope.get_model_struct(e, value)
        if not struct.primary_fields:
            raise ValueError(f"{struct.model_type.__name__} has no primary key")
        column = struct.primary_fields[0].db_name
        return _equalities(e, value, {column: query})
    raise TypeError(f"unsupported where condition {type(query).__name__}")


def combined_condition(e: Engine, value: Any) -> str:
    """Return the ``WHERE ...`` fragment for a record, or an empty string."""
    conditions: list[str] = []
    prefix = _column_prefix(e, value)

    if scope.is_record(value):
        for f in scope.primary_fields(e, value):
            if not f.is_blank:
                conditions.append(
                    f"{prefix}{scope.quote(e, f.db_name)} = {scope.add_to_vars(e, f.get())}"
                )

    for query, args in e.search.where_conditions:
        sql = where_condition(e, value, query, args)
        if sql:
            conditions.append(sql)

    if scope.has_field(e, value, SOFT_DELETE_COLUMN):
        conditions.append(f"{prefix}{scope.quote(e, SOFT_DELETE_COLUMN)} IS NULL")

    if not conditions:
        return ""
    return "WHERE " + " AND ".join(conditions)


def _select_clause(e: Engine, selects: list[str]) -> str:
    if not selects:
        return "*"
    return ", ".join(
        scope.quote(e, s) if s.isidentifier() else s for s in selects
    )


def prepare_query(e: Engine, value: Any, selects: list[str] | None = None) -> str:
    """Build the SELECT statement for the scope and store it in scope.sql."""
    parts = [
        f"SELECT {_select_clause(e, e.search.selects if selects is None else selects)}",
        f"FROM {scope.quoted_table_name(e, value)}",
    ]
    parts.extend(e.search.joins)

    condition = combined_condition(e, value)
    if condition:
        parts.append(condition)
    if e.search.orders:
        parts.append("ORDER BY " + ", ".join(e.search.orders))
    if e.search.limit is not None:
        parts.append(f"LIMIT {int(e.search.limit)}")
    if e.search.offset is not None:
        parts.append(f"OFFSET {int(e.search.offset)}")

    e.scope.sql = " ".join(parts)
    return e.scope.sql
