"""Per-request state: Scope, its typed options and query Search clauses.

A Scope lives for one top-level call. Stages communicate through
ScopeOptions: an earlier stage sets a field (e.g. update_attrs) and a
later stage reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Expr:
    """A SQL statement together with its positional bind values."""

    sql: str
    args: list[Any] = field(default_factory=list)


@dataclass
class ScopeOptions:
    """Typed inter-stage settings of a Scope.

    Attributes:
        update_interface: Raw attributes supplied by the caller for update
            (a mapping or a record), before column resolution
        update_attrs: Resolved {column: value} mapping used by update_sql
        update_column: Column-only update, skips save/update callbacks
            and timestamps
        ignore_protected_attrs: Allow update_interface to write primary keys
        insert_option: Extra SQL appended to INSERT
        update_option: Extra SQL appended to UPDATE
        delete_option: Extra SQL appended to DELETE
        query_option: Extra SQL appended to SELECT
        query_destination: Alternate destination for query results
        destination_type: Record type of list destination elements
        order_by_pk: "ASC" or "DESC" to order by the primary key
        save_associations: Cascade-save belongs-to records on create
        blank_columns_with_default: Columns left to their database default
        primary_key_generated: create_exec wrote a driver-assigned key
    """

    update_interface: Any = None
    update_attrs: dict[str, Any] | None = None
    update_column: bool = False
    ignore_protected_attrs: bool = False
    insert_option: str | None = None
    update_option: str | None = None
    delete_option: str | None = None
    query_option: str | None = None
    query_destination: Any = None
    destination_type: type | None = None
    order_by_pk: str | None = None
    save_associations: bool = True
    blank_columns_with_default: list[str] = field(default_factory=list)
    primary_key_generated: bool = False


@dataclass
class Scope:
    """Mutable state of a single operation."""

    value: Any = None
    sql: str = ""
    sql_vars: list[Any] = field(default_factory=list)
    options: ScopeOptions = field(default_factory=ScopeOptions)
    multi_expr: bool = False
    exprs: list[Expr] = field(default_factory=list)

    def add_expr(self, expr: Expr) -> None:
        """Queue an auxiliary statement to run before the main one."""
        self.multi_expr = True
        self.exprs.append(expr)


@dataclass
class Search:
    """Clauses collected by the query builder before SQL synthesis."""

    where_conditions: list[tuple[Any, tuple[Any, ...]]] = field(default_factory=list)
    selects: list[str] = field(default_factory=list)
    omits: list[str] = field(default_factory=list)
    orders: list[str] = field(default_factory=list)
    joins: list[str] = field(default_factory=list)
    # Values for first_or_init/first_or_create: attrs apply only when
    # nothing was found, assign always.
    init_attrs: list[Any] = field(default_factory=list)
    assign_attrs: list[Any] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None

    def where(self, query: Any, *args: Any) -> "Search":
        self.where_conditions.append((query, args))
        return self

    def order(self, value: str) -> "Search":
        self.orders.append(value)
        return self

    def copy(self) -> "Search":
        return Search(
            where_conditions=list(self.where_conditions),
            selects=list(self.selects),
            omits=list(self.omits),
            orders=list(self.orders),
            joins=list(self.joins),
            init_attrs=list(self.init_attrs),
            assign_attrs=list(self.assign_attrs),
            limit=self.limit,
            offset=self.offset,
        )
