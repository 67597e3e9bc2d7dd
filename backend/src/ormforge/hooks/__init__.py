"""Hook pipeline: the Book of stage chains and the default stages."""

from __future__ import annotations

from ormforge.dialects.base import Dialect
from ormforge.hooks import default
from ormforge.hooks.registry import Book, HookChain
from ormforge.hooks.types import (
    AFTER_CREATE,
    AFTER_CREATE_EXEC,
    AFTER_DELETE,
    AFTER_QUERY,
    AFTER_UPDATE,
    ASSIGN_UPDATING_ATTRS,
    BEFORE_CREATE,
    BEFORE_DELETE,
    BEFORE_UPDATE,
    CREATE_EXEC,
    CREATE_SQL,
    CREATE_STATEMENT,
    DELETE_SQL,
    QUERY_EXEC,
    QUERY_SQL,
    SAVE_BEFORE_ASSOCIATION,
    StageFn,
    UPDATE_EXEC,
    UPDATE_SQL,
    UPDATE_TIMESTAMP,
)


def default_book(dialect: Dialect | None = None) -> Book:
    """Build a Book with every built-in stage registered.

    The post-create rowid fixup is only registered for dialects that
    need it.
    """
    book = Book()

    book.query.register(QUERY_SQL, default.query_sql)
    book.query.register(QUERY_EXEC, default.query_exec)
    book.query.register(AFTER_QUERY, default.after_query)

    book.create.register(BEFORE_CREATE, default.before_create)
    book.create.register(SAVE_BEFORE_ASSOCIATION, default.save_before_association)
    book.create.register(UPDATE_TIMESTAMP, default.create_timestamp)
    book.create.register(CREATE_STATEMENT, default.create)
    book.create.register(CREATE_SQL, default.create_sql)
    book.create.register(CREATE_EXEC, default.create_exec)
    book.create.register(AFTER_CREATE, default.after_create)
    if dialect is not None and dialect.needs_generated_key_update:
        book.create.register(AFTER_CREATE_EXEC, default.generated_key_update)

    book.update.register(BEFORE_UPDATE, default.before_update)
    book.update.register(UPDATE_TIMESTAMP, default.update_timestamp)
    book.update.register(ASSIGN_UPDATING_ATTRS, default.assign_updating_attrs)
    book.update.register(UPDATE_SQL, default.update_sql)
    book.update.register(UPDATE_EXEC, default.update_exec)
    book.update.register(AFTER_UPDATE, default.after_update)

    book.delete.register(BEFORE_DELETE, default.before_delete)
    book.delete.register(DELETE_SQL, default.delete_sql)
    book.delete.register(AFTER_DELETE, default.after_delete)

    return book.validate()


__all__ = ["Book", "HookChain", "StageFn", "default_book"]
