"""DB facade: chainable query building over the hook pipeline.

Chaining methods (where, model, select, ...) return a new DB carrying
the accumulated clauses; the receiver is left untouched. Terminal
methods (create, first, update, ...) run the Book's stages on a fresh
engine clone, so no request state leaks between calls.

Example:
    db = ormforge.open("sqlite:///app.db")
    user = User(name="ada")
    db.create(user)
    db.model(user).update("name", "Ada")
    found = User()
    db.where("name = ?", "Ada").first(found)
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from typing import Any

from ormforge import builder, scope
from ormforge.dialects.base import Dialect
from ormforge.drivers.base import Driver
from ormforge.engine import Engine
from ormforge.errors import PreconditionError, RecordNotFoundError
from ormforge.hooks import default, default_book
from ormforge.hooks.registry import Book
from ormforge.hooks.types import (
    AFTER_CREATE,
    AFTER_CREATE_EXEC,
    AFTER_QUERY,
    AFTER_UPDATE,
    BEFORE_UPDATE,
    CREATE_EXEC,
    CREATE_SQL,
    DELETE_SQL,
    QUERY_SQL,
    UPDATE_SQL,
    UPDATE_TIMESTAMP,
)
from ormforge.model.fields import is_blank
from ormforge.model.schema import StructMap
from ormforge.model.scope import Expr, ScopeOptions
from ormforge.util import to_searchable_map

logger = logging.getLogger(__name__)


class DB:
    """Entry point for CRUD operations on dataclass records."""

    def __init__(
        self,
        dialect: Dialect,
        driver: Driver | None = None,
        book: Book | None = None,
        singular_table: bool = False,
        struct_map: StructMap | None = None,
    ):
        self.dialect = dialect
        self.book = book if book is not None else default_book(dialect)
        self.rows_affected = 0
        self._model: Any = None
        self._engine = Engine(
            dialect=dialect,
            driver=driver,
            struct_map=struct_map if struct_map is not None else StructMap(),
            singular_table=singular_table,
        )

    def __repr__(self) -> str:
        return f"DB(dialect={self.dialect.name!r})"

    @property
    def driver(self) -> Driver | None:
        return self._engine.driver

    @property
    def search(self):
        return self._engine.search

    @property
    def options(self) -> ScopeOptions:
        return self._engine.scope.options

    # -------------------------------------------------------------------------
    # Chaining
    # -------------------------------------------------------------------------

    def _fork(self) -> Engine:
        e = self._engine.clone()
        e.search = self._engine.search.copy()
        e.scope.options = dataclasses.replace(
            self._engine.scope.options, blank_columns_with_default=[]
        )
        return e

    def _chain(self) -> DB:
        db = copy.copy(self)
        db._engine = self._fork()
        return db

    def begin(self) -> DB:
        """Start a fresh chain with no clauses, options or model."""
        db = copy.copy(self)
        db._engine = self._engine.clone()
        db._model = None
        db.rows_affected = 0
        return db

    def where(self, query: Any, *args: Any) -> DB:
        """Add a condition: SQL with ``?`` placeholders, a mapping, a record or a key."""
        db = self._chain()
        db._engine.search.where(query, *args)
        return db

    def model(self, value: Any) -> DB:
        """Set the record (or record type) that updates and counts address."""
        db = self._chain()
        db._model = value
        return db

    def select(self, *columns: str) -> DB:
        db = self._chain()
        db._engine.search.selects.extend(columns)
        return db

    def omit(self, *columns: str) -> DB:
        db = self._chain()
        db._engine.search.omits.extend(columns)
        return db

    def order(self, value: str) -> DB:
        db = self._chain()
        db._engine.search.order(value)
        return db

    def limit(self, value: int) -> DB:
        db = self._chain()
        db._engine.search.limit = value
        return db

    def offset(self, value: int) -> DB:
        db = self._chain()
        db._engine.search.offset = value
        return db

    def joins(self, sql: str) -> DB:
        db = self._chain()
        db._engine.search.joins.append(sql)
        return db

    def set_options(self, **options: Any) -> DB:
        """Set ScopeOptions fields (insert_option, save_associations, ...)."""
        db = self._chain()
        db._engine.scope.options = dataclasses.replace(db._engine.scope.options, **options)
        return db

    def singular_table(self, enable: bool) -> None:
        """Use singular table names (``user`` instead of ``users``)."""
        self._engine.singular_table = enable

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _engine_for(self, value: Any) -> Engine:
        e = self._fork()
        e.scope.value = value
        if self._model is not None and isinstance(value, list):
            e.scope.options.destination_type = scope.model_type_of(e, self._model)
        return e

    def _run(self, chain_name: str, stage: str, e: Engine) -> None:
        fn = self.book.chain(chain_name).get(stage)
        if fn is not None:
            fn(self.book, e)

    def _require_model(self) -> Any:
        if self._model is None:
            raise PreconditionError("no model set, call model() first")
        return self._model

    def _model_conditions(self, e: Engine, out: Any) -> None:
        # A model record other than the destination filters by its values.
        if scope.is_record(self._model) and self._model is not out:
            e.search.where(self._model)

    def _finish(self, e: Engine) -> None:
        self.rows_affected = e.rows_affected

    @staticmethod
    def _expr(e: Engine) -> Expr:
        return Expr(e.scope.sql, list(e.scope.sql_vars))

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(self, value: Any) -> None:
        """Insert a record and write its generated key back."""
        e = self._engine_for(value)
        self.book.create.require(CREATE_SQL)(self.book, e)
        self.book.create.require(CREATE_EXEC)(self.book, e)
        self._run("create", AFTER_CREATE_EXEC, e)
        self._run("create", AFTER_CREATE, e)
        self._finish(e)

    def create_sql(self, value: Any) -> Expr:
        """Return the INSERT a create would run, without executing it."""
        e = self._engine_for(value)
        self.book.create.require(CREATE_SQL)(self.book, e)
        return self._expr(e)

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def _run_update(self, e: Engine) -> None:
        self.book.update.require(BEFORE_UPDATE)(self.book, e)
        self._run("update", UPDATE_TIMESTAMP, e)
        default.update(self.book, e)
        self.book.update.require(AFTER_UPDATE)(self.book, e)
        self._finish(e)

    def save(self, value: Any) -> None:
        """Update every column of a record, or create it if its key is blank."""
        e = self._engine_for(value)
        primary = scope.primary_field(e, value)
        if primary is None or primary.is_blank:
            self.create(value)
            return
        self._run_update(e)

    def save_sql(self, value: Any) -> Expr:
        e = self._engine_for(value)
        self.book.update.require(UPDATE_SQL)(self.book, e)
        return self._expr(e)

    @staticmethod
    def _attrs(args: tuple[Any, ...]) -> Any:
        if len(args) == 1:
            attrs = args[0]
            return dict(attrs) if isinstance(attrs, dict) else attrs
        if len(args) % 2:
            raise TypeError("update() takes a mapping, a record or column/value pairs")
        return dict(zip(args[::2], args[1::2]))

    def _update_engine(self, args: tuple[Any, ...], update_column: bool) -> Engine:
        e = self._engine_for(self._require_model())
        e.scope.options.update_interface = self._attrs(args)
        e.scope.options.update_column = update_column
        return e

    def update(self, *args: Any) -> None:
        """Update attributes of the model record.

        Accepts ``update("column", value)``, several column/value pairs
        or a single mapping. Callbacks and timestamps run as for save.
        """
        self._run_update(self._update_engine(args, update_column=False))

    def updates(self, values: Any) -> None:
        """Update several attributes from a mapping or a record."""
        self._run_update(self._update_engine((values,), update_column=False))

    def update_column(self, *args: Any) -> None:
        """Update attributes without callbacks or timestamps."""
        self._run_update(self._update_engine(args, update_column=True))

    update_columns = update_column

    def update_sql(self, *args: Any) -> Expr:
        e = self._update_engine(args, update_column=False)
        self.book.update.require(UPDATE_SQL)(self.book, e)
        return self._expr(e)

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete(self, value: Any, *where: Any) -> None:
        """Delete a record (soft delete when the table has deleted_at)."""
        e = self._engine_for(value)
        if where:
            e.search.where(*where)
        default.delete(self.book, e)
        self._finish(e)

    def delete_sql(self, value: Any, *where: Any) -> Expr:
        e = self._engine_for(value)
        if where:
            e.search.where(*where)
        self.book.delete.require(DELETE_SQL)(self.book, e)
        return self._expr(e)

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    def _query_engine(self, out: Any, where: tuple[Any, ...], order_by_pk: str | None) -> Engine:
        e = self._engine_for(out)
        self._model_conditions(e, out)
        if where:
            e.search.where(*where)
        if order_by_pk:
            e.scope.options.order_by_pk = order_by_pk
            e.search.limit = 1
        return e

    def _query(self, e: Engine) -> None:
        default.query(self.book, e)
        self._run("query", AFTER_QUERY, e)
        self._finish(e)

    def first(self, out: Any, *where: Any) -> None:
        """Load the first matching record, ordered by primary key."""
        self._query(self._query_engine(out, where, "ASC"))

    def last(self, out: Any, *where: Any) -> None:
        """Load the last matching record, ordered by primary key."""
        self._query(self._query_engine(out, where, "DESC"))

    def find(self, out: Any, *where: Any) -> None:
        """Load every matching record into a list (or one into a record)."""
        self._query(self._query_engine(out, where, None))

    def _query_sql(self, out: Any, where: tuple[Any, ...], order_by_pk: str | None) -> Expr:
        e = self._query_engine(out, where, order_by_pk)
        self.book.query.require(QUERY_SQL)(self.book, e)
        return self._expr(e)

    def first_sql(self, out: Any, *where: Any) -> Expr:
        return self._query_sql(out, where, "ASC")

    def last_sql(self, out: Any, *where: Any) -> Expr:
        return self._query_sql(out, where, "DESC")

    def find_sql(self, out: Any, *where: Any) -> Expr:
        return self._query_sql(out, where, None)

    def attrs(self, *values: Any) -> DB:
        """Values first_or_init/first_or_create apply only when nothing is found."""
        db = self._chain()
        db._engine.search.init_attrs.append(self._attrs(values))
        return db

    def assign(self, *values: Any) -> DB:
        """Values first_or_init/first_or_create apply whether found or not."""
        db = self._chain()
        db._engine.search.assign_attrs.append(self._attrs(values))
        return db

    def _assign_to(self, out: Any, values: list[Any]) -> None:
        e = self._engine_for(out)
        e.scope.options.ignore_protected_attrs = True
        for value in values:
            scope.updated_attrs_with_values(e, value)

    def _initialize(self, out: Any, where: tuple[Any, ...]) -> None:
        conditions = list(self._engine.search.where_conditions)
        if where:
            conditions.append((where[0], where[1:]))
        seeds = [
            {k: v for k, v in to_searchable_map(query).items() if not is_blank(v)}
            for query, _ in conditions
            if isinstance(query, dict) or scope.is_record(query)
        ]
        self._assign_to(out, seeds + self._engine.search.init_attrs)

    def _first_or_none(self, out: Any, where: tuple[Any, ...]) -> bool:
        try:
            self.first(out, *where)
        except RecordNotFoundError:
            logger.debug("No %s found", type(out).__name__)
            return False
        return True

    def first_or_init(self, out: Any, *where: Any) -> None:
        """Load the first match, or fill out from the where values and attrs.

        Nothing is written to the database; assign values are applied
        in both cases.
        """
        if not self._first_or_none(out, where):
            self._initialize(out, where)
        self._assign_to(out, self._engine.search.assign_attrs)

    def first_or_create(self, out: Any, *where: Any) -> None:
        """Load the first match, or create out from the where values and attrs.

        Assign values are applied to a new record before it is created,
        and saved to a found record with an update.
        """
        assign = self._engine.search.assign_attrs
        if self._first_or_none(out, where):
            for values in assign:
                self.begin().model(out).updates(values)
            return
        self._initialize(out, where)
        self._assign_to(out, assign)
        self.create(out)

    def count(self) -> int:
        """Count records of the model matching the current conditions."""
        model = self._require_model()
        e = self._engine_for(model)
        builder.prepare_query(e, model, selects=["count(*)"])
        e.log_sql(e.scope.sql, e.scope.sql_vars)
        row = e.require_driver().query_row(e.scope.sql, e.scope.sql_vars)
        return int(row[0]) if row else 0

    def pluck(self, column: str) -> list[Any]:
        """Return one column of every matching record of the model."""
        model = self._require_model()
        e = self._engine_for(model)
        builder.prepare_query(e, model, selects=[column])
        e.log_sql(e.scope.sql, e.scope.sql_vars)
        with e.require_driver().query(e.scope.sql, e.scope.sql_vars) as rows:
            return [row[0] for row in rows]

    # -------------------------------------------------------------------------
    # Schema helpers
    # -------------------------------------------------------------------------

    def table_name(self, value: Any) -> str:
        return scope.table_name(self._fork(), value)

    def has_table(self, value: Any) -> bool:
        """Whether the table of a record (or a table name) exists."""
        name = value if isinstance(value, str) else self.table_name(value)
        return self.dialect.has_table(name)

    def close(self) -> None:
        """Close database connection."""
        driver = self._engine.driver
        if driver is not None:
            driver.close()
