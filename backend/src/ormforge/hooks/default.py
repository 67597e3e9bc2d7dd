"""Default pipeline stages.

Every stage has the signature ``stage(book, engine)`` and raises on
error; orchestration stages look further stages up in the Book by name
so any of them can be replaced.

SQL synthesis stages leave a ``BEGIN TRANSACTION; ...; COMMIT;`` block
in scope.sql. Execution stages run the statements of that block inside
an explicit driver transaction: commit on success, rollback then
re-raise on failure.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from ormforge import builder, scope
from ormforge.dialects.base import RETURNING_PLACEHOLDER
from ormforge.drivers.base import ExecResult, Transaction
from ormforge.engine import Engine
from ormforge.errors import (
    DescriptorLookupError,
    OrmError,
    PreconditionError,
    RecordNotFoundError,
    UnaddressableFieldError,
    UnsupportedDestinationError,
)
from ormforge.hooks.registry import Book, HookChain
from ormforge.hooks.types import (
    AFTER_CREATE_EXEC,
    AFTER_CREATE_HOOK,
    AFTER_DELETE,
    AFTER_DELETE_HOOK,
    AFTER_FIND,
    AFTER_SAVE_HOOK,
    AFTER_UPDATE_HOOK,
    ASSIGN_UPDATING_ATTRS,
    BEFORE_CREATE,
    BEFORE_CREATE_HOOK,
    BEFORE_DELETE,
    BEFORE_DELETE_HOOK,
    BEFORE_SAVE_HOOK,
    BEFORE_UPDATE_HOOK,
    CREATE_EXEC,
    CREATE_SQL,
    CREATE_STATEMENT,
    DELETE_SQL,
    QUERY_EXEC,
    QUERY_SQL,
    SAVE_BEFORE_ASSOCIATION,
    UPDATE_EXEC,
    UPDATE_SQL,
    UPDATE_TIMESTAMP,
)
from ormforge.model.fields import Field
from ormforge.model.schema import BELONGS_TO
from ormforge.util import add_extra_space_if_exist, to_searchable_map, unwrap_tx, wrap_tx

logger = logging.getLogger(__name__)

T = TypeVar("T")

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"


def _run_optional(chain: HookChain, stage: str, b: Book, e: Engine) -> None:
    fn = chain.get(stage)
    if fn is not None:
        fn(b, e)


def _in_transaction(e: Engine, run_main: Callable[[Transaction, str, list[Any]], T]) -> T:
    """Run the scope's statement block inside one driver transaction.

    Auxiliary statements run first with their own args; run_main
    executes the main (last) statement with scope.sql_vars.
    """
    statements = unwrap_tx(e.scope.sql)
    if not statements:
        raise PreconditionError("no SQL to execute")
    *aux, main = statements

    tx = e.require_driver().begin()
    try:
        for stmt, expr in zip(aux, e.scope.exprs):
            e.log_sql(stmt, expr.args)
            tx.exec(stmt, expr.args)
        e.log_sql(main, e.scope.sql_vars)
        result = run_main(tx, main, e.scope.sql_vars)
        tx.commit()
    except Exception:
        tx.rollback()
        raise
    return result


def _foreign_field(e: Engine, value: Any, name: str) -> Field | None:
    try:
        return scope.field_by_name(e, value, name)
    except DescriptorLookupError as exc:
        logger.warning("Skipping foreign key %s: %s", name, exc)
        return None


def _exec_in_transaction(e: Engine) -> ExecResult:
    return _in_transaction(e, lambda tx, sql, args: tx.exec(sql, args))


# =============================================================================
# Query
# =============================================================================


def query(b: Book, e: Engine) -> None:
    """Build then execute a SELECT."""
    b.query.require(QUERY_SQL)(b, e)
    b.query.require(QUERY_EXEC)(b, e)


def query_sql(b: Book, e: Engine) -> None:
    """Build the SELECT statement, ordering by primary key if requested."""
    value = e.scope.value
    direction = e.scope.options.order_by_pk
    if direction:
        pk = scope.primary_db_name(e, value)
        if pk is None:
            logger.debug(
                "No primary key on %s, ignoring order by primary key",
                scope.model_type_of(e, value).__name__,
            )
        else:
            prefix = e.dialect.query_field_name(scope.quoted_table_name(e, value))
            e.search.order(f"{prefix}{scope.quote(e, pk)} {direction}")
    builder.prepare_query(e, value)


def query_exec(b: Book, e: Engine) -> None:
    """Execute the SELECT and scatter rows into the destination.

    A record destination is filled in place and must match a row; a
    list destination is cleared and receives one new record per row.
    """
    destination = e.scope.options.query_destination
    if destination is None:
        destination = e.scope.value

    if isinstance(destination, list):
        is_list = True
        element_type = scope.model_type_of(e, destination)
        destination.clear()
    elif scope.is_record(destination):
        is_list = False
        element_type = type(destination)
    else:
        raise UnsupportedDestinationError(
            f"unsupported destination {type(destination).__name__}, "
            "should be a list or a record"
        )

    e.rows_affected = 0
    if e.scope.options.query_option:
        e.scope.sql += add_extra_space_if_exist(e.scope.options.query_option)

    e.log_sql(e.scope.sql, e.scope.sql_vars)
    with e.require_driver().query(e.scope.sql, e.scope.sql_vars) as rows:
        for row in rows:
            e.rows_affected += 1
            elem = element_type() if is_list else destination
            scope.scan(rows.columns, row, scope.fields(e, elem))
            if is_list:
                destination.append(elem)

    if e.rows_affected == 0 and not is_list:
        raise RecordNotFoundError()


def after_query(b: Book, e: Engine) -> None:
    """Run the after_find callback if one is registered."""
    _run_optional(b.query, AFTER_FIND, b, e)


# =============================================================================
# Create
# =============================================================================


def before_create(b: Book, e: Engine) -> None:
    _run_optional(b.save, BEFORE_SAVE_HOOK, b, e)
    _run_optional(b.create, BEFORE_CREATE_HOOK, b, e)


def _has_belongs_to(e: Engine) -> bool:
    struct = scope.get_model_struct(e, e.scope.value)
    return any(
        sf.relationship is not None and sf.relationship.kind == BELONGS_TO
        for sf in struct.fields
    )


def create_sql(b: Book, e: Engine) -> None:
    """Build the INSERT statement for the scope's record.

    Runs before_create, the association cascade, timestamps and the
    create statement stage, then wraps the result (and any auxiliary
    statements) in a transaction block.
    """
    _run_optional(b.create, BEFORE_CREATE, b, e)
    if scope.should_save_association(e) and _has_belongs_to(e):
        _run_optional(b.create, SAVE_BEFORE_ASSOCIATION, b, e)
    _run_optional(b.create, UPDATE_TIMESTAMP, b, e)
    b.create.require(CREATE_STATEMENT)(b, e)

    exprs = [x.sql for x in e.scope.exprs] if e.scope.multi_expr else None
    e.scope.sql = wrap_tx(e.scope.sql, exprs)


def create(b: Book, e: Engine) -> None:
    """Synthesize ``INSERT INTO ...`` into scope.sql."""
    value = e.scope.value
    columns: list[str] = []
    placeholders: list[str] = []
    blank_with_default: list[str] = []

    for field in scope.fields(e, value):
        if not scope.changeable_field(e, field):
            continue
        if field.is_normal:
            if field.is_blank and field.has_default_value:
                blank_with_default.append(scope.quote(e, field.db_name))
            elif not field.is_primary_key or not field.is_blank:
                columns.append(scope.quote(e, field.db_name))
                placeholders.append(scope.add_to_vars(e, field.get()))
        elif field.relationship is not None and field.relationship.kind == BELONGS_TO:
            for foreign_key in field.relationship.foreign_db_names:
                foreign_field = scope.field_by_name(e, value, foreign_key)
                if not scope.changeable_field(e, foreign_field):
                    columns.append(scope.quote(e, foreign_field.db_name))
                    placeholders.append(scope.add_to_vars(e, foreign_field.get()))

    e.scope.options.blank_columns_with_default = blank_with_default

    table = scope.quoted_table_name(e, value)
    primary = scope.primary_field(e, value)
    returning_column = scope.quote(e, primary.db_name) if primary else "*"
    suffix = e.dialect.last_insert_id_returning_suffix(table, returning_column)
    extra = e.scope.options.insert_option or ""

    if not columns:
        sql = (
            f"INSERT INTO {table} DEFAULT VALUES"
            f"{add_extra_space_if_exist(extra)}{add_extra_space_if_exist(suffix)}"
        )
    else:
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
            f"{add_extra_space_if_exist(extra)}{add_extra_space_if_exist(suffix)}"
        )
    e.scope.sql = sql.replace(RETURNING_PLACEHOLDER, e.dialect.parameter_marker)


def create_exec(b: Book, e: Engine) -> None:
    """Execute the INSERT and write the generated primary key back.

    Without a returning suffix (or without a primary key) the key comes
    from the driver's last insert id. Otherwise the INSERT runs as a
    single-row query that returns the key.
    """
    value = e.scope.value
    primary = scope.primary_field(e, value)
    table = scope.quoted_table_name(e, value)
    returning_column = scope.quote(e, primary.db_name) if primary else "*"
    suffix = e.dialect.last_insert_id_returning_suffix(table, returning_column)

    if not suffix or primary is None:
        result = _exec_in_transaction(e)
        e.rows_affected = result.rows_affected
        if primary is not None and primary.is_blank:
            if result.last_insert_id is None:
                raise OrmError("driver did not report a last insert id")
            if primary.can_set:
                primary.set(result.last_insert_id)
                e.scope.options.primary_key_generated = True
            else:
                logger.warning(
                    "Cannot write generated key %s into frozen %s",
                    result.last_insert_id,
                    type(value).__name__,
                )
        return

    if not primary.can_set:
        raise UnaddressableFieldError(
            f"cannot write {primary.name} into frozen {type(value).__name__}"
        )
    row = _in_transaction(e, lambda tx, sql, args: tx.query_row(sql, args))
    if row is None:
        raise RecordNotFoundError("insert returned no primary key")
    primary.set(row[0])
    e.scope.options.primary_key_generated = True
    e.rows_affected = 1


def generated_key_update(b: Book, e: Engine) -> None:
    """Persist a driver-assigned key with an UPDATE keyed by rowid.

    Only registered for dialects that set needs_generated_key_update.
    The UPDATE is built by the regular update stages on a cloned engine;
    the dialect then rewrites its key comparison to target the rowid.
    """
    if not e.scope.options.primary_key_generated:
        return
    ne = e.clone()
    ne.scope.value = e.scope.value
    ne.scope.options.ignore_protected_attrs = True
    ne.scope.options.update_interface = to_searchable_map(e.scope.value)

    b.update.require(UPDATE_SQL)(b, ne)
    sql, sql_vars, rewritten = ne.dialect.rewrite_generated_key_update(
        ne.scope.sql, ne.scope.sql_vars
    )
    if rewritten:
        ne.scope.sql = sql
        ne.scope.sql_vars = sql_vars
    b.update.require(UPDATE_EXEC)(b, ne)


def after_create(b: Book, e: Engine) -> None:
    _run_optional(b.create, AFTER_CREATE_HOOK, b, e)
    _run_optional(b.save, AFTER_SAVE_HOOK, b, e)


def create_timestamp(b: Book, e: Engine) -> None:
    """Fill blank created_at/updated_at fields with the current time."""
    value = e.scope.value
    now = e.now()
    for name in (CREATED_AT, UPDATED_AT):
        if scope.has_field(e, value, name):
            field = scope.field_by_name(e, value, name)
            if field.is_blank:
                field.set(now)


def save_before_association(b: Book, e: Engine) -> None:
    """Create belongs-to records first and copy their keys to the owner.

    Each related record is created on a cloned engine, in its own
    transaction. A key that cannot be found on the related record is
    logged and skipped; a failed create aborts the owner's create.
    """
    if not scope.should_save_association(e):
        return
    for field in scope.fields(e, e.scope.value):
        relationship = scope.save_field_as_association(e, field)
        if relationship is None or relationship.kind != BELONGS_TO:
            continue

        related = field.get()
        ne = e.clone()
        ne.scope.value = related
        b.create.require(CREATE_SQL)(b, ne)
        b.create.require(CREATE_EXEC)(b, ne)
        _run_optional(b.create, AFTER_CREATE_EXEC, b, ne)

        pairs = zip(
            relationship.foreign_field_names,
            relationship.association_foreign_db_names,
        )
        for field_name, association_name in pairs:
            try:
                scope.set_column(
                    e, field_name, scope.field_by_name(ne, related, association_name).get()
                )
            except DescriptorLookupError as exc:
                logger.warning(
                    "Skipping foreign key %s.%s: %s",
                    type(e.scope.value).__name__,
                    field_name,
                    exc,
                )


# =============================================================================
# Update
# =============================================================================


def _require_conditions(e: Engine, message: str) -> None:
    if not scope.has_conditions(e, e.scope.value):
        raise PreconditionError(message)


def before_update(b: Book, e: Engine) -> None:
    """Guard against unfiltered updates, then run before-save callbacks."""
    _require_conditions(e, "missing WHERE condition for update")
    if not e.scope.options.update_column:
        _run_optional(b.save, BEFORE_SAVE_HOOK, b, e)
        _run_optional(b.update, BEFORE_UPDATE_HOOK, b, e)


def after_update(b: Book, e: Engine) -> None:
    _require_conditions(e, "missing WHERE condition for update")
    if not e.scope.options.update_column:
        _run_optional(b.update, AFTER_UPDATE_HOOK, b, e)
        _run_optional(b.save, AFTER_SAVE_HOOK, b, e)


def update_timestamp(b: Book, e: Engine) -> None:
    """Set updated_at unless this is a column-only update."""
    if e.scope.options.update_column:
        return
    value = e.scope.value
    if not scope.has_field(e, value, UPDATED_AT):
        return
    now = e.now()
    interface = e.scope.options.update_interface
    if isinstance(interface, dict):
        interface.setdefault(UPDATED_AT, now)
    if scope.is_record(value):
        scope.set_column(e, UPDATED_AT, now)


def assign_updating_attrs(b: Book, e: Engine) -> None:
    """Resolve update_interface into the update_attrs column mapping."""
    attrs = e.scope.options.update_interface
    if attrs is None:
        return
    resolved, has_update = scope.updated_attrs_with_values(e, attrs)
    if has_update:
        e.scope.options.update_attrs = resolved


def update_sql(b: Book, e: Engine) -> None:
    """Synthesize ``UPDATE ... SET ...`` into scope.sql."""
    _run_optional(b.update, ASSIGN_UPDATING_ATTRS, b, e)
    value = e.scope.value
    assignments: list[str] = []

    update_attrs = e.scope.options.update_attrs
    if update_attrs is not None:
        for column, new_value in update_attrs.items():
            assignments.append(
                f"{scope.quote(e, column)} = {scope.add_to_vars(e, new_value)}"
            )
    elif scope.is_record(value):
        for field in scope.fields(e, value):
            if not scope.changeable_field(e, field):
                continue
            if field.is_normal and not field.is_primary_key:
                assignments.append(
                    f"{scope.quote(e, field.db_name)} = {scope.add_to_vars(e, field.get())}"
                )
            elif field.relationship is not None and field.relationship.kind == BELONGS_TO:
                for foreign_key in field.relationship.foreign_db_names:
                    foreign_field = _foreign_field(e, value, foreign_key)
                    if foreign_field is not None and not scope.changeable_field(e, foreign_field):
                        assignments.append(
                            f"{scope.quote(e, foreign_field.db_name)} = "
                            f"{scope.add_to_vars(e, foreign_field.get())}"
                        )

    if not assignments:
        e.scope.sql = ""
        return

    condition = builder.combined_condition(e, value)
    extra = e.scope.options.update_option or ""
    e.scope.sql = wrap_tx(
        f"UPDATE {scope.quoted_table_name(e, value)} SET {', '.join(assignments)}"
        f"{add_extra_space_if_exist(condition)}{add_extra_space_if_exist(extra)}"
    )


def update_exec(b: Book, e: Engine) -> None:
    """Execute the UPDATE in a transaction and record rows affected."""
    if not e.scope.sql:
        raise PreconditionError("missing update sql")
    result = _exec_in_transaction(e)
    e.rows_affected = result.rows_affected


def update(b: Book, e: Engine) -> None:
    """Build then execute an UPDATE."""
    b.update.require(UPDATE_SQL)(b, e)
    b.update.require(UPDATE_EXEC)(b, e)


# =============================================================================
# Delete
# =============================================================================


def before_delete(b: Book, e: Engine) -> None:
    _require_conditions(e, "missing WHERE clause while deleting")
    _run_optional(b.delete, BEFORE_DELETE_HOOK, b, e)


def after_delete(b: Book, e: Engine) -> None:
    _run_optional(b.delete, AFTER_DELETE_HOOK, b, e)


def delete_sql(b: Book, e: Engine) -> None:
    """Synthesize a DELETE, or a soft-delete UPDATE when the table has deleted_at."""
    value = e.scope.value
    table = scope.quoted_table_name(e, value)
    extra = e.scope.options.delete_option or ""

    if e.dialect.has_column(scope.table_name(e, value), DELETED_AT):
        now = scope.add_to_vars(e, e.now())
        condition = builder.combined_condition(e, value)
        sql = (
            f"UPDATE {table} SET {scope.quote(e, DELETED_AT)}={now}"
            f"{add_extra_space_if_exist(condition)}{add_extra_space_if_exist(extra)}"
        )
    else:
        condition = builder.combined_condition(e, value)
        sql = (
            f"DELETE FROM {table}"
            f"{add_extra_space_if_exist(condition)}{add_extra_space_if_exist(extra)}"
        )
    e.scope.sql = wrap_tx(sql)


def delete(b: Book, e: Engine) -> None:
    """Run before_delete, delete_sql, the DELETE itself, then after_delete."""
    b.delete.require(BEFORE_DELETE)(b, e)
    b.delete.require(DELETE_SQL)(b, e)
    result = _exec_in_transaction(e)
    e.rows_affected = result.rows_affected
    b.delete.require(AFTER_DELETE)(b, e)
