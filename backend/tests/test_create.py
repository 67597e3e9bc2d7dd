"""Tests for the create pipeline against SQLite."""

import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

import pytest

from ormforge.db import DB
from ormforge.dialects import get_dialect
from ormforge.errors import MissingHookError
from ormforge.hooks.types import (
    AFTER_CREATE_HOOK,
    AFTER_SAVE_HOOK,
    BEFORE_CREATE_HOOK,
    BEFORE_SAVE_HOOK,
    CREATE_STATEMENT,
)
from ormforge.model import Expr, column
from ormforge.util import unwrap_tx


@dataclass
class Foo:
    id: int = 0
    stuff: str = ""


@dataclass
class Account:
    id: int = 0
    name: str = ""
    role: str = column(default="", has_default=True)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class FrozenFoo:
    __tablename__ = "foos"

    id: int = 0
    stuff: str = ""


def _count(driver, table):
    return driver.query_row(f"SELECT count(*) FROM {table}", [])[0]


# =============================================================================
# SQL synthesis
# =============================================================================


class TestCreateSQL:
    def test_blank_primary_key_is_omitted(self, db):
        expr = db.create_sql(Foo(stuff="x"))
        assert unwrap_tx(expr.sql) == ['INSERT INTO "foos" ("stuff") VALUES (?1)']
        assert expr.args == ["x"]

    def test_wrapped_in_transaction_block(self, db):
        sql = db.create_sql(Foo(stuff="x")).sql
        assert sql.startswith("BEGIN TRANSACTION;\n")
        assert sql.endswith("\nCOMMIT;")

    def test_explicit_primary_key_is_bound(self, db):
        expr = db.create_sql(Foo(id=10, stuff="twenty"))
        assert unwrap_tx(expr.sql) == ['INSERT INTO "foos" ("id", "stuff") VALUES (?1, ?2)']
        assert expr.args == [10, "twenty"]

    def test_blank_column_with_default_is_omitted(self, db):
        expr = db.create_sql(Account(name="ada"))
        statement = unwrap_tx(expr.sql)[0]
        assert '"role"' not in statement
        assert '"name"' in statement

    def test_non_blank_column_with_default_is_bound(self, db):
        expr = db.create_sql(Account(name="ada", role="admin"))
        assert '"role"' in unwrap_tx(expr.sql)[0]
        assert "admin" in expr.args

    def test_timestamps_filled_when_blank(self, db):
        account = Account(name="ada")
        db.create_sql(account)
        assert isinstance(account.created_at, datetime)
        assert account.updated_at == account.created_at

    def test_existing_timestamp_kept(self, db):
        stamp = datetime(2020, 1, 2, 3, 4, 5)
        account = Account(name="ada", created_at=stamp)
        db.create_sql(account)
        assert account.created_at == stamp

    def test_default_values_when_no_columns(self, db):
        expr = db.omit("stuff").create_sql(Foo())
        assert unwrap_tx(expr.sql) == ['INSERT INTO "foos" DEFAULT VALUES']
        assert expr.args == []

    def test_insert_option_appended(self, db):
        expr = db.set_options(insert_option="ON CONFLICT DO NOTHING").create_sql(Foo(stuff="x"))
        assert unwrap_tx(expr.sql)[0].endswith("VALUES (?1) ON CONFLICT DO NOTHING")

    def test_select_restricts_columns(self, db):
        expr = db.select("stuff").create_sql(Foo(id=3, stuff="x"))
        assert unwrap_tx(expr.sql) == ['INSERT INTO "foos" ("stuff") VALUES (?1)']

    def test_singular_table(self, db):
        db.singular_table(True)
        expr = db.create_sql(Foo(stuff="x"))
        assert 'INSERT INTO "foo" ' in expr.sql

    def test_missing_statement_stage(self, db):
        db.book.create.remove(CREATE_STATEMENT)
        with pytest.raises(MissingHookError, match="missing create create hook"):
            db.create_sql(Foo(stuff="x"))


# =============================================================================
# Execution
# =============================================================================


class TestCreate:
    def test_last_insert_id_written_back(self, db, sqlite_driver):
        foo = Foo(id=0, stuff="x")
        db.create(foo)
        assert foo.id != 0
        assert db.rows_affected == 1
        assert _count(sqlite_driver, "foos") == 1
        row = sqlite_driver.query_row("SELECT id, stuff FROM foos", [])
        assert row == (foo.id, "x")

    def test_ids_increase(self, db):
        first, second = Foo(stuff="a"), Foo(stuff="b")
        db.create(first)
        db.create(second)
        assert second.id == first.id + 1

    def test_explicit_id_kept(self, db):
        foo = Foo(id=42, stuff="x")
        db.create(foo)
        assert foo.id == 42

    def test_database_default_applied(self, db):
        account = Account(name="ada")
        db.create(account)

        loaded = Account()
        db.first(loaded, account.id)
        assert loaded.role == "member"
        assert isinstance(loaded.created_at, datetime)

    def test_driver_error_rolls_back(self, db, sqlite_driver):
        with pytest.raises(sqlite3.IntegrityError):
            db.create(Foo(stuff=None))
        assert not sqlite_driver.conn.in_transaction
        assert _count(sqlite_driver, "foos") == 0

    def test_frozen_record_with_explicit_key(self, db, sqlite_driver):
        db.create(FrozenFoo(id=5, stuff="x"))
        assert _count(sqlite_driver, "foos") == 1

    def test_auxiliary_statements_run_first_in_same_transaction(self, db, sqlite_driver):
        @db.book.create.hook(BEFORE_CREATE_HOOK)
        def audit(b, e):
            e.scope.add_expr(Expr('INSERT INTO "audits" ("note") VALUES (?1)', ["made foo"]))

        foo = Foo(stuff="x")
        db.create(foo)
        assert sqlite_driver.query_row("SELECT note FROM audits", []) == ("made foo",)
        assert foo.id == 1
        assert _count(sqlite_driver, "foos") == 1

    def test_failing_auxiliary_statement_aborts_insert(self, db, sqlite_driver):
        @db.book.create.hook(BEFORE_CREATE_HOOK)
        def broken(b, e):
            e.scope.add_expr(Expr("INSERT INTO missing_table VALUES (?1)", [1]))

        with pytest.raises(sqlite3.OperationalError):
            db.create(Foo(stuff="x"))
        assert _count(sqlite_driver, "foos") == 0


# =============================================================================
# Callbacks
# =============================================================================


class TestCreateCallbacks:
    def test_callback_order(self, db):
        calls = []
        db.book.save.register(BEFORE_SAVE_HOOK, lambda b, e: calls.append("before_save"))
        db.book.create.register(BEFORE_CREATE_HOOK, lambda b, e: calls.append("before_create"))
        db.book.create.register(AFTER_CREATE_HOOK, lambda b, e: calls.append("after_create"))
        db.book.save.register(AFTER_SAVE_HOOK, lambda b, e: calls.append("after_save"))

        db.create(Foo(stuff="x"))
        assert calls == ["before_save", "before_create", "after_create", "after_save"]

    def test_before_create_hook_can_modify_record(self, db, sqlite_driver):
        @db.book.create.hook(BEFORE_CREATE_HOOK)
        def shout(b, e):
            e.scope.value.stuff = e.scope.value.stuff.upper()

        db.create(Foo(stuff="quiet"))
        assert sqlite_driver.query_row("SELECT stuff FROM foos", []) == ("QUIET",)

    def test_after_create_hook_sees_generated_key(self, db):
        seen = []
        db.book.create.register(AFTER_CREATE_HOOK, lambda b, e: seen.append(e.scope.value.id))
        foo = Foo(stuff="x")
        db.create(foo)
        assert seen == [foo.id]

    def test_failing_before_hook_prevents_insert(self, db, sqlite_driver):
        def refuse(b, e):
            raise ValueError("not allowed")

        db.book.create.register(BEFORE_CREATE_HOOK, refuse)
        with pytest.raises(ValueError, match="not allowed"):
            db.create(Foo(stuff="x"))
        assert _count(sqlite_driver, "foos") == 0


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentCreate:
    def test_threads_share_one_driver(self, file_driver):
        db = DB(get_dialect("sqlite", file_driver), file_driver)

        def insert_many(worker):
            records = [Foo(stuff=f"{worker}-{i}") for i in range(50)]
            for record in records:
                db.create(record)
            return records

        with ThreadPoolExecutor(max_workers=4) as pool:
            created = [r for batch in pool.map(insert_many, range(4)) for r in batch]

        assert _count(file_driver, "foos") == 200
        assert len({r.id for r in created}) == 200
        assert not file_driver.conn.in_transaction

    def test_failed_transaction_releases_driver(self, file_driver):
        db = DB(get_dialect("sqlite", file_driver), file_driver)
        with pytest.raises(sqlite3.IntegrityError):
            db.create(Foo(stuff=None))

        worker = threading.Thread(target=db.create, args=(Foo(stuff="after"),), daemon=True)
        worker.start()
        worker.join(timeout=5)
        assert not worker.is_alive()
        assert _count(file_driver, "foos") == 1
