"""Tests for the sqlite-rowid dialect and its post-create key fixup."""

from dataclasses import dataclass

import pytest

from ormforge.dialects import get_dialect
from ormforge.dialects.sqlite import SQLiteRowidDialect, to_signed_int64
from ormforge.hooks.types import AFTER_CREATE_EXEC
from ormforge.util import unwrap_tx


@dataclass
class Foo:
    id: int = 0
    stuff: str = ""


@dataclass
class Profile:
    id: int = 0
    name: str = ""


@dataclass
class User:
    id: int = 0
    name: str = ""
    profile: Profile | None = None
    profile_id: int = 0


# =============================================================================
# Rewrite
# =============================================================================


class TestRewriteGeneratedKeyUpdate:
    @pytest.fixture
    def dialect(self):
        return SQLiteRowidDialect()

    def test_rewrites_last_key_comparison(self, dialect):
        sql = "UPDATE foos SET id = ?1, stuff = ?2 WHERE id = ?3"
        rewritten, args, ok = dialect.rewrite_generated_key_update(sql, [7, "x", 7])
        assert ok
        assert rewritten == "UPDATE foos SET id = ?1, stuff = ?2 WHERE rowid = ?3"
        assert args == [7, "x", 7]

    def test_no_where_is_noop(self, dialect):
        sql = "UPDATE foos SET id = ?1"
        assert dialect.rewrite_generated_key_update(sql, [1]) == (sql, [1], False)

    def test_key_comparison_before_where_is_noop(self, dialect):
        sql = "UPDATE foos SET id = ?1 WHERE stuff = ?2"
        assert dialect.rewrite_generated_key_update(sql, [1, "x"]) == (sql, [1, "x"], False)

    def test_no_key_comparison_is_noop(self, dialect):
        sql = "UPDATE foos SET stuff = ?1 WHERE name = ?2"
        _, _, ok = dialect.rewrite_generated_key_update(sql, ["x", "y"])
        assert not ok

    def test_unsigned_key_coerced_to_signed(self, dialect):
        sql = "UPDATE foos SET stuff = ?1 WHERE id = ?2"
        _, args, ok = dialect.rewrite_generated_key_update(sql, ["x", 2**64 - 1])
        assert ok
        assert args == ["x", -1]

    def test_input_args_not_mutated(self, dialect):
        args = ["x", 2**64 - 1]
        dialect.rewrite_generated_key_update("UPDATE t SET a = ?1 WHERE id = ?2", args)
        assert args == ["x", 2**64 - 1]

    def test_missing_bind_variable(self, dialect):
        with pytest.raises(ValueError):
            dialect.rewrite_generated_key_update("UPDATE t SET a = 1 WHERE id = 5", [])

    def test_to_signed_int64(self):
        assert to_signed_int64(5) == 5
        assert to_signed_int64(2**63 - 1) == 2**63 - 1
        assert to_signed_int64(2**63) == -(2**63)
        assert to_signed_int64("5") == "5"
        assert to_signed_int64(True) is True


# =============================================================================
# Dialect behaviour
# =============================================================================


class TestRowidDialect:
    def test_identifiers_unquoted_and_unqualified(self, rowid_db):
        expr = rowid_db.save_sql(Foo(id=3, stuff="x"))
        assert unwrap_tx(expr.sql) == ["UPDATE foos SET stuff = ?1 WHERE id = ?2"]

    def test_fixup_registered(self, rowid_db):
        assert rowid_db.book.create.is_registered(AFTER_CREATE_EXEC)

    def test_other_dialects_do_not_need_fixup(self):
        assert not get_dialect("sqlite").needs_generated_key_update
        assert not get_dialect("postgresql").needs_generated_key_update


# =============================================================================
# Post-create fixup
# =============================================================================


class TestGeneratedKeyUpdate:
    def test_generated_key_persisted_to_id_column(self, rowid_db, rowid_driver):
        foo = Foo(stuff="x")
        rowid_db.create(foo)

        assert foo.id != 0
        row = rowid_driver.query_row("SELECT rowid, id, stuff FROM foos", [])
        assert row == (foo.id, foo.id, "x")

    def test_record_found_by_id_after_create(self, rowid_db):
        first, second = Foo(stuff="a"), Foo(stuff="b")
        rowid_db.create(first)
        rowid_db.create(second)

        out = Foo()
        rowid_db.first(out, second.id)
        assert out == second

    def test_explicit_id_skips_fixup(self, rowid_db, rowid_driver):
        foo = Foo(id=42, stuff="x")
        rowid_db.create(foo)
        assert foo.id == 42
        assert rowid_driver.query_row("SELECT rowid, id FROM foos", []) == (1, 42)

    def test_fixup_runs_for_nested_create(self, rowid_db, rowid_driver):
        user = User(name="ada", profile=Profile(name="main"))
        rowid_db.create(user)

        assert rowid_driver.query_row("SELECT id FROM profiles", []) == (user.profile.id,)
        assert rowid_driver.query_row("SELECT id, profile_id FROM users", []) == (
            user.id,
            user.profile.id,
        )

    def test_update_after_create_targets_id(self, rowid_db, rowid_driver):
        foo = Foo(stuff="x")
        rowid_db.create(foo)
        rowid_db.model(foo).update("stuff", "y")
        assert rowid_driver.query_row("SELECT stuff FROM foos WHERE id = ?1", [foo.id]) == ("y",)
