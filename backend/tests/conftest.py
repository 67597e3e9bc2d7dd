"""Shared fixtures: in-memory SQLite databases and a recording fake driver."""

import sqlite3

import pytest

from ormforge.db import DB
from ormforge.dialects import get_dialect
from ormforge.drivers.base import ExecResult, Rows
from ormforge.drivers.sqlite import SQLiteDriver


SCHEMA = """
CREATE TABLE foos (id INTEGER PRIMARY KEY, stuff TEXT NOT NULL DEFAULT '');
CREATE TABLE accounts (
    id INTEGER PRIMARY KEY,
    name TEXT,
    role TEXT DEFAULT 'member',
    created_at TEXT,
    updated_at TEXT
);
CREATE TABLE notes (
    id INTEGER PRIMARY KEY,
    body TEXT,
    deleted_at TEXT
);
CREATE TABLE profiles (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name TEXT,
    profile_id INTEGER REFERENCES profiles (id)
);
CREATE TABLE audits (id INTEGER PRIMARY KEY, note TEXT);
"""

# Same tables without INTEGER PRIMARY KEY: the engine key is the hidden rowid.
ROWID_SCHEMA = """
CREATE TABLE foos (id INTEGER, stuff TEXT NOT NULL DEFAULT '');
CREATE TABLE profiles (id INTEGER, name TEXT);
CREATE TABLE users (id INTEGER, name TEXT, profile_id INTEGER);
"""


def _driver(schema: str) -> SQLiteDriver:
    conn = sqlite3.connect(":memory:")
    conn.executescript(schema)
    return SQLiteDriver(conn)


@pytest.fixture
def sqlite_driver():
    driver = _driver(SCHEMA)
    yield driver
    driver.close()


@pytest.fixture
def file_driver(tmp_path):
    """SQLite database file shared across threads."""
    driver = SQLiteDriver.connect(tmp_path / "app.db")
    driver.conn.executescript(SCHEMA)
    yield driver
    driver.close()


@pytest.fixture
def db(sqlite_driver):
    """DB facade over an in-memory SQLite database."""
    return DB(get_dialect("sqlite", sqlite_driver), sqlite_driver)


@pytest.fixture
def rowid_driver():
    driver = _driver(ROWID_SCHEMA)
    yield driver
    driver.close()


@pytest.fixture
def rowid_db(rowid_driver):
    """DB facade over SQLite tables keyed by the hidden rowid."""
    return DB(get_dialect("sqlite-rowid", rowid_driver), rowid_driver)


# =============================================================================
# Recording fake driver
# =============================================================================


class FakeCursor:
    def __init__(self, columns, rows):
        self.description = [(c,) for c in columns]
        self._rows = list(rows)

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def close(self):
        pass


class FakeTransaction:
    def __init__(self, driver):
        self.driver = driver
        driver.log.append(("BEGIN", []))

    def exec(self, sql, args):
        self.driver.log.append((sql, list(args)))
        if self.driver.fail_on and self.driver.fail_on in sql:
            raise RuntimeError("boom")
        return ExecResult(rows_affected=self.driver.rows_affected, last_insert_id=self.driver.last_insert_id)

    def query_row(self, sql, args):
        self.driver.log.append((sql, list(args)))
        return self.driver.returning_row

    def commit(self):
        if self.driver.fail_commit:
            self.driver.log.append(("COMMIT-FAILED", []))
            raise RuntimeError("commit failed")
        self.driver.log.append(("COMMIT", []))

    def rollback(self):
        self.driver.log.append(("ROLLBACK", []))


class FakeDriver:
    """Records every statement instead of talking to a database.

    Column existence checks answer from ``columns`` (table, column) pairs.
    """

    def __init__(self):
        self.log = []
        self.columns = set()
        self.rows_affected = 1
        self.last_insert_id = 1
        self.returning_row = (1,)
        self.result_columns = []
        self.result_rows = []
        self.fail_on = None
        self.fail_commit = False

    @property
    def statements(self):
        return [sql for sql, _ in self.log]

    def begin(self):
        return FakeTransaction(self)

    def exec(self, sql, args):
        self.log.append((sql, list(args)))
        return ExecResult(rows_affected=self.rows_affected)

    def query(self, sql, args):
        self.log.append((sql, list(args)))
        return Rows(FakeCursor(self.result_columns, self.result_rows))

    def query_row(self, sql, args):
        if "count(*)" in sql and ("pragma_table_info" in sql or "information_schema" in sql):
            table, column = args[0], args[-1]
            return (1 if (table, column) in self.columns else 0,)
        self.log.append((sql, list(args)))
        return self.returning_row

    def close(self):
        pass


@pytest.fixture
def fake_driver():
    return FakeDriver()
