"""Driver handles - thin transactional wrappers over DB-API connections."""

from ormforge.drivers.base import Driver, ExecResult, Rows, Transaction
from ormforge.drivers.sqlite import SQLiteDriver

__all__ = ["Driver", "ExecResult", "Rows", "SQLiteDriver", "Transaction"]
