"""Dialects - per-backend quoting, placeholders and capability checks."""

from __future__ import annotations

from ormforge.dialects.base import RETURNING_PLACEHOLDER, BaseDialect, Dialect
from ormforge.dialects.postgresql import PostgreSQLDialect
from ormforge.dialects.sqlite import SQLiteDialect, SQLiteRowidDialect
from ormforge.drivers.base import Driver
from ormforge.errors import ConfigurationError

DIALECTS: dict[str, type[BaseDialect]] = {
    SQLiteDialect.name: SQLiteDialect,
    SQLiteRowidDialect.name: SQLiteRowidDialect,
    PostgreSQLDialect.name: PostgreSQLDialect,
}


def get_dialect(name: str, driver: Driver | None = None) -> BaseDialect:
    """Create a dialect by name, bound to an optional driver handle."""
    try:
        dialect_cls = DIALECTS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported dialect '{name}'. Available: {', '.join(sorted(DIALECTS))}"
        ) from None
    return dialect_cls(driver)


__all__ = [
    "BaseDialect",
    "DIALECTS",
    "Dialect",
    "PostgreSQLDialect",
    "RETURNING_PLACEHOLDER",
    "SQLiteDialect",
    "SQLiteRowidDialect",
    "get_dialect",
]
