"""Engine: binds a Scope to a dialect and a driver handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from ormforge.dialects.base import Dialect
from ormforge.drivers.base import Driver
from ormforge.model.schema import StructMap
from ormforge.model.scope import Scope, Search

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Engine:
    """Execution context for one logical database operation.

    dialect, driver and struct_map are shared read-only collaborators;
    scope, search and rows_affected belong to this engine alone.
    """

    dialect: Dialect
    driver: Driver | None = None
    struct_map: StructMap = field(default_factory=StructMap)
    scope: Scope = field(default_factory=Scope)
    search: Search = field(default_factory=Search)
    singular_table: bool = False
    rows_affected: int = 0
    now_func: Callable[[], datetime] = utc_now

    def clone(self) -> "Engine":
        """Open a nested unit of work with fresh request state."""
        return Engine(
            dialect=self.dialect,
            driver=self.driver,
            struct_map=self.struct_map,
            singular_table=self.singular_table,
            now_func=self.now_func,
        )

    def now(self) -> datetime:
        return self.now_func()

    def require_driver(self) -> Driver:
        if self.driver is None:
            raise RuntimeError("Database not connected")
        return self.driver

    def log_sql(self, sql: str, args: list[Any]) -> None:
        logger.debug("%s [%d vars]", sql, len(args))
