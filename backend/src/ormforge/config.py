"""Database configuration and driver factory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from ormforge.dialects import get_dialect
from ormforge.dialects.base import BaseDialect
from ormforge.errors import ConfigurationError

if TYPE_CHECKING:
    from ormforge.db import DB
    from ormforge.drivers.base import Driver

logger = logging.getLogger(__name__)

DEFAULT_URL = "sqlite:///:memory:"

_TRUE_VALUES = {"1", "true", "yes", "on"}

# URL backend name (and optional +driver) -> dialect name
_SCHEMES = {
    ("sqlite", None): "sqlite",
    ("sqlite", "pysqlite"): "sqlite",
    ("sqlite", "rowid"): "sqlite-rowid",
    ("postgresql", None): "postgresql",
    ("postgresql", "psycopg"): "postgresql",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:///, sqlite+rowid:/// and postgresql:// URL schemes.
    """

    url: str = DEFAULT_URL
    singular_table: bool = False
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. ORMFORGE_DATABASE_URL env var
        2. DATABASE_URL env var (standard)
        3. ORMFORGE_DB_PATH env var (converted to sqlite:/// URL)
        4. Default: in-memory SQLite
        """
        url = os.environ.get("ORMFORGE_DATABASE_URL") or os.environ.get("DATABASE_URL")
        if not url:
            db_path = os.environ.get("ORMFORGE_DB_PATH")
            url = f"sqlite:///{db_path}" if db_path else DEFAULT_URL

        return cls(
            url=url,
            singular_table=_as_bool(os.environ.get("ORMFORGE_SINGULAR_TABLE", "")),
            log_level=os.environ.get("ORMFORGE_LOG_LEVEL", "WARNING").upper(),
        )

    @classmethod
    def from_file(cls, path: Path | str) -> DatabaseConfig:
        """Load config from a YAML file with url/singular_table/log_level keys."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: expected a mapping at the top level")

        unknown = set(data) - {"url", "singular_table", "log_level"}
        if unknown:
            raise ConfigurationError(
                f"{path}: unknown config keys: {', '.join(sorted(unknown))}"
            )
        return cls(
            url=data.get("url", DEFAULT_URL),
            singular_table=_as_bool(data.get("singular_table", False)),
            log_level=str(data.get("log_level", "WARNING")).upper(),
        )

    @property
    def dialect_name(self) -> str:
        """Dialect selected by the URL scheme."""
        try:
            url = make_url(self.url)
        except ArgumentError as exc:
            raise ConfigurationError(f"Invalid database URL: {self.url}") from exc
        backend = url.get_backend_name()
        driver = url.drivername.partition("+")[2] or None
        try:
            return _SCHEMES[(backend, driver)]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported database URL scheme: {url.drivername}"
            ) from None

    @property
    def sqlite_path(self) -> str:
        """Database file of a sqlite URL, ``:memory:`` when empty."""
        return make_url(self.url).database or ":memory:"


def configure_logging(config: DatabaseConfig) -> None:
    """Apply config.log_level to the ormforge logger."""
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {config.log_level}")
    logging.getLogger("ormforge").setLevel(level)


def create_driver(config: DatabaseConfig) -> tuple[BaseDialect, Driver]:
    """Connect a driver and bind a dialect to it based on the URL scheme.

    Raises:
        ConfigurationError: For unsupported URL schemes.
    """
    name = config.dialect_name
    if name.startswith("sqlite"):
        from ormforge.drivers.sqlite import SQLiteDriver

        driver: Driver = SQLiteDriver.connect(config.sqlite_path)
    else:
        from ormforge.drivers.postgresql import PsycopgDriver

        driver = PsycopgDriver.connect(config.url)

    logger.info("Connected %s database", name)
    return get_dialect(name, driver), driver


def open_db(config: DatabaseConfig | str | None = None) -> DB:
    """Open a database and return a DB facade bound to it.

    Accepts a DatabaseConfig, a URL, or nothing (environment config).
    """
    from ormforge.db import DB

    if config is None:
        config = DatabaseConfig.from_env()
    elif isinstance(config, str):
        config = DatabaseConfig(url=config)

    configure_logging(config)
    dialect, driver = create_driver(config)
    return DB(dialect, driver, singular_table=config.singular_table)
