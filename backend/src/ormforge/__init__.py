"""ormforge: mutation and query execution core for dataclass records."""

from ormforge.config import DatabaseConfig, open_db
from ormforge.db import DB
from ormforge.engine import Engine
from ormforge.errors import (
    ConfigurationError,
    DescriptorLookupError,
    MissingHookError,
    OrmError,
    PreconditionError,
    RecordNotFoundError,
    UnaddressableFieldError,
    UnsupportedDestinationError,
)
from ormforge.hooks import Book, default_book
from ormforge.model import column

open = open_db

__all__ = [
    "Book",
    "ConfigurationError",
    "DB",
    "DatabaseConfig",
    "DescriptorLookupError",
    "Engine",
    "MissingHookError",
    "OrmError",
    "PreconditionError",
    "RecordNotFoundError",
    "UnaddressableFieldError",
    "UnsupportedDestinationError",
    "column",
    "default_book",
    "open",
    "open_db",
]
