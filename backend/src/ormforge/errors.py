"""Error types raised by the ormforge execution core.

Errors fall into a small taxonomy:
- configuration: a required pipeline stage is not registered
- precondition: a mutation without any filter condition
- shape: unsupported query destination, unaddressable record
- not found: zero rows for a singular destination

Driver errors (sqlite3.Error, psycopg.Error) are never wrapped; they
propagate unchanged after the open transaction is rolled back.
"""


class OrmError(Exception):
    """Base class for all ormforge errors."""


class ConfigurationError(OrmError):
    """Invalid database configuration (unknown URL scheme, bad config file)."""


class MissingHookError(OrmError):
    """A mandatory pipeline stage is not registered in the Book."""

    def __init__(self, chain: str, stage: str):
        self.chain = chain
        self.stage = stage
        super().__init__(f"missing {chain} {stage} hook")


class PreconditionError(OrmError):
    """An Update or Delete was attempted without a filter condition."""


class UnsupportedDestinationError(OrmError):
    """Query destination is neither a record nor a list of records."""


class UnaddressableFieldError(OrmError):
    """A field value cannot be written back into the record."""


class RecordNotFoundError(OrmError):
    """A query for a single record returned no rows."""

    def __init__(self, message: str = "record not found"):
        super().__init__(message)


class DescriptorLookupError(OrmError):
    """The record's shape is not recognized or a field does not exist."""
