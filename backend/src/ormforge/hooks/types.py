"""Pipeline stage types and stage names.

Stage names are grouped by chain. Names ending in ``_hook`` (and
``after_find``) are user callback slots: they are optional and run
from inside the built-in stages. The remaining names are built-in
stages that the orchestration functions look up by name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from ormforge.engine import Engine
    from ormforge.hooks.registry import Book

# Stage signature: (Book, Engine) -> None; errors are raised.
StageFn = Callable[["Book", "Engine"], None]

QUERY = "query"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"
SAVE = "save"

CHAINS = (QUERY, CREATE, UPDATE, DELETE, SAVE)

# Query chain
QUERY_SQL = "query_sql"
QUERY_EXEC = "query_exec"
AFTER_QUERY = "after_query"
AFTER_FIND = "after_find"

# Create chain
CREATE_SQL = "create_sql"
CREATE_EXEC = "create_exec"
BEFORE_CREATE = "before_create"
SAVE_BEFORE_ASSOCIATION = "save_before_association"
UPDATE_TIMESTAMP = "update_timestamp"
CREATE_STATEMENT = "create"
AFTER_CREATE_EXEC = "after_create_exec"
AFTER_CREATE = "after_create"
BEFORE_CREATE_HOOK = "before_create_hook"
AFTER_CREATE_HOOK = "after_create_hook"

# Update chain
UPDATE_SQL = "update_sql"
UPDATE_EXEC = "update_exec"
BEFORE_UPDATE = "before_update"
AFTER_UPDATE = "after_update"
ASSIGN_UPDATING_ATTRS = "assign_updating_attrs"
BEFORE_UPDATE_HOOK = "before_update_hook"
AFTER_UPDATE_HOOK = "after_update_hook"

# Delete chain
BEFORE_DELETE = "before_delete"
DELETE_SQL = "delete_sql"
AFTER_DELETE = "after_delete"
BEFORE_DELETE_HOOK = "before_delete_hook"
AFTER_DELETE_HOOK = "after_delete_hook"

# Save chain
BEFORE_SAVE_HOOK = "before_save_hook"
AFTER_SAVE_HOOK = "after_save_hook"

# Stages the orchestration functions cannot run without.
REQUIRED_STAGES: dict[str, tuple[str, ...]] = {
    QUERY: (QUERY_SQL, QUERY_EXEC),
    CREATE: (CREATE_SQL, CREATE_STATEMENT, CREATE_EXEC),
    UPDATE: (BEFORE_UPDATE, UPDATE_SQL, UPDATE_EXEC, AFTER_UPDATE),
    DELETE: (BEFORE_DELETE, DELETE_SQL, AFTER_DELETE),
    SAVE: (),
}
