"""Record metadata, field descriptors and per-request scope state."""

from ormforge.model.fields import Field, is_blank
from ormforge.model.schema import (
    BELONGS_TO,
    HAS_ONE,
    ColumnOptions,
    ModelStruct,
    Relationship,
    StructField,
    StructMap,
    column,
)
from ormforge.model.scope import Expr, Scope, ScopeOptions, Search

__all__ = [
    "BELONGS_TO",
    "HAS_ONE",
    "ColumnOptions",
    "Expr",
    "Field",
    "ModelStruct",
    "Relationship",
    "Scope",
    "ScopeOptions",
    "Search",
    "StructField",
    "StructMap",
    "column",
    "is_blank",
]
