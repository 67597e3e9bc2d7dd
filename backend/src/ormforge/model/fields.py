"""Field descriptors bound to a live record instance."""

from __future__ import annotations

import dataclasses
import types
import typing
from datetime import date, datetime
from typing import Any

from ormforge.errors import UnaddressableFieldError
from ormforge.model.schema import Relationship, StructField


def is_blank(value: Any) -> bool:
    """Return True if value is the zero value of its type."""
    if value is None:
        return True
    if isinstance(value, bool):
        return value is False
    if isinstance(value, (int, float, complex)):
        return value == 0
    if isinstance(value, (str, bytes, bytearray, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return all(is_blank(getattr(value, f.name)) for f in dataclasses.fields(value))
    return False


def coerce(value: Any, annotation: Any) -> Any:
    """Convert a scanned column value to the field's declared type.

    Only the conversions drivers commonly leave undone are handled:
    SQLite returns booleans as integers and timestamps as ISO strings.
    """
    if value is None:
        return None
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            annotation = args[0]
    if annotation is bool and isinstance(value, int):
        return bool(value)
    if annotation is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if annotation is date and isinstance(value, str):
        return date.fromisoformat(value)
    if annotation is int and isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    return value


class Field:
    """Accessor/mutator for one field of a specific record instance."""

    def __init__(self, struct_field: StructField, instance: Any):
        self.struct_field = struct_field
        self.instance = instance
        self.is_blank = is_blank(self.get())

    def __repr__(self) -> str:
        return f"Field({self.name!r}, db_name={self.db_name!r}, blank={self.is_blank})"

    @property
    def name(self) -> str:
        return self.struct_field.name

    @property
    def db_name(self) -> str:
        return self.struct_field.db_name

    @property
    def is_normal(self) -> bool:
        return self.struct_field.is_normal

    @property
    def is_primary_key(self) -> bool:
        return self.struct_field.is_primary_key

    @property
    def has_default_value(self) -> bool:
        return self.struct_field.has_default_value

    @property
    def is_ignored(self) -> bool:
        return self.struct_field.is_ignored

    @property
    def relationship(self) -> Relationship | None:
        return self.struct_field.relationship

    @property
    def can_set(self) -> bool:
        """False when the record cannot be written to (frozen dataclass)."""
        params = getattr(type(self.instance), "__dataclass_params__", None)
        return not (params is not None and params.frozen)

    def get(self) -> Any:
        return getattr(self.instance, self.name)

    def set(self, value: Any) -> None:
        """Write value into the record and refresh the blank flag."""
        if not self.can_set:
            raise UnaddressableFieldError(
                f"cannot set {type(self.instance).__name__}.{self.name}: record is frozen"
            )
        value = coerce(value, self.struct_field.annotation)
        setattr(self.instance, self.name, value)
        self.is_blank = is_blank(value)
