"""Operations on the Scope of an Engine.

These helpers resolve field descriptors for the record a scope
addresses, quote identifiers through the dialect and collect bind
variables. Stages in ormforge.hooks use them to build SQL.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable

from ormforge.engine import Engine
from ormforge.errors import DescriptorLookupError
from ormforge.model.fields import Field, is_blank
from ormforge.model.schema import ModelStruct, Relationship
from ormforge.util import to_searchable_map


def is_record(value: Any) -> bool:
    """A record instance, as opposed to a record type or a plain value."""
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def model_type_of(e: Engine, value: Any) -> type:
    """Return the record type a value addresses.

    Lists resolve through the scope's destination_type or, failing
    that, the type of their first element.
    """
    if isinstance(value, type) and dataclasses.is_dataclass(value):
        return value
    if dataclasses.is_dataclass(value):
        return type(value)
    if isinstance(value, list):
        if e.scope.options.destination_type is not None:
            return e.scope.options.destination_type
        if value and dataclasses.is_dataclass(value[0]):
            return type(value[0])
        raise DescriptorLookupError(
            "cannot determine the record type of an empty list; "
            "pass the model type explicitly"
        )
    raise DescriptorLookupError(f"unsupported record value {type(value).__name__}")


def get_model_struct(e: Engine, value: Any) -> ModelStruct:
    return e.struct_map.get(model_type_of(e, value))


def fields(e: Engine, value: Any) -> list[Field]:
    """Derive field descriptors bound to a record instance."""
    if isinstance(value, type) or not dataclasses.is_dataclass(value):
        raise DescriptorLookupError(
            f"expected a record instance, got {type(value).__name__}"
        )
    struct = e.struct_map.get(type(value))
    return [Field(sf, value) for sf in struct.fields]


def primary_fields(e: Engine, value: Any) -> list[Field]:
    return [f for f in fields(e, value) if f.is_primary_key]


def primary_field(e: Engine, value: Any) -> Field | None:
    """Return the primary key field, preferring one named ``id``."""
    pks = primary_fields(e, value)
    if len(pks) > 1:
        for f in pks:
            if f.db_name == "id":
                return f
    return pks[0] if pks else None


def primary_db_name(e: Engine, value: Any) -> str | None:
    """Primary key column of a record type, without needing an instance."""
    pks = get_model_struct(e, value).primary_fields
    for sf in pks:
        if sf.db_name == "id":
            return sf.db_name
    return pks[0].db_name if pks else None


def field_by_name(e: Engine, value: Any, name: str) -> Field:
    """Find a field by attribute name or column name."""
    descriptors = fields(e, value)
    for f in descriptors:
        if f.name == name:
            return f
    for f in descriptors:
        if f.db_name == name:
            return f
    raise DescriptorLookupError(f"{type(value).__name__} has no field {name!r}")


def changeable_field(e: Engine, field: Field) -> bool:
    """Whether a field may be written by the current operation.

    Select restricts writes to the named fields, Omit excludes them.
    """
    if field.is_ignored:
        return False
    selects = e.search.selects
    if selects:
        return field.name in selects or field.db_name in selects
    omits = e.search.omits
    return not (field.name in omits or field.db_name in omits)


def _filters_rows(e: Engine, query: Any) -> bool:
    # Empty mappings, blank records and blank SQL render no condition.
    if isinstance(query, str):
        return bool(query.strip())
    if isinstance(query, dict):
        return bool(query)
    if is_record(query):
        return any(f.is_normal and not f.is_blank for f in fields(e, query))
    return True


def has_conditions(e: Engine, value: Any) -> bool:
    """A record with a non-blank primary key or a where clause that filters rows."""
    if any(_filters_rows(e, query) for query, _ in e.search.where_conditions):
        return True
    if is_record(value):
        pks = primary_fields(e, value)
        return bool(pks) and not any(f.is_blank for f in pks)
    return False


def quote(e: Engine, name: str) -> str:
    return e.dialect.quote(name)


def table_name(e: Engine, value: Any) -> str:
    return get_model_struct(e, value).table_name(e.singular_table)


def quoted_table_name(e: Engine, value: Any) -> str:
    return quote(e, table_name(e, value))


def add_to_vars(e: Engine, value: Any) -> str:
    """Append a bind value and return its placeholder."""
    e.scope.sql_vars.append(value)
    return e.dialect.bind_var(len(e.scope.sql_vars))


def set_column(e: Engine, name: str, value: Any) -> None:
    """Set a field on the scope's record.

    When an update attribute map is active the column joins it, so the
    new value reaches the UPDATE statement.
    """
    field = field_by_name(e, e.scope.value, name)
    field.set(value)
    if e.scope.options.update_attrs is not None:
        e.scope.options.update_attrs[field.db_name] = value


def has_field(e: Engine, value: Any, name: str) -> bool:
    struct = get_model_struct(e, value)
    return struct.field_by_name(name) is not None


def should_save_association(e: Engine) -> bool:
    return e.scope.options.save_associations


def save_field_as_association(e: Engine, field: Field) -> Relationship | None:
    """Return the relationship to cascade-save for a field, if any."""
    if not changeable_field(e, field) or field.is_blank or field.is_ignored:
        return None
    if not field.struct_field.save_associations:
        return None
    return field.relationship


def updated_attrs_with_values(e: Engine, attrs: Any) -> tuple[dict[str, Any], bool]:
    """Resolve raw update attributes into a {column: value} mapping.

    Keys may be attribute or column names; unknown keys are dropped.
    A record contributes only its non-blank fields.
    Primary keys are protected unless ignore_protected_attrs is set.
    Accepted values are also written into the scope's record; a record
    type (a batch update) only resolves columns.
    """
    if not isinstance(attrs, dict):
        # Records only contribute their non-blank fields.
        attrs = {k: v for k, v in to_searchable_map(attrs).items() if not is_blank(v)}

    value = e.scope.value
    descriptors: list[Any] = (
        get_model_struct(e, value).fields if isinstance(value, type) else fields(e, value)
    )
    by_name = {f.name: f for f in descriptors}
    by_db_name = {f.db_name: f for f in descriptors}

    results: dict[str, Any] = {}
    for key, new_value in attrs.items():
        field = by_name.get(key) or by_db_name.get(key)
        if field is None or not field.is_normal or not changeable_field(e, field):
            continue
        if field.is_primary_key and not e.scope.options.ignore_protected_attrs:
            continue
        if isinstance(field, Field) and field.can_set:
            field.set(new_value)
        results[field.db_name] = new_value
    return results, bool(results)


def scan(columns: list[str], row: Iterable[Any], descriptors: list[Field]) -> None:
    """Scatter one result row into field descriptors by column name."""
    by_db_name = {f.db_name: f for f in descriptors if f.is_normal}
    by_lower = {name.lower(): f for name, f in by_db_name.items()}
    for column, value in zip(columns, row):
        field = by_db_name.get(column) or by_lower.get(column.lower())
        if field is None:
            continue
        field.set(value)
