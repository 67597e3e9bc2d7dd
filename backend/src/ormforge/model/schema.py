"""Struct metadata for record types.

Records are plain dataclasses. Per-field database options are attached
with ``column()``, which stores a ColumnOptions object in the dataclass
field metadata:

    @dataclass
    class User:
        id: int = column(default=0, primary_key=True)
        name: str = ""
        role: str = column(default="", has_default=True)
        profile: Profile | None = None
        profile_id: int = 0

Metadata is derived once per record type and cached in a StructMap
keyed by the type itself.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import types
import typing
from dataclasses import dataclass, field
from typing import Any

from ormforge.errors import DescriptorLookupError
from ormforge.util import pluralize, to_snake_case

logger = logging.getLogger(__name__)

COLUMN_METADATA_KEY = "ormforge"

BELONGS_TO = "belongs_to"
HAS_ONE = "has_one"


@dataclass(frozen=True)
class ColumnOptions:
    """Database options for a single dataclass field.

    Attributes:
        db_name: Column name (defaults to the snake_case field name)
        primary_key: Field is (part of) the primary key
        has_default: The column has a database-side default value
        ignore: Field is not persisted at all
        foreign_key: Local foreign key field name(s) for a relationship
        association_foreign_key: Key name(s) on the related record
        save_associations: Cascade-save the related record on create
    """

    db_name: str | None = None
    primary_key: bool = False
    has_default: bool = False
    ignore: bool = False
    foreign_key: str | tuple[str, ...] | None = None
    association_foreign_key: str | tuple[str, ...] | None = None
    save_associations: bool = True


def column(
    *,
    default: Any = dataclasses.MISSING,
    default_factory: Any = dataclasses.MISSING,
    db_name: str | None = None,
    primary_key: bool = False,
    has_default: bool = False,
    ignore: bool = False,
    foreign_key: str | tuple[str, ...] | None = None,
    association_foreign_key: str | tuple[str, ...] | None = None,
    save_associations: bool = True,
    **kwargs: Any,
) -> Any:
    """Declare a dataclass field with database column options."""
    options = ColumnOptions(
        db_name=db_name,
        primary_key=primary_key,
        has_default=has_default,
        ignore=ignore,
        foreign_key=foreign_key,
        association_foreign_key=association_foreign_key,
        save_associations=save_associations,
    )
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[COLUMN_METADATA_KEY] = options
    return field(
        default=default,
        default_factory=default_factory,
        metadata=metadata,
        **kwargs,
    )


@dataclass
class Relationship:
    """Relationship between an owning record and a related record.

    For belongs_to, foreign_* names live on the owner and
    association_foreign_* names live on the related record; the two
    lists pair up positionally.
    """

    kind: str
    foreign_field_names: list[str] = field(default_factory=list)
    foreign_db_names: list[str] = field(default_factory=list)
    association_foreign_field_names: list[str] = field(default_factory=list)
    association_foreign_db_names: list[str] = field(default_factory=list)


@dataclass
class StructField:
    """Type-level description of one dataclass field."""

    name: str
    db_name: str
    annotation: Any = None
    is_primary_key: bool = False
    has_default_value: bool = False
    is_ignored: bool = False
    is_normal: bool = True
    relationship: Relationship | None = None
    related_type: type | None = None
    save_associations: bool = True


@dataclass
class ModelStruct:
    """Cached metadata for a record type."""

    model_type: type
    fields: list[StructField]
    primary_fields: list[StructField]
    default_table_name: str
    explicit_table_name: str | None = None

    def table_name(self, singular: bool = False) -> str:
        if self.explicit_table_name:
            return self.explicit_table_name
        if singular:
            return self.default_table_name
        return pluralize(self.default_table_name)

    def field_by_name(self, name: str) -> StructField | None:
        """Look up a field by attribute name or column name."""
        for f in self.fields:
            if f.name == name:
                return f
        for f in self.fields:
            if f.db_name == name:
                return f
        return None


def is_model_type(value: Any) -> bool:
    return isinstance(value, type) and dataclasses.is_dataclass(value)


def _options(f: dataclasses.Field) -> ColumnOptions:
    return f.metadata.get(COLUMN_METADATA_KEY) or ColumnOptions()


def _as_tuple(value: str | tuple[str, ...] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _resolve_hints(model_type: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(model_type)
    except (NameError, TypeError) as exc:
        logger.debug(
            "Could not resolve type hints for %s: %s", model_type.__name__, exc
        )
        return {f.name: f.type for f in dataclasses.fields(model_type)}


def _related_model(annotation: Any) -> type | None:
    """Return the dataclass type behind X or Optional[X], if any."""
    if is_model_type(annotation):
        return annotation
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1 and is_model_type(args[0]):
            return args[0]
    return None


def _primary_names(model_type: type) -> list[str]:
    fields = dataclasses.fields(model_type)
    flagged = [f.name for f in fields if _options(f).primary_key]
    if flagged:
        return flagged
    return [f.name for f in fields if f.name == "id"]


def _db_name(f: dataclasses.Field) -> str:
    return _options(f).db_name or to_snake_case(f.name)


def build_model_struct(model_type: type) -> ModelStruct:
    """Derive ModelStruct metadata from a dataclass type."""
    if not is_model_type(model_type):
        raise DescriptorLookupError(
            f"unsupported record type {getattr(model_type, '__name__', model_type)!r}"
        )

    hints = _resolve_hints(model_type)
    dc_fields = dataclasses.fields(model_type)
    names = {f.name: f for f in dc_fields}
    primary_names = _primary_names(model_type)

    struct_fields: list[StructField] = []
    for f in dc_fields:
        opts = _options(f)
        annotation = hints.get(f.name, f.type)
        sf = StructField(
            name=f.name,
            db_name=_db_name(f),
            annotation=annotation,
            is_primary_key=f.name in primary_names,
            has_default_value=opts.has_default,
            is_ignored=opts.ignore,
            save_associations=opts.save_associations,
        )

        related = _related_model(annotation)
        if opts.ignore:
            sf.is_normal = False
        elif related is not None:
            sf.is_normal = False
            sf.related_type = related
            sf.relationship = _build_relationship(
                model_type, f.name, opts, related, names
            )
        else:
            origin = typing.get_origin(annotation)
            if origin in (list, tuple, set) and any(
                is_model_type(a) for a in typing.get_args(annotation)
            ):
                sf.is_normal = False

        struct_fields.append(sf)

    primary_fields = [sf for sf in struct_fields if sf.is_primary_key]
    return ModelStruct(
        model_type=model_type,
        fields=struct_fields,
        primary_fields=primary_fields,
        default_table_name=to_snake_case(model_type.__name__),
        explicit_table_name=getattr(model_type, "__tablename__", None),
    )


def _build_relationship(
    owner: type,
    field_name: str,
    opts: ColumnOptions,
    related: type,
    owner_fields: dict[str, dataclasses.Field],
) -> Relationship | None:
    foreign_keys = _as_tuple(opts.foreign_key) or (f"{field_name}_id",)
    if all(fk in owner_fields for fk in foreign_keys):
        association_keys = _as_tuple(opts.association_foreign_key) or tuple(
            _primary_names(related)
        )
        if len(association_keys) != len(foreign_keys):
            raise DescriptorLookupError(
                f"{owner.__name__}.{field_name}: foreign keys {foreign_keys} do not "
                f"pair with association keys {association_keys}"
            )
        related_fields = {f.name: f for f in dataclasses.fields(related)}
        return Relationship(
            kind=BELONGS_TO,
            foreign_field_names=list(foreign_keys),
            foreign_db_names=[_db_name(owner_fields[fk]) for fk in foreign_keys],
            association_foreign_field_names=list(association_keys),
            association_foreign_db_names=[
                _db_name(related_fields[k]) if k in related_fields else k
                for k in association_keys
            ],
        )

    owner_fk = f"{to_snake_case(owner.__name__)}_id"
    related_fields = {f.name: f for f in dataclasses.fields(related)}
    if owner_fk in related_fields:
        return Relationship(
            kind=HAS_ONE,
            foreign_field_names=[owner_fk],
            foreign_db_names=[_db_name(related_fields[owner_fk])],
            association_foreign_field_names=_primary_names(owner),
            association_foreign_db_names=[
                _db_name(owner_fields[k]) for k in _primary_names(owner)
            ],
        )
    return None


class StructMap:
    """Thread-safe cache of ModelStruct metadata keyed by record type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._structs: dict[type, ModelStruct] = {}

    def get(self, model_type: type) -> ModelStruct:
        with self._lock:
            cached = self._structs.get(model_type)
        if cached is not None:
            return cached
        struct = build_model_struct(model_type)
        with self._lock:
            return self._structs.setdefault(model_type, struct)

    def __len__(self) -> int:
        with self._lock:
            return len(self._structs)

    def clear(self) -> None:
        """Clear all cached metadata. Primarily for testing."""
        with self._lock:
            self._structs.clear()
