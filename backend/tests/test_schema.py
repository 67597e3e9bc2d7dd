"""Tests for record metadata, field descriptors and scope helpers."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

import pytest

from ormforge import scope
from ormforge.dialects import get_dialect
from ormforge.engine import Engine
from ormforge.errors import DescriptorLookupError, UnaddressableFieldError
from ormforge.model import BELONGS_TO, HAS_ONE, Field, StructMap, column, is_blank
from ormforge.model.fields import coerce
from ormforge.model.schema import build_model_struct


@dataclass
class Company:
    id: int = 0
    name: str = ""


@dataclass
class Address:
    id: int = 0
    street: str = ""
    person_id: int = 0


@dataclass
class Person:
    id: int = 0
    full_name: str = column(default="", db_name="name")
    employer: Optional[Company] = None
    employer_id: int = 0
    address: Address | None = None
    scratch: str = column(default="", ignore=True)
    nicknames: list[str] = field(default_factory=list)


@dataclass
class OrderLine:
    __tablename__ = "lines"

    line_no: int = column(default=0, primary_key=True)
    sku: str = ""


@dataclass
class Category:
    id: int = 0
    title: str = ""


@dataclass(frozen=True)
class Point:
    id: int = 0
    x: int = 0


@pytest.fixture
def engine():
    return Engine(dialect=get_dialect("sqlite"))


# =============================================================================
# ModelStruct
# =============================================================================


class TestModelStruct:
    def test_table_names(self):
        assert build_model_struct(Person).table_name() == "persons"
        assert build_model_struct(Category).table_name() == "categories"
        assert build_model_struct(Category).table_name(singular=True) == "category"
        assert build_model_struct(OrderLine).table_name() == "lines"

    def test_column_names(self):
        struct = build_model_struct(Person)
        assert struct.field_by_name("full_name").db_name == "name"
        assert struct.field_by_name("name").name == "full_name"
        assert struct.field_by_name("missing") is None

    def test_primary_key_defaults_to_id(self):
        struct = build_model_struct(Person)
        assert [f.name for f in struct.primary_fields] == ["id"]

    def test_explicit_primary_key(self):
        struct = build_model_struct(OrderLine)
        assert [f.db_name for f in struct.primary_fields] == ["line_no"]

    def test_belongs_to_detected(self):
        rel = build_model_struct(Person).field_by_name("employer").relationship
        assert rel.kind == BELONGS_TO
        assert rel.foreign_field_names == ["employer_id"]
        assert rel.association_foreign_db_names == ["id"]

    def test_has_one_detected(self):
        rel = build_model_struct(Person).field_by_name("address").relationship
        assert rel.kind == HAS_ONE
        assert rel.foreign_db_names == ["person_id"]

    def test_non_column_fields(self):
        struct = build_model_struct(Person)
        assert not struct.field_by_name("employer").is_normal
        assert not struct.field_by_name("scratch").is_normal
        assert struct.field_by_name("scratch").is_ignored
        assert struct.field_by_name("nicknames").is_normal

    def test_not_a_dataclass(self):
        with pytest.raises(DescriptorLookupError):
            build_model_struct(dict)

    def test_struct_map_caches(self):
        structs = StructMap()
        first = structs.get(Person)
        assert structs.get(Person) is first
        assert len(structs) == 1
        structs.clear()
        assert len(structs) == 0


# =============================================================================
# Field descriptors
# =============================================================================


class TestField:
    def test_is_blank(self):
        assert is_blank(0)
        assert is_blank("")
        assert is_blank(None)
        assert is_blank(False)
        assert is_blank([])
        assert is_blank(Company())
        assert not is_blank(Company(name="acme"))
        assert not is_blank(datetime(2020, 1, 1))

    def test_set_refreshes_blank(self):
        record = Company()
        descriptor = Field(build_model_struct(Company).field_by_name("name"), record)
        assert descriptor.is_blank
        descriptor.set("acme")
        assert record.name == "acme"
        assert not descriptor.is_blank

    def test_frozen_record_is_unaddressable(self):
        descriptor = Field(build_model_struct(Point).field_by_name("x"), Point())
        assert not descriptor.can_set
        with pytest.raises(UnaddressableFieldError):
            descriptor.set(3)

    def test_coerce(self):
        assert coerce(1, bool) is True
        assert coerce("2020-01-02 03:04:05", datetime) == datetime(2020, 1, 2, 3, 4, 5)
        assert coerce("2020-01-02", Optional[date]) == date(2020, 1, 2)
        assert coerce("42", int) == 42
        assert coerce(None, int) is None
        assert coerce("abc", str) == "abc"


# =============================================================================
# Scope helpers
# =============================================================================


class TestScopeHelpers:
    def test_fields_follow_declaration_order(self, engine):
        names = [f.name for f in scope.fields(engine, Company(name="acme"))]
        assert names == ["id", "name"]

    def test_fields_need_an_instance(self, engine):
        with pytest.raises(DescriptorLookupError):
            scope.fields(engine, Company)

    def test_field_by_name_or_column(self, engine):
        person = Person(full_name="ada")
        assert scope.field_by_name(engine, person, "name").get() == "ada"
        with pytest.raises(DescriptorLookupError):
            scope.field_by_name(engine, person, "nope")

    def test_primary_field_prefers_id(self, engine):
        @dataclass
        class Composite:
            tenant: int = column(default=0, primary_key=True)
            id: int = column(default=0, primary_key=True)

        assert scope.primary_field(engine, Composite()).name == "id"

    def test_has_conditions(self, engine):
        assert not scope.has_conditions(engine, Company())
        assert scope.has_conditions(engine, Company(id=1))
        engine.search.where("name = ?", "acme")
        assert scope.has_conditions(engine, Company())

    def test_add_to_vars(self, engine):
        assert scope.add_to_vars(engine, "a") == "?1"
        assert scope.add_to_vars(engine, "b") == "?2"
        assert engine.scope.sql_vars == ["a", "b"]

    def test_model_type_of_list(self, engine):
        assert scope.model_type_of(engine, [Company()]) is Company
        engine.scope.options.destination_type = Category
        assert scope.model_type_of(engine, []) is Category

    def test_clone_gets_fresh_state(self, engine):
        engine.scope.options.update_column = True
        engine.search.where("x = ?", 1)
        engine.scope.sql_vars.append(1)
        clone = engine.clone()
        assert clone.dialect is engine.dialect
        assert clone.struct_map is engine.struct_map
        assert not clone.scope.options.update_column
        assert clone.search.where_conditions == []
        assert clone.scope.sql_vars == []

    def test_scan_matches_columns_by_name(self, engine):
        person = Person()
        scope.scan(["NAME", "id", "unknown"], ("ada", 5, "x"), scope.fields(engine, person))
        assert person.full_name == "ada"
        assert person.id == 5
