"""Shared pytest fixtures for repoprobe tests."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from repoprobe.runtime.query_builder import AssociationQueryBuilder
from repoprobe.runtime.relations import RelationRegistry
from repoprobe.runtime.repository import DatabaseManager
from repoprobe.specs import (
    EntitySpec,
    FieldSpec,
    FieldType,
    RelationKind,
    RelationSpec,
    ScalarType,
)


def _str_field(name: str, required: bool = False) -> FieldSpec:
    return FieldSpec(
        name=name,
        type=FieldType(kind="scalar", scalar_type=ScalarType.STR),
        required=required,
    )


# =============================================================================
# Entities
# =============================================================================


@pytest.fixture
def country_entity() -> EntitySpec:
    """Country, referenced by Company through a plain ref field."""
    return EntitySpec(name="Country", fields=[_str_field("name", required=True)])


@pytest.fixture
def company_entity() -> EntitySpec:
    """Company with a ref-field association to Country and a to-many to User."""
    return EntitySpec(
        name="Company",
        fields=[
            _str_field("name", required=True),
            FieldSpec(name="Country_id", type=FieldType(kind="ref", ref_entity="Country")),
        ],
        relations=[
            RelationSpec(
                name="users",
                from_entity="Company",
                to_entity="User",
                kind=RelationKind.ONE_TO_MANY,
                foreign_key="Company_id",
            ),
        ],
    )


@pytest.fixture
def user_entity() -> EntitySpec:
    """User belonging to a Company, managed by another User, tagged many-to-many."""
    return EntitySpec(
        name="User",
        fields=[
            _str_field("name", required=True),
            FieldSpec(name="email", type=FieldType(kind="scalar", scalar_type=ScalarType.EMAIL)),
            FieldSpec(
                name="active",
                type=FieldType(kind="scalar", scalar_type=ScalarType.BOOL),
                default=False,
            ),
            FieldSpec(name="address", type=FieldType(kind="scalar", scalar_type=ScalarType.JSON)),
            FieldSpec(name="Company_id", type=FieldType(kind="ref", ref_entity="Company")),
        ],
        relations=[
            RelationSpec(
                name="Company",
                from_entity="User",
                to_entity="Company",
                kind=RelationKind.MANY_TO_ONE,
                foreign_key="Company_id",
            ),
            RelationSpec(
                name="Manager",
                from_entity="User",
                to_entity="User",
                kind=RelationKind.MANY_TO_ONE,
            ),
            RelationSpec(
                name="tags",
                from_entity="User",
                to_entity="Tag",
                kind=RelationKind.MANY_TO_MANY,
            ),
        ],
    )


@pytest.fixture
def client_entity() -> EntitySpec:
    """Client served by a User; its FK column is implied by the relation."""
    return EntitySpec(
        name="Client",
        fields=[_str_field("name", required=True)],
        relations=[
            RelationSpec(
                name="User",
                from_entity="Client",
                to_entity="User",
                kind=RelationKind.MANY_TO_ONE,
            ),
        ],
    )


@pytest.fixture
def tag_entity() -> EntitySpec:
    return EntitySpec(name="Tag", fields=[_str_field("name", required=True)])


@pytest.fixture
def all_entities(
    country_entity: EntitySpec,
    company_entity: EntitySpec,
    user_entity: EntitySpec,
    client_entity: EntitySpec,
    tag_entity: EntitySpec,
) -> list[EntitySpec]:
    """Get all test entities."""
    return [country_entity, company_entity, user_entity, client_entity, tag_entity]


@pytest.fixture
def registry(all_entities: list[EntitySpec]) -> RelationRegistry:
    return RelationRegistry.from_entities(all_entities)


@pytest.fixture
def builder(registry: RelationRegistry) -> AssociationQueryBuilder:
    return AssociationQueryBuilder(registry)


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def db(all_entities: list[EntitySpec]) -> Iterator[DatabaseManager]:
    """In-memory database with every test table created."""
    manager = DatabaseManager(":memory:")
    manager.create_all_tables(all_entities)
    yield manager
    manager.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "probe.db"


@pytest.fixture
def connection_factory(db_path: Path) -> Any:
    """Factory opening a fresh connection to a file database per call."""
    return lambda: sqlite3.connect(db_path)


# =============================================================================
# Accumulator double
# =============================================================================


class RecordingAccumulator:
    """Query accumulator that records every call it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def add_inner_join(self, parent_alias: str, field_name: str, new_alias: str) -> None:
        self.calls.append(("join", parent_alias, field_name, new_alias))

    def add_equality_predicate(self, alias: str, field_name: str, param_name: str) -> None:
        self.calls.append(("eq", alias, field_name, param_name))

    def add_null_predicate(self, alias: str, field_name: str) -> None:
        self.calls.append(("null", alias, field_name))

    def bind_parameter(self, param_name: str, value: Any) -> None:
        self.calls.append(("bind", param_name, value))

    def to_query_string(self) -> str:
        return "; ".join(" ".join(str(part) for part in call) for call in self.calls)

    def of_kind(self, kind: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def recorder() -> RecordingAccumulator:
    return RecordingAccumulator()


@pytest.fixture
def new_recorder() -> type[RecordingAccumulator]:
    """Recorder class, for tests that need a fresh one per generated example."""
    return RecordingAccumulator
