"""
Tests for the relation registry and foreign key DDL.
"""

from __future__ import annotations

import pytest

from repoprobe.runtime.errors import MetadataInconsistencyError, UnknownEntityError
from repoprobe.runtime.relations import (
    RelationInfo,
    RelationRegistry,
    build_foreign_key_constraint,
    get_foreign_key_constraints,
    get_foreign_key_indexes,
)
from repoprobe.specs import EntitySpec, FieldSpec, FieldType, RelationKind, RelationSpec

# =============================================================================
# RelationInfo Tests
# =============================================================================


class TestRelationInfo:
    """Tests for RelationInfo."""

    @pytest.mark.parametrize(
        "kind,to_one,to_many",
        [
            ("many_to_one", True, False),
            ("one_to_one", True, False),
            ("one_to_many", False, True),
            ("many_to_many", False, True),
        ],
    )
    def test_direction(self, kind: str, to_one: bool, to_many: bool) -> None:
        """Test to-one/to-many classification."""
        info = RelationInfo(
            name="rel",
            from_entity="A",
            to_entity="B",
            kind=kind,
            foreign_key_field="rel_id",
        )

        assert info.is_to_one is to_one
        assert info.is_to_many is to_many


# =============================================================================
# RelationRegistry Tests
# =============================================================================


class TestRelationRegistry:
    """Tests for RelationRegistry."""

    def test_register_and_get(self) -> None:
        """Test registering and getting a relation."""
        registry = RelationRegistry()
        info = RelationInfo(
            name="Company",
            from_entity="User",
            to_entity="Company",
            kind="many_to_one",
            foreign_key_field="Company_id",
        )
        registry.register("User", info)

        assert registry.get_relation("User", "Company") is info
        assert registry.has_relation("User", "Company")
        assert not registry.has_relation("User", "Other")
        assert registry.has_entity("User")

    def test_entity_without_relations_is_known(self) -> None:
        """Test add_entity registers entities that have no relations."""
        registry = RelationRegistry()
        registry.add_entity("Tag")

        assert registry.has_entity("Tag")
        assert registry.get_associations("Tag") == {}

    def test_from_entities(self, registry) -> None:
        """Test building a registry from entity specs."""
        for name in ("Country", "Company", "User", "Client", "Tag"):
            assert registry.has_entity(name)

    def test_explicit_foreign_key(self, registry) -> None:
        """Test an explicit foreign_key overrides inference."""
        relation = registry.get_relation("Company", "users")

        assert relation.foreign_key_field == "Company_id"
        assert relation.is_to_many

    def test_inferred_foreign_key(self, registry) -> None:
        """Test to-one FKs default to <relation>_id."""
        assert registry.get_relation("Client", "User").foreign_key_field == "User_id"
        assert registry.get_relation("User", "Manager").foreign_key_field == "Manager_id"

    def test_ref_field_becomes_association(self, registry) -> None:
        """Test a ref field without a relation adds one named after the field."""
        relation = registry.get_relation("Company", "Country")

        assert relation is not None
        assert relation.to_entity == "Country"
        assert relation.foreign_key_field == "Country_id"

    def test_ref_field_covered_by_relation(self, registry) -> None:
        """Test a ref field already used by a relation adds nothing."""
        names = [r.name for r in registry.get_relations("User")]

        assert names.count("Company") == 1
        assert "Company_id" not in names

    def test_get_associations(self, registry) -> None:
        """Test associations map name to target and skip many-to-many."""
        assert registry.get_associations("User") == {"Company": "Company", "Manager": "User"}
        assert registry.get_associations("Company") == {"users": "User", "Country": "Country"}

    def test_get_associations_unknown_entity(self, registry) -> None:
        """Test unknown entities raise."""
        with pytest.raises(UnknownEntityError):
            registry.get_associations("Ghost")

    def test_validate_passes(self, registry) -> None:
        """Test a complete entity set validates."""
        registry.validate()

    def test_validate_dangling_target(self) -> None:
        """Test relations to unregistered entities are inconsistent."""
        entity = EntitySpec(
            name="User",
            relations=[
                RelationSpec(
                    name="Company",
                    from_entity="User",
                    to_entity="Company",
                    kind=RelationKind.MANY_TO_ONE,
                )
            ],
        )
        registry = RelationRegistry.from_entities([entity])

        with pytest.raises(MetadataInconsistencyError, match="unknown entity 'Company'"):
            registry.validate()


# =============================================================================
# Foreign Key Tests
# =============================================================================


class TestForeignKeyConstraints:
    """Tests for foreign key DDL."""

    def test_build_fk_constraint_restrict(self) -> None:
        """Test the default ON DELETE action."""
        info = RelationInfo(
            name="User",
            from_entity="Client",
            to_entity="User",
            kind="many_to_one",
            foreign_key_field="User_id",
        )

        assert build_foreign_key_constraint(info, "Client") == (
            'FOREIGN KEY ("User_id") REFERENCES "User"("id") ON DELETE RESTRICT'
        )

    def test_build_fk_constraint_set_null(self) -> None:
        """Test nullify maps to SET NULL."""
        info = RelationInfo(
            name="User",
            from_entity="Client",
            to_entity="User",
            kind="many_to_one",
            foreign_key_field="User_id",
            on_delete="nullify",
        )

        assert "ON DELETE SET NULL" in build_foreign_key_constraint(info, "Client")

    def test_only_to_one_relations_get_constraints(self, company_entity, registry) -> None:
        """Test to-many relations add no FK on the parent."""
        constraints = get_foreign_key_constraints(company_entity, registry)

        assert constraints == [
            'FOREIGN KEY ("Country_id") REFERENCES "Country"("id") ON DELETE RESTRICT'
        ]

    def test_fk_indexes(self, client_entity, registry) -> None:
        """Test an index per FK column."""
        assert get_foreign_key_indexes(client_entity, registry) == [
            'CREATE INDEX IF NOT EXISTS "idx_Client_User_id" ON "Client"("User_id")'
        ]

    def test_multiple_refs_to_same_entity(self) -> None:
        """Test two ref fields to one entity become two associations."""
        entity = EntitySpec(
            name="Transfer",
            fields=[
                FieldSpec(name="source_id", type=FieldType(kind="ref", ref_entity="Account")),
                FieldSpec(name="target_id", type=FieldType(kind="ref", ref_entity="Account")),
            ],
        )
        registry = RelationRegistry.from_entities([entity, EntitySpec(name="Account")])

        assert registry.get_associations("Transfer") == {"source": "Account", "target": "Account"}
