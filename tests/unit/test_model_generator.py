"""
Tests for generated fixture models.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from repoprobe.runtime.model_generator import generate_all_entity_models, generate_entity_model
from repoprobe.specs import EntitySpec, FieldSpec, FieldType


class TestGenerateEntityModel:
    """Tests for generate_entity_model."""

    def test_model_name_and_fields(self, user_entity) -> None:
        """Test the model is named after the entity and carries its fields."""
        model = generate_entity_model(user_entity)

        assert model.__name__ == "User"
        assert set(model.model_fields) == {"id", "name", "email", "active", "address", "Company_id"}

    def test_id_is_optional(self, country_entity) -> None:
        """Test the implicit id defaults to None."""
        record = generate_entity_model(country_entity)(name="France")

        assert record.id is None

    def test_required_field(self, country_entity) -> None:
        """Test required fields must be given."""
        with pytest.raises(ValidationError):
            generate_entity_model(country_entity)()

    def test_unknown_field_rejected(self, country_entity) -> None:
        """Test extra fields are forbidden."""
        with pytest.raises(ValidationError):
            generate_entity_model(country_entity)(name="France", capital="Paris")

    def test_defaults(self, user_entity) -> None:
        """Test field defaults and optional fields."""
        record = generate_entity_model(user_entity)(name="hlogeon")

        assert record.active is False
        assert record.email is None
        assert record.Company_id is None

    def test_extra_fk_fields(self, client_entity) -> None:
        """Test relation-implied FK columns become optional fields."""
        model = generate_entity_model(client_entity, ["User_id"])

        assert model(name="Globex").User_id is None
        assert model(name="Globex", User_id="u1").User_id == "u1"

    def test_json_field(self, user_entity) -> None:
        """Test embedded documents validate as dicts."""
        record = generate_entity_model(user_entity)(name="h", address={"city": "Paris"})

        assert record.address == {"city": "Paris"}

    def test_enum_values_enforced(self) -> None:
        """Test enum fields only accept their declared values."""
        invoice = EntitySpec(
            name="Invoice",
            fields=[
                FieldSpec(
                    name="status",
                    type=FieldType(kind="enum", enum_values=["draft", "issued"]),
                    required=True,
                )
            ],
        )
        model = generate_entity_model(invoice)

        assert model(status="issued").status == "issued"
        with pytest.raises(ValidationError):
            model(status="paid")


class TestGenerateAllEntityModels:
    """Tests for generate_all_entity_models."""

    def test_all_models(self, all_entities) -> None:
        """Test one model per entity, with per-entity FK extras."""
        models = generate_all_entity_models(all_entities, {"Client": ["User_id"]})

        assert set(models) == {"Country", "Company", "User", "Client", "Tag"}
        assert "User_id" in models["Client"].model_fields
        assert "User_id" not in models["User"].model_fields


class TestFieldType:
    """Tests for FieldType payload checks."""

    def test_enum_needs_values(self) -> None:
        """Test an enum field without values is rejected."""
        with pytest.raises(ValidationError, match="at least one value"):
            FieldType(kind="enum")

    def test_ref_needs_entity(self) -> None:
        """Test a ref field must name its entity."""
        with pytest.raises(ValidationError, match="ref_entity"):
            FieldType(kind="ref")
