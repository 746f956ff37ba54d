"""
Model generator - generates Pydantic models from EntitySpec.

Fixture records are built through these models rather than by poking
attributes onto arbitrary objects: a record is constructed from a flat
mapping of field values, and unknown fields are rejected.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, create_model

from repoprobe.specs.entity import EntitySpec, FieldSpec, FieldType, ScalarType

# =============================================================================
# Type Mapping
# =============================================================================


def _scalar_type_to_python(scalar_type: ScalarType) -> type:
    """Map scalar types to Python types."""
    mapping: dict[ScalarType, type] = {
        ScalarType.STR: str,
        ScalarType.TEXT: str,
        ScalarType.INT: int,
        ScalarType.DECIMAL: Decimal,
        ScalarType.BOOL: bool,
        ScalarType.DATE: date,
        ScalarType.DATETIME: datetime,
        ScalarType.UUID: UUID,
        ScalarType.EMAIL: str,
        ScalarType.URL: str,
        ScalarType.JSON: dict,
    }
    return mapping.get(scalar_type, str)


def _field_type_to_python(field_type: FieldType) -> Any:
    """Convert FieldType to a Python annotation."""
    if field_type.kind == "scalar" and field_type.scalar_type:
        return _scalar_type_to_python(field_type.scalar_type)
    elif field_type.kind == "ref":
        # References are stored as ids (foreign keys)
        return UUID | str
    elif field_type.kind == "enum" and field_type.enum_values:
        return Literal[tuple(field_type.enum_values)]
    return str


def _build_field_info(field: FieldSpec) -> tuple[Any, Any]:
    """
    Build Pydantic field tuple for create_model.

    Returns:
        Tuple of (type, default_or_field_info)
    """
    python_type = _field_type_to_python(field.type)
    field_kwargs: dict[str, Any] = {}

    if field.label:
        field_kwargs["description"] = field.label

    if field.default is not None:
        field_kwargs["default"] = field.default
    elif not field.required:
        field_kwargs["default"] = None
        python_type = python_type | None

    if field.type.max_length:
        field_kwargs["max_length"] = field.type.max_length

    if field_kwargs:
        return (python_type, Field(**field_kwargs))
    return (python_type, ...)


# =============================================================================
# Model Generation
# =============================================================================


def generate_entity_model(
    entity: EntitySpec,
    fk_fields: list[str] | None = None,
) -> type[BaseModel]:
    """
    Generate a Pydantic model from an EntitySpec.

    Args:
        entity: Entity specification
        fk_fields: Extra optional FK columns implied by relations

    Returns:
        Dynamically created Pydantic model class

    Example:
        >>> UserModel = generate_entity_model(user_entity)
        >>> user = UserModel(name="hlogeon")
    """
    field_definitions: dict[str, Any] = {}

    if entity.get_field("id") is None:
        field_definitions["id"] = (
            UUID | str | None,
            Field(default=None, description="Unique identifier"),
        )

    for field in entity.fields:
        field_definitions[field.name] = _build_field_info(field)

    for fk_field in fk_fields or []:
        field_definitions.setdefault(fk_field, (UUID | str | None, None))

    return create_model(
        entity.name,
        __config__=ConfigDict(extra="forbid"),
        __doc__=entity.description or f"Generated model for {entity.name}",
        **field_definitions,
    )


def generate_all_entity_models(
    entities: list[EntitySpec],
    fk_fields: dict[str, list[str]] | None = None,
) -> dict[str, type[BaseModel]]:
    """
    Generate Pydantic models for all entities.

    Refs are plain id fields, so no ordering between entities is needed.

    Args:
        entities: List of entity specifications
        fk_fields: Extra FK columns per entity name

    Returns:
        Dictionary mapping entity names to generated models
    """
    fk_fields = fk_fields or {}
    return {e.name: generate_entity_model(e, fk_fields.get(e.name)) for e in entities}
