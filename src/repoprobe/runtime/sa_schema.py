"""
SQLAlchemy MetaData bridge for EntitySpec.

Converts EntitySpec objects into SQLAlchemy Table objects on a shared
MetaData instance, with the same columns and foreign keys that
``DatabaseManager`` creates for SQLite. ``SelectAccumulator`` builds its
queries against these tables.

The module uses SQLAlchemy Core only: no ORM, no Session.
"""

from __future__ import annotations

import logging
from typing import Any

import sqlalchemy as sa

from repoprobe.runtime.relations import RelationRegistry
from repoprobe.specs.entity import EntitySpec, FieldSpec, FieldType, ScalarType

logger = logging.getLogger(__name__)

_ON_DELETE = {
    "restrict": "RESTRICT",
    "cascade": "CASCADE",
    "nullify": "SET NULL",
    "set_default": "SET DEFAULT",
}

# ---------------------------------------------------------------------------
# Type mapping  (mirrors repository._scalar_type_to_sqlite)
# ---------------------------------------------------------------------------


def _scalar_type_to_sa(scalar_type: ScalarType) -> Any:
    """Map a ScalarType to a SQLAlchemy column type instance."""
    mapping: dict[ScalarType, Any] = {
        ScalarType.STR: sa.Text(),
        ScalarType.TEXT: sa.Text(),
        ScalarType.INT: sa.Integer(),
        ScalarType.DECIMAL: sa.Float(),
        ScalarType.BOOL: sa.Boolean(),
        ScalarType.DATE: sa.Text(),
        ScalarType.DATETIME: sa.Text(),
        ScalarType.UUID: sa.Text(),
        ScalarType.EMAIL: sa.Text(),
        ScalarType.URL: sa.Text(),
        ScalarType.JSON: sa.Text(),
    }
    return mapping.get(scalar_type, sa.Text())


def _field_type_to_sa(field_type: FieldType) -> Any:
    """Convert a FieldType to a SQLAlchemy column type instance."""
    if field_type.kind == "scalar" and field_type.scalar_type:
        return _scalar_type_to_sa(field_type.scalar_type)
    # enum and ref both store as TEXT
    return sa.Text()


# ---------------------------------------------------------------------------
# Column builder
# ---------------------------------------------------------------------------


def _field_to_column(field: FieldSpec, foreign_keys: dict[str, Any]) -> sa.Column[Any]:
    """Convert a single FieldSpec into a SQLAlchemy ``Column``."""
    kwargs: dict[str, Any] = {}

    if field.name == "id":
        kwargs["primary_key"] = True
    else:
        kwargs["nullable"] = not field.required

    if field.unique:
        kwargs["unique"] = True

    fk_args = [foreign_keys[field.name]] if field.name in foreign_keys else []
    return sa.Column(field.name, _field_type_to_sa(field.type), *fk_args, **kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_metadata(
    entities: list[EntitySpec],
    registry: RelationRegistry | None = None,
) -> sa.MetaData:
    """Convert a list of EntitySpec into a SQLAlchemy ``MetaData``.

    Each entity becomes a ``Table`` with columns derived from its fields.
    To-one relations add a ``ForeignKey`` on the FK column, creating the
    column when the entity doesn't declare it.

    Args:
        entities: Entity specifications.
        registry: Relation registry; built from ``entities`` when omitted.

    Returns:
        A populated ``sqlalchemy.MetaData`` instance.
    """
    registry = registry or RelationRegistry.from_entities(entities)
    metadata = sa.MetaData()

    for entity in entities:
        foreign_keys: dict[str, Any] = {}
        for relation in registry.get_relations(entity.name):
            if not relation.is_to_one:
                continue
            # Self-reference needs use_alter to break circular DDL dependency
            is_self_ref = relation.to_entity == entity.name
            foreign_keys[relation.foreign_key_field] = sa.ForeignKey(
                f"{relation.to_entity}.id",
                ondelete=_ON_DELETE.get(relation.on_delete, "RESTRICT"),
                use_alter=is_self_ref,
                name=f"fk_{entity.name}_{relation.foreign_key_field}" if is_self_ref else None,
            )

        columns = []
        if entity.get_field("id") is None:
            columns.append(sa.Column("id", sa.Text(), primary_key=True))

        for field in entity.fields:
            columns.append(_field_to_column(field, foreign_keys))

        declared = {f.name for f in entity.fields}
        for fk_field, fk in foreign_keys.items():
            if fk_field not in declared:
                columns.append(sa.Column(fk_field, sa.Text(), fk, nullable=True))

        sa.Table(entity.name, metadata, *columns)

    logger.debug("Built SQLAlchemy metadata for %d entities", len(entities))
    return metadata


def get_sorted_table_names(entities: list[EntitySpec]) -> list[str]:
    """Return entity/table names in topological (FK-dependency) order.

    Tables that are depended upon come first.
    """
    metadata = build_metadata(entities)
    return [t.name for t in metadata.sorted_tables]
