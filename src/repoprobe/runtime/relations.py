"""
Relation registry built from entity specifications.

Tracks associations between entities and serves as the metadata provider for
the association query builder. Also produces the foreign key DDL used when
tables are created.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from repoprobe.runtime.errors import MetadataInconsistencyError, UnknownEntityError

if TYPE_CHECKING:
    from repoprobe.specs.entity import EntitySpec, RelationSpec


@dataclass
class RelationInfo:
    """Information about a relation between entities."""

    name: str
    from_entity: str
    to_entity: str
    kind: str  # "one_to_many", "many_to_one", "many_to_many", "one_to_one"
    foreign_key_field: str  # The FK field on the "many" side
    on_delete: str = "restrict"  # restrict, cascade, nullify, set_default

    @property
    def is_to_one(self) -> bool:
        """Check if this is a to-one relation (FK holder side)."""
        return self.kind in ("many_to_one", "one_to_one")

    @property
    def is_to_many(self) -> bool:
        """Check if this is a to-many relation."""
        return self.kind in ("one_to_many", "many_to_many")


@dataclass
class RelationRegistry:
    """
    Registry of relations between entities.

    Tracks all relations and provides lookup methods. Satisfies the
    ``MetadataProvider`` protocol.
    """

    _relations: dict[str, list[RelationInfo]] = field(default_factory=dict)
    _by_name: dict[tuple[str, str], RelationInfo] = field(default_factory=dict)
    _entities: set[str] = field(default_factory=set)

    def add_entity(self, entity_name: str) -> None:
        """Make an entity known to the registry, even without relations."""
        self._entities.add(entity_name)
        self._relations.setdefault(entity_name, [])

    def register(self, entity_name: str, relation: RelationInfo) -> None:
        """Register a relation for an entity."""
        self.add_entity(entity_name)
        self._relations[entity_name].append(relation)
        self._by_name[(entity_name, relation.name)] = relation

    def has_entity(self, entity_name: str) -> bool:
        """Check if an entity is known."""
        return entity_name in self._entities

    def get_relations(self, entity_name: str) -> list[RelationInfo]:
        """Get all relations for an entity."""
        return self._relations.get(entity_name, [])

    def get_relation(self, entity_name: str, relation_name: str) -> RelationInfo | None:
        """Get a specific relation by name."""
        return self._by_name.get((entity_name, relation_name))

    def has_relation(self, entity_name: str, relation_name: str) -> bool:
        """Check if a relation exists."""
        return (entity_name, relation_name) in self._by_name

    def get_associations(self, entity_name: str) -> dict[str, str]:
        """
        Map association name to target entity for one entity.

        Many-to-many relations are left out: without a link entity they
        can't be expressed as a single inner join.

        Raises:
            UnknownEntityError: If the entity isn't registered
        """
        if not self.has_entity(entity_name):
            raise UnknownEntityError(entity_name)
        return {
            r.name: r.to_entity
            for r in self.get_relations(entity_name)
            if r.kind != "many_to_many"
        }

    def validate(self) -> None:
        """
        Check that every relation points at a registered entity.

        Raises:
            MetadataInconsistencyError: On the first dangling relation
        """
        for entity_name, relations in self._relations.items():
            for relation in relations:
                if relation.to_entity not in self._entities:
                    raise MetadataInconsistencyError(
                        f"Relation '{entity_name}.{relation.name}' targets "
                        f"unknown entity '{relation.to_entity}'"
                    )

    @classmethod
    def from_entities(cls, entities: list[EntitySpec]) -> RelationRegistry:
        """
        Build a relation registry from entity specifications.

        Args:
            entities: List of entity specs

        Returns:
            Populated RelationRegistry
        """
        registry = cls()

        for entity in entities:
            registry.add_entity(entity.name)

            # Register explicit relations
            for rel in entity.relations:
                info = RelationInfo(
                    name=rel.name,
                    from_entity=entity.name,
                    to_entity=rel.to_entity,
                    kind=rel.kind.value,
                    foreign_key_field=rel.foreign_key or _infer_fk_field(rel, entity.name),
                    on_delete=rel.on_delete.value,
                )
                registry.register(entity.name, info)

            # Register implicit relations from ref fields
            for field_spec in entity.fields:
                if field_spec.type.kind == "ref" and field_spec.type.ref_entity:
                    existing = any(
                        r.foreign_key_field == field_spec.name and r.is_to_one
                        for r in registry.get_relations(entity.name)
                    )
                    if existing:
                        continue

                    info = RelationInfo(
                        name=field_spec.name.removesuffix("_id"),
                        from_entity=entity.name,
                        to_entity=field_spec.type.ref_entity,
                        kind="many_to_one",
                        foreign_key_field=field_spec.name,
                    )
                    registry.register(entity.name, info)

        return registry


def _infer_fk_field(relation: RelationSpec, entity_name: str) -> str:
    """Infer the foreign key field name from a relation."""
    if relation.kind.value in ("many_to_one", "one_to_one"):
        # FK is on this entity
        return f"{relation.name}_id"
    else:
        # FK is on the other entity
        return f"{entity_name.lower()}_id"


# =============================================================================
# Foreign Key Management
# =============================================================================


def build_foreign_key_constraint(
    relation: RelationInfo,
    entity_name: str,
) -> str:
    """
    Build a FOREIGN KEY constraint for a relation.

    Args:
        relation: Relation info
        entity_name: Entity that holds the FK

    Returns:
        SQL constraint string
    """
    on_delete_map = {
        "restrict": "RESTRICT",
        "cascade": "CASCADE",
        "nullify": "SET NULL",
        "set_default": "SET DEFAULT",
    }

    on_delete = on_delete_map.get(relation.on_delete.lower(), "RESTRICT")

    return (
        f'FOREIGN KEY ("{relation.foreign_key_field}") '
        f'REFERENCES "{relation.to_entity}"("id") ON DELETE {on_delete}'
    )


def get_foreign_key_constraints(
    entity: EntitySpec,
    registry: RelationRegistry,
) -> list[str]:
    """Get all FK constraints for an entity."""
    return [
        build_foreign_key_constraint(relation, entity.name)
        for relation in registry.get_relations(entity.name)
        if relation.is_to_one
    ]


def get_foreign_key_indexes(
    entity: EntitySpec,
    registry: RelationRegistry,
) -> list[str]:
    """Get index creation statements for FK columns."""
    indexes = []

    for relation in registry.get_relations(entity.name):
        if relation.is_to_one:
            idx_name = f"idx_{entity.name}_{relation.foreign_key_field}"
            sql = (
                f'CREATE INDEX IF NOT EXISTS "{idx_name}" '
                f'ON "{entity.name}"("{relation.foreign_key_field}")'
            )
            indexes.append(sql)

    return indexes
