"""
SQLAlchemy Core query accumulator.

Builds a ``sqlalchemy.select()`` from the joins, predicates and parameters
emitted by the association query builder.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import sqlite

from repoprobe.runtime.errors import (
    AliasCollisionError,
    DuplicateParameterBindingError,
    MetadataInconsistencyError,
    UnknownEntityError,
)
from repoprobe.runtime.query_builder import DEFAULT_ROOT_ALIAS, validate_sql_identifier
from repoprobe.runtime.relations import RelationRegistry
from repoprobe.runtime.repository import python_to_sqlite


class SelectAccumulator:
    """
    Query accumulator backed by SQLAlchemy Core.

    Example:
        metadata = build_metadata(entities, registry)
        qb = SelectAccumulator(metadata, registry, "User")
        builder.build("User", "s", {"Company": {"name": "Codegyre"}}, qb)

        with engine.connect() as conn:
            rows = qb.execute(conn)
    """

    def __init__(
        self,
        metadata: sa.MetaData,
        registry: RelationRegistry,
        entity: str,
        alias: str = DEFAULT_ROOT_ALIAS,
    ):
        if entity not in metadata.tables or not registry.has_entity(entity):
            raise UnknownEntityError(entity)
        validate_sql_identifier(alias, "alias")

        self.metadata = metadata
        self.registry = registry
        self.entity = entity
        self.alias = alias
        self.parameters: dict[str, Any] = {}
        self.predicates: list[sa.ColumnElement[bool]] = []
        self.select_fields: list[str] = []

        self._root = metadata.tables[entity].alias(alias)
        self._aliases: dict[str, tuple[str, Any]] = {alias: (entity, self._root)}
        self._from: Any = self._root

    # -------------------------------------------------------------------------
    # QueryAccumulator protocol
    # -------------------------------------------------------------------------

    def add_inner_join(self, parent_alias: str, field_name: str, new_alias: str) -> None:
        """Join ``parent_alias.field_name`` under ``new_alias``."""
        parent_entity, parent = self._lookup(parent_alias)
        relation = self.registry.get_relation(parent_entity, field_name)
        if relation is None or relation.kind == "many_to_many":
            raise MetadataInconsistencyError(
                f"'{parent_entity}.{field_name}' is not a joinable association"
            )
        if relation.to_entity not in self.metadata.tables:
            raise MetadataInconsistencyError(
                f"'{parent_entity}.{field_name}' targets '{relation.to_entity}', "
                "which has no table"
            )
        validate_sql_identifier(new_alias, "alias")
        if new_alias in self._aliases:
            raise AliasCollisionError(new_alias)

        target = self.metadata.tables[relation.to_entity].alias(new_alias)
        fk = relation.foreign_key_field
        try:
            if relation.is_to_one:
                onclause = target.c.id == parent.c[fk]
            else:
                onclause = target.c[fk] == parent.c.id
        except KeyError as exc:
            raise MetadataInconsistencyError(
                f"Foreign key column '{fk}' missing for '{parent_entity}.{field_name}'"
            ) from exc

        self._from = self._from.join(target, onclause)
        self._aliases[new_alias] = (relation.to_entity, target)

    def add_equality_predicate(self, alias: str, field_name: str, param_name: str) -> None:
        """Require ``alias.field_name = :param_name``."""
        column = self._column(alias, field_name)
        self.predicates.append(column == sa.bindparam(param_name))

    def add_null_predicate(self, alias: str, field_name: str) -> None:
        """Require ``alias.field_name IS NULL``."""
        self.predicates.append(self._column(alias, field_name).is_(None))

    def bind_parameter(self, param_name: str, value: Any) -> None:
        """Bind a value to a named parameter; a name binds once."""
        if param_name in self.parameters:
            raise DuplicateParameterBindingError(param_name)
        self.parameters[param_name] = value if isinstance(value, bool) else python_to_sqlite(value)

    def to_query_string(self) -> str:
        """Render the statement as SQLite SQL with named placeholders."""
        return str(self.statement().compile(dialect=sqlite.dialect()))

    # -------------------------------------------------------------------------
    # Statement
    # -------------------------------------------------------------------------

    def select(self, field_name: str) -> SelectAccumulator:
        """Project a single field of the root alias instead of whole rows."""
        self._column(self.alias, field_name)
        self.select_fields.append(field_name)
        return self

    def statement(self, count_only: bool = False) -> sa.Select[Any]:
        """Build the SELECT statement."""
        if count_only:
            stmt = sa.select(sa.func.count(sa.distinct(self._root.c.id)).label("count"))
        elif self.select_fields:
            stmt = sa.select(
                *(
                    self._column(self.alias, name).label(name.replace(".", "_"))
                    for name in self.select_fields
                )
            )
        else:
            stmt = sa.select(self._root)
        stmt = stmt.select_from(self._from)
        if self.predicates:
            stmt = stmt.where(*self.predicates)
        return stmt

    def execute(self, connection: sa.Connection) -> list[dict[str, Any]]:
        """Run the query and return rows as dicts."""
        result = connection.execute(self.statement(), self.parameters)
        return [dict(row) for row in result.mappings()]

    def count(self, connection: sa.Connection) -> int:
        """Run the COUNT variant of the query."""
        return int(connection.execute(self.statement(count_only=True), self.parameters).scalar_one())

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _lookup(self, alias: str) -> tuple[str, Any]:
        try:
            return self._aliases[alias]
        except KeyError:
            raise MetadataInconsistencyError(f"Alias '{alias}' is not bound in this query") from None

    def _column(self, alias: str, field_name: str) -> Any:
        entity, table = self._lookup(alias)
        relation = self.registry.get_relation(entity, field_name)
        if relation is not None:
            # Scalar against an association compares the FK
            if not relation.is_to_one:
                raise MetadataInconsistencyError(
                    f"'{entity}.{field_name}' is a to-many association; "
                    "constrain it with a nested mapping"
                )
            field_name = relation.foreign_key_field
        head, _, rest = field_name.partition(".")
        if head not in table.c:
            raise MetadataInconsistencyError(f"'{entity}' has no field '{head}'")
        column = table.c[head]
        if not rest:
            return column
        for segment in rest.split("."):
            validate_sql_identifier(segment, "field path segment")
        return sa.func.json_extract(column, f"$.{rest}")
