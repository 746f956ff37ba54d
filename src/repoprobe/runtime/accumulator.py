"""
SQL query accumulator.

Collects joins, predicates and named parameters emitted by the association
query builder, renders them as SQLite SQL and runs the result.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from repoprobe.runtime.errors import (
    AliasCollisionError,
    DuplicateParameterBindingError,
    MetadataInconsistencyError,
    UnknownEntityError,
)
from repoprobe.runtime.query_builder import (
    DEFAULT_ROOT_ALIAS,
    quote_identifier,
    validate_sql_identifier,
)
from repoprobe.runtime.relations import RelationInfo, RelationRegistry
from repoprobe.runtime.repository import python_to_sqlite


@dataclass(frozen=True)
class JoinClause:
    """A single inner join."""

    parent_alias: str
    field: str
    alias: str
    relation: RelationInfo

    def to_sql(self) -> str:
        """Convert to an INNER JOIN fragment."""
        target = quote_identifier(self.relation.to_entity)
        new = quote_identifier(self.alias)
        parent = quote_identifier(self.parent_alias)
        fk = quote_identifier(self.relation.foreign_key_field)
        if self.relation.is_to_one:
            condition = f'{new}."id" = {parent}.{fk}'
        else:
            condition = f'{new}.{fk} = {parent}."id"'
        return f"INNER JOIN {target} AS {new} ON {condition}"


@dataclass(frozen=True)
class Predicate:
    """Equality predicate, or IS NULL when ``param_name`` is None."""

    alias: str
    field: str
    param_name: str | None = None
    column: str | None = None  # FK column when ``field`` names a to-one association

    @property
    def stored_field(self) -> str:
        return self.column or self.field


def field_reference(alias: str, field_name: str) -> str:
    """
    Build a SQL reference to a field of an aliased table.

    A dotted field name addresses a path inside a JSON column:
    ``address.city`` -> ``json_extract("s"."address", '$.city')``.
    """
    head, _, rest = field_name.partition(".")
    column = f"{quote_identifier(alias)}.{quote_identifier(head)}"
    if not rest:
        return column
    for segment in rest.split("."):
        validate_sql_identifier(segment, "field path segment")
    return f"json_extract({column}, '$.{rest}')"


class SQLQueryAccumulator:
    """
    Query accumulator that renders SQLite SQL.

    Example:
        qb = SQLQueryAccumulator(registry, "User")
        qb.add_inner_join("s", "Company", "Company")
        qb.add_equality_predicate("Company", "name", "Company__name")
        qb.bind_parameter("Company__name", "Codegyre")

        sql, params = qb.build_select()
        rows = qb.execute(conn)
    """

    def __init__(
        self,
        registry: RelationRegistry,
        entity: str,
        alias: str = DEFAULT_ROOT_ALIAS,
    ):
        if not registry.has_entity(entity):
            raise UnknownEntityError(entity)
        validate_sql_identifier(entity, "table name")
        validate_sql_identifier(alias, "alias")

        self.registry = registry
        self.entity = entity
        self.alias = alias
        self.joins: list[JoinClause] = []
        self.predicates: list[Predicate] = []
        self.parameters: dict[str, Any] = {}
        self.select_fields: list[str] = []
        self._aliases: dict[str, str] = {alias: entity}

    # -------------------------------------------------------------------------
    # QueryAccumulator protocol
    # -------------------------------------------------------------------------

    def add_inner_join(self, parent_alias: str, field_name: str, new_alias: str) -> None:
        """Join ``parent_alias.field_name`` under ``new_alias``."""
        parent_entity = self._entity_for(parent_alias)
        relation = self.registry.get_relation(parent_entity, field_name)
        if relation is None:
            raise MetadataInconsistencyError(
                f"'{parent_entity}.{field_name}' is not an association"
            )
        if relation.kind == "many_to_many":
            raise MetadataInconsistencyError(
                f"'{parent_entity}.{field_name}' is many-to-many and can't be joined directly"
            )
        validate_sql_identifier(new_alias, "alias")
        if new_alias in self._aliases:
            raise AliasCollisionError(new_alias)

        self._aliases[new_alias] = relation.to_entity
        self.joins.append(JoinClause(parent_alias, field_name, new_alias, relation))

    def add_equality_predicate(self, alias: str, field_name: str, param_name: str) -> None:
        """Require ``alias.field_name = :param_name``."""
        column = self._fk_column(alias, field_name)
        validate_sql_identifier(param_name, "parameter name")
        self.predicates.append(Predicate(alias, field_name, param_name, column))

    def add_null_predicate(self, alias: str, field_name: str) -> None:
        """Require ``alias.field_name IS NULL``."""
        column = self._fk_column(alias, field_name)
        self.predicates.append(Predicate(alias, field_name, None, column))

    def bind_parameter(self, param_name: str, value: Any) -> None:
        """Bind a value to a named parameter; a name binds once."""
        if param_name in self.parameters:
            raise DuplicateParameterBindingError(param_name)
        self.parameters[param_name] = python_to_sqlite(value)

    def to_query_string(self) -> str:
        """
        Render an object-query style string for debugging.

        Example:
            SELECT s FROM User s INNER JOIN s.Company Company WHERE s.name = :s_name
        """
        if self.select_fields:
            select = ", ".join(f"{self.alias}.{f}" for f in self.select_fields)
        else:
            select = self.alias
        parts = [f"SELECT {select} FROM {self.entity} {self.alias}"]
        for join in self.joins:
            parts.append(f"INNER JOIN {join.parent_alias}.{join.field} {join.alias}")
        if self.predicates:
            conditions = []
            for p in self.predicates:
                if p.param_name is None:
                    conditions.append(f"{p.alias}.{p.field} IS NULL")
                else:
                    conditions.append(f"{p.alias}.{p.field} = :{p.param_name}")
            parts.append("WHERE " + " AND ".join(conditions))
        return " ".join(parts)

    # -------------------------------------------------------------------------
    # SQL
    # -------------------------------------------------------------------------

    def select(self, field_name: str) -> SQLQueryAccumulator:
        """Project a single field of the root alias instead of whole rows."""
        self.select_fields.append(field_name)
        return self

    def build_where_clause(self) -> str:
        """Build the WHERE clause from predicates."""
        if not self.predicates:
            return ""
        fragments = []
        for p in self.predicates:
            ref = field_reference(p.alias, p.stored_field)
            if p.param_name is None:
                fragments.append(f"{ref} IS NULL")
            else:
                fragments.append(f"{ref} = :{p.param_name}")
        return "WHERE " + " AND ".join(fragments)

    def build_select(self, count_only: bool = False) -> tuple[str, dict[str, Any]]:
        """
        Build the complete SELECT query.

        Args:
            count_only: If True, count distinct root records instead

        Returns:
            Tuple of (sql, named parameters)
        """
        root = quote_identifier(self.alias)
        if count_only:
            select = f'SELECT COUNT(DISTINCT {root}."id") AS {quote_identifier("count")}'
        elif self.select_fields:
            refs = []
            for name in self.select_fields:
                label = quote_identifier(name.replace(".", "_"))
                refs.append(f"{field_reference(self.alias, name)} AS {label}")
            select = f"SELECT {', '.join(refs)}"
        else:
            select = f"SELECT {root}.*"

        query_parts = [select, f"FROM {quote_identifier(self.entity)} AS {root}"]
        query_parts.extend(join.to_sql() for join in self.joins)
        where_clause = self.build_where_clause()
        if where_clause:
            query_parts.append(where_clause)

        return " ".join(query_parts), dict(self.parameters)

    def build_count(self) -> tuple[str, dict[str, Any]]:
        """Build COUNT query."""
        return self.build_select(count_only=True)

    def execute(self, conn: sqlite3.Connection) -> list[dict[str, Any]]:
        """Run the query and return rows as dicts."""
        sql, params = self.build_select()
        return _fetch_dicts(conn, sql, params)

    def count(self, conn: sqlite3.Connection) -> int:
        """Run the COUNT variant of the query."""
        sql, params = self.build_count()
        row = conn.execute(sql, params).fetchone()
        return int(row[0])

    def _entity_for(self, alias: str) -> str:
        try:
            return self._aliases[alias]
        except KeyError:
            raise MetadataInconsistencyError(f"Alias '{alias}' is not bound in this query") from None

    def _fk_column(self, alias: str, field_name: str) -> str | None:
        """FK column compared when a predicate names a to-one association."""
        entity = self._entity_for(alias)
        relation = self.registry.get_relation(entity, field_name)
        if relation is None:
            return None
        if not relation.is_to_one:
            raise MetadataInconsistencyError(
                f"'{entity}.{field_name}' is a to-many association; "
                "constrain it with a nested mapping"
            )
        return relation.foreign_key_field


def _fetch_dicts(conn: sqlite3.Connection, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
    cursor = conn.execute(sql, params)
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row, strict=True)) for row in cursor.fetchall()]
