"""
SQLite persistence for repository assertions.

Creates tables from EntitySpec (with foreign keys from the relation registry),
converts values between Python and SQLite, and inserts fixture rows.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from repoprobe.runtime.errors import UnknownEntityError
from repoprobe.runtime.query_builder import quote_identifier
from repoprobe.runtime.relations import (
    RelationRegistry,
    get_foreign_key_constraints,
    get_foreign_key_indexes,
)
from repoprobe.specs.entity import EntitySpec, FieldSpec, FieldType, ScalarType

logger = logging.getLogger(__name__)

# =============================================================================
# SQLite Type Mapping
# =============================================================================


def _scalar_type_to_sqlite(scalar_type: ScalarType) -> str:
    """Map scalar types to SQLite types."""
    mapping: dict[ScalarType, str] = {
        ScalarType.STR: "TEXT",
        ScalarType.TEXT: "TEXT",
        ScalarType.INT: "INTEGER",
        ScalarType.DECIMAL: "REAL",
        ScalarType.BOOL: "INTEGER",  # SQLite uses 0/1 for bool
        ScalarType.DATE: "TEXT",  # ISO format
        ScalarType.DATETIME: "TEXT",  # ISO format
        ScalarType.UUID: "TEXT",  # UUID as string
        ScalarType.EMAIL: "TEXT",
        ScalarType.URL: "TEXT",
        ScalarType.JSON: "TEXT",  # JSON as string
    }
    return mapping.get(scalar_type, "TEXT")


def _field_type_to_sqlite(field_type: FieldType) -> str:
    """Convert FieldType to SQLite column type."""
    if field_type.kind == "scalar" and field_type.scalar_type:
        return _scalar_type_to_sqlite(field_type.scalar_type)
    return "TEXT"  # enum values and FK UUID strings


def python_to_sqlite(value: Any) -> Any:
    """Convert Python value to SQLite-compatible value."""
    if value is None:
        return None
    elif isinstance(value, Enum):
        return python_to_sqlite(value.value)
    elif isinstance(value, UUID):
        return str(value)
    elif isinstance(value, (datetime, date, time)):
        return value.isoformat()
    elif isinstance(value, Decimal):
        return float(value)
    elif isinstance(value, bool):
        return 1 if value else 0
    elif isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    else:
        return value


def sqlite_to_python(value: Any, field_type: FieldType | None = None) -> Any:
    """Convert SQLite value to Python type based on field type."""
    if value is None or field_type is None:
        return value

    if field_type.kind == "scalar" and field_type.scalar_type:
        scalar = field_type.scalar_type
        if scalar == ScalarType.UUID:
            return UUID(value)
        elif scalar == ScalarType.DATETIME:
            return datetime.fromisoformat(value)
        elif scalar == ScalarType.DATE:
            return date.fromisoformat(value)
        elif scalar == ScalarType.DECIMAL:
            return Decimal(str(value))
        elif scalar == ScalarType.BOOL:
            return bool(value)
        elif scalar == ScalarType.JSON:
            return json.loads(value)
        return value
    # refs come back as stored, like the ids they point at
    return value


# =============================================================================
# Database Manager
# =============================================================================


class DatabaseManager:
    """
    Manages a SQLite database and its schema.

    Either owns a database file (``db_path``) or wraps a connection handed in
    by the caller, which is how test harnesses share an in-memory database.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        connection: sqlite3.Connection | None = None,
    ):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
            connection: Existing connection to use instead of opening one
        """
        self.db_path = str(db_path)
        self._connection = connection
        self._entities: dict[str, EntitySpec] = {}
        if self.db_path != ":memory:" and connection is None:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a connection that commits on success and rolls back on error.

        Yields:
            SQLite connection
        """
        conn = self.get_persistent_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def get_persistent_connection(self) -> sqlite3.Connection:
        """
        Get the connection for the manager's lifetime.

        Returns:
            SQLite connection (reuses existing if available)
        """
        if self._connection is None:
            self._connection = sqlite3.connect(self.db_path)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def close(self) -> None:
        """Close the persistent connection."""
        if self._connection:
            self._connection.close()
            self._connection = None

    def get_entity(self, entity_name: str) -> EntitySpec:
        """Look up an entity whose table this manager created."""
        try:
            return self._entities[entity_name]
        except KeyError:
            raise UnknownEntityError(entity_name) from None

    def create_table(self, entity: EntitySpec, *, registry: RelationRegistry | None = None) -> None:
        """
        Create a table for an entity if it doesn't exist.

        Args:
            entity: Entity specification
            registry: Optional RelationRegistry for FK columns and constraints
        """
        columns = self._build_columns(entity, registry=registry)
        table = quote_identifier(entity.name)
        sql = f"CREATE TABLE IF NOT EXISTS {table} ({columns})"

        with self.connection() as conn:
            conn.execute(sql)

            for field in entity.fields:
                if field.indexed:
                    col = quote_identifier(field.name)
                    index_sql = (
                        f'CREATE INDEX IF NOT EXISTS "idx_{entity.name}_{field.name}" '
                        f"ON {table}({col})"
                    )
                    conn.execute(index_sql)

            if registry is not None:
                for fk_idx_sql in get_foreign_key_indexes(entity, registry):
                    conn.execute(fk_idx_sql)

        self._entities[entity.name] = entity
        logger.debug("Created table %s", entity.name)

    def _build_columns(self, entity: EntitySpec, *, registry: RelationRegistry | None = None) -> str:
        """Build column definitions for CREATE TABLE."""
        columns = []

        if entity.get_field("id") is None:
            columns.append('"id" TEXT PRIMARY KEY')

        for field in entity.fields:
            columns.append(self._build_column(field))

        if registry is not None:
            declared = {f.name for f in entity.fields}
            # FK columns implied by relations but not declared as fields
            for relation in registry.get_relations(entity.name):
                if relation.is_to_one and relation.foreign_key_field not in declared:
                    columns.append(f"{quote_identifier(relation.foreign_key_field)} TEXT")
                    declared.add(relation.foreign_key_field)
            columns.extend(get_foreign_key_constraints(entity, registry))

        return ", ".join(columns)

    def _build_column(self, field: FieldSpec) -> str:
        """Build a single column definition."""
        parts = [quote_identifier(field.name), _field_type_to_sqlite(field.type)]

        if field.name == "id":
            parts.append("PRIMARY KEY")
        elif field.required:
            parts.append("NOT NULL")

        if field.unique:
            parts.append("UNIQUE")

        if field.default is not None:
            default_val = python_to_sqlite(field.default)
            if isinstance(default_val, str):
                escaped = default_val.replace("'", "''")
                parts.append(f"DEFAULT '{escaped}'")
            else:
                parts.append(f"DEFAULT {default_val}")

        return " ".join(parts)

    def create_all_tables(self, entities: list[EntitySpec]) -> RelationRegistry:
        """
        Create tables for all entities.

        Args:
            entities: List of entity specifications

        Returns:
            The relation registry used for foreign keys
        """
        registry = RelationRegistry.from_entities(entities)
        registry.validate()
        for entity in entities:
            self.create_table(entity, registry=registry)
        return registry

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        cursor = self.get_persistent_connection().execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table_name,)
        )
        return cursor.fetchone() is not None

    def get_table_columns(self, table_name: str) -> list[str]:
        """Get column names for a table."""
        cursor = self.get_persistent_connection().execute(
            f"PRAGMA table_info({quote_identifier(table_name)})"
        )
        return [row[1] for row in cursor.fetchall()]

    def insert(self, entity_name: str, data: dict[str, Any]) -> str:
        """
        Insert one row without committing.

        An ``id`` is generated when ``data`` doesn't carry one.

        Returns:
            The row id as stored
        """
        self.get_entity(entity_name)
        row = {k: python_to_sqlite(v) for k, v in data.items()}
        if row.get("id") is None:
            row["id"] = str(uuid4())

        columns = ", ".join(quote_identifier(k) for k in row)
        placeholders = ", ".join(f":{k}" for k in row)
        sql = f"INSERT INTO {quote_identifier(entity_name)} ({columns}) VALUES ({placeholders})"

        self.get_persistent_connection().execute(sql, row)
        return str(row["id"])

    def commit(self) -> None:
        """Commit pending writes on the persistent connection."""
        self.get_persistent_connection().commit()

    def rollback(self) -> None:
        """Discard pending writes on the persistent connection."""
        self.get_persistent_connection().rollback()
