"""
repoprobe runtime.

This module provides:
- Association query builder (compile, plan, emit)
- Query accumulators (SQLite SQL and SQLAlchemy Core)
- Relation registry (entity metadata provider)
- SQLite persistence and Pydantic fixture models
"""

from repoprobe.runtime.accumulator import SQLQueryAccumulator
from repoprobe.runtime.model_generator import generate_all_entity_models, generate_entity_model
from repoprobe.runtime.protocols import MetadataProvider, QueryAccumulator, RelationLookup
from repoprobe.runtime.query_builder import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_ROOT_ALIAS,
    AssociationQueryBuilder,
    JoinStep,
    PredicateStep,
    QueryPlan,
    build_association_query,
)
from repoprobe.runtime.relations import RelationInfo, RelationRegistry
from repoprobe.runtime.repository import DatabaseManager
from repoprobe.runtime.sa_accumulator import SelectAccumulator
from repoprobe.runtime.sa_schema import build_metadata

__all__ = [
    # Builder
    "AssociationQueryBuilder",
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_ROOT_ALIAS",
    "JoinStep",
    "PredicateStep",
    "QueryPlan",
    "build_association_query",
    # Protocols
    "MetadataProvider",
    "QueryAccumulator",
    "RelationLookup",
    # Accumulators
    "SQLQueryAccumulator",
    "SelectAccumulator",
    "build_metadata",
    # Metadata and storage
    "DatabaseManager",
    "RelationInfo",
    "RelationRegistry",
    "generate_all_entity_models",
    "generate_entity_model",
]
