"""
Specification types for repoprobe.

Entity metadata (what the store holds) and filter trees (what a query asks for).
"""

from .entity import (
    EntitySpec,
    FieldSpec,
    FieldType,
    OnDeleteAction,
    RelationKind,
    RelationSpec,
    ScalarType,
)
from .filter import (
    EqualsNode,
    FilterNode,
    IsNullNode,
    JoinNode,
    count_joins,
    count_predicates,
)

__all__ = [
    # Entity
    "EntitySpec",
    "FieldSpec",
    "FieldType",
    "OnDeleteAction",
    "RelationKind",
    "RelationSpec",
    "ScalarType",
    # Filter
    "EqualsNode",
    "FilterNode",
    "IsNullNode",
    "JoinNode",
    "count_joins",
    "count_predicates",
]
