"""
Association query builder.

Translates a nested query specification into inner joins and equality/null
predicates against a query accumulator, consulting entity metadata to tell
associations from plain fields.

Example:
    builder = AssociationQueryBuilder(registry)
    qb = SQLQueryAccumulator(registry, "User", "s")
    builder.build("User", "s", {"name": "hlogeon", "Company": {"name": "Codegyre"}}, qb)

    qb.to_query_string()
    # SELECT s FROM User s INNER JOIN s.Company Company
    #   WHERE s.name = :s_name AND Company.name = :Company__name

Building runs in three phases: the query mapping is compiled into a filter
tree, the tree is planned (aliases and parameter names allocated), and only
then is the plan emitted into the accumulator. Every validation error is
raised before the accumulator sees a single call.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, NoReturn
from uuid import UUID

from repoprobe.runtime.errors import (
    DuplicateParameterBindingError,
    InvalidSpecShapeError,
    MaxDepthExceededError,
    MetadataInconsistencyError,
    UnknownEntityError,
)
from repoprobe.runtime.protocols import MetadataProvider, QueryAccumulator, RelationLookup
from repoprobe.specs.filter import EqualsNode, FilterNode, IsNullNode, JoinNode

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32
DEFAULT_ROOT_ALIAS = "s"

SCALAR_TYPES: tuple[type, ...] = (str, int, float, bool, Decimal, date, datetime, time, UUID, Enum)

# Valid SQL identifier pattern (alphanumeric and underscore, not starting with digit)
_VALID_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_sql_identifier(name: str, context: str = "identifier") -> str:
    """
    Validate that a string is a safe SQL identifier.

    Args:
        name: The identifier to validate
        context: Description of what's being validated (for error messages)

    Returns:
        The validated name

    Raises:
        ValueError: If the name contains invalid characters
    """
    if not name:
        raise ValueError(f"SQL {context} cannot be empty")
    if not _VALID_IDENTIFIER_PATTERN.match(name):
        raise ValueError(
            f"Invalid SQL {context} '{name}': must contain only letters, digits, "
            "and underscores, and cannot start with a digit"
        )
    return name


def quote_identifier(name: str) -> str:
    """Validate and double-quote a SQL identifier."""
    return f'"{validate_sql_identifier(name)}"'


def validate_field_path(key: str, path: list[str]) -> str:
    """
    Validate a query key: an identifier, or a dotted path of identifiers.

    Raises:
        InvalidSpecShapeError: If any segment isn't an identifier
    """
    for segment in key.split("."):
        if not _VALID_IDENTIFIER_PATTERN.match(segment):
            raise InvalidSpecShapeError(
                f"Invalid query key '{key}': expected an identifier or a dotted path "
                "of identifiers",
                path,
            )
    return key


def sanitize_param_name(name: str) -> str:
    """Strip the characters a bind parameter name can't carry."""
    return name.replace(".", "")


def is_scalar(value: Any) -> bool:
    """Check if a value can be bound as a single query parameter."""
    return isinstance(value, SCALAR_TYPES)


# =============================================================================
# Plan
# =============================================================================


@dataclass(frozen=True)
class JoinStep:
    """Inner join from ``parent_alias.field`` to a new alias."""

    parent_alias: str
    field: str
    alias: str
    target_entity: str
    path: tuple[str, ...] = ()


@dataclass(frozen=True)
class PredicateStep:
    """Equality predicate, or IS NULL when ``param_name`` is None."""

    alias: str
    field: str
    param_name: str | None
    value: Any = None
    path: tuple[str, ...] = ()

    @property
    def is_null(self) -> bool:
        return self.param_name is None


@dataclass
class QueryPlan:
    """
    Ordered joins and predicates for one query, ready to emit.

    Parameter names are checked for uniqueness as steps are added.
    """

    entity: str
    alias: str
    steps: list[JoinStep | PredicateStep] = field(default_factory=list)
    parameters: dict[str, Any] = field(default_factory=dict)

    def add(self, step: JoinStep | PredicateStep) -> None:
        """Append a step, rejecting a parameter name that is already taken."""
        if isinstance(step, PredicateStep) and step.param_name is not None:
            if step.param_name in self.parameters:
                raise DuplicateParameterBindingError(step.param_name, list(step.path))
            self.parameters[step.param_name] = step.value
        self.steps.append(step)

    @property
    def joins(self) -> list[JoinStep]:
        return [s for s in self.steps if isinstance(s, JoinStep)]

    @property
    def predicates(self) -> list[PredicateStep]:
        return [s for s in self.steps if isinstance(s, PredicateStep)]

    def apply(self, builder: QueryAccumulator) -> None:
        """Emit every step into the accumulator, depth-first."""
        for step in self.steps:
            if isinstance(step, JoinStep):
                builder.add_inner_join(step.parent_alias, step.field, step.alias)
            elif step.param_name is None:
                builder.add_null_predicate(step.alias, step.field)
            else:
                builder.add_equality_predicate(step.alias, step.field, step.param_name)
                builder.bind_parameter(step.param_name, step.value)


# =============================================================================
# Builder
# =============================================================================


class AssociationQueryBuilder:
    """
    Builds join/filter chains from nested query specifications.

    A specification maps field names to scalars, ``None`` or nested mappings.
    A nested mapping is only accepted under an association and means "join
    the association and constrain the joined entity".

    Naming:
        - root-level field ``name`` under alias ``s`` binds ``:s_name``
        - field ``name`` of a join aliased ``Company`` binds ``:Company__name``
        - a join takes its association name as alias, falling back to
          ``<parent>_<name>`` when that alias is already in use
    """

    def __init__(self, metadata: MetadataProvider, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.metadata = metadata
        self.max_depth = max_depth

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def build(
        self,
        base_entity: str,
        alias: str,
        query_spec: Mapping[str, Any],
        builder: QueryAccumulator,
    ) -> None:
        """
        Add the constraints described by ``query_spec`` to ``builder``.

        Args:
            base_entity: Entity whose metadata governs the top-level keys
            alias: Alias ``builder`` already binds to ``base_entity``
            query_spec: Nested mapping of field name to scalar, None or mapping
            builder: Accumulator scoped to ``base_entity`` under ``alias``

        Raises:
            QueryBuildError: Before any call reaches ``builder``
        """
        nodes = self.compile(base_entity, query_spec)
        self.build_nodes(base_entity, alias, nodes, builder)

    def build_nodes(
        self,
        base_entity: str,
        alias: str,
        nodes: Sequence[FilterNode],
        builder: QueryAccumulator,
    ) -> None:
        """Add the constraints of an already-built filter tree to ``builder``."""
        plan = self.plan(base_entity, alias, nodes)
        plan.apply(builder)
        logger.debug(
            "Built query on %s as %s: %d joins, %d predicates, params=%s",
            base_entity,
            alias,
            len(plan.joins),
            len(plan.predicates),
            sorted(plan.parameters),
        )

    def compile(self, entity: str, query_spec: Mapping[str, Any]) -> list[FilterNode]:
        """
        Compile a nested mapping into a filter tree.

        Raises:
            UnknownEntityError: If ``entity`` has no metadata
            MetadataInconsistencyError: If an association targets an unknown entity
            InvalidSpecShapeError: On a key or value of the wrong shape
            MaxDepthExceededError: If nesting goes deeper than ``max_depth``
        """
        return self._compile_mapping(entity, query_spec, [], 1)

    def plan(self, base_entity: str, alias: str, nodes: Sequence[FilterNode]) -> QueryPlan:
        """Allocate join aliases and parameter names for a filter tree."""
        try:
            validate_sql_identifier(alias, "alias")
        except ValueError as exc:
            raise InvalidSpecShapeError(str(exc)) from exc

        plan = QueryPlan(entity=base_entity, alias=alias)
        used_aliases = {alias}
        self._plan_level(plan, base_entity, alias, nodes, [], 1, used_aliases, root=True)
        return plan

    # -------------------------------------------------------------------------
    # Compilation
    # -------------------------------------------------------------------------

    def _compile_mapping(
        self,
        entity: str,
        spec: Any,
        path: list[str],
        level: int,
    ) -> list[FilterNode]:
        if level > self.max_depth:
            raise MaxDepthExceededError(self.max_depth, path)
        if not isinstance(spec, Mapping):
            raise InvalidSpecShapeError(
                f"Expected a mapping of field names, got {type(spec).__name__}", path
            )

        associations = self._associations(entity, path)
        nodes: list[FilterNode] = []

        for key, value in spec.items():
            if not isinstance(key, str):
                raise InvalidSpecShapeError(
                    f"Query keys must be strings, got {type(key).__name__}", [*path, repr(key)]
                )
            key_path = [*path, key]
            validate_field_path(key, key_path)

            if isinstance(value, Mapping):
                target = associations.get(key)
                if target is None:
                    self._reject_nested(entity, key, key_path)
                self._require_target(entity, key, target, key_path)
                children = self._compile_mapping(target, value, key_path, level + 1)
                nodes.append(JoinNode(field=key, target_entity=target, children=children))
            elif value is None:
                nodes.append(IsNullNode(field=key))
            elif is_scalar(value):
                nodes.append(EqualsNode(field=key, value=value))
            else:
                raise InvalidSpecShapeError(
                    f"Value for '{key}' must be a scalar, None or a mapping, "
                    f"got {type(value).__name__}",
                    key_path,
                )

        return nodes

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    def _plan_level(
        self,
        plan: QueryPlan,
        entity: str,
        alias: str,
        nodes: Sequence[FilterNode],
        path: list[str],
        level: int,
        used_aliases: set[str],
        *,
        root: bool,
    ) -> None:
        if level > self.max_depth:
            raise MaxDepthExceededError(self.max_depth, path)

        associations = self._associations(entity, path)

        for node in nodes:
            node_path = [*path, node.field]
            validate_field_path(node.field, node_path)

            if isinstance(node, JoinNode):
                target = associations.get(node.field)
                if target is None:
                    raise MetadataInconsistencyError(
                        f"'{node.field}' is not an association of '{entity}'", node_path
                    )
                if target != node.target_entity:
                    raise MetadataInconsistencyError(
                        f"'{entity}.{node.field}' targets '{target}', "
                        f"not '{node.target_entity}'",
                        node_path,
                    )
                self._require_target(entity, node.field, target, node_path)

                join_alias = _allocate_alias(node.field, alias, used_aliases)
                plan.add(
                    JoinStep(
                        parent_alias=alias,
                        field=node.field,
                        alias=join_alias,
                        target_entity=target,
                        path=tuple(node_path),
                    )
                )
                self._plan_level(
                    plan,
                    target,
                    join_alias,
                    node.children,
                    node_path,
                    level + 1,
                    used_aliases,
                    root=False,
                )
            elif isinstance(node, IsNullNode):
                plan.add(PredicateStep(alias, node.field, None, path=tuple(node_path)))
            else:
                if not is_scalar(node.value):
                    raise InvalidSpecShapeError(
                        f"Value for '{node.field}' must be a scalar, "
                        f"got {type(node.value).__name__}",
                        node_path,
                    )
                separator = "_" if root else "__"
                param_name = sanitize_param_name(f"{alias}{separator}{node.field}")
                plan.add(
                    PredicateStep(alias, node.field, param_name, node.value, tuple(node_path))
                )

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def _associations(self, entity: str, path: list[str]) -> Mapping[str, str]:
        if not self.metadata.has_entity(entity):
            raise UnknownEntityError(entity, path)
        return self.metadata.get_associations(entity)

    def _reject_nested(self, entity: str, key: str, path: list[str]) -> NoReturn:
        relation = None
        if isinstance(self.metadata, RelationLookup):
            relation = self.metadata.get_relation(entity, key)
        if relation is not None:
            raise MetadataInconsistencyError(
                f"'{entity}.{key}' is a {relation.kind} association "
                "and can't be joined directly",
                path,
            )
        raise InvalidSpecShapeError(
            f"'{key}' is not an association of '{entity}'; "
            "nested mappings are only allowed under associations",
            path,
        )

    def _require_target(self, entity: str, key: str, target: str, path: list[str]) -> None:
        if not self.metadata.has_entity(target):
            raise MetadataInconsistencyError(
                f"Association '{entity}.{key}' targets '{target}', which has no metadata",
                path,
            )


def _allocate_alias(field_name: str, parent_alias: str, used_aliases: set[str]) -> str:
    """Pick a join alias that is unique within the query and reserve it."""
    candidate = field_name
    if candidate in used_aliases:
        candidate = f"{parent_alias}_{field_name}"
    base = candidate
    suffix = 2
    while candidate in used_aliases:
        candidate = f"{base}_{suffix}"
        suffix += 1
    used_aliases.add(candidate)
    return candidate


def build_association_query(
    metadata: MetadataProvider,
    base_entity: str,
    alias: str,
    query_spec: Mapping[str, Any],
    builder: QueryAccumulator,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> None:
    """Build ``query_spec`` into ``builder`` with a one-off AssociationQueryBuilder."""
    AssociationQueryBuilder(metadata, max_depth=max_depth).build(
        base_entity, alias, query_spec, builder
    )
