"""
Protocols the association query builder depends on.

The builder never talks to a database. It asks a metadata provider which
fields are associations and pushes joins, predicates and parameters into a
query accumulator. ``RelationRegistry`` and the accumulators in this package
satisfy these protocols; tests use recording fakes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetadataProvider(Protocol):
    """Answers association questions about named entities."""

    def has_entity(self, entity_name: str) -> bool: ...

    def get_associations(self, entity_name: str) -> Mapping[str, str]:
        """
        Map association field name to target entity name.

        Raises:
            UnknownEntityError: If the entity isn't known
        """
        ...


@runtime_checkable
class QueryAccumulator(Protocol):
    """Collects joins, predicates and bound parameters for one query."""

    def add_inner_join(self, parent_alias: str, field_name: str, new_alias: str) -> None: ...

    def add_equality_predicate(self, alias: str, field_name: str, param_name: str) -> None: ...

    def add_null_predicate(self, alias: str, field_name: str) -> None: ...

    def bind_parameter(self, param_name: str, value: Any) -> None: ...

    def to_query_string(self) -> str: ...


@runtime_checkable
class RelationLookup(Protocol):
    """
    Metadata providers that can describe any declared relation.

    Optional. Lets the builder tell a relation left out of
    ``get_associations`` (many-to-many) apart from a plain field.
    """

    def get_relation(self, entity_name: str, relation_name: str) -> Any: ...
