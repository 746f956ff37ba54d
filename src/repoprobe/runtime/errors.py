"""
Error types for query building and repository assertions.
"""

from __future__ import annotations


class ProbeError(Exception):
    """Base exception for all repoprobe errors."""

    def __init__(self, message: str, path: list[str] | None = None):
        self.message = message
        self.path = list(path) if path else []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with the offending key path if available."""
        if self.path:
            return f"{self.message} (at {'.'.join(self.path)})"
        return self.message


class QueryBuildError(ProbeError):
    """Raised when a query specification cannot be turned into a query."""


class UnknownEntityError(QueryBuildError):
    """
    Raised when metadata is requested for an entity the provider doesn't know.

    Examples:
    - Top-level entity name misspelt
    - Filter tree built by hand with a wrong target entity
    """

    def __init__(self, entity: str, path: list[str] | None = None):
        self.entity = entity
        super().__init__(f"Unknown entity '{entity}'", path)


class MetadataInconsistencyError(QueryBuildError):
    """
    Raised when entity metadata contradicts itself.

    Examples:
    - Association declared but its target entity has no metadata
    - Join requested through a field that isn't an association
    """


class DuplicateParameterBindingError(QueryBuildError):
    """Raised when two predicates would bind the same parameter name."""

    def __init__(self, param_name: str, path: list[str] | None = None):
        self.param_name = param_name
        super().__init__(f"Parameter ':{param_name}' is bound more than once", path)


class AliasCollisionError(QueryBuildError):
    """Raised when a join alias is already in use within the query."""

    def __init__(self, alias: str, path: list[str] | None = None):
        self.alias = alias
        super().__init__(f"Alias '{alias}' is already used in this query", path)


class MaxDepthExceededError(QueryBuildError):
    """Raised when a query specification nests deeper than the configured cap."""

    def __init__(self, max_depth: int, path: list[str] | None = None):
        self.max_depth = max_depth
        super().__init__(f"Query specification nests deeper than {max_depth} levels", path)


class InvalidSpecShapeError(QueryBuildError):
    """
    Raised when a query specification has a value or key of the wrong shape.

    Examples:
    - A list or arbitrary object where a scalar, None or mapping was expected
    - A nested mapping under a key that isn't an association
    - A key that isn't a (dotted) identifier
    """


class NonUniqueResultError(ProbeError):
    """Raised when a single value was requested but several rows matched."""


class ConfigError(ProbeError):
    """Raised when repoprobe configuration is invalid."""
