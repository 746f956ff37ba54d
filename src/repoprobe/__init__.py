"""
repoprobe - repository assertions with association-aware queries.

This package provides:
- AssociationQueryBuilder: nested query specifications to joins and predicates
- Query accumulators rendering SQLite SQL or SQLAlchemy Core selects
- RepositoryHarness: fixture and assertion helpers for test suites

Example usage:
    >>> from repoprobe import RepositoryHarness
    >>> harness = RepositoryHarness(lambda: sqlite3.connect(":memory:"), entities)
    >>> with harness.session():
    ...     harness.see_in_repository("User", {"Company": {"name": "Codegyre"}})
"""

from repoprobe._version import get_version as _get_version

__version__ = _get_version()

from repoprobe.config import ProbeConfig, load_config
from repoprobe.runtime.errors import (
    AliasCollisionError,
    ConfigError,
    DuplicateParameterBindingError,
    InvalidSpecShapeError,
    MaxDepthExceededError,
    MetadataInconsistencyError,
    NonUniqueResultError,
    ProbeError,
    QueryBuildError,
    UnknownEntityError,
)
from repoprobe.runtime.query_builder import AssociationQueryBuilder, build_association_query
from repoprobe.testing.harness import RepositoryHarness

__all__ = [
    "__version__",
    # Config
    "ProbeConfig",
    "load_config",
    # Builder
    "AssociationQueryBuilder",
    "build_association_query",
    # Harness
    "RepositoryHarness",
    # Errors
    "AliasCollisionError",
    "ConfigError",
    "DuplicateParameterBindingError",
    "InvalidSpecShapeError",
    "MaxDepthExceededError",
    "MetadataInconsistencyError",
    "NonUniqueResultError",
    "ProbeError",
    "QueryBuildError",
    "UnknownEntityError",
]
