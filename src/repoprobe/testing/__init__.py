"""Test-suite helpers: fixtures and assertions against a repository."""

from repoprobe.testing.harness import RepositoryHarness

__all__ = ["RepositoryHarness"]
