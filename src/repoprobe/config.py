"""
repoprobe configuration.

Settings live under ``[tool.repoprobe]`` in ``pyproject.toml``, or at the top
level of a ``repoprobe.toml``:

    [tool.repoprobe]
    max_depth = 16
    root_alias = "s"
    cleanup = true
    log_queries = true
    log_level = "DEBUG"
"""

import logging
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from repoprobe.runtime.errors import ConfigError

CONFIG_FILENAMES = ("repoprobe.toml", "pyproject.toml")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ProbeConfig:
    """Query building and repository assertion settings."""

    max_depth: int = 32  # Nesting cap for query specifications
    root_alias: str = "s"
    cleanup: bool = True  # Roll back each harness session instead of committing
    log_queries: bool = True
    log_dir: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not isinstance(self.max_depth, int) or self.max_depth < 1:
            raise ConfigError(f"max_depth must be a positive integer, got {self.max_depth!r}")
        if not isinstance(self.root_alias, str) or not self.root_alias.isidentifier():
            raise ConfigError(f"root_alias must be an identifier, got {self.root_alias!r}")
        if not isinstance(self.log_level, str) or self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

    @property
    def level(self) -> int:
        """Logging level as a ``logging`` constant."""
        return int(getattr(logging, self.log_level.upper()))


def _parse_config(data: dict[str, Any]) -> ProbeConfig:
    known = {f.name for f in fields(ProbeConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown repoprobe setting(s): {', '.join(unknown)}")
    return ProbeConfig(**data)


def load_config(path: Path | str | None = None) -> ProbeConfig:
    """
    Load configuration from a TOML file.

    Args:
        path: A ``pyproject.toml`` / ``repoprobe.toml`` file, or a directory
            searched for one of them. Defaults to the working directory.

    Returns:
        Parsed configuration; defaults when no file or section is found
    """
    target = Path(path) if path is not None else Path.cwd()

    if target.is_dir():
        for name in CONFIG_FILENAMES:
            if (target / name).is_file():
                target = target / name
                break
        else:
            return ProbeConfig()
    elif not target.is_file():
        return ProbeConfig()

    try:
        data = tomllib.loads(target.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {target}: {exc}") from exc

    if target.name == "pyproject.toml":
        data = data.get("tool", {}).get("repoprobe", {})

    return _parse_config(data)
