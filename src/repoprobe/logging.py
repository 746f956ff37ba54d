"""
repoprobe logging infrastructure.

Provides:
- JSONL file output (one JSON object per line, easy to tail and parse)
- Human-readable console output
- Component loggers (QUERY, HARNESS, DB) under the ``repoprobe`` logger

Library modules log through ``logging.getLogger(__name__)`` and never add
handlers themselves; ``setup_logging`` is for test suites that want the
built queries on screen or on disk.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from repoprobe.config import ProbeConfig

# =============================================================================
# Terminal Colors (respects NO_COLOR)
# =============================================================================

_NO_COLOR = bool(os.environ.get("NO_COLOR")) or not sys.stdout.isatty()


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "" if _NO_COLOR else "\033[0m"
    DIM = "" if _NO_COLOR else "\033[2m"

    # Log levels
    DEBUG = "" if _NO_COLOR else "\033[36m"  # Cyan
    INFO = "" if _NO_COLOR else "\033[32m"  # Green
    WARNING = "" if _NO_COLOR else "\033[33m"  # Yellow
    ERROR = "" if _NO_COLOR else "\033[31m"  # Red
    CRITICAL = "" if _NO_COLOR else "\033[35m"  # Magenta

    # Components
    QUERY = "" if _NO_COLOR else "\033[34m"  # Blue
    HARNESS = "" if _NO_COLOR else "\033[35m"  # Magenta


LOG_FILENAME = "repoprobe.log"


# =============================================================================
# Formatters
# =============================================================================


class JSONLFormatter(logging.Formatter):
    """
    Formats log records as JSON Lines.

    Each entry carries timestamp, level, component and message, plus
    ``context`` when the record was logged with structured data.

    Example output:
    {"timestamp":"2026-01-15T10:30:45.123+00:00","level":"DEBUG","component":"QUERY","message":"SELECT s FROM User s WHERE s.name = :s_name","context":{"params":{"s_name":"hlogeon"}}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "component": getattr(record, "component", "PROBE"),
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        # Add source location for warnings and errors
        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.DEBUG,
        logging.INFO: Colors.INFO,
        logging.WARNING: Colors.WARNING,
        logging.ERROR: Colors.ERROR,
        logging.CRITICAL: Colors.CRITICAL,
    }

    def format(self, record: logging.LogRecord) -> str:
        component = getattr(record, "component", "PROBE")
        component_color = getattr(record, "component_color", "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        if _NO_COLOR:
            prefix = f"[{timestamp}] [{component}]"
        else:
            prefix = (
                f"{Colors.DIM}{timestamp}{Colors.RESET} "
                f"{component_color}[{component}]{Colors.RESET}"
            )

        # Add level for non-INFO messages
        if record.levelno != logging.INFO:
            level_name = record.levelname
            if not _NO_COLOR:
                level_name = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level_name}{Colors.RESET}"
            prefix = f"{prefix} {level_name}:"

        return f"{prefix} {record.getMessage()}"


# =============================================================================
# Logger Setup
# =============================================================================


_loggers: dict[str, logging.Logger] = {}
_log_dir: Path | None = None


def setup_logging(
    log_dir: Path | str | None = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,  # 5MB
    backup_count: int = 3,
) -> logging.Logger:
    """
    Attach console (and optionally JSONL file) handlers to the ``repoprobe`` logger.

    Args:
        log_dir: Directory for ``repoprobe.log``; console only when None
        level: Minimum log level
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep

    Returns:
        The configured ``repoprobe`` logger
    """
    global _log_dir

    root_logger = logging.getLogger("repoprobe")
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter())
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        _log_dir = Path(log_dir)
        _log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            _log_dir / LOG_FILENAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONLFormatter())
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)
    else:
        _log_dir = None

    return root_logger


def setup_logging_from_config(config: ProbeConfig) -> logging.Logger:
    """Apply the ``log_dir`` and ``log_level`` settings of a ProbeConfig."""
    return setup_logging(config.log_dir, level=config.level)


def get_logger(component: str, color: str = "") -> logging.Logger:
    """
    Get a logger for a specific component.

    Args:
        component: Component name (e.g., "QUERY", "HARNESS")
        color: ANSI color code for the component tag

    Returns:
        Logger under ``repoprobe.<component>``
    """
    if component in _loggers:
        return _loggers[component]

    logger = logging.getLogger(f"repoprobe.{component.lower().replace(' ', '_')}")

    # Add component info to all records via a filter
    class ComponentFilter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:
            if not hasattr(record, "component"):
                record.component = component
            if not hasattr(record, "component_color"):
                record.component_color = color
            return True

    logger.addFilter(ComponentFilter())
    _loggers[component] = logger
    return logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    **kwargs: Any,
) -> None:
    """
    Log a message with structured context data.

    Args:
        logger: Logger instance
        level: Logging level (logging.INFO, logging.ERROR, etc.)
        message: Human-readable message
        context: Structured context data (included in JSONL output)
        **kwargs: Additional context items
    """
    extra = {"context": {**(context or {}), **kwargs}} if (context or kwargs) else {}
    logger.log(level, message, extra=extra)


def get_query_logger() -> logging.Logger:
    """Get logger for built queries."""
    return get_logger("QUERY", Colors.QUERY)


def get_harness_logger() -> logging.Logger:
    """Get logger for repository assertions and fixtures."""
    return get_logger("HARNESS", Colors.HARNESS)


def get_log_file() -> Path | None:
    """Get the path to the JSONL log file, if file logging is on."""
    if _log_dir:
        return _log_dir / LOG_FILENAME
    return None


def get_recent_logs(count: int = 50, level: str | None = None) -> list[dict[str, Any]]:
    """
    Get recent JSONL log entries.

    Args:
        count: Number of recent entries to return
        level: Optional filter by level (ERROR, WARNING, etc.)

    Returns:
        List of log entries (most recent last)
    """
    log_file = get_log_file()
    if not log_file or not log_file.exists():
        return []

    entries: list[dict[str, Any]] = []
    with open(log_file, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if level and entry.get("level") != level.upper():
                continue
            entries.append(entry)

    return entries[-count:]
