"""Diagnostic logging for runtree.

User-facing output (command echo, process output, help text) goes through the
output multiplexer. This module covers the diagnostic side: a thin
``StructuredLogger`` wrapper that accepts keyword extras, JSON and human
formatters, and ``configure_logging`` to install them on the ``runtree``
logger hierarchy.

Example:
    >>> from runtree.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> logger = get_logger("scheduler")
    >>> logger.debug("forked context", context="build/0")
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any, Literal

__all__ = [
    "HumanFormatter",
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

ROOT_LOGGER_NAME = "runtree"

# Attributes present on every LogRecord; anything else was passed as an extra.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    | {"message", "asctime", "taskName"}
)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno >= logging.ERROR:
            data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        data.update(_extra_fields(record))
        return json.dumps(data, default=str)


class HumanFormatter(logging.Formatter):
    """Readable single-line format: ``time LEVEL logger: message key=value``."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<7} {record.name}: {record.getMessage()}"
        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into record extras."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def child(self, suffix: str) -> StructuredLogger:
        return StructuredLogger(f"{self.name}.{suffix}")

    def isEnabledFor(self, level: int) -> bool:  # noqa: N802
        return self._logger.isEnabledFor(level)

    def _log(self, level: int, msg: str, exc_info: Any = None, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, msg, exc_info=exc_info, extra=kwargs or None, stacklevel=3)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger rooted under ``runtree``.

    Args:
        name: Component name, e.g. ``"scheduler"`` or ``"runtree.cache"``.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return StructuredLogger(name)


def configure_logging(
    level: str | int | None = None,
    format: Literal["human", "json"] | None = None,  # noqa: A002
    stream: Any = None,
) -> None:
    """Install a handler on the ``runtree`` logger.

    Args:
        level: Log level. Defaults to ``RUNTREE_LOG_LEVEL`` or ``WARNING``.
        format: ``"human"`` or ``"json"``. Defaults to ``RUNTREE_LOG_FORMAT`` or human.
        stream: Output stream (defaults to stderr).
    """
    level = level or os.environ.get("RUNTREE_LOG_LEVEL", "WARNING")
    if isinstance(level, str):
        level = level.upper()
    format = format or os.environ.get("RUNTREE_LOG_FORMAT", "human")  # type: ignore[assignment]

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    for handler in list(root.handlers):
        if getattr(handler, "_runtree_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if format == "json" else HumanFormatter())
    handler._runtree_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
