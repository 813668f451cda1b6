"""Error hierarchy for runtree.

Every error raised by the execution engine derives from :class:`RuntreeError`.
Errors carry a human-readable message, optional structured ``details``, an
optional ``hint`` and the plain-text path of the execution context that raised
them (for example ``build/0/test``) so the top-level caller can attribute a
failure to the step that produced it.

Taxonomy:
- ConfigurationError: unknown sub-command, invalid arguments, malformed nodes.
- SpawnError: the shell executable could not be started.
- RunError: a command ran and exited non-zero or was killed by a signal.
- CacheError / HashAlgorithmMismatchError: change-detection cache problems.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

__all__ = [
    "RuntreeError",
    "ConfigurationError",
    "SpawnError",
    "RunError",
    "CacheError",
    "HashAlgorithmMismatchError",
    "log_exception",
]


# =============================================================================
# Helpers
# =============================================================================


def log_exception(
    logger: logging.Logger | Any,
    message: str,
    exc: BaseException,
    *,
    level: Literal["debug", "info", "warning", "error"] = "warning",
    include_traceback: bool = True,
) -> None:
    """Log an exception with a consistent format.

    Args:
        logger: A ``logging.Logger`` or ``StructuredLogger``.
        message: Context describing what failed.
        exc: The exception being logged.
        level: Log level name.
        include_traceback: Attach the traceback to the record.
    """
    log = getattr(logger, level)
    text = f"{message}: {type(exc).__name__}: {exc}"
    if include_traceback:
        log(text, exc_info=exc)
    else:
        log(text)


# =============================================================================
# Base Error
# =============================================================================


class RuntreeError(Exception):
    """Base class for all runtree errors.

    Attributes:
        message: Human-readable error message.
        details: Structured details for diagnostics.
        hint: Optional suggestion for fixing the problem.
        context_id: Plain-text context path (e.g. ``build/0``), if known.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
        context_id: str | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.hint = hint
        self.context_id = context_id
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"[{self.context_id}] {self.message}" if self.context_id else self.message
        if self.hint:
            text += f"\n  Hint: {self.hint}"
        return text

    def __str__(self) -> str:
        return self._format()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


# =============================================================================
# Engine Errors
# =============================================================================


class ConfigurationError(RuntreeError):
    """Invalid command definitions, arguments or command specification nodes.

    Always fatal to the enclosing run and never retried.
    """


class SpawnError(RuntreeError):
    """The shell used to run a command could not be started."""

    def __init__(self, message: str, *, command: str | None = None, **kwargs: Any) -> None:
        self.command = command
        details = kwargs.pop("details", None) or {}
        if command is not None:
            details["command"] = command
        super().__init__(message, details=details, **kwargs)


class RunError(RuntreeError):
    """A shell command exited with a non-zero code or was killed by a signal.

    The failure has already been written to the command's error stream by the
    time this is raised, so callers do not need to report it again.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str,
        exit_code: int | None = None,
        signal: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.signal = signal
        details = kwargs.pop("details", None) or {}
        details.update({"command": command, "exit_code": exit_code, "signal": signal})
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Cache Errors
# =============================================================================


class CacheError(RuntreeError):
    """Change-detection cache failure."""


class HashAlgorithmMismatchError(CacheError):
    """Two hash collections computed with different algorithms were compared."""

    def __init__(self, old: str, new: str) -> None:
        self.old_algorithm = old
        self.new_algorithm = new
        super().__init__(
            f"hash algorithm mismatch: '{old}' vs '{new}'",
            details={"old": old, "new": new},
        )
