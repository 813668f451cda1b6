"""Shell execution types for runtree.

This module provides the core types for shell command execution:
- Verbosity: How much of a command's invocation and output is shown
- CommandResult: Outcome of a successfully completed shell command
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

__all__ = ["CommandResult", "Verbosity"]


class Verbosity(IntEnum):
    """Output level of a shell command, selected by ``%`` markers.

    - NORMAL: echo the command line and capture stdout.
    - QUIET (``%``): do not echo the command line.
    - SILENT (``%%``): do not echo and discard stdout. Stderr is always shown.
    """

    NORMAL = 0
    QUIET = 1
    SILENT = 2

    @property
    def echo_command(self) -> bool:
        return self == Verbosity.NORMAL

    @property
    def capture_stdout(self) -> bool:
        return self < Verbosity.SILENT


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a shell command that exited with code 0.

    Attributes:
        command: The command text as written by the user (markers removed).
        exit_code: Always 0 for results; failures raise ``RunError``.
        duration_ms: Wall-clock execution time in milliseconds.
        cwd: Working directory reported by the shell after the command.
        env: Environment reported by the shell after the command.

    Example:
        >>> result = CommandResult(command="echo hi", exit_code=0, duration_ms=4.2, cwd="/tmp")
        >>> result.success
        True
    """

    command: str
    exit_code: int
    duration_ms: float
    cwd: str | None = None
    env: dict[str, str] | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary (environment omitted)."""
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "cwd": self.cwd,
        }
