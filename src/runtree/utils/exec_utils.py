"""Utilities handed to run routines as their third argument."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Literal

from runtree.errors import ConfigurationError
from runtree.globs import expand_globs
from runtree.limiter import ConcurrencyLimiter, limit_concurrency
from runtree.output import emit_line
from runtree.shell.adapter import (
    ShellType,
    detect_shell_type,
    escape_shell,
    set_env_var_statement,
)
from runtree.shell.adapter import fix_path as _fix_path
from runtree.utils.formatting import style

if TYPE_CHECKING:
    from runtree.cache import FileChanges
    from runtree.config import RunOptions
    from runtree.context import ExecContext

__all__ = ["ExecUtils", "log_info", "log_warn"]

PathStyle = Literal["autodetect", "windows", "posix"]


def log_info(ctx: ExecContext, text: str) -> None:
    """Write a prefixed informational line for ``ctx``."""
    emit_line(ctx.prefix() + style(text, "bold", "green", enabled=ctx.options.color))


def log_warn(ctx: ExecContext, text: str) -> None:
    """Write a prefixed warning line for ``ctx`` to stderr."""
    emit_line(
        ctx.prefix() + style(f"[WARN] {text}", "bold", "red", enabled=ctx.options.color),
        err=True,
    )


class ExecUtils:
    """Helpers for one command invocation.

    Attributes:
        command_name: Name of the running command.
        command_args: Validated argument values of the running command.
    """

    def __init__(self, ctx: ExecContext, command_name: str, command_args: dict[str, Any]) -> None:
        self._ctx = ctx
        self.command_name = command_name
        self.command_args = command_args

    @property
    def options(self) -> RunOptions:
        return self._ctx.options

    async def get_file_changes(
        self,
        context_name: str,
        patterns: str | Iterable[str],
        *,
        log: bool = True,
    ) -> FileChanges:
        """Files matching ``patterns`` that changed since the last successful run.

        The new hashes are only persisted once the whole run succeeds.
        """
        if context_name is None:
            context_name = ""
        if not isinstance(context_name, str):
            raise ConfigurationError("'context_name' argument must be a string")

        changes = await self._ctx.run_state.change_cache.get_delta(context_name, patterns)
        if log:
            log_info(self._ctx, f"[{context_name}] {changes.summary()}")
        return changes

    def clean_cache(self) -> None:
        """Remove every persisted hash collection."""
        self._ctx.run_state.change_cache.clean()

    def escape(self, *parts: str) -> str:
        """Escape and join arguments for the platform shell."""
        return escape_shell(detect_shell_type(), list(parts))

    def fix_path(self, path: str, style: PathStyle = "autodetect") -> str:
        """Normalize path separators for the platform shell or an explicit style."""
        if style == "autodetect":
            shell = detect_shell_type()
        elif style == "windows":
            shell = ShellType.CMD
        elif style == "posix":
            shell = ShellType.SH
        else:
            raise ConfigurationError(f"invalid fix_path style - '{style}'")
        return _fix_path(shell, path)

    def set_env_var(self, name: str, value: str | None) -> str:
        """Shell statement setting ``name`` (or unsetting it when ``value`` is None)."""
        return set_env_var_statement(detect_shell_type(), name, value)

    async def expand_globs(self, patterns: Iterable[str]) -> list[str]:
        return await expand_globs(patterns)

    def limit_concurrency(self, concurrency: int) -> ConcurrencyLimiter:
        return limit_concurrency(concurrency)
