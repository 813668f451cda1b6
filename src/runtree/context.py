"""Execution contexts.

An :class:`ExecContext` is the state a node of the command tree runs in: its
identifier stack (used for output prefixes), whether lists nested in it run
sequentially or in parallel, and the working directory / environment overlay
discovered by earlier shell commands of the same chain.

Contexts are copied only through :meth:`ExecContext.fork` and mutated only
through :meth:`ExecContext.commit_state`. Siblings forked from one parent see
the parent's cwd/env as of the fork and never each other's later changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from runtree.config import RunOptions
from runtree.utils.formatting import CONTEXT_COLORS, format_context_prefix, plain_context_path

if TYPE_CHECKING:
    from runtree.cache import ChangeCache
    from runtree.commands import CommandRegistry

__all__ = ["ContextId", "ExecContext", "RunState", "palette_color"]


@dataclass(frozen=True, slots=True)
class ContextId:
    """One segment of a context path: a label and the color it is shown in."""

    label: str
    color: str = "blue"


def palette_color(index: int) -> str:
    """Palette color for the ``index``-th fork."""
    return CONTEXT_COLORS[index % len(CONTEXT_COLORS)]


@dataclass
class RunState:
    """State shared by every context of one top-level run.

    Attributes:
        script_identity: Identity of the command file (used in cache names).
        change_cache: Change-detection cache for the run.
    """

    script_identity: str
    change_cache: ChangeCache


@dataclass
class ExecContext:
    """Context a command specification node is executed in."""

    registry: CommandRegistry
    options: RunOptions
    run_state: RunState
    id_stack: tuple[ContextId, ...] = ()
    sequential: bool = True
    cwd: str | None = None
    env: dict[str, str] | None = None
    _prefix_cache: dict[bool, str] = field(default_factory=dict, repr=False, compare=False)

    @property
    def path(self) -> str:
        """Plain ``a/b/c`` path of this context."""
        return plain_context_path(self.id_stack)

    def fork(self, label: str, color: str, *, sequential: bool | None = None) -> ExecContext:
        """Create a child context with ``label`` appended to the id stack.

        The child starts from a snapshot of this context's cwd and env.
        """
        return ExecContext(
            registry=self.registry,
            options=self.options,
            run_state=self.run_state,
            id_stack=(*self.id_stack, ContextId(label, color)),
            sequential=self.sequential if sequential is None else sequential,
            cwd=self.cwd,
            env=dict(self.env) if self.env is not None else None,
        )

    def commit_state(self, cwd: str | None, env: dict[str, str] | None) -> None:
        """Record the cwd/env reported by a successfully finished shell command."""
        self.cwd = cwd
        self.env = env

    def prefix(self) -> str:
        """Colored line prefix for this context (time included when enabled)."""
        if self.options.show_time:
            return format_context_prefix(
                self.id_stack, show_time=True, enabled=self.options.color
            )
        cached = self._prefix_cache.get(self.options.color)
        if cached is None:
            cached = format_context_prefix(self.id_stack, enabled=self.options.color)
            self._prefix_cache[self.options.color] = cached
        return cached
