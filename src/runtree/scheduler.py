"""Execution-tree scheduler.

Run routines receive an :class:`Exec` and call it with command specification
values::

    async def build(exec, args, utils):
        cont = await exec("?compiling", "cd src", "make")
        await exec(["make docs", "make test"])   # two parallel branches
        await cont("make install")              # back in src/

Each ``exec(...)`` call forks a fresh context (next numeric id, next palette
color) from the routine's base context, so independent calls never see each
other's working directory or environment changes. The returned
:class:`Continuation` re-enters the call's own context instead.

Failure handling:
- Sequential nodes stop at the first failure; the exception propagates.
- Parallel branches all run to completion; the first failure in branch order
  is raised and later ones are logged at debug level.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Mapping
from typing import Any

from runtree.cache import ChangeCache
from runtree.commands import CommandRegistry
from runtree.config import RunOptions
from runtree.context import ExecContext, RunState, palette_color
from runtree.errors import ConfigurationError, RuntreeError, log_exception
from runtree.limiter import limit_concurrency
from runtree.logging import get_logger
from runtree.nodes import (
    HelpText,
    Node,
    ParallelGroup,
    SequentialGroup,
    ShellCommand,
    SubCommandRef,
    parse_nodes,
)
from runtree.output import emit_line
from runtree.shell.runner import run_shell_command
from runtree.utils.exec_utils import ExecUtils, log_warn
from runtree.utils.formatting import format_duration, format_time_prefix, style

__all__ = ["Continuation", "Exec", "execute", "invoke_command", "run_command"]

logger = get_logger("scheduler")


def _attribute(exc: RuntreeError, ctx: ExecContext) -> RuntreeError:
    if exc.context_id is None and ctx.id_stack:
        exc.context_id = ctx.path
    return exc


# =============================================================================
# Exec / Continuation
# =============================================================================


class Continuation:
    """Handle re-entering the context of a finished ``exec`` call."""

    def __init__(self, ctx: ExecContext) -> None:
        self._ctx = ctx

    @property
    def context(self) -> ExecContext:
        return self._ctx

    async def __call__(self, *values: Any) -> Continuation:
        await execute(self._ctx, *values)
        return self


class Exec:
    """The ``exec`` callable handed to run routines.

    Args:
        base: Context every call forks from.
        sequential: Scheduling mode of the forked contexts.
    """

    def __init__(self, base: ExecContext, *, sequential: bool = True) -> None:
        self._base = base
        self._sequential = sequential
        self._next_id = 0

    def _fork(self) -> ExecContext:
        fork_id = self._next_id
        self._next_id += 1
        return self._base.fork(str(fork_id), palette_color(fork_id), sequential=self._sequential)

    async def __call__(self, *values: Any) -> Continuation:
        ctx = self._fork()
        await execute(ctx, *values)
        return Continuation(ctx)


async def execute(ctx: ExecContext, *values: Any) -> None:
    """Resolve ``values`` in the mode of ``ctx`` and run them in order."""
    try:
        nodes = parse_nodes(values, sequential=ctx.sequential)
    except RuntreeError as e:
        _attribute(e, ctx)
        raise
    for node in nodes:
        await run_node(node, ctx)


# =============================================================================
# Node Dispatch
# =============================================================================


async def run_node(node: Node, ctx: ExecContext) -> None:
    """Run one resolved node in ``ctx``."""
    if isinstance(node, ShellCommand):
        await run_shell_command(node, ctx)
    elif isinstance(node, HelpText):
        text = style(node.text, "bg_blue", "bold", "white", enabled=ctx.options.color)
        emit_line("\n" + ctx.prefix() + text)
    elif isinstance(node, SubCommandRef):
        await invoke_command(node.name, node.args, ctx, unknown_is_error=True)
    elif isinstance(node, SequentialGroup):
        for item in node.items:
            await run_node(item, ctx)
    elif isinstance(node, ParallelGroup):
        await _run_parallel(node, ctx)
    else:
        raise _attribute(ConfigurationError(f"invalid command specification node: {node!r}"), ctx)


async def _run_parallel(node: ParallelGroup, ctx: ExecContext) -> None:
    # Forks are taken before any branch starts. A branch that is a chain runs
    # in sequential mode so sub-commands inside it inherit that mode.
    branches = [
        (branch, ctx.fork(str(i), palette_color(i), sequential=isinstance(branch, SequentialGroup)))
        for i, branch in enumerate(node.branches)
    ]
    limiter = limit_concurrency(ctx.options.max_parallel)

    results = await asyncio.gather(
        *(limiter(lambda b=branch, c=child: run_node(b, c)) for branch, child in branches),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, BaseException)]
    if not failures:
        return
    for extra in failures[1:]:
        log_exception(
            logger,
            f"Additional parallel branch failure in '{ctx.path}'",
            extra,
            level="debug",
            include_traceback=False,
        )
    raise failures[0]


# =============================================================================
# Commands
# =============================================================================


async def invoke_command(
    name: str,
    args: Mapping[str, Any],
    ctx: ExecContext,
    *,
    unknown_is_error: bool,
) -> None:
    """Validate arguments and call a command's run routine below ``ctx``.

    Unknown argument keys raise when ``unknown_is_error`` is set and only warn
    otherwise.
    """
    try:
        command = ctx.registry.get(name)
        base = ctx.fork(name, "blue", sequential=ctx.sequential)
        parsed, unknown = command.resolve_args(args, unknown_is_error=unknown_is_error)
    except RuntreeError as e:
        _attribute(e, ctx)
        raise

    for key in unknown:
        log_warn(
            base,
            f"argument '{key}' is not defined as a valid argument for this command "
            "and will be ignored",
        )

    logger.debug("Invoking command", command=name, context=base.path)
    exec_ = Exec(base, sequential=base.sequential)
    result = command.run(exec_, parsed, ExecUtils(base, name, parsed))
    if inspect.isawaitable(result):
        await result


async def run_command(
    registry: CommandRegistry,
    name: str,
    args: Mapping[str, Any] | None = None,
    options: RunOptions | None = None,
) -> None:
    """Run a command from the top level.

    Unknown argument keys only produce a warning here. Hash collections
    computed with ``utils.get_file_changes`` are persisted once the command
    succeeded; nothing is persisted when it fails.

    Raises:
        ConfigurationError: If the command is unknown or internal, or its
            arguments are invalid.
        RunError: If a shell command failed.
        SpawnError: If a shell could not be started.
    """
    options = options or RunOptions.from_env()
    options.validate()

    command = registry.get(name)
    if command.internal:
        raise ConfigurationError(f"internal command '{name}' cannot be run directly")

    identity = registry.identity()
    cache = ChangeCache(identity, cache_dir=options.cache_dir, algorithm=options.hash_algorithm)
    root = ExecContext(
        registry=registry,
        options=options,
        run_state=RunState(script_identity=identity, change_cache=cache),
    )

    colors = options.color
    emit_line(style(f"running command '{name}'...", "bg_blue", "bold", "white", enabled=colors))
    start = time.perf_counter()

    await invoke_command(name, args or {}, root, unknown_is_error=False)
    cache.persist()

    elapsed = format_duration((time.perf_counter() - start) * 1000)
    emit_line(
        "\n"
        + format_time_prefix(options.show_time, colors)
        + style(f"'{name}' done in {elapsed}", "bg_green", "bold", "white", enabled=colors)
    )
