"""Subprocess runner.

Runs one :class:`~runtree.nodes.ShellCommand` through the platform shell and
recovers the working directory and environment the command left behind, so
the next step of the same sequential chain starts where this one ended.

A child shell cannot hand its state back to the parent, so the command line is
extended to dump it into two private temporary files::

    cd '/prev/cwd' && { <command>
    } && pwd > /tmp/runtree-a && printenv > /tmp/runtree-b

On POSIX shells the command sits on its own line inside a brace group, so a
trailing comment or a `;`-separated list cannot swallow the dumps. Both files
are read back after a successful exit; the environment is merged into the
context overlay. They are removed on every exit path.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import re
import signal
import tempfile
import time
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from runtree.errors import RunError, SpawnError
from runtree.logging import get_logger
from runtree.output import OutputBuffer, StreamKind
from runtree.shell.adapter import (
    ShellType,
    change_dir_command,
    detect_shell_type,
    escape_shell,
    fix_path,
    prepend_bin_dir,
    print_cwd_command,
    print_env_command,
    shell_argv,
)
from runtree.shell.types import CommandResult, Verbosity
from runtree.utils.formatting import format_duration, style

if TYPE_CHECKING:
    from runtree.context import ExecContext
    from runtree.nodes import ShellCommand

__all__ = [
    "build_command_line",
    "effective_env",
    "parse_cwd_dump",
    "parse_env_dump",
    "run_shell_command",
    "state_files",
]

logger = get_logger("shell.runner")

_READ_CHUNK = 64 * 1024
_ENV_LINE_RE = re.compile(r"^([^\s=][^=\s]*)=(.*)$", re.DOTALL)


# =============================================================================
# State Capture
# =============================================================================


@contextlib.contextmanager
def state_files() -> Iterator[tuple[str, str]]:
    """Create the cwd and env dump files; both are removed on exit."""
    paths: list[str] = []
    try:
        for _ in range(2):
            fd, path = tempfile.mkstemp(prefix="runtree-")
            os.close(fd)
            paths.append(path)
        yield paths[0], paths[1]
    finally:
        for path in paths:
            Path(path).unlink(missing_ok=True)


def build_command_line(
    command: str,
    shell: ShellType,
    *,
    cwd: str | None,
    cwd_file: str,
    env_file: str,
) -> str:
    """Extend ``command`` with the state dumps and the initial directory change."""
    if shell != ShellType.CMD:
        command = f"{{ {command}\n}}"
    line = (
        f"{command}"
        f" && {print_cwd_command(shell)} > {escape_shell(shell, fix_path(shell, cwd_file))}"
        f" && {print_env_command(shell)} > {escape_shell(shell, fix_path(shell, env_file))}"
    )
    if cwd:
        line = f"{change_dir_command(shell)} {escape_shell(shell, fix_path(shell, cwd))} && {line}"
    return line


def parse_cwd_dump(text: str) -> str:
    return text.replace("\r", "").replace("\n", "").strip()


def parse_env_dump(text: str) -> dict[str, str]:
    """Parse ``NAME=VALUE`` lines; lines without a name continue the previous value."""
    env: dict[str, str] = {}
    current: str | None = None
    for line in text.replace("\r", "").rstrip("\n").split("\n"):
        match = _ENV_LINE_RE.match(line)
        if match:
            current = match.group(1)
            env[current] = match.group(2)
        elif current is not None:
            env[current] += "\n" + line
    return env


def effective_env(
    overlay: Mapping[str, str] | None,
    bin_dir: str,
    shell: ShellType,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Process environment plus the context overlay, with ``bin_dir`` on PATH."""
    env = dict(os.environ if base is None else base)
    if overlay:
        env.update(overlay)
    prepend_bin_dir(env, bin_dir, shell)
    return env


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8", errors="replace")


# =============================================================================
# Process Handling
# =============================================================================


async def _spawn(
    command_line: str,
    shell: ShellType,
    env: dict[str, str],
    verbosity: Verbosity,
) -> asyncio.subprocess.Process:
    stdout = asyncio.subprocess.PIPE if verbosity.capture_stdout else asyncio.subprocess.DEVNULL
    if shell == ShellType.CMD:
        return await asyncio.create_subprocess_shell(
            command_line,
            stdin=asyncio.subprocess.PIPE,
            stdout=stdout,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    return await asyncio.create_subprocess_exec(
        *shell_argv(command_line),
        stdin=asyncio.subprocess.PIPE,
        stdout=stdout,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )


async def _pump(stream: asyncio.StreamReader, kind: StreamKind, buffer: OutputBuffer) -> None:
    while chunk := await stream.read(_READ_CHUNK):
        buffer.write(kind, chunk)


async def _communicate(process: asyncio.subprocess.Process, buffer: OutputBuffer) -> int:
    # Child gets EOF on stdin instead of an inherited (possibly closed) handle.
    if process.stdin is not None:
        process.stdin.close()

    pumps = []
    if process.stdout is not None:
        pumps.append(_pump(process.stdout, StreamKind.OUT, buffer))
    if process.stderr is not None:
        pumps.append(_pump(process.stderr, StreamKind.ERR, buffer))

    await asyncio.gather(*pumps, process.wait())
    return process.returncode


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return str(-returncode)


# =============================================================================
# Runner
# =============================================================================


async def run_shell_command(node: ShellCommand, ctx: ExecContext) -> CommandResult:
    """Run a shell command in ``ctx`` and commit the state it leaves behind.

    Raises:
        SpawnError: If the shell could not be started.
        RunError: If the command exited non-zero or was killed by a signal.
            The failure has already been written to the error stream.
    """
    options = ctx.options
    colors = options.color
    shell = detect_shell_type()
    env = effective_env(ctx.env, options.bin_dir, shell)
    display = node.command

    buffer = OutputBuffer(ctx.prefix, colors=colors)
    if node.verbosity.echo_command:
        buffer.write_text(
            StreamKind.OUT, style(f"> {display}", "bg_blue", "bold", "white", enabled=colors) + "\n"
        )

    def write_profile(elapsed_ms: float) -> None:
        if options.profile and node.verbosity < Verbosity.SILENT:
            buffer.write_text(
                StreamKind.OUT,
                style("finished in ", "bold", "gray", enabled=colors)
                + style(format_duration(elapsed_ms), "bold", "magenta", enabled=colors)
                + style(f" > {display}", "bold", "gray", enabled=colors)
                + "\n",
            )

    logger.debug("Running shell command", command=display, context=ctx.path, cwd=ctx.cwd)
    start = time.perf_counter()

    with state_files() as (cwd_file, env_file):
        command_line = build_command_line(
            display, shell, cwd=ctx.cwd, cwd_file=cwd_file, env_file=env_file
        )
        async with buffer.auto_flush(options.flush_interval):
            try:
                process = await _spawn(command_line, shell, env, node.verbosity)
            except OSError as e:
                raise SpawnError(
                    f"shell could not be spawned - {e}",
                    command=display,
                    context_id=ctx.path,
                ) from e

            returncode = await _communicate(process, buffer)
            elapsed_ms = (time.perf_counter() - start) * 1000

            if returncode == 0:
                cwd = parse_cwd_dump(_read_text(cwd_file))
                new_env = parse_env_dump(_read_text(env_file))
                # An empty dump (the shell exited early) keeps the previous state.
                ctx.commit_state(cwd or ctx.cwd, {**(ctx.env or {}), **new_env})
                write_profile(elapsed_ms)
                result = CommandResult(
                    command=display,
                    exit_code=0,
                    duration_ms=elapsed_ms,
                    cwd=ctx.cwd,
                    env=ctx.env,
                )
                logger.debug("Shell command finished", context=ctx.path, **result.to_dict())
                return result

            if returncode > 0:
                reason = f"failed with code {returncode}"
                error = RunError(
                    f"{reason} > {display}",
                    command=display,
                    exit_code=returncode,
                    context_id=ctx.path,
                )
            else:
                reason = f"killed by signal {_signal_name(returncode)}"
                error = RunError(
                    f"{reason} > {display}",
                    command=display,
                    signal=_signal_name(returncode),
                    context_id=ctx.path,
                )

            buffer.write_text(
                StreamKind.ERR,
                style(reason, "bg_red", "bold", "white", enabled=colors)
                + style(f" > {display}", "bold", "red", enabled=colors)
                + "\n",
            )
            write_profile(elapsed_ms)
            logger.debug(
                "Shell command failed",
                command=display,
                context=ctx.path,
                exit_code=returncode,
            )
            raise error
