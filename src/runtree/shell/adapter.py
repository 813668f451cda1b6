"""Platform shell adapter.

Everything the subprocess runner needs to know about the platform shell lives
here: which shell family is in use, how to print the working directory and the
environment, how to change directory, how to escape arguments and how to
normalize path separators.

Two shell families are supported:
- ``ShellType.SH``: any POSIX shell (``$SHELL`` or ``/bin/sh``), including
  MinGW/MSYS shells on Windows.
- ``ShellType.CMD``: the Windows command interpreter, used only on Windows
  when ``$SHELL`` is not set.
"""

from __future__ import annotations

import os
import re
import shlex
import sys
from collections.abc import Mapping, MutableMapping, Sequence
from enum import Enum

from runtree.errors import ConfigurationError

__all__ = [
    "ShellType",
    "change_dir_command",
    "detect_shell_type",
    "escape_shell",
    "fix_path",
    "path_env_name",
    "prepend_bin_dir",
    "print_cwd_command",
    "print_env_command",
    "set_env_var_statement",
    "shell_argv",
]

_CMD_SAFE_RE = re.compile(r"^[A-Za-z0-9_/\\-]+$")


# =============================================================================
# Shell Types
# =============================================================================


class ShellType(str, Enum):
    """Supported shell families."""

    SH = "sh"
    CMD = "cmd"


def detect_shell_type(
    environ: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> ShellType:
    """Detect the shell family.

    The Windows command interpreter is only used on Windows when ``$SHELL`` is
    unset; everything else (including Git Bash / MSYS on Windows) is POSIX.
    """
    environ = os.environ if environ is None else environ
    platform = platform or sys.platform
    if platform.startswith("win") and not environ.get("SHELL"):
        return ShellType.CMD
    return ShellType.SH


def path_env_name(shell: ShellType) -> str:
    return "PATH" if shell == ShellType.SH else "Path"


def print_cwd_command(shell: ShellType) -> str:
    return "pwd" if shell == ShellType.SH else "cd"


def print_env_command(shell: ShellType) -> str:
    return "printenv" if shell == ShellType.SH else "set"


def change_dir_command(shell: ShellType) -> str:
    return "cd" if shell == ShellType.SH else "cd /d"


# =============================================================================
# Escaping
# =============================================================================


def _escape_cmd(value: str) -> str:
    if _CMD_SAFE_RE.match(value):
        return value
    return '"' + value.replace('"', '""') + '"'


def escape_shell(shell: ShellType, value: str | Sequence[str]) -> str:
    """Escape one argument, or several joined by spaces, for the given shell."""
    escape = _escape_cmd if shell == ShellType.CMD else shlex.quote
    if isinstance(value, str):
        return escape(value)
    return " ".join(escape(v) for v in value)


def fix_path(shell: ShellType, path: str, platform: str | None = None) -> str:
    """Normalize path separators for the given shell.

    Under a POSIX shell on Windows, drive paths are rewritten from ``C:/x`` to
    ``/C/x`` (MinGW style).

    Raises:
        ConfigurationError: If a drive path cannot be rewritten.
    """
    platform = platform or sys.platform
    old_sep, new_sep = ("\\", "/") if shell == ShellType.SH else ("/", "\\")

    fixed = path.strip().replace(old_sep, new_sep)
    if platform.startswith("win") and shell == ShellType.SH and ":" in fixed:
        if len(fixed) < 3 or fixed[1] != ":" or fixed[2] != "/":
            raise ConfigurationError(f"'{path}' - path cannot be fixed")
        fixed = f"/{fixed[0]}{fixed[2:]}"
    return fixed


def set_env_var_statement(shell: ShellType, name: str, value: str | None) -> str:
    """Shell statement that sets (or unsets, when ``value`` is None) a variable."""
    if shell == ShellType.SH:
        if value is None:
            return f"unset {name}"
        return f"export {name}={escape_shell(shell, value)}"
    return f"set {name}={'' if value is None else value}"


# =============================================================================
# Environment
# =============================================================================


def _find_key(env: Mapping[str, str], name: str, shell: ShellType) -> str:
    if shell == ShellType.SH:
        return name
    # Windows variable names are case-insensitive
    for key in env:
        if key.upper() == name.upper():
            return key
    return name


def prepend_bin_dir(env: MutableMapping[str, str], bin_dir: str, shell: ShellType) -> None:
    """Prefix the PATH variable with ``bin_dir`` unless it already starts with it."""
    key = _find_key(env, path_env_name(shell), shell)
    prefix = os.path.abspath(bin_dir) + os.pathsep
    current = env.get(key, "")
    if not current.startswith(prefix):
        env[key] = prefix + current


def shell_argv(command: str, environ: Mapping[str, str] | None = None) -> list[str]:
    """Arguments used to run ``command`` through the POSIX shell."""
    environ = os.environ if environ is None else environ
    shell = environ.get("SHELL") or "/bin/sh"
    return [shell, "-c", command]
