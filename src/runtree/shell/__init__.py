"""Shell integration: platform adapter, command types and the subprocess runner.

Example:
    >>> from runtree.shell import Verbosity, detect_shell_type
    >>> detect_shell_type()
    <ShellType.SH: 'sh'>
"""

from runtree.shell.adapter import (
    ShellType,
    detect_shell_type,
    escape_shell,
    fix_path,
    set_env_var_statement,
)
from runtree.shell.runner import run_shell_command
from runtree.shell.types import CommandResult, Verbosity

__all__ = [
    "CommandResult",
    "ShellType",
    "Verbosity",
    "detect_shell_type",
    "escape_shell",
    "fix_path",
    "run_shell_command",
    "set_env_var_statement",
]
