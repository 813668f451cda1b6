import os

from dotenv import find_dotenv, load_dotenv

if not os.environ.get("RUNTREE_ENV_LOADED"):
    load_dotenv(find_dotenv(usecwd=True))
    os.environ["RUNTREE_ENV_LOADED"] = "1"

__version__ = "0.3.0"

from runtree.cache import ChangeCache, FileChanges, HashCollection, HashEntry
from runtree.commands import Command, CommandRegistry, choice, flag, string
from runtree.config import RunOptions
from runtree.context import ContextId, ExecContext
from runtree.errors import (
    CacheError,
    ConfigurationError,
    HashAlgorithmMismatchError,
    RunError,
    RuntreeError,
    SpawnError,
)
from runtree.limiter import ConcurrencyLimiter, limit_concurrency
from runtree.logging import configure_logging, get_logger
from runtree.nodes import (
    HelpText,
    ParallelGroup,
    SequentialGroup,
    ShellCommand,
    SubCommandRef,
)
from runtree.scheduler import Continuation, Exec, run_command
from runtree.shell.types import CommandResult, Verbosity
from runtree.utils.exec_utils import ExecUtils

__all__ = [
    # Running
    "run_command",
    "Exec",
    "Continuation",
    "ExecContext",
    "ContextId",
    "ExecUtils",
    "RunOptions",
    # Commands
    "Command",
    "CommandRegistry",
    "flag",
    "string",
    "choice",
    # Nodes
    "ShellCommand",
    "HelpText",
    "SubCommandRef",
    "SequentialGroup",
    "ParallelGroup",
    "Verbosity",
    "CommandResult",
    # Cache
    "ChangeCache",
    "FileChanges",
    "HashCollection",
    "HashEntry",
    # Concurrency
    "ConcurrencyLimiter",
    "limit_concurrency",
    # Errors
    "RuntreeError",
    "ConfigurationError",
    "SpawnError",
    "RunError",
    "CacheError",
    "HashAlgorithmMismatchError",
    # Logging
    "configure_logging",
    "get_logger",
    "__version__",
]
