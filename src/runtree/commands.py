"""Command registry.

Commands are named run routines with an argument schema::

    registry = CommandRegistry(source_file=__file__)

    @registry.command(desc="Build the project", args={"mode": choice(["dev", "prod"], "dev")})
    async def build(exec, args, utils):
        await exec("?building", f"make {args['mode']}")

A run routine receives the ``exec`` callable, the validated argument values
and an :class:`~runtree.utils.exec_utils.ExecUtils` object. It may be a plain
function or a coroutine function.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from runtree.errors import ConfigurationError

__all__ = [
    "ArgDefinition",
    "ChoiceArg",
    "Command",
    "CommandRegistry",
    "FlagArg",
    "RunRoutine",
    "StringArg",
    "choice",
    "flag",
    "string",
]

RunRoutine = Callable[..., Any]

_NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.:-]*$")
_REQUIRED = "argument is required"


# =============================================================================
# Argument Definitions
# =============================================================================


def _arg_error(name: str, message: str) -> ConfigurationError:
    return ConfigurationError(f"argument '{name}' - {message}")


def _option_name(name: str) -> str:
    return ("-" if len(name) <= 1 else "--") + name.replace("_", "-")


@dataclass(frozen=True)
class ArgDefinition(ABC):
    """Base argument definition."""

    desc: str | None = None

    @property
    def required(self) -> bool:
        return False

    @abstractmethod
    def parse(self, name: str, value: Any) -> Any: ...

    @abstractmethod
    def help_line(self, name: str) -> str: ...

    def _help(self, name: str, equals: str | None, default: Any) -> str:
        text = _option_name(name)
        if equals:
            text = f"{text}={equals}"
        text = f"(opt) {text}" if default is not None else f"(req) {text}"
        if self.desc:
            text = f"{text} - {self.desc}"
        if default is not None:
            return f"{text} (default: {default})"
        return f"{text} (no default)"


@dataclass(frozen=True)
class FlagArg(ArgDefinition):
    """Boolean switch, False unless given."""

    def parse(self, name: str, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        raise _arg_error(name, "a flag argument cannot have a value")

    def help_line(self, name: str) -> str:
        return self._help(name, None, "false")


@dataclass(frozen=True)
class StringArg(ArgDefinition):
    """Free-form string; required when it has no default."""

    default: str | None = None

    @property
    def required(self) -> bool:
        return self.default is None

    def parse(self, name: str, value: Any) -> str:
        if value is None:
            value = self.default
        if value is None:
            raise _arg_error(name, _REQUIRED)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            raise _arg_error(name, "argument must be a string")
        return value

    def help_line(self, name: str) -> str:
        return self._help(name, "string", self.default)


@dataclass(frozen=True)
class ChoiceArg(ArgDefinition):
    """One of a fixed set of strings."""

    values: tuple[str, ...] = ()
    default: str | None = None

    def __post_init__(self) -> None:
        if not self.values:
            raise ConfigurationError("a choice argument needs at least one value")
        if self.default is not None and self.default not in self.values:
            raise ConfigurationError(
                f"default '{self.default}' is not one of: {', '.join(self.values)}"
            )

    @property
    def required(self) -> bool:
        return self.default is None

    def parse(self, name: str, value: Any) -> str:
        if value is None:
            value = self.default
        if value is None:
            raise _arg_error(name, _REQUIRED)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or value not in self.values:
            raise _arg_error(name, f"argument must be one of: {', '.join(self.values)}")
        return value

    def help_line(self, name: str) -> str:
        return self._help(name, "|".join(self.values), self.default)


def flag(desc: str | None = None) -> FlagArg:
    return FlagArg(desc=desc)


def string(default: str | None = None, desc: str | None = None) -> StringArg:
    return StringArg(desc=desc, default=default)


def choice(values: Sequence[str], default: str | None = None, desc: str | None = None) -> ChoiceArg:
    return ChoiceArg(desc=desc, values=tuple(values), default=default)


# =============================================================================
# Commands
# =============================================================================


@dataclass
class Command:
    """A registered command.

    Attributes:
        name: Command name used by ``@name`` references.
        run: Run routine called as ``run(exec, args, utils)``.
        desc: One-line description.
        args: Argument schema, keyed by argument name.
        internal: Internal commands can only be referenced by other commands.
    """

    name: str
    run: RunRoutine
    desc: str | None = None
    args: dict[str, ArgDefinition] = field(default_factory=dict)
    internal: bool = False

    def resolve_args(
        self,
        values: Mapping[str, Any],
        *,
        unknown_is_error: bool,
    ) -> tuple[dict[str, Any], list[str]]:
        """Validate ``values`` against the schema and fill in defaults.

        Returns:
            The parsed arguments and the unknown keys that were ignored.

        Raises:
            ConfigurationError: On invalid values, missing required arguments,
                or unknown keys when ``unknown_is_error`` is set.
        """
        unknown = [key for key in values if key not in self.args]
        if unknown and unknown_is_error:
            raise ConfigurationError(
                f"argument '{unknown[0]}' is not defined as a valid argument "
                f"for command '{self.name}'",
                hint=self.usage(),
            )
        try:
            parsed = {name: arg.parse(name, values.get(name)) for name, arg in self.args.items()}
        except ConfigurationError as e:
            if e.hint is None:
                e.hint = self.usage()
            raise
        return parsed, unknown

    def usage(self) -> str:
        """Help lines joined for error hints."""
        return "usage: " + "\n".join(self.help_lines())

    def help_lines(self) -> list[str]:
        lines = [f"{self.name}" + (f" - {self.desc}" if self.desc else "")]
        lines.extend("  " + arg.help_line(name) for name, arg in self.args.items())
        return lines


def _first_doc_line(fn: RunRoutine) -> str | None:
    doc = (fn.__doc__ or "").strip()
    return doc.splitlines()[0] if doc else None


class CommandRegistry:
    """Named commands plus the identity of the file that declared them.

    Args:
        source_file: Command file whose contents identify the registry for
            cache purposes.
        identity: Explicit identity, used instead of ``source_file``.
    """

    def __init__(self, *, source_file: str | None = None, identity: str | None = None) -> None:
        self.source_file = source_file
        self._identity = identity
        self._commands: dict[str, Command] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __iter__(self) -> Iterator[Command]:
        return iter(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)

    def add(self, command: Command) -> Command:
        """Register a command.

        Raises:
            ConfigurationError: If the name is invalid or already taken.
        """
        if not _NAME_RE.match(command.name):
            raise ConfigurationError(f"invalid command name '{command.name}'")
        if command.name in self._commands:
            raise ConfigurationError(f"command '{command.name}' is already defined")
        self._commands[command.name] = command
        return command

    def command(
        self,
        name: str | None = None,
        *,
        desc: str | None = None,
        args: Mapping[str, ArgDefinition] | None = None,
        internal: bool = False,
    ) -> Callable[[RunRoutine], RunRoutine]:
        """Decorator registering a run routine (name defaults to the function name)."""

        def decorator(fn: RunRoutine) -> RunRoutine:
            self.add(
                Command(
                    name=name or fn.__name__,
                    run=fn,
                    desc=desc if desc is not None else _first_doc_line(fn),
                    args=dict(args or {}),
                    internal=internal,
                )
            )
            return fn

        return decorator

    def get(self, name: str) -> Command:
        """Look up a command.

        Raises:
            ConfigurationError: If no command has that name.
        """
        command = self._commands.get(name)
        if command is None:
            raise ConfigurationError(
                f"command '{name}' is not defined",
                hint=f"Defined commands: {', '.join(self._commands) or '(none)'}",
            )
        return command

    def identity(self) -> str:
        """Script identity used to key change-detection caches."""
        if self._identity is not None:
            return self._identity
        if self.source_file and os.path.isfile(self.source_file):
            with open(self.source_file, encoding="utf-8") as f:
                return f.read()
        return self.source_file or ""
