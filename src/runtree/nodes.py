"""Command specification nodes.

Run routines describe their work with plain values. This module resolves those
values, once per ``exec`` call, into a closed set of node types:

- ``"?text"``                      -> :class:`HelpText`
- ``"@name --key value --flag"``   -> :class:`SubCommandRef`
- ``{"name": "x", "args": {...}}`` -> :class:`SubCommandRef` (``"_"`` also accepted)
- ``"%cmd"`` / ``"%%cmd"`` / other  -> :class:`ShellCommand`
- ``[...]``                        -> :class:`ParallelGroup` or :class:`SequentialGroup`
- ``None`` / blank strings         -> dropped

Lists invert the scheduling mode of the level they appear in: in sequential
mode a list becomes a parallel group whose branches are resolved in parallel
mode, and in parallel mode a list becomes a sequential group whose items are
resolved in sequential mode. ``[a, [b, c]]`` inside a sequential call therefore
runs ``a`` alongside the chain ``b`` then ``c``.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from runtree.errors import ConfigurationError
from runtree.shell.types import Verbosity

__all__ = [
    "HelpText",
    "Node",
    "ParallelGroup",
    "SequentialGroup",
    "ShellCommand",
    "SubCommandRef",
    "parse_node",
    "parse_nodes",
    "parse_subcommand_string",
]


# =============================================================================
# Node Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class ShellCommand:
    """A command line run through the platform shell."""

    command: str
    verbosity: Verbosity = Verbosity.NORMAL


@dataclass(frozen=True, slots=True)
class HelpText:
    """Text written straight to the log."""

    text: str


@dataclass(frozen=True, slots=True)
class SubCommandRef:
    """Reference to another registered command."""

    name: str
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SequentialGroup:
    """Items run one after another on the enclosing context."""

    items: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class ParallelGroup:
    """Branches run concurrently, each on its own forked context."""

    branches: tuple[Node, ...]


Node = Union[ShellCommand, HelpText, SubCommandRef, SequentialGroup, ParallelGroup]

_NODE_TYPES = (ShellCommand, HelpText, SubCommandRef, SequentialGroup, ParallelGroup)
_OBJECT_KEYS = frozenset({"name", "_", "args"})


# =============================================================================
# Parsing
# =============================================================================


def _arg_key(raw: str) -> str:
    return raw.replace("-", "_")


def parse_subcommand_string(text: str) -> SubCommandRef:
    """Parse ``name --key value --key=value --flag -k`` into a reference.

    Options may appear before or after the name. ``--no-x`` sets ``x`` to
    False. Dashes in option names become underscores.

    Raises:
        ConfigurationError: If there is not exactly one command name.
    """
    try:
        tokens = shlex.split(text)
    except ValueError as e:
        raise ConfigurationError(f"invalid subcommand string '{text}' - {e}") from e

    names: list[str] = []
    args: dict[str, Any] = {}
    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1
        if token == "--":
            names.extend(tokens[i:])
            break
        if not token.startswith("-") or token == "-":
            names.append(token)
            continue

        key = token.lstrip("-")
        if "=" in key:
            key, value = key.split("=", 1)
            args[_arg_key(key)] = value
        elif key.startswith("no-") and token.startswith("--"):
            args[_arg_key(key[3:])] = False
        elif i < len(tokens) and not tokens[i].startswith("-"):
            args[_arg_key(key)] = tokens[i]
            i += 1
        else:
            args[_arg_key(key)] = True

    if not names:
        raise ConfigurationError("one command name must be present in a subcommand string")
    if len(names) > 1:
        raise ConfigurationError(
            "only a single command name is allowed in a subcommand string, "
            f"but there were {len(names)}: {', '.join(names)}"
        )
    return SubCommandRef(names[0], args)


def _parse_object(value: Mapping[str, Any]) -> SubCommandRef:
    unknown = set(value) - _OBJECT_KEYS
    if unknown:
        raise ConfigurationError(
            f"unknown subcommand object keys: {', '.join(sorted(map(str, unknown)))}"
        )
    name = value.get("name", value.get("_"))
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("'name' property must be a command name")
    args = value.get("args") or {}
    if not isinstance(args, Mapping):
        raise ConfigurationError(f"'args' of subcommand '{name}' must be a mapping")
    return SubCommandRef(name.strip(), dict(args))


def _parse_string(value: str) -> Node | None:
    text = value.strip()
    if not text:
        return None
    if text.startswith("?"):
        return HelpText(text[1:].strip())
    if text.startswith("@"):
        return parse_subcommand_string(text[1:].strip())

    verbosity = Verbosity.NORMAL
    if text.startswith("%%"):
        verbosity, text = Verbosity.SILENT, text[2:]
    elif text.startswith("%"):
        verbosity, text = Verbosity.QUIET, text[1:]
    text = text.strip()
    if not text:
        return None
    return ShellCommand(text, verbosity)


def parse_node(value: Any, *, sequential: bool) -> Node | None:
    """Resolve one value into a node (None when the value is skipped).

    Raises:
        ConfigurationError: If the value is not a valid node.
    """
    if value is None:
        return None
    if isinstance(value, _NODE_TYPES):
        return value
    if isinstance(value, str):
        return _parse_string(value)
    if isinstance(value, Mapping):
        return _parse_object(value)
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        children = parse_nodes(value, sequential=not sequential)
        if sequential:
            return ParallelGroup(children)
        return SequentialGroup(children)
    raise ConfigurationError(f"invalid command specification node: {value!r}")


def parse_nodes(values: Sequence[Any], *, sequential: bool) -> tuple[Node, ...]:
    """Resolve several values, dropping skipped ones."""
    nodes = (parse_node(v, sequential=sequential) for v in values)
    return tuple(n for n in nodes if n is not None)
