"""Run options for runtree.

Options are plain dataclass fields with sensible defaults. ``RunOptions.from_env``
overlays ``RUNTREE_*`` environment variables (``.env`` files are loaded once
when the package is imported).

Environment variables:
    RUNTREE_PROFILE: Print elapsed time after each command ("1"/"true").
    RUNTREE_SHOW_TIME: Prefix output lines with the wall-clock time.
    RUNTREE_COLOR: Enable ANSI colors (defaults to on when stdout is a TTY).
    RUNTREE_MAX_PARALLEL: Max concurrently running branches per fan-out.
    RUNTREE_FLUSH_INTERVAL: Seconds between output flushes.
    RUNTREE_CACHE_DIR: Change-detection cache directory.
    RUNTREE_BIN_DIR: Local tool-binary directory prepended to PATH.
    RUNTREE_HASH_ALGORITHM: Digest used for file hashes.
"""

from __future__ import annotations

import hashlib
import os
import sys
from dataclasses import dataclass, field, fields, replace
from typing import Any

from runtree.errors import ConfigurationError

__all__ = ["RunOptions", "DEFAULT_CACHE_DIR", "DEFAULT_MAX_PARALLEL", "default_bin_dir"]

DEFAULT_CACHE_DIR = ".runtree-cache"
DEFAULT_MAX_PARALLEL = 32
DEFAULT_FLUSH_INTERVAL = 1.0
DEFAULT_HASH_ALGORITHM = "sha1"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def default_bin_dir() -> str:
    """Local tool-binary directory for the current platform."""
    return os.path.join(".venv", "Scripts" if sys.platform.startswith("win") else "bin")


def _default_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


@dataclass
class RunOptions:
    """Options for a runtree run.

    Attributes:
        profile: Emit ``finished in ...`` after each command.
        show_time: Prefix every output line with the current time.
        color: Emit ANSI colors.
        max_parallel: Max concurrently active branches per parallel fan-out.
        flush_interval: Seconds between periodic output flushes.
        cache_dir: Directory holding persisted hash collections.
        bin_dir: Directory prepended to PATH for every shell command.
        hash_algorithm: ``hashlib`` algorithm name for file digests.

    Example:
        >>> options = RunOptions(profile=True, max_parallel=4)
        >>> options.validate()
    """

    profile: bool = False
    show_time: bool = False
    color: bool = field(default_factory=_default_color)
    max_parallel: int = DEFAULT_MAX_PARALLEL
    flush_interval: float = DEFAULT_FLUSH_INTERVAL
    cache_dir: str = DEFAULT_CACHE_DIR
    bin_dir: str = field(default_factory=default_bin_dir)
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM

    def validate(self) -> None:
        """Raise ConfigurationError if any option is out of range."""
        if self.max_parallel < 1:
            raise ConfigurationError(
                f"max_parallel must be >= 1, got {self.max_parallel}",
                hint="Use 1 to run parallel groups one branch at a time.",
            )
        if self.flush_interval <= 0:
            raise ConfigurationError(f"flush_interval must be > 0, got {self.flush_interval}")
        if self.hash_algorithm not in hashlib.algorithms_available:
            raise ConfigurationError(f"unknown hash algorithm '{self.hash_algorithm}'")
        if not self.cache_dir.strip():
            raise ConfigurationError("cache_dir must not be empty")

    def with_overrides(self, **overrides: Any) -> RunOptions:
        """Return a copy with the given fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> RunOptions:
        """Build options from ``RUNTREE_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            **overrides: Explicit values that win over the environment.
        """
        environ = dict(os.environ if environ is None else environ)
        values: dict[str, Any] = {}

        for f in fields(cls):
            key = f"RUNTREE_{f.name.upper()}"
            if key not in environ:
                continue
            raw = environ[key]
            try:
                if f.type in ("bool", bool):
                    values[f.name] = _parse_bool(key, raw)
                elif f.type in ("int", int):
                    values[f.name] = int(raw)
                elif f.type in ("float", float):
                    values[f.name] = float(raw)
                else:
                    values[f.name] = raw
            except ValueError as e:
                raise ConfigurationError(f"invalid value for {key}: {raw!r}") from e

        options = cls(**values).with_overrides(**overrides)
        options.validate()
        return options
