"""Glob pattern expansion.

Patterns are expanded in order into a deduplicated list of files. A pattern
prefixed with ``!!`` removes its matches from the files collected so far::

    >>> expand_glob_patterns(["src/**/*.py", "!!src/**/test_*.py"])
    ['src/runtree/cache.py', ...]

Directories never match. ``**`` matches any number of directories.
"""

from __future__ import annotations

import asyncio
import glob
import os
from collections.abc import Iterable

from runtree.errors import ConfigurationError

__all__ = ["expand_glob_pattern", "expand_glob_patterns", "expand_globs", "normalize_patterns"]

NEGATION_PREFIX = "!!"


def normalize_patterns(patterns: str | Iterable[str]) -> list[str]:
    """Accept a single pattern or several; trim them and drop empty ones."""
    if isinstance(patterns, str):
        patterns = [patterns]
    result = []
    for pattern in patterns:
        if not isinstance(pattern, str):
            raise ConfigurationError(f"a glob pattern must be a string, got {pattern!r}")
        pattern = pattern.strip()
        if pattern:
            result.append(pattern)
    return result


def expand_glob_pattern(pattern: str) -> list[str]:
    """Files matching one pattern, sorted."""
    return sorted(p for p in glob.glob(pattern, recursive=True) if os.path.isfile(p))


def expand_glob_patterns(patterns: Iterable[str]) -> list[str]:
    """Expand patterns in order, honoring ``!!`` negations.

    Raises:
        ConfigurationError: If a pattern is empty.
    """
    if isinstance(patterns, str):
        patterns = [patterns]

    files: dict[str, None] = {}
    for raw in patterns:
        if not isinstance(raw, str):
            raise ConfigurationError(f"a glob pattern must be a string, got {raw!r}")
        pattern = raw.strip()
        negative = pattern.startswith(NEGATION_PREFIX)
        if negative:
            pattern = pattern[len(NEGATION_PREFIX) :].strip()
        if not pattern:
            raise ConfigurationError("a glob pattern must not be empty")

        for path in expand_glob_pattern(pattern):
            if negative:
                files.pop(path, None)
            else:
                files.setdefault(path, None)
    return list(files)


async def expand_globs(patterns: Iterable[str]) -> list[str]:
    """Async wrapper running the filesystem walk in a worker thread."""
    return await asyncio.to_thread(expand_glob_patterns, list(patterns))
