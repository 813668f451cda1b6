"""Change-detection cache.

Steps call ``ChangeCache.get_delta(context_name, patterns)`` to learn which
files changed since the last successful run:

1. Expand the glob patterns into a file list.
2. Hash every file (size + digest).
3. Load the collection persisted for ``(script identity, context name,
   algorithm)``; missing or unreadable files count as absent.
4. Classify every path as added / removed / modified / unmodified.

New collections are only written by :meth:`ChangeCache.persist`, which the
top-level runner calls after the whole run succeeded. A failed run therefore
never marks work as done.

Collections are stored as JSON under the cache directory::

    .runtree-cache/
        3f786850e387550fdab836ed7e6dc881de23001b.hash
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from runtree.config import DEFAULT_CACHE_DIR
from runtree.errors import CacheError, HashAlgorithmMismatchError
from runtree.globs import expand_globs, normalize_patterns
from runtree.logging import get_logger

__all__ = [
    "CACHE_FILE_SUFFIX",
    "ChangeCache",
    "FileChanges",
    "HashCollection",
    "HashEntry",
    "cache_filename",
    "compute_delta",
    "generate_hash_collection",
    "hash_file",
    "list_cache_files",
    "load_hash_collection",
    "save_hash_collection",
]

logger = get_logger("cache")

CACHE_FILE_SUFFIX = ".hash"
_READ_CHUNK = 1024 * 1024


# =============================================================================
# Models
# =============================================================================


class HashEntry(BaseModel):
    """Size and content digest of one file (digest is None for size-only entries)."""

    digest: str | None = None
    size: int


class HashCollection(BaseModel):
    """Hashes of a set of files, keyed by path."""

    algorithm: str
    hashes: dict[str, HashEntry] = Field(default_factory=dict)


@dataclass
class FileChanges:
    """Result of comparing the current files against the last successful run."""

    has_changes: bool = False
    clean_run: bool = False
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    unmodified: list[str] = field(default_factory=list)

    def summary(self) -> str:
        """One-line description used in run logs."""
        if not self.has_changes:
            return "no files changed"
        if self.clean_run:
            return f"files changed: clean run - assuming all ({len(self.added)} files)"
        return (
            f"files changed: {len(self.unmodified)} unmodified, {len(self.modified)} modified, "
            f"{len(self.removed)} removed, {len(self.added)} added"
        )


# =============================================================================
# Hashing
# =============================================================================


def _hash_file_sync(path: str, algorithm: str, only_size: bool) -> HashEntry:
    file_path = Path(path)
    size = file_path.stat().st_size
    if only_size:
        return HashEntry(size=size)
    digest = hashlib.new(algorithm)
    with file_path.open("rb") as f:
        while chunk := f.read(_READ_CHUNK):
            digest.update(chunk)
    return HashEntry(digest=digest.hexdigest(), size=size)


async def hash_file(path: str, algorithm: str = "sha1", *, only_size: bool = False) -> HashEntry:
    """Hash one file in a worker thread."""
    return await asyncio.to_thread(_hash_file_sync, path, algorithm, only_size)


async def generate_hash_collection(
    files: Iterable[str],
    algorithm: str = "sha1",
    *,
    only_size: bool = False,
) -> HashCollection:
    """Hash ``files`` one after another, preserving their order."""
    hashes: dict[str, HashEntry] = {}
    for path in files:
        hashes[path] = await hash_file(path, algorithm, only_size=only_size)
    return HashCollection(algorithm=algorithm, hashes=hashes)


def compute_delta(old: HashCollection | None, new: HashCollection) -> FileChanges:
    """Classify the union of paths of two collections.

    Raises:
        HashAlgorithmMismatchError: If the collections use different algorithms.
    """
    if old is None:
        return FileChanges(has_changes=True, clean_run=True, added=list(new.hashes))

    if old.algorithm != new.algorithm:
        raise HashAlgorithmMismatchError(old.algorithm, new.algorithm)

    changes = FileChanges()
    for path in dict.fromkeys([*old.hashes, *new.hashes]):
        old_entry = old.hashes.get(path)
        new_entry = new.hashes.get(path)
        if old_entry is not None and new_entry is not None:
            if old_entry.size == new_entry.size and old_entry.digest == new_entry.digest:
                changes.unmodified.append(path)
            else:
                changes.modified.append(path)
        elif old_entry is not None:
            changes.removed.append(path)
        else:
            changes.added.append(path)

    changes.has_changes = bool(changes.modified or changes.removed or changes.added)
    return changes


# =============================================================================
# Persistence
# =============================================================================


def cache_filename(
    script_identity: str,
    context_name: str,
    algorithm: str = "sha1",
    cache_dir: str = DEFAULT_CACHE_DIR,
) -> str:
    """Path of the file holding the collection for one cache key."""
    key = hashlib.new(algorithm, (script_identity + context_name + algorithm).encode("utf-8"))
    return str(Path(cache_dir) / (key.hexdigest() + CACHE_FILE_SUFFIX))


def load_hash_collection(path: str) -> HashCollection | None:
    """Load a persisted collection; None if it is missing or unreadable."""
    try:
        data = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Cache file unreadable, treating as absent", path=path, error=str(e))
        return None

    try:
        return HashCollection.model_validate_json(data)
    except ValidationError as e:
        logger.debug("Cache file corrupt, treating as absent", path=path, error=str(e))
        return None


def save_hash_collection(path: str, collection: HashCollection) -> None:
    """Write a collection atomically (temporary file + rename).

    Raises:
        CacheError: If the file cannot be written.
    """
    directory = Path(path).parent
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=CACHE_FILE_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(collection.model_dump_json())
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise CacheError(f"could not write cache file '{path}' - {e}") from e


def list_cache_files(cache_dir: str = DEFAULT_CACHE_DIR) -> list[tuple[str, HashCollection | None]]:
    """Persisted cache files (sorted by name) with their parsed collections."""
    directory = Path(cache_dir)
    if not directory.is_dir():
        return []
    paths = sorted(
        p
        for p in directory.iterdir()
        if p.suffix == CACHE_FILE_SUFFIX and not p.name.startswith(".tmp-")
    )
    return [(str(p), load_hash_collection(str(p))) for p in paths]


# =============================================================================
# Change Cache
# =============================================================================


@dataclass
class _CachedDelta:
    changes: FileChanges
    new: HashCollection
    old: HashCollection | None


class ChangeCache:
    """Per-run change-detection cache.

    Deltas are memoized per cache file for the lifetime of the instance, so
    asking twice for the same context name within one run hashes only once.

    Args:
        script_identity: Identity of the command file. Use its contents so that
            editing the command file invalidates every cached collection.
        cache_dir: Directory holding persisted collections.
        algorithm: ``hashlib`` algorithm name.
    """

    def __init__(
        self,
        script_identity: str,
        *,
        cache_dir: str = DEFAULT_CACHE_DIR,
        algorithm: str = "sha1",
    ) -> None:
        self.script_identity = script_identity
        self.cache_dir = cache_dir
        self.algorithm = algorithm
        self._results: dict[str, _CachedDelta] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def filename_for(self, context_name: str) -> str:
        return cache_filename(self.script_identity, context_name, self.algorithm, self.cache_dir)

    @property
    def pending(self) -> dict[str, HashCollection]:
        """Collections computed during this run, keyed by cache file path."""
        return {path: cached.new for path, cached in self._results.items()}

    async def get_delta(self, context_name: str, patterns: str | Iterable[str]) -> FileChanges:
        """Compare the files matching ``patterns`` against the last successful run."""
        filename = self.filename_for(context_name)
        lock = self._locks.setdefault(filename, asyncio.Lock())
        async with lock:
            cached = self._results.get(filename)
            if cached is not None:
                return cached.changes

            normalized = normalize_patterns(patterns)
            files = await expand_globs(normalized) if normalized else []
            old = await asyncio.to_thread(load_hash_collection, filename)
            if old is not None and old.algorithm != self.algorithm:
                # The file name encodes the algorithm, so this file is corrupt.
                logger.debug(
                    "Cache file algorithm mismatch, treating as absent",
                    path=filename,
                    found=old.algorithm,
                    expected=self.algorithm,
                )
                old = None
            new = await generate_hash_collection(files, self.algorithm)
            changes = compute_delta(old, new)

            logger.debug(
                "Computed file changes",
                context_name=context_name,
                files=len(files),
                clean_run=changes.clean_run,
                has_changes=changes.has_changes,
            )
            self._results[filename] = _CachedDelta(changes, new, old)
            return changes

    def persist(self) -> list[str]:
        """Write every collection computed during this run; returns their paths."""
        written = []
        for path, collection in self.pending.items():
            save_hash_collection(path, collection)
            written.append(path)
        if written:
            logger.debug("Persisted hash collections", count=len(written))
        return written

    def clean(self) -> None:
        """Remove the cache directory and forget memoized deltas."""
        self._results.clear()
        if Path(self.cache_dir).is_dir():
            shutil.rmtree(self.cache_dir)
