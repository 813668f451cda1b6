"""Tests for the runtree cache CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from runtree import __version__
from runtree.cache import HashCollection, HashEntry, save_hash_collection
from runtree.cli import app

runner = CliRunner()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Cache directory with one valid and one corrupt collection."""
    directory = tmp_path / ".runtree-cache"
    save_hash_collection(
        str(directory / "b.hash"),
        HashCollection(algorithm="sha1", hashes={"a.txt": HashEntry(digest="ab", size=2)}),
    )
    (directory / "a.hash").write_text("garbage")
    return directory


# =============================================================================
# Commands
# =============================================================================


class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"runtree {__version__}" in result.output


class TestCacheList:
    """Tests for `runtree cache list`."""

    def test_empty(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["cache", "list", "--cache-dir", str(tmp_path / "none")])

        assert result.exit_code == 0
        assert "No cache files" in result.output

    def test_json(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["cache", "list", "-d", str(cache_dir), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"file": "a.hash", "algorithm": None, "entries": None},
            {"file": "b.hash", "algorithm": "sha1", "entries": 1},
        ]

    def test_table(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["cache", "list", "-d", str(cache_dir)])

        assert result.exit_code == 0
        assert "b.hash" in result.output
        assert "corrupt" in result.output

    def test_env_default(self, cache_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RUNTREE_CACHE_DIR", str(cache_dir))

        result = runner.invoke(app, ["cache", "list", "--json"])

        assert len(json.loads(result.output)) == 2


class TestCacheClean:
    """Tests for `runtree cache clean`."""

    def test_clean_yes(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["cache", "clean", "-d", str(cache_dir), "--yes"])

        assert result.exit_code == 0
        assert "Removed" in result.output
        assert not cache_dir.exists()

    def test_clean_declined(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["cache", "clean", "-d", str(cache_dir)], input="n\n")

        assert result.exit_code == 1
        assert cache_dir.exists()

    def test_nothing_to_clean(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["cache", "clean", "-d", str(tmp_path / "none"), "-y"])

        assert result.exit_code == 0
        assert "Nothing to clean" in result.output
