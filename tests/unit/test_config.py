"""Tests for RunOptions."""

from __future__ import annotations

import os

import pytest

from runtree.config import DEFAULT_CACHE_DIR, DEFAULT_MAX_PARALLEL, RunOptions, default_bin_dir
from runtree.errors import ConfigurationError


class TestRunOptionsDefaults:
    """Tests for default values."""

    def test_default_values(self) -> None:
        options = RunOptions(color=False)

        assert options.profile is False
        assert options.show_time is False
        assert options.max_parallel == DEFAULT_MAX_PARALLEL == 32
        assert options.flush_interval == 1.0
        assert options.cache_dir == DEFAULT_CACHE_DIR == ".runtree-cache"
        assert options.hash_algorithm == "sha1"
        assert options.bin_dir == default_bin_dir()

    def test_default_bin_dir_is_local_venv(self) -> None:
        assert default_bin_dir().startswith(".venv" + os.sep)

    def test_no_color_env_disables_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")

        assert RunOptions().color is False


class TestRunOptionsValidate:
    """Tests for validate()."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_parallel": 0},
            {"flush_interval": 0},
            {"hash_algorithm": "nope"},
            {"cache_dir": "  "},
        ],
    )
    def test_invalid(self, overrides) -> None:
        with pytest.raises(ConfigurationError):
            RunOptions(color=False, **overrides).validate()

    def test_valid(self) -> None:
        RunOptions(color=False, max_parallel=1, hash_algorithm="md5").validate()

    def test_with_overrides_ignores_none(self) -> None:
        options = RunOptions(color=False, profile=True)

        updated = options.with_overrides(profile=None, max_parallel=4)

        assert updated.profile is True
        assert updated.max_parallel == 4
        assert options.max_parallel == 32


class TestRunOptionsFromEnv:
    """Tests for from_env()."""

    def test_reads_variables(self) -> None:
        options = RunOptions.from_env(
            {
                "RUNTREE_PROFILE": "true",
                "RUNTREE_COLOR": "0",
                "RUNTREE_MAX_PARALLEL": "4",
                "RUNTREE_FLUSH_INTERVAL": "0.5",
                "RUNTREE_CACHE_DIR": "/tmp/cache",
            }
        )

        assert options.profile is True
        assert options.color is False
        assert options.max_parallel == 4
        assert options.flush_interval == 0.5
        assert options.cache_dir == "/tmp/cache"

    def test_overrides_win(self) -> None:
        options = RunOptions.from_env({"RUNTREE_MAX_PARALLEL": "4"}, max_parallel=2, color=False)

        assert options.max_parallel == 2

    def test_bad_number(self) -> None:
        with pytest.raises(ConfigurationError, match="RUNTREE_MAX_PARALLEL"):
            RunOptions.from_env({"RUNTREE_MAX_PARALLEL": "many"})

    def test_bad_bool(self) -> None:
        with pytest.raises(ConfigurationError):
            RunOptions.from_env({"RUNTREE_PROFILE": "maybe"})

    def test_validates(self) -> None:
        with pytest.raises(ConfigurationError):
            RunOptions.from_env({"RUNTREE_MAX_PARALLEL": "0"})
