"""
Root conftest.py for runtree tests.

This file provides:
1. Common pytest markers for test categorization
2. Shared fixtures for options, registries and execution contexts
3. A recording stand-in for the subprocess runner
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

import pytest

from runtree.cache import ChangeCache
from runtree.commands import CommandRegistry
from runtree.config import RunOptions
from runtree.context import ExecContext, RunState

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Skip shell-spawning tests on Windows."""
    if not sys.platform.startswith("win"):
        return
    skip_posix = pytest.mark.skip(reason="requires a POSIX shell")
    for item in items:
        if "posix" in item.keywords:
            item.add_marker(skip_posix)


def pytest_configure(config):
    """Register custom markers."""
    for name, desc in [
        ("posix", "Tests that spawn a POSIX shell"),
        ("slow", "Slow-running tests"),
    ]:
        config.addinivalue_line("markers", f"{name}: {desc}")


# =============================================================================
# OPTIONS / CONTEXT FIXTURES
# =============================================================================


@pytest.fixture
def options(tmp_path) -> RunOptions:
    """Colorless options with a private cache directory and a fast flush timer."""
    return RunOptions(
        color=False,
        flush_interval=0.05,
        cache_dir=str(tmp_path / ".runtree-cache"),
        bin_dir=str(tmp_path / "bin"),
    )


@pytest.fixture
def registry() -> CommandRegistry:
    """Empty registry with a fixed identity."""
    return CommandRegistry(identity="test-script")


@pytest.fixture
def make_context(registry: CommandRegistry, options: RunOptions):
    """Factory for root execution contexts."""

    def _make(**kwargs: Any) -> ExecContext:
        cache = ChangeCache(
            registry.identity(), cache_dir=options.cache_dir, algorithm=options.hash_algorithm
        )
        return ExecContext(
            registry=kwargs.pop("registry", registry),
            options=kwargs.pop("options", options),
            run_state=RunState(script_identity=registry.identity(), change_cache=cache),
            **kwargs,
        )

    return _make


# =============================================================================
# SUBPROCESS RUNNER STAND-IN
# =============================================================================


class RecordingRunner:
    """Replaces ``run_shell_command`` and records start/end events.

    Commands starting with ``fail`` raise ``RuntimeError``. Commands of the
    form ``sleep:<seconds>:<name>`` wait before finishing.

    Usage:
        runner = recording_runner
        await exec("a", ["b", "c"])
        assert runner.started == ["a", "b", "c"]
    """

    def __init__(self):
        self.events: list[tuple[str, str]] = []
        self.contexts: dict[str, ExecContext] = {}
        self.active = 0
        self.max_active = 0

    @property
    def started(self) -> list[str]:
        return [name for kind, name in self.events if kind == "start"]

    async def __call__(self, node, ctx: ExecContext):
        command = node.command
        delay = 0.0
        if command.startswith("sleep:"):
            _, seconds, command = command.split(":", 2)
            delay = float(seconds)

        self.events.append(("start", command))
        self.contexts[command] = ctx
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(delay)
            if command.startswith("fail"):
                raise RuntimeError(command)
        finally:
            self.active -= 1
            self.events.append(("end", command))


@pytest.fixture
def recording_runner(monkeypatch: pytest.MonkeyPatch) -> RecordingRunner:
    """Patch the scheduler's subprocess runner with a RecordingRunner."""
    runner = RecordingRunner()
    monkeypatch.setattr("runtree.scheduler.run_shell_command", runner)
    return runner
