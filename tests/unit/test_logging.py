"""Tests for runtree diagnostic logging."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from runtree.logging import (
    HumanFormatter,
    JSONFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
)


def _record(level: int = logging.INFO, msg: str = "Test message", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="runtree.test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _reset_runtree_logger():
    yield
    root = logging.getLogger("runtree")
    for handler in list(root.handlers):
        if getattr(handler, "_runtree_handler", False):
            root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


# =============================================================================
# Formatter Tests
# =============================================================================


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_format_basic_message(self) -> None:
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "runtree.test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert "location" not in data

    def test_format_with_extra(self) -> None:
        """Test formatting includes extra fields."""
        data = json.loads(JSONFormatter().format(_record(context="build/0", exit_code=2)))

        assert data["context"] == "build/0"
        assert data["exit_code"] == 2

    def test_format_error_includes_location(self) -> None:
        data = json.loads(JSONFormatter().format(_record(level=logging.ERROR)))

        assert data["location"]["line"] == 10

    def test_format_with_exception(self) -> None:
        """Test formatting includes exception info."""
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        record = _record(level=logging.ERROR)
        record.exc_info = exc_info
        data = json.loads(JSONFormatter().format(record))

        assert "ValueError" in data["exception"]


class TestHumanFormatter:
    """Tests for HumanFormatter."""

    def test_format_with_extras(self) -> None:
        line = HumanFormatter().format(_record(msg="Forked", context="a/1"))

        assert "INFO" in line
        assert "runtree.test: Forked" in line
        assert line.endswith("context=a/1")


# =============================================================================
# Logger Tests
# =============================================================================


class TestGetLogger:
    """Tests for get_logger function."""

    def test_rooted_under_runtree(self) -> None:
        logger = get_logger("scheduler")

        assert isinstance(logger, StructuredLogger)
        assert logger.name == "runtree.scheduler"

    def test_already_rooted_name_unchanged(self) -> None:
        assert get_logger("runtree.cache").name == "runtree.cache"
        assert get_logger("runtree").name == "runtree"


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_extras_attached(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("test")

        with caplog.at_level(logging.DEBUG, logger="runtree"):
            logger.debug("Running shell command", command="ls", context="x/0")

        record = caplog.records[-1]
        assert record.getMessage() == "Running shell command"
        assert record.command == "ls"
        assert record.context == "x/0"

    def test_disabled_level_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("test")

        with caplog.at_level(logging.WARNING, logger="runtree"):
            logger.info("hidden")

        assert "hidden" not in caplog.text

    def test_child_logger(self) -> None:
        child = get_logger("shell").child("runner")

        assert child.name == "runtree.shell.runner"


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_debug_level(self) -> None:
        configure_logging(level="debug", stream=io.StringIO())

        assert logging.getLogger("runtree").level == logging.DEBUG

    def test_level_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RUNTREE_LOG_LEVEL", "ERROR")
        configure_logging(stream=io.StringIO())

        assert logging.getLogger("runtree").level == logging.ERROR

    def test_json_output(self) -> None:
        stream = io.StringIO()
        configure_logging(level="INFO", format="json", stream=stream)

        get_logger("cache").info("Persisted", count=3)

        data = json.loads(stream.getvalue().strip())
        assert data["message"] == "Persisted"
        assert data["count"] == 3

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging(format="human", stream=io.StringIO())
        configure_logging(format="json", stream=io.StringIO())

        handlers = [
            h
            for h in logging.getLogger("runtree").handlers
            if getattr(h, "_runtree_handler", False)
        ]
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JSONFormatter)
