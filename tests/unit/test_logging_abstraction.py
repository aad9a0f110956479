"""Unit tests for logging_abstraction.py."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

import pytest

from vis42_proxy.correlation import correlation_context
from vis42_proxy.logging_abstraction import (
    LOG_PREFIX,
    HumanReadableFormatter,
    JSONFormatter,
    ProxyLogger,
    make_log_sink,
    safe_log,
)


def _unique_name() -> str:
    return f"vis42_proxy.tests.{uuid.uuid4().hex}"


def _record(message: str, extra_data: dict[str, object] | None = None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="vis42_proxy.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    if extra_data is not None:
        record.extra_data = extra_data
    return record


class TestFormatters:
    """Tests for the JSON and human-readable formatters."""

    def test_json_formatter_includes_correlation_and_context(self):
        """Test that JSON output carries the message, correlation ID and extra context."""
        with correlation_context("abc123"):
            output = JSONFormatter().format(_record("hello", {"transport": "SSE"}))

        data = json.loads(output)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["correlation_id"] == "abc123"
        assert data["context"] == {"transport": "SSE"}

    def test_human_formatter_prefix_and_context(self):
        """Test that human output has the proxy prefix, short correlation ID and context suffix."""
        with correlation_context("0123456789abcdef"):
            output = HumanReadableFormatter().format(_record("Connected", {"port": 9090}))

        assert LOG_PREFIX in output
        assert "[01234567]" in output
        assert output.endswith("> Connected | port=9090")

    def test_human_formatter_without_correlation(self):
        """Test the placeholder shown when no correlation ID is active."""
        output = HumanReadableFormatter().format(_record("idle"))
        assert "[--------]" in output


class TestProxyLogger:
    """Tests for ProxyLogger handler setup."""

    def test_human_output_defaults_to_stderr(self, capsys: pytest.CaptureFixture[str]):
        """Test that nothing is written to stdout, which carries the MCP protocol."""
        logger = ProxyLogger(_unique_name())
        logger.info("to stderr")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "to stderr" in captured.err

    def test_handlers_attached_once(self):
        """Test that a second logger with the same name does not duplicate handlers."""
        name = _unique_name()
        first = ProxyLogger(name)
        second = ProxyLogger(name)
        assert len(second.handlers) == len(first.handlers) == 1

    def test_json_file_output(self, tmp_path: Path):
        """Test that JSON mode writes one JSON object per line to the file."""
        json_file = tmp_path / "logs" / "proxy.json"
        logger = ProxyLogger(_unique_name(), log_format="json", json_file=json_file, human_output=None)
        logger.warning("disk", extra={"key": "value"})
        for handler in logger.handlers:
            handler.flush()

        line = json_file.read_text().strip().splitlines()[-1]
        data = json.loads(line)
        assert data["message"] == "disk"
        assert data["level"] == "WARNING"
        assert data["context"] == {"key": "value"}

    def test_set_level_updates_handlers(self):
        """Test that set_level changes the logger and every handler."""
        logger = ProxyLogger(_unique_name())
        logger.set_level(logging.DEBUG)
        assert logger.logger.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in logger.handlers)

    def test_debug_suppressed_at_info(self, capsys: pytest.CaptureFixture[str]):
        """Test that debug lines are dropped at the default level."""
        logger = ProxyLogger(_unique_name())
        logger.debug("hidden")
        assert "hidden" not in capsys.readouterr().err


class TestLogSinks:
    """Tests for make_log_sink and safe_log."""

    def test_sink_writes_one_record_per_message(self, caplog: pytest.LogCaptureFixture):
        """Test that the sink logs each message verbatim at INFO."""
        logger = ProxyLogger(_unique_name())
        logger.logger.propagate = True
        sink = make_log_sink(logger)

        with caplog.at_level(logging.INFO, logger=logger.name):
            sink("Connected to remote server.")
            sink("100% done")

        assert [r.getMessage() for r in caplog.records] == ["Connected to remote server.", "100% done"]

    def test_records_name_the_caller_outside_the_module(self, caplog: pytest.LogCaptureFixture):
        """Test that direct and safe_log deliveries both report this test as the origin."""
        logger = ProxyLogger(_unique_name())
        logger.logger.propagate = True
        sink = make_log_sink(logger)

        with caplog.at_level(logging.INFO, logger=logger.name):
            sink("direct")
            safe_log(sink, "through safe_log")

        assert [r.module for r in caplog.records] == ["test_logging_abstraction", "test_logging_abstraction"]
        assert {r.funcName for r in caplog.records} == {"test_records_name_the_caller_outside_the_module"}

    def test_safe_log_none_sink(self):
        """Test that a missing sink is a no-op."""
        safe_log(None, "ignored")

    def test_safe_log_swallows_sink_failure(self, capsys: pytest.CaptureFixture[str]):
        """Test that a raising sink is reported on stderr instead of propagating."""

        def broken(message: str) -> None:
            msg = "closed pipe"
            raise BrokenPipeError(msg)

        safe_log(broken, "Connected to remote server.")

        err = capsys.readouterr().err
        assert "Connected to remote server." in err
        assert "closed pipe" in err
