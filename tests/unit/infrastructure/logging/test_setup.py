"""Tests for logging setup module."""

import json
import logging
import re

import pytest
import structlog

from pulsechat.config.models import LoggingConfig
from pulsechat.infrastructure.logging import (
    bind_request_context,
    get_logger,
    setup_logging,
)


def _reset_logging() -> None:
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.WARNING)
    structlog.contextvars.clear_contextvars()


class TestSetupLogging:
    """Tests for setup_logging function."""

    def setup_method(self) -> None:
        _reset_logging()

    def test_json_format_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Records are rendered as JSON with timestamp, level and event."""
        setup_logging(LoggingConfig(level="INFO", format="json"))

        get_logger("test").info("Message sent")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert log_entry["level"] == "info"
        assert log_entry["event"] == "Message sent"
        assert log_entry["logger"] == "test"
        assert re.match(
            r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d+Z", log_entry["timestamp"]
        )

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        """DEBUG records are dropped at INFO level."""
        setup_logging(LoggingConfig(level="INFO", format="json"))

        get_logger("test").debug("Debug message")

        assert capsys.readouterr().out == ""

    def test_debug_level(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="DEBUG", format="json"))

        get_logger("test").debug("Debug message")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert log_entry["event"] == "Debug message"

    def test_bound_values_included(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="INFO", format="json"))

        get_logger("test").bind(conversation_id="c1").info("Conversation read")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert log_entry["conversation_id"] == "c1"

    def test_exception_logging(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="INFO", format="json"))

        try:
            raise ValueError("Test error")
        except ValueError:
            get_logger("test").exception("Unhandled error")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert "ValueError" in log_entry["exception"]
        assert "Test error" in log_entry["exception"]

    def test_stdlib_records_use_same_renderer(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Standard library loggers render through the structlog formatter."""
        setup_logging(LoggingConfig(level="INFO", format="json"))

        logging.getLogger("some.library").warning("Library warning")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert log_entry["event"] == "Library warning"
        assert log_entry["level"] == "warning"

    def test_noisy_loggers_capped_at_warning(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(LoggingConfig(level="DEBUG", format="json"))

        logging.getLogger("aiohttp.access").info("GET /api/v1/me 200")

        assert capsys.readouterr().out == ""
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_text_format_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="INFO", format="text"))

        get_logger("test").info("Text message")

        captured = capsys.readouterr()
        with pytest.raises(json.JSONDecodeError):
            json.loads(captured.out.strip())
        assert "Text message" in captured.out


class TestBindRequestContext:
    """Tests for bind_request_context function."""

    def setup_method(self) -> None:
        _reset_logging()

    def teardown_method(self) -> None:
        structlog.contextvars.clear_contextvars()

    def test_context_added_to_records(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(LoggingConfig(level="INFO", format="json"))

        bind_request_context(request_id="req-1", path="/api/v1/me")
        get_logger("test").info("Handling request")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert log_entry["request_id"] == "req-1"
        assert log_entry["path"] == "/api/v1/me"

    def test_previous_context_replaced(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(LoggingConfig(level="INFO", format="json"))

        bind_request_context(request_id="req-1", user_id="u1")
        bind_request_context(request_id="req-2")
        get_logger("test").info("Handling request")

        log_entry = json.loads(capsys.readouterr().out.strip())
        assert log_entry["request_id"] == "req-2"
        assert "user_id" not in log_entry
