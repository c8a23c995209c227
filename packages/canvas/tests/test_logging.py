"""Tests for logging configuration."""

import logging

import structlog

from fincanvas.config import (
    bind_session_context,
    clear_session_context,
    configure_logging,
    redact_secrets,
)
from fincanvas.config.logging import REDACTED


class TestRedactSecrets:
    """Tests for the credential-masking processor."""

    def test_top_level_keys(self):
        """Test secret-looking keys are masked."""
        event = redact_secrets(
            None,
            "info",
            {"event": "request", "api_key": "sk-1", "metrics_api_key": "m-1", "path": "/x"},
        )

        assert event["api_key"] == REDACTED
        assert event["metrics_api_key"] == REDACTED
        assert event["path"] == "/x"
        assert event["event"] == "request"

    def test_nested_headers(self):
        """Test secrets inside nested mappings and lists are masked."""
        event = redact_secrets(
            None,
            "info",
            {
                "headers": {"Authorization": "Bearer abc", "Accept": "application/json"},
                "calls": [{"token": "t"}, {"name": "get_runway"}],
            },
        )

        assert event["headers"] == {"Authorization": REDACTED, "Accept": "application/json"}
        assert event["calls"] == [{"token": REDACTED}, {"name": "get_runway"}]

    def test_usage_counters_untouched(self):
        """Test token counts are not mistaken for tokens."""
        event = redact_secrets(None, "info", {"input_tokens": 10, "max_tokens": 4096})
        assert event == {"input_tokens": 10, "max_tokens": 4096}


class TestSessionContext:
    """Tests for session-scoped log context."""

    def test_bind_and_clear(self):
        """Test clearing removes only the session identifiers."""
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id="r1")

        bind_session_context("sess_1", team_id="team_1")
        bound = structlog.contextvars.get_contextvars()
        assert bound["session_id"] == "sess_1"
        assert bound["team_id"] == "team_1"

        clear_session_context()
        assert structlog.contextvars.get_contextvars() == {"request_id": "r1"}
        structlog.contextvars.clear_contextvars()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_quiets_library_loggers(self):
        """Test HTTP and WebSocket libraries are raised to WARNING."""
        configure_logging(level="INFO", format="json")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("websockets").level == logging.WARNING
        assert logging.getLogger().level == logging.INFO

    def test_debug_keeps_library_warnings(self):
        """Test debugging never lowers library loggers below WARNING."""
        configure_logging(level="DEBUG", format="console")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG
