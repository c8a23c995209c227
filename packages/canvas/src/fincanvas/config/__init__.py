"""Configuration module for fincanvas."""

from fincanvas.config.logging import (
    bind_session_context,
    clear_session_context,
    configure_logging,
    redact_secrets,
)
from fincanvas.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "get_settings",
    "configure_logging",
    "bind_session_context",
    "clear_session_context",
    "redact_secrets",
]
