"""Structured logging for fincanvas.

Every log line carries the session it belongs to (bound through
contextvars when a session opens) and never carries credentials: values
under secret-looking keys are masked before rendering.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from fincanvas.config.settings import get_settings

REDACTED = "***"

SECRET_KEYS = frozenset(
    {"api_key", "apikey", "authorization", "x-api-key", "password", "secret", "token"}
)

# Libraries whose INFO output is per-request noise
NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "anthropic")

SESSION_KEYS = ("session_id", "team_id", "turn_id")


def _is_secret(key: str) -> bool:
    lowered = key.lower()
    return lowered in SECRET_KEYS or lowered.endswith(("_api_key", "_token", "_secret"))


def _scrub(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: REDACTED if _is_secret(str(k)) else _scrub(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    if isinstance(value, tuple):
        return tuple(_scrub(v) for v in value)
    return value


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Mask credentials in log fields, including nested headers and payloads."""
    for key, value in list(event_dict.items()):
        if _is_secret(key):
            event_dict[key] = REDACTED
        elif isinstance(value, Mapping | list | tuple):
            event_dict[key] = _scrub(value)
    return event_dict


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Route structlog through stdlib logging with the configured renderer.

    Args:
        level: Log level. Defaults to LOG_LEVEL.
        format: ``json`` for log shipping, ``console`` for local work.
            Defaults to LOG_FORMAT.
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)
    # Third-party loggers stay quiet unless we are debugging
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer: Processor
    if (format or settings.log_format) == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_session_context(session_id: str, **extra: Any) -> None:
    """Attach session identifiers to every log line emitted in this context.

    Tool tasks spawned afterwards inherit the binding through contextvars.
    """
    structlog.contextvars.bind_contextvars(session_id=session_id, **extra)


def clear_session_context() -> None:
    """Drop the identifiers bound by bind_session_context, keeping anything else."""
    structlog.contextvars.unbind_contextvars(*SESSION_KEYS)
