"""Logging configuration for the SEO report service."""

import logging
import sys
from typing import Any

import structlog

from seoreport import __version__
from seoreport.config import get_settings

# Event keys whose values never reach the log output
REDACTED_KEYS = frozenset({"password", "authorization", "dataforseo_password"})


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential values that were bound to a log event."""
    for key in REDACTED_KEYS & event_dict.keys():
        event_dict[key] = "***"
    return event_dict


def add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", "seoreport")
    event_dict.setdefault("version", __version__)
    return event_dict


def choose_renderer(log_format: str) -> Any:
    """JSON for ``json``, console for ``console``; ``auto`` picks by whether stdout is a terminal."""
    fmt = log_format.lower()
    if fmt == "auto":
        fmt = "console" if sys.stdout.isatty() else "json"

    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    """Configure structured logging."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper())

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_service,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        choose_renderer(settings.log_format),
    ]

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # Upstream HTTP chatter only at WARNING; our own upstream_* events cover each call
    for name in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
