"""
Structured logging setup.

All modules log through ``structlog.get_logger()``; this module decides how
those events are rendered.
"""

import logging
from typing import Any

import structlog

_SECRET_KEYS = ("password", "secret", "token", "otp", "authorization")


def _redact_secrets(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask values whose key looks like a credential."""
    for key, value in list(event_dict.items()):
        if key == "event":
            continue
        if any(marker in key.lower() for marker in _SECRET_KEYS) and isinstance(value, str):
            event_dict[key] = value[:2] + "***" if len(value) > 4 else "***"
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog processors.

    Args:
        level: Minimum log level name
        json_output: Render JSON lines instead of the console format
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
