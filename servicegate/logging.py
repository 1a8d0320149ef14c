"""Structured logging configuration built on structlog over stdlib logging."""

from __future__ import annotations

import logging
import sys

import structlog


def logging_configure(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure stdlib logging and structlog processors for the runtime.

    Args:
        log_level: Root log level name.
        log_format: `json` for machine-readable lines, `console` for development output.

    Returns:
        None: Configuration is applied globally as a side effect.

    Raises:
        ValueError: Raised when log_format is not supported.
    """

    if log_format not in {"json", "console"}:
        raise ValueError(f"unsupported log_format: {log_format}")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to a module name."""

    return structlog.get_logger(name)


def logging_mask_secret(value: str | None) -> str:
    """Render a secret as a short masked hint safe for log output.

    Args:
        value: Secret value or None.

    Returns:
        str: `<unset>`, `***` for short values, or first/last characters around an ellipsis.
    """

    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-2:]}"
