"""
Structured logging for the privacy governance engine.

structlog is wired into stdlib logging, so the ``structlog.get_logger()``
loggers of the privacy engine and the ``logging.getLogger()`` loggers of the
storage backends share one handler and one output format: JSON in
production, a console renderer when CLARIFI_DEV_MODE=1.

Consent metadata is user-supplied and may describe the user, so any event
field named in REDACTED_FIELDS is masked before rendering.

Usage:
    from src.lib.logging import setup_logging

    setup_logging()  # once, before the worker starts
"""

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

REDACTED_FIELDS = frozenset({"metadata", "consent_metadata"})
REDACTED = "[redacted]"

_QUIET_LOGGERS = ("redis", "sqlalchemy.engine", "asyncio")


def redact_consent_metadata(
    _logger: Any,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor masking consent metadata fields."""
    for field in REDACTED_FIELDS.intersection(event_dict):
        event_dict[field] = REDACTED
    return event_dict


def _renderer(dev_mode: bool) -> structlog.types.Processor:
    if dev_mode:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(level: str | None = None) -> None:
    """
    Route structlog and stdlib logging through one stderr handler.

    Args:
        level: Log level name; defaults to LOG_LEVEL, then INFO.
    """
    dev_mode = os.environ.get("CLARIFI_DEV_MODE") == "1"
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_consent_metadata,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(dev_mode),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["setup_logging", "redact_consent_metadata", "REDACTED_FIELDS"]
