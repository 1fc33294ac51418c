"""Structured JSON logging for flowmanager.

The engine logs through ``logging.getLogger(__name__)`` and attaches
``flow_name``, ``run_id`` and ``task_name`` to its records.  This module
turns those into JSON lines and lets applications add their own context.

Usage:
    from flowmanager.observability.logging import configure_logging, get_logger

    # Configure at application startup; DEBUG is needed to see the
    # trace records of flows created with ``debug=True``.
    configure_logging(log_level="DEBUG", json_format=True)

    logger = get_logger(__name__)
    with FlowLogContext(tenant="acme"):
        await flow.run()
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

_CONTEXT_FIELDS = ("flow_name", "run_id", "task_name")

# Attributes every LogRecord carries; anything else came from ``extra``.
_RESERVED = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Render records as one JSON object per line.

    Flow context fields are promoted to top-level keys; any other
    ``extra={...}`` values are copied as-is.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextFilter(logging.Filter):
    """Add fixed contextual fields to every record passing through."""

    def __init__(self, **context: Any) -> None:
        super().__init__()
        self._context: dict[str, Any] = dict(context)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self._context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def configure_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use :class:`JSONFormatter` if True, plain text if False
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(handler)

    # keep asyncio's own debug chatter out of flow traces
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class FlowLogContext:
    """Context manager adding fields to every record emitted by root handlers.

    Usage:
        with FlowLogContext(tenant="acme", request_id="r-1"):
            await flow.run()
    """

    def __init__(self, **context: Any) -> None:
        self._filter = ContextFilter(**context)

    def __enter__(self) -> FlowLogContext:
        for handler in logging.getLogger().handlers:
            handler.addFilter(self._filter)
        return self

    def __exit__(self, *args: Any) -> None:
        for handler in logging.getLogger().handlers:
            handler.removeFilter(self._filter)
