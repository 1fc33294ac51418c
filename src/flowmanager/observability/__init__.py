"""Logging helpers for applications running flows."""

from flowmanager.observability.logging import (
    ContextFilter,
    FlowLogContext,
    JSONFormatter,
    configure_logging,
    get_logger,
)

__all__ = [
    "ContextFilter",
    "FlowLogContext",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
]
