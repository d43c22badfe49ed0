"""Structured logging module using structlog."""

from .structured_logger import (
    app_context_processor,
    configure_logging,
    bind_context,
    unbind_context,
    clear_context,
)

__all__ = [
    "app_context_processor",
    "configure_logging",
    "bind_context",
    "unbind_context",
    "clear_context",
]
