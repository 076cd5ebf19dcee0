"""
Structured logging module.

JSON or human readable logs with correlation ids and request context.
"""

from .structured_logger import (
    HumanReadableFormatter,
    StructuredFormatter,
    bind_request_context,
    clear_correlation_id,
    clear_request_context,
    configure_logging,
    get_correlation_id,
    get_logger,
    get_request_context,
    set_correlation_id,
    set_request_context,
)

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    # Context management
    "bind_request_context",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "get_request_context",
    "set_request_context",
    "clear_request_context",
    # Formatters
    "StructuredFormatter",
    "HumanReadableFormatter",
]
