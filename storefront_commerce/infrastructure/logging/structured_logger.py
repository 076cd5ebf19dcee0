"""
Structured logging with correlation ids.

Log records carry the correlation id and the request context (customer id,
operation) of the current task, taken from context variables so concurrent
requests do not leak fields into each other's logs. Output is either one JSON
object per line or a colored, human readable line for local development.
"""

import json
import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
request_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("request_context", default=None)

# Attributes every LogRecord has; anything else was passed through ``extra=``.
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def get_correlation_id() -> Optional[str]:
    return correlation_id.get()


def set_correlation_id(cid: Optional[str] = None) -> str:
    """
    Set the correlation id of the current context.

    Args:
        cid: Existing id, or None to generate a new one.

    Returns:
        The correlation id now in effect.
    """
    cid = cid or str(uuid.uuid4())
    correlation_id.set(cid)
    return cid


def clear_correlation_id() -> None:
    correlation_id.set(None)


def get_request_context() -> Dict[str, Any]:
    return dict(request_context.get() or {})


def set_request_context(**fields: Any) -> None:
    """Merge ``fields`` into the request context of the current task."""
    merged = get_request_context()
    merged.update(fields)
    request_context.set(merged)


def clear_request_context() -> None:
    request_context.set(None)


@contextmanager
def bind_request_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Add ``fields`` to the request context for the duration of the block.

    The previous context is restored on exit, also when the block raises.

    Example:
        >>> with bind_request_context(customer_id="c-1", operation="purchase"):
        ...     logger.info("authorizing")  # carries customer_id and operation
    """
    merged = get_request_context()
    merged.update(fields)
    token = request_context.set(merged)
    try:
        yield merged
    finally:
        request_context.reset(token)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_ATTRS
    }


class StructuredFormatter(logging.Formatter):
    """
    Renders each record as one JSON object.

    Fields: timestamp, level, logger, message, service, correlation_id,
    context, location, extra, exception.
    """

    def __init__(self, service_name: str = "storefront-commerce"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        cid = get_correlation_id()
        if cid:
            log_data["correlation_id"] = cid

        ctx = get_request_context()
        if ctx:
            log_data["context"] = ctx

        log_data["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        extras = _record_extras(record)
        if extras:
            log_data["extra"] = extras

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_trace"] = self.formatStack(record.stack_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colored single line output for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{record.levelname:8}{self.RESET}"
        else:
            level = f"{record.levelname:8}"

        cid = get_correlation_id()
        cid_str = f"[{cid[:8]}] " if cid else ""

        line = f"{timestamp} {level} {cid_str}{record.name}: {record.getMessage()}"

        ctx = get_request_context()
        context_str = " | ".join(f"{k}={v}" for k, v in ctx.items() if v is not None)
        if context_str:
            line += f" | {context_str}"

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"

        return line


def configure_logging(
    level: str = "INFO",
    json_output: Optional[bool] = None,
    service_name: str = "storefront-commerce",
) -> logging.Handler:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        json_output: True for JSON, False for human readable. None reads the
            LOG_FORMAT environment variable ("json" by default).
        service_name: Service name stamped on JSON records.

    Returns:
        The installed handler.
    """
    if json_output is None:
        json_output = os.getenv("LOG_FORMAT", "json").lower() == "json"

    formatter: logging.Formatter
    if json_output:
        formatter = StructuredFormatter(service_name=service_name)
    else:
        formatter = HumanReadableFormatter(use_colors=sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)

    # Quiet chatty clients
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
