"""
Structured Logging Module with Trace IDs
-----------------------------------------
Structured logging with trace IDs and swap context for the vaultswap pipeline.

This module uses loguru's contextualization features to add a trace ID, the
execution venue and, once known, the batch-auction order UID to every log
message emitted while a swap attempt is in flight.
"""

import contextvars
import functools
import json
import sys
import uuid
from typing import Any, Callable, Optional, TypeVar, cast

from loguru import logger

# Context variables for structured logging
trace_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "trace_id", default=None
)
venue_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "venue", default=None
)
order_uid_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "order_uid", default=None
)

F = TypeVar("F", bound=Callable[..., Any])

CONTEXT_FIELDS = ("trace_id", "venue", "order_uid")


def generate_trace_id() -> str:
    """Generate a unique trace ID for one swap attempt.

    Returns:
        str: UUID-based trace ID in short format (first 8 chars)
    """
    return str(uuid.uuid4())[:8]


def get_trace_id() -> Optional[str]:
    return trace_id_ctx.get()


def set_trace_id(trace_id: str) -> None:
    trace_id_ctx.set(trace_id)


def get_venue() -> Optional[str]:
    return venue_ctx.get()


def set_venue(venue: str) -> None:
    venue_ctx.set(venue)


def get_order_uid() -> Optional[str]:
    return order_uid_ctx.get()


def set_order_uid(order_uid: Optional[str]) -> None:
    """Attach (or clear) the batch-auction order UID for subsequent logs."""
    order_uid_ctx.set(order_uid)


def get_context() -> dict[str, Any]:
    """Get all current context values as a dictionary."""
    return {
        "trace_id": get_trace_id(),
        "venue": get_venue(),
        "order_uid": get_order_uid(),
    }


class StructuredLogger:
    """
    Wrapper for loguru logger with automatic context injection.

    Provides logging methods that automatically include the trace ID, venue
    and order UID of the swap attempt being processed.
    """

    def __init__(self) -> None:
        self._logger = logger

    def _bind_context(self) -> Any:
        context = {k: v for k, v in get_context().items() if v}
        return self._logger.bind(**context) if context else self._logger

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().error(message, *args, **kwargs)

    def success(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().success(message, *args, **kwargs)

    def exception(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().exception(message, *args, **kwargs)


def with_trace_id(func: F) -> F:
    """
    Decorator to inject a trace ID for the duration of a function call.

    The trace ID persists through all nested calls, so every RPC, quote and
    order log line of one swap attempt can be correlated.

    Example:
        @with_trace_id
        def run(self, request: SwapRequest) -> SwapOutcome:
            log.info("Resolving tokens")
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        owns_trace = get_trace_id() is None
        if owns_trace:
            set_trace_id(generate_trace_id())

        try:
            return func(*args, **kwargs)
        finally:
            if owns_trace:
                trace_id_ctx.set(None)
                order_uid_ctx.set(None)

    return cast(F, wrapper)


def with_venue(venue: str) -> Callable[[F], F]:
    """Decorator to tag every log line of a flow with its execution venue."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            token = venue_ctx.set(venue)
            try:
                return func(*args, **kwargs)
            finally:
                venue_ctx.reset(token)

        return cast(F, wrapper)

    return decorator


def json_formatter(record: dict[str, Any]) -> str:
    """
    Format log record as one JSON line with the structured context fields.

    The serialized entry is stashed in ``extra`` so loguru does not try to
    interpret the JSON braces as format placeholders.
    """
    log_entry = {
        "time": record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }

    extra = record.get("extra", {})
    for field in CONTEXT_FIELDS:
        if value := extra.get(field):
            log_entry[field] = value

    if record.get("exception"):
        log_entry["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
        }

    record["extra"]["serialized"] = json.dumps(log_entry)
    return "{extra[serialized]}\n"


def human_readable_formatter(record: dict[str, Any]) -> str:
    """Format log record in human-readable format with context."""
    fmt = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level>"

    extra = record.get("extra", {})
    if extra.get("trace_id"):
        fmt += " | <cyan>trace={extra[trace_id]}</cyan>"
    if extra.get("venue"):
        fmt += " | <blue>{extra[venue]}</blue>"
    if extra.get("order_uid"):
        fmt += " | <yellow>order={extra[order_uid]}</yellow>"

    fmt += " | <level>{message}</level>\n"

    if record.get("exception"):
        fmt += "{exception}\n"

    return fmt


def inject_context(record: dict[str, Any]) -> None:
    """loguru patcher: copy the active context vars into every record's extra."""
    for key, value in get_context().items():
        if value and key not in record["extra"]:
            record["extra"][key] = value


def configure_logging(
    level: str = "INFO",
    format: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the application.

    Logs go to stderr so stdout stays reserved for the swap summary.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format - "human" or "json"
        log_file: Optional file path; file output is always JSON
    """
    logger.remove()
    logger.configure(patcher=inject_context)

    logger.add(
        sys.stderr,
        level=level,
        format=json_formatter if format == "json" else human_readable_formatter,
        colorize=format != "json",
        backtrace=False,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            level=level,
            format=json_formatter,
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )


# Global structured logger instance
log = StructuredLogger()
