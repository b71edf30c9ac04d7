"""
Structured logging for quotesync.

Records carry their structure as ``extra`` fields (``operation``,
``error_code``, ``context``, ``duration_ms``, ``result_info``). The console
handler renders them through rich; log files always get JSON lines.
Bearer tokens are masked before a record reaches any handler.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from quotesync.shared.errors import ErrorContext, QuoteSyncError

STRUCTURED_FIELDS = ("error_code", "operation", "duration_ms", "result_info", "context")

_BEARER = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)

_THEME = Theme(
    {
        "logging.level.debug": "cyan",
        "logging.level.info": "green",
        "logging.level.warning": "yellow",
        "logging.level.error": "red bold",
        "log.time": "dim cyan",
    }
)


class StructuredFormatter(logging.Formatter):
    """Render a record and its structured extras as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode("utf-8")


class TokenRedactingFilter(logging.Filter):
    """Mask ``Bearer <token>`` in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if _BEARER.search(message):
            record.msg = _BEARER.sub(r"\1***", message)
            record.args = None
        return True


def setup_structured_logger(
    name: str = "quotesync",
    level: str = "INFO",
    log_file: str | None = None,
    *,
    use_rich_console: bool = True,
) -> logging.Logger:
    """
    Configure the package logger, replacing any handlers it already has.

    Args:
        name: Logger name
        level: Log level name, e.g. "DEBUG"
        log_file: Optional path of a JSON-lines log file
        use_rich_console: Rich console output instead of JSON on stderr

    Returns:
        The configured logger, which no longer propagates to the root logger
    """
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper()))

    console_handler: logging.Handler
    if use_rich_console:
        console_handler = RichHandler(
            console=Console(theme=_THEME, stderr=True),
            markup=False,
            rich_tracebacks=True,
            log_time_format="[%H:%M:%S]",
        )
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    # Handler filters also see records propagated from child loggers
    for handler in logger.handlers:
        handler.addFilter(TokenRedactingFilter())
    logger.propagate = False
    return logger


def _as_dict(context: dict[str, Any] | ErrorContext | None) -> dict[str, Any]:
    if context is None:
        return {}
    if isinstance(context, ErrorContext):
        return context.safe_dict()
    return dict(context)


def log_operation_error(
    logger: logging.Logger,
    error: QuoteSyncError,
    operation: str | None = None,
    context: dict[str, Any] | ErrorContext | None = None,
    *,
    level: int = logging.ERROR,
) -> None:
    """
    Log a QuoteSyncError with its code and merged context.

    The traceback of the wrapped error is attached only at ERROR and above.
    """
    merged = error.context.safe_dict()
    merged.update(_as_dict(context))
    logger.log(
        level,
        error.message,
        extra={
            "error_code": error.code.value,
            "context": merged,
            "operation": operation or error.context.operation,
        },
        exc_info=error.original_error is not None and level >= logging.ERROR,
    )


def log_operation_success(
    logger: logging.Logger,
    operation: str,
    duration_ms: float,
    result_info: dict[str, Any] | None = None,
    context: dict[str, Any] | ErrorContext | None = None,
) -> None:
    logger.debug(
        "Operation '%s' completed in %.1fms",
        operation,
        duration_ms,
        extra={
            "operation": operation,
            "duration_ms": duration_ms,
            "result_info": result_info or {},
            "context": _as_dict(context),
        },
    )


def log_api_call(
    logger: logging.Logger,
    endpoint: str,
    method: str = "GET",
    status_code: int | None = None,
    duration_ms: float | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Log one HTTP exchange.

    DEBUG for 2xx/3xx, WARNING for error statuses and for calls that got no
    response. Whether the failure is surfaced is the transport's decision.
    """
    api_context: dict[str, Any] = {"endpoint": endpoint, "method": method}
    if status_code is not None:
        api_context["status_code"] = status_code
    if duration_ms is not None:
        api_context["duration_ms"] = round(duration_ms, 2)
    api_context.update(context or {})

    if status_code is None:
        level, outcome = logging.WARNING, "failed without a response"
    elif status_code >= 400:
        level, outcome = logging.WARNING, f"failed with status {status_code}"
    else:
        level, outcome = logging.DEBUG, f"returned {status_code}"

    logger.log(
        level,
        "%s %s %s",
        method,
        endpoint,
        outcome,
        extra={"operation": "api_call", "context": api_context},
    )


__all__ = [
    "STRUCTURED_FIELDS",
    "StructuredFormatter",
    "TokenRedactingFilter",
    "log_api_call",
    "log_operation_error",
    "log_operation_success",
    "setup_structured_logger",
]
