"""Structured logging configuration for the SDK.

The SDK only emits records through loggers under the ``simplefact``
namespace and never configures handlers on import. Applications that want
the SDK's formatting can call ``setup_logging`` explicitly.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from simplefact.core.config import ClientSettings


# Attributes every LogRecord carries; anything else is user-supplied extra
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "taskName",
    "message", "asctime", "timestamp", "logger", "level", "source",
))


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Request context attributes (see CONTEXT_FIELDS) are promoted to top-level
    keys; any other ``extra`` attribute is grouped under ``"extra"``.
    """

    CONTEXT_FIELDS = (
        "method",        # HTTP method
        "path",          # Request path relative to base_url
        "status_code",   # HTTP response status
        "attempt",       # 1-indexed dispatch attempt
        "duration_ms",   # Dispatch duration in milliseconds
        "error_code",    # ErrorCode value on failure
    )

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        payload.update(self._context(record))

        extra = self._extra(record)
        if extra:
            payload["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)

    def _context(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            name: getattr(record, name)
            for name in self.CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        }

    def _extra(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in self.CONTEXT_FIELDS
        }


class ContextFilter(logging.Filter):
    """Fill in request context attributes missing from a record.

    The ``structured`` format string references them, so every record
    needs them, even those logged without ``extra``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for name in JSONFormatter.CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# log_format -> dictConfig formatter definition
FORMATTERS: Dict[str, Dict[str, str]] = {
    "text": {"format": _TEXT_FORMAT},
    "structured": {
        "format": _TEXT_FORMAT
        + " - method=%(method)s - path=%(path)s - status_code=%(status_code)s"
        " - attempt=%(attempt)s - error_code=%(error_code)s"
    },
    "json": {"()": "simplefact.core.logging.JSONFormatter"},
}


def get_logging_config(settings: Optional["ClientSettings"] = None) -> Dict[str, Any]:
    """Build a ``dictConfig`` mapping for the ``simplefact`` loggers.

    Args:
        settings: Client settings providing log_level, log_format and debug;
            defaults to INFO level with the text format

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    log_format = getattr(settings, "log_format", "text").lower()
    if log_format not in FORMATTERS:
        log_format = "text"
    log_level = getattr(settings, "log_level", "INFO").upper()
    if getattr(settings, "debug", False):
        log_level = "DEBUG"

    def sdk_logger(level: str) -> Dict[str, Any]:
        return {"level": level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {log_format: FORMATTERS[log_format]},
        "filters": {"context": {"()": "simplefact.core.logging.ContextFilter"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": log_format,
                "stream": sys.stderr,
                "filters": ["context"],
            },
        },
        "loggers": {
            "simplefact": sdk_logger(log_level),
            "httpx": sdk_logger("WARNING"),
        },
    }


def setup_logging(settings: Optional["ClientSettings"] = None) -> None:
    """Configure the ``simplefact`` logger hierarchy."""
    logging.config.dictConfig(get_logging_config(settings))


def get_logger(name: str = "simplefact") -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, defaults to "simplefact"

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def get_log_context(
    method: Optional[str] = None,
    path: Optional[str] = None,
    status_code: Optional[int] = None,
    attempt: Optional[int] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with the extra parameter.

    Example:
        >>> logger.debug(
        ...     "Dispatching request",
        ...     extra=get_log_context(method="GET", path="/budgets/5", attempt=1)
        ... )
    """
    context = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "attempt": attempt,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
