"""Structured logging configuration for the key escrow server."""

import json
import logging
import re
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for request ID tracking
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

TEXT_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(request_id)s | "
    "%(name)s:%(funcName)s:%(lineno)d | %(message)s"
)

# LogRecord attributes that are not user supplied "extra" fields
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "request_id", "event_type",
    "taskName",
})


class SensitiveDataFilter(logging.Filter):
    """Filter to keep key material and credentials out of the logs."""

    # Quoted PEM text inside reprs has no END line if it was truncated
    PRIVATE_PEM = re.compile(
        r"-----BEGIN ([A-Z ]*)PRIVATE KEY-----"
        r"(?:.*?-----END \1PRIVATE KEY-----|[^'\"]*)",
        re.DOTALL,
    )

    SENSITIVE_KEYS = {
        "password",
        "token",
        "secret",
        "authorization",
        "credential",
        "private_key",
        "privatekey",
        "wrapped_key",
        "wrappedkey",
        "wrapped_aes",
        "wrappedaes",
        "env_vars",
        "envvars",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter sensitive data from log records."""
        if hasattr(record, "msg"):
            record.msg = self._sanitize(record.msg)
        if hasattr(record, "args") and record.args:
            if isinstance(record.args, dict):
                record.args = self._sanitize(record.args)
            else:
                record.args = tuple(self._sanitize(arg) for arg in record.args)
        for key in list(record.__dict__):
            if key.lower() in self.SENSITIVE_KEYS:
                setattr(record, key, "***REDACTED***")
        if record.exc_info and not record.exc_text:
            # Formatters reuse exc_text instead of re-rendering the traceback
            record.exc_text = self.PRIVATE_PEM.sub(
                "***REDACTED PEM***",
                logging.Formatter().formatException(record.exc_info),
            )
        return True

    def _sanitize(self, obj: Any) -> Any:
        """Recursively sanitize objects to remove sensitive data."""
        if isinstance(obj, dict):
            return {
                k: "***REDACTED***" if str(k).lower() in self.SENSITIVE_KEYS else self._sanitize(v)
                for k, v in obj.items()
            }
        elif isinstance(obj, (list, tuple)):
            return type(obj)(self._sanitize(item) for item in obj)
        elif isinstance(obj, str):
            if "-----BEGIN" in obj and "PRIVATE KEY" in obj:
                return "***REDACTED PEM***"
            lower_str = obj.lower()
            for key in self.SENSITIVE_KEYS:
                if key in lower_str and "=" in obj:
                    # Simple pattern matching for key=value
                    parts = obj.split("=")
                    if len(parts) >= 2:
                        return f"{parts[0]}=***REDACTED***"
            return obj
        return obj


class StructuredFormatter(logging.Formatter):
    """Custom formatter that adds structure and context to logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured data."""
        request_id = request_id_var.get()
        record.request_id = request_id or "-"

        if not hasattr(record, "event_type"):
            record.event_type = "general"

        return super().format(record)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "request_id": request_id_var.get() or "-",
            "event_type": getattr(record, "event_type", "general"),
        }

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_text:
            log_data["exception"] = record.exc_text
        elif record.exc_info:
            log_data["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format (for production)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(SensitiveDataFilter())

    if json_logs:
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(StructuredFormatter(TEXT_FORMAT))

    root_logger.addHandler(console_handler)

    # Set logging level for third-party libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; handlers and filters live on the root logger."""
    return logging.getLogger(name)


def log_error(
    logger: logging.Logger,
    message: str,
    error: BaseException | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Log an error with full stack trace and context.

    Args:
        logger: Logger instance
        message: Error message
        error: Exception instance (optional)
        extra: Additional context data (optional)
    """
    extra_data = dict(extra or {})
    extra_data["event_type"] = "error"

    if error:
        logger.error(
            f"{message}: {error}",
            exc_info=(type(error), error, error.__traceback__),
            extra=extra_data,
        )
    else:
        logger.error(message, extra=extra_data)


def log_security_event(
    logger: logging.Logger,
    event: str,
    details: dict[str, Any] | None = None,
    level: str = "WARNING",
) -> None:
    """Log an access-control event, such as a request without a device identity."""
    details = dict(details or {})
    details["event_type"] = "security"

    log_level = getattr(logging, level.upper(), logging.WARNING)
    logger.log(log_level, f"SECURITY: {event}", extra=details)


def set_request_id(request_id: str) -> None:
    """Set request ID for the current context."""
    request_id_var.set(request_id)


def clear_request_id() -> None:
    """Clear request ID from the current context."""
    request_id_var.set(None)
