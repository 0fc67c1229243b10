"""
Structured Logging Configuration for FenceSense

JSON lines in production and for log files, colored console output in
development. Every record carries a correlation id: the request id for
HTTP calls, the session id inside a live WebSocket stream.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# LogRecord attributes that are never treated as structured extras
RESERVED_ATTRS = frozenset({
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
    "correlation_id",
})

# Chatty third-party loggers (server, HTTP client, MediaPipe's absl)
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "websockets", "absl")


def get_correlation_id() -> str:
    """Current correlation ID; one is generated on first use in a context"""
    cid = correlation_id_var.get()
    if not cid:
        cid = uuid.uuid4().hex[:8]
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Use ``correlation_id`` for log records inside the block, then restore the previous one"""
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


def record_extras(record: logging.LogRecord) -> Iterator[Tuple[str, Any]]:
    """Fields passed through ``extra=`` on a logging call"""
    for key, value in record.__dict__.items():
        if key not in RESERVED_ATTRS and not key.startswith("_"):
            yield key, value


def _record_correlation_id(record: logging.LogRecord) -> str:
    return getattr(record, "correlation_id", None) or get_correlation_id()


class JSONFormatter(logging.Formatter):
    """One JSON object per line; extras are merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": _record_correlation_id(record),
        }

        if record.levelno >= logging.WARNING:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        for key, value in record_extras(record):
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            log_data[key] = value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


class PrettyFormatter(logging.Formatter):
    """Colored single-line format for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created)
        timestamp = f"{created:%H:%M:%S}.{int(record.msecs):03d}"
        color = self.COLORS.get(record.levelname, "")
        line = (
            f"{timestamp} {color}{record.levelname:8}{self.RESET} "
            f"[{_record_correlation_id(record)}] {record.name}: {record.getMessage()}"
        )

        extras = ", ".join(f"{key}={value}" for key, value in record_extras(record))
        if extras:
            line += f" | {extras}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class CorrelationFilter(logging.Filter):
    """Stamps the context's correlation ID on every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def _handler(handler: logging.Handler, formatter: logging.Formatter, correlation: CorrelationFilter) -> logging.Handler:
    handler.setLevel(logging.DEBUG)
    handler.addFilter(correlation)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Configure root logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON console output (production)
        log_file: Optional file path; files always get JSON lines
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    correlation = CorrelationFilter()
    console_formatter = JSONFormatter() if json_format else PrettyFormatter()
    root_logger.addHandler(_handler(logging.StreamHandler(sys.stdout), console_formatter, correlation))
    if log_file:
        root_logger.addHandler(_handler(logging.FileHandler(log_file), JSONFormatter(), correlation))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={"log_level": level, "json_format": json_format, "log_file": log_file}
    )


class LogTimer:
    """
    Context manager that logs how long an operation took.

    Durations above ``slow_ms`` are logged at WARNING, failures at ERROR.
    """

    def __init__(self, logger: logging.Logger, operation: str, slow_ms: float = 5000.0, **extra):
        self.logger = logger
        self.operation = operation
        self.slow_ms = slow_ms
        self.extra = extra
        self.duration_ms: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        extra = {**self.extra, "duration_ms": round(self.duration_ms, 2)}

        if exc_type:
            self.logger.error(
                f"{self.operation} failed after {self.duration_ms:.2f}ms",
                extra={**extra, "error": str(exc_val)}
            )
        else:
            self.logger.log(
                logging.WARNING if self.duration_ms > self.slow_ms else logging.INFO,
                f"{self.operation} completed in {self.duration_ms:.2f}ms",
                extra=extra
            )
        return False
