"""
Structured logging with JSON formatting and correlation ID support.

Provides:
- JSON log formatting for production, colored output for development
- Correlation ID tracking via context variables (HTTP request id or sync run id)
- RunLogCollector, a handler that captures the log lines of one sync run so
  they can be stored on the run report
"""
import logging
import json
import sys
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional
from contextvars import ContextVar

# Shared across the application so any log call can read it
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# Run log lines are captured from this logger and its children
RUN_LOG_LOGGER = "app"

_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "asctime", "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter.

    Emits timestamp, level, logger, message, correlation_id, plus the
    exception text and any ``extra`` fields when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        level_color = self.COLORS.get(record.levelname, "")
        correlation_id = correlation_id_var.get()

        base_msg = f"{level_color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"

        if correlation_id:
            base_msg += f" | correlation_id={correlation_id}"

        if record.exc_info:
            base_msg += "\n" + self.formatException(record.exc_info)

        return base_msg


class RunLogCollector(logging.Handler):
    """
    Collects the messages logged while a sync run is active.

    A single dispatcher handler sits on the ``app`` logger for the lifetime
    of the process; it forwards each record to the collector registered
    under the record's correlation id, so overlapping runs keep separate
    lines.

    Usage:
        collector = RunLogCollector(run_id)
        with collector.attached():
            ...
        report.log_lines = collector.lines
    """

    def __init__(self, run_id: str, level: int = logging.INFO):
        super().__init__(level)
        self.run_id = run_id
        self.lines: List[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        if record.levelno >= logging.WARNING:
            message = f"[{record.levelname}] {message}"
        self.lines.append(message)

    def attached(self) -> "_RunRegistration":
        return _RunRegistration(self)


class _RunLogDispatcher(logging.Handler):
    """Routes records to the collector registered for their correlation id."""

    def __init__(self):
        super().__init__(logging.INFO)
        self.collectors: Dict[str, RunLogCollector] = {}

    def emit(self, record: logging.LogRecord) -> None:
        collector = self.collectors.get(correlation_id_var.get())
        if collector is not None:
            collector.handle(record)


_dispatcher: Optional[_RunLogDispatcher] = None
_dispatcher_lock = threading.Lock()


def _get_dispatcher() -> _RunLogDispatcher:
    """Install the dispatcher on the ``app`` logger on first use."""
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = _RunLogDispatcher()
            app_logger = logging.getLogger(RUN_LOG_LOGGER)
            app_logger.addHandler(_dispatcher)
            if app_logger.getEffectiveLevel() > logging.INFO:
                app_logger.setLevel(logging.INFO)
    return _dispatcher


class _RunRegistration:
    def __init__(self, collector: RunLogCollector):
        self.collector = collector

    def __enter__(self):
        _get_dispatcher().collectors[self.collector.run_id] = self.collector
        return self.collector

    def __exit__(self, exc_type, exc, tb):
        _get_dispatcher().collectors.pop(self.collector.run_id, None)
        return False


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: logging.Handler | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, use JSON formatter. If False, use colored console formatter.
        handler: Optional custom handler. If None, creates StreamHandler to stdout.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

    handler.setFormatter(JSONFormatter() if json_output else ColoredFormatter())
    root_logger.addHandler(handler)

    # Reduce noise from third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically ``get_logger(__name__)``)."""
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> Any:
    """
    Set the correlation ID in the context.

    Returns:
        Token that can be used to reset the context variable
    """
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Current correlation ID, or empty string if not set."""
    return correlation_id_var.get()


def clear_correlation_id(token: Any) -> None:
    """Reset the correlation ID using the token from set_correlation_id."""
    correlation_id_var.reset(token)
