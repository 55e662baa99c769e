"""
Structured JSON logging with session correlation IDs.

Every record logged while an import or export runs carries the session ID,
including records from the analyzer worker thread, so one run can be followed
across stages and threads.
"""

import logging
import json
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional
from datetime import datetime, timezone

# Active session ID; each thread entering a session sets its own value
session_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "session_id", default=None)


def _with_session(fields: Dict[str, Any]) -> Dict[str, Any]:
    session_id = session_id_ctx.get()
    if session_id:
        fields["session_id"] = session_id
    return fields


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line with the level, logger, message, source
    location, thread name, session ID and any structured fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }
        _with_session(log_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Set by SessionLogger and PerformanceTracker
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_data.update(extra_fields)

        # Documents and paths are not always JSON native
        return json.dumps(log_data, default=str)


class SessionLogger:
    """
    Logger whose keyword arguments become structured fields.

        logger.info("Import started", namespace="db.people", size=1024)
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, level: int, msg: str, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        record = self.logger.makeRecord(
            self.logger.name, level, "(unknown file)", 0, msg, (), None)
        record.extra_fields = _with_session(dict(kwargs))
        self.logger.handle(record)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)


class PerformanceTracker:
    """
    Context manager timing one analyze, import or export run.

    Usage:
        with PerformanceTracker("import", logger, namespace="db.people") as tracker:
            import_csv(...)
        tracker.duration_ms

    Failures are logged at ERROR with the exception type and re-raised.
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration_ms: float = 0.0

    def _extra(self, **fields) -> dict:
        extra = {"operation": self.operation, **self.extra_fields, **fields}
        return {"extra_fields": _with_session(extra)}

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.debug(f"Starting operation: {self.operation}", extra=self._extra())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.monotonic() - self.start_time) * 1000, 2)

        if exc_type:
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra=self._extra(
                    duration_ms=self.duration_ms,
                    error=str(exc_val),
                    error_type=exc_type.__name__,
                ),
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra=self._extra(duration_ms=self.duration_ms),
            )


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure the root logger with a single stderr handler.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting if True, plain text otherwise
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s"))
    root_logger.addHandler(handler)

    # SQL echo is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def set_session_id(session_id: Optional[str] = None) -> str:
    """Set the session ID of the current context, generating one if needed."""
    if session_id is None:
        session_id = uuid.uuid4().hex
    session_id_ctx.set(session_id)
    return session_id


def get_session_id() -> Optional[str]:
    return session_id_ctx.get()


def clear_session_id():
    session_id_ctx.set(None)


@contextmanager
def session_context(session_id: str) -> Iterator[str]:
    """
    Tag every record logged inside the block with ``session_id``.

    The previous value is restored on exit, also when the block raises.
    """
    token = session_id_ctx.set(session_id)
    try:
        yield session_id
    finally:
        session_id_ctx.reset(token)


def get_structured_logger(name: str) -> SessionLogger:
    return SessionLogger(logging.getLogger(name))
