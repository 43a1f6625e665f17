"""Logging setup for the scheduler service.

Every line carries the service name and, when bound, a correlation ID
shared by all lines of one scheduling run or HTTP request.
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class _ServiceFormatter(logging.Formatter):
    def __init__(self, service_name: str = "reminder-scheduler"):
        super().__init__()
        self.service_name = service_name

    @staticmethod
    def fields_of(record: logging.LogRecord) -> dict[str, Any]:
        return getattr(record, "extra_fields", None) or {}


class JsonFormatter(_ServiceFormatter):
    """One JSON object per line.

    Keys: timestamp, level, service, message, logger, plus correlation_id
    when one is bound, the record's extra_fields, the formatted exception
    if any, and the source location for ERROR and above.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "logger": record.name,
        }
        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id
        payload.update(self.fields_of(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.levelno >= logging.ERROR:
            payload["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        # Dates, UUIDs and enums in fields are written via str()
        return json.dumps(payload, default=str)


class TextFormatter(_ServiceFormatter):
    """`timestamp - service - level - [correlation_id] - message key=value ...`"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        parts = [
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{correlation_id_ctx.get() or '-'}] - {record.getMessage()}"
        ]
        parts.extend(f"{key}={value}" for key, value in self.fields_of(record).items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# Libraries whose INFO output drowns the scheduler's own lines
QUIET_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
)


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = "reminder-scheduler",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_format: 'json' for structured logging, 'text' for human-readable
        log_level: Logging level name; unknown names fall back to INFO
        service_name: Service name to include in logs
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter_class = TextFormatter if log_format.lower() == "text" else JsonFormatter

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter_class(service_name=service_name))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind a correlation ID to every log line emitted inside the block."""
    token = correlation_id_ctx.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_ctx.reset(token)


class StructuredLogger:
    """Logger wrapper taking structured fields as keyword arguments.

    `logger.info("Scheduled user week", user_id=..., schedules=3)` attaches
    the keywords to the record as `extra_fields`, which both formatters emit.
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        extra = {"extra_fields": fields} if fields else None
        # stacklevel 3 attributes the record to the caller, not this wrapper
        self._logger.log(level, msg, extra=extra, exc_info=exc_info, stacklevel=3)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        """Log at ERROR; pass exc_info=True inside an except block for the traceback."""
        self._log(logging.ERROR, msg, fields, exc_info=exc_info)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger (name is typically __name__)."""
    return StructuredLogger(name)
