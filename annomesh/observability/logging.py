"""
Structured Logging for the Annotation Store

Every module logs through StructuredLogger with keyword fields instead
of formatted messages:

    logger.warning("Script evaluation failed; annotation rejected",
                   error=error.to_dict(), annotation_group="alerts")

Output:
- JSON lines (one object per record) for log aggregation
- key=value text for terminals
- request-scoped fields via StructuredLogger.context()

Loggers live under the "annomesh" namespace (annomesh.store,
annomesh.factory, annomesh.filter, annomesh.storage); setup_logging()
configures only that namespace.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Optional, TextIO

PACKAGE_LOGGER = "annomesh"


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, name: str) -> LogLevel:
        """Case-insensitive lookup; raises KeyError for unknown names."""
        return cls[name.upper()]


# Request-scoped fields merged into every record
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every logging.LogRecord carries; anything else is a field
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename",
    "funcName", "levelname", "levelno", "lineno",
    "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info",
    "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message", "asctime",
})


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = dict(_log_context.get())
    fields.update(
        (key, value) for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS
    )
    return fields


def _json_default(value: Any) -> Any:
    # Errors and other domain objects expose to_dict()
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, Path):
        return str(value)
    return repr(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per record: @timestamp, level, logger, message, fields."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(_record_fields(record))
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=_json_default)


class KeyValueFormatter(logging.Formatter):
    """Human-readable line with the structured fields appended as key=value."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _record_fields(record)
        if not fields:
            return line
        rendered = " ".join(
            f"{key}={json.dumps(value, default=_json_default)}"
            for key, value in fields.items()
        )
        return f"{line} | {rendered}"


class StructuredLogger:
    """
    Thin wrapper over logging.Logger taking fields as keywords.

    Keywords that collide with LogRecord attributes (name, module, ...)
    are emitted as field_<key>.

    Usage:
        logger = StructuredLogger("annomesh.store")

        with logger.context(request_id="123"):
            logger.info("Reading annotations", read_level=4)
    """

    __slots__ = ("_logger", "_default_extra")

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self._default_extra: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.CRITICAL, message, kwargs)

    def _log(self, level: LogLevel, message: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level.value):
            return
        merged = {**self._default_extra, **fields}
        extra = {
            (f"field_{key}" if key in _RESERVED_ATTRS else key): value
            for key, value in merged.items()
        }
        self._logger.log(level.value, message, extra=extra)

    def with_extra(self, **kwargs: Any) -> StructuredLogger:
        """Logger with the same name and extra default fields."""
        child = StructuredLogger(self._logger.name)
        child._default_extra = {**self._default_extra, **kwargs}
        return child

    @staticmethod
    def context(**kwargs: Any) -> _LogContext:
        """Fields added to every record logged inside the with-block."""
        return _LogContext(kwargs)


class _LogContext:
    __slots__ = ("_fields", "_token")

    def __init__(self, fields: dict[str, Any]) -> None:
        self._fields = fields
        self._token = None

    def __enter__(self) -> _LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the "annomesh" logger namespace.

    Replaces any handler installed by a previous call. Records still
    propagate to the root logger.

    Args:
        level: Minimum log level
        json_output: JSON lines when True, key=value text otherwise
        stream: Output stream (default: stderr)
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.value)
    package_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level.value)
    handler.setFormatter(JsonFormatter() if json_output else KeyValueFormatter())
    package_logger.addHandler(handler)

    # Client libraries are only interesting when they fail
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return package_logger
