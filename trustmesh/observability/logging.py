"""
Structured Logging for the Trust Mesh

Every line written by the session store, readiness loader and error reporter
is one JSON object:

    {"time": "...", "level": "WARNING", "logger": "trustmesh.session.loader",
     "message": "Store readiness check failed", "attempts": 16,
     "owner": "quantum-3f9a1c2b7d"}

Keyword arguments passed to a log call become top-level fields. Fields bound
with `StructuredLogger.context()` (typically the effective owner or the
session being worked on) are added to every line emitted inside the block,
including lines from plain `logging` loggers, as long as the JSON formatter
is installed.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional, TextIO


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        """Level for a config value such as "warning"; unknown names mean INFO."""
        try:
            return cls[name.upper()]
        except KeyError:
            return cls.INFO


_scoped_fields: ContextVar[dict[str, Any]] = ContextVar("trustmesh_log_fields", default={})

# Attributes every logging.LogRecord carries; anything else came from `extra`.
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Third-party loggers that chatter at INFO during store and model calls.
_QUIET_LOGGERS = ("asyncio", "httpx", "openai", "redis")


@dataclass
class LogEntry:
    time: str
    level: str
    logger: str
    message: str
    fields: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        # Core keys win over same-named fields.
        body = {**self.fields, "time": self.time, "level": self.level,
                "logger": self.logger, "message": self.message}
        return json.dumps(body, default=str)


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON with scoped and per-call fields."""

    def format(self, record: logging.LogRecord) -> str:
        fields = dict(_scoped_fields.get())
        fields.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRS
        )
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return LogEntry(
            time=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            fields=fields,
        ).to_json()


class StructuredLogger:
    """
    Thin wrapper over `logging.Logger` taking fields as keyword arguments.

    Usage:
        logger = StructuredLogger("trustmesh.session")

        with logger.context(owner=resolver.owner):
            logger.info("Session created", session_id=session_id, security_level="high")

        loader_log = logger.with_extra(component="loader")
        loader_log.error("Store readiness check failed", attempts=16)
    """

    __slots__ = ("_logger", "_bound")

    def __init__(self, name: str, level: Optional[LogLevel] = None) -> None:
        self._logger = logging.getLogger(name)
        if level is not None:
            self._logger.setLevel(level.value)
        self._bound: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.ERROR, message, fields)

    def critical(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.CRITICAL, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """ERROR line carrying the traceback of the exception being handled."""
        self._emit(LogLevel.ERROR, message, fields, exc_info=True)

    def _emit(self, level: LogLevel, message: str, fields: dict[str, Any], exc_info: bool = False) -> None:
        self._logger.log(level.value, message, exc_info=exc_info, extra={**self._bound, **fields})

    def with_extra(self, **fields: Any) -> StructuredLogger:
        """Logger for the same name with `fields` on every line."""
        child = StructuredLogger(self._logger.name)
        child._logger = self._logger
        child._bound = {**self._bound, **fields}
        return child

    @staticmethod
    def context(**fields: Any) -> _FieldScope:
        return _FieldScope(fields)


class _FieldScope:
    """Binds fields to the current task's log lines until the block exits."""

    __slots__ = ("_fields", "_token")

    def __init__(self, fields: dict[str, Any]) -> None:
        self._fields = fields
        self._token = None

    def __enter__(self) -> _FieldScope:
        self._token = _scoped_fields.set({**_scoped_fields.get(), **self._fields})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _scoped_fields.reset(self._token)
            self._token = None


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install a single root handler.

    Args:
        level: Minimum level for the root logger and its handler.
        json_output: JSON lines when true, otherwise a plain text layout.
        stream: Destination; stderr by default.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level.value)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.value)
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
