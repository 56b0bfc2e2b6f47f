from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING, Any, Dict

from .caller import CallerInfo
from .exporter import EXPORTER_THREAD_NAME
from .models import ExceptionInfo, LogLevel

if TYPE_CHECKING:
    from .core import TreebeardCore

# LogRecord attributes that are not user-supplied ``extra`` values
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


def level_for(levelno: int) -> LogLevel:
    if levelno >= logging.CRITICAL:
        return LogLevel.FATAL
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    if levelno >= logging.INFO:
        return LogLevel.INFO
    if levelno >= logging.DEBUG:
        return LogLevel.DEBUG
    return LogLevel.TRACE


# the client itself plus the HTTP stack it delivers through
_IGNORED_LOGGERS = ("treebeard", "httpx", "httpcore")


def _is_ignored(record: logging.LogRecord) -> bool:
    if record.threadName == EXPORTER_THREAD_NAME:
        return True
    return any(record.name == name or record.name.startswith(name + ".") for name in _IGNORED_LOGGERS)


class TreebeardHandler(logging.Handler):
    """Forwards standard ``logging`` records into the treebeard buffer.

    Records emitted while delivering are skipped so delivery never feeds the
    buffer it drains: the ``treebeard`` and HTTP client loggers, and anything
    logged on the exporter thread.
    """

    def __init__(self, core: "TreebeardCore", level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._core = core

    def emit(self, record: logging.LogRecord) -> None:
        if _is_ignored(record):
            return
        try:
            metadata: Dict[str, Any] = {"logger": record.name}
            for key, value in record.__dict__.items():
                if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(value, (str, int, float, bool)):
                    metadata[key] = value

            exception = None
            if record.exc_info and record.exc_info[1] is not None:
                exc_type, exc_value, exc_tb = record.exc_info
                exception = ExceptionInfo(
                    name=exc_type.__name__ if exc_type else type(exc_value).__name__,
                    message=str(exc_value),
                    stack="".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
                )

            self._core.log(
                level_for(record.levelno),
                record.getMessage(),
                metadata,
                CallerInfo(file=record.pathname, line=record.lineno, function=record.funcName or "anonymous"),
                source="logging",
                exception=exception,
            )
        except Exception:
            self.handleError(record)
