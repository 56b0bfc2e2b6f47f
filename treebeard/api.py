"""Module-level entry points that are silent no-ops until ``TreebeardCore.init``."""

from __future__ import annotations

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional

from .caller import CallerInfo, get_caller_info
from .core import TreebeardCore
from .models import LogLevel

logger = logging.getLogger(__name__)


class Log:
    def _emit(
        self, level: LogLevel, message: str, metadata: Optional[Mapping[str, Any]], caller: CallerInfo
    ) -> None:
        instance = TreebeardCore.get_instance()
        if instance is not None:
            instance.log(level, message, metadata or {}, caller)

    def trace(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(LogLevel.TRACE, message, metadata, get_caller_info(1))

    def debug(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(LogLevel.DEBUG, message, metadata, get_caller_info(1))

    def info(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(LogLevel.INFO, message, metadata, get_caller_info(1))

    def warn(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(LogLevel.WARN, message, metadata, get_caller_info(1))

    def error(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(LogLevel.ERROR, message, metadata, get_caller_info(1))

    def fatal(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(LogLevel.FATAL, message, metadata, get_caller_info(1))

    def exception(self, message: str, error: Any, metadata: Optional[Mapping[str, Any]] = None) -> None:
        instance = TreebeardCore.get_instance()
        if instance is not None:
            instance.log_error(message, error, metadata)


log = Log()


def register(obj: Any = None) -> None:
    instance = TreebeardCore.get_instance()
    if instance is not None:
        instance.register(obj)


def flush() -> bool:
    """Flush synchronously, waiting until the batch is delivered or dropped after its retries."""
    instance = TreebeardCore.get_instance()
    if instance is None:
        return False
    config = instance.config
    timeout = config.request_timeout * (config.max_retries + 1) + config.retry_backoff_max * config.max_retries
    try:
        return instance.flush().result(timeout=timeout)
    except FutureTimeoutError:
        logger.warning("flush still in progress after %.1fs", timeout)
        return False
