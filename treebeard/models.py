from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .caller import CallerInfo
from .utils import epoch_millis


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @classmethod
    def coerce(cls, value: Union["LogLevel", str]) -> "LogLevel":
        if isinstance(value, cls):
            return value
        normalized = str(value).lower()
        if normalized == "warning":
            return cls.WARN
        if normalized == "critical":
            return cls.FATAL
        return cls(normalized)


@dataclass(frozen=True, slots=True)
class ExceptionInfo:
    name: str
    message: str
    stack: str = ""


@dataclass(frozen=True, slots=True)
class LogEntry:
    level: LogLevel
    message: str
    metadata: Dict[str, Any]
    timestamp: int
    caller: CallerInfo
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    source: str = "treebeard-python"
    exception: Optional[ExceptionInfo] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "msg": self.message,
            "lvl": self.level.value,
            "ts": self.timestamp,
            "tid": self.trace_id,
            "sid": self.span_id,
            "src": self.source,
            "props": self.metadata or None,
        }
        payload.update(self.caller.to_payload())
        if self.exception is not None:
            payload["ext"] = self.exception.name
            payload["exv"] = self.exception.message
            payload["tb"] = self.exception.stack or None
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True, slots=True)
class RegisteredObject:
    name: str
    id: str
    fields: Dict[str, Any]
    timestamp: int = field(default_factory=epoch_millis)

    def to_payload(self) -> Dict[str, Any]:
        return {"name": self.name, "id": self.id, "fields": dict(self.fields), "ts": self.timestamp}


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    span_id: Optional[str]
    name: str
    started_at: float = field(default_factory=time.monotonic)
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: Optional[bool] = None
    duration_ms: Optional[float] = None

    @property
    def key(self) -> tuple:
        return (self.trace_id, self.span_id)

    def close(self, success: bool) -> "TraceRecord":
        self.success = success
        self.duration_ms = round((time.monotonic() - self.started_at) * 1000, 2)
        return self