from .api import flush, log, register
from .caller import CallerInfo, get_caller_info
from .config import TreebeardConfig
from .context import TraceContext, TreebeardContext
from .core import TreebeardCore
from .errors import (
    ConfigurationError,
    DeliveryError,
    OrphanedTraceCompletion,
    TreebeardError,
    UnknownCallerLocation,
)
from .fastapi_integration import TreebeardMiddleware, setup_observability
from .ingest_service import IngestService
from .models import LogEntry, LogLevel, RegisteredObject, TraceRecord
from .runtime import RuntimeEnvironment, detect_runtime
from .version import __version__

__all__ = [
    "CallerInfo",
    "ConfigurationError",
    "DeliveryError",
    "IngestService",
    "LogEntry",
    "LogLevel",
    "OrphanedTraceCompletion",
    "RegisteredObject",
    "RuntimeEnvironment",
    "TraceContext",
    "TraceRecord",
    "TreebeardConfig",
    "TreebeardContext",
    "TreebeardCore",
    "TreebeardError",
    "TreebeardMiddleware",
    "UnknownCallerLocation",
    "__version__",
    "detect_runtime",
    "flush",
    "get_caller_info",
    "log",
    "register",
    "setup_observability",
]
