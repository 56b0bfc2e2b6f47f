from __future__ import annotations

import asyncio
import logging
import threading
import traceback
from collections import OrderedDict, deque
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator, Mapping, Optional, Tuple, Union

from .buffer import Buffer, BufferItem
from .caller import CallerInfo, get_caller_info
from .config import TreebeardConfig
from .context import TraceContext, TreebeardContext
from .environment import get_commit_sha
from .errors import ConfigurationError, OrphanedTraceCompletion
from .exporter import BatchService, ExportStats, LogExporter
from .handler import TreebeardHandler
from .hooks import LifecycleHooks
from .ingest_service import IngestService
from .models import ExceptionInfo, LogEntry, LogLevel, TraceRecord
from .registry import normalize
from .runtime import detect_runtime
from .utils import epoch_millis

logger = logging.getLogger(__name__)

MAX_ORPHANED_COMPLETIONS = 100
MAX_OPEN_TRACES = 1000


class TreebeardCore:
    """Process-wide telemetry client: buffers entries and ships them in batches.

    Obtain it through ``TreebeardCore.init``; direct construction skips the
    initialize-once guard and is meant for tests that inject a fake service.
    Every method except ``init`` swallows its own failures and reports them
    through ``logging``.
    """

    _instance: Optional["TreebeardCore"] = None
    _instance_lock = threading.Lock()

    def __init__(self, config: TreebeardConfig, *, service: Optional[BatchService] = None) -> None:
        self.config = config
        self.runtime = detect_runtime()
        self.buffer = Buffer(config.batch_size)
        self.service = service or IngestService(
            config.endpoint, config.api_key, timeout=config.request_timeout
        )
        self.exporter = LogExporter(config, self.service, self.buffer.drain)
        self.orphaned_completions: Deque[OrphanedTraceCompletion] = deque(maxlen=MAX_ORPHANED_COMPLETIONS)
        self._traces: "OrderedDict[Tuple[str, Optional[str]], TraceRecord]" = OrderedDict()
        self._traces_lock = threading.Lock()
        self._shutdown_lock = threading.RLock()
        self._closing = False
        self._is_shut_down = False
        self._hooks = LifecycleHooks(self, self.runtime)
        self._console_handler: Optional[TreebeardHandler] = None

        self.exporter.start()
        self._hooks.install(capture_unhandled=config.capture_unhandled)
        if config.capture_console:
            self._console_handler = TreebeardHandler(self)
            logging.getLogger().addHandler(self._console_handler)

    # -- lifecycle ---------------------------------------------------------

    @classmethod
    def init(
        cls,
        config: Union[TreebeardConfig, Mapping[str, Any], None] = None,
        *,
        service: Optional[BatchService] = None,
        **options: Any,
    ) -> "TreebeardCore":
        """Create the process-wide instance, or return the existing one.

        ``config`` may be a ``TreebeardConfig``, a mapping of option names, or
        omitted to read ``TREEBEARD_*`` environment variables. Raises
        ``ConfigurationError`` for unusable configuration.
        """
        with cls._instance_lock:
            if cls._instance is not None:
                logger.debug("treebeard already initialized; keeping the existing instance")
                return cls._instance

            resolved = cls._resolve_config(config, options)
            cls._instance = cls(resolved, service=service)
            return cls._instance

    @staticmethod
    def _resolve_config(
        config: Union[TreebeardConfig, Mapping[str, Any], None], options: Dict[str, Any]
    ) -> TreebeardConfig:
        if isinstance(config, TreebeardConfig):
            if options:
                raise ConfigurationError("pass either a TreebeardConfig or keyword options, not both")
            return config.with_env_defaults()
        if config is None:
            return TreebeardConfig.from_env(**options)
        if isinstance(config, Mapping):
            return TreebeardConfig.from_mapping({**config, **options}).with_env_defaults()
        raise ConfigurationError(f"unsupported configuration type: {type(config).__name__}")

    @classmethod
    def get_instance(cls) -> Optional["TreebeardCore"]:
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Shut down and forget the process-wide instance (test isolation)."""
        with cls._instance_lock:
            instance, cls._instance = cls._instance, None
        if instance is not None:
            instance.shutdown()

    @property
    def is_shut_down(self) -> bool:
        return self._is_shut_down

    @property
    def stats(self) -> ExportStats:
        return self.exporter.stats

    def shutdown(self) -> None:
        """Deliver everything pending, then release hooks. Safe to call repeatedly.

        A second caller waits at most ``shutdown_timeout`` for a shutdown that
        is already running on another thread.
        """
        if not self._shutdown_lock.acquire(timeout=self.config.shutdown_timeout):
            logger.warning("shutdown already in progress on another thread; not waiting for it")
            return
        try:
            if self._closing:
                return
            self._closing = True
            try:
                final = self.flush()
                self.exporter.stop()
                self.exporter.join(timeout=self.config.shutdown_timeout)
                if self.exporter.is_alive() or not final.done():
                    logger.warning(
                        "final flush did not finish within %.1fs; pending entries may be lost",
                        self.config.shutdown_timeout,
                    )
            except Exception:
                logger.exception("error during treebeard shutdown")
            finally:
                self._is_shut_down = True
                self._hooks.uninstall()
                if self._console_handler is not None:
                    logging.getLogger().removeHandler(self._console_handler)
                    self._console_handler = None
        finally:
            self._shutdown_lock.release()

    # -- buffering and delivery --------------------------------------------

    def flush(self) -> "Future[bool]":
        """Send everything buffered so far; the future resolves once delivery settles."""
        if self._is_shut_down:
            done: "Future[bool]" = Future()
            done.set_result(False)
            return done
        try:
            return self.exporter.submit(self.buffer.drain())
        except Exception:
            logger.exception("treebeard flush failed")
            failed: "Future[bool]" = Future()
            failed.set_result(False)
            return failed

    async def flush_async(self) -> bool:
        return await asyncio.wrap_future(self.flush())

    def _append(self, item: BufferItem) -> None:
        # after shutdown entries stay buffered; nothing ships them any more
        batch = self.buffer.append(item, drain_when_full=not self._is_shut_down)
        if batch is not None:
            self.exporter.submit(batch)

    # -- logging -----------------------------------------------------------

    def log(
        self,
        level: Union[LogLevel, str],
        message: str,
        metadata: Optional[Mapping[str, Any]] = None,
        caller_info: Optional[CallerInfo] = None,
        *,
        source: Optional[str] = None,
        exception: Optional[ExceptionInfo] = None,
        trace_id: Optional[str] = None,
        span_id: Optional[str] = None,
    ) -> None:
        try:
            caller_info = caller_info or get_caller_info(1)
            try:
                level = LogLevel.coerce(level)
            except ValueError:
                logger.warning("unknown log level %r; recording as info", level)
                level = LogLevel.INFO

            context = TreebeardContext.get_store()
            props: Dict[str, Any] = {}
            if context is not None:
                props.update(context.attributes)
                if context.request_id:
                    props.setdefault("request_id", context.request_id)
                if trace_id is None:
                    trace_id, span_id = context.trace_id, context.span_id
            if metadata:
                props.update(metadata)
            user_source = props.pop("source", None)
            if source is None:
                source = str(user_source) if user_source is not None else "treebeard-python"

            entry = LogEntry(
                level=level,
                message=str(message),
                metadata=props,
                timestamp=epoch_millis(),
                caller=caller_info,
                trace_id=trace_id,
                span_id=span_id,
                source=source,
                exception=exception,
            )
            self._append(entry)
        except Exception:
            logger.exception("failed to buffer log entry")

    def log_error(
        self,
        message: str,
        error: Any,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.log(LogLevel.ERROR, message, metadata, get_caller_info(1), exception=_exception_info(error))

    def trace(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.TRACE, message, metadata, get_caller_info(1))

    def debug(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.DEBUG, message, metadata, get_caller_info(1))

    def info(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.INFO, message, metadata, get_caller_info(1))

    def warn(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.WARN, message, metadata, get_caller_info(1))

    def error(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.ERROR, message, metadata, get_caller_info(1))

    def fatal(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.log(LogLevel.FATAL, message, metadata, get_caller_info(1))

    # -- objects -----------------------------------------------------------

    def register(self, obj: Any) -> None:
        try:
            objects = normalize(obj)
        except Exception:
            logger.exception("failed to normalize registered object")
            return

        for registered in objects:
            self._append(registered)
            TreebeardContext.set(f"{registered.name}_id", registered.id)

    # -- traces ------------------------------------------------------------

    def start_trace(
        self,
        trace_id: str,
        span_id: Optional[str],
        name: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            record = TraceRecord(trace_id=trace_id, span_id=span_id, name=name, metadata=dict(metadata or {}))
            evicted = None
            with self._traces_lock:
                self._traces[record.key] = record
                self._traces.move_to_end(record.key)
                if len(self._traces) > MAX_OPEN_TRACES:
                    _, evicted = self._traces.popitem(last=False)
            if evicted is not None:
                logger.warning(
                    "more than %d open traces; dropping the oldest (%s, started without completion)",
                    MAX_OPEN_TRACES,
                    evicted.name,
                )

            props: Dict[str, Any] = dict(record.metadata)
            props.update({"_traceStart": True, "traceName": name})
            commit_sha = get_commit_sha()
            if commit_sha:
                props.setdefault("commit_sha", commit_sha)
            self._log_for_trace(LogLevel.INFO, f"Starting trace: {name}", props, trace_id, span_id)
        except Exception:
            logger.exception("failed to start trace %s", name)

    def complete_trace(
        self,
        trace_id: str,
        span_id: Optional[str],
        success: bool = True,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            with self._traces_lock:
                record = self._traces.pop((trace_id, span_id), None)

            if record is None:
                orphan = OrphanedTraceCompletion(trace_id, span_id, success)
                self.orphaned_completions.append(orphan)
                logger.warning("%s", orphan)
                props = dict(metadata or {})
                props.update({"_traceEnd": True, "orphaned": True, "success": success})
                self._log_for_trace(LogLevel.WARN, "Orphaned trace completion", props, trace_id, span_id)
                return

            record.close(success)
            props = dict(metadata or {})
            props.update(
                {
                    "_traceEnd": True,
                    "traceName": record.name,
                    "success": success,
                    "duration_ms": record.duration_ms,
                }
            )
            if success:
                self._log_for_trace(LogLevel.INFO, f"Completed trace: {record.name}", props, trace_id, span_id)
            else:
                self._log_for_trace(LogLevel.ERROR, f"Failed trace: {record.name}", props, trace_id, span_id)
        except Exception:
            logger.exception("failed to complete trace %s", trace_id)

    def open_traces(self) -> int:
        with self._traces_lock:
            return len(self._traces)

    def _log_for_trace(
        self,
        level: LogLevel,
        message: str,
        props: Dict[str, Any],
        trace_id: str,
        span_id: Optional[str],
    ) -> None:
        self.log(level, message, props, get_caller_info(2), trace_id=trace_id, span_id=span_id)

    @contextmanager
    def capture_trace(self, name: str, metadata: Optional[Mapping[str, Any]] = None) -> Iterator[TraceContext]:
        """Run the block as a span of the active trace, or as a new trace."""
        parent = TreebeardContext.get_store()
        context = parent.child(name) if parent is not None else TreebeardContext.new_context(name)
        with TreebeardContext.scope(context):
            self.start_trace(context.trace_id, context.span_id, name, metadata)
            try:
                yield context
            except Exception as exc:
                self.log_error(f"Error in trace: {name}", exc)
                self.complete_trace(context.trace_id, context.span_id, success=False)
                raise
            self.complete_trace(context.trace_id, context.span_id, success=True)


def _exception_info(error: Any) -> ExceptionInfo:
    if isinstance(error, BaseException):
        return ExceptionInfo(
            name=type(error).__name__,
            message=str(error),
            stack="".join(traceback.format_exception(type(error), error, error.__traceback__)),
        )
    if isinstance(error, Mapping):
        return ExceptionInfo(
            name=str(error.get("name", "Error")),
            message=str(error.get("message", error)),
            stack=str(error.get("stack", "")),
        )
    return ExceptionInfo(name=type(error).__name__, message=str(error))
