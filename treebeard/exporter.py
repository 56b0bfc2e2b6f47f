import asyncio
import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from .buffer import BufferItem
from .config import TreebeardConfig
from .environment import get_commit_sha
from .errors import DeliveryError
from .models import LogEntry, RegisteredObject
from .utils import dumps, get_host_name
from .version import __version__

logger = logging.getLogger(__name__)

_STOP = object()

EXPORTER_THREAD_NAME = "treebeard-exporter"


class BatchService(Protocol):
    def send_batch(self, payload: Dict[str, Any]) -> Awaitable[None]: ...


@dataclass(slots=True)
class ExportStats:
    delivered_batches: int = 0
    delivered_entries: int = 0
    dropped_batches: int = 0
    dropped_entries: int = 0
    last_error: Optional[str] = None


class LogExporter(threading.Thread):
    """Ships drained batches off the caller's thread.

    Batches arrive through ``submit`` (size threshold, explicit flush,
    shutdown); the periodic flush pulls from ``drain`` every
    ``flush_interval``. Each batch is delivered once, retried with capped
    exponential backoff, and dropped with a diagnostic after the last retry.
    """

    def __init__(
        self,
        config: TreebeardConfig,
        service: BatchService,
        drain: Callable[[], List[BufferItem]],
    ) -> None:
        super().__init__(name=EXPORTER_THREAD_NAME, daemon=True)
        self.config = config
        self.stats = ExportStats()
        self._service = service
        self._drain = drain
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._stop_event = threading.Event()
        self._submit_lock = threading.Lock()
        self._host_name = get_host_name()
        self._commit_sha = get_commit_sha()
        self._warned_console_fallback = False

    def submit(self, batch: List[BufferItem]) -> "Future[bool]":
        future: "Future[bool]" = Future()
        if not batch:
            future.set_result(True)
            return future
        with self._submit_lock:
            if self._stop_event.is_set():
                logger.warning("exporter stopped; %d entries not sent", len(batch))
                future.set_result(False)
                return future
            self._queue.put((batch, future))
        return future

    def run(self) -> None:
        last_tick = time.monotonic()

        while True:
            timeout = max(self.config.flush_interval - (time.monotonic() - last_tick), 0.05)
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                item = None

            if item is _STOP:
                break
            if item is not None:
                batch, future = item
                self._deliver(batch, future)

            if (time.monotonic() - last_tick) >= self.config.flush_interval:
                due = self._drain()
                if due:
                    self._deliver(due, Future())
                last_tick = time.monotonic()

    def stop(self) -> None:
        with self._submit_lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            self._queue.put(_STOP)

    def _deliver(self, batch: List[BufferItem], future: "Future[bool]") -> None:
        try:
            delivered = self._export(batch)
        except Exception:
            logger.exception("unexpected error exporting %d entries", len(batch))
            self._record_drop(batch, "unexpected export error")
            delivered = False
        if not future.done():
            future.set_result(delivered)

    def _export(self, batch: List[BufferItem]) -> bool:
        payload = self.build_payload(batch)

        if not self.config.api_key:
            if self.config.enable_console_fallback:
                if not self._warned_console_fallback:
                    logger.warning("no api_key configured; batches are written to stdout")
                    self._warned_console_fallback = True
                print(f"[treebeard] {dumps(payload)}")
            self._record_delivery(batch)
            return True

        attempt = 0
        while True:
            try:
                asyncio.run(self._service.send_batch(payload))
            except Exception as exc:
                error = exc if isinstance(exc, DeliveryError) else DeliveryError(str(exc))
                if attempt >= self.config.max_retries:
                    logger.error(
                        "dropping batch of %d entries after %d attempts: %s",
                        len(batch),
                        attempt + 1,
                        error,
                    )
                    self._record_drop(batch, str(error))
                    return False
                delay = self.backoff(attempt)
                logger.warning("delivery attempt %d failed (%s); retrying in %.2fs", attempt + 1, error, delay)
                time.sleep(delay)
                attempt += 1
            else:
                self._record_delivery(batch)
                return True

    def backoff(self, attempt: int) -> float:
        return min(self.config.retry_backoff * (2 ** attempt), self.config.retry_backoff_max)

    def build_payload(self, batch: List[BufferItem]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "logs": [item.to_payload() for item in batch if isinstance(item, LogEntry)],
            "objects": [item.to_payload() for item in batch if isinstance(item, RegisteredObject)],
            "project_name": self.config.project_name,
            "sdk_version": __version__,
            "host_name": self._host_name,
        }
        if self._commit_sha:
            payload["commit_sha"] = self._commit_sha
        return payload

    def _record_delivery(self, batch: List[BufferItem]) -> None:
        self.stats.delivered_batches += 1
        self.stats.delivered_entries += len(batch)

    def _record_drop(self, batch: List[BufferItem], reason: str) -> None:
        self.stats.dropped_batches += 1
        self.stats.dropped_entries += len(batch)
        self.stats.last_error = reason
