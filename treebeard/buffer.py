from __future__ import annotations

import threading
from typing import List, Optional, Union

from .models import LogEntry, RegisteredObject

BufferItem = Union[LogEntry, RegisteredObject]


class Buffer:
    """Ordered pending entries shared by every appender and the flush paths.

    ``append`` and ``drain`` hold the same lock: a drain takes the current
    list and installs a fresh one, so the earmarked snapshot is never touched
    again.
    """

    def __init__(self, batch_size: int) -> None:
        self.batch_size = batch_size
        self._items: List[BufferItem] = []
        self._lock = threading.Lock()

    def append(self, item: BufferItem, *, drain_when_full: bool = True) -> Optional[List[BufferItem]]:
        """Append ``item``; returns the drained batch when it filled the buffer."""
        with self._lock:
            self._items.append(item)
            if not drain_when_full or len(self._items) < self.batch_size:
                return None
            batch, self._items = self._items, []
            return batch

    def drain(self) -> List[BufferItem]:
        with self._lock:
            batch, self._items = self._items, []
            return batch

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
