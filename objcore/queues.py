"""FIFO queues: a bounded blocking queue and an unbounded non-blocking one."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Any


class Queue(ABC):
    """Common interface of the queues; timeouts are in seconds."""

    @abstractmethod
    def enqueue(self, item: Any, timeout: float = 0) -> bool:
        """Add an item; return False if it could not be added in time."""

    @abstractmethod
    def dequeue(self, timeout: float = 0) -> tuple[Any, bool]:
        """Remove an item; return (item, True) or (None, False)."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of queued items."""


class ChannelQueue(Queue):
    """Bounded queue; operations block, optionally up to a timeout."""

    def __init__(self, backlog: int) -> None:
        if backlog < 0:
            raise ValueError("backlog must not be negative")
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=max(backlog, 1))

    def enqueue(self, item: Any, timeout: float = 0) -> bool:
        if timeout > 0:
            try:
                self._queue.put(item, timeout=timeout)
            except queue.Full:
                return False
        else:
            self._queue.put(item)
        return True

    def dequeue(self, timeout: float = 0) -> tuple[Any, bool]:
        if timeout > 0:
            try:
                return self._queue.get(timeout=timeout), True
            except queue.Empty:
                return None, False
        return self._queue.get(), True

    def __len__(self) -> int:
        return self._queue.qsize()


class SyncQueue(Queue):
    """Unbounded lock-guarded queue; never blocks and ignores timeouts."""

    def __init__(self) -> None:
        self._fifo: deque[Any] = deque()
        self._lock = threading.Lock()

    def enqueue(self, item: Any, timeout: float = 0) -> bool:
        with self._lock:
            self._fifo.append(item)
        return True

    def dequeue(self, timeout: float = 0) -> tuple[Any, bool]:
        with self._lock:
            if not self._fifo:
                return None, False
            return self._fifo.popleft(), True

    def __len__(self) -> int:
        with self._lock:
            return len(self._fifo)