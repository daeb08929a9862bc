"""Object recyclers: pools that reuse objects and drop ones idle too long."""

from __future__ import annotations

import io
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, TextIO

RECYCLER_BACKLOG_DEFAULT = 5
BYTEBUF_RECYCLER_BACKLOG = 128
IDLE_TIMEOUT = 60.0


class RecyclerManager:
    """Tracks live recyclers."""

    def __init__(self) -> None:
        self._recyclers: dict[int, Recycler] = {}
        self._lock = threading.Lock()

    def register(self, recycler: Recycler) -> None:
        with self._lock:
            self._recyclers[id(recycler)] = recycler

    def unregister(self, recycler: Recycler) -> None:
        with self._lock:
            self._recyclers.pop(id(recycler), None)

    def close_all(self) -> None:
        with self._lock:
            recyclers = list(self._recyclers.values())
        for recycler in recyclers:
            recycler.close()

    def dump(self, stream: TextIO) -> None:
        """Write the number of objects each recycler has made."""
        with self._lock:
            recyclers = list(self._recyclers.values())
        for recycler in recyclers:
            stream.write(f"({recycler.name}) alloc object ({recycler.created})")


RECYCLER_MANAGER = RecyclerManager()


@dataclass
class _Idle:
    since: float
    item: Any


class Recycler:
    """A pool of reusable objects made on demand by a factory.

    Given-back objects are handed out most recent first; objects idle for
    longer than idle_timeout seconds are dropped.
    """

    def __init__(
        self,
        backlog: int,
        factory: Callable[[], Any],
        name: str,
        *,
        manager: RecyclerManager | None = None,
        idle_timeout: float = IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if backlog < 0:
            raise ValueError("backlog must not be negative")
        self.backlog = backlog
        self.name = name
        self._factory = factory
        self._idle: deque[_Idle] = deque()
        self._created = 0
        self._running = True
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._manager = manager if manager is not None else RECYCLER_MANAGER
        self._manager.register(self)

    @property
    def created(self) -> int:
        """Objects made by the factory and not yet expired."""
        return self._created

    def _check_running(self) -> None:
        if not self._running:
            raise RuntimeError(f"recycler {self.name!r} is closed")

    def _expire(self) -> None:
        now = self._clock()
        kept = deque(e for e in self._idle if now - e.since <= self._idle_timeout)
        self._created -= len(self._idle) - len(kept)
        self._idle = kept

    def get(self) -> Any:
        """Return a pooled object, making a new one when none is idle."""
        with self._lock:
            self._check_running()
            self._expire()
            if self._idle:
                return self._idle.popleft().item
            self._created += 1
        return self._factory()

    def give(self, item: Any) -> None:
        """Return an object to the pool."""
        with self._lock:
            self._check_running()
            self._expire()
            self._idle.appendleft(_Idle(self._clock(), item))

    def close(self) -> None:
        """Stop the recycler and unregister it."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._idle.clear()
        self._manager.unregister(self)


BYTEBUF_RECYCLER = Recycler(BYTEBUF_RECYCLER_BACKLOG, io.BytesIO, "bytebuf_recycler")


def alloc_bytebuf() -> io.BytesIO:
    """Take an empty byte buffer from the shared recycler."""
    buf = BYTEBUF_RECYCLER.get()
    buf.seek(0)
    buf.truncate()
    return buf


def free_bytebuf(buf: io.BytesIO) -> None:
    """Give a byte buffer back to the shared recycler."""
    BYTEBUF_RECYCLER.give(buf)