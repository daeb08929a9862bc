"""A condition built on a bounded token queue: signals are kept until a waiter takes them."""

from __future__ import annotations

import queue
import threading


class Cond:
    """Wake-up primitive holding up to `waiters` pending signals.

    A signal sent while nobody waits is kept, provided there is room for it,
    so the next wait returns at once. Signals beyond that capacity are dropped.
    """

    def __init__(self, waiters: int = 1) -> None:
        if waiters < 1:
            raise ValueError("waiters must be at least 1")
        self._notify: queue.Queue[None] = queue.Queue(maxsize=waiters)
        self._waiting = 0
        self._lock = threading.Lock()

    @property
    def waiting(self) -> int:
        """Number of threads currently blocked in a wait."""
        with self._lock:
            return self._waiting

    def _enter(self) -> None:
        with self._lock:
            self._waiting += 1

    def _leave(self) -> None:
        with self._lock:
            self._waiting -= 1

    def wait(self) -> None:
        """Block until a signal arrives."""
        self._enter()
        try:
            self._notify.get()
        finally:
            self._leave()

    def wait_for_timeout(self, duration: float) -> bool:
        """Wait up to duration seconds; return True on timeout, False when signalled."""
        self._enter()
        try:
            if duration <= 0:
                self._notify.get_nowait()
            else:
                self._notify.get(timeout=duration)
        except queue.Empty:
            return True
        finally:
            self._leave()
        return False

    def signal(self) -> None:
        """Store one signal unless the buffer is already full."""
        try:
            self._notify.put_nowait(None)
        except queue.Full:
            pass

    def drain(self) -> None:
        """Discard all pending signals."""
        while True:
            try:
                self._notify.get_nowait()
            except queue.Empty:
                return

    def broadcast(self) -> None:
        """Keep signalling while any thread is waiting."""
        while self.waiting > 0:
            try:
                self._notify.put(None, timeout=0.01)
            except queue.Full:
                continue