"""Thread-safe list and map containers."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable


class SynchronizedList:
    """A double-ended list guarded by a lock."""

    def __init__(self) -> None:
        self._items: deque[Any] = deque()
        self._lock = threading.Lock()

    def push_front(self, value: Any) -> None:
        with self._lock:
            self._items.appendleft(value)

    def pop_front(self) -> Any:
        """Remove and return the first value, or None when empty."""
        with self._lock:
            return self._items.popleft() if self._items else None

    def push_back(self, value: Any) -> None:
        with self._lock:
            self._items.append(value)

    def pop_back(self) -> Any:
        """Remove and return the last value, or None when empty."""
        with self._lock:
            return self._items.pop() if self._items else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SynchronizedMap:
    """A dictionary guarded by a lock."""

    def __init__(self) -> None:
        self._data: dict[Any, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: Any) -> Any:
        """Return the value for key, or None when absent."""
        with self._lock:
            return self._data.get(key)

    def set(self, key: Any, value: Any) -> bool:
        """Map key to value; return False if that exact mapping already exists."""
        with self._lock:
            if key in self._data:
                existing = self._data[key]
                if existing is value or existing == value:
                    return False
            self._data[key] = value
            return True

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: Any) -> None:
        with self._lock:
            self._data.pop(key, None)

    def items(self) -> dict[Any, Any]:
        """Return a snapshot copy of the contents."""
        with self._lock:
            return dict(self._data)

    def foreach(self, callback: Callable[[Any, Any], None]) -> None:
        """Call callback(key, value) for every entry while holding the lock."""
        with self._lock:
            for key, value in list(self._data.items()):
                callback(key, value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)