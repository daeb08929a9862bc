"""Timing statistics: named watches accumulate count, total, max and min durations."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import TextIO

from objcore.loader import Package, register_package
from objcore.logger import logger
from objcore.obj import set_stats_watch_manager

NS_PER_MS = 1_000_000
NS_PER_S = 1_000_000_000


class ElementType(IntEnum):
    ACTION = 0
    TASK = 1
    TIMER = 2
    NET = 3
    COMMAND = 4
    MODULE = 5
    JOB = 6


@dataclass
class ProfileConfig(Package):
    """Profiling settings; slow_ms is the threshold for slow-span warnings."""

    slow_ms: int = 0

    def name(self) -> str:
        return "profile"

    def init(self) -> None:
        if self.slow_ms <= 0:
            self.slow_ms = 1000

    def close(self) -> None:
        pass


CONFIG = ProfileConfig()
register_package(CONFIG)


@dataclass
class TimeElement:
    """Accumulated timings of one name; ticks are nanoseconds unless converted."""

    name: str
    element_type: int
    times: int
    total_tick: int
    max_tick: int
    min_tick: int


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{rest:0{digits}d}".rstrip("0")


def format_duration(duration_ns: int) -> str:
    """Render nanoseconds like '1.5s', '250ms', '1m30s' or '1h0m0s'."""
    sign = "-" if duration_ns < 0 else ""
    value = abs(int(duration_ns))
    if value == 0:
        return "0s"
    if value < 1_000:
        return f"{sign}{value}ns"
    if value < NS_PER_MS:
        return f"{sign}{_fraction(value, 1_000)}µs"
    if value < NS_PER_S:
        return f"{sign}{_fraction(value, NS_PER_MS)}ms"
    seconds, rest = divmod(value, NS_PER_S)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    sec_text = _fraction(secs * NS_PER_S + rest, NS_PER_S)
    if hours:
        return f"{sign}{hours}h{minutes}m{sec_text}s"
    if minutes:
        return f"{sign}{minutes}m{sec_text}s"
    return f"{sign}{sec_text}s"


class TimeWatcher:
    """Measures one span from creation until stop(); usable as a context manager."""

    def __init__(self, manager: TimeStatisticManager, name: str, element_type: int) -> None:
        self.name = name
        self.element_type = element_type
        self._manager = manager
        self._start = time.perf_counter_ns()
        self._stopped = False

    def stop(self) -> None:
        """Record the elapsed time; later calls do nothing."""
        if self._stopped:
            return
        self._stopped = True
        elapsed = time.perf_counter_ns() - self._start
        self._manager.add_statistic(self.name, self.element_type, elapsed)

    def __enter__(self) -> TimeWatcher:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


class TimeStatisticManager:
    """Collects span durations by name."""

    def __init__(self, config: ProfileConfig | None = None) -> None:
        self._config = config if config is not None else CONFIG
        self._elements: dict[str, TimeElement] = {}
        self._lock = threading.Lock()

    def watch_start(self, name: str, element_type: int) -> TimeWatcher:
        return TimeWatcher(self, name, element_type)

    def add_statistic(self, name: str, element_type: int, duration_ns: int) -> None:
        """Add one span; warn when it is a new maximum at or above the slow threshold."""
        with self._lock:
            element = self._elements.get(name)
            if element is None:
                self._elements[name] = TimeElement(
                    name, element_type, 1, duration_ns, duration_ns, duration_ns
                )
                return
            element.times += 1
            element.total_tick += duration_ns
            element.min_tick = min(element.min_tick, duration_ns)
            if duration_ns <= element.max_tick:
                return
            element.max_tick = duration_ns
            slow_ms = self._config.slow_ms
            if not (slow_ms > 0 and duration_ns >= slow_ms * NS_PER_MS):
                return
            average = element.total_tick // element.times
        logger.warning(
            "###slow timespan name: %s  take:%s avg used:%s",
            name.lower(),
            format_duration(duration_ns),
            format_duration(average),
        )

    def get_stats(self) -> dict[str, TimeElement]:
        """Copies of all elements with ticks converted to milliseconds."""
        with self._lock:
            return {
                name: replace(
                    element,
                    total_tick=element.total_tick // NS_PER_MS,
                    min_tick=element.min_tick // NS_PER_MS,
                    max_tick=element.max_tick // NS_PER_MS,
                )
                for name, element in self._elements.items()
            }

    def dump(self, stream: TextIO) -> None:
        """Write a table of all elements."""
        with self._lock:
            elements = [replace(element) for element in self._elements.values()]
        stream.write(
            f"| {'name':<30}| {'times':<10} | {'used':<16} | {'max used':<16} "
            f"| {'min used':<16} | {'avg used':<16} |\n"
        )
        for element in elements:
            stream.write(
                f"| {element.name.lower():<30}| {element.times:< 10d} "
                f"| {format_duration(element.total_tick):<16} "
                f"| {format_duration(element.max_tick):<16} "
                f"| {format_duration(element.min_tick):<16} "
                f"| {format_duration(element.total_tick // element.times):<16} |\n"
            )


TIME_STATISTIC_MANAGER = TimeStatisticManager()
set_stats_watch_manager(TIME_STATISTIC_MANAGER)


def get_stats() -> dict[str, TimeElement]:
    """Statistics of the shared manager, in milliseconds."""
    return TIME_STATISTIC_MANAGER.get_stats()