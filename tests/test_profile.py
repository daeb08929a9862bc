import io
import logging
import time

import pytest

from objcore.obj import Object
from objcore.profile import (
    ElementType,
    ProfileConfig,
    TimeStatisticManager,
    format_duration,
    get_stats,
)
from objcore.logger import logger


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    handler = _ListHandler()
    old_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(old_level)


def test_element_types_follow_source_order():
    manager = TimeStatisticManager(ProfileConfig())
    manager.add_statistic("first", ElementType(0), 1_000_000)
    manager.add_statistic("module", ElementType(5), 1_000_000)
    stats = manager.get_stats()
    assert stats["first"].element_type is ElementType.ACTION
    assert stats["module"].element_type is ElementType.MODULE
    assert len(ElementType) == 7


def test_profile_config_defaults_slow_ms():
    config = ProfileConfig()
    assert config.name() == "profile"
    config.init()
    assert config.slow_ms == 1000
    config = ProfileConfig(slow_ms=25)
    config.init()
    assert config.slow_ms == 25


@pytest.mark.parametrize(
    "ns, text",
    [(0, "0s"), (1_500_000_000, "1.5s"), (3600 * 1_000_000_000, "1h0m0s")],
)
def test_format_duration_pinned(ns, text):
    assert format_duration(ns) == text


def test_format_duration_units():
    assert format_duration(500).endswith("ns")
    assert format_duration(2_000).endswith("µs")
    assert format_duration(2_000_000).endswith("ms")
    assert format_duration(-2_000_000) == "-" + format_duration(2_000_000)
    assert "m" in format_duration(90 * 1_000_000_000)


def test_add_statistic_accumulates():
    manager = TimeStatisticManager(ProfileConfig())
    manager.add_statistic("job", ElementType.JOB, 2_000_000)
    manager.add_statistic("job", ElementType.JOB, 4_000_000)
    manager.add_statistic("job", ElementType.JOB, 3_000_000)
    element = manager.get_stats()["job"]
    assert element.times == 3
    assert element.max_tick == 4
    assert element.min_tick == 2
    assert element.total_tick == 9
    assert element.element_type == ElementType.JOB


def test_get_stats_returns_copies():
    manager = TimeStatisticManager(ProfileConfig())
    manager.add_statistic("a", ElementType.TASK, 5_000_000)
    first = manager.get_stats()["a"]
    first.times = 99
    assert manager.get_stats()["a"].times == 1


def test_watcher_context_manager_records_once():
    manager = TimeStatisticManager(ProfileConfig())
    with manager.watch_start("span", ElementType.TASK) as watch:
        time.sleep(0.002)
    watch.stop()
    element = manager.get_stats()["span"]
    assert element.times == 1
    assert element.element_type == ElementType.TASK
    assert element.max_tick >= 1


def test_slow_warning_only_on_new_max(captured):
    manager = TimeStatisticManager(ProfileConfig(slow_ms=1))
    manager.add_statistic("Slow", ElementType.NET, 10_000_000)
    assert not [r for r in captured if "slow timespan" in r.getMessage()]
    manager.add_statistic("Slow", ElementType.NET, 20_000_000)
    warnings = [r for r in captured if "slow timespan" in r.getMessage()]
    assert len(warnings) == 1
    assert "name: slow" in warnings[0].getMessage()
    manager.add_statistic("Slow", ElementType.NET, 15_000_000)
    assert len([r for r in captured if "slow timespan" in r.getMessage()]) == 1


def test_no_warning_when_threshold_disabled(captured):
    manager = TimeStatisticManager(ProfileConfig(slow_ms=0))
    manager.add_statistic("x", ElementType.NET, 1)
    manager.add_statistic("x", ElementType.NET, 10**12)
    assert not [r for r in captured if "slow timespan" in r.getMessage()]
    element = manager.get_stats()["x"]
    assert element.times == 2
    assert element.max_tick == 10**12 // 1_000_000
    assert element.min_tick == 0


def test_dump_writes_header_and_rows():
    manager = TimeStatisticManager(ProfileConfig())
    manager.add_statistic("First/Name", ElementType.ACTION, 1_500_000_000)
    manager.add_statistic("second", ElementType.ACTION, 1_000)
    stream = io.StringIO()
    manager.dump(stream)
    lines = stream.getvalue().splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("| name ")
    assert "avg used" in lines[0]
    assert lines[1].startswith("| first/name")
    assert "1.5s" in lines[1]
    assert all(line.endswith("|") for line in lines)