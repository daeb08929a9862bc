import fnmatch
import json
import logging
import os
from datetime import datetime

import pytest

from objcore.logger import JsonFormatter, backup_existing_log, configure


def _record(level, msg, args=(), exc_info=None):
    return logging.LogRecord("t", level, __file__, 1, msg, args, exc_info)


def _release(log):
    for handler in list(log.handlers):
        handler.flush()
        log.removeHandler(handler)
        handler.close()


def test_json_formatter_fields():
    out = json.loads(JsonFormatter().format(_record(logging.WARNING, "disk %s", ("full",))))
    assert out["msg"] == "disk full"
    assert out["level"] == "warning"
    parsed = datetime.strptime(out["time"], "%Y-%m-%d %H:%M:%S")
    assert abs((datetime.now() - parsed).total_seconds()) < 60


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        import sys

        record = _record(logging.ERROR, "failed", exc_info=sys.exc_info())
    out = json.loads(JsonFormatter().format(record))
    assert out["level"] == "error"
    assert "boom" in out["error"]


def test_backup_without_log_returns_none(tmp_path):
    assert backup_existing_log(tmp_path) is None
    assert list(tmp_path.iterdir()) == []


def test_backup_renames_existing_log(tmp_path):
    (tmp_path / "app.log").write_text("old")
    result = backup_existing_log(tmp_path)
    assert not (tmp_path / "app.log").exists()
    assert result.read_text() == "old"
    assert fnmatch.fnmatch(result.name, "app_*.log")


def test_backup_prunes_oldest(tmp_path):
    names = ["app_a.log", "app_b.log", "app_c.log", "app_d.log"]
    for offset, name in enumerate(names):
        path = tmp_path / name
        path.write_text(name)
        stamp = 1_000_000 + offset * 100
        os.utime(path, (stamp, stamp))
    (tmp_path / "app.log").write_text("current")

    result = backup_existing_log(tmp_path)

    remaining = {p.name for p in tmp_path.glob("app_*.log")}
    assert remaining == {"app_c.log", "app_d.log", result.name}


def test_configure_writes_json_lines(tmp_path):
    log = configure(tmp_path, debug=False)
    try:
        log.info("hello")
        log.debug("hidden")
        for handler in log.handlers:
            handler.flush()
        lines = (tmp_path / "app.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["msg"] == "hello"
    finally:
        _release(log)


def test_configure_backs_up_previous_log(tmp_path):
    (tmp_path / "app.log").write_text("previous")
    log = configure(tmp_path, debug=False)
    try:
        backups = list(tmp_path.glob("app_*.log"))
        assert len(backups) == 1
        assert backups[0].read_text() == "previous"
    finally:
        _release(log)


def test_configure_debug_prints_to_console(tmp_path, capsys):
    log = configure(tmp_path, debug=True)
    try:
        log.info("hello console")
        out = capsys.readouterr().out
        assert "hello console" in out
        assert "INFO" in out
    finally:
        _release(log)


@pytest.mark.parametrize("debug,expected", [(False, 1), (True, 2)])
def test_configure_handler_count(tmp_path, debug, expected):
    log = configure(tmp_path, debug=debug)
    try:
        assert len(log.handlers) == expected
    finally:
        _release(log)