"""Application logging: JSON lines to a rotating file, coloured text to the console."""

from __future__ import annotations

import gzip
import json
import logging
import os
import shutil
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "objcore"
LOG_FILE_NAME = "app.log"
BACKUP_PATTERN = "app_*.log"
MAX_BACKUPS = 3
MAX_BYTES = 100 * 1024 * 1024
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(LOGGER_NAME)

_COLORS = {
    "trace": 37,
    "debug": 37,
    "info": 36,
    "warning": 33,
    "error": 31,
    "fatal": 31,
}


def _level_name(levelno: int) -> str:
    if levelno >= logging.CRITICAL:
        return "fatal"
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    if levelno >= logging.DEBUG:
        return "debug"
    return "trace"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created).strftime(TIMESTAMP_FORMAT)


class JsonFormatter(logging.Formatter):
    """Formats a record as one JSON object with level, msg and time keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": _level_name(record.levelno),
            "msg": record.getMessage(),
            "time": _timestamp(record),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, sort_keys=True)


class _TextFormatter(logging.Formatter):
    """Coloured one-line console format."""

    def format(self, record: logging.LogRecord) -> str:
        name = _level_name(record.levelno)
        color = _COLORS[name]
        label = name.upper()[:4]
        text = f"\x1b[{color}m{label}\x1b[0m[{_timestamp(record)}] {record.getMessage()}"
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def _gz_namer(name: str) -> str:
    return name + ".gz"


def _gz_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def backup_existing_log(log_dir: str | os.PathLike) -> Path | None:
    """Move an existing app.log aside, keeping at most three backups in total.

    Returns the path of the new backup, or None when there was no log file.
    """
    directory = Path(log_dir)
    current = directory / LOG_FILE_NAME
    if not current.exists():
        return None

    backups = sorted(
        (path for path in directory.glob(BACKUP_PATTERN) if path.is_file()),
        key=lambda path: path.stat().st_mtime,
    )
    if len(backups) >= MAX_BACKUPS:
        for stale in backups[: len(backups) - (MAX_BACKUPS - 1)]:
            try:
                stale.unlink()
            except OSError as exc:
                logger.warning("failed to remove old backup %s: %s", stale, exc)

    target = directory / f"app_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    os.replace(current, target)
    return target


def configure(log_dir: str | os.PathLike = "logs", debug: bool = True) -> logging.Logger:
    """Set up the package logger and return it."""
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    backup_existing_log(directory)

    file_handler = RotatingFileHandler(
        directory / LOG_FILE_NAME,
        maxBytes=MAX_BYTES,
        backupCount=MAX_BACKUPS,
        encoding="utf-8",
    )
    file_handler.namer = _gz_namer
    file_handler.rotator = _gz_rotator
    file_handler.setFormatter(JsonFormatter())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(file_handler)
    if debug:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(_TextFormatter())
        logger.addHandler(console)

    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger