"""Logging setup for pipeline runs.

Every module logs through ``logging.getLogger(__name__)``. A run attaches one
file handler per stage to the package logger, filtered to its own run id so
overlapping runs for different employers never write into each other's files.
The run id lives in a context variable, which worker threads inherit when
they are started through ``contextvars.copy_context()``.
"""
from __future__ import annotations

import contextlib
import contextvars
import logging
import os
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator

PACKAGE_LOGGER = "jobpipe"
SUMMARY_LOG_NAME = "scrape-classify-summary.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

current_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("current_run_id", default=None)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )


class RunFilter(logging.Filter):
    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        return current_run_id.get() == self.run_id


class TailHandler(logging.Handler):
    """Keeps the last ``size`` formatted lines in memory."""

    def __init__(self, size: int = 20):
        super().__init__()
        self.lines: deque[str] = deque(maxlen=size)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.lines.append(self.format(record))
        except Exception:  # noqa: BLE001
            self.handleError(record)


class StageLog:
    def __init__(self, path: Path, tail_size: int):
        self.path = path
        self._tail = TailHandler(tail_size)

    def tail(self) -> list[str]:
        return list(self._tail.lines)


def stage_log_path(log_dir: str | os.PathLike, employer_slug: str, stage: str, started_at: datetime) -> Path:
    return Path(log_dir) / f"{employer_slug}_{stage}_{started_at.strftime('%Y%m%d_%H%M%S')}.log"


@contextlib.contextmanager
def stage_log(
    log_dir: str | os.PathLike,
    employer_slug: str,
    stage: str,
    run_id: str,
    started_at: datetime,
    tail_size: int = 20,
) -> Iterator[StageLog]:
    """Route this run's records into ``{slug}_{stage}_{ts}.log`` while the block runs."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    sink = StageLog(stage_log_path(log_dir, employer_slug, stage, started_at), tail_size)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    run_filter = RunFilter(run_id)

    file_handler = logging.FileHandler(sink.path, encoding="utf-8")
    for handler in (file_handler, sink._tail):
        handler.setFormatter(formatter)
        handler.addFilter(run_filter)

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if pkg_logger.level == logging.NOTSET:
        pkg_logger.setLevel(logging.INFO)
    pkg_logger.addHandler(file_handler)
    pkg_logger.addHandler(sink._tail)
    token = current_run_id.set(run_id)
    try:
        yield sink
    finally:
        current_run_id.reset(token)
        pkg_logger.removeHandler(file_handler)
        pkg_logger.removeHandler(sink._tail)
        file_handler.close()


def append_summary(log_dir: str | os.PathLike, message: str, now: datetime | None = None) -> Path:
    """Append one line to the summary log shared by all runs."""
    path = Path(log_dir) / SUMMARY_LOG_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now()).strftime(DATE_FORMAT)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(f"[{stamp}] {message}\n")
    return path


def purge_old_logs(log_dir: str | os.PathLike, retention_days: int, now: datetime | None = None) -> int:
    """Delete stage logs older than ``retention_days``. The summary log is kept."""
    root = Path(log_dir)
    if not root.is_dir():
        return 0
    cutoff = (now or datetime.now()) - timedelta(days=retention_days)
    removed = 0
    for path in root.glob("*.log"):
        if path.name == SUMMARY_LOG_NAME:
            continue
        if datetime.fromtimestamp(path.stat().st_mtime) < cutoff:
            path.unlink(missing_ok=True)
            removed += 1
    return removed
