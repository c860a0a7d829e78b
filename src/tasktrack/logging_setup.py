# src/tasktrack/logging_setup.py

"""
Logging for tasktrack.

Console: short lines, tasktrack records at the configured level, everything
else (watchdog, py.warnings, libraries of the embedding app) only when it is
at least WARNING. File: every record with thread name, since the data-file
watcher logs from its own thread. The file rotates so a long-lived process
does not grow it without bound.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

PACKAGE_LOGGER = "tasktrack"
LOG_FILE_NAME = "tasktrack.log"

_CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _PackageOnlyFilter(logging.Filter):
    """Pass tasktrack records; pass foreign records only at or above foreign_level."""

    def __init__(self, foreign_level: int = logging.WARNING) -> None:
        super().__init__()
        self.foreign_level = foreign_level

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
            return True
        return record.levelno >= self.foreign_level


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasktrack",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    file_logging: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> None:
    """
    Configure the root logger for an application embedding tasktrack.

    Replaces existing root handlers, so call it once at startup.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    console.addFilter(_PackageOnlyFilter())
    root.addHandler(console)

    if file_logging:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(fh)

    # watchdog logs every filesystem event at DEBUG.
    logging.getLogger("watchdog").setLevel(logging.INFO)

    logging.captureWarnings(True)
