# tests/test_config.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tasktrack.config import Settings

_VARS = (
    "APP_NAME",
    "LOG_LEVEL",
    "FILE_LOGGING",
    "DATA_DIR",
    "DATA_PATH",
    "LOG_DIR",
    "LOCK_RETRIES",
    "LOCK_RETRY_DELAY",
    "WATCH_DATA_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for suffix in _VARS:
        monkeypatch.delenv(f"TASKTRACK_{suffix}", raising=False)


def test_defaults() -> None:
    s = Settings.from_env()

    assert s.app_name == "tasktrack"
    assert s.file_logging is True
    assert s.data_dir == Path(".local/tasktrack")
    assert s.data_path == Path(".local/tasktrack/data.json")
    assert s.log_dir == s.data_dir
    assert s.lock_retries == 10
    assert s.lock_retry_delay == pytest.approx(0.1)
    assert s.watch_data_file is False
    assert s.console_log_level == logging.INFO


def test_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASKTRACK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TASKTRACK_LOG_LEVEL", "debug")
    monkeypatch.setenv("TASKTRACK_FILE_LOGGING", "off")
    monkeypatch.setenv("TASKTRACK_LOCK_RETRIES", "3")
    monkeypatch.setenv("TASKTRACK_WATCH_DATA_FILE", "true")

    s = Settings.from_env()

    assert s.data_path == tmp_path / "data.json"
    assert s.log_dir == tmp_path
    assert s.console_log_level == logging.DEBUG
    assert s.file_logging is False
    assert s.lock_retries == 3
    assert s.watch_data_file is True


def test_bad_values_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKTRACK_LOCK_RETRIES", "many")
    monkeypatch.setenv("TASKTRACK_LOCK_RETRY_DELAY", "-5")
    monkeypatch.setenv("TASKTRACK_LOG_LEVEL", "chatty")

    s = Settings.from_env()

    assert s.lock_retries == 10
    assert s.lock_retry_delay == 0.0
    assert s.console_log_level == logging.INFO
