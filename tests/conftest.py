# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasktrack.tasks.index_store import IndexStore
from tasktrack.tasks.repository import DataRepository

from .fakes import FakeClock, InMemorySnapshotStorage


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="tasktrack-test",
        log_level="DEBUG",
        console_log_level=10,
        file_logging=False,
        data_dir=data_dir,
        data_path=data_dir / "data.json",
        log_dir=tmp_path / "logs",
        lock_retries=3,
        lock_retry_delay=0.0,
        watch_data_file=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> IndexStore:
    return IndexStore()


@pytest.fixture()
def storage() -> InMemorySnapshotStorage:
    return InMemorySnapshotStorage()


@pytest.fixture()
def repo(storage: InMemorySnapshotStorage, clock: FakeClock) -> DataRepository:
    """Repository wired with an in-memory storage and a fixed clock."""
    return DataRepository(storage, clock=clock)
