# src/tasktrack/core/state.py

"""
Composition root.

- loads settings once (or takes injected ones),
- ensures local (gitignored) directories exist,
- wires the snapshot storage into a DataRepository,
- optionally starts watching the data file for external writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import Settings, get_settings
from ..logging_setup import setup_logging
from ..storage.json_storage import JsonSnapshotStorage
from ..tasks.repository import DataRepository
from .ports import SnapshotStorage

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    settings: Settings
    repository: DataRepository


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.data_path.parent.mkdir(parents=True, exist_ok=True)


def create_repository(*, settings=None, storage: SnapshotStorage | None = None) -> DataRepository:
    """
    Build a DataRepository from settings.

    Settings and storage are injectable for tests; if settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if storage is None:
        _ensure_local_dirs(settings)
        storage = JsonSnapshotStorage(
            settings.data_path,
            lock_retries=settings.lock_retries,
            lock_retry_delay=settings.lock_retry_delay,
        )
    return DataRepository(storage)


def create_initial_state(*, settings=None, configure_logging: bool = True) -> AppState:
    """Set up logging, build the repository and load the persisted snapshot."""
    if settings is None:
        settings = get_settings()

    if configure_logging:
        setup_logging(
            log_dir=settings.log_dir,
            console_level=settings.console_log_level,
            file_logging=settings.file_logging,
        )

    repository = create_repository(settings=settings)
    repository.initialize()
    if settings.watch_data_file:
        repository.start_watching()
    logger.info("%s ready data=%s tasks=%d", settings.app_name, settings.data_path, repository.store.count_tasks())
    return AppState(settings=settings, repository=repository)


def shutdown_state(state: AppState) -> None:
    """Stop background watching. Saving is left to the caller."""
    state.repository.stop_watching()
    logger.info("%s stopped", state.settings.app_name)
