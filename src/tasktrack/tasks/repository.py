# src/tasktrack/tasks/repository.py

"""
DataRepository: one IndexStore, the services built on it, and a storage collaborator.

The store is refreshed wholesale: initialize() discards in-memory state and
reloads a full snapshot; save() hands a full snapshot back to storage.
start_watching() repeats initialize() whenever another process rewrites the file.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.errors import StorageError
from ..core.ports import Clock, SnapshotStorage, WatchableStorage
from .index_store import IndexStore
from .services import ProjectService, SearchService, TagService, TaskService
from .task_models import Snapshot, utc_now

logger = logging.getLogger(__name__)


class DataRepository:
    def __init__(self, storage: SnapshotStorage, *, clock: Clock = utc_now) -> None:
        self.storage = storage
        self.store = IndexStore()
        self._clock = clock

        self.tasks = TaskService(self.store, clock)
        self.projects = ProjectService(self.store, clock)
        self.tags = TagService(self.store, clock)
        self.search = SearchService(self.store, clock)

    def initialize(self) -> None:
        """Load the persisted snapshot. StorageError propagates; the store is left untouched then."""
        try:
            snapshot = self.storage.load()
        except StorageError:
            logger.exception("Snapshot load failed")
            raise
        self.store.load_snapshot(snapshot)

    def save(self) -> None:
        snapshot = self.snapshot()
        try:
            self.storage.save(snapshot)
        except StorageError:
            logger.exception("Snapshot save failed")
            raise
        logger.info(
            "Repository saved tasks=%d projects=%d tags=%d",
            len(snapshot.tasks),
            len(snapshot.projects),
            len(snapshot.tags),
        )

    def snapshot(self) -> Snapshot:
        return self.store.snapshot(self._clock())

    def replace_snapshot(self, snapshot: Snapshot) -> None:
        self.store.load_snapshot(snapshot)

    # ---- external changes ----

    def start_watching(self, on_reload: Callable[[], None] | None = None) -> bool:
        """
        Reload the store whenever the storage reports an external write.

        The reload runs on the storage's watcher thread; on_reload (if given) is
        called after each successful reload. Returns False when the storage
        cannot watch.
        """
        if not isinstance(self.storage, WatchableStorage):
            logger.debug("Storage %s cannot watch for changes", type(self.storage).__name__)
            return False

        def reload() -> None:
            try:
                self.initialize()
            except StorageError:
                # Keep the in-memory state; the next change triggers another attempt.
                return
            if on_reload is not None:
                on_reload()

        self.storage.start_watching(reload)
        return True

    def stop_watching(self) -> None:
        if isinstance(self.storage, WatchableStorage):
            self.storage.stop_watching()
