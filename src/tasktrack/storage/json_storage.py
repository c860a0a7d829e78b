# src/tasktrack/storage/json_storage.py

"""
JSON file implementation of the SnapshotStorage port.

File layout (camelCase keys, ISO 8601 timestamps):
    {"version": 1, "tasks": [...], "projects": [...], "tags": [...], "lastModified": "..."}

Guarantees:
- save() writes a temp file and os.replace()s it over the data file, so a
  concurrent load() sees either the old or the new snapshot, never half of one
- writes (save/restore) hold an exclusive lock file; a lock left behind by a
  dead process is removed
- load() is tolerant: bad records are skipped, unknown values fall back to defaults
- start_watching() reports external writes to the data file (watchdog observer)
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import shutil
import threading
import time
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from ..core.errors import StorageError
from ..tasks.task_models import (
    DEFAULT_PRIORITY,
    PRIORITIES,
    SNAPSHOT_VERSION,
    Project,
    Snapshot,
    Tag,
    Task,
    TaskStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

INBOX_PROJECT_ID = "inbox"


# ---- encoding ----


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(raw: Any) -> datetime | None:
    if not raw or not isinstance(raw, str):
        return None
    try:
        # Accept the trailing "Z" written by other tools.
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def task_to_dict(task: Task) -> dict[str, Any]:
    return _drop_none(
        {
            "id": task.id,
            "title": task.title,
            "notes": task.notes,
            "status": task.status.value,
            "priority": task.priority,
            "projectId": task.project_id,
            "tags": list(task.tags),
            "createdAt": _ts(task.created_at),
            "updatedAt": _ts(task.updated_at),
            "dueAt": _ts(task.due_at),
            "completedAt": _ts(task.completed_at),
        }
    )


def project_to_dict(project: Project) -> dict[str, Any]:
    return _drop_none(
        {
            "id": project.id,
            "name": project.name,
            "order": project.order,
            "parentId": project.parent_id,
            "createdAt": _ts(project.created_at),
            "updatedAt": _ts(project.updated_at),
        }
    )


def tag_to_dict(tag: Tag) -> dict[str, Any]:
    return _drop_none(
        {
            "id": tag.id,
            "name": tag.name,
            "color": tag.color,
            "createdAt": _ts(tag.created_at),
            "updatedAt": _ts(tag.updated_at),
        }
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "version": snapshot.version,
        "tasks": [task_to_dict(t) for t in snapshot.tasks],
        "projects": [project_to_dict(p) for p in snapshot.projects],
        "tags": [tag_to_dict(t) for t in snapshot.tags],
        "lastModified": _ts(snapshot.last_modified or utc_now()),
    }


# ---- decoding ----


def task_from_dict(raw: dict[str, Any], now: datetime) -> Task | None:
    tid = raw.get("id")
    if not isinstance(tid, str) or not tid:
        return None

    status = TaskStatus.from_raw(raw.get("status"))
    try:
        priority = int(raw.get("priority", DEFAULT_PRIORITY))
    except (TypeError, ValueError):
        priority = DEFAULT_PRIORITY
    priority = max(PRIORITIES[0], min(PRIORITIES[-1], priority))

    tags_raw = raw.get("tags") or []
    tags = tuple(dict.fromkeys(t for t in tags_raw if isinstance(t, str) and t)) if isinstance(tags_raw, list) else ()

    created_at = _parse_ts(raw.get("createdAt")) or now
    updated_at = _parse_ts(raw.get("updatedAt")) or created_at
    completed_at = _parse_ts(raw.get("completedAt"))
    # completed_at exists iff done; repair records that disagree.
    if status is TaskStatus.DONE:
        completed_at = completed_at or updated_at
    else:
        completed_at = None

    return Task(
        id=tid,
        title=str(raw.get("title") or ""),
        notes=raw.get("notes") if isinstance(raw.get("notes"), str) else None,
        status=status,
        priority=priority,
        project_id=raw.get("projectId") or None,
        tags=tags,
        created_at=created_at,
        updated_at=updated_at,
        due_at=_parse_ts(raw.get("dueAt")),
        completed_at=completed_at,
    )


def project_from_dict(raw: dict[str, Any], now: datetime) -> Project | None:
    pid = raw.get("id")
    if not isinstance(pid, str) or not pid:
        return None
    try:
        order = max(0, int(raw.get("order", 0)))
    except (TypeError, ValueError):
        order = 0
    created_at = _parse_ts(raw.get("createdAt")) or now
    return Project(
        id=pid,
        name=str(raw.get("name") or ""),
        order=order,
        parent_id=raw.get("parentId") or None,
        created_at=created_at,
        updated_at=_parse_ts(raw.get("updatedAt")) or created_at,
    )


def tag_from_dict(raw: dict[str, Any], now: datetime) -> Tag | None:
    tid = raw.get("id")
    if not isinstance(tid, str) or not tid:
        return None
    created_at = _parse_ts(raw.get("createdAt")) or now
    return Tag(
        id=tid,
        name=str(raw.get("name") or ""),
        color=raw.get("color") or None,
        created_at=created_at,
        updated_at=_parse_ts(raw.get("updatedAt")) or created_at,
    )


def snapshot_from_dict(data: dict[str, Any]) -> Snapshot:
    now = utc_now()

    def decode(key: str, fn) -> tuple:
        items = data.get(key) or []
        if not isinstance(items, list):
            logger.warning("Snapshot field %s is not a list; ignored", key)
            return ()
        out = []
        for raw in items:
            obj = fn(raw, now) if isinstance(raw, dict) else None
            if obj is None:
                logger.warning("Skipping malformed %s record: %r", key, raw)
                continue
            out.append(obj)
        return tuple(out)

    version = data.get("version")
    return Snapshot(
        tasks=decode("tasks", task_from_dict),
        projects=decode("projects", project_from_dict),
        tags=decode("tags", tag_from_dict),
        version=version if isinstance(version, int) and version >= 1 else SNAPSHOT_VERSION,
        last_modified=_parse_ts(data.get("lastModified")) or now,
    )


def default_snapshot() -> Snapshot:
    now = utc_now()
    inbox = Project(id=INBOX_PROJECT_ID, name="Inbox", order=0, created_at=now, updated_at=now)
    return Snapshot(projects=(inbox,), last_modified=now)




# ---- external change watching ----


class _DataFileHandler(FileSystemEventHandler):
    """Forwards events that touch the data file; everything else in the directory is ignored."""

    def __init__(self, storage: JsonSnapshotStorage) -> None:
        self._storage = storage
        self._target = str(storage.path.resolve())

    def _touches(self, raw_path: str | bytes) -> bool:
        return os.fsdecode(raw_path) == self._target

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._touches(event.src_path):
            self._storage._on_file_event()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._touches(event.src_path):
            self._storage._on_file_event()

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writers (ours included) replace the file by renaming over it.
        if not event.is_directory and self._touches(event.dest_path):
            self._storage._on_file_event()


# ---- storage ----


class JsonSnapshotStorage:
    """
    Whole-snapshot JSON persistence.

    Each call opens and closes the file; no handles are kept between calls.

    start_watching(on_change) runs a watchdog observer on the data file's
    directory. on_change is called from the observer thread whenever the file
    content changes under us; writes made by this instance are not reported.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        lock_retries: int = 10,
        lock_retry_delay: float = 0.1,
    ) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._tmp_path = self._path.with_name(self._path.name + ".tmp")
        self._lock_retries = max(1, int(lock_retries))
        self._lock_retry_delay = max(0.0, float(lock_retry_delay))

        self._observer: BaseObserver | None = None
        self._on_change: Callable[[], None] | None = None
        self._seen_lock = threading.Lock()
        self._seen: tuple[int, int] | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Snapshot:
        if not self.exists():
            logger.info("No data file at %s; starting with defaults", self._path)
            return default_snapshot()
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to load data from {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Failed to load data from {self._path}: top-level value is not an object")

        snapshot = snapshot_from_dict(data)
        logger.info(
            "Loaded snapshot tasks=%d projects=%d tags=%d from %s",
            len(snapshot.tasks),
            len(snapshot.projects),
            len(snapshot.tags),
            self._path,
        )
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        payload = json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False, indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._locked():
                self._tmp_path.write_text(payload, "utf-8")
                with self._seen_lock:
                    os.replace(self._tmp_path, self._path)
                    self._seen = self._signature()
        except OSError as e:
            with contextlib.suppress(OSError):
                self._tmp_path.unlink()
            raise StorageError(f"Failed to save data to {self._path}: {e}") from e
        logger.debug("Saved snapshot to %s", self._path)

    def backup(self) -> Path:
        """Copy the data file to a timestamped sibling and return its path."""
        if not self.exists():
            raise StorageError("No data to backup")
        stamp = utc_now().strftime("%Y%m%dT%H%M%S%fZ")
        backup_path = self._path.with_name(f"{self._path.stem}-backup-{stamp}{self._path.suffix}")
        try:
            shutil.copyfile(self._path, backup_path)
        except OSError as e:
            raise StorageError(f"Failed to create backup: {e}") from e
        logger.info("Backup written to %s", backup_path)
        return backup_path

    def restore(self, backup_path: str | Path) -> None:
        """Replace the data file with a backup. A running watcher reports it as a change."""
        src = Path(backup_path)
        if not src.exists():
            raise StorageError(f"Backup not found: {src}")
        try:
            with self._locked():
                shutil.copyfile(src, self._tmp_path)
                os.replace(self._tmp_path, self._path)
        except OSError as e:
            raise StorageError(f"Failed to restore backup: {e}") from e
        logger.info("Restored %s from %s", self._path, src)

    # ---- watching ----

    def start_watching(self, on_change: Callable[[], None]) -> None:
        """Call on_change after external writes to the data file. No-op if already watching."""
        if self._observer is not None:
            return
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot watch {self._path}: {e}") from e

        with self._seen_lock:
            self._seen = self._signature()
        self._on_change = on_change

        observer = Observer()
        observer.schedule(_DataFileHandler(self), str(directory.resolve()), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s for external changes", self._path)

    def stop_watching(self) -> None:
        observer, self._observer = self._observer, None
        self._on_change = None
        if observer is None:
            return
        observer.stop()
        observer.join()
        logger.info("Stopped watching %s", self._path)

    def _signature(self) -> tuple[int, int] | None:
        try:
            st = self._path.stat()
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    def _on_file_event(self) -> None:
        # One write can produce several events; report each distinct file state once.
        with self._seen_lock:
            sig = self._signature()
            if sig is None or sig == self._seen:
                return
            self._seen = sig

        callback = self._on_change
        if callback is None:
            return
        logger.info("Data file %s changed externally", self._path)
        try:
            callback()
        except Exception:
            logger.exception("on_change callback failed for %s", self._path)

    # ---- lock file ----

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        self._acquire_lock()
        try:
            yield
        finally:
            with contextlib.suppress(OSError):
                self._lock_path.unlink()

    def _acquire_lock(self) -> None:
        attempts = 0
        while True:
            try:
                fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if self._remove_stale_lock():
                    continue
                attempts += 1
                if attempts >= self._lock_retries:
                    raise StorageError(
                        f"Failed to acquire lock {self._lock_path} after {self._lock_retries} attempts"
                    ) from None
                time.sleep(self._lock_retry_delay)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            return

    def _remove_stale_lock(self) -> bool:
        """True only if a dead owner's lock file is gone afterwards."""
        try:
            pid = int(self._lock_path.read_text("utf-8").strip())
        except (OSError, ValueError):
            return False
        if _pid_alive(pid):
            return False
        logger.warning("Removing stale lock %s (pid %s is gone)", self._lock_path, pid)
        try:
            self._lock_path.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning("Cannot remove stale lock %s: %s", self._lock_path, e)
            return False
        return True


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True
