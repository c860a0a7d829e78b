# src/tasktrack/tasks/index_store.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from .task_index import IndexKind, TaskIndex
from .task_models import Project, Snapshot, Tag, Task, TaskStatus, is_overdue, utc_now

logger = logging.getLogger(__name__)


class IndexStore:
    """
    In-memory entity store with secondary indexes over tasks.

    Single source of truth for tasks, projects and tags. Every task mutation
    re-derives that task's index contributions inside the same call:
    - add: insert contributions
    - update: drop the old record's contributions, overwrite, insert the new ones
    - remove: drop contributions, then the record

    Tags also keep a lower-cased name -> Tag map for case-insensitive lookup.

    Thread-safety:
    - none; callers serialize access (one writer at a time)
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._projects: dict[str, Project] = {}
        self._tags: dict[str, Tag] = {}
        self._tag_by_name: dict[str, Tag] = {}
        self._index = TaskIndex()
        # task id -> insertion sequence; survives updates, dropped on remove
        self._seq: dict[str, int] = {}
        self._next_seq = 0

    @property
    def index(self) -> TaskIndex:
        return self._index

    # ---- tasks ----

    def add_task(self, task: Task) -> None:
        self.update_task(task)

    def update_task(self, task: Task) -> None:
        old = self._tasks.get(task.id)
        if old is not None:
            self._index.discard(old)
        else:
            self._seq[task.id] = self._next_seq
            self._next_seq += 1
        self._tasks[task.id] = task
        self._index.insert(task)
        logger.debug(
            "Task stored id=%s status=%s priority=%s replaced=%s",
            task.id,
            task.status,
            task.priority,
            old is not None,
        )

    def remove_task(self, task_id: str) -> None:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return
        del self._seq[task_id]
        self._index.discard(task)
        logger.debug("Task removed id=%s", task_id)

    def get_task(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def all_tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def all_task_ids(self) -> list[str]:
        return list(self._tasks)

    def count_tasks(self) -> int:
        return len(self._tasks)

    def ordered(self, ids: Iterable[str]) -> list[Task]:
        """
        Tasks for ids in insertion order. Unknown ids are skipped.

        Cost depends on len(ids), not on the size of the store.
        """
        known = [tid for tid in ids if tid in self._seq]
        known.sort(key=self._seq.__getitem__)
        return [self._tasks[tid] for tid in known]

    def tasks_by_project(self, project_id: str) -> list[Task]:
        return self.ordered(self._index.bucket(IndexKind.PROJECT, project_id))

    def tasks_by_tag(self, tag_id: str) -> list[Task]:
        return self.ordered(self._index.bucket(IndexKind.TAG, tag_id))

    def tasks_by_status(self, status: TaskStatus | str) -> list[Task]:
        return self.ordered(self._index.bucket(IndexKind.STATUS, status))

    def tasks_by_priority(self, priority: int) -> list[Task]:
        return self.ordered(self._index.bucket(IndexKind.PRIORITY, priority))

    def overdue_tasks(self, now: datetime | None = None) -> list[Task]:
        """Derived on every call; there is no maintained overdue set to go stale."""
        if now is None:
            now = utc_now()
        return [t for t in self._tasks.values() if is_overdue(t, now)]

    # ---- projects ----

    def add_project(self, project: Project) -> None:
        self._projects[project.id] = project

    def update_project(self, project: Project) -> None:
        self._projects[project.id] = project

    def remove_project(self, project_id: str) -> None:
        self._projects.pop(project_id, None)

    def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    def all_projects(self) -> list[Project]:
        return list(self._projects.values())

    def find_project_by_name(self, name: str) -> Project | None:
        key = name.strip().lower()
        for project in self._projects.values():
            if project.name.strip().lower() == key:
                return project
        return None

    def root_projects(self) -> list[Project]:
        return sorted((p for p in self._projects.values() if not p.parent_id), key=lambda p: p.order)

    def child_projects(self, parent_id: str) -> list[Project]:
        return sorted((p for p in self._projects.values() if p.parent_id == parent_id), key=lambda p: p.order)

    # ---- tags ----

    def add_tag(self, tag: Tag) -> None:
        self.update_tag(tag)

    def update_tag(self, tag: Tag) -> None:
        old = self._tags.get(tag.id)
        if old is not None:
            self._drop_tag_name(old)
        self._tags[tag.id] = tag
        self._tag_by_name[tag.name.lower()] = tag

    def remove_tag(self, tag_id: str) -> None:
        tag = self._tags.pop(tag_id, None)
        if tag is not None:
            self._drop_tag_name(tag)

    def _drop_tag_name(self, tag: Tag) -> None:
        # Only drop the name entry if it still points at this tag.
        key = tag.name.lower()
        current = self._tag_by_name.get(key)
        if current is not None and current.id == tag.id:
            del self._tag_by_name[key]

    def get_tag(self, tag_id: str) -> Tag | None:
        return self._tags.get(tag_id)

    def get_tag_by_name(self, name: str) -> Tag | None:
        return self._tag_by_name.get(name.strip().lower())

    def all_tags(self) -> list[Tag]:
        return list(self._tags.values())

    # ---- whole-store ----

    def clear(self) -> None:
        self._tasks.clear()
        self._projects.clear()
        self._tags.clear()
        self._tag_by_name.clear()
        self._index.clear()
        self._seq.clear()
        self._next_seq = 0

    def load_snapshot(self, snapshot: Snapshot) -> None:
        """Discard current state and rebuild entities and indexes from a snapshot."""
        self.clear()
        for task in snapshot.tasks:
            self.add_task(task)
        for project in snapshot.projects:
            self.add_project(project)
        for tag in snapshot.tags:
            self.add_tag(tag)
        logger.info(
            "IndexStore loaded tasks=%d projects=%d tags=%d",
            len(self._tasks),
            len(self._projects),
            len(self._tags),
        )

    def snapshot(self, now: datetime | None = None) -> Snapshot:
        return Snapshot(
            tasks=tuple(self._tasks.values()),
            projects=tuple(self._projects.values()),
            tags=tuple(self._tags.values()),
            last_modified=now or utc_now(),
        )
