# src/tasktrack/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

PRIORITIES: tuple[int, ...] = (1, 2, 3, 4, 5)
DEFAULT_PRIORITY = 3
SNAPSHOT_VERSION = 1


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "done" is the only status that carries completed_at.
    - "archived" keeps the task out of day-to-day views without deleting it.
    """

    TODO = "todo"
    DOING = "doing"
    DONE = "done"
    ARCHIVED = "archived"

    @classmethod
    def from_raw(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus
    priority: int  # 1 = most urgent
    created_at: datetime
    updated_at: datetime

    notes: str | None = None
    project_id: str | None = None
    tags: tuple[str, ...] = ()  # tag ids
    due_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    order: int = 0  # sort key among siblings
    parent_id: str | None = None


@dataclass(frozen=True, slots=True)
class Tag:
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    color: str | None = None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Complete, self-consistent copy of all entity collections at one instant."""

    tasks: tuple[Task, ...] = ()
    projects: tuple[Project, ...] = ()
    tags: tuple[Tag, ...] = ()
    version: int = SNAPSHOT_VERSION
    last_modified: datetime | None = None


def utc_now() -> datetime:
    return datetime.now(UTC)


def is_overdue(task: Task, now: datetime) -> bool:
    """Overdue = has a due date in the past and is not done."""
    if task.due_at is None:
        return False
    return task.due_at < now and task.status != TaskStatus.DONE
