# src/tasktrack/tasks/validation.py

"""
Input validation and entity factories.

Validators only look at keys that are present in the mapping, so the same
function checks a full create payload and a partial update.

Factories assign the id (uuid4) and timestamps; the store never does.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.errors import FieldError
from .task_models import DEFAULT_PRIORITY, PRIORITIES, Project, Tag, Task, TaskStatus, utc_now

TITLE_MAX = 200
PROJECT_NAME_MAX = 100
TAG_NAME_MAX = 50

_HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
TERMINAL_COLORS = frozenset(
    {
        "black", "red", "green", "yellow", "blue", "magenta", "cyan", "white",
        "lightblack", "lightred", "lightgreen", "lightyellow", "lightblue",
        "lightmagenta", "lightcyan", "lightwhite",
    }
)


def generate_id() -> str:
    return str(uuid.uuid4())


def _check_required_text(
    errors: list[FieldError], fields: Mapping[str, Any], key: str, label: str, max_len: int
) -> None:
    if key not in fields:
        return
    value = fields[key]
    if not isinstance(value, str) or not value.strip():
        errors.append(FieldError(key, f"{label} is required", value))
    elif len(value) > max_len:
        errors.append(FieldError(key, f"{label} must be {max_len} characters or less", value))


def validate_task_input(fields: Mapping[str, Any]) -> list[FieldError]:
    errors: list[FieldError] = []
    _check_required_text(errors, fields, "title", "Title", TITLE_MAX)

    if "priority" in fields:
        p = fields["priority"]
        if isinstance(p, bool) or p not in PRIORITIES:
            errors.append(FieldError("priority", "Priority must be between 1 and 5", p))

    if "status" in fields:
        s = fields["status"]
        if s not in {status.value for status in TaskStatus}:
            errors.append(FieldError("status", "Status must be one of: todo, doing, done, archived", s))

    if fields.get("due_at") is not None:
        due = fields["due_at"]
        if not isinstance(due, datetime) or due.tzinfo is None:
            errors.append(FieldError("due_at", "Due date must be a timezone-aware datetime", due))

    if "notes" in fields and fields["notes"] is not None and not isinstance(fields["notes"], str):
        errors.append(FieldError("notes", "Notes must be text", fields["notes"]))

    if "tags" in fields:
        tags = fields["tags"]
        if isinstance(tags, str) or not isinstance(tags, (list, tuple, set, frozenset)):
            errors.append(FieldError("tags", "Tags must be a list of tag ids", tags))
        elif any(not isinstance(t, str) or not t for t in tags):
            errors.append(FieldError("tags", "All tags must be non-empty tag ids", tags))

    return errors


def validate_project_input(fields: Mapping[str, Any]) -> list[FieldError]:
    errors: list[FieldError] = []
    _check_required_text(errors, fields, "name", "Name", PROJECT_NAME_MAX)

    if "order" in fields:
        order = fields["order"]
        if isinstance(order, bool) or not isinstance(order, int) or order < 0:
            errors.append(FieldError("order", "Order must be a non-negative number", order))

    if fields.get("parent_id") is not None:
        parent = fields["parent_id"]
        if not isinstance(parent, str) or not parent:
            errors.append(FieldError("parent_id", "Parent must be a project id", parent))

    return errors


def is_valid_color(color: str) -> bool:
    return bool(_HEX_COLOR_RE.match(color)) or color.lower() in TERMINAL_COLORS


def validate_tag_input(fields: Mapping[str, Any]) -> list[FieldError]:
    errors: list[FieldError] = []
    _check_required_text(errors, fields, "name", "Name", TAG_NAME_MAX)

    color = fields.get("color")
    if color and (not isinstance(color, str) or not is_valid_color(color)):
        errors.append(FieldError("color", "Color must be a valid hex color or terminal color name", color))

    return errors


# ---- factories ----


def create_task(
    *,
    title: str,
    notes: str | None = None,
    status: TaskStatus | str = TaskStatus.TODO,
    priority: int = DEFAULT_PRIORITY,
    project_id: str | None = None,
    tags: tuple[str, ...] | list[str] = (),
    due_at: datetime | None = None,
    now: datetime | None = None,
) -> Task:
    now = now or utc_now()
    status = TaskStatus(status)
    return Task(
        id=generate_id(),
        title=title,
        notes=notes,
        status=status,
        priority=priority,
        project_id=project_id,
        tags=tuple(dict.fromkeys(tags)),
        created_at=now,
        updated_at=now,
        due_at=due_at,
        completed_at=now if status is TaskStatus.DONE else None,
    )


def create_project(
    *,
    name: str,
    order: int = 0,
    parent_id: str | None = None,
    now: datetime | None = None,
) -> Project:
    now = now or utc_now()
    return Project(
        id=generate_id(),
        name=name,
        order=order,
        parent_id=parent_id,
        created_at=now,
        updated_at=now,
    )


def create_tag(*, name: str, color: str | None = None, now: datetime | None = None) -> Tag:
    now = now or utc_now()
    return Tag(id=generate_id(), name=name, color=color, created_at=now, updated_at=now)


# ---- partial updates ----


def apply_task_changes(task: Task, changes: Mapping[str, Any], *, now: datetime | None = None) -> Task:
    """
    Build the replacement record for a task.

    completed_at follows status: it is stamped when a task moves into done and
    cleared when it moves out. Re-sending the current status leaves it alone.
    """
    now = now or utc_now()
    values = dict(changes)

    if "status" in values:
        new_status = TaskStatus(values["status"])
        values["status"] = new_status
        if new_status != task.status:
            values["completed_at"] = now if new_status is TaskStatus.DONE else None
    if "tags" in values:
        values["tags"] = tuple(dict.fromkeys(values["tags"]))

    return replace(task, **values, updated_at=now)


def apply_project_changes(project: Project, changes: Mapping[str, Any], *, now: datetime | None = None) -> Project:
    return replace(project, **dict(changes), updated_at=now or utc_now())


def apply_tag_changes(tag: Tag, changes: Mapping[str, Any], *, now: datetime | None = None) -> Tag:
    return replace(tag, **dict(changes), updated_at=now or utc_now())
