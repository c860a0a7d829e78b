# src/tasktrack/tasks/services.py

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from ..core.errors import FieldError, NotFound, ValidationFailed
from ..core.ports import Clock
from .index_store import IndexStore
from .query import FilterSpec, QueryEngine, TaskView
from .query_parser import QueryParser
from .task_models import DEFAULT_PRIORITY, Project, Tag, Task, TaskStatus, utc_now
from .validation import (
    apply_project_changes,
    apply_tag_changes,
    apply_task_changes,
    create_project,
    create_tag,
    create_task,
    validate_project_input,
    validate_tag_input,
    validate_task_input,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _given(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not _UNSET}


def _raise_if(errors: list[FieldError]) -> None:
    if errors:
        raise ValidationFailed(errors)


class TaskService:
    """
    Task operations exposed to controllers.

    Every mutation checks existence first (NotFound) and validates input
    (ValidationFailed) before the store is touched, so a failed call never
    leaves a partial index update behind.
    """

    def __init__(self, store: IndexStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._engine = QueryEngine(store, clock)

    def all(self) -> list[Task]:
        return self._store.all_tasks()

    def by_id(self, task_id: str) -> Task | None:
        return self._store.get_task(task_id)

    def _require(self, task_id: str) -> Task:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    def create(
        self,
        *,
        title: str,
        notes: str | None = None,
        status: TaskStatus | str = TaskStatus.TODO,
        priority: int = DEFAULT_PRIORITY,
        project_id: str | None = None,
        tags: list[str] | tuple[str, ...] = (),
        due_at: datetime | None = None,
    ) -> Task:
        fields = dict(
            title=title,
            notes=notes,
            status=status,
            priority=priority,
            project_id=project_id,
            tags=tags,
            due_at=due_at,
        )
        _raise_if(validate_task_input(fields))

        fields["title"] = title.strip()
        task = create_task(**fields, now=self._clock())
        self._store.add_task(task)
        logger.debug("Task created id=%s title=%r", task.id, task.title)
        return task

    def update(
        self,
        task_id: str,
        *,
        title: Any = _UNSET,
        notes: Any = _UNSET,
        status: Any = _UNSET,
        priority: Any = _UNSET,
        project_id: Any = _UNSET,
        tags: Any = _UNSET,
        due_at: Any = _UNSET,
    ) -> Task:
        """
        Apply a partial update. Omitted arguments stay unchanged; None clears
        the optional fields (notes, project_id, due_at).
        """
        current = self._require(task_id)
        changes = _given(
            title=title,
            notes=notes,
            status=status,
            priority=priority,
            project_id=project_id,
            tags=tags,
            due_at=due_at,
        )
        _raise_if(validate_task_input(changes))

        if "title" in changes:
            changes["title"] = changes["title"].strip()
        updated = apply_task_changes(current, changes, now=self._clock())
        self._store.update_task(updated)
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(changes))
        return updated

    def remove(self, task_id: str) -> None:
        self._require(task_id)
        self._store.remove_task(task_id)

    def search(self, spec: FilterSpec | None = None) -> list[TaskView]:
        return self._engine.search(spec)

    def by_project(self, project_id: str) -> list[Task]:
        return self._store.tasks_by_project(project_id)

    def by_tag(self, tag_id: str) -> list[Task]:
        return self._store.tasks_by_tag(tag_id)

    def by_status(self, status: TaskStatus | str) -> list[Task]:
        return self._store.tasks_by_status(status)

    def overdue(self) -> list[Task]:
        return self._store.overdue_tasks(self._clock())

    # ---- convenience helpers ----

    def toggle_complete(self, task_id: str) -> Task:
        task = self._require(task_id)
        new_status = TaskStatus.TODO if task.status == TaskStatus.DONE else TaskStatus.DONE
        return self.update(task_id, status=new_status)

    def move_to_project(self, task_id: str, project_id: str | None) -> Task:
        return self.update(task_id, project_id=project_id)

    def add_tag(self, task_id: str, tag_id: str) -> Task:
        task = self._require(task_id)
        if tag_id in task.tags:
            return task
        return self.update(task_id, tags=(*task.tags, tag_id))

    def remove_tag(self, task_id: str, tag_id: str) -> Task:
        task = self._require(task_id)
        return self.update(task_id, tags=tuple(t for t in task.tags if t != tag_id))

    def set_priority(self, task_id: str, priority: int) -> Task:
        return self.update(task_id, priority=priority)

    def set_due_date(self, task_id: str, due_at: datetime | None) -> Task:
        return self.update(task_id, due_at=due_at)

    def archive_completed(self) -> int:
        done = self._store.tasks_by_status(TaskStatus.DONE)
        for task in done:
            self.update(task.id, status=TaskStatus.ARCHIVED)
        if done:
            logger.info("Archived %d completed tasks", len(done))
        return len(done)


class ProjectService:
    def __init__(self, store: IndexStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def all(self) -> list[Project]:
        return self._store.all_projects()

    def by_id(self, project_id: str) -> Project | None:
        return self._store.get_project(project_id)

    def _require(self, project_id: str) -> Project:
        project = self._store.get_project(project_id)
        if project is None:
            raise NotFound("project", project_id)
        return project

    def create(self, *, name: str, order: int = 0, parent_id: str | None = None) -> Project:
        fields = dict(name=name, order=order, parent_id=parent_id)
        _raise_if(validate_project_input(fields))

        fields["name"] = name.strip()
        project = create_project(**fields, now=self._clock())
        self._store.add_project(project)
        logger.debug("Project created id=%s name=%r", project.id, project.name)
        return project

    def update(
        self,
        project_id: str,
        *,
        name: Any = _UNSET,
        order: Any = _UNSET,
        parent_id: Any = _UNSET,
    ) -> Project:
        current = self._require(project_id)
        changes = _given(name=name, order=order, parent_id=parent_id)
        errors = validate_project_input(changes)
        if changes.get("parent_id") == project_id:
            errors.append(FieldError("parent_id", "Project cannot be its own parent", project_id))
        _raise_if(errors)

        if "name" in changes:
            changes["name"] = changes["name"].strip()
        updated = apply_project_changes(current, changes, now=self._clock())
        self._store.update_project(updated)
        return updated

    def remove(self, project_id: str) -> None:
        """Tasks keep their project_id; queries treat it as a dangling reference."""
        self._require(project_id)
        self._store.remove_project(project_id)

    def roots(self) -> list[Project]:
        return self._store.root_projects()

    def children(self, parent_id: str) -> list[Project]:
        return self._store.child_projects(parent_id)

    def hierarchy(self) -> list[Project]:
        """
        Depth-first listing: every parent comes before its children, siblings by order.

        Projects whose parent no longer exists are listed as roots. Members of a
        parent cycle (no reachable root) are appended at the end.
        """
        projects = sorted(self._store.all_projects(), key=lambda p: p.order)
        known = {p.id for p in projects}
        children: dict[str, list[Project]] = defaultdict(list)
        roots: list[Project] = []
        for p in projects:
            if p.parent_id and p.parent_id in known and p.parent_id != p.id:
                children[p.parent_id].append(p)
            else:
                roots.append(p)

        out: list[Project] = []
        visited: set[str] = set()

        def walk(project: Project) -> None:
            if project.id in visited:
                return
            visited.add(project.id)
            out.append(project)
            for child in children[project.id]:
                walk(child)

        for p in roots:
            walk(p)
        for p in projects:
            walk(p)
        return out


class TagService:
    def __init__(self, store: IndexStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def all(self) -> list[Tag]:
        return self._store.all_tags()

    def by_id(self, tag_id: str) -> Tag | None:
        return self._store.get_tag(tag_id)

    def by_name(self, name: str) -> Tag | None:
        return self._store.get_tag_by_name(name)

    def _check_name_free(self, errors: list[FieldError], name: Any, tag_id: str | None) -> None:
        if not isinstance(name, str) or not name.strip():
            return
        existing = self._store.get_tag_by_name(name)
        if existing is not None and existing.id != tag_id:
            errors.append(FieldError("name", f"Tag name already exists: {existing.name}", name))

    def create(self, *, name: str, color: str | None = None) -> Tag:
        fields = dict(name=name, color=color)
        errors = validate_tag_input(fields)
        self._check_name_free(errors, name, None)
        _raise_if(errors)

        tag = create_tag(name=name.strip(), color=color, now=self._clock())
        self._store.add_tag(tag)
        logger.debug("Tag created id=%s name=%r", tag.id, tag.name)
        return tag

    def update(self, tag_id: str, *, name: Any = _UNSET, color: Any = _UNSET) -> Tag:
        current = self._store.get_tag(tag_id)
        if current is None:
            raise NotFound("tag", tag_id)
        changes = _given(name=name, color=color)
        errors = validate_tag_input(changes)
        if "name" in changes:
            self._check_name_free(errors, changes["name"], tag_id)
        _raise_if(errors)

        if "name" in changes:
            changes["name"] = changes["name"].strip()
        updated = apply_tag_changes(current, changes, now=self._clock())
        self._store.update_tag(updated)
        return updated

    def remove(self, tag_id: str) -> None:
        """Tasks keep the tag id; hydration drops it silently."""
        if self._store.get_tag(tag_id) is None:
            raise NotFound("tag", tag_id)
        self._store.remove_tag(tag_id)

    def get_or_create(self, name: str, color: str | None = None) -> Tag:
        existing = self.by_name(name) if isinstance(name, str) and name.strip() else None
        if existing is not None:
            return existing
        return self.create(name=name, color=color)


class SearchService:
    """Parsed-string search plus the canned queries used by list views."""

    def __init__(self, store: IndexStore, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._engine = QueryEngine(store, clock)
        self._parser = QueryParser(store, clock)

    def parse(self, query: str) -> FilterSpec:
        return self._parser.parse(query)

    def search(self, spec: FilterSpec | None = None) -> list[TaskView]:
        return self._engine.search(spec)

    def search_text(self, query: str) -> list[TaskView]:
        return self.search(self.parse(query))

    def by_text(self, text: str) -> list[TaskView]:
        return self.search(FilterSpec(text=text))

    def by_statuses(self, statuses: list[TaskStatus | str]) -> list[TaskView]:
        return self.search(FilterSpec(statuses=frozenset(statuses)))

    def by_priorities(self, priorities: list[int]) -> list[TaskView]:
        return self.search(FilterSpec(priorities=frozenset(priorities)))

    def by_tags(self, tag_ids: list[str]) -> list[TaskView]:
        return self.search(FilterSpec(tags=frozenset(tag_ids)))

    def by_project(self, project_id: str) -> list[TaskView]:
        return self.search(FilterSpec(project_id=project_id))

    def overdue(self) -> list[TaskView]:
        views = self.search(FilterSpec(due_before=self._clock()))
        return [v for v in views if v.is_overdue]

    def due_today(self) -> list[TaskView]:
        end_of_day = self._clock().replace(hour=23, minute=59, second=59, microsecond=999999)
        return self.search(FilterSpec(due_before=end_of_day))

    def due_this_week(self) -> list[TaskView]:
        return self.search(FilterSpec(due_before=self._clock() + timedelta(days=7)))

    def high_priority(self) -> list[TaskView]:
        return self.search(FilterSpec(priorities=frozenset({1, 2})))

    def recently_updated(self, days: int = 7) -> list[TaskView]:
        cutoff = self._clock() - timedelta(days=days)
        return [v for v in self.search() if v.task.updated_at >= cutoff]
