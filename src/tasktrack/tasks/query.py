# src/tasktrack/tasks/query.py

"""
Query engine.

A FilterSpec is turned into a candidate id set by intersecting index buckets
(OR inside a category, AND across categories). Residual filters that cannot be
answered from the indexes (due cutoff, free text, exclusions) then scan the
survivors. Survivors are hydrated into TaskView records and optionally sorted.

"No matches" is an empty list, never an error.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from ..core.errors import FieldError, ValidationFailed
from ..core.ports import Clock
from .index_store import IndexStore
from .task_index import IndexKind
from .task_models import PRIORITIES, Project, Tag, Task, TaskStatus, is_overdue, utc_now

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400.0


class SortField(StrEnum):
    TITLE = "title"
    PRIORITY = "priority"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    DUE_AT = "due_at"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: SortField
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "field", SortField(self.field))
        except ValueError:
            raise ValidationFailed.single("sort", f"Unknown sort field: {self.field}", self.field) from None
        try:
            object.__setattr__(self, "direction", SortDirection(self.direction))
        except ValueError:
            raise ValidationFailed.single(
                "sort", f"Unknown sort direction: {self.direction}", self.direction
            ) from None


def _coerce_sort(raw: object) -> SortSpec:
    if isinstance(raw, str):
        field_raw, _, dir_raw = raw.partition(":")
        return SortSpec(field_raw.strip().lower(), dir_raw.strip().lower() or SortDirection.ASC)
    if isinstance(raw, tuple) and len(raw) in (1, 2):
        return SortSpec(*raw)
    raise ValidationFailed.single("sort", f"Invalid sort: {raw!r}", raw)


def _as_set(values: Iterable | None) -> frozenset | None:
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    out = frozenset(values)
    return out or None


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """
    Structured query. Every field is optional; None means "no constraint".

    Collections are normalized to frozensets on construction (empty -> None),
    and statuses/priorities are validated here, once, at the query boundary.
    sort also accepts "field", "field:dir" or a (field, dir) tuple.
    """

    text: str | None = None
    statuses: frozenset[TaskStatus] | None = None
    priorities: frozenset[int] | None = None
    tags: frozenset[str] | None = None
    project_id: str | None = None
    due_before: datetime | None = None
    sort: SortSpec | None = None

    exclude_tags: frozenset[str] | None = None
    exclude_text: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        errors: list[FieldError] = []

        text = (self.text or "").strip() or None
        object.__setattr__(self, "text", text)

        statuses = _as_set(self.statuses)
        if statuses is not None:
            normalized: set[TaskStatus] = set()
            for raw in statuses:
                try:
                    normalized.add(TaskStatus(raw))
                except ValueError:
                    errors.append(FieldError("statuses", f"Unknown status: {raw}", raw))
            statuses = frozenset(normalized) or None
        object.__setattr__(self, "statuses", statuses)

        priorities = _as_set(self.priorities)
        if priorities is not None:
            for p in priorities:
                if isinstance(p, bool) or p not in PRIORITIES:
                    errors.append(FieldError("priorities", "Priority must be between 1 and 5", p))
        object.__setattr__(self, "priorities", priorities)

        object.__setattr__(self, "tags", _as_set(self.tags))
        object.__setattr__(self, "exclude_tags", _as_set(self.exclude_tags))
        object.__setattr__(self, "project_id", self.project_id or None)

        sort = self.sort
        if sort is not None and not isinstance(sort, SortSpec):
            try:
                sort = _coerce_sort(sort)
            except ValidationFailed as e:
                errors.extend(e.errors)
                sort = None
        object.__setattr__(self, "sort", sort)

        raw_terms = [self.exclude_text] if isinstance(self.exclude_text, str) else self.exclude_text
        terms = tuple(t.strip() for t in raw_terms if t and t.strip())
        object.__setattr__(self, "exclude_text", terms)

        if self.due_before is not None and self.due_before.tzinfo is None:
            errors.append(FieldError("due_before", "Due cutoff must be timezone-aware", self.due_before))

        if errors:
            raise ValidationFailed(errors)

    def is_empty(self) -> bool:
        return (
            self.text is None
            and self.statuses is None
            and self.priorities is None
            and self.tags is None
            and self.project_id is None
            and self.due_before is None
            and self.exclude_tags is None
            and not self.exclude_text
        )


@dataclass(frozen=True, slots=True)
class TaskView:
    """A task expanded with its resolved project/tags and query-time derived fields."""

    task: Task
    project: Project | None
    tags: tuple[Tag, ...]
    is_overdue: bool
    days_until_due: int | None


def days_until(due_at: datetime | None, now: datetime) -> int | None:
    if due_at is None:
        return None
    return math.ceil((due_at - now).total_seconds() / _SECONDS_PER_DAY)


def _contains(task: Task, needle: str) -> bool:
    if needle in task.title.lower():
        return True
    return bool(task.notes) and needle in task.notes.lower()


class QueryEngine:
    def __init__(self, store: IndexStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def search(self, spec: FilterSpec | None = None) -> list[TaskView]:
        spec = spec or FilterSpec()
        now = self._clock()

        ids = self._candidates(spec)
        tasks = self._residual(spec, ids)
        views = [self._hydrate(t, now) for t in tasks]

        if spec.sort is not None:
            views = self._sorted(views, spec.sort)

        logger.debug("search matched=%d candidates=%d sort=%s", len(views), len(ids), spec.sort)
        return views

    # ---- stages ----

    def _candidates(self, spec: FilterSpec) -> set[str]:
        index = self._store.index
        if spec.is_empty():
            return set(self._store.all_task_ids())

        selected: list[set[str]] = []
        if spec.statuses is not None:
            selected.append(index.union(IndexKind.STATUS, spec.statuses))
        if spec.priorities is not None:
            selected.append(index.union(IndexKind.PRIORITY, spec.priorities))
        if spec.tags is not None:
            selected.append(index.union(IndexKind.TAG, spec.tags))
        if spec.project_id is not None:
            selected.append(set(index.bucket(IndexKind.PROJECT, spec.project_id)))

        if selected:
            selected.sort(key=len)
            ids = selected[0]
            for other in selected[1:]:
                if not ids:
                    break
                ids = ids & other
        else:
            ids = set(self._store.all_task_ids())

        if spec.exclude_tags is not None and ids:
            ids -= index.union(IndexKind.TAG, spec.exclude_tags)
        return ids

    def _residual(self, spec: FilterSpec, ids: set[str]) -> list[Task]:
        # Insertion order; a full candidate set is already in that order.
        if len(ids) == self._store.count_tasks():
            tasks = self._store.all_tasks()
        else:
            tasks = self._store.ordered(ids)

        if spec.due_before is not None:
            cutoff = spec.due_before
            tasks = [t for t in tasks if t.due_at is not None and t.due_at <= cutoff]

        if spec.text is not None:
            needle = spec.text.lower()
            tasks = [t for t in tasks if _contains(t, needle)]

        if spec.exclude_text:
            terms = [term.lower() for term in spec.exclude_text]
            tasks = [t for t in tasks if not any(_contains(t, term) for term in terms)]

        return tasks

    def _hydrate(self, task: Task, now: datetime) -> TaskView:
        project = self._store.get_project(task.project_id) if task.project_id else None
        tags = tuple(tag for tag in (self._store.get_tag(tid) for tid in task.tags) if tag is not None)
        return TaskView(
            task=task,
            project=project,
            tags=tags,
            is_overdue=is_overdue(task, now),
            days_until_due=days_until(task.due_at, now),
        )

    @staticmethod
    def _sorted(views: list[TaskView], sort: SortSpec) -> list[TaskView]:
        if sort.field is SortField.TITLE:
            def key(v: TaskView):
                return v.task.title.lower()
        elif sort.field is SortField.PRIORITY:
            def key(v: TaskView):
                return v.task.priority
        elif sort.field is SortField.CREATED_AT:
            def key(v: TaskView):
                return v.task.created_at.timestamp()
        elif sort.field is SortField.UPDATED_AT:
            def key(v: TaskView):
                return v.task.updated_at.timestamp()
        else:
            def key(v: TaskView):
                # Missing due date sorts as infinitely far in the future.
                return v.task.due_at.timestamp() if v.task.due_at is not None else math.inf

        return sorted(views, key=key, reverse=sort.direction is SortDirection.DESC)
