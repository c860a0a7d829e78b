# src/tasktrack/tasks/task_index.py

from __future__ import annotations

from collections.abc import Hashable, Iterable
from enum import StrEnum

from .task_models import Task


class IndexKind(StrEnum):
    PROJECT = "project"
    TAG = "tag"
    STATUS = "status"
    PRIORITY = "priority"


class TaskIndex:
    """
    Secondary indexes over tasks: key -> set of task ids, one mapping per kind.

    Buckets are created on first insert and dropped as soon as they become empty,
    so keys(kind) only ever lists values that some task currently has.

    The index holds ids only. It never owns a Task; the store does.
    """

    def __init__(self) -> None:
        self._buckets: dict[IndexKind, dict[Hashable, set[str]]] = {kind: {} for kind in IndexKind}

    @staticmethod
    def _contributions(task: Task) -> list[tuple[IndexKind, Hashable]]:
        out: list[tuple[IndexKind, Hashable]] = [
            (IndexKind.STATUS, task.status),
            (IndexKind.PRIORITY, task.priority),
        ]
        out.extend((IndexKind.TAG, tag_id) for tag_id in dict.fromkeys(task.tags))
        if task.project_id:
            out.append((IndexKind.PROJECT, task.project_id))
        return out

    # ---- mutation ----

    def insert(self, task: Task) -> None:
        for kind, key in self._contributions(task):
            self._buckets[kind].setdefault(key, set()).add(task.id)

    def discard(self, task: Task) -> None:
        """Exact inverse of insert(). Ids that were never indexed are ignored."""
        for kind, key in self._contributions(task):
            buckets = self._buckets[kind]
            ids = buckets.get(key)
            if ids is None:
                continue
            ids.discard(task.id)
            if not ids:
                del buckets[key]

    def clear(self) -> None:
        for buckets in self._buckets.values():
            buckets.clear()

    # ---- read API ----

    def bucket(self, kind: IndexKind, key: Hashable) -> frozenset[str]:
        return frozenset(self._buckets[kind].get(key, ()))

    def union(self, kind: IndexKind, keys: Iterable[Hashable]) -> set[str]:
        buckets = self._buckets[kind]
        out: set[str] = set()
        for key in keys:
            ids = buckets.get(key)
            if ids:
                out |= ids
        return out

    def keys(self, kind: IndexKind) -> list[Hashable]:
        return list(self._buckets[kind])

    def locate(self, task_id: str) -> list[tuple[IndexKind, Hashable]]:
        """Every (kind, key) bucket that currently contains task_id."""
        return [
            (kind, key)
            for kind, buckets in self._buckets.items()
            for key, ids in buckets.items()
            if task_id in ids
        ]
