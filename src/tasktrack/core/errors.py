# src/tasktrack/core/errors.py

"""
Error taxonomy shared by services, repository and storage.

- NotFound: a mutation referenced an id that is not in the store.
- ValidationFailed: input rejected before anything was written.
- StorageError: the persistence collaborator could not load or save.

Dangling project/tag references are not errors (hydration omits them), and
malformed query tokens are not errors (the parser folds them into free text).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class FieldError:
    field: str
    message: str
    value: Any = None


class TaskTrackError(Exception):
    """Base class for all tasktrack errors."""


class NotFound(TaskTrackError, LookupError):
    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} with ID {entity_id} not found")


class ValidationFailed(TaskTrackError, ValueError):
    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        joined = ", ".join(e.message for e in self.errors)
        super().__init__(f"Validation failed: {joined}")

    @classmethod
    def single(cls, field: str, message: str, value: Any = None) -> ValidationFailed:
        return cls([FieldError(field=field, message=message, value=value)])


class StorageError(TaskTrackError):
    """Snapshot load/save failed (wraps the underlying OSError/ValueError)."""
