# src/tasktrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps persistence swappable and makes testing easier.
"""

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..tasks.task_models import Snapshot

# Returns the current instant as a timezone-aware datetime.
Clock = Callable[[], datetime]


class SnapshotStorage(Protocol):
    """
    Persistence collaborator: whole-store load/save round trip.

    Implementations own atomicity of save (no partially-written state visible
    to a concurrent load) and any cross-process mutual exclusion. The core
    refreshes itself wholesale from load() and never sees partial state.
    """

    def load(self) -> Snapshot: ...
    def save(self, snapshot: Snapshot) -> None: ...
    def exists(self) -> bool: ...


@runtime_checkable
class WatchableStorage(Protocol):
    """Storage that can report writes made by other processes."""

    def start_watching(self, on_change: Callable[[], None]) -> None: ...
    def stop_watching(self) -> None: ...
