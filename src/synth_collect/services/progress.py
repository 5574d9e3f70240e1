"""Export progress store abstractions."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from synth_collect.domain.progress import STATUS_RANK, ExportProgress


def progress_key(session_id: UUID | str, user_id: str) -> str:
    """Return the store key for one user's export of one session."""
    return f"{session_id}-{user_id}"


class ProgressStore(Protocol):
    """Store interface for export progress snapshots."""

    def start(self, key: str, session_id: str, **fields: object) -> ExportProgress:
        """Reset the entry for a new export and return it."""

    def update(self, key: str, **changes: object) -> ExportProgress | None:
        """Merge changes into an entry; return the stored snapshot."""

    def get(self, key: str) -> ExportProgress | None:
        """Return the current snapshot if present."""

    def delete(self, key: str) -> None:
        """Drop an entry."""

    def sweep(self, max_age_seconds: float, grace_seconds: float) -> int:
        """Drop stale entries and return how many were removed."""


@dataclass
class InMemoryProgressStore(ProgressStore):
    """Process-local progress store.

    Status only moves forward, percentage never decreases, and a terminal
    entry is frozen until ``start`` resets it.
    """

    clock: Callable[[], float] = time.time
    _entries: dict[str, ExportProgress] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def start(self, key: str, session_id: str, **fields: object) -> ExportProgress:
        now = self.clock()
        progress = ExportProgress(
            session_id=session_id, start_time=now, updated_at=now, **fields
        )
        with self._lock:
            self._entries[key] = progress
        return progress

    def update(self, key: str, **changes: object) -> ExportProgress | None:
        now = self.clock()
        with self._lock:
            current = self._entries.get(key)
            if current is None:
                session_id = str(changes.pop("session_id", key))
                progress = ExportProgress(
                    session_id=session_id, start_time=now, updated_at=now, **changes
                )
                self._entries[key] = progress
                return progress
            if current.is_terminal:
                return current
            changes.pop("session_id", None)
            status = changes.get("status")
            if status is not None and (
                STATUS_RANK[str(status)] < STATUS_RANK[current.status]
            ):
                changes.pop("status")
            percentage = changes.get("percentage")
            if isinstance(percentage, int):
                changes["percentage"] = max(percentage, current.percentage)
            progress = ExportProgress.model_validate(
                {**current.model_dump(), **changes, "updated_at": now}
            )
            self._entries[key] = progress
            return progress

    def get(self, key: str) -> ExportProgress | None:
        with self._lock:
            return self._entries.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self, max_age_seconds: float, grace_seconds: float) -> int:
        now = self.clock()
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if now - entry.start_time > max_age_seconds
                or (entry.is_terminal and now - entry.updated_at > grace_seconds)
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)
