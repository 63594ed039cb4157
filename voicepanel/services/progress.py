# voicepanel/services/progress.py
"""
In-process progress channel for running tests.

One orchestrator writes an entry per run; any number of readers (HTTP
polling, the websocket bridge) read it. Entries are not durable: after a
restart the persisted run counters are the only record of progress.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, Optional
from uuid import UUID

TERMINAL_STATUSES = ("complete", "failed")


@dataclass(frozen=True)
class RunProgressState:
    completed: int
    total: int
    status: str

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, object]:
        return {"completed": self.completed, "total": self.total, "status": self.status}


class ProgressStore(ABC):
    @abstractmethod
    def set(self, run_id: UUID, progress: RunProgressState) -> None: ...

    @abstractmethod
    def get(self, run_id: UUID) -> Optional[RunProgressState]: ...

    @abstractmethod
    def remove(self, run_id: UUID) -> None: ...

    def update(self, run_id: UUID, **changes) -> Optional[RunProgressState]:
        """Replace fields of an existing entry; no-op when the entry is gone."""
        current = self.get(run_id)
        if current is None:
            return None
        updated = replace(current, **changes)
        self.set(run_id, updated)
        return updated


class InMemoryProgressStore(ProgressStore):
    """Lock-guarded dict of immutable snapshots, owned by the application instance."""

    def __init__(self):
        self._entries: Dict[str, RunProgressState] = {}
        self._lock = threading.Lock()

    def set(self, run_id: UUID, progress: RunProgressState) -> None:
        with self._lock:
            self._entries[str(run_id)] = progress

    def get(self, run_id: UUID) -> Optional[RunProgressState]:
        with self._lock:
            return self._entries.get(str(run_id))

    def remove(self, run_id: UUID) -> None:
        with self._lock:
            self._entries.pop(str(run_id), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
