"""Core data models for scalecue."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from scalecue.config import EngineConfig


class ItemState(str, Enum):
    """Possible states for a work item."""

    ENTERING = "entering"
    VALIDATING = "validating"
    QUEUED = "queued"
    WAITING_FOR_MODEL = "waiting_for_model"  # Claimed by a starting worker
    PROCESSING = "processing"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    FAILED = "failed"  # No transition produces this yet
    EXPIRED = "expired"
    RATE_LIMITED = "rate_limited"  # No transition produces this yet
    REMOVED = "removed"


TERMINAL_STATES = frozenset({
    ItemState.COMPLETED,
    ItemState.FAILED,
    ItemState.EXPIRED,
    ItemState.RATE_LIMITED,
    ItemState.REMOVED,
})

WAITING_STATES = frozenset({ItemState.QUEUED, ItemState.WAITING_FOR_MODEL})


class WorkerState(str, Enum):
    """Possible states for a worker."""

    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"
    STOPPING = "stopping"


LIVE_WORKER_STATES = frozenset({WorkerState.STARTING, WorkerState.READY, WorkerState.BUSY})


class Priority(IntEnum):
    """Admission priority. Lower value is served first."""

    HIGH = 0
    NORMAL = 1
    LOW = 2

    @classmethod
    def clamp(cls, value: int) -> Priority:
        return cls(max(cls.HIGH, min(cls.LOW, int(value))))


@dataclass
class Item:
    """A unit of asynchronous work."""

    id: str
    seq: int  # Admission order, breaks created_at ties
    priority: Priority = Priority.NORMAL
    state: ItemState = ItemState.ENTERING
    created_at: float = 0.0
    queued_at: float | None = None
    picked_at: float | None = None
    processing_started_at: float | None = None
    completed_at: float | None = None
    finished_at: float | None = None  # Entered any terminal state
    assigned_worker: int | None = None

    @property
    def sort_key(self) -> tuple[int, float, int]:
        return (int(self.priority), self.created_at, self.seq)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass
class Worker:
    """A processing unit with bounded concurrent capacity."""

    id: int
    state: WorkerState = WorkerState.STOPPED
    starting_at: float | None = None
    stopping_at: float | None = None
    current_item_ids: list[str] = field(default_factory=list)

    @property
    def is_live(self) -> bool:
        """Starting, ready or busy. Stopping workers are on their way out."""
        return self.state in LIVE_WORKER_STATES

    @property
    def is_serving(self) -> bool:
        return self.state in (WorkerState.READY, WorkerState.BUSY)

    def has_room(self, capacity: int) -> bool:
        return len(self.current_item_ids) < capacity


@dataclass
class Metrics:
    """Counters derived from the item and worker collections."""

    queued: int = 0
    processing: int = 0
    completed: int = 0  # Cumulative
    failed: int = 0  # Cumulative
    expired: int = 0  # Cumulative
    active_workers: int = 0
    ready_workers: int = 0


@dataclass
class ScheduledAdmission:
    """An admission queued by add_burst, released once the clock reaches it."""

    due_at: float
    priority: Priority


@dataclass
class SimulationState:
    """The single aggregate every step function mutates."""

    config: EngineConfig
    tick: float = 0.0
    items: list[Item] = field(default_factory=list)
    workers: list[Worker] = field(default_factory=list)
    metrics: Metrics = field(default_factory=Metrics)
    target_workers: int = 0

    # Engine bookkeeping
    next_item_seq: int = 0
    next_worker_id: int = 0
    last_activity: float = 0.0
    rr_cursor: int = 0
    scheduled: list[ScheduledAdmission] = field(default_factory=list)
    total_completed: int = 0
    total_failed: int = 0
    total_expired: int = 0

    def find_worker(self, worker_id: int | None) -> Worker | None:
        if worker_id is None:
            return None
        for worker in self.workers:
            if worker.id == worker_id:
                return worker
        return None

    def find_item(self, item_id: str) -> Item | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def items_in(self, *states: ItemState) -> list[Item]:
        return [item for item in self.items if item.state in states]

    def workers_in(self, *states: WorkerState) -> list[Worker]:
        return [worker for worker in self.workers if worker.state in states]


@dataclass(frozen=True)
class Snapshot:
    """Read-only copy of engine state handed to renderers and tooling."""

    tick: float
    items: tuple[Item, ...]
    workers: tuple[Worker, ...]
    metrics: Metrics
    config: EngineConfig
    target_workers: int
    paused: bool
    speed: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick": self.tick,
            "target_workers": self.target_workers,
            "paused": self.paused,
            "speed": self.speed,
            "metrics": vars(self.metrics).copy(),
            "config": self.config.to_dict(),
            "items": [
                {"id": i.id, "state": i.state.value, "priority": int(i.priority),
                 "assigned_worker": i.assigned_worker}
                for i in self.items
            ],
            "workers": [
                {"id": w.id, "state": w.state.value, "items": list(w.current_item_ids)}
                for w in self.workers
            ],
        }
