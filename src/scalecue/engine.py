"""The simulation engine and its public operations."""

from __future__ import annotations

import copy
import logging
from typing import Any, Mapping

from scalecue.autoscaler import autoscale, clamp_target
from scalecue.config import EngineConfig
from scalecue.dispatch import dispatch
from scalecue.lifecycle import advance_items, advance_workers, prune_items
from scalecue.models import (
    Item,
    ItemState,
    Metrics,
    Priority,
    ScheduledAdmission,
    SimulationState,
    Snapshot,
    WorkerState,
)

logger = logging.getLogger(__name__)

# Logical spacing between admissions scheduled by add_burst.
BURST_STAGGER_MS = 100.0

MIN_SPEED = 0.1
MAX_SPEED = 10.0

# Layout hints for renderers
CENTERLINE_Y = 225.0
WORKER_ZONE_TOP = 50.0
WORKER_ZONE_BOTTOM = 400.0
WORKER_ZONE_PADDING = 80.0
MAX_WORKER_SPACING = 45.0
MIN_WORKER_SPACING = 25.0


def compute_metrics(state: SimulationState) -> Metrics:
    """Derive metrics from the current collections and cumulative counters."""
    return Metrics(
        queued=len(state.items_in(ItemState.QUEUED, ItemState.WAITING_FOR_MODEL)),
        processing=len(state.items_in(ItemState.PROCESSING)),
        completed=state.total_completed,
        failed=state.total_failed,
        expired=state.total_expired,
        active_workers=sum(1 for w in state.workers if w.state != WorkerState.STOPPED),
        ready_workers=len(state.workers_in(WorkerState.READY)),
    )


def step(state: SimulationState) -> None:
    """One full pass over the state at the current tick."""
    advance_items(state)
    advance_workers(state)
    prune_items(state)
    autoscale(state)
    dispatch(state)
    state.metrics = compute_metrics(state)


class Engine:
    """
    Discrete-time model of an autoscaling job-processing tier.

    Items are admitted into a priority queue, claimed by workers that
    start on demand, processed, delivered, and pruned. Time only moves
    when advance() is called.

    Example:
        engine = scalecue.Engine(cold_start_time_ms=3000)
        item_id = engine.add_item(priority=1)
        engine.advance(0)        # queued, worker starting
        engine.advance(3000)     # worker ready, item processing
        print(engine.get_state().metrics)
    """

    def __init__(self, config: EngineConfig | None = None, **overrides: Any) -> None:
        base = config or EngineConfig()
        self._config = base.merged(**overrides) if overrides else copy.copy(base)
        self._speed = 1.0
        self._paused = False
        self._state = self._fresh_state()

    def _fresh_state(self) -> SimulationState:
        state = SimulationState(config=self._config)
        state.target_workers = clamp_target(state, self._config.min_workers)
        return state

    # --- Admission ---

    def add_item(self, priority: int = Priority.NORMAL) -> str:
        """
        Admit one item. Always succeeds.

        Args:
            priority: 0 (highest) to 2 (lowest). Out-of-range values are clamped.

        Returns:
            The new item's ID.
        """
        return self._admit(Priority.clamp(priority), self._state.tick).id

    def _admit(self, priority: Priority, at: float) -> Item:
        state = self._state
        item = Item(
            id=f"req-{state.next_item_seq}",
            seq=state.next_item_seq,
            priority=priority,
            created_at=at,
        )
        state.next_item_seq += 1
        state.items.append(item)
        state.last_activity = max(state.last_activity, at)
        if len(state.items_in(ItemState.QUEUED)) >= self._config.max_queue_size:
            logger.debug("Queue at advisory limit (%d), admitting %s anyway",
                         self._config.max_queue_size, item.id)
        return item

    def add_burst(self, count: int, priority: int = Priority.NORMAL) -> None:
        """
        Schedule count admissions staggered BURST_STAGGER_MS apart.

        The first is released on the next advance(); the rest follow as
        logical time passes.
        """
        level = Priority.clamp(priority)
        now = self._state.tick
        for i in range(max(0, int(count))):
            self._state.scheduled.append(
                ScheduledAdmission(due_at=now + i * BURST_STAGGER_MS, priority=level)
            )

    def _release_scheduled(self) -> None:
        state = self._state
        due = sorted(
            (s for s in state.scheduled if s.due_at <= state.tick),
            key=lambda s: s.due_at,
        )
        if not due:
            return
        state.scheduled = [s for s in state.scheduled if s.due_at > state.tick]
        for admission in due:
            self._admit(admission.priority, admission.due_at)

    # --- Time ---

    def advance(self, delta_ms: float) -> None:
        """
        Move logical time forward and run one step.

        Args:
            delta_ms: Elapsed milliseconds before the speed multiplier.
                Negative values are treated as zero.
        """
        if self._paused:
            return
        state = self._state
        state.tick += max(0.0, float(delta_ms)) * self._speed
        self._release_scheduled()
        step(state)

    @property
    def tick(self) -> float:
        """Current logical time in milliseconds."""
        return self._state.tick

    # --- Controls ---

    def set_target_workers(self, count: int) -> None:
        """Set the target directly. Counts as activity, delaying scale-down."""
        self._state.target_workers = clamp_target(self._state, count)
        self._state.last_activity = self._state.tick

    @property
    def target_workers(self) -> int:
        return self._state.target_workers

    def set_speed(self, multiplier: float) -> None:
        self._speed = max(MIN_SPEED, min(MAX_SPEED, float(multiplier)))

    @property
    def speed(self) -> float:
        return self._speed

    def set_paused(self, paused: bool) -> None:
        self._paused = bool(paused)

    def toggle_pause(self) -> bool:
        self._paused = not self._paused
        return self._paused

    @property
    def paused(self) -> bool:
        return self._paused

    def reset(self) -> None:
        """Return to a freshly constructed engine with the same configuration."""
        self._state = self._fresh_state()
        logger.debug("Engine reset (min_workers=%d)", self._config.min_workers)

    def set_config(self, changes: Mapping[str, Any] | None = None, **fields: Any) -> None:
        """
        Merge fields into the live configuration.

        Takes effect on the next advance().

        Raises:
            ValueError: If a field name is not a known setting.
        """
        updates = dict(changes or {})
        updates.update(fields)
        self._config = self._config.merged(**updates)
        self._state.config = self._config
        self._state.target_workers = clamp_target(self._state, self._state.target_workers)

    @property
    def config(self) -> EngineConfig:
        return copy.copy(self._config)

    # --- Read access ---

    def get_state(self) -> Snapshot:
        """Deep copy of the current state. Mutating it does not touch the engine."""
        state = self._state
        return Snapshot(
            tick=state.tick,
            items=tuple(copy.deepcopy(state.items)),
            workers=tuple(copy.deepcopy(state.workers)),
            metrics=copy.copy(state.metrics),
            config=copy.copy(self._config),
            target_workers=state.target_workers,
            paused=self._paused,
            speed=self._speed,
        )

    def get_item(self, item_id: str) -> Item | None:
        """Copy of an item by ID, or None once it has been pruned."""
        item = self._state.find_item(item_id)
        return copy.copy(item) if item else None

    def list_items(self, *, state: ItemState | None = None, limit: int | None = None) -> list[Item]:
        """
        List items, optionally filtered by state.

        Returns:
            Copies of matching items in admission order.
        """
        result = []
        for item in sorted(self._state.items, key=lambda i: i.seq):
            if state is not None and item.state != state:
                continue
            result.append(copy.copy(item))
            if limit is not None and len(result) >= limit:
                break
        return result

    @property
    def pending_admissions(self) -> int:
        """Burst admissions not yet released."""
        return len(self._state.scheduled)

    # --- Layout hints ---

    def get_worker_spacing(self) -> float:
        """Vertical spacing between drawn workers for the current pool size."""
        count = sum(1 for w in self._state.workers if w.state != WorkerState.STOPPED)
        if count <= 1:
            return MAX_WORKER_SPACING
        available = WORKER_ZONE_BOTTOM - WORKER_ZONE_TOP - WORKER_ZONE_PADDING
        return min(MAX_WORKER_SPACING, max(MIN_WORKER_SPACING, available / (count - 1)))

    def get_centerline(self) -> float:
        return CENTERLINE_Y
