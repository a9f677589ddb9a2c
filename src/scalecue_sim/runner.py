"""Simulation runner for scalecue-sim.

This module drives an Engine through a scenario, decoupled from display.
It updates a SimulationView object that can be rendered by any display.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

import aiosqlite

import scalecue
from scalecue.models import ItemState, Snapshot, TERMINAL_STATES
from scalecue_sim import recorder
from scalecue_sim.display import WorkerStatus
from scalecue_sim.scenarios import Arrival, get_scenario

if TYPE_CHECKING:
    from scalecue_sim.display import SimulationView

logger = logging.getLogger(__name__)

# Item transitions worth surfacing as events
ITEM_EVENTS = {
    ItemState.QUEUED,
    ItemState.WAITING_FOR_MODEL,
    ItemState.PROCESSING,
    ItemState.COMPLETED,
    ItemState.FAILED,
    ItemState.EXPIRED,
}


@dataclass
class SimConfig:
    """Configuration for a simulation run."""

    scenario: str = "steady"
    count: int = 20
    rate: float = 1.0  # arrivals per logical second
    jitter: float = 0.0  # ±fraction on arrival gaps
    high_priority: float = 0.1  # share of high-priority items where a scenario mixes
    low_priority: float = 0.2
    seed: int | None = None
    step_ms: float = 50.0
    speed: float = 1.0
    duration_ms: float | None = None  # logical cap, None = run until drained
    realtime: bool = True
    record_path: str | None = None
    engine: dict[str, Any] = field(default_factory=dict)  # EngineConfig overrides

    def engine_config(self) -> scalecue.EngineConfig:
        return scalecue.EngineConfig().merged(**self.engine)


class SimulationRunner:
    """Runs a scenario against an Engine and updates the view.

    This class is decoupled from display - it just updates the view.
    The display polls the view to render.

    Usage:
        config = SimConfig(scenario="burst", count=20)
        view = SimulationView()
        runner = SimulationRunner(config, view)

        # In your event loop:
        await runner.run()
    """

    def __init__(
        self,
        config: SimConfig,
        view: "SimulationView",
        on_event: Callable[[str, str, str], None] | None = None,
    ):
        self.config = config
        self.view = view
        self.on_event = on_event or view.add_event

        self.engine = scalecue.Engine(config.engine_config())
        self.scenario = get_scenario(config.scenario)
        self._running = False
        self._schedule: list[Arrival] = []
        self._item_states: dict[str, ItemState] = {}
        self._worker_states: dict[int, str] = {}
        self._last_target = self.engine.target_workers
        self._conn: aiosqlite.Connection | None = None
        self._run_id: int | None = None

    async def run(self) -> None:
        """Run the simulation until the workload drains or the cap is hit."""
        self._running = True
        self.engine.set_speed(self.config.speed)
        for name, value in self.scenario.PINNED_SETTINGS.items():
            if self.config.engine.get(name, value) != value:
                logger.warning(
                    "Scenario %s overrides %s=%s with %s",
                    self.config.scenario, name, self.config.engine[name], value,
                )
        self.scenario.configure(self.engine, self.config)

        rng = random.Random(self.config.seed)
        self._schedule = sorted(self.scenario.arrivals(self.config, rng))
        self._init_view()

        if self.config.record_path:
            self._conn = await recorder.init_db(self.config.record_path)
            self._run_id = await recorder.start_run(
                self._conn,
                self.config.scenario,
                self.engine.config.to_dict(),
                seed=self.config.seed,
            )

        while self._running:
            self._submit_due()
            self.engine.advance(self.config.step_ms)
            snapshot = self.engine.get_state()
            await self._observe(snapshot)

            if self._finished(snapshot):
                break

            if self.config.realtime:
                await asyncio.sleep(self.config.step_ms / 1000.0)
            else:
                await asyncio.sleep(0)

        await self._close_recording()
        self._running = False

    def _init_view(self) -> None:
        cfg = self.engine.config
        v = self.view
        v.scenario_name = self.scenario.info.name
        v.target_count = sum(a.count for a in self._schedule)
        v.speed = self.engine.speed
        v.max_queue_size = cfg.max_queue_size
        v.cold_start_ms = cfg.cold_start_time_ms
        v.processing_ms = cfg.processing_time_ms
        v.concurrency_target = cfg.concurrency_target
        v.min_workers = cfg.min_workers
        v.max_workers = cfg.max_workers

    def _submit_due(self) -> None:
        """Hand the engine every arrival whose time has come."""
        now = self.engine.tick
        while self._schedule and self._schedule[0].at_ms <= now:
            arrival = self._schedule.pop(0)
            if arrival.count > 1:
                self.engine.add_burst(arrival.count, arrival.priority)
                self.on_event("burst", f"x{arrival.count}", f"priority {int(arrival.priority)}")
            else:
                self.engine.add_item(arrival.priority)
            self.view.submitted += arrival.count

    async def _observe(self, snapshot: Snapshot) -> None:
        """Turn state changes into events and refresh the view."""
        v = self.view
        v.tick = snapshot.tick
        events: list[tuple[str, str, str]] = []

        seen: dict[str, ItemState] = {}
        for item in snapshot.items:
            seen[item.id] = item.state
            if self._item_states.get(item.id) != item.state and item.state in ITEM_EVENTS:
                detail = f"p{int(item.priority)}"
                if item.assigned_worker is not None:
                    detail += f" on w{item.assigned_worker}"
                events.append((item.state.value, item.id, detail))
        self._item_states = seen

        for worker in snapshot.workers:
            if self._worker_states.get(worker.id) != worker.state.value:
                if worker.state.value in ("starting", "ready", "stopping", "stopped"):
                    events.append(("worker", f"w{worker.id}", worker.state.value))
            self._worker_states[worker.id] = worker.state.value

        if snapshot.target_workers != self._last_target:
            events.append(("scale", "pool", f"{self._last_target} -> {snapshot.target_workers}"))
            self._last_target = snapshot.target_workers

        for event_type, subject, details in events:
            self.on_event(event_type, subject, details)
            if self._conn is not None:
                await recorder.record_event(
                    self._conn, self._run_id, snapshot.tick, event_type, subject, details
                )

        self._update_view(snapshot)
        if self._conn is not None:
            await recorder.record_sample(self._conn, self._run_id, snapshot)

    def _update_view(self, snapshot: Snapshot) -> None:
        v = self.view
        m = snapshot.metrics
        v.queued = m.queued
        v.processing = m.processing
        v.completed = m.completed
        v.failed = m.failed
        v.expired = m.expired
        v.active_workers = m.active_workers
        v.ready_workers = m.ready_workers
        v.target_workers = snapshot.target_workers
        v.paused = snapshot.paused
        v.waiting = sum(1 for i in snapshot.items if i.state == ItemState.WAITING_FOR_MODEL)
        v.delivering = sum(1 for i in snapshot.items if i.state == ItemState.DELIVERING)

        capacity = snapshot.config.capacity
        waiting_by_worker: dict[int, int] = {}
        for item in snapshot.items:
            if item.state == ItemState.WAITING_FOR_MODEL and item.assigned_worker is not None:
                waiting_by_worker[item.assigned_worker] = waiting_by_worker.get(item.assigned_worker, 0) + 1
        v.workers = [
            WorkerStatus(
                id=w.id,
                state=w.state.value,
                claimed=len(w.current_item_ids),
                capacity=capacity,
                waiting=waiting_by_worker.get(w.id, 0),
            )
            for w in sorted(snapshot.workers, key=lambda w: w.id)
        ]

    def _finished(self, snapshot: Snapshot) -> bool:
        if self.config.duration_ms is not None and snapshot.tick >= self.config.duration_ms:
            return True
        if self._schedule or self.engine.pending_admissions:
            return False
        return all(item.state in TERMINAL_STATES for item in snapshot.items)

    async def _close_recording(self) -> None:
        if self._conn is None:
            return
        if self._run_id is not None:
            await recorder.finish_run(self._conn, self._run_id, self.engine.tick)
        await self._conn.close()
        self._conn = None

    @property
    def run_id(self) -> int | None:
        return self._run_id

    def stop(self) -> None:
        """Request simulation stop."""
        self._running = False

    async def cleanup(self) -> None:
        """Clean up resources. Call after interrupt or completion."""
        try:
            await self._close_recording()
        except aiosqlite.Error as e:
            logger.warning("Could not finalize recording: %s", e)
            self._conn = None
        self._running = False
