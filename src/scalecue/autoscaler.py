"""Sizing the worker pool from observed demand.

Rules are evaluated in order each step:

1. Scale up when waiting + processing exceeds pool capacity. The target
   only ever rises during a burst.
2. Scale from zero when there is demand and no worker is up: the target
   is raised to at least max(1, min_workers), never lowered.
3. Scale down to min_workers once every worker is idle, nothing is in
   flight and no activity has been seen for scale_down_delay_ms.
4. Reconcile the pool toward the target.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from scalecue.lifecycle import start_worker, stop_worker
from scalecue.models import (
    ItemState,
    SimulationState,
    TERMINAL_STATES,
    Worker,
    WorkerState,
)

logger = logging.getLogger(__name__)


@dataclass
class Demand:
    """What the autoscaler sees in one step."""

    waiting: int
    processing: int
    active: int  # ready or busy
    starting: int
    capacity: int

    @property
    def load(self) -> int:
        return self.waiting + self.processing

    @property
    def provisioned(self) -> int:
        return self.active + self.starting


def clamp_target(state: SimulationState, count: int) -> int:
    return max(0, min(int(count), state.config.max_workers))


def observe(state: SimulationState) -> Demand:
    waiting = len(state.items_in(ItemState.QUEUED, ItemState.WAITING_FOR_MODEL))
    processing = len(state.items_in(ItemState.PROCESSING))
    active = len(state.workers_in(WorkerState.READY, WorkerState.BUSY))
    starting = len(state.workers_in(WorkerState.STARTING))
    capacity = (active + starting) * state.config.concurrency_target
    return Demand(waiting, processing, active, starting, capacity)


def evaluate(state: SimulationState, demand: Demand | None = None) -> int:
    """
    Apply the scale-up, scale-from-zero and scale-down rules.

    Returns:
        The target worker count after the rules ran.
    """
    config = state.config
    demand = demand or observe(state)
    per_worker = max(1, config.concurrency_target)
    state.target_workers = clamp_target(state, state.target_workers)

    if demand.load > demand.capacity and demand.provisioned < config.max_workers:
        target = clamp_target(state, math.ceil(demand.load / per_worker))
        if target > state.target_workers:
            logger.debug(
                "Scaling up: load=%d capacity=%d target=%d",
                demand.load, demand.capacity, target,
            )
            state.target_workers = target

    if demand.load > 0 and not any(w.state != WorkerState.STOPPED for w in state.workers):
        floor = clamp_target(state, max(1, config.min_workers))
        if state.target_workers < floor:
            logger.debug("Scaling from zero: waiting=%d target=%d", demand.waiting, floor)
            state.target_workers = floor

    idle_for = state.tick - state.last_activity
    all_idle = all(w.state in (WorkerState.READY, WorkerState.STOPPED) for w in state.workers)
    in_flight = any(item.state not in TERMINAL_STATES for item in state.items)
    if all_idle and not in_flight and idle_for > config.scale_down_delay_ms:
        floor = clamp_target(state, config.min_workers)
        if state.target_workers > floor:
            logger.debug("Scaling down: idle for %.0fms, target=%d", idle_for, floor)
            state.target_workers = floor

    return state.target_workers


def _new_worker(state: SimulationState) -> Worker:
    worker = Worker(id=state.next_worker_id)
    state.next_worker_id += 1
    state.workers.append(worker)
    return worker


def reconcile(state: SimulationState) -> tuple[int, int]:
    """
    Move the pool toward the target.

    Growth restarts stopped workers before creating new ones and never
    lets non-stopped workers exceed max_workers. Shrinking only stops
    ready workers holding no items; busy and starting workers are left
    alone. Workers already stopping count toward max_workers but not
    toward the target.

    Returns:
        (started, stopped) counts for this step.
    """
    target = clamp_target(state, state.target_workers)
    max_workers = state.config.max_workers
    live = [w for w in state.workers if w.is_live]
    started = stopped = 0

    while len(live) < target:
        non_stopped = sum(1 for w in state.workers if w.state != WorkerState.STOPPED)
        if non_stopped >= max_workers:
            break
        worker = next(
            (w for w in sorted(state.workers, key=lambda w: w.id) if w.state == WorkerState.STOPPED),
            None,
        )
        if worker is None:
            worker = _new_worker(state)
        start_worker(state, worker)
        live.append(worker)
        started += 1
        logger.debug("Worker %s is starting", worker.id)

    while len(live) > target:
        idle = next(
            (
                w for w in sorted(state.workers, key=lambda w: w.id)
                if w.state == WorkerState.READY and not w.current_item_ids
            ),
            None,
        )
        if idle is None:
            break
        stop_worker(state, idle)
        live.remove(idle)
        stopped += 1

    return started, stopped


def autoscale(state: SimulationState) -> int:
    """Evaluate the scaling rules and reconcile. Returns the target."""
    target = evaluate(state)
    reconcile(state)
    return target
