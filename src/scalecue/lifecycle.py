"""Item and worker state machines.

Every function here takes the owned SimulationState and mutates it in
place. Transitions are looked up per state in ITEM_TRANSITIONS so that
each ItemState has exactly one handler.
"""

from __future__ import annotations

import logging
from typing import Callable

from scalecue.models import Item, ItemState, SimulationState, Worker, WorkerState

logger = logging.getLogger(__name__)

# Engine-internal settle time between admission and validation.
ARRIVAL_MS = 0.0
# How long a terminal item stays visible before it is pruned.
TERMINAL_LINGER_MS = 1000.0
# Fixed drain time for a stopping worker.
STOP_DRAIN_MS = 1000.0


# --- Capacity accounting ---

def waited_too_long(state: SimulationState, item: Item) -> bool:
    """True once a reservation has outlived max_queue_wait_ms."""
    return state.tick - (item.picked_at or 0.0) > state.config.max_queue_wait_ms


def refresh_worker(worker: Worker, capacity: int) -> None:
    """Recompute ready/busy from the number of claimed items."""
    if not worker.is_serving:
        return
    if len(worker.current_item_ids) >= capacity:
        worker.state = WorkerState.BUSY
    else:
        worker.state = WorkerState.READY


def claim_slot(state: SimulationState, item: Item, worker: Worker) -> None:
    """Put an item into processing on a worker that has room."""
    now = state.tick
    worker.current_item_ids.append(item.id)
    item.state = ItemState.PROCESSING
    item.assigned_worker = worker.id
    if item.picked_at is None:
        item.picked_at = now
    item.processing_started_at = now
    refresh_worker(worker, state.config.capacity)


def release_slot(state: SimulationState, item: Item) -> Worker | None:
    """Free the slot held by an item. Returns the worker it was on, if any."""
    for worker in state.workers:
        if item.id in worker.current_item_ids:
            worker.current_item_ids.remove(item.id)
            refresh_worker(worker, state.config.capacity)
            return worker
    return None


def hand_off_waiting(state: SimulationState, worker: Worker) -> int:
    """
    Give free slots on a serving worker to the items waiting for it.

    Waiting items are served in (priority, created_at) order.
    Items already past their wait limit are left for their own
    transition to expire.

    Returns:
        Number of items that moved into processing.
    """
    if not worker.is_serving:
        return 0
    capacity = state.config.capacity
    waiting = sorted(
        (
            item for item in state.items
            if item.state == ItemState.WAITING_FOR_MODEL
            and item.assigned_worker == worker.id
            and not waited_too_long(state, item)
        ),
        key=lambda item: item.sort_key,
    )
    claimed = 0
    for item in waiting:
        if not worker.has_room(capacity):
            break
        claim_slot(state, item, worker)
        claimed += 1
    return claimed


# --- Item transitions ---

def _finish(state: SimulationState, item: Item, outcome: ItemState) -> None:
    item.state = outcome
    item.finished_at = state.tick
    if outcome == ItemState.COMPLETED:
        item.completed_at = state.tick
        state.total_completed += 1
    elif outcome == ItemState.EXPIRED:
        state.total_expired += 1
    elif outcome == ItemState.FAILED:
        state.total_failed += 1


def _on_entering(state: SimulationState, item: Item) -> None:
    if state.tick - item.created_at >= ARRIVAL_MS:
        item.state = ItemState.VALIDATING


def _on_validating(state: SimulationState, item: Item) -> None:
    # Queueing does not wait for worker availability
    item.state = ItemState.QUEUED
    item.queued_at = state.tick
    state.last_activity = state.tick


def _on_queued(state: SimulationState, item: Item) -> None:
    waited = state.tick - (item.queued_at or 0.0)
    if waited > state.config.max_queue_wait_ms:
        logger.debug("Item %s expired in queue after %.0fms", item.id, waited)
        _finish(state, item, ItemState.EXPIRED)


def _on_waiting_for_model(state: SimulationState, item: Item) -> None:
    worker = state.find_worker(item.assigned_worker)
    if waited_too_long(state, item):
        logger.debug("Item %s expired waiting for worker %s", item.id, item.assigned_worker)
        if worker is not None and item.id in worker.current_item_ids:
            worker.current_item_ids.remove(item.id)
            refresh_worker(worker, state.config.capacity)
        item.assigned_worker = None
        _finish(state, item, ItemState.EXPIRED)
        return

    if worker is not None and worker.is_serving and worker.has_room(state.config.capacity):
        claim_slot(state, item, worker)


def _on_processing(state: SimulationState, item: Item) -> None:
    elapsed = state.tick - (item.processing_started_at or 0.0)
    if elapsed <= state.config.processing_time_ms:
        return
    worker = release_slot(state, item)
    item.assigned_worker = None
    item.state = ItemState.DELIVERING
    state.last_activity = state.tick
    if worker is not None:
        hand_off_waiting(state, worker)


def _on_delivering(state: SimulationState, item: Item) -> None:
    started = item.processing_started_at or 0.0
    delivery = state.tick - started - state.config.processing_time_ms
    if delivery > state.config.delivery_time_ms:
        _finish(state, item, ItemState.COMPLETED)


def _on_terminal(state: SimulationState, item: Item) -> None:
    finished = item.finished_at if item.finished_at is not None else state.tick
    if state.tick - finished >= TERMINAL_LINGER_MS:
        item.state = ItemState.REMOVED


def _on_removed(state: SimulationState, item: Item) -> None:
    pass


ITEM_TRANSITIONS: dict[ItemState, Callable[[SimulationState, Item], None]] = {
    ItemState.ENTERING: _on_entering,
    ItemState.VALIDATING: _on_validating,
    ItemState.QUEUED: _on_queued,
    ItemState.WAITING_FOR_MODEL: _on_waiting_for_model,
    ItemState.PROCESSING: _on_processing,
    ItemState.DELIVERING: _on_delivering,
    ItemState.COMPLETED: _on_terminal,
    ItemState.FAILED: _on_terminal,
    ItemState.EXPIRED: _on_terminal,
    ItemState.RATE_LIMITED: _on_terminal,
    ItemState.REMOVED: _on_removed,
}


def advance_item(state: SimulationState, item: Item) -> None:
    """Run an item's transitions until its state is stable for this tick."""
    for _ in range(len(ITEM_TRANSITIONS)):
        before = item.state
        ITEM_TRANSITIONS[before](state, item)
        if item.state == before:
            return


def advance_items(state: SimulationState) -> None:
    for item in sorted(state.items, key=lambda i: i.seq):
        advance_item(state, item)


def prune_items(state: SimulationState) -> int:
    """Drop removed items. Returns how many were dropped."""
    before = len(state.items)
    state.items = [item for item in state.items if item.state != ItemState.REMOVED]
    return before - len(state.items)


# --- Worker transitions ---

def start_worker(state: SimulationState, worker: Worker) -> None:
    worker.state = WorkerState.STARTING
    worker.starting_at = state.tick
    worker.stopping_at = None
    worker.current_item_ids = []


def stop_worker(state: SimulationState, worker: Worker) -> None:
    worker.state = WorkerState.STOPPING
    worker.stopping_at = state.tick
    worker.starting_at = None
    worker.current_item_ids = []
    logger.debug("Worker %s is stopping", worker.id)


def advance_worker(state: SimulationState, worker: Worker) -> None:
    now = state.tick
    if worker.state == WorkerState.STARTING and worker.starting_at is not None:
        if now - worker.starting_at >= state.config.cold_start_time_ms:
            worker.state = WorkerState.READY
            worker.starting_at = None
            logger.debug("Worker %s is ready", worker.id)
            hand_off_waiting(state, worker)
    elif worker.state == WorkerState.STOPPING and worker.stopping_at is not None:
        if now - worker.stopping_at >= STOP_DRAIN_MS:
            worker.state = WorkerState.STOPPED
            worker.stopping_at = None
            logger.debug("Worker %s has stopped", worker.id)


def advance_workers(state: SimulationState) -> None:
    for worker in sorted(state.workers, key=lambda w: w.id):
        advance_worker(state, worker)
