"""Matching queued items to workers.

Two passes run every step, after the autoscaler has reconciled the pool:

1. Ready-capacity pass. Queued items in (priority, created_at) order are
   placed on ready/busy workers with spare slots, scanning from a
   persistent round-robin cursor. The pass stops at the first item that
   cannot be placed, so nothing behind it jumps ahead.
2. Starting-capacity pass. Whatever is still queued is spread round-robin
   over starting workers and moves to waiting_for_model, with at most
   ceil(remaining / starting) + 1 items waiting per worker. A worker at
   the cap is passed over for the next one in the rotation, and the pass
   stops once every starting worker is capped.
"""

from __future__ import annotations

import logging
import math

from scalecue.lifecycle import claim_slot
from scalecue.models import Item, ItemState, SimulationState, WorkerState

logger = logging.getLogger(__name__)


def queued_in_order(state: SimulationState) -> list[Item]:
    """Queued items sorted by priority, then arrival."""
    return sorted(state.items_in(ItemState.QUEUED), key=lambda item: item.sort_key)


def assign_to_ready(state: SimulationState, queued: list[Item]) -> int:
    """Place items on warm capacity. Returns the number placed."""
    capacity = state.config.capacity
    workers = sorted(
        (w for w in state.workers if w.is_serving and w.has_room(capacity)),
        key=lambda w: w.id,
    )
    if not workers:
        return 0

    assigned = 0
    for item in queued:
        start = state.rr_cursor % len(workers)
        placed = False
        for offset in range(len(workers)):
            index = (start + offset) % len(workers)
            worker = workers[index]
            if worker.has_room(capacity):
                claim_slot(state, item, worker)
                state.rr_cursor = (index + 1) % len(workers)
                assigned += 1
                placed = True
                break
        if not placed:
            # No head-of-line bypass
            break
    return assigned


def assign_to_starting(state: SimulationState, queued: list[Item]) -> int:
    """Reserve cold-starting workers for items still in the queue."""
    if not queued:
        return 0
    starting = sorted(state.workers_in(WorkerState.STARTING), key=lambda w: w.id)
    if not starting:
        return 0

    limit = math.ceil(len(queued) / len(starting)) + 1
    waiting_counts = {w.id: 0 for w in starting}
    for item in state.items_in(ItemState.WAITING_FOR_MODEL):
        if item.assigned_worker in waiting_counts:
            waiting_counts[item.assigned_worker] += 1

    assigned = 0
    position = 0
    for item in queued:
        # Next worker in the rotation that is still below the cap
        for offset in range(len(starting)):
            worker = starting[(position + offset) % len(starting)]
            if waiting_counts[worker.id] < limit:
                break
        else:
            # All starting workers capped
            break
        position = (position + offset + 1) % len(starting)
        item.state = ItemState.WAITING_FOR_MODEL
        item.picked_at = state.tick
        item.assigned_worker = worker.id
        waiting_counts[worker.id] += 1
        assigned += 1
    return assigned


def dispatch(state: SimulationState) -> int:
    """
    Run both dispatch passes.

    Returns:
        Total number of items that left the queue this step.
    """
    queued = queued_in_order(state)
    if not queued:
        return 0

    placed = assign_to_ready(state, queued)
    remaining = queued_in_order(state)
    reserved = assign_to_starting(state, remaining)

    if placed or reserved:
        logger.debug(
            "Dispatched %d to ready workers, %d to starting workers (%d still queued)",
            placed, reserved, len(remaining) - reserved,
        )
    return placed + reserved
