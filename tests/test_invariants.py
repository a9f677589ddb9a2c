"""Properties that must hold after every step of a random workload."""

import random

import scalecue
from scalecue.models import ItemState, TERMINAL_STATES, WorkerState


CONFIG = dict(
    processing_time_ms=800,
    cold_start_time_ms=1500,
    delivery_time_ms=200,
    concurrency_target=2,
    max_workers=4,
    max_queue_wait_ms=3000,
    scale_down_delay_ms=2000,
)


def drive(engine: scalecue.Engine, seed: int, steps: int = 600, check=None) -> int:
    """Replay a seeded random workload. Returns the number of admissions."""
    rng = random.Random(seed)
    admitted = 0
    for _ in range(steps):
        roll = rng.random()
        if roll < 0.25:
            engine.add_item(rng.randint(0, 2))
            admitted += 1
        elif roll < 0.27:
            burst = rng.randint(2, 5)
            engine.add_burst(burst, rng.randint(0, 2))
            admitted += burst
        elif roll < 0.28:
            engine.set_target_workers(rng.randint(0, 6))
        engine.advance(rng.choice([0, 10, 50, 120, 400]))
        if check:
            check(engine)
    return admitted


def check_invariants(engine: scalecue.Engine) -> None:
    snapshot = engine.get_state()
    config = snapshot.config
    capacity = config.capacity

    assert 0 <= snapshot.target_workers <= config.max_workers
    assert sum(1 for w in snapshot.workers if w.state != WorkerState.STOPPED) <= config.max_workers

    by_id = {w.id: w for w in snapshot.workers}
    assert len(by_id) == len(snapshot.workers)
    for worker in snapshot.workers:
        assert len(worker.current_item_ids) <= capacity
        if worker.state in (WorkerState.STOPPED, WorkerState.STOPPING, WorkerState.STARTING):
            assert worker.current_item_ids == []

    claimed = [item_id for w in snapshot.workers for item_id in w.current_item_ids]
    assert len(claimed) == len(set(claimed))

    for item in snapshot.items:
        assert item.state != ItemState.REMOVED
        if item.state == ItemState.QUEUED:
            assert snapshot.tick - item.queued_at <= config.max_queue_wait_ms
        elif item.state == ItemState.WAITING_FOR_MODEL:
            assert snapshot.tick - item.picked_at <= config.max_queue_wait_ms
            assert item.assigned_worker in by_id
            assert item.id not in claimed
        elif item.state == ItemState.PROCESSING:
            assert item.id in by_id[item.assigned_worker].current_item_ids
            assert item.processing_started_at - item.picked_at <= config.max_queue_wait_ms
        elif item.state in TERMINAL_STATES:
            assert item.id not in claimed


class TestRandomWorkload:
    def test_invariants_hold_every_step(self):
        engine = scalecue.Engine(**CONFIG)
        drive(engine, seed=7, check=check_invariants)

    def test_invariants_hold_with_spare_slots(self):
        engine = scalecue.Engine(per_worker_concurrency=3, min_workers=1, **CONFIG)
        drive(engine, seed=11, check=check_invariants)

    def test_every_admission_is_accounted_for(self):
        engine = scalecue.Engine(**CONFIG)
        admitted = drive(engine, seed=3)
        # Let pending bursts land and everything settle
        for _ in range(400):
            engine.advance(50)

        snapshot = engine.get_state()
        m = snapshot.metrics
        open_items = sum(1 for i in snapshot.items if i.state not in TERMINAL_STATES)
        assert engine.pending_admissions == 0
        assert open_items == 0
        assert m.completed + m.expired + m.failed == admitted

    def test_same_inputs_same_state(self):
        first = scalecue.Engine(**CONFIG)
        second = scalecue.Engine(**CONFIG)
        drive(first, seed=21)
        drive(second, seed=21)
        assert first.get_state() == second.get_state()
