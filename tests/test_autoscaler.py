"""Autoscaler tests: scale up, scale from zero, scale down, reconcile."""

import scalecue
from scalecue.autoscaler import evaluate, observe, reconcile
from scalecue.config import EngineConfig
from scalecue.models import Item, ItemState, SimulationState, Worker, WorkerState

from conftest import item_state, run_for


class TestScaleUp:
    def test_target_matches_demand(self):
        """Two items, target 1 per worker: two workers."""
        engine = scalecue.Engine(concurrency_target=1, max_workers=10)
        engine.add_item()
        engine.add_item()
        engine.advance(0)

        state = engine.get_state()
        assert state.target_workers == 2
        assert [w.state for w in state.workers] == [WorkerState.STARTING, WorkerState.STARTING]

    def test_target_capped_at_max_workers(self):
        engine = scalecue.Engine(max_workers=4)
        for _ in range(15):
            engine.add_item()
        engine.advance(0)

        state = engine.get_state()
        assert state.target_workers == 4
        assert len(state.workers) == 4

    def test_target_never_lowered_mid_burst(self):
        engine = scalecue.Engine(max_workers=10)
        for _ in range(6):
            engine.add_item()
        engine.advance(0)
        assert engine.target_workers == 6

        run_for(engine, 3100)
        assert engine.target_workers == 6

    def test_concurrency_target_divides_demand(self):
        engine = scalecue.Engine(concurrency_target=5)
        for _ in range(7):
            engine.add_item()
        engine.advance(0)
        assert engine.target_workers == 2


class TestScaleFromZero:
    def test_single_item_starts_one_worker(self):
        engine = scalecue.Engine(concurrency_target=5)
        engine.add_item()
        engine.advance(0)
        assert engine.target_workers == 1
        assert len(engine.get_state().workers) == 1

    def test_no_workers_allowed(self):
        engine = scalecue.Engine(max_workers=0)
        engine.add_item()
        engine.advance(0)
        assert engine.target_workers == 0
        assert engine.get_state().workers == ()

    def test_stopped_identity_is_reused(self):
        engine = scalecue.Engine(scale_down_delay_ms=1000)
        engine.add_item()
        engine.advance(0)
        run_for(engine, 8000)
        assert engine.get_state().workers[0].state == WorkerState.STOPPED

        engine.add_item()
        engine.advance(0)
        workers = engine.get_state().workers
        assert len(workers) == 1
        assert workers[0].id == 0
        assert workers[0].state == WorkerState.STARTING


class TestScaleDown:
    def test_scales_to_zero_after_idle_delay(self):
        engine = scalecue.Engine(scale_down_delay_ms=1000)
        engine.add_item()
        engine.advance(0)

        # Processing finishes at 5050; idle clock starts there
        run_for(engine, 6050)
        assert engine.target_workers == 1
        assert engine.get_state().workers[0].state == WorkerState.READY

        engine.advance(50)
        assert engine.target_workers == 0
        assert engine.get_state().workers[0].state == WorkerState.STOPPING

        run_for(engine, 1000)
        state = engine.get_state()
        assert state.workers[0].state == WorkerState.STOPPED
        assert state.metrics.active_workers == 0

    def test_scales_down_to_min_workers(self):
        engine = scalecue.Engine(min_workers=1, scale_down_delay_ms=1000)
        for _ in range(3):
            engine.add_item()
        engine.advance(0)
        assert engine.target_workers == 3

        run_for(engine, 8000)
        state = engine.get_state()
        assert state.target_workers == 1
        assert sum(1 for w in state.workers if w.is_live) == 1
        assert sum(1 for w in state.workers if w.state == WorkerState.STOPPED) == 2

    def test_busy_worker_is_never_stopped(self):
        engine = scalecue.Engine()
        item_id = engine.add_item()
        engine.advance(0)
        run_for(engine, 3100)
        assert item_state(engine, item_id) == ItemState.PROCESSING

        engine.set_target_workers(0)
        engine.advance(50)
        assert engine.get_state().workers[0].state == WorkerState.BUSY

        run_for(engine, 1850)  # tick 5000, still processing
        assert engine.get_state().workers[0].state == WorkerState.BUSY

        run_for(engine, 100)
        assert item_state(engine, item_id) == ItemState.DELIVERING
        assert engine.get_state().workers[0].state == WorkerState.STOPPING

    def test_manual_target_resets_idle_timer(self):
        engine = scalecue.Engine(scale_down_delay_ms=5000)
        engine.advance(0)
        run_for(engine, 5000)

        engine.set_target_workers(1)
        run_for(engine, 4000)
        state = engine.get_state()
        assert state.target_workers == 1
        assert state.workers[0].state == WorkerState.READY

        run_for(engine, 2000)
        state = engine.get_state()
        assert state.target_workers == 0
        assert state.workers[0].state in (WorkerState.STOPPING, WorkerState.STOPPED)


class TestReconcile:
    def _state(self, **config):
        return SimulationState(config=EngineConfig(**config))

    def test_restarts_stopped_before_creating(self):
        state = self._state(max_workers=3)
        state.workers = [Worker(id=0, state=WorkerState.STOPPED), Worker(id=1, state=WorkerState.READY)]
        state.next_worker_id = 2
        state.target_workers = 3

        started, stopped = reconcile(state)
        assert (started, stopped) == (2, 0)
        assert [w.id for w in state.workers] == [0, 1, 2]
        assert state.workers[0].state == WorkerState.STARTING

    def test_stopping_workers_count_toward_max(self):
        state = self._state(max_workers=2)
        state.workers = [Worker(id=0, state=WorkerState.STOPPING, stopping_at=0), Worker(id=1, state=WorkerState.READY)]
        state.next_worker_id = 2
        state.target_workers = 2

        reconcile(state)
        assert len(state.workers) == 2
        assert sum(1 for w in state.workers if w.state != WorkerState.STOPPED) == 2

    def test_stop_in_progress_is_not_doubled(self):
        state = self._state()
        state.workers = [Worker(id=0, state=WorkerState.STOPPING, stopping_at=0), Worker(id=1, state=WorkerState.READY)]
        state.target_workers = 1

        assert reconcile(state) == (0, 0)
        assert state.workers[1].state == WorkerState.READY

    def test_only_idle_ready_workers_stop(self):
        state = self._state(concurrency_target=2)
        state.workers = [
            Worker(id=0, state=WorkerState.STARTING, starting_at=0),
            Worker(id=1, state=WorkerState.READY, current_item_ids=["a"]),
            Worker(id=2, state=WorkerState.BUSY, current_item_ids=["b", "c"]),
            Worker(id=3, state=WorkerState.READY),
        ]
        state.target_workers = 0

        assert reconcile(state) == (0, 1)
        assert [w.state for w in state.workers] == [
            WorkerState.STARTING, WorkerState.READY, WorkerState.BUSY, WorkerState.STOPPING,
        ]


class TestObserve:
    def test_demand_counts(self):
        state = SimulationState(config=EngineConfig(concurrency_target=2))
        state.items = [
            Item(id="a", seq=0, state=ItemState.QUEUED),
            Item(id="b", seq=1, state=ItemState.WAITING_FOR_MODEL),
            Item(id="c", seq=2, state=ItemState.PROCESSING),
            Item(id="d", seq=3, state=ItemState.DELIVERING),
        ]
        state.workers = [
            Worker(id=0, state=WorkerState.BUSY),
            Worker(id=1, state=WorkerState.STARTING),
            Worker(id=2, state=WorkerState.STOPPED),
        ]

        demand = observe(state)
        assert (demand.waiting, demand.processing) == (2, 1)
        assert (demand.active, demand.starting) == (1, 1)
        assert demand.capacity == 4

    def test_in_flight_delivery_blocks_scale_down(self):
        state = SimulationState(config=EngineConfig(scale_down_delay_ms=0), tick=100)
        state.items = [Item(id="a", seq=0, state=ItemState.DELIVERING)]
        state.workers = [Worker(id=0, state=WorkerState.READY)]
        state.target_workers = 1

        assert evaluate(state) == 1
