"""Shared helpers for scalecue tests."""

import pytest

import scalecue
from scalecue.models import ItemState


def run_for(engine: scalecue.Engine, total_ms: float, step_ms: float = 50.0) -> None:
    """Advance an engine in fixed steps."""
    elapsed = 0.0
    while elapsed < total_ms:
        delta = min(step_ms, total_ms - elapsed)
        engine.advance(delta)
        elapsed += delta


def item_state(engine: scalecue.Engine, item_id: str) -> ItemState | None:
    item = engine.get_item(item_id)
    return item.state if item else None


@pytest.fixture
def warm_engine():
    """Engine with two ready workers, two slots each."""
    engine = scalecue.Engine(concurrency_target=2, min_workers=2, max_workers=10)
    engine.advance(0)
    engine.advance(3000)
    return engine
