"""Priority mix scenario - contention between priority levels.

Arrivals outpace a capped pool, so the queue grows and dispatch order
matters. High-priority items should overtake normal and low ones that
arrived earlier.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from scalecue_sim.scenarios import Arrival, Scenario, ScenarioInfo, pick_priority

if TYPE_CHECKING:
    import scalecue
    from scalecue_sim.runner import SimConfig


class PriorityMixScenario(Scenario):
    """Random priorities on a pool held to a few workers."""

    MAX_WORKERS = 3

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="priority_mix",
            description="Mixed priorities contending for a capped pool",
        )

    def configure(self, engine: scalecue.Engine, config: SimConfig) -> None:
        if "max_workers" not in config.engine:
            engine.set_config(max_workers=self.MAX_WORKERS)

    def arrivals(self, config: SimConfig, rng: random.Random) -> list[Arrival]:
        gap_ms = 1000.0 / config.rate if config.rate > 0 else 0.0
        return [
            Arrival(at_ms=i * gap_ms, priority=pick_priority(config, rng))
            for i in range(config.count)
        ]
