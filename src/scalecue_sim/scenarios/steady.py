"""Steady scenario - the default workload pattern.

A uniform stream of normal-priority items at the configured rate.
Shows the pool settling at the size the arrival rate needs.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from scalecue_sim.scenarios import Arrival, Scenario, ScenarioInfo

if TYPE_CHECKING:
    from scalecue_sim.runner import SimConfig


class SteadyScenario(Scenario):
    """Evenly spaced arrivals, optional jitter."""

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="steady",
            description="Uniform arrival stream (default)",
        )

    def arrivals(self, config: SimConfig, rng: random.Random) -> list[Arrival]:
        gap_ms = 1000.0 / config.rate if config.rate > 0 else 0.0
        schedule = []
        at = 0.0
        for _ in range(config.count):
            schedule.append(Arrival(at_ms=at))
            jitter = config.jitter
            at += gap_ms * rng.uniform(1 - jitter, 1 + jitter) if jitter else gap_ms
        return schedule
