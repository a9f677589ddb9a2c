"""Burst scenario - periodic spikes of traffic.

Items arrive in bursts separated by quiet gaps. Each burst drives the
autoscaler up; the gaps show whether capacity is released before the
next spike.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from scalecue_sim.scenarios import Arrival, Scenario, ScenarioInfo

if TYPE_CHECKING:
    from scalecue_sim.runner import SimConfig


class BurstScenario(Scenario):
    """Bursts of BURST_SIZE items every BURST_GAP_MS."""

    BURST_SIZE = 5
    BURST_GAP_MS = 8000.0

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="burst",
            description="Periodic bursts separated by quiet gaps",
        )

    def arrivals(self, config: SimConfig, rng: random.Random) -> list[Arrival]:
        schedule = []
        remaining = config.count
        at = 0.0
        while remaining > 0:
            size = min(self.BURST_SIZE, remaining)
            schedule.append(Arrival(at_ms=at, count=size))
            remaining -= size
            at += self.BURST_GAP_MS
        return schedule
