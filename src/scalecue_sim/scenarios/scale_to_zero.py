"""Scale-to-zero scenario - traffic, silence, traffic.

The first wave starts from an empty pool (cold start). A long quiet
period lets the autoscaler drain the pool back to zero, and the second
wave pays the cold start again.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from scalecue_sim.scenarios import Arrival, Scenario, ScenarioInfo

if TYPE_CHECKING:
    from scalecue_sim.runner import SimConfig


class ScaleToZeroScenario(Scenario):
    """Two waves separated by more than the scale-down delay."""

    IDLE_MARGIN_MS = 5000.0
    PINNED_SETTINGS = {"min_workers": 0}

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="scale_to_zero",
            description="Two waves with an idle gap long enough to scale to zero",
        )

    def arrivals(self, config: SimConfig, rng: random.Random) -> list[Arrival]:
        engine_config = config.engine_config()
        first = config.count // 2
        second = config.count - first
        gap_ms = 1000.0 / config.rate if config.rate > 0 else 0.0

        schedule = [Arrival(at_ms=i * gap_ms) for i in range(first)]
        # Long enough for the last item to finish, idle out and drain
        quiet_from = first * gap_ms + engine_config.cold_start_time_ms
        quiet_from += engine_config.processing_time_ms + engine_config.delivery_time_ms
        restart_at = quiet_from + engine_config.scale_down_delay_ms + self.IDLE_MARGIN_MS
        schedule.extend(Arrival(at_ms=restart_at + i * gap_ms) for i in range(second))
        return schedule
