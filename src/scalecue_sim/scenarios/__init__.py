"""Built-in scenarios for scalecue-sim.

Scenarios define workload shapes - when items arrive and at what priority.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from scalecue.models import Priority

if TYPE_CHECKING:
    import scalecue
    from scalecue_sim.runner import SimConfig


@dataclass
class ScenarioInfo:
    """Metadata about a scenario."""
    name: str
    description: str


@dataclass(order=True)
class Arrival:
    """Items to admit at a logical time.

    count > 1 is submitted as a burst, staggered by the engine.
    """
    at_ms: float
    priority: Priority = Priority.NORMAL
    count: int = 1


class Scenario(ABC):
    """Base class for simulation scenarios.

    A scenario defines:
    - Engine settings it needs (optional)
    - The arrival schedule

    Settings in PINNED_SETTINGS are forced by configure(); the CLI rejects
    flags that contradict them.
    """

    PINNED_SETTINGS: dict[str, Any] = {}

    @property
    @abstractmethod
    def info(self) -> ScenarioInfo:
        """Return scenario metadata."""
        ...

    def configure(self, engine: "scalecue.Engine", config: "SimConfig") -> None:
        """Adjust engine settings before the run. Default: apply PINNED_SETTINGS."""
        if self.PINNED_SETTINGS:
            engine.set_config(**self.PINNED_SETTINGS)

    @abstractmethod
    def arrivals(self, config: "SimConfig", rng: random.Random) -> list[Arrival]:
        """Build the arrival schedule.

        Args:
            config: Simulation configuration (count, rate, priority mix)
            rng: Seeded random source, the only randomness a scenario may use
        """
        ...


def pick_priority(config: "SimConfig", rng: random.Random) -> Priority:
    """Draw a priority from the configured high/low mix."""
    roll = rng.random()
    if roll < config.high_priority:
        return Priority.HIGH
    if roll < config.high_priority + config.low_priority:
        return Priority.LOW
    return Priority.NORMAL


# Import built-in scenarios
from scalecue_sim.scenarios.steady import SteadyScenario
from scalecue_sim.scenarios.burst import BurstScenario
from scalecue_sim.scenarios.priority_mix import PriorityMixScenario
from scalecue_sim.scenarios.scale_to_zero import ScaleToZeroScenario

# Registry of built-in scenarios
SCENARIOS: dict[str, type[Scenario]] = {
    "steady": SteadyScenario,
    "burst": BurstScenario,
    "priority_mix": PriorityMixScenario,
    "scale_to_zero": ScaleToZeroScenario,
}


def get_scenario(name: str) -> Scenario:
    """Get a scenario instance by name."""
    if name not in SCENARIOS:
        available = ", ".join(SCENARIOS.keys())
        raise ValueError(f"Unknown scenario: {name}. Available: {available}")
    return SCENARIOS[name]()


def list_scenarios() -> list[ScenarioInfo]:
    """List all available scenarios."""
    return [cls().info for cls in SCENARIOS.values()]
