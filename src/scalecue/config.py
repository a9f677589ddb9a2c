"""Tunable parameters for the engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any


@dataclass
class EngineConfig:
    """Configuration for a simulation engine.

    All times are logical milliseconds. Defaults mirror a small
    scale-to-zero deployment: one slot per worker, ten workers max.
    """

    # Worker behavior
    processing_time_ms: float = 2000
    cold_start_time_ms: float = 3000
    per_worker_concurrency: int | None = None  # None = use concurrency_target

    # Autoscaling
    min_workers: int = 0
    max_workers: int = 10
    concurrency_target: int = 1
    scale_down_delay_ms: float = 15000

    # Queue behavior
    max_queue_wait_ms: float = 10000
    max_queue_size: int = 20  # Advisory, never enforced at admission

    # Outbound delivery
    delivery_time_ms: float = 500

    @property
    def capacity(self) -> int:
        """Slots per worker, never below 1."""
        slots = self.per_worker_concurrency
        if slots is None:
            slots = self.concurrency_target
        return max(1, int(slots))

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def merged(self, **changes: Any) -> EngineConfig:
        """
        Return a copy with the given fields replaced.

        Raises:
            ValueError: If a field name is not a known setting.
        """
        unknown = set(changes) - self.field_names()
        if unknown:
            names = ", ".join(sorted(unknown))
            raise ValueError(f"Unknown config field(s): {names}")
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
