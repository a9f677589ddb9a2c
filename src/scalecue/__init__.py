"""scalecue - A discrete-time model of an autoscaling job-processing tier."""

from scalecue.config import EngineConfig
from scalecue.engine import Engine
from scalecue.models import (
    Item,
    ItemState,
    Metrics,
    Priority,
    Snapshot,
    Worker,
    WorkerState,
)

__version__ = "0.1.0"
__all__ = [
    "Engine",
    "EngineConfig",
    "Item",
    "ItemState",
    "Metrics",
    "Priority",
    "Snapshot",
    "Worker",
    "WorkerState",
]
