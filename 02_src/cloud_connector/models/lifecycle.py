"""Publish run lifecycle models."""

from dataclasses import dataclass
from enum import Enum

from .metrics import DeliveryMetrics


class SchedulerState(str, Enum):
    """Publish scheduler states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    RUNNING = "running"
    DRAINING = "draining"
    DISCONNECTED = "disconnected"


@dataclass
class RunResult:
    """Outcome of one publish run."""

    device_name: str
    state: SchedulerState
    metrics: DeliveryMetrics
    trace_length: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None
