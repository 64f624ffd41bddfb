"""Core data models for the cloud connector."""

from .telemetry import TELEMETRY_TOPIC, DataPoint, Scalar, SignalValue, Trace
from .connection import TlsConfig
from .metrics import UNKNOWN_BYTES, DeliveryMetrics, HeapUsage, ResourceSample, ResourceSummary
from .lifecycle import RunResult, SchedulerState

__all__ = [
    # Telemetry
    "TELEMETRY_TOPIC",
    "DataPoint",
    "Scalar",
    "SignalValue",
    "Trace",
    # Connection
    "TlsConfig",
    # Metrics
    "UNKNOWN_BYTES",
    "DeliveryMetrics",
    "HeapUsage",
    "ResourceSample",
    "ResourceSummary",
    # Lifecycle
    "RunResult",
    "SchedulerState",
]
