"""Delivery and resource metrics models."""

from dataclasses import asdict, dataclass

UNKNOWN_BYTES = -1  # heap figure not reported by the source


@dataclass(frozen=True)
class DeliveryMetrics:
    """Point-in-time snapshot of one connection's delivery counters."""

    published: int
    confirmed: int
    failed: int
    outstanding: int
    latency_total_ms: float
    latency_samples: int

    @property
    def average_latency_ms(self) -> float | None:
        """Mean confirmation latency, or None before the first latency sample."""
        if self.latency_samples == 0:
            return None
        return self.latency_total_ms / self.latency_samples

    def to_dict(self) -> dict:
        data = asdict(self)
        data["average_latency_ms"] = self.average_latency_ms
        return data


@dataclass(frozen=True)
class HeapUsage:
    """Used and maximum heap bytes reported by a heap probe."""

    used_bytes: int
    max_bytes: int = UNKNOWN_BYTES


@dataclass(frozen=True)
class ResourceSample:
    """One CPU + heap reading."""

    label: str
    cpu_percent: float
    used_heap_bytes: int
    max_heap_bytes: int


@dataclass(frozen=True)
class ResourceSummary:
    """
    Running averages over all samples taken so far.

    The heap average only covers samples with a heap reading
    (heap_sample_count); it is UNKNOWN_BYTES when there were none.
    """

    sample_count: int
    avg_cpu_percent: float
    avg_used_heap_bytes: int
    heap_sample_count: int = 0
