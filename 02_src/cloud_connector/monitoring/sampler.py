"""ResourceSampler: best-effort CPU and heap figures with running averages."""

from threading import Lock
from typing import Sequence

from ..logging_config import get_logger
from ..models import UNKNOWN_BYTES, HeapUsage, ResourceSample, ResourceSummary
from .probes import CpuProbe, HeapProbe, default_cpu_probes, default_heap_probes, select_heap_probe

logger = get_logger(__name__)


def format_percent(percent: float) -> str:
    return f"{percent:.2f}%"


def format_bytes(size: int) -> str:
    """Human readable size with base-1024 units."""
    if size < 0:
        return "unknown"
    if size < 1024:
        return f"{size} B"
    if size < 1024**2:
        return f"{size / 1024:.1f} KB"
    if size < 1024**3:
        return f"{size / 1024**2:.1f} MB"
    return f"{size / 1024**3:.1f} GB"


class ResourceSampler:
    """Samples CPU and heap usage and keeps running averages across samples."""

    def __init__(
        self,
        cpu_probes: Sequence[CpuProbe] | None = None,
        heap_probes: Sequence[HeapProbe] | None = None,
    ):
        self._cpu_probes = list(cpu_probes) if cpu_probes is not None else default_cpu_probes()
        self._heap_probe = select_heap_probe(
            heap_probes if heap_probes is not None else default_heap_probes()
        )
        if self._heap_probe is None:
            logger.warning("No heap introspection source available")
        else:
            logger.debug("Using heap source %s", self._heap_probe.name)

        self._lock = Lock()
        self._sample_count = 0
        self._cumulative_cpu_percent = 0.0
        self._cumulative_used_bytes = 0
        self._heap_sample_count = 0

    @property
    def heap_source(self) -> str | None:
        return self._heap_probe.name if self._heap_probe else None

    @property
    def sample_count(self) -> int:
        return self._sample_count

    def sample(self, label: str) -> ResourceSample:
        """Take one reading, update the running averages and log both."""
        cpu_percent = self._read_cpu_percent()
        heap = self._read_heap()

        with self._lock:
            self._sample_count += 1
            self._cumulative_cpu_percent += cpu_percent
            if heap is not None:
                self._heap_sample_count += 1
                self._cumulative_used_bytes += heap.used_bytes
            summary = self._summary_locked()

        used_bytes = heap.used_bytes if heap is not None else UNKNOWN_BYTES
        max_bytes = heap.max_bytes if heap is not None else UNKNOWN_BYTES
        logger.info(
            "[%s] CPU: %s, avg CPU: %s | Memory used: %s, avg used: %s, max: %s",
            label,
            format_percent(cpu_percent),
            format_percent(summary.avg_cpu_percent),
            format_bytes(used_bytes),
            format_bytes(summary.avg_used_heap_bytes),
            format_bytes(max_bytes),
            extra={
                "context": {
                    "label": label,
                    "cpu_percent": cpu_percent,
                    "avg_cpu_percent": summary.avg_cpu_percent,
                    "used_heap_bytes": used_bytes,
                    "avg_used_heap_bytes": summary.avg_used_heap_bytes,
                    "max_heap_bytes": max_bytes,
                    "samples": summary.sample_count,
                }
            },
        )
        return ResourceSample(
            label=label,
            cpu_percent=cpu_percent,
            used_heap_bytes=used_bytes,
            max_heap_bytes=max_bytes,
        )

    def summary(self) -> ResourceSummary | None:
        """Running averages, or None before the first sample."""
        with self._lock:
            if self._sample_count == 0:
                return None
            return self._summary_locked()

    def log_summary(self) -> None:
        """Log the averages over all samples."""
        summary = self.summary()
        if summary is None:
            logger.info("Resource monitor: no samples collected.")
            return
        logger.info(
            "Resource monitor summary over %d samples: avg CPU: %s, avg memory used: %s",
            summary.sample_count,
            format_percent(summary.avg_cpu_percent),
            format_bytes(summary.avg_used_heap_bytes),
            extra={"context": {"samples": summary.sample_count, "heap_samples": summary.heap_sample_count}},
        )

    def _summary_locked(self) -> ResourceSummary:
        return ResourceSummary(
            sample_count=self._sample_count,
            avg_cpu_percent=self._cumulative_cpu_percent / self._sample_count,
            avg_used_heap_bytes=(
                self._cumulative_used_bytes // self._heap_sample_count
                if self._heap_sample_count
                else UNKNOWN_BYTES
            ),
            heap_sample_count=self._heap_sample_count,
        )

    def _read_cpu_percent(self) -> float:
        for probe in self._cpu_probes:
            value = probe.read_cpu_percent()
            if value is not None:
                return value
        return 0.0

    def _read_heap(self) -> HeapUsage | None:
        if self._heap_probe is None:
            return None
        return self._heap_probe.read_heap()
