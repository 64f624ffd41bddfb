"""CPU and heap introspection probes.

Each probe wraps one introspection source and answers None when the source is
unavailable on this runtime. The sampler walks an ordered list of probes and
uses the first answer.
"""

import os
import time
import tracemalloc
from threading import Lock
from typing import Callable, Protocol, Sequence

import psutil

from ..models import HeapUsage

DEFAULT_TICKS_PER_SECOND = 100
DEFAULT_MIN_WINDOW_MS = 1000


def clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, value))


class CpuProbe(Protocol):
    """Source of process CPU utilisation."""

    name: str

    def read_cpu_percent(self) -> float | None:
        """CPU percentage in [0, 100], or None when unsupported."""
        ...


class HeapProbe(Protocol):
    """Source of heap usage."""

    name: str

    def read_heap(self) -> HeapUsage | None:
        """Used and maximum heap bytes, or None when unsupported."""
        ...


class ProcessCpuLoadProbe:
    """Process CPU load as reported by psutil, normalised across all cores."""

    name = "process-cpu-load"

    def __init__(self, process: psutil.Process | None = None, cpu_count: int | None = None):
        self._cpu_count = cpu_count or psutil.cpu_count() or 1
        try:
            self._process = process or psutil.Process()
            # first call only starts psutil's measurement interval
            self._process.cpu_percent(None)
        except psutil.Error:
            self._process = None

    def read_cpu_percent(self) -> float | None:
        if self._process is None:
            return None
        try:
            percent = self._process.cpu_percent(None)
        except psutil.Error:
            return None

        load = percent / (100.0 * self._cpu_count)
        if not 0.0 <= load <= 1.0:
            return None
        return clamp_percent(load * 100.0)


class ProcStatCpuProbe:
    """
    CPU percentage from the process tick counters in /proc/<pid>/stat.

    Ticks are coarse (typically 10 ms), so short intervals often show no
    progress at all. Deltas are therefore accumulated until at least
    ``min_window_ms`` of wall-clock time has passed; calls in between return
    the last computed value.
    """

    name = "proc-stat-ticks"

    def __init__(
        self,
        stat_path: str = "/proc/self/stat",
        *,
        ticks_per_second: int = DEFAULT_TICKS_PER_SECOND,
        min_window_ms: int = DEFAULT_MIN_WINDOW_MS,
        cpu_count: int | None = None,
        clock: Callable[[], int] = time.monotonic_ns,
    ):
        self._stat_path = stat_path
        self._ticks_per_second = ticks_per_second
        self._min_window_ns = min_window_ms * 1_000_000
        self._cpu_count = cpu_count or os.cpu_count() or 1
        self._clock = clock
        self._lock = Lock()

        self._last_ticks: int | None = None
        self._last_wall_ns: int | None = None
        self._acc_ticks = 0
        self._acc_wall_ns = 0
        self._last_value = 0.0

    def read_ticks(self) -> int | None:
        """utime + stime of the process, in clock ticks."""
        try:
            with open(self._stat_path, encoding="ascii") as f:
                content = f.read()
            # comm (field 2) may contain spaces; count fields after its closing paren
            fields = content[content.rindex(")") + 2 :].split()
            return int(fields[11]) + int(fields[12])
        except (OSError, ValueError, IndexError):
            return None

    def read_cpu_percent(self) -> float | None:
        ticks = self.read_ticks()
        if ticks is None:
            return None
        now = self._clock()

        with self._lock:
            if self._last_ticks is not None and self._last_wall_ns is not None:
                self._acc_ticks += max(0, ticks - self._last_ticks)
                self._acc_wall_ns += max(0, now - self._last_wall_ns)
            self._last_ticks = ticks
            self._last_wall_ns = now

            if self._acc_wall_ns >= self._min_window_ns:
                cpu_ns = self._acc_ticks * 1_000_000_000 / self._ticks_per_second
                self._last_value = clamp_percent(
                    cpu_ns / (self._acc_wall_ns * self._cpu_count) * 100.0
                )
                self._acc_ticks = 0
                self._acc_wall_ns = 0
            return self._last_value


class TracemallocHeapProbe:
    """Python heap traced by tracemalloc; only available while tracing."""

    name = "tracemalloc"

    def read_heap(self) -> HeapUsage | None:
        if not tracemalloc.is_tracing():
            return None
        current, _peak = tracemalloc.get_traced_memory()
        return HeapUsage(used_bytes=current)


class PsutilHeapProbe:
    """Resident set size of the process against physical memory."""

    name = "psutil-memory-info"

    def __init__(self, process: psutil.Process | None = None):
        try:
            self._process = process or psutil.Process()
        except psutil.Error:
            self._process = None

    def read_heap(self) -> HeapUsage | None:
        if self._process is None:
            return None
        try:
            used = self._process.memory_info().rss
            total = psutil.virtual_memory().total
        except psutil.Error:
            return None
        return HeapUsage(used_bytes=used, max_bytes=total)


class SysconfHeapProbe:
    """Total minus available physical memory, from sysconf."""

    name = "sysconf-total-minus-free"

    def read_heap(self) -> HeapUsage | None:
        try:
            page_size = os.sysconf("SC_PAGE_SIZE")
            total_pages = os.sysconf("SC_PHYS_PAGES")
            free_pages = os.sysconf("SC_AVPHYS_PAGES")
        except (AttributeError, ValueError, OSError):
            return None
        if page_size <= 0 or total_pages <= 0 or free_pages < 0:
            return None
        return HeapUsage(
            used_bytes=(total_pages - free_pages) * page_size,
            max_bytes=total_pages * page_size,
        )


def default_cpu_probes() -> list[CpuProbe]:
    return [ProcessCpuLoadProbe(), ProcStatCpuProbe()]


def default_heap_probes() -> list[HeapProbe]:
    return [TracemallocHeapProbe(), PsutilHeapProbe(), SysconfHeapProbe()]


def select_heap_probe(probes: Sequence[HeapProbe]) -> HeapProbe | None:
    """First probe that answers now; the choice is kept for the sampler's lifetime."""
    for probe in probes:
        if probe.read_heap() is not None:
            return probe
    return None
