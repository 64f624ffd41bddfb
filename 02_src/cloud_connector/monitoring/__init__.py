"""Monitoring module."""

from .probes import (
    CpuProbe,
    HeapProbe,
    ProcessCpuLoadProbe,
    ProcStatCpuProbe,
    PsutilHeapProbe,
    SysconfHeapProbe,
    TracemallocHeapProbe,
)
from .sampler import ResourceSampler, format_bytes, format_percent

__all__ = [
    "CpuProbe",
    "HeapProbe",
    "ProcessCpuLoadProbe",
    "ProcStatCpuProbe",
    "PsutilHeapProbe",
    "SysconfHeapProbe",
    "TracemallocHeapProbe",
    "ResourceSampler",
    "format_bytes",
    "format_percent",
]
