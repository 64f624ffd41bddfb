"""Tests for ResourceSampler and its probes."""

import logging

import pytest

from cloud_connector.models import UNKNOWN_BYTES, HeapUsage
from cloud_connector.monitoring import (
    ProcStatCpuProbe,
    ResourceSampler,
    SysconfHeapProbe,
    format_bytes,
    format_percent,
)

from conftest import FakeCpuProbe, FakeHeapProbe


def stat_line(utime: int, stime: int) -> str:
    # pid (comm) state ppid pgrp session tty_nr tpgid flags minflt cminflt majflt cmajflt utime stime ...
    return f"4242 (python worker) R 1 1 1 0 -1 0 0 0 0 0 {utime} {stime} 0 0 20 0 1 0\n"


class FakeClock:
    def __init__(self):
        self.now_ns = 0

    def __call__(self) -> int:
        return self.now_ns


class TestFormatting:
    """Tests for format_bytes() and format_percent()."""

    @pytest.mark.parametrize(
        "size, expected",
        [
            (512, "512 B"),
            (2048, "2.0 KB"),
            (5 * 1024**2, "5.0 MB"),
            (3 * 1024**3, "3.0 GB"),
            (UNKNOWN_BYTES, "unknown"),
        ],
    )
    def test_format_bytes(self, size, expected):
        assert format_bytes(size) == expected

    def test_format_percent(self):
        assert format_percent(12.345) == "12.35%"


class TestResourceSamplerSample:
    """Tests for ResourceSampler.sample()."""

    def test_sample_uses_probe_values(self):
        sampler = ResourceSampler(
            cpu_probes=[FakeCpuProbe([25.0])],
            heap_probes=[FakeHeapProbe([HeapUsage(1024, 4096)])],
        )

        sample = sampler.sample("before")

        assert sample.label == "before"
        assert sample.cpu_percent == 25.0
        assert sample.used_heap_bytes == 1024
        assert sample.max_heap_bytes == 4096

    def test_running_averages(self):
        """Averages cover every sample taken so far."""
        sampler = ResourceSampler(
            cpu_probes=[FakeCpuProbe([10.0, 30.0])],
            heap_probes=[FakeHeapProbe([HeapUsage(100), HeapUsage(100), HeapUsage(201)])],
        )

        sampler.sample("one")
        sampler.sample("two")

        summary = sampler.summary()
        assert summary.sample_count == 2
        assert summary.avg_cpu_percent == pytest.approx(20.0)
        assert summary.avg_used_heap_bytes == 150

    def test_cpu_falls_back_to_next_probe(self):
        """An unsupported CPU source defers to the next one."""
        unsupported = FakeCpuProbe([])
        fallback = FakeCpuProbe([42.0])
        sampler = ResourceSampler(cpu_probes=[unsupported, fallback], heap_probes=[])

        assert sampler.sample("x").cpu_percent == 42.0
        assert unsupported.calls == 1

    def test_no_sources(self):
        """Without any source, CPU is 0 and heap is unknown."""
        sampler = ResourceSampler(cpu_probes=[], heap_probes=[])

        sample = sampler.sample("bare")

        assert sample.cpu_percent == 0.0
        assert sample.used_heap_bytes == UNKNOWN_BYTES
        assert sample.max_heap_bytes == UNKNOWN_BYTES
        assert sampler.heap_source is None
        summary = sampler.summary()
        assert summary.heap_sample_count == 0
        assert summary.avg_used_heap_bytes == UNKNOWN_BYTES

    def test_missing_heap_reading_not_averaged(self):
        """A sample without a heap reading leaves the heap average alone."""
        sampler = ResourceSampler(
            cpu_probes=[FakeCpuProbe([10.0, 20.0, 30.0])],
            heap_probes=[FakeHeapProbe([HeapUsage(1), HeapUsage(100), None, HeapUsage(300)])],
        )

        sampler.sample("one")
        gap = sampler.sample("two")
        sampler.sample("three")

        summary = sampler.summary()
        assert gap.used_heap_bytes == UNKNOWN_BYTES
        assert summary.sample_count == 3
        assert summary.heap_sample_count == 2
        assert summary.avg_cpu_percent == pytest.approx(20.0)
        assert summary.avg_used_heap_bytes == 200

    def test_heap_source_chosen_once(self):
        """The first heap probe that answers is kept."""
        sampler = ResourceSampler(
            cpu_probes=[],
            heap_probes=[FakeHeapProbe([], name="none"), FakeHeapProbe([HeapUsage(1)], name="second")],
        )

        assert sampler.heap_source == "second"

    def test_sample_logs(self, caplog):
        sampler = ResourceSampler(cpu_probes=[FakeCpuProbe([5.0])], heap_probes=[])

        with caplog.at_level(logging.INFO, logger="cloud_connector.monitoring.sampler"):
            sampler.sample("before publishing")

        assert "[before publishing] CPU: 5.00%" in caplog.text


class TestResourceSamplerSummary:
    """Tests for summary() and log_summary()."""

    def test_summary_before_samples(self):
        assert ResourceSampler(cpu_probes=[], heap_probes=[]).summary() is None

    def test_log_summary_without_samples(self, caplog):
        sampler = ResourceSampler(cpu_probes=[], heap_probes=[])

        with caplog.at_level(logging.INFO, logger="cloud_connector.monitoring.sampler"):
            sampler.log_summary()

        assert "no samples collected" in caplog.text

    def test_log_summary(self, caplog):
        sampler = ResourceSampler(
            cpu_probes=[FakeCpuProbe([50.0])], heap_probes=[FakeHeapProbe([HeapUsage(2048)])]
        )
        sampler.sample("one")

        with caplog.at_level(logging.INFO, logger="cloud_connector.monitoring.sampler"):
            sampler.log_summary()

        assert "over 1 samples" in caplog.text
        assert "2.0 KB" in caplog.text


class TestProcStatCpuProbe:
    """Tests for the tick-based CPU probe."""

    def test_read_ticks_handles_spaces_in_name(self, tmp_path):
        stat = tmp_path / "stat"
        stat.write_text(stat_line(120, 30))

        assert ProcStatCpuProbe(str(stat)).read_ticks() == 150

    def test_missing_stat_file(self, tmp_path):
        probe = ProcStatCpuProbe(str(tmp_path / "absent"))

        assert probe.read_cpu_percent() is None

    def test_accumulates_until_window(self, tmp_path):
        """Short intervals return the previous value until the window fills."""
        stat = tmp_path / "stat"
        clock = FakeClock()
        probe = ProcStatCpuProbe(
            str(stat), ticks_per_second=100, min_window_ms=1000, cpu_count=1, clock=clock
        )

        stat.write_text(stat_line(0, 0))
        assert probe.read_cpu_percent() == 0.0

        clock.now_ns = 500_000_000
        stat.write_text(stat_line(25, 0))
        assert probe.read_cpu_percent() == 0.0

        clock.now_ns = 1_000_000_000
        stat.write_text(stat_line(50, 0))
        # 50 ticks = 0.5 s of CPU over 1 s of wall time
        assert probe.read_cpu_percent() == pytest.approx(50.0)

        clock.now_ns = 1_100_000_000
        stat.write_text(stat_line(60, 0))
        assert probe.read_cpu_percent() == pytest.approx(50.0)

    def test_normalised_by_cpu_count(self, tmp_path):
        stat = tmp_path / "stat"
        clock = FakeClock()
        probe = ProcStatCpuProbe(str(stat), min_window_ms=1000, cpu_count=4, clock=clock)

        stat.write_text(stat_line(0, 0))
        probe.read_cpu_percent()
        clock.now_ns = 1_000_000_000
        stat.write_text(stat_line(100, 100))

        assert probe.read_cpu_percent() == pytest.approx(50.0)

    def test_clamped(self, tmp_path):
        stat = tmp_path / "stat"
        clock = FakeClock()
        probe = ProcStatCpuProbe(str(stat), min_window_ms=1000, cpu_count=1, clock=clock)

        stat.write_text(stat_line(0, 0))
        probe.read_cpu_percent()
        clock.now_ns = 1_000_000_000
        stat.write_text(stat_line(500, 0))

        assert probe.read_cpu_percent() == 100.0


class TestSysconfHeapProbe:
    def test_reports_physical_memory(self):
        heap = SysconfHeapProbe().read_heap()

        if heap is None:
            pytest.skip("sysconf memory counters not available")
        assert 0 <= heap.used_bytes <= heap.max_bytes
