"""Tests for memory sampling, trend and leak detection."""

import pytest

from telemetripy.core.events import MEMORY_SAMPLE
from telemetripy.core.memory import MemoryMonitor
from telemetripy.core.models import MemoryInfo
from tests.support import FakeClock, ScriptedMemorySource


def info(used: float, limit: float = 1000.0) -> MemoryInfo:
    return MemoryInfo(used_bytes=used, total_bytes=used, limit_bytes=limit, timestamp=0.0)


class BrokenSource:
    def read(self) -> MemoryInfo | None:
        raise OSError("proc unavailable")


class TestSampling:
    """Tests for reading and recording samples."""

    @pytest.mark.core
    def test_sample_reads_source_and_emits(self, clock: FakeClock) -> None:
        monitor = MemoryMonitor(ScriptedMemorySource([100, 200], clock=clock), clock=clock)
        emitted = []
        monitor.events.on(MEMORY_SAMPLE, emitted.append)
        first = monitor.sample()
        assert first is not None and first.used_bytes == 100
        assert monitor.current().used_bytes == 200
        assert [s.used_bytes for s in monitor.history()] == [100, 200]
        assert emitted == monitor.history()

    @pytest.mark.core
    def test_without_source_current_is_latest_recorded(self) -> None:
        monitor = MemoryMonitor()
        assert monitor.sample() is None
        assert monitor.current() is None
        monitor.record(info(10))
        assert monitor.current() == info(10)

    @pytest.mark.core
    def test_failing_source_is_logged_not_raised(self) -> None:
        monitor = MemoryMonitor(BrokenSource())
        assert monitor.sample() is None
        assert monitor.history() == []

    @pytest.mark.core
    def test_history_is_bounded(self) -> None:
        monitor = MemoryMonitor(max_samples=3)
        for used in range(5):
            monitor.record(info(used))
        assert [s.used_bytes for s in monitor.history()] == [2, 3, 4]


class TestTrend:
    """Tests for trend() and is_leak_suspected()."""

    @pytest.mark.core
    def test_stable_until_enough_samples(self) -> None:
        monitor = MemoryMonitor()
        for used in range(1, 10):
            monitor.record(info(used * 100))
        assert monitor.trend() == "stable"

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("prior", "recent", "expected"),
        [(100, 200, "increasing"), (200, 100, "decreasing"), (100, 105, "stable")],
    )
    def test_compares_last_ten_with_ten_before(
        self, prior: float, recent: float, expected: str
    ) -> None:
        monitor = MemoryMonitor()
        for _ in range(10):
            monitor.record(info(prior))
        for _ in range(10):
            monitor.record(info(recent))
        assert monitor.trend() == expected

    @pytest.mark.core
    def test_leak_requires_growth_and_high_usage(self) -> None:
        growing_high = MemoryMonitor()
        growing_low = MemoryMonitor()
        for used in (500,) * 10 + (900,) * 10:
            growing_high.record(info(used))
            growing_low.record(info(used, limit=10_000))
        assert growing_high.is_leak_suspected() is True
        assert growing_low.is_leak_suspected() is False

    @pytest.mark.core
    def test_leak_needs_twenty_samples(self) -> None:
        monitor = MemoryMonitor()
        for used in (100,) * 9 + (950,) * 10:
            monitor.record(info(used))
        assert monitor.is_leak_suspected() is False


class TestLifecycle:
    """Tests for the periodic sampling task."""

    @pytest.mark.core
    async def test_start_requires_source(self) -> None:
        monitor = MemoryMonitor(interval=60)
        monitor.start()
        assert not monitor.sample_task.running

    @pytest.mark.core
    async def test_start_and_stop(self, clock: FakeClock) -> None:
        monitor = MemoryMonitor(ScriptedMemorySource([1], clock=clock), interval=60)
        monitor.start()
        assert monitor.sample_task.running
        await monitor.stop()
        assert not monitor.sample_task.running
