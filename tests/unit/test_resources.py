"""Tests for the resource monitor."""

from datetime import datetime
from itertools import count

import pytest

from mediascan.common.config import ProcessingPriority, ScanSettings, TimeRange
from mediascan.scan.resources import MAX_BATCH_SIZE, ResourceMonitor, in_time_range


def make_monitor(settings: ScanSettings, memory_mb: float = 100.0, **kwargs) -> ResourceMonitor:
    return ResourceMonitor(
        settings_provider=lambda: settings,
        memory_sampler=lambda: memory_mb,
        **kwargs,
    )


class TestInTimeRange:
    def test_disabled(self):
        assert not in_time_range(23, TimeRange(enabled=False, start_hour=22, end_hour=6))

    @pytest.mark.parametrize("hour,expected", [(21, False), (22, True), (3, True), (6, False)])
    def test_wraps_midnight(self, hour, expected):
        window = TimeRange(enabled=True, start_hour=22, end_hour=6)
        assert in_time_range(hour, window) is expected

    @pytest.mark.parametrize("hour,expected", [(8, False), (9, True), (16, True), (17, False)])
    def test_same_day(self, hour, expected):
        window = TimeRange(enabled=True, start_hour=9, end_hour=17)
        assert in_time_range(hour, window) is expected


class TestMemory:
    def test_usage_against_budget(self):
        monitor = make_monitor(ScanSettings(memory_threshold_mb=512), memory_mb=256)
        stats = monitor.get_memory_usage()
        assert stats.used_mb == 256
        assert stats.total_mb == 512
        assert stats.percent == 50.0

    def test_history_is_bounded(self):
        monitor = make_monitor(ScanSettings())
        for _ in range(15):
            monitor.get_memory_usage()
        assert len(monitor.memory_history) == 10

    def test_memory_pressure(self):
        assert make_monitor(ScanSettings(memory_threshold_mb=256), memory_mb=300).is_memory_pressure()
        assert not make_monitor(ScanSettings(memory_threshold_mb=256), memory_mb=200).is_memory_pressure()


class TestRecommendBatchSize:
    def test_default_without_history(self):
        assert make_monitor(ScanSettings(batch_size=50)).recommend_batch_size() == 50

    def test_shrinks_under_pressure(self):
        monitor = make_monitor(ScanSettings(batch_size=50, memory_threshold_mb=1024), memory_mb=900)
        assert monitor.recommend_batch_size() == 25

    def test_small_batch_is_not_halved_below_floor(self):
        monitor = make_monitor(ScanSettings(batch_size=4, memory_threshold_mb=1024), memory_mb=900)
        assert monitor.recommend_batch_size() == 4

    def test_grows_after_sustained_low_memory(self):
        monitor = make_monitor(ScanSettings(batch_size=50), memory_mb=100)
        monitor.get_memory_usage()
        monitor.get_memory_usage()
        assert monitor.recommend_batch_size() == 75

    @pytest.mark.parametrize(
        "priority,expected",
        [
            (ProcessingPriority.LOW, 35),
            (ProcessingPriority.NORMAL, 50),
            (ProcessingPriority.HIGH, 65),
        ],
    )
    def test_priority_multiplier(self, priority, expected):
        monitor = make_monitor(ScanSettings(batch_size=50, processing_priority=priority))
        assert monitor.recommend_batch_size() == expected

    def test_clamped_to_maximum(self):
        settings = ScanSettings(batch_size=200, processing_priority=ProcessingPriority.HIGH)
        monitor = make_monitor(settings, memory_mb=10)
        for _ in range(3):
            monitor.get_memory_usage()
        assert monitor.recommend_batch_size() == MAX_BATCH_SIZE

    def test_settings_are_reread(self):
        settings = {"current": ScanSettings(batch_size=50)}
        monitor = ResourceMonitor(
            settings_provider=lambda: settings["current"],
            memory_sampler=lambda: 100.0,
        )
        assert monitor.recommend_batch_size() == 50
        settings["current"] = ScanSettings(batch_size=10)
        assert monitor.recommend_batch_size() == 15


class TestCpu:
    def test_first_sample_is_baseline(self):
        monitor = make_monitor(ScanSettings(), cpu_sampler=lambda: 5.0, clock=lambda: 100.0)
        assert monitor.get_cpu_percent() == 0.0

    def test_percent_between_samples(self):
        cpu = iter([10.0, 10.5])
        wall = iter([100.0, 101.0])
        monitor = make_monitor(
            ScanSettings(),
            cpu_sampler=lambda: next(cpu),
            clock=lambda: next(wall),
        )
        monitor.get_cpu_percent()
        assert monitor.get_cpu_percent() == 50.0

    def test_capped_at_100(self):
        ticks = count()
        monitor = make_monitor(
            ScanSettings(),
            cpu_sampler=lambda: next(ticks) * 4.0,
            clock=lambda: float(next(ticks)),
        )
        monitor.get_cpu_percent()
        assert monitor.get_cpu_percent() == 100.0

    @pytest.mark.asyncio
    async def test_fresh_sample_leaves_baseline_alone(self):
        cpu = iter([10.0, 20.0, 20.125, 60.5])
        wall = iter([100.0, 200.0, 200.5, 201.0])
        monitor = make_monitor(
            ScanSettings(),
            cpu_sampler=lambda: next(cpu),
            clock=lambda: next(wall),
        )

        assert monitor.get_cpu_percent() == 0.0
        assert await monitor.sample_cpu_percent(window=0) == 25.0
        # Throttling baseline still dates from the first call
        assert monitor.get_cpu_percent() == 50.0


class TestCheckSystemResources:
    def test_within_limits(self):
        check = make_monitor(ScanSettings(), memory_mb=100).check_system_resources()
        assert check.memory_ok and check.cpu_ok
        assert not check.should_pause
        assert check.message == "resources within limits"

    def test_memory_over_threshold(self):
        check = make_monitor(ScanSettings(memory_threshold_mb=256), memory_mb=400).check_system_resources()
        assert not check.memory_ok
        assert check.should_pause
        assert "memory" in check.message

    def test_high_cpu_only_when_enabled(self):
        def cpu_monitor(enabled: bool) -> ResourceMonitor:
            cpu = iter([0.0, 0.9])
            wall = iter([0.0, 1.0])
            settings = ScanSettings(auto_pause_on_high_cpu=enabled, auto_pause_threshold_pct=80)
            monitor = make_monitor(settings, cpu_sampler=lambda: next(cpu), clock=lambda: next(wall))
            monitor.get_cpu_percent()
            return monitor

        assert cpu_monitor(True).check_system_resources().should_pause
        assert not cpu_monitor(False).check_system_resources().should_pause

    def test_quiet_hours(self):
        settings = ScanSettings(auto_pause_time_range=TimeRange(enabled=True, start_hour=22, end_hour=6))
        monitor = make_monitor(settings, now=lambda: datetime(2024, 1, 1, 23, 15))
        check = monitor.check_system_resources()
        assert check.in_quiet_hours
        assert check.should_pause
