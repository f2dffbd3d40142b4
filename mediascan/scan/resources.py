"""Process resource sampling and throttling recommendations."""

import asyncio
import os
import sys
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Optional

import structlog

from ..common.config import ProcessingPriority, ScanSettings, TimeRange

logger = structlog.get_logger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 200
MIN_BATCH_SIZE_AFTER_REDUCTION = 5
MEMORY_HISTORY_SIZE = 10
MEMORY_HIGH_PCT = 80.0
MEMORY_LOW_PCT = 40.0
BATCH_REDUCTION_RATIO = 0.5
BATCH_INCREASE_RATIO = 1.5
CPU_SAMPLE_WINDOW_SECONDS = 0.5
PRIORITY_MULTIPLIERS = {
    ProcessingPriority.LOW: 0.7,
    ProcessingPriority.NORMAL: 1.0,
    ProcessingPriority.HIGH: 1.3,
}


@dataclass
class MemoryStats:
    """Resident memory of this process.

    ``percent`` is measured against the configured memory budget
    (``memory_threshold_mb``), so 100% means the budget is used up.
    """

    used_mb: float
    total_mb: float
    percent: float


@dataclass
class ResourceCheck:
    memory_ok: bool
    cpu_ok: bool
    in_quiet_hours: bool
    should_pause: bool
    memory_mb: float
    cpu_percent: float
    message: str


def read_rss_mb() -> float:
    """Current resident set size in MB (peak RSS where /proc is unavailable)."""
    try:
        with open("/proc/self/status", "r", encoding="ascii") as f:
            for line in f:
                if line.startswith("VmRSS:"):
                    return int(line.split()[1]) / 1024
    except OSError:
        pass

    try:
        import resource
    except ImportError:
        return 0.0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    if sys.platform == "darwin":
        return peak / (1024 * 1024)
    return peak / 1024


def read_cpu_seconds() -> float:
    """User plus system CPU time consumed by this process."""
    times = os.times()
    return times.user + times.system


def _cpu_percent(cpu_delta: float, elapsed: float) -> float:
    if elapsed <= 0:
        return 0.0
    return round(min(100.0, max(0.0, cpu_delta / elapsed * 100)), 1)


def in_time_range(hour: int, time_range: TimeRange) -> bool:
    """
    Check whether ``hour`` falls inside a quiet-hours window.

    ``start <= hour < end`` for same-day windows; windows with
    ``start > end`` wrap past midnight.
    """
    if not time_range.enabled:
        return False
    start, end = time_range.start_hour, time_range.end_hour
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


class ResourceMonitor:
    """
    Samples memory and CPU and turns them into batch-size and pause advice.

    The monitor never pauses anything itself. Settings are re-read through
    ``settings_provider`` on every call, so edits made mid-scan apply to the
    next recommendation.
    """

    def __init__(
        self,
        settings_provider: Callable[[], ScanSettings],
        memory_sampler: Callable[[], float] = read_rss_mb,
        cpu_sampler: Callable[[], float] = read_cpu_seconds,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self._settings_provider = settings_provider
        self._memory_sampler = memory_sampler
        self._cpu_sampler = cpu_sampler
        self._clock = clock
        self._now = now
        self._memory_history: Deque[float] = deque(maxlen=MEMORY_HISTORY_SIZE)
        self._last_cpu: Optional[float] = None
        self._last_wall: Optional[float] = None

    @property
    def settings(self) -> ScanSettings:
        return self._settings_provider()

    @property
    def memory_history(self) -> list:
        return list(self._memory_history)

    def get_memory_usage(self) -> MemoryStats:
        used = max(0.0, float(self._memory_sampler()))
        budget = float(self.settings.memory_threshold_mb)
        self._memory_history.append(used)
        return MemoryStats(
            used_mb=round(used, 1),
            total_mb=budget,
            percent=round(used / budget * 100, 1) if budget > 0 else 0.0,
        )

    def get_cpu_percent(self) -> float:
        """
        CPU usage since the previous sample, normalized to 0..100.

        The first call only establishes a baseline and returns 0.
        """
        cpu = self._cpu_sampler()
        wall = self._clock()
        percent = 0.0
        if self._last_cpu is not None and self._last_wall is not None:
            percent = _cpu_percent(cpu - self._last_cpu, wall - self._last_wall)
        self._last_cpu = cpu
        self._last_wall = wall
        return percent

    async def sample_cpu_percent(self, window: float = CPU_SAMPLE_WINDOW_SECONDS) -> float:
        """
        CPU usage measured over a fresh ``window``-second sample.

        Independent of :meth:`get_cpu_percent`: the baseline used for scan
        throttling is left untouched.
        """
        cpu = self._cpu_sampler()
        wall = self._clock()
        await asyncio.sleep(window)
        return _cpu_percent(self._cpu_sampler() - cpu, self._clock() - wall)

    def is_memory_pressure(self) -> bool:
        return self.get_memory_usage().used_mb > self.settings.memory_threshold_mb

    def recommend_batch_size(self) -> int:
        """
        Recommend a batch size for the next unit of work.

        Shrinks under memory pressure, grows when memory has been
        comfortably low for a while, then scales by processing priority.
        The result always lies within ``[MIN_BATCH_SIZE, MAX_BATCH_SIZE]``.
        """
        settings = self.settings
        memory = self.get_memory_usage()
        size = float(settings.batch_size)

        if memory.percent > MEMORY_HIGH_PCT:
            size = max(min(size, MIN_BATCH_SIZE_AFTER_REDUCTION), size * BATCH_REDUCTION_RATIO)
        elif memory.percent < MEMORY_LOW_PCT and len(self._memory_history) >= 3:
            average = sum(self._memory_history) / len(self._memory_history)
            if average < settings.memory_threshold_mb * 0.5:
                size = min(MAX_BATCH_SIZE, size * BATCH_INCREASE_RATIO)

        size *= PRIORITY_MULTIPLIERS[settings.processing_priority]
        recommended = max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, int(size)))

        logger.debug(
            "batch_size_recommended",
            recommended=recommended,
            memory_percent=memory.percent,
            priority=settings.processing_priority.value,
        )
        return recommended

    def check_system_resources(self) -> ResourceCheck:
        """Report whether memory and CPU are within limits and whether to pause."""
        settings = self.settings
        memory = self.get_memory_usage()
        cpu = self.get_cpu_percent()

        memory_ok = memory.used_mb <= settings.memory_threshold_mb
        cpu_ok = not settings.auto_pause_on_high_cpu or cpu <= settings.auto_pause_threshold_pct
        quiet = in_time_range(self._now().hour, settings.auto_pause_time_range)
        should_pause = not memory_ok or not cpu_ok or quiet

        reasons = []
        if not memory_ok:
            reasons.append(f"memory {memory.used_mb:.0f}MB over {settings.memory_threshold_mb}MB")
        if not cpu_ok:
            reasons.append(f"cpu {cpu:.0f}% over {settings.auto_pause_threshold_pct}%")
        if quiet:
            reasons.append("inside quiet hours")
        message = "; ".join(reasons) if reasons else "resources within limits"

        return ResourceCheck(
            memory_ok=memory_ok,
            cpu_ok=cpu_ok,
            in_quiet_hours=quiet,
            should_pause=should_pause,
            memory_mb=memory.used_mb,
            cpu_percent=cpu,
            message=message,
        )
