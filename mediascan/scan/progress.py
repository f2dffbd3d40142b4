"""Throughput, ETA and elapsed-time calculation for scan progress events."""

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class ProgressMetrics:
    processing_speed: float
    estimated_time_remaining: int
    total_elapsed_time: int
    current_phase_elapsed: int


def format_duration(seconds: float) -> str:
    """
    Format seconds for humans.

    Example:
        >>> format_duration(45), format_duration(125), format_duration(3900)
        ('45s', '2m 5s', '1h 5m')
    """
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"

    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"

    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"


class ProgressCalculator:
    """
    Derives speed and ETA from processed/total counters.

    The only state is the overall start time and the current phase start
    time; the orchestrator resets the phase timer when it enters the
    metadata and database phases. Speed is files per second over the
    current phase, since processed counters restart with each phase.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._total_start: Optional[float] = None
        self._phase_start: Optional[float] = None

    def start_total_timer(self) -> None:
        self._total_start = self._clock()
        self.reset_phase_timer()

    def reset_phase_timer(self) -> None:
        self._phase_start = self._clock()

    def reset(self) -> None:
        self._total_start = None
        self._phase_start = None

    def _elapsed(self, start: Optional[float]) -> float:
        if start is None:
            return 0.0
        return max(0.0, self._clock() - start)

    def get_current_speed(self, processed: int) -> float:
        """Files per second since the phase started, 0 when undefined."""
        elapsed = self._elapsed(self._phase_start)
        if elapsed <= 0 or processed <= 0:
            return 0.0
        return processed / elapsed

    def calculate(self, processed: int, total: int) -> ProgressMetrics:
        speed = self.get_current_speed(processed)
        remaining = max(0, total - processed)
        eta = remaining / speed if speed > 0 else 0.0

        return ProgressMetrics(
            processing_speed=round(speed, 2),
            estimated_time_remaining=int(round(eta)),
            total_elapsed_time=int(round(self._elapsed(self._total_start))),
            current_phase_elapsed=int(round(self._elapsed(self._phase_start))),
        )
