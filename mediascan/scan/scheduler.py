"""Cron-style re-scan scheduling."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

import structlog

from ..common.config import ScheduleInterval, ScheduleSettings
from ..core.db.schedule_store import ScheduleSettingsStore
from ..core.event_bus import ProgressHub
from .models import EventType, ExecutionStatus, ProgressEvent, ScanResult, ScanStatus, SchedulerStatus

logger = structlog.get_logger(__name__)

TIMEOUT_CHECK_INTERVAL = 60.0

_STATUS_BY_RESULT = {
    ScanStatus.COMPLETED: ExecutionStatus.COMPLETED,
    ScanStatus.CANCELLED: ExecutionStatus.CANCELLED,
    ScanStatus.FAILED: ExecutionStatus.FAILED,
}


def _local_now() -> datetime:
    return datetime.now().astimezone()


def generate_cron_pattern(settings: ScheduleSettings) -> str:
    """Build a five-field cron expression (minute hour day month weekday).

    Weekdays use cron numbering, 0 = Sunday.
    """
    minute = settings.execution_time.minute
    hour = settings.execution_time.hour

    if settings.interval == ScheduleInterval.WEEKLY:
        days = ",".join(str(d) for d in settings.weekly_days) or "0"
        return f"{minute} {hour} * * {days}"
    if settings.interval == ScheduleInterval.MONTHLY:
        return f"{minute} {hour} {settings.monthly_day} * *"
    if settings.interval == ScheduleInterval.CUSTOM:
        return f"{minute} */{settings.interval_hours} * * *"
    return f"{minute} {hour} * * *"


def next_run(cron_expr: str, from_time: datetime) -> datetime | None:
    """Return the first time after ``from_time`` matching ``cron_expr``.

    Supports ``*``, ``*/N``, comma lists and single values. The result keeps
    ``from_time``'s timezone. Returns None for an invalid expression or when
    nothing matches within a year.

    Examples:
        "0 3 * * *"    - Daily at 03:00
        "0 3 * * 0"    - Sundays at 03:00
        "30 */6 * * *" - Minute 30 of every 6th hour
    """
    try:
        parts = cron_expr.strip().split()
        if len(parts) != 5:
            return None

        minute_spec, hour_spec, day_spec, month_spec, weekday_spec = parts

        def parse_field(spec: str, min_val: int, max_val: int) -> set[int]:
            if spec == "*":
                return set(range(min_val, max_val + 1))
            if spec.startswith("*/"):
                step = int(spec[2:])
                if step <= 0:
                    raise ValueError(f"invalid step: {spec}")
                return set(range(min_val, max_val + 1, step))
            values = {int(v) for v in spec.split(",")}
            if any(v < min_val or v > max_val for v in values):
                raise ValueError(f"value out of range: {spec}")
            return values

        valid_minutes = parse_field(minute_spec, 0, 59)
        valid_hours = parse_field(hour_spec, 0, 23)
        valid_days = parse_field(day_spec, 1, 31)
        valid_months = parse_field(month_spec, 1, 12)
        # Cron 0 (Sunday) maps to Python weekday 6
        valid_weekdays = {(w - 1) % 7 for w in parse_field(weekday_spec, 0, 6)}

        candidate = from_time.replace(second=0, microsecond=0) + timedelta(minutes=1)
        for _ in range(366 * 24 * 60):
            if (
                candidate.minute in valid_minutes
                and candidate.hour in valid_hours
                and candidate.day in valid_days
                and candidate.month in valid_months
                and candidate.weekday() in valid_weekdays
            ):
                return candidate
            candidate += timedelta(minutes=1)
        return None

    except (ValueError, IndexError):
        return None


class ScanScheduler:
    """
    Fires scheduled scans from a single timer task.

    The scheduler never runs scans itself: ``executor`` starts one and
    returns its result, ``manual_scan_checker`` reports whether a scan is
    already running, ``idle_checker`` is awaited before an ``only_when_idle``
    run and ``timeout_canceller`` stops a scan that outlives
    ``max_execution_time_minutes``.
    """

    def __init__(
        self,
        store: ScheduleSettingsStore,
        executor: Callable[[], Awaitable[ScanResult]],
        manual_scan_checker: Callable[[], bool],
        hub: ProgressHub | None = None,
        idle_checker: Callable[[], Awaitable[bool]] | None = None,
        timeout_canceller: Callable[[], None] | None = None,
        now: Callable[[], datetime] = _local_now,
        timeout_check_interval: float = TIMEOUT_CHECK_INTERVAL,
    ):
        self.store = store
        self.executor = executor
        self.manual_scan_checker = manual_scan_checker
        self.hub = hub
        self.idle_checker = idle_checker
        self.timeout_canceller = timeout_canceller
        self._now = now
        self.timeout_check_interval = timeout_check_interval

        self._settings = ScheduleSettings()
        self._timer_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None
        self._execution_task: asyncio.Task | None = None

        self._is_running = False
        self._execution_token: object | None = None
        self._current_start: datetime | None = None
        self._next_execution: datetime | None = None
        self._last_execution: datetime | None = None
        self._last_status: ExecutionStatus | None = None

    @property
    def settings(self) -> ScheduleSettings:
        return self._settings

    @property
    def is_active(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def cron_pattern(self) -> str:
        return generate_cron_pattern(self._settings)

    async def load(self) -> ScheduleSettings:
        self._settings = await self.store.load()
        return self._settings

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Start the timer for the current settings (no-op when disabled)."""
        if not self._settings.enabled:
            logger.info("scheduler_disabled")
            return
        if self.is_active:
            logger.warning("scheduler_already_running")
            return

        self._timer_task = asyncio.create_task(self._timer_loop())
        if self._watchdog_task is None or self._watchdog_task.done():
            self._watchdog_task = asyncio.create_task(self._watchdog_loop())
        logger.info("scheduler_started", cron_pattern=self.cron_pattern)

    async def stop(self) -> None:
        """Stop the timer; a scheduled scan already in flight keeps running."""
        for task in (self._timer_task, self._watchdog_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._timer_task = None
        self._watchdog_task = None
        self._next_execution = None
        logger.info("scheduler_stopped")

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    async def shutdown(self) -> None:
        """Stop the timer and wait for an in-flight scheduled scan."""
        await self.stop()
        if self._execution_task is not None and not self._execution_task.done():
            await asyncio.gather(self._execution_task, return_exceptions=True)

    async def update_settings(self, settings: ScheduleSettings) -> ScheduleSettings:
        """Persist ``settings`` and move the timer to match them."""
        was_enabled = self._settings.enabled and self.is_active
        self._settings = await self.store.save(settings)

        if settings.enabled and not was_enabled:
            await self.start()
        elif not settings.enabled and was_enabled:
            await self.stop()
        elif settings.enabled:
            await self.restart()

        logger.info(
            "scheduler_settings_updated",
            enabled=settings.enabled,
            cron_pattern=self.cron_pattern,
        )
        await self._broadcast_status("Schedule updated")
        return self._settings

    # ==================== Timer ====================

    async def _timer_loop(self) -> None:
        while True:
            now = self._now()
            upcoming = next_run(self.cron_pattern, now)
            if upcoming is None:
                logger.error("scheduler_invalid_pattern", cron_pattern=self.cron_pattern)
                self._next_execution = None
                return

            self._next_execution = upcoming
            logger.debug("scheduler_next_execution", next_execution=upcoming.isoformat())
            await asyncio.sleep(max(0.0, (upcoming - now).total_seconds()))

            if self._execution_task is not None and not self._execution_task.done():
                logger.warning("scheduled_scan_skipped", reason="previous scheduled scan still running")
                continue
            self._execution_task = asyncio.create_task(self.execute_scheduled_scan())

    async def _watchdog_loop(self) -> None:
        while True:
            await asyncio.sleep(self.timeout_check_interval)
            try:
                await self.check_execution_timeout()
            except Exception as e:
                logger.error("scheduler_watchdog_error", error=str(e), exc_info=True)

    # ==================== Execution ====================

    async def execute_scheduled_scan(self) -> ExecutionStatus | None:
        """
        Run one scheduled scan through the executor.

        Returns the recorded status, or None when the run was skipped.
        Executor errors are recorded as ``failed`` and never propagate.
        """
        if self._settings.skip_if_running and self.manual_scan_checker():
            logger.info("scheduled_scan_skipped", reason="scan already running")
            return None
        if self._settings.only_when_idle and self.idle_checker is not None and not await self.idle_checker():
            logger.info("scheduled_scan_skipped", reason="system not idle")
            return None

        token = object()
        self._execution_token = token
        self._is_running = True
        self._current_start = self._now()
        logger.info("scheduled_scan_started", started_at=self._current_start.isoformat())
        await self._broadcast_status("Scheduled scan started")

        try:
            result = await self.executor()
            status = _STATUS_BY_RESULT.get(result.status, ExecutionStatus.FAILED)
            error = result.error
        except Exception as e:
            logger.error("scheduled_scan_error", error=str(e), exc_info=True)
            status = ExecutionStatus.FAILED
            error = str(e)

        if self._execution_token is not token:
            logger.warning("scheduled_scan_finished_after_timeout", status=status.value)
            return self._last_status

        self._finish(status)
        logger.info("scheduled_scan_finished", status=status.value, error=error)
        await self._broadcast_status(
            "Scheduled scan finished" if status != ExecutionStatus.FAILED else "Scheduled scan failed",
            error=error if status == ExecutionStatus.FAILED else None,
        )
        return status

    def _finish(self, status: ExecutionStatus) -> None:
        self._last_execution = self._current_start
        self._last_status = status
        self._is_running = False
        self._current_start = None
        self._execution_token = None

    async def check_execution_timeout(self) -> bool:
        """
        Mark the current run as timed out once it exceeds its time budget.

        Also asks ``timeout_canceller`` to cancel the scan. Returns True when
        a timeout was recorded.
        """
        if not self._is_running or self._current_start is None:
            return False

        limit = timedelta(minutes=self._settings.max_execution_time_minutes)
        elapsed = self._now() - self._current_start
        if elapsed <= limit:
            return False

        logger.warning(
            "scheduled_scan_timeout",
            elapsed_minutes=round(elapsed.total_seconds() / 60, 1),
            limit_minutes=self._settings.max_execution_time_minutes,
        )
        self._finish(ExecutionStatus.TIMEOUT)
        if self.timeout_canceller is not None:
            self.timeout_canceller()
        await self._broadcast_status("Scheduled scan timed out", error="execution timeout")
        return True

    # ==================== Status ====================

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_enabled=self._settings.enabled,
            is_running=self._is_running,
            cron_pattern=self.cron_pattern,
            next_execution=self._next_execution if self.is_active else None,
            last_execution=self._last_execution,
            last_execution_status=self._last_status,
            current_execution_start_time=self._current_start,
        )

    async def _broadcast_status(self, message: str, error: str | None = None) -> None:
        if self.hub is None:
            return
        await self.hub.broadcast(
            ProgressEvent(
                type=EventType.SCHEDULER_STATUS,
                scheduler=self.get_status(),
                message=message,
                error=error,
            )
        )
