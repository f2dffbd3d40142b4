"""Durable storage for scheduled scan settings."""

import json
from datetime import datetime, timezone

import structlog

from ...common.config import ExecutionTime, ScheduleInterval, ScheduleSettings
from .connection import DatabaseConnection

logger = structlog.get_logger(__name__)

SCHEDULE_SETTINGS_ID = "scan_schedule_settings"

_UPSERT_SQL = """
    INSERT INTO scan_schedule_settings (
        id, enabled, interval, interval_hours,
        execution_time_hour, execution_time_minute,
        weekly_days, monthly_day, skip_if_running,
        max_execution_time_minutes, only_when_idle, updated_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        enabled = excluded.enabled,
        interval = excluded.interval,
        interval_hours = excluded.interval_hours,
        execution_time_hour = excluded.execution_time_hour,
        execution_time_minute = excluded.execution_time_minute,
        weekly_days = excluded.weekly_days,
        monthly_day = excluded.monthly_day,
        skip_if_running = excluded.skip_if_running,
        max_execution_time_minutes = excluded.max_execution_time_minutes,
        only_when_idle = excluded.only_when_idle,
        updated_at = excluded.updated_at
"""


class ScheduleSettingsStore:
    """
    Persists ScheduleSettings as one fixed-id row.

    Fields are mapped to columns one by one; ``weekly_days`` is stored as
    JSON text.
    """

    def __init__(self, db: DatabaseConnection, defaults: ScheduleSettings | None = None):
        self._db = db
        self._defaults = defaults or ScheduleSettings()

    async def load(self) -> ScheduleSettings:
        """Load settings, falling back to defaults when no row exists."""
        conn = await self._db.connect()
        async with self._db.lock:
            cursor = await conn.execute(
                "SELECT * FROM scan_schedule_settings WHERE id = ?",
                (SCHEDULE_SETTINGS_ID,),
            )
            row = await cursor.fetchone()
        if row is None:
            logger.debug("schedule_settings_defaults_used")
            return self._defaults.model_copy(deep=True)

        try:
            weekly_days = json.loads(row["weekly_days"] or "[]")
        except json.JSONDecodeError:
            logger.warning("schedule_weekly_days_invalid", raw=row["weekly_days"])
            weekly_days = list(self._defaults.weekly_days)

        return ScheduleSettings(
            enabled=bool(row["enabled"]),
            interval=ScheduleInterval(row["interval"]),
            interval_hours=row["interval_hours"],
            execution_time=ExecutionTime(
                hour=row["execution_time_hour"],
                minute=row["execution_time_minute"],
            ),
            weekly_days=weekly_days,
            monthly_day=row["monthly_day"],
            skip_if_running=bool(row["skip_if_running"]),
            max_execution_time_minutes=row["max_execution_time_minutes"],
            only_when_idle=bool(row["only_when_idle"]),
        )

    async def save(self, settings: ScheduleSettings) -> ScheduleSettings:
        """Upsert the settings row."""
        row = (
            SCHEDULE_SETTINGS_ID,
            int(settings.enabled),
            settings.interval.value,
            settings.interval_hours,
            settings.execution_time.hour,
            settings.execution_time.minute,
            json.dumps(settings.weekly_days),
            settings.monthly_day,
            int(settings.skip_if_running),
            settings.max_execution_time_minutes,
            int(settings.only_when_idle),
            datetime.now(timezone.utc).isoformat(),
        )
        conn = await self._db.connect()
        async with self._db.lock:
            await conn.execute(_UPSERT_SQL, row)
            await conn.commit()
        logger.info(
            "schedule_settings_saved",
            enabled=settings.enabled,
            interval=settings.interval.value,
        )
        return settings
