"""Tests for schedule settings persistence."""

import pytest

from mediascan.common.config import ExecutionTime, ScheduleInterval, ScheduleSettings
from mediascan.core.db.schedule_store import ScheduleSettingsStore


class TestScheduleSettingsStore:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_saved(self, db):
        defaults = ScheduleSettings(enabled=True, interval=ScheduleInterval.WEEKLY)
        loaded = await ScheduleSettingsStore(db, defaults=defaults).load()

        assert loaded == defaults
        assert loaded is not defaults

    @pytest.mark.asyncio
    async def test_save_and_load(self, db):
        store = ScheduleSettingsStore(db)
        settings = ScheduleSettings(
            enabled=True,
            interval=ScheduleInterval.WEEKLY,
            execution_time=ExecutionTime(hour=4, minute=15),
            weekly_days=[5, 1, 1],
            skip_if_running=False,
            max_execution_time_minutes=60,
            only_when_idle=True,
        )

        await store.save(settings)
        loaded = await ScheduleSettingsStore(db).load()

        assert loaded.enabled is True
        assert loaded.interval == ScheduleInterval.WEEKLY
        assert loaded.execution_time == ExecutionTime(hour=4, minute=15)
        assert loaded.weekly_days == [1, 5]
        assert loaded.skip_if_running is False
        assert loaded.max_execution_time_minutes == 60
        assert loaded.only_when_idle is True

    @pytest.mark.asyncio
    async def test_save_overwrites(self, db):
        store = ScheduleSettingsStore(db)
        await store.save(ScheduleSettings(enabled=True))
        await store.save(ScheduleSettings(enabled=False, interval=ScheduleInterval.CUSTOM, interval_hours=6))

        loaded = await store.load()
        assert loaded.enabled is False
        assert loaded.interval == ScheduleInterval.CUSTOM
        assert loaded.interval_hours == 6

    @pytest.mark.asyncio
    async def test_corrupt_weekly_days_falls_back(self, db):
        store = ScheduleSettingsStore(db)
        await store.save(ScheduleSettings(interval=ScheduleInterval.WEEKLY, weekly_days=[3]))
        conn = await db.connect()
        await conn.execute("UPDATE scan_schedule_settings SET weekly_days = 'not json'")
        await conn.commit()

        assert (await store.load()).weekly_days == [0]
