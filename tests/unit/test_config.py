"""Tests for configuration models and directory parsing."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mediascan.common.config import (
    Config,
    ProcessingPriority,
    ScanSettings,
    ScheduleInterval,
    ScheduleSettings,
    get_video_directories,
    parse_directory_list,
)


class TestParseDirectoryList:
    def test_trims_quotes_and_blanks(self):
        assert parse_directory_list(' "/media/a", /media/b ,, \'/media/c\' ') == [
            "/media/a",
            "/media/b",
            "/media/c",
        ]

    def test_empty_values(self):
        assert parse_directory_list(None) == []
        assert parse_directory_list("") == []
        assert parse_directory_list(" , ,") == []

    def test_normalizes_backslashes(self):
        assert parse_directory_list(r"C:\Videos") == ["C:/Videos"]


class TestVideoDirectories:
    def test_merges_config_and_environment(self, monkeypatch):
        monkeypatch.setenv("MEDIASCAN_VIDEO_DIRECTORY", '"/media/b", /media/c')
        config = Config(video_directories=["/media/a", "/media/b"])

        assert get_video_directories(config) == ["/media/a", "/media/b", "/media/c"]

    def test_config_only(self):
        config = Config(video_directories=["/media/a"])
        assert get_video_directories(config) == ["/media/a"]


class TestScanSettings:
    def test_defaults(self):
        settings = ScanSettings()
        assert settings.batch_size == 50
        assert settings.progress_update_interval == 10
        assert settings.sleep_interval_ms == 100
        assert settings.processing_priority == ProcessingPriority.NORMAL
        assert settings.max_concurrent_operations == 3
        assert settings.memory_threshold_mb == 1024
        assert settings.auto_pause_time_range.enabled is False

    def test_camel_case_wire_format(self):
        data = ScanSettings().model_dump(mode="json", by_alias=True)
        assert data["batchSize"] == 50
        assert data["autoPauseTimeRange"] == {"enabled": False, "startHour": 22, "endHour": 6}

    def test_accepts_camel_case_input(self):
        settings = ScanSettings.model_validate({"batchSize": 20, "processingPriority": "high"})
        assert settings.batch_size == 20
        assert settings.processing_priority == ProcessingPriority.HIGH

    @pytest.mark.parametrize(
        "field,value",
        [
            ("batch_size", 0),
            ("batch_size", 201),
            ("progress_update_interval", 5),
            ("max_concurrent_operations", 9),
            ("memory_threshold_mb", 100),
            ("auto_pause_threshold_pct", 99),
        ],
    )
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            ScanSettings(**{field: value})


class TestScheduleSettings:
    def test_weekly_days_sorted_and_deduplicated(self):
        settings = ScheduleSettings(weekly_days=[5, 1, 5, 0])
        assert settings.weekly_days == [0, 1, 5]

    def test_invalid_weekday(self):
        with pytest.raises(ValidationError):
            ScheduleSettings(weekly_days=[7])

    def test_from_camel_case(self):
        settings = ScheduleSettings.model_validate(
            {
                "enabled": True,
                "interval": "custom",
                "intervalHours": 6,
                "executionTime": {"hour": 0, "minute": 30},
            }
        )
        assert settings.interval == ScheduleInterval.CUSTOM
        assert settings.interval_hours == 6
        assert settings.execution_time.minute == 30


class TestConfigPaths:
    def test_paths_resolve_against_config_dir(self, tmp_path):
        config = Config(config_dir=tmp_path / "cfg").resolve_paths()

        assert config.get_database_path() == tmp_path / "cfg" / "mediascan.db"
        assert config.get_settings_path() == tmp_path / "cfg" / "scan-settings.json"
        assert config.get_thumbnail_dir() == tmp_path / "cfg" / ".thumbnails"
        assert config.get_thumbnail_dir().is_dir()

    def test_config_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MEDIASCAN_CONFIG_DIR", str(tmp_path / "env"))
        config = Config().resolve_paths(create_dirs=False)
        assert config.config_dir == Path(tmp_path / "env")

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "video_directories:\n"
            "  - /media/a\n"
            "ffprobe:\n"
            "  timeout: 60\n"
            "scan:\n"
            "  batchSize: 25\n"
        )
        config = Config.from_yaml(path)

        assert config.video_directories == ["/media/a"]
        assert config.ffprobe.timeout == 60
        assert config.scan.batch_size == 25

    def test_from_yaml_string(self):
        config = Config.from_yaml_string("schedule:\n  enabled: true\n  interval: weekly\n")
        assert config.schedule.enabled is True
        assert config.schedule.interval == ScheduleInterval.WEEKLY
