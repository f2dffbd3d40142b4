"""Shared pytest fixtures for all tests."""

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from mediascan.common.config import CatalogConfig, Config, LoggingConfig, ScanSettings
from mediascan.core.db import DatabaseConnection, Migrator


@pytest.fixture(autouse=True)
def _no_env_video_directories(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's MEDIASCAN_VIDEO_DIRECTORY out of the tests."""
    monkeypatch.delenv("MEDIASCAN_VIDEO_DIRECTORY", raising=False)


@pytest.fixture
def logging_config() -> LoggingConfig:
    return LoggingConfig(level="WARNING", format="text")


@pytest.fixture
def test_config(tmp_path: Path, logging_config: LoggingConfig) -> Config:
    """Provide a configuration rooted in a temp directory."""
    return Config(
        config_dir=tmp_path / "config",
        logging=logging_config,
        catalog=CatalogConfig(
            enable_wal_mode=False,  # Disable WAL in tests to avoid lock issues
            connection_timeout=30,
        ),
    )


@pytest.fixture
def scan_settings() -> ScanSettings:
    """Settings tuned for fast tests: no idle sleeps, small progress interval."""
    return ScanSettings(
        sleep_interval_ms=0,
        progress_update_interval=10,
        max_concurrent_operations=3,
    )


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[DatabaseConnection, None]:
    """Provide a database connection with migrations applied."""
    connection = DatabaseConnection(tmp_path / "test_mediascan.db", enable_wal=False)
    conn = await connection.connect()
    await Migrator().run_migrations(conn)
    yield connection
    await connection.close()


@pytest.fixture
def media_tree(tmp_path: Path) -> dict:
    """
    Build two video roots plus one that does not exist.

    ``shows`` holds 5 media files (one nested) and a non-media file;
    ``movies`` holds 7 media files, one of them named ``corrupt.mkv``.
    """
    shows = tmp_path / "media" / "shows"
    movies = tmp_path / "media" / "movies"
    (shows / "season1").mkdir(parents=True)
    movies.mkdir(parents=True)

    show_files = [
        shows / "202403151930_Evening News_NHK.mp4",
        shows / "Drama ep3.mkv",
        shows / "Documentary 2019.avi",
        shows / "notes.txt",
        shows / "season1" / "Series episode 12.mp4",
        shows / "season1" / "Special.webm",
    ]
    movie_files = [movies / f"movie_{i}.mp4" for i in range(6)] + [movies / "corrupt.mkv"]

    for path in show_files + movie_files:
        path.write_bytes(b"\x00" * 64)

    return {
        "roots": [str(shows), str(movies), str(tmp_path / "media" / "missing")],
        "media_count": 12,
        "corrupt": str(movies / "corrupt.mkv"),
    }
