"""Tests for thumbnail rendering."""

import os
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from mediascan.clients.ffmpeg_client import FFmpegClient
from mediascan.core.exceptions import FFmpegExecutionError
from mediascan.scan.thumbnails import ThumbnailRenderer, thumbnail_name


@pytest.fixture
def ffmpeg() -> FFmpegClient:
    client = FFmpegClient()

    async def extract_frame(video_path: Path, output_path: Path, seek_seconds: float) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"RIFF0000WEBP")
        return output_path

    client.extract_frame = AsyncMock(side_effect=extract_frame)
    return client


@pytest.fixture
def video(tmp_path: Path) -> Path:
    path = tmp_path / "videos" / "clip.mp4"
    path.parent.mkdir()
    path.write_bytes(b"\x00" * 64)
    return path


@pytest.fixture
def renderer(ffmpeg, tmp_path) -> ThumbnailRenderer:
    return ThumbnailRenderer(ffmpeg, tmp_path / "thumbnails")


def test_thumbnail_name_is_stable():
    assert thumbnail_name("/a/b.mp4") == thumbnail_name("/a/b.mp4")
    assert thumbnail_name("/a/b.mp4") != thumbnail_name("/a/c.mp4")
    assert thumbnail_name("/a/b.mp4").endswith(".webp")


@pytest.mark.parametrize(
    "duration,expected",
    [(None, 1.0), (0, 1.0), (2, 1.0), (300, 99.0)],
)
def test_seek_position(renderer, duration, expected):
    assert renderer.seek_position(duration) == pytest.approx(expected)


class TestRender:
    @pytest.mark.asyncio
    async def test_renders_missing_thumbnail(self, renderer, ffmpeg, video):
        result = await renderer.render(str(video), known_duration=300)

        assert result.success
        assert not result.skipped
        assert result.relative_path == thumbnail_name(str(video))
        assert Path(result.thumbnail_path).exists()
        assert result.size_bytes == 12
        _, _, seek = ffmpeg.extract_frame.call_args[0]
        assert seek == pytest.approx(99.0)

    @pytest.mark.asyncio
    async def test_fresh_thumbnail_is_skipped(self, renderer, ffmpeg, video):
        await renderer.render(str(video))
        ffmpeg.extract_frame.reset_mock()

        result = await renderer.render(str(video))

        assert result.success and result.skipped
        ffmpeg.extract_frame.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_thumbnail_is_rerendered(self, renderer, ffmpeg, video):
        output = renderer.thumbnail_path_for(str(video))
        output.parent.mkdir(parents=True)
        output.write_bytes(b"old")
        stamp = video.stat().st_mtime
        os.utime(output, (stamp - 100, stamp - 100))

        result = await renderer.render(str(video))

        assert result.success and not result.skipped
        ffmpeg.extract_frame.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_returned(self, renderer, ffmpeg, video):
        ffmpeg.extract_frame.side_effect = FFmpegExecutionError("ffmpeg failed", returncode=1)

        result = await renderer.render(str(video))

        assert not result.success
        assert "ffmpeg failed" in result.error

    @pytest.mark.asyncio
    async def test_missing_video(self, renderer, ffmpeg, tmp_path):
        result = await renderer.render(str(tmp_path / "nope.mp4"))

        assert not result.success
        assert result.error.startswith("Video not accessible")
        ffmpeg.extract_frame.assert_not_called()


class TestOrphans:
    @pytest.mark.asyncio
    async def test_find_and_remove_orphans(self, renderer, video):
        await renderer.render(str(video))
        orphan = renderer.thumbnail_dir / thumbnail_name("/old/renamed.mp4")
        orphan.write_bytes(b"x")
        unrelated = renderer.thumbnail_dir / "notes.txt"
        unrelated.write_text("keep")

        assert renderer.find_orphans([str(video)]) == [orphan]
        assert await renderer.remove_orphans([str(video)]) == 1
        assert not orphan.exists()
        assert unrelated.exists()
        assert renderer.thumbnail_path_for(str(video)).exists()

    def test_missing_directory_has_no_orphans(self, ffmpeg, tmp_path):
        renderer = ThumbnailRenderer(ffmpeg, tmp_path / "absent")
        assert renderer.find_orphans([]) == []
