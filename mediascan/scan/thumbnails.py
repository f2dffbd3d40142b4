"""Thumbnail rendering with a freshness check."""

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import structlog

from ..clients.ffmpeg_client import FFmpegClient
from ..core.exceptions import FFmpegError

logger = structlog.get_logger(__name__)

THUMBNAIL_EXTENSION = ".webp"


@dataclass
class ThumbnailResult:
    success: bool
    thumbnail_path: Optional[str] = None
    relative_path: Optional[str] = None
    size_bytes: int = 0
    skipped: bool = False
    error: Optional[str] = None


def thumbnail_name(video_path: str) -> str:
    """Thumbnail file name derived from the video's path, not its content."""
    return hashlib.sha256(video_path.encode("utf-8")).hexdigest() + THUMBNAIL_EXTENSION


class ThumbnailRenderer:
    """
    Renders one still per video into ``thumbnail_dir``.

    Because names hash the video path, a renamed video gets a new thumbnail
    and the old file becomes an orphan; see :meth:`find_orphans`.
    """

    def __init__(
        self,
        ffmpeg: FFmpegClient,
        thumbnail_dir: Path,
        seek_ratio: float = 0.33,
    ):
        self.ffmpeg = ffmpeg
        self.thumbnail_dir = thumbnail_dir
        self.seek_ratio = seek_ratio

    def thumbnail_path_for(self, video_path: str) -> Path:
        return self.thumbnail_dir / thumbnail_name(video_path)

    def seek_position(self, known_duration: Optional[float]) -> float:
        """Seek a third of the way in (never before 1s) to skip black intros."""
        duration = known_duration if known_duration and known_duration > 0 else 1
        return max(1.0, duration * self.seek_ratio)

    async def render(
        self,
        video_path: str,
        known_duration: Optional[float] = None,
    ) -> ThumbnailResult:
        """
        Render the thumbnail for ``video_path`` unless a fresh one exists.

        A thumbnail is fresh when its mtime is at least the video's mtime.
        Failures are returned, not raised, and are not retried.
        """
        output = self.thumbnail_path_for(video_path)
        source = Path(video_path)

        try:
            video_stat = await asyncio.to_thread(source.stat)
        except OSError as e:
            return ThumbnailResult(success=False, error=f"Video not accessible: {e}")

        try:
            thumb_stat = await asyncio.to_thread(output.stat)
        except FileNotFoundError:
            thumb_stat = None

        if thumb_stat is not None and thumb_stat.st_mtime >= video_stat.st_mtime:
            return ThumbnailResult(
                success=True,
                thumbnail_path=str(output),
                relative_path=output.name,
                size_bytes=thumb_stat.st_size,
                skipped=True,
            )

        try:
            await self.ffmpeg.extract_frame(
                source,
                output,
                self.seek_position(known_duration),
            )
            size = (await asyncio.to_thread(output.stat)).st_size
        except (FFmpegError, OSError) as e:
            logger.warning("thumbnail_render_failed", video_path=video_path, error=str(e))
            return ThumbnailResult(success=False, error=str(e))

        logger.debug("thumbnail_rendered", video_path=video_path, size=size)
        return ThumbnailResult(
            success=True,
            thumbnail_path=str(output),
            relative_path=output.name,
            size_bytes=size,
        )

    def find_orphans(self, video_paths: Iterable[str]) -> List[Path]:
        """Thumbnails whose name matches none of ``video_paths``."""
        if not self.thumbnail_dir.is_dir():
            return []
        expected = {thumbnail_name(p) for p in video_paths}
        return sorted(
            path
            for path in self.thumbnail_dir.glob(f"*{THUMBNAIL_EXTENSION}")
            if path.name not in expected
        )

    async def remove_orphans(self, video_paths: Iterable[str]) -> int:
        orphans = await asyncio.to_thread(self.find_orphans, list(video_paths))
        removed = 0
        for orphan in orphans:
            try:
                await asyncio.to_thread(orphan.unlink)
                removed += 1
            except OSError as e:
                logger.warning("thumbnail_orphan_remove_failed", path=str(orphan), error=str(e))
        if removed:
            logger.info("thumbnail_orphans_removed", count=removed)
        return removed
