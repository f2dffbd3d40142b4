"""ffmpeg CLI client for still-frame thumbnail extraction."""

import asyncio
import shutil
from pathlib import Path
from typing import Any, List, Optional

import structlog

from ..common.config import ThumbnailConfig
from ..core.exceptions import FFmpegExecutionError, FFmpegNotFoundError

logger = structlog.get_logger(__name__)


def format_timestamp(seconds: float) -> str:
    """
    Format seconds as an ffmpeg ``HH:MM:SS.s`` timestamp.

    Example:
        >>> format_timestamp(3725.25)
        '01:02:05.2'
    """
    seconds = max(0.0, seconds)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds - hours * 3600 - minutes * 60
    return f"{hours:02d}:{minutes:02d}:{secs:04.1f}"


class FFmpegClient:
    """
    Async client for the ffmpeg CLI tool focused on single-frame WebP stills.

    The ``thumbnail`` filter picks a representative frame near the seek point
    and ``scale=W:-1`` keeps the aspect ratio.

    **Requirements:**
        The ffmpeg binary must be installed separately and available in PATH.

    Example:
        >>> async with FFmpegClient.from_config(ThumbnailConfig()) as client:
        ...     await client.extract_frame(Path("video.mp4"), Path("thumb.webp"), 12.0)
    """

    def __init__(
        self,
        config: Optional[ThumbnailConfig] = None,
        ffmpeg_path: str = "ffmpeg",
    ):
        self.config = config or ThumbnailConfig()
        self.ffmpeg_path = ffmpeg_path
        self.logger = structlog.get_logger(__name__)
        self._verified = False

    async def __aenter__(self) -> "FFmpegClient":
        await self._verify_binary()
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass

    @classmethod
    def from_config(cls, config: ThumbnailConfig) -> "FFmpegClient":
        """Create FFmpegClient from ThumbnailConfig."""
        return cls(config=config, ffmpeg_path=config.ffmpeg_path)

    async def _verify_binary(self) -> None:
        """
        Verify that ffmpeg binary exists.

        Raises:
            FFmpegNotFoundError: If ffmpeg binary not found in PATH
        """
        if self._verified:
            return

        if not shutil.which(self.ffmpeg_path):
            raise FFmpegNotFoundError(
                f"ffmpeg binary not found at '{self.ffmpeg_path}'. Please install ffmpeg",
                path=self.ffmpeg_path,
            )

        self.logger.debug("ffmpeg_binary_verified", path=self.ffmpeg_path)
        self._verified = True

    def build_command(
        self,
        video_path: Path,
        output_path: Path,
        seek_seconds: float,
        width: int,
        quality: int,
    ) -> List[str]:
        # -ss before -i for fast input seeking
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", format_timestamp(seek_seconds),
            "-i", str(video_path),
            "-vf", f"thumbnail,scale={width}:-1",
            "-frames:v", "1",
            "-f", "webp",
            "-quality", str(quality),
            str(output_path),
        ]

    async def extract_frame(
        self,
        video_path: Path,
        output_path: Path,
        seek_seconds: float,
        width: Optional[int] = None,
        quality: Optional[int] = None,
    ) -> Path:
        """
        Extract a single frame from a video as a WebP still.

        Args:
            video_path: Source video file
            output_path: Destination image file
            seek_seconds: Position to seek to before grabbing a frame
            width: Output width in pixels (default: config.width)
            quality: WebP quality (default: config.quality)

        Returns:
            Path to the created image

        Raises:
            FFmpegNotFoundError: If ffmpeg binary not found
            FFmpegExecutionError: If ffmpeg fails, times out or writes nothing
            FileNotFoundError: If the video doesn't exist
        """
        await self._verify_binary()

        if not video_path.exists():
            raise FileNotFoundError(f"Video file not found: {video_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(
            video_path,
            output_path,
            seek_seconds,
            width or self.config.width,
            quality or self.config.quality,
        )

        self.logger.debug(
            "ffmpeg_extract_frame_start",
            video_path=str(video_path),
            output_path=str(output_path),
            seek=format_timestamp(seek_seconds),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(
                    process.communicate(),
                    timeout=self.config.timeout,
                )
            except asyncio.TimeoutError:
                if process.returncode is None:
                    process.kill()
                raise
        except FileNotFoundError:
            raise FFmpegNotFoundError(
                f"ffmpeg binary not found at '{self.ffmpeg_path}'",
                path=self.ffmpeg_path,
            )
        except asyncio.TimeoutError:
            output_path.unlink(missing_ok=True)
            self.logger.error("ffmpeg_timeout", timeout=self.config.timeout)
            raise FFmpegExecutionError(
                f"ffmpeg command timed out after {self.config.timeout}s"
            )

        if process.returncode != 0:
            error_msg = stderr.decode("utf-8", errors="replace")
            self.logger.warning(
                "ffmpeg_extract_frame_failed",
                returncode=process.returncode,
                stderr=error_msg[:500],
            )
            raise FFmpegExecutionError(
                f"ffmpeg failed with exit code {process.returncode}",
                returncode=process.returncode,
                stderr=error_msg,
            )

        if not output_path.exists():
            raise FFmpegExecutionError(
                f"ffmpeg completed but output file not found: {output_path}"
            )

        return output_path
