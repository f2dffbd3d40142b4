"""ffprobe CLI client for container-level metadata."""

import asyncio
import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from ..common.config import FFProbeConfig
from ..core.exceptions import (
    FFProbeExecutionError,
    FFProbeNotFoundError,
    FFProbeParseError,
)

logger = structlog.get_logger(__name__)


@dataclass
class ProbeFormat:
    """Container duration (seconds) and size (bytes) reported by ffprobe."""

    duration: Optional[float] = None
    size: Optional[int] = None


def _optional_number(value: Any, cast: type) -> Any:
    if value in (None, "", "N/A"):
        return None
    try:
        return cast(float(value))
    except (TypeError, ValueError):
        raise FFProbeParseError(f"Invalid numeric value in ffprobe output: {value!r}")


class FFProbeClient:
    """
    Async client for the ffprobe CLI tool.

    Only the container ``format`` section is requested (``size`` and
    ``duration``), which keeps probing cheap on large libraries.

    **Requirements:**
        The ffprobe binary must be installed separately and available in PATH.

    Example:
        >>> async with FFProbeClient.from_config(FFProbeConfig()) as client:
        ...     fmt = await client.probe_format(Path("video.mp4"))
        ...     print(fmt.duration, fmt.size)
    """

    def __init__(
        self,
        config: Optional[FFProbeConfig] = None,
        ffprobe_path: str = "ffprobe",
    ):
        """
        Initialize the ffprobe client.

        Args:
            config: FFProbeConfig instance for client configuration
            ffprobe_path: Path to ffprobe binary (default: "ffprobe" from PATH)
        """
        self.config = config or FFProbeConfig()
        self.ffprobe_path = ffprobe_path
        self.logger = structlog.get_logger(__name__)
        self._verified = False

    async def __aenter__(self) -> "FFProbeClient":
        await self._verify_binary()
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass

    @classmethod
    def from_config(cls, config: FFProbeConfig) -> "FFProbeClient":
        """Create FFProbeClient from FFProbeConfig."""
        return cls(config=config, ffprobe_path=config.ffprobe_path)

    async def _verify_binary(self) -> None:
        """
        Verify that ffprobe binary exists.

        Raises:
            FFProbeNotFoundError: If ffprobe binary not found in PATH
        """
        if self._verified:
            return

        if not shutil.which(self.ffprobe_path):
            raise FFProbeNotFoundError(
                f"ffprobe binary not found at '{self.ffprobe_path}'. "
                "Please install ffmpeg (includes ffprobe)",
                path=self.ffprobe_path,
            )

        self.logger.debug("ffprobe_binary_verified", path=self.ffprobe_path)
        self._verified = True

    async def _execute_ffprobe(self, args: List[str]) -> Dict[str, Any]:
        """
        Run ffprobe and parse its JSON output.

        Raises:
            FFProbeNotFoundError: If ffprobe binary not found
            FFProbeExecutionError: If command fails or times out
            FFProbeParseError: If JSON parsing fails
        """
        await self._verify_binary()

        cmd = [self.ffprobe_path] + args
        self.logger.debug("ffprobe_execute", command=" ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(),
                    timeout=self.config.timeout,
                )
            except asyncio.TimeoutError:
                if process.returncode is None:
                    process.kill()
                raise
        except FileNotFoundError:
            raise FFProbeNotFoundError(
                f"ffprobe binary not found at '{self.ffprobe_path}'",
                path=self.ffprobe_path,
            )
        except asyncio.TimeoutError:
            self.logger.error("ffprobe_timeout", timeout=self.config.timeout)
            raise FFProbeExecutionError(
                f"ffprobe command timed out after {self.config.timeout}s"
            )

        if process.returncode != 0:
            error_msg = stderr.decode("utf-8", errors="replace")
            self.logger.warning(
                "ffprobe_failed",
                returncode=process.returncode,
                stderr=error_msg[:500],
            )
            raise FFProbeExecutionError(
                f"ffprobe failed with exit code {process.returncode}",
                returncode=process.returncode,
                stderr=error_msg,
            )

        output = stdout.decode("utf-8", errors="replace")
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            self.logger.warning(
                "ffprobe_json_parse_failed",
                error=str(e),
                output_length=len(output),
            )
            raise FFProbeParseError(f"Failed to parse ffprobe JSON output: {e}")

        if not isinstance(data, dict):
            raise FFProbeParseError("ffprobe output is not a JSON object")
        return data

    async def probe_format(self, file_path: Path) -> ProbeFormat:
        """
        Read container duration and size for a media file.

        Raises:
            FileNotFoundError: If the media file doesn't exist
            FFProbeNotFoundError: If ffprobe binary not found
            FFProbeExecutionError: If ffprobe fails or times out
            FFProbeParseError: If the output is malformed
        """
        if not file_path.exists():
            raise FileNotFoundError(f"Media file not found: {file_path}")

        args = [
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_entries",
            "format=size,duration",
            str(file_path),
        ]
        data = await self._execute_ffprobe(args)

        fmt = data.get("format")
        if not isinstance(fmt, dict):
            raise FFProbeParseError("ffprobe output has no format section")

        result = ProbeFormat(
            duration=_optional_number(fmt.get("duration"), float),
            size=_optional_number(fmt.get("size"), int),
        )
        self.logger.debug(
            "ffprobe_format_probed",
            file_path=str(file_path),
            duration=result.duration,
            size=result.size,
        )
        return result
