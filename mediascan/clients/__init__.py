"""Async clients for the ffprobe and ffmpeg command line tools."""

from .ffmpeg_client import FFmpegClient
from .ffprobe_client import FFProbeClient, ProbeFormat

__all__ = ["FFmpegClient", "FFProbeClient", "ProbeFormat"]
