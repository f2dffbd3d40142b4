"""Shared configuration and logging helpers."""

from .config import (
    CatalogConfig,
    Config,
    FFProbeConfig,
    LoggingConfig,
    ProcessingPriority,
    ScanSettings,
    ScheduleInterval,
    ScheduleSettings,
    ThumbnailConfig,
    get_video_directories,
    parse_directory_list,
)
from .logging_config import bind_context, setup_logging, unbind_context

__all__ = [
    "CatalogConfig",
    "Config",
    "FFProbeConfig",
    "LoggingConfig",
    "ProcessingPriority",
    "ScanSettings",
    "ScheduleInterval",
    "ScheduleSettings",
    "ThumbnailConfig",
    "get_video_directories",
    "parse_directory_list",
    "bind_context",
    "setup_logging",
    "unbind_context",
]
