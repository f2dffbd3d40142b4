"""Configuration models using Pydantic for validation."""

import os
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from ruamel.yaml import YAML

logger = structlog.get_logger(__name__)

VIDEO_DIRECTORY_ENV = "MEDIASCAN_VIDEO_DIRECTORY"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire.

    Snake_case attribute names are still accepted on input so YAML config
    files can use either spelling.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileLoggingConfig(BaseModel):
    """Configuration for file-based logging.

    File logging uses daily rotation with 7-day retention.
    Log files are stored as mediascan.log in config_dir.
    """

    enabled: bool = Field(
        default=False,
        description="Enable file logging (logs to mediascan.log in config_dir)",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    format: str = Field(
        default="json",
        description="Log format: json or text",
    )
    file: FileLoggingConfig = Field(
        default_factory=FileLoggingConfig,
        description="File logging configuration",
    )
    third_party: Dict[str, str] = Field(
        default_factory=dict,
        description="Log levels for third-party libraries (advanced)",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid format: {v}. Must be one of {valid_formats}")
        return v_lower


class FFProbeConfig(BaseModel):
    """Configuration for the ffprobe metadata client."""

    ffprobe_path: str = Field(
        default="ffprobe",
        description="Path to ffprobe binary",
    )
    timeout: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Command execution timeout in seconds",
    )
    batch_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Concurrent probes when extracting a batch of files",
    )


class ThumbnailConfig(BaseModel):
    """Configuration for thumbnail rendering via ffmpeg."""

    ffmpeg_path: str = Field(
        default="ffmpeg",
        description="Path to ffmpeg binary",
    )
    cache_dir: str = Field(
        default=".thumbnails",
        description="Directory for rendered thumbnails (relative to config_dir)",
    )
    width: int = Field(
        default=300,
        ge=16,
        le=3840,
        description="Thumbnail width in pixels (height keeps aspect ratio)",
    )
    quality: int = Field(
        default=70,
        ge=1,
        le=100,
        description="WebP encoder quality",
    )
    seek_ratio: float = Field(
        default=0.33,
        ge=0.0,
        le=1.0,
        description="Fraction of the known duration to seek to before grabbing a frame",
    )
    timeout: int = Field(
        default=60,
        ge=5,
        le=600,
        description="Command execution timeout in seconds",
    )


class CatalogConfig(BaseModel):
    """Configuration for the SQLite catalog store."""

    enable_wal_mode: bool = Field(
        default=True,
        description="Enable SQLite write-ahead logging",
    )
    connection_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Connection timeout in seconds",
    )
    transaction_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Timeout in seconds for the catalog replace transaction",
    )
    checkpoint_validity_hours: float = Field(
        default=24.0,
        gt=0,
        description="Age after which a scan checkpoint is considered stale",
    )


class ProcessingPriority(str, Enum):
    """Scan processing priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class TimeRange(CamelModel):
    """Wall-clock quiet hours window. Wraps past midnight when start > end."""

    enabled: bool = False
    start_hour: int = Field(default=22, ge=0, le=23)
    end_hour: int = Field(default=6, ge=0, le=23)


class ScanSettings(CamelModel):
    """Tunables read by the resource monitor and the batch processors."""

    batch_size: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Files handled per batch",
    )
    progress_update_interval: int = Field(
        default=10,
        ge=10,
        le=1000,
        description="Emit a progress event every N processed files",
    )
    sleep_interval_ms: int = Field(
        default=100,
        ge=0,
        le=100,
        description="Idle sleep between batches in milliseconds",
    )
    processing_priority: ProcessingPriority = Field(
        default=ProcessingPriority.NORMAL,
        description="Scales the recommended batch size",
    )
    max_concurrent_operations: int = Field(
        default=3,
        ge=1,
        le=8,
        description="Concurrent chunks in the chunked metadata phase",
    )
    memory_threshold_mb: int = Field(
        default=1024,
        ge=256,
        le=2048,
        description="Process memory above which the scan backs off",
    )
    auto_pause_on_high_cpu: bool = Field(
        default=False,
        description="Recommend pausing when CPU usage exceeds the threshold",
    )
    auto_pause_threshold_pct: int = Field(
        default=80,
        ge=50,
        le=95,
        description="CPU percentage used by auto pause",
    )
    auto_pause_time_range: TimeRange = Field(
        default_factory=TimeRange,
        description="Quiet hours during which scanning should pause",
    )


class ScheduleInterval(str, Enum):
    """Scheduled scan interval."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ExecutionTime(CamelModel):
    """Time of day a scheduled scan fires."""

    hour: int = Field(default=3, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)


class ScheduleSettings(CamelModel):
    """Scheduled re-scan settings."""

    enabled: bool = False
    interval: ScheduleInterval = ScheduleInterval.DAILY
    interval_hours: int = Field(default=24, ge=1, le=168)
    execution_time: ExecutionTime = Field(default_factory=ExecutionTime)
    weekly_days: List[int] = Field(default_factory=lambda: [0])
    monthly_day: int = Field(default=1, ge=1, le=31)
    skip_if_running: bool = True
    max_execution_time_minutes: int = Field(default=180, ge=30, le=720)
    only_when_idle: bool = False

    @field_validator("weekly_days")
    @classmethod
    def validate_weekly_days(cls, v: List[int]) -> List[int]:
        """Validate weekdays (0=Sunday .. 6=Saturday), dropping duplicates."""
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"Invalid weekday: {day}. Must be 0-6")
        return sorted(set(v))


def _get_default_config_dir() -> Path:
    """
    Get default config directory based on environment.

    Priority:
    1. MEDIASCAN_CONFIG_DIR environment variable
    2. $HOME/MediaScan/config otherwise
    """
    env_config_dir = os.environ.get("MEDIASCAN_CONFIG_DIR")
    if env_config_dir:
        return Path(env_config_dir)

    return Path.home() / "MediaScan" / "config"


def normalize_path(path: str) -> str:
    """Normalize path separators to forward slashes."""
    return path.replace("\\", "/")


def parse_directory_list(value: Optional[str]) -> List[str]:
    """
    Parse a comma-separated directory list.

    Entries are trimmed, one layer of surrounding quotes is removed and
    blank entries are dropped.

    Example:
        >>> parse_directory_list(' "/media/a", /media/b ,, ')
        ['/media/a', '/media/b']
    """
    if not value:
        return []

    directories = []
    for entry in value.split(","):
        entry = entry.strip()
        if len(entry) >= 2 and entry[0] == entry[-1] and entry[0] in ("'", '"'):
            entry = entry[1:-1].strip()
        if entry:
            directories.append(normalize_path(entry))
    return directories


class Config(BaseModel):
    """Main configuration class for MediaScan.

    Environment Variables:
    - MEDIASCAN_CONFIG_DIR: Override config_dir
    - MEDIASCAN_VIDEO_DIRECTORY: Comma-separated list of video roots, merged
      with ``video_directories``

    All relative paths (database, thumbnails, settings file, log file) are
    resolved against config_dir at runtime.
    """

    config_dir: Optional[Path] = Field(
        default=None,
        description="Configuration directory (database, thumbnails, settings). Resolved from MEDIASCAN_CONFIG_DIR or defaults.",
    )
    video_directories: List[str] = Field(
        default_factory=list,
        description="Root directories scanned for media files",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    ffprobe: FFProbeConfig = Field(
        default_factory=FFProbeConfig,
        description="ffprobe client configuration",
    )
    thumbnail: ThumbnailConfig = Field(
        default_factory=ThumbnailConfig,
        description="Thumbnail rendering configuration",
    )
    catalog: CatalogConfig = Field(
        default_factory=CatalogConfig,
        description="Catalog database configuration",
    )
    scan: ScanSettings = Field(
        default_factory=ScanSettings,
        description="Initial scan settings, used until a settings file is saved",
    )
    schedule: ScheduleSettings = Field(
        default_factory=ScheduleSettings,
        description="Initial schedule settings, used until settings are persisted",
    )

    DEFAULT_DATABASE_PATH: ClassVar[str] = "mediascan.db"
    DEFAULT_SETTINGS_FILE: ClassVar[str] = "scan-settings.json"
    DEFAULT_LOG_FILE: ClassVar[str] = "mediascan.log"

    def resolve_paths(self, create_dirs: bool = True) -> "Config":
        """
        Resolve config_dir from environment or defaults.

        Args:
            create_dirs: If True, create directories if they don't exist

        Returns:
            Self with resolved paths (for chaining)

        Example:
            >>> config = Config.from_yaml(Path("config.yaml")).resolve_paths()
        """
        if self.config_dir is None:
            object.__setattr__(self, "config_dir", _get_default_config_dir())

        if create_dirs:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            self.get_thumbnail_dir().mkdir(parents=True, exist_ok=True)

        logger.debug("paths_resolved", config_dir=str(self.config_dir))
        return self

    def _require_config_dir(self) -> Path:
        if self.config_dir is None:
            self.resolve_paths(create_dirs=False)
        return self.config_dir

    def get_database_path(self) -> Path:
        """Get absolute database path, resolved against config_dir."""
        return self._require_config_dir() / self.DEFAULT_DATABASE_PATH

    def get_thumbnail_dir(self) -> Path:
        """Get absolute thumbnail directory, resolved against config_dir."""
        cache_dir = Path(self.thumbnail.cache_dir)
        if cache_dir.is_absolute():
            return cache_dir
        return self._require_config_dir() / cache_dir

    def get_settings_path(self) -> Path:
        """Get the scan settings JSON file path."""
        return self._require_config_dir() / self.DEFAULT_SETTINGS_FILE

    def get_log_file_path(self) -> Path:
        """Get the log file path."""
        return self._require_config_dir() / self.DEFAULT_LOG_FILE

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file using ruamel.yaml.

        Raises:
            FileNotFoundError: If config file doesn't exist
            pydantic.ValidationError: If configuration is invalid
        """
        yaml_loader = YAML()
        yaml_loader.preserve_quotes = True

        with open(path, "r", encoding="utf-8") as f:
            data = yaml_loader.load(f)
        return cls.model_validate(_to_plain(data) or {})

    @classmethod
    def from_yaml_string(cls, yaml_string: str) -> "Config":
        """
        Load configuration from YAML string.

        Example:
            >>> config = Config.from_yaml_string("ffprobe:\\n  timeout: 60")
        """
        data = yaml.safe_load(yaml_string)
        return cls.model_validate(data or {})


def _to_plain(data: Any) -> Any:
    """Convert ruamel.yaml containers into plain dicts and lists."""
    if isinstance(data, dict):
        return {str(k): _to_plain(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_to_plain(v) for v in data]
    return data


def get_video_directories(config: Config) -> List[str]:
    """
    Get the configured video roots.

    Combines ``config.video_directories`` with the MEDIASCAN_VIDEO_DIRECTORY
    environment variable, preserving order and dropping duplicates.
    """
    directories: List[str] = []
    for entry in [*config.video_directories, *parse_directory_list(os.environ.get(VIDEO_DIRECTORY_ENV))]:
        entry = normalize_path(entry.strip())
        if entry and entry not in directories:
            directories.append(entry)
    return directories
