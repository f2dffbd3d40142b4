"""Scan data models and event payloads."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from ..common.config import CamelModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScanPhase(str, Enum):
    """Scan state machine.

    ``idle -> discovery -> metadata -> [thumbnails] -> database -> complete``;
    ``error`` and ``cancelled`` are terminal and reachable from any in-flight
    phase. Pause is tracked separately by scan control.
    """

    IDLE = "idle"
    DISCOVERY = "discovery"
    METADATA = "metadata"
    THUMBNAILS = "thumbnails"
    DATABASE = "database"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class ScanMode(str, Enum):
    """What triggered a scan."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ScanStatus(str, Enum):
    """Final status of a scan run."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ExecutionStatus(str, Enum):
    """Outcome of a scheduled execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class EventType(str, Enum):
    """Progress stream event types."""

    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    PHASE = "phase"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"
    SCHEDULER_STATUS = "scheduler_status"


class MediaFile(CamelModel):
    """A media file found during discovery. Not persisted on its own."""

    file_path: str
    file_name: str


class ExtractedRecord(CamelModel):
    """One catalog row, keyed by ``file_path``."""

    file_path: str
    file_name: str
    title: str
    file_size: int = 0
    episode: Optional[int] = None
    year: Optional[int] = None
    duration: Optional[int] = None
    broadcast_date: Optional[str] = None
    station: Optional[str] = None
    last_modified: datetime
    thumbnail_path: Optional[str] = None


class ScanCheckpoint(CamelModel):
    """Persisted marker of scan progress."""

    scan_id: str
    mode: ScanMode = ScanMode.MANUAL
    phase: ScanPhase
    processed_count: int = 0
    total_count: int = 0
    saved_at: datetime = Field(default_factory=utc_now)

    @property
    def progress_pct(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return round(self.processed_count / self.total_count * 100, 1)


class SchedulerStatus(CamelModel):
    """Snapshot of the scheduler state."""

    is_enabled: bool = False
    is_running: bool = False
    cron_pattern: Optional[str] = None
    next_execution: Optional[datetime] = None
    last_execution: Optional[datetime] = None
    last_execution_status: Optional[ExecutionStatus] = None
    current_execution_start_time: Optional[datetime] = None


class ProgressEvent(CamelModel):
    """Event delivered to progress stream subscribers.

    Only the fields relevant to ``type`` are set; unset fields are left out
    of the serialized form.
    """

    type: EventType
    scan_id: Optional[str] = None
    phase: Optional[ScanPhase] = None
    progress_pct: Optional[float] = None
    processed_files: Optional[int] = None
    total_files: Optional[int] = None
    current_file: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    processing_speed: Optional[float] = None
    estimated_time_remaining: Optional[int] = None
    total_elapsed_time: Optional[int] = None
    current_phase_elapsed: Optional[int] = None
    scheduler: Optional[SchedulerStatus] = None
    connection_id: Optional[str] = None
    active_connections: Optional[int] = None
    timestamp: Optional[datetime] = None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScanResult(CamelModel):
    """Summary of a finished scan run."""

    scan_id: str
    status: ScanStatus
    total_files: int = 0
    processed_files: int = 0
    records_written: int = 0
    failed_files: int = 0
    thumbnails_rendered: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[str] = None


class CommandResult(CamelModel):
    """Reply to a start or control request."""

    success: bool
    message: str
    scan_id: Optional[str] = None
