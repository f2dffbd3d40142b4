"""Request and response schemas for scan control."""

from enum import Enum
from typing import Optional

from pydantic import Field

from mediascan.common.config import CamelModel
from mediascan.scan.models import CommandResult, ScanPhase


class ScanStartRequest(CamelModel):
    """Request to start a manual scan of the configured directories."""

    generate_thumbnails: bool = Field(
        default=False,
        description="Render thumbnails after metadata extraction",
    )


class ControlAction(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"


class ScanControlRequest(CamelModel):
    """Pause, resume or cancel the running scan.

    Example:
        {"action": "pause", "scanId": "scan_1718000000000"}
    """

    action: ControlAction
    scan_id: str = Field(..., min_length=1, description="Id of the running scan")


class ScanCommandResponse(CommandResult):
    """Outcome of a start or control command."""


class CheckpointInfoResponse(CamelModel):
    exists: bool
    is_valid: bool = False
    age_minutes: Optional[int] = None
    phase: Optional[ScanPhase] = None
    progress_pct: Optional[float] = None
    scan_id: Optional[str] = None


class ScanStatusResponse(CamelModel):
    is_updating: bool
    scan_id: Optional[str] = None
    phase: ScanPhase = ScanPhase.IDLE
    is_paused: bool = False
    subscribers: int = 0
    last_event: Optional[dict] = None
    checkpoint: Optional[CheckpointInfoResponse] = None
