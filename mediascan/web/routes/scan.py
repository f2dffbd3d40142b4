"""Scan control, progress stream and settings routes.

Scans always cover the configured video directories. Progress is
published as newline-delimited JSON on ``GET /scan/events``; each line is
one camelCase ``ProgressEvent``.
"""

import json
from typing import Any, AsyncIterator, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import StreamingResponse

from mediascan.common.config import ScanSettings, ScheduleSettings
from mediascan.core.event_bus import ProgressHub, Subscriber
from mediascan.core.exceptions import InvalidScanIdError, ScanInProgressError, ScanSealedError
from mediascan.scan.models import ScanMode, SchedulerStatus
from mediascan.service import MediaScanService
from mediascan.web.dependencies import get_service
from mediascan.web.schemas.common import COMMON_ERROR_RESPONSES
from mediascan.web.schemas.scan import (
    CheckpointInfoResponse,
    ControlAction,
    ScanCommandResponse,
    ScanControlRequest,
    ScanStartRequest,
    ScanStatusResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/scan", tags=["Scan"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"


@router.post(
    "/start",
    response_model=ScanCommandResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={409: COMMON_ERROR_RESPONSES[409]},
    summary="Start a manual scan",
)
async def start_scan(
    request: Optional[ScanStartRequest] = Body(default=None),
    service: MediaScanService = Depends(get_service),
) -> ScanCommandResponse:
    """
    Start scanning the configured directories in the background.

    Returns immediately with the new scan id. Only one scan may run at a
    time; a second request is rejected with 409.
    """
    request = request or ScanStartRequest()
    result = await service.orchestrator.start_scan(
        mode=ScanMode.MANUAL,
        generate_thumbnails=request.generate_thumbnails,
    )
    if not result.success:
        raise ScanInProgressError(result.message, scan_id=result.scan_id)

    logger.info("scan_start_requested", scan_id=result.scan_id)
    return ScanCommandResponse(**result.model_dump())


@router.post(
    "/control",
    response_model=ScanCommandResponse,
    responses={404: COMMON_ERROR_RESPONSES[404], 409: COMMON_ERROR_RESPONSES[409]},
    summary="Pause, resume or cancel the running scan",
)
async def control_scan(
    request: ScanControlRequest,
    service: MediaScanService = Depends(get_service),
) -> ScanCommandResponse:
    orchestrator = service.orchestrator
    actions = {
        ControlAction.PAUSE: orchestrator.pause,
        ControlAction.RESUME: orchestrator.resume,
        ControlAction.CANCEL: orchestrator.cancel,
    }
    result = actions[request.action](request.scan_id)
    if not result.success:
        control = service.control
        if control.is_sealed and request.scan_id == control.active_scan_id:
            raise ScanSealedError(request.scan_id)
        raise InvalidScanIdError(request.scan_id)

    logger.info("scan_control_applied", action=request.action.value, scan_id=request.scan_id)
    return ScanCommandResponse(**result.model_dump())


async def _checkpoint_response(service: MediaScanService) -> CheckpointInfoResponse:
    info = await service.checkpoints.get_info()
    return CheckpointInfoResponse(
        exists=info.exists,
        is_valid=info.is_valid,
        age_minutes=info.age_minutes,
        phase=info.phase,
        progress_pct=info.progress_pct,
        scan_id=info.scan_id,
    )


@router.get("/status", response_model=ScanStatusResponse, summary="Current scan status")
async def scan_status(service: MediaScanService = Depends(get_service)) -> ScanStatusResponse:
    return ScanStatusResponse(
        **service.orchestrator.status(),
        subscribers=service.hub.subscriber_count,
        last_event=service.hub.last_event if service.hub.scan_active else None,
        checkpoint=await _checkpoint_response(service),
    )


@router.get(
    "/checkpoint",
    response_model=CheckpointInfoResponse,
    summary="Describe the stored scan checkpoint",
)
async def checkpoint_info(service: MediaScanService = Depends(get_service)) -> CheckpointInfoResponse:
    return await _checkpoint_response(service)


async def _ndjson_events(
    hub: ProgressHub,
    subscriber: Subscriber,
    request: Request,
) -> AsyncIterator[str]:
    try:
        async for event in hub.stream(subscriber):
            if await request.is_disconnected():
                break
            yield json.dumps(event) + "\n"
    finally:
        hub.release(subscriber)


@router.get(
    "/events",
    summary="Stream scan progress events",
    response_class=StreamingResponse,
)
async def scan_events(
    request: Request,
    service: MediaScanService = Depends(get_service),
) -> StreamingResponse:
    """
    Subscribe to progress events as newline-delimited JSON.

    The first line is a ``connected`` event. A client that joins mid-scan
    receives the latest scan event next. Heartbeats keep idle connections
    open.
    """
    subscriber = service.hub.subscribe()
    return StreamingResponse(
        _ndjson_events(service.hub, subscriber, request),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ==================== Settings ====================


@router.get("/settings", response_model=ScanSettings, summary="Get scan settings")
async def get_scan_settings(service: MediaScanService = Depends(get_service)) -> ScanSettings:
    return service.settings_store.current


@router.put(
    "/settings",
    response_model=ScanSettings,
    responses={422: {"description": "Invalid settings"}},
    summary="Update scan settings",
)
async def update_scan_settings(
    changes: Dict[str, Any] = Body(..., examples=[{"batchSize": 100, "sleepIntervalMs": 50}]),
    service: MediaScanService = Depends(get_service),
) -> ScanSettings:
    """
    Merge a partial update into the stored settings.

    Changes take effect on the next resource check of a running scan.
    """
    return await service.settings_store.update(changes)


@router.post("/settings/reset", response_model=ScanSettings, summary="Restore default scan settings")
async def reset_scan_settings(service: MediaScanService = Depends(get_service)) -> ScanSettings:
    return await service.settings_store.reset()


@router.get("/schedule", response_model=ScheduleSettings, summary="Get schedule settings")
async def get_schedule(service: MediaScanService = Depends(get_service)) -> ScheduleSettings:
    return service.scheduler.settings


@router.put("/schedule", response_model=ScheduleSettings, summary="Update schedule settings")
async def update_schedule(
    settings: ScheduleSettings,
    service: MediaScanService = Depends(get_service),
) -> ScheduleSettings:
    """Persist the schedule and start, stop or restart the timer to match."""
    return await service.scheduler.update_settings(settings)


@router.get("/schedule/status", response_model=SchedulerStatus, summary="Scheduler status")
async def schedule_status(service: MediaScanService = Depends(get_service)) -> SchedulerStatus:
    return service.scheduler.get_status()
