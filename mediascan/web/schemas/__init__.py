"""Pydantic schemas for the MediaScan API."""

from .common import COMMON_ERROR_RESPONSES, ErrorDetail, HealthCheckResponse, PageParams, PaginatedResponse
from .scan import (
    CheckpointInfoResponse,
    ControlAction,
    ScanCommandResponse,
    ScanControlRequest,
    ScanStartRequest,
    ScanStatusResponse,
)

__all__ = [
    "COMMON_ERROR_RESPONSES",
    "CheckpointInfoResponse",
    "ControlAction",
    "ErrorDetail",
    "HealthCheckResponse",
    "PageParams",
    "PaginatedResponse",
    "ScanCommandResponse",
    "ScanControlRequest",
    "ScanStartRequest",
    "ScanStatusResponse",
]
