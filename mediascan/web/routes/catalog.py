"""Read-only access to the media catalog."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mediascan.scan.models import ExtractedRecord
from mediascan.service import MediaScanService
from mediascan.web.dependencies import get_service
from mediascan.web.schemas.common import COMMON_ERROR_RESPONSES, PageParams, PaginatedResponse

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get(
    "",
    response_model=PaginatedResponse[ExtractedRecord],
    summary="List catalog records",
)
async def list_catalog(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    service: MediaScanService = Depends(get_service),
) -> PaginatedResponse[ExtractedRecord]:
    """List records from the last completed scan, ordered by title."""
    params = PageParams(page=page, page_size=page_size)
    items = await service.catalog.list_records(limit=params.page_size, offset=params.offset)
    total = await service.catalog.count()
    return PaginatedResponse[ExtractedRecord].create(items, total, params)


@router.get(
    "/record",
    response_model=ExtractedRecord,
    responses={404: COMMON_ERROR_RESPONSES[404]},
    summary="Get one catalog record by file path",
)
async def get_record(
    path: str = Query(..., min_length=1, description="Absolute file path"),
    service: MediaScanService = Depends(get_service),
) -> ExtractedRecord:
    record = await service.catalog.get(path)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No catalog record for {path}",
        )
    return record
