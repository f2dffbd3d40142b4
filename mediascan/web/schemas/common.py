"""Common schema types for pagination and error responses."""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

from mediascan.common.config import CamelModel

T = TypeVar("T")


class PageParams(BaseModel):
    """Pagination parameters for list endpoints."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    page_size: int = Field(default=50, ge=1, le=500, description="Number of items per page")

    @property
    def offset(self) -> int:
        """Calculate offset for database query."""
        return (self.page - 1) * self.page_size


class PaginatedResponse(CamelModel, Generic[T]):
    """
    Generic paginated response wrapper.

    Example:
        {
            "items": [...],
            "total": 100,
            "page": 1,
            "pageSize": 50,
            "totalPages": 2
        }
    """

    items: List[T]
    total: int = Field(description="Total number of items")
    page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Total number of pages")

    @classmethod
    def create(cls, items: List[T], total: int, page_params: PageParams) -> "PaginatedResponse[T]":
        total_pages = (total + page_params.page_size - 1) // page_params.page_size
        return cls(
            items=items,
            total=total,
            page=page_params.page,
            page_size=page_params.page_size,
            total_pages=max(1, total_pages),
        )


class ErrorDetail(BaseModel):
    """Standard error response detail."""

    detail: str = Field(description="Error message")
    error_type: str = Field(description="Error type identifier")


# Reusable responses dict for OpenAPI documentation.
COMMON_ERROR_RESPONSES = {
    400: {
        "model": ErrorDetail,
        "description": "Bad Request - Invalid input or business rule violation",
    },
    404: {
        "model": ErrorDetail,
        "description": "Not Found - Resource does not exist",
    },
    409: {
        "model": ErrorDetail,
        "description": "Conflict - A scan is already in progress",
    },
    500: {
        "model": ErrorDetail,
        "description": "Internal Server Error - Unexpected server error",
    },
}


class HealthCheckResponse(BaseModel):
    """Health check endpoint response."""

    status: str = Field(description="Health status ('ok' or 'error')")
    version: str = Field(description="API version string")
    database: str = Field(description="Database status ('connected' or 'disconnected')")
