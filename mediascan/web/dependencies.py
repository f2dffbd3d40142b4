"""FastAPI dependency providers."""

from fastapi import Request

from mediascan.service import MediaScanService


def get_service(request: Request) -> MediaScanService:
    """Return the service container created in the application lifespan."""
    return request.app.state.service
