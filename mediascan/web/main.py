"""FastAPI application factory and entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

import mediascan
from mediascan.common.config import Config
from mediascan.common.logging_config import setup_logging
from mediascan.service import MediaScanService

from .dependencies import get_service
from .middleware import RequestLoggingMiddleware, register_exception_handlers
from .schemas.common import HealthCheckResponse
from .settings import get_settings

logger = structlog.get_logger(__name__)


def load_config() -> Config:
    """Load the YAML config named by MEDIASCAN_API_CONFIG_FILE, else defaults."""
    settings = get_settings()
    if settings.config_file is not None:
        return Config.from_yaml(settings.config_file)
    return Config()


def create_app(
    config: Optional[Config] = None,
    service: Optional[MediaScanService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Configuration to build the service from (loaded when None)
        service: Pre-built service; the lifespan then neither creates nor
            closes it (used by tests)

    Example:
        from fastapi.testclient import TestClient
        client = TestClient(create_app(service=service))
    """
    settings = get_settings()
    config = config or (service.config if service is not None else load_config())
    setup_logging(config.logging, config.config_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("api_starting", host=settings.host, port=settings.port)

        owned = service is None
        app.state.service = service or await MediaScanService.create(config)
        if owned:
            await app.state.service.start()
        else:
            logger.info("api_using_existing_service")

        logger.info("api_ready", version=mediascan.__version__, debug=settings.debug)

        yield

        logger.info("api_shutting_down")
        if owned:
            await app.state.service.close()

    app = FastAPI(
        title="MediaScan API",
        version=mediascan.__version__,
        description="""Media library scan engine.

Starts and controls scans of the configured video directories, streams
progress as newline-delimited JSON and exposes the resulting catalog.
""",
        openapi_url=settings.openapi_url,
        openapi_tags=[
            {"name": "Health", "description": "Health check and status endpoints"},
            {"name": "Scan", "description": "Scan control, progress stream, settings and schedule"},
            {"name": "Catalog", "description": "Records written by the last completed scan"},
        ],
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.log_requests:
        app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check",
        response_model=HealthCheckResponse,
    )
    async def health_check(
        svc: MediaScanService = Depends(get_service),
    ) -> HealthCheckResponse:
        return HealthCheckResponse(
            status="ok",
            version=mediascan.__version__,
            database="connected" if svc.db.is_connected else "disconnected",
        )

    from .routes import catalog, scan

    app.include_router(scan.router)
    app.include_router(catalog.router)

    logger.info("api_app_created", routes=len(app.routes))

    return app


def run() -> None:
    """
    Run the API server with uvicorn.

    This is the entry point for the mediascan-api script.
    """
    settings = get_settings()

    uvicorn.run(
        "mediascan.web.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
