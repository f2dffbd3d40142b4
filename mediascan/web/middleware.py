"""Middleware and exception handlers for the FastAPI application."""

import time
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from mediascan.core.db.exceptions import DatabaseError, TransactionError
from mediascan.core.exceptions import InvalidScanIdError, ScanInProgressError, ScanSealedError

logger = structlog.get_logger(__name__)


def _validation_errors(errors: list) -> list:
    return [
        {
            "loc": list(err["loc"]),
            "msg": err["msg"],
            "type": err["type"],
        }
        for err in errors
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers for the FastAPI application.

    Maps scan and database exceptions to HTTP status codes:
    - InvalidScanIdError -> 404
    - ScanInProgressError, ScanSealedError -> 409
    - RequestValidationError, pydantic ValidationError -> 422
    - TransactionError, DatabaseError -> 500

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(InvalidScanIdError)
    async def invalid_scan_id_handler(request: Request, exc: InvalidScanIdError) -> JSONResponse:
        logger.warning("invalid_scan_id", scan_id=exc.scan_id, path=str(request.url.path))
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": str(exc),
                "detail": str(exc),
                "error_type": "invalid_scan_id",
                "scan_id": exc.scan_id,
            },
        )

    @app.exception_handler(ScanInProgressError)
    async def scan_in_progress_handler(request: Request, exc: ScanInProgressError) -> JSONResponse:
        logger.warning("scan_in_progress", scan_id=exc.scan_id, path=str(request.url.path))
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "message": str(exc),
                "detail": str(exc),
                "error_type": "scan_in_progress",
                "scan_id": exc.scan_id,
            },
        )

    @app.exception_handler(ScanSealedError)
    async def scan_sealed_handler(request: Request, exc: ScanSealedError) -> JSONResponse:
        logger.warning("scan_sealed", scan_id=exc.scan_id, path=str(request.url.path))
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "message": str(exc),
                "detail": str(exc),
                "error_type": "scan_sealed",
                "scan_id": exc.scan_id,
            },
        )

    @app.exception_handler(TransactionError)
    async def transaction_error_handler(request: Request, exc: TransactionError) -> JSONResponse:
        logger.error(
            "transaction_error",
            operation=exc.operation,
            error=str(exc),
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Database transaction failed",
                "error_type": "transaction_error",
            },
        )

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
        logger.error("database_error", error=str(exc), path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Database error occurred",
                "error_type": "database_error",
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("validation_error", errors=exc.errors(), path=str(request.url.path))
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation error",
                "error_type": "validation_error",
                "errors": _validation_errors(exc.errors()),
            },
        )

    @app.exception_handler(ValidationError)
    async def settings_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning("settings_validation_error", errors=exc.errors(), path=str(request.url.path))
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Invalid settings",
                "error_type": "validation_error",
                "errors": _validation_errors(exc.errors()),
            },
        )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests and responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=request.method,
            path=str(request.url.path),
            query=str(request.url.query) if request.url.query else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=request.method,
                path=str(request.url.path),
                error=str(exc),
                duration_ms=round(duration * 1000, 2),
            )
            raise

        duration = time.perf_counter() - start_time
        logger.info(
            "request_completed",
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        return response
