"""API-specific settings using Pydantic BaseSettings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """
    FastAPI application settings.

    Settings can be configured via environment variables with the prefix MEDIASCAN_API_.
    For example: MEDIASCAN_API_HOST=0.0.0.0, MEDIASCAN_API_DEBUG=true

    Attributes:
        host: Server bind address
        port: Server bind port
        debug: Enable debug mode (auto-reload, verbose errors)
        allowed_origins: List of allowed CORS origins
        log_requests: Log all requests and responses
        openapi_url: OpenAPI schema URL
        config_file: Optional YAML config file; defaults are used when unset
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDIASCAN_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    log_requests: bool = True
    openapi_url: str = "/openapi.json"
    config_file: Optional[Path] = None


@lru_cache
def get_settings() -> APISettings:
    """
    Get cached API settings instance.

    Returns:
        APISettings instance (cached)
    """
    return APISettings()
