"""FastAPI web API for the MediaScan scan engine."""

from .main import create_app
from .settings import APISettings

__all__ = [
    "create_app",
    "APISettings",
]
