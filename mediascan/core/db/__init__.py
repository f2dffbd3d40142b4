"""Async SQLite persistence for the catalog, checkpoints and schedule settings."""

from .catalog import CatalogRepository
from .connection import DatabaseConnection
from .exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    MigrationError,
    TransactionError,
)
from .migrator import Migrator
from .schedule_store import ScheduleSettingsStore

__all__ = [
    "CatalogRepository",
    "DatabaseConnection",
    "DatabaseConnectionError",
    "DatabaseError",
    "MigrationError",
    "Migrator",
    "ScheduleSettingsStore",
    "TransactionError",
]
