"""Exceptions for database operations."""

from pathlib import Path
from typing import Optional


class DatabaseError(Exception):
    """Base exception for database errors."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when database connection fails."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class MigrationError(DatabaseError):
    """Raised when database migration fails."""

    def __init__(
        self,
        message: str,
        version: Optional[int] = None,
        filename: Optional[str] = None,
    ):
        super().__init__(message)
        self.version = version
        self.filename = filename


class TransactionError(DatabaseError):
    """Raised when transaction operation fails."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
