"""SQLite connection management for the catalog store."""

import asyncio
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import structlog

from .exceptions import DatabaseConnectionError

logger = structlog.get_logger(__name__)


class DatabaseConnection:
    """Owns the single aiosqlite connection shared by the catalog stores.

    Writers and catalog readers hold :attr:`lock` so that a statement from
    one store never lands inside another store's open transaction.
    """

    def __init__(
        self,
        db_path: Path,
        enable_wal: bool = True,
        timeout: int = 30,
    ):
        """
        Initialize database connection manager.

        Args:
            db_path: Path to SQLite database file (``:memory:`` is accepted)
            enable_wal: Enable Write-Ahead Logging mode
            timeout: Busy timeout in seconds
        """
        self.db_path = db_path
        self.enable_wal = enable_wal
        self.timeout = timeout
        self._connection: Optional[aiosqlite.Connection] = None
        self.lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> aiosqlite.Connection:
        """
        Open the connection if needed and return it.

        Raises:
            DatabaseConnectionError: If connection fails
        """
        if self._connection is not None:
            return self._connection

        in_memory = str(self.db_path) == ":memory:"
        try:
            if not in_memory:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._connection = await aiosqlite.connect(
                str(self.db_path),
                timeout=self.timeout,
            )
            self._connection.row_factory = aiosqlite.Row

            if self.enable_wal and not in_memory:
                await self._connection.execute("PRAGMA journal_mode = WAL")

            logger.info(
                "database_connected",
                db_path=str(self.db_path),
                wal_mode=self.enable_wal and not in_memory,
            )
            return self._connection

        except Exception as e:
            logger.error(
                "database_connection_failed",
                db_path=str(self.db_path),
                error=str(e),
            )
            raise DatabaseConnectionError(
                f"Failed to connect to database: {e}",
                path=self.db_path,
            ) from e

    async def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("database_closed", db_path=str(self.db_path))

    async def __aenter__(self) -> aiosqlite.Connection:
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
