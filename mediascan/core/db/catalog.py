"""Catalog repository: the persisted set of extracted media records."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional, Sequence

import aiosqlite
import structlog

from ...scan.models import ExtractedRecord
from .connection import DatabaseConnection
from .exceptions import TransactionError

logger = structlog.get_logger(__name__)

DEFAULT_TRANSACTION_TIMEOUT = 600.0

_COLUMNS = (
    "file_path",
    "file_name",
    "title",
    "file_size",
    "episode",
    "year",
    "duration",
    "broadcast_date",
    "station",
    "last_modified",
    "thumbnail_path",
    "updated_at",
)

_INSERT_SQL = (
    f"INSERT INTO media_catalog ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)


def _record_to_row(record: ExtractedRecord, updated_at: str) -> tuple:
    return (
        record.file_path,
        record.file_name,
        record.title,
        record.file_size,
        record.episode,
        record.year,
        record.duration,
        record.broadcast_date,
        record.station,
        record.last_modified.isoformat(),
        record.thumbnail_path,
        updated_at,
    )


def _row_to_record(row: aiosqlite.Row) -> ExtractedRecord:
    return ExtractedRecord(
        file_path=row["file_path"],
        file_name=row["file_name"],
        title=row["title"],
        file_size=row["file_size"],
        episode=row["episode"],
        year=row["year"],
        duration=row["duration"],
        broadcast_date=row["broadcast_date"],
        station=row["station"],
        last_modified=datetime.fromisoformat(row["last_modified"]),
        thumbnail_path=row["thumbnail_path"],
    )


class CatalogRepository:
    """Read access to the catalog plus the single transactional replace."""

    def __init__(
        self,
        db: DatabaseConnection,
        transaction_timeout: float = DEFAULT_TRANSACTION_TIMEOUT,
    ):
        self._db = db
        self.transaction_timeout = transaction_timeout

    async def _conn(self) -> aiosqlite.Connection:
        return await self._db.connect()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Explicit transaction context manager.

        Commits on normal exit; rolls back and raises TransactionError on any
        exception, including cancellation and timeouts.
        """
        conn = await self._conn()
        async with self._db.lock:
            try:
                await conn.execute("BEGIN")
                logger.debug("transaction_started")
                yield conn
                await conn.commit()
                logger.debug("transaction_committed")
            except BaseException as e:
                await conn.rollback()
                logger.error("transaction_rolled_back", error=str(e) or type(e).__name__)
                if isinstance(e, Exception):
                    raise TransactionError(
                        f"Transaction failed: {e or type(e).__name__}",
                        operation="rollback",
                    ) from e
                raise

    async def replace_all(
        self,
        records: Sequence[ExtractedRecord],
        timeout: Optional[float] = None,
    ) -> int:
        """
        Replace the whole catalog with ``records`` in one transaction.

        Readers outside the transaction never observe the intermediate empty
        table. On failure or timeout the previous contents are kept.

        Args:
            records: Complete new record set
            timeout: Seconds allowed for the transaction (default: repository setting)

        Returns:
            Number of rows written

        Raises:
            TransactionError: If the replace fails or times out
        """
        timeout = timeout if timeout is not None else self.transaction_timeout
        updated_at = datetime.now(timezone.utc).isoformat()
        rows = [_record_to_row(r, updated_at) for r in records]

        async def _replace() -> None:
            async with self.transaction() as conn:
                await conn.execute("DELETE FROM media_catalog")
                if rows:
                    await conn.executemany(_INSERT_SQL, rows)

        try:
            await asyncio.wait_for(_replace(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("catalog_replace_timeout", timeout=timeout, records=len(rows))
            raise TransactionError(
                f"Catalog replace timed out after {timeout}s",
                operation="replace",
            ) from e

        logger.info("catalog_replaced", records=len(rows))
        return len(rows)

    async def list_records(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ExtractedRecord]:
        """List catalog records ordered by title."""
        conn = await self._conn()
        sql = "SELECT * FROM media_catalog ORDER BY title, file_path"
        params: List[Any] = []
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        async with self._db.lock:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def get(self, file_path: str) -> Optional[ExtractedRecord]:
        conn = await self._conn()
        async with self._db.lock:
            cursor = await conn.execute(
                "SELECT * FROM media_catalog WHERE file_path = ?",
                (file_path,),
            )
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def count(self) -> int:
        conn = await self._conn()
        async with self._db.lock:
            cursor = await conn.execute("SELECT COUNT(*) FROM media_catalog")
            row = await cursor.fetchone()
        return int(row[0])
