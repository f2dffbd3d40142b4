"""Scan checkpoint persistence.

A checkpoint records how far the in-flight scan got. Scans always restart
from full discovery, so the record serves diagnostics: it tells an operator
whether the previous run finished and where it stopped if it did not.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from ..core.db.connection import DatabaseConnection
from .models import ScanCheckpoint, ScanMode, ScanPhase

logger = structlog.get_logger(__name__)

CHECKPOINT_ID = "scan_checkpoint"
CHECKPOINT_VALIDITY_HOURS = 24.0

_UPSERT_SQL = """
    INSERT INTO scan_checkpoint (id, scan_id, mode, phase, processed_count, total_count, saved_at)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        scan_id = excluded.scan_id,
        mode = excluded.mode,
        phase = excluded.phase,
        processed_count = excluded.processed_count,
        total_count = excluded.total_count,
        saved_at = excluded.saved_at
"""


@dataclass
class CheckpointInfo:
    exists: bool
    is_valid: bool
    age_minutes: Optional[int] = None
    phase: Optional[ScanPhase] = None
    progress_pct: Optional[float] = None
    scan_id: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CheckpointManager:
    """Reads and writes the single scan checkpoint row."""

    def __init__(
        self,
        db: DatabaseConnection,
        validity_hours: float = CHECKPOINT_VALIDITY_HOURS,
        now: Callable[[], datetime] = _utc_now,
    ):
        self._db = db
        self.validity = timedelta(hours=validity_hours)
        self._now = now

    async def save(
        self,
        scan_id: str,
        mode: ScanMode,
        phase: ScanPhase,
        processed: int,
        total: int,
    ) -> ScanCheckpoint:
        """Upsert the checkpoint for the running scan."""
        checkpoint = ScanCheckpoint(
            scan_id=scan_id,
            mode=mode,
            phase=phase,
            processed_count=processed,
            total_count=total,
            saved_at=self._now(),
        )
        conn = await self._db.connect()
        async with self._db.lock:
            await conn.execute(
                _UPSERT_SQL,
                (
                    CHECKPOINT_ID,
                    checkpoint.scan_id,
                    checkpoint.mode.value,
                    checkpoint.phase.value,
                    checkpoint.processed_count,
                    checkpoint.total_count,
                    checkpoint.saved_at.isoformat(),
                ),
            )
            await conn.commit()
        logger.debug(
            "scan_checkpoint_saved",
            scan_id=scan_id,
            phase=phase.value,
            processed=processed,
            total=total,
        )
        return checkpoint

    async def load(self) -> Optional[ScanCheckpoint]:
        """Return the stored checkpoint regardless of age."""
        conn = await self._db.connect()
        async with self._db.lock:
            cursor = await conn.execute(
                "SELECT * FROM scan_checkpoint WHERE id = ?",
                (CHECKPOINT_ID,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None

        saved_at = datetime.fromisoformat(row["saved_at"])
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=timezone.utc)
        return ScanCheckpoint(
            scan_id=row["scan_id"],
            mode=ScanMode(row["mode"]),
            phase=ScanPhase(row["phase"]),
            processed_count=row["processed_count"],
            total_count=row["total_count"],
            saved_at=saved_at,
        )

    def _is_fresh(self, checkpoint: ScanCheckpoint) -> bool:
        return self._now() - checkpoint.saved_at <= self.validity

    async def get_valid_checkpoint(self) -> Optional[ScanCheckpoint]:
        """
        Return the checkpoint if it is recent enough to describe an unfinished run.

        A stale checkpoint is deleted and None is returned.
        """
        checkpoint = await self.load()
        if checkpoint is None:
            return None

        if not self._is_fresh(checkpoint):
            logger.info(
                "scan_checkpoint_expired",
                scan_id=checkpoint.scan_id,
                saved_at=checkpoint.saved_at.isoformat(),
            )
            await self.invalidate()
            return None

        return checkpoint

    async def invalidate(self) -> None:
        """Delete the checkpoint."""
        conn = await self._db.connect()
        async with self._db.lock:
            await conn.execute("DELETE FROM scan_checkpoint WHERE id = ?", (CHECKPOINT_ID,))
            await conn.commit()
        logger.debug("scan_checkpoint_invalidated")

    async def can_resume(self) -> bool:
        return await self.get_valid_checkpoint() is not None

    async def get_info(self) -> CheckpointInfo:
        """Describe the stored checkpoint without modifying it."""
        checkpoint = await self.load()
        if checkpoint is None:
            return CheckpointInfo(exists=False, is_valid=False)

        age = self._now() - checkpoint.saved_at
        return CheckpointInfo(
            exists=True,
            is_valid=self._is_fresh(checkpoint),
            age_minutes=int(age.total_seconds() // 60),
            phase=checkpoint.phase,
            progress_pct=checkpoint.progress_pct,
            scan_id=checkpoint.scan_id,
        )
