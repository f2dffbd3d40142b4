"""Cooperative pause, resume and cancel for the active scan.

Workers call :meth:`ScanControl.check_control` at file boundaries. A paused
scan blocks there on an :class:`asyncio.Event` and wakes as soon as it is
resumed or cancelled; a cancelled scan raises :class:`ScanCancelledError`.
Once a scan is sealed it refuses further pause and cancel requests.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from ..core.exceptions import InvalidScanIdError, ScanCancelledError, ScanSealedError

logger = structlog.get_logger(__name__)


class CancellationToken:
    """Cancellation flag shared by the workers of one scan."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    def reset(self) -> None:
        self._cancelled = False


@dataclass
class ScanControlState:
    scan_id: Optional[str]
    pause_requested: bool
    cancel_requested: bool


class ScanControl:
    """
    Control flags keyed by the currently active scan id.

    Requests naming any other id are rejected with InvalidScanIdError.
    After :meth:`seal`, pause and cancel raise ScanSealedError.
    """

    def __init__(self) -> None:
        self._scan_id: Optional[str] = None
        self._token = CancellationToken()
        self._running = asyncio.Event()
        self._sealed = False
        self._running.set()

    @property
    def active_scan_id(self) -> Optional[str]:
        return self._scan_id

    @property
    def is_paused(self) -> bool:
        return self._scan_id is not None and not self._running.is_set()

    @property
    def is_sealed(self) -> bool:
        return self._scan_id is not None and self._sealed

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled()

    @property
    def state(self) -> ScanControlState:
        return ScanControlState(
            scan_id=self._scan_id,
            pause_requested=self.is_paused,
            cancel_requested=self._token.is_cancelled(),
        )

    def begin(self, scan_id: str) -> None:
        """Make ``scan_id`` the active scan with fresh flags."""
        self._scan_id = scan_id
        self._token = CancellationToken()
        self._sealed = False
        self._running = asyncio.Event()
        self._running.set()
        logger.debug("scan_control_reset", scan_id=scan_id)

    def end(self, scan_id: str) -> None:
        """Forget the active scan once it has finished."""
        if self._scan_id != scan_id:
            return
        self._scan_id = None
        self._running.set()
        self._sealed = False

    def seal(self, scan_id: str) -> None:
        """Stop accepting pause and cancel for ``scan_id``."""
        self._require_active(scan_id)
        self._sealed = True
        logger.debug("scan_control_sealed", scan_id=scan_id)

    def _require_active(self, scan_id: Optional[str]) -> None:
        if scan_id is None or scan_id != self._scan_id:
            logger.warning(
                "scan_control_rejected",
                requested_scan_id=scan_id,
                active_scan_id=self._scan_id,
            )
            raise InvalidScanIdError(scan_id)

    def _require_open(self, scan_id: Optional[str]) -> None:
        self._require_active(scan_id)
        if self._sealed:
            logger.warning("scan_control_sealed_rejected", scan_id=scan_id)
            raise ScanSealedError(scan_id)

    def pause(self, scan_id: str) -> None:
        self._require_open(scan_id)
        self._running.clear()
        logger.info("scan_pause_requested", scan_id=scan_id)

    def resume(self, scan_id: str) -> None:
        self._require_active(scan_id)
        self._running.set()
        logger.info("scan_resume_requested", scan_id=scan_id)

    def cancel(self, scan_id: str) -> None:
        self._require_open(scan_id)
        self._token.cancel()
        # Wake paused workers so they observe the cancellation
        self._running.set()
        logger.info("scan_cancel_requested", scan_id=scan_id)

    async def check_control(self, scan_id: str) -> None:
        """
        Checkpoint for workers.

        Blocks while the scan is paused and raises ScanCancelledError once
        cancellation was requested or ``scan_id`` is no longer active.
        """
        token = self._token
        if scan_id != self._scan_id or token.is_cancelled():
            raise ScanCancelledError(scan_id)

        if not self._running.is_set():
            logger.debug("scan_worker_paused", scan_id=scan_id)
            await self._running.wait()
            logger.debug("scan_worker_resumed", scan_id=scan_id)

        if scan_id != self._scan_id or token.is_cancelled():
            raise ScanCancelledError(scan_id)
