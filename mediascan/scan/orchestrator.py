"""Scan orchestration: discovery, metadata extraction and the catalog replace."""

import asyncio
import time
from typing import Callable, List, Optional

import structlog

from ..common.logging_config import bind_context, unbind_context
from ..core.db.catalog import CatalogRepository
from ..core.event_bus import ProgressHub
from ..core.exceptions import (
    InvalidScanIdError,
    ScanCancelledError,
    ScanInProgressError,
    ScanSealedError,
)
from .checkpoint import CheckpointManager
from .control import ScanControl
from .discovery import DirectoryDiscoverer
from .extractor import MetadataExtractor
from .models import (
    CommandResult,
    EventType,
    ExtractedRecord,
    ProgressEvent,
    ScanMode,
    ScanPhase,
    ScanResult,
    ScanStatus,
)
from .processors import STREAM_PROCESSING_THRESHOLD, ProgressUpdate, create_processor
from .progress import ProgressCalculator
from .resources import ResourceMonitor
from .thumbnails import ThumbnailRenderer

logger = structlog.get_logger(__name__)

SCAN_ID_PREFIX = "scan_"
METADATA_PROGRESS_SPAN = 90.0
METADATA_PROGRESS_SPAN_WITH_THUMBNAILS = 80.0
DATABASE_PROGRESS = 90.0


def generate_scan_id() -> str:
    return f"{SCAN_ID_PREFIX}{int(time.time() * 1000)}"


class ScanOrchestrator:
    """
    Runs one scan at a time.

    ``is_updating`` is set synchronously when a scan is accepted, so a
    second start request is rejected even before the first one yields.
    Any failure, cancellation included, stops the scan before the database
    phase and leaves the catalog as it was. Once the database phase starts
    the scan is sealed: pause and cancel are refused and the replace runs to
    completion or fails as a whole.
    """

    def __init__(
        self,
        discoverer: DirectoryDiscoverer,
        extractor: MetadataExtractor,
        catalog: CatalogRepository,
        checkpoints: CheckpointManager,
        control: ScanControl,
        monitor: ResourceMonitor,
        hub: ProgressHub,
        roots_provider: Callable[[], List[str]],
        thumbnails: Optional[ThumbnailRenderer] = None,
        calculator: Optional[ProgressCalculator] = None,
        stream_threshold: int = STREAM_PROCESSING_THRESHOLD,
        id_factory: Callable[[], str] = generate_scan_id,
    ):
        self.discoverer = discoverer
        self.extractor = extractor
        self.catalog = catalog
        self.checkpoints = checkpoints
        self.control = control
        self.monitor = monitor
        self.hub = hub
        self.roots_provider = roots_provider
        self.thumbnails = thumbnails
        self.calculator = calculator or ProgressCalculator()
        self.stream_threshold = stream_threshold
        self._id_factory = id_factory

        self._is_updating = False
        self._scan_id: Optional[str] = None
        self._phase = ScanPhase.IDLE
        self._task: Optional[asyncio.Task] = None
        self.last_result: Optional[ScanResult] = None

    @property
    def is_updating(self) -> bool:
        return self._is_updating

    @property
    def current_scan_id(self) -> Optional[str]:
        return self._scan_id

    @property
    def phase(self) -> ScanPhase:
        return self._phase

    def status(self) -> dict:
        return {
            "isUpdating": self._is_updating,
            "scanId": self._scan_id,
            "phase": self._phase.value,
            "isPaused": self.control.is_paused,
        }

    # ==================== Entry points ====================

    def _accept(self) -> str:
        scan_id = self._id_factory()
        self._is_updating = True
        self._scan_id = scan_id
        self._phase = ScanPhase.DISCOVERY
        self.control.begin(scan_id)
        return scan_id

    async def start_scan(
        self,
        mode: ScanMode = ScanMode.MANUAL,
        generate_thumbnails: bool = False,
    ) -> CommandResult:
        """Start a scan in the background and return immediately."""
        if self._is_updating:
            logger.info("scan_start_rejected", active_scan_id=self._scan_id)
            return CommandResult(
                success=False,
                message="A scan is already in progress",
                scan_id=self._scan_id,
            )

        scan_id = self._accept()
        self._task = asyncio.create_task(self._execute(scan_id, mode, generate_thumbnails))
        return CommandResult(success=True, message="Scan started", scan_id=scan_id)

    async def run_scan(
        self,
        mode: ScanMode = ScanMode.SCHEDULED,
        generate_thumbnails: bool = False,
    ) -> ScanResult:
        """
        Run a scan to completion in the caller's task.

        Raises:
            ScanInProgressError: If another scan is running
        """
        if self._is_updating:
            raise ScanInProgressError("A scan is already in progress", scan_id=self._scan_id)

        scan_id = self._accept()
        self._task = asyncio.current_task()
        return await self._execute(scan_id, mode, generate_thumbnails)

    async def wait_for_completion(self) -> Optional[ScanResult]:
        """Await the background scan started by :meth:`start_scan`, if any."""
        task = self._task
        if task is None or task is asyncio.current_task():
            return self.last_result
        return await task

    def _control(self, action: Callable[[str], None], scan_id: str, message: str) -> CommandResult:
        try:
            action(scan_id)
        except (InvalidScanIdError, ScanSealedError) as e:
            return CommandResult(success=False, message=str(e), scan_id=scan_id)
        return CommandResult(success=True, message=message, scan_id=scan_id)

    def pause(self, scan_id: str) -> CommandResult:
        return self._control(self.control.pause, scan_id, "Scan paused")

    def resume(self, scan_id: str) -> CommandResult:
        return self._control(self.control.resume, scan_id, "Scan resumed")

    def cancel(self, scan_id: str) -> CommandResult:
        return self._control(self.control.cancel, scan_id, "Scan cancellation requested")

    async def shutdown(self) -> None:
        """Cancel the running scan, if any, and wait for it to unwind."""
        if self._scan_id is not None:
            self.cancel(self._scan_id)
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # ==================== Scan pipeline ====================

    async def _emit(self, event: ProgressEvent) -> None:
        await self.hub.broadcast(event)

    async def _enter_phase(
        self,
        scan_id: str,
        mode: ScanMode,
        phase: ScanPhase,
        progress_pct: float,
        processed: int,
        total: int,
        message: str,
    ) -> None:
        self._phase = phase
        self.calculator.reset_phase_timer()
        await self.checkpoints.save(scan_id, mode, phase, processed, total)
        await self._emit(
            ProgressEvent(
                type=EventType.PHASE,
                scan_id=scan_id,
                phase=phase,
                progress_pct=progress_pct,
                processed_files=processed,
                total_files=total,
                message=message,
            )
        )
        logger.info("scan_phase_changed", phase=phase.value, total=total)

    async def _execute(
        self,
        scan_id: str,
        mode: ScanMode,
        generate_thumbnails: bool,
    ) -> ScanResult:
        bind_context(scan_id=scan_id)
        started = time.monotonic()
        total = 0
        processed = 0

        try:
            previous = await self.checkpoints.get_valid_checkpoint()
            if previous is not None:
                logger.warning(
                    "scan_checkpoint_found",
                    previous_scan_id=previous.scan_id,
                    phase=previous.phase.value,
                    processed=previous.processed_count,
                    total=previous.total_count,
                    note="previous scan did not finish; running full discovery",
                )

            logger.info("scan_started", mode=mode.value, thumbnails=generate_thumbnails)
            self.hub.mark_scan_started(scan_id)
            self.calculator.start_total_timer()

            # Discovery
            self._phase = ScanPhase.DISCOVERY
            await self.checkpoints.save(scan_id, mode, ScanPhase.DISCOVERY, 0, 0)
            files = await self.discoverer.discover(self.roots_provider(), scan_id=scan_id)
            total = len(files)
            await self.control.check_control(scan_id)

            # Metadata
            span = METADATA_PROGRESS_SPAN_WITH_THUMBNAILS if generate_thumbnails else METADATA_PROGRESS_SPAN
            await self._enter_phase(
                scan_id, mode, ScanPhase.METADATA, 0, 0, total,
                f"Extracting metadata from {total} files",
            )

            async def on_progress(update: ProgressUpdate) -> None:
                metrics = self.calculator.calculate(update.processed, update.total)
                await self.checkpoints.save(
                    scan_id, mode, ScanPhase.METADATA, update.processed, update.total
                )
                await self._emit(
                    ProgressEvent(
                        type=EventType.PROGRESS,
                        scan_id=scan_id,
                        phase=ScanPhase.METADATA,
                        progress_pct=round(update.processed / update.total * span, 1),
                        processed_files=update.processed,
                        total_files=update.total,
                        current_file=update.current_file,
                        message=(
                            f"Extracting metadata ({update.processed}/{update.total})"
                            f" - Memory: {update.memory_mb:.0f}MB"
                        ),
                        processing_speed=metrics.processing_speed,
                        estimated_time_remaining=metrics.estimated_time_remaining,
                        total_elapsed_time=metrics.total_elapsed_time,
                        current_phase_elapsed=metrics.current_phase_elapsed,
                    )
                )

            processor = create_processor(
                total,
                self.extractor,
                self.control,
                self.monitor,
                threshold=self.stream_threshold,
            )
            outcome = await processor.process(files, scan_id, on_progress)
            processed = outcome.processed
            records = outcome.records
            for failure in outcome.failures:
                logger.warning("scan_file_failed", file_path=failure.file_path, error=failure.error)

            # Thumbnails
            rendered = 0
            if generate_thumbnails and self.thumbnails is not None:
                rendered = await self._render_thumbnails(scan_id, mode, records, span)

            # Last control check; pause and cancel are refused from here on
            await self.control.check_control(scan_id)
            self.control.seal(scan_id)

            # Database
            await self._enter_phase(
                scan_id, mode, ScanPhase.DATABASE, DATABASE_PROGRESS, len(records), total,
                f"Saving {len(records)} records to the catalog",
            )
            written = await self.catalog.replace_all(records)
            await self._after_commit(records, generate_thumbnails)

            metrics = self.calculator.calculate(len(records), total)
            self._phase = ScanPhase.COMPLETE
            await self._emit(
                ProgressEvent(
                    type=EventType.COMPLETE,
                    scan_id=scan_id,
                    phase=ScanPhase.COMPLETE,
                    progress_pct=100,
                    processed_files=len(records),
                    total_files=total,
                    message=f"Scan complete: {written} records saved",
                    total_elapsed_time=metrics.total_elapsed_time,
                )
            )

            result = ScanResult(
                scan_id=scan_id,
                status=ScanStatus.COMPLETED,
                total_files=total,
                processed_files=len(records),
                records_written=written,
                failed_files=len(outcome.failures),
                thumbnails_rendered=rendered,
                elapsed_seconds=round(time.monotonic() - started, 3),
            )
            logger.info(
                "scan_completed",
                total=total,
                records=written,
                failed=len(outcome.failures),
                elapsed_seconds=result.elapsed_seconds,
            )

        except ScanCancelledError:
            self._phase = ScanPhase.CANCELLED
            logger.info("scan_cancelled", processed=processed, total=total)
            await self._emit(
                ProgressEvent(
                    type=EventType.ERROR,
                    scan_id=scan_id,
                    phase=ScanPhase.CANCELLED,
                    total_files=total,
                    message="Scan was cancelled",
                )
            )
            result = ScanResult(
                scan_id=scan_id,
                status=ScanStatus.CANCELLED,
                total_files=total,
                processed_files=processed,
                elapsed_seconds=round(time.monotonic() - started, 3),
            )

        except Exception as e:
            self._phase = ScanPhase.ERROR
            logger.error("scan_failed", error=str(e), exc_info=True)
            await self._emit(
                ProgressEvent(
                    type=EventType.ERROR,
                    scan_id=scan_id,
                    phase=ScanPhase.ERROR,
                    total_files=total,
                    message="Scan failed",
                    error=str(e) or type(e).__name__,
                )
            )
            result = ScanResult(
                scan_id=scan_id,
                status=ScanStatus.FAILED,
                total_files=total,
                processed_files=processed,
                elapsed_seconds=round(time.monotonic() - started, 3),
                error=str(e) or type(e).__name__,
            )

        finally:
            self.control.end(scan_id)
            self.hub.clear_scan_state()
            self._is_updating = False
            self._scan_id = None
            unbind_context("scan_id")

        self.last_result = result
        return result

    async def _after_commit(self, records: List[ExtractedRecord], generate_thumbnails: bool) -> None:
        """Post-commit cleanup; failures are logged and never fail the scan."""
        try:
            await self.checkpoints.invalidate()
        except Exception as e:
            logger.warning("scan_checkpoint_cleanup_failed", error=str(e))

        if generate_thumbnails and self.thumbnails is not None:
            try:
                await self.thumbnails.remove_orphans(r.file_path for r in records)
            except Exception as e:
                logger.warning("scan_orphan_cleanup_failed", error=str(e))

    async def _render_thumbnails(
        self,
        scan_id: str,
        mode: ScanMode,
        records: List[ExtractedRecord],
        metadata_span: float,
    ) -> int:
        await self._enter_phase(
            scan_id, mode, ScanPhase.THUMBNAILS, metadata_span, 0, len(records),
            f"Rendering thumbnails for {len(records)} files",
        )
        interval = self.monitor.settings.progress_update_interval
        rendered = 0
        for index, record in enumerate(records, start=1):
            await self.control.check_control(scan_id)
            outcome = await self.thumbnails.render(record.file_path, record.duration)
            if outcome.success:
                record.thumbnail_path = outcome.relative_path
                if not outcome.skipped:
                    rendered += 1

            if index % interval == 0 or index == len(records):
                span = DATABASE_PROGRESS - metadata_span
                await self._emit(
                    ProgressEvent(
                        type=EventType.PROGRESS,
                        scan_id=scan_id,
                        phase=ScanPhase.THUMBNAILS,
                        progress_pct=round(metadata_span + index / len(records) * span, 1),
                        processed_files=index,
                        total_files=len(records),
                        current_file=record.file_name,
                        message=f"Rendering thumbnails ({index}/{len(records)})",
                    )
                )
        logger.info("scan_thumbnails_rendered", rendered=rendered, total=len(records))
        return rendered
