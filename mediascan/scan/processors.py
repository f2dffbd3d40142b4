"""Metadata-phase execution strategies.

Two interchangeable :class:`BatchProcessor` implementations share one
contract: take the discovered files, honour scan control at every file,
report progress every ``progress_update_interval`` files and return the
extracted records. :func:`create_processor` picks one by file count.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Union

import structlog

from ..common.config import ScanSettings
from .control import ScanControl
from .extractor import ExtractionFailure, FileMetadata, MetadataExtractor, build_record
from .models import ExtractedRecord, MediaFile
from .resources import ResourceMonitor

logger = structlog.get_logger(__name__)

STREAM_PROCESSING_THRESHOLD = 1000
PRESSURE_SLEEP_MIN_MS = 100


@dataclass
class ProgressUpdate:
    processed: int
    total: int
    current_file: str
    memory_mb: float


ProgressCallback = Callable[[ProgressUpdate], Awaitable[None]]


@dataclass
class ProcessingResult:
    records: List[ExtractedRecord] = field(default_factory=list)
    failures: List[ExtractionFailure] = field(default_factory=list)
    processed: int = 0


class _Counter:
    def __init__(self) -> None:
        self.value = 0


class BatchProcessor(ABC):
    """Runs metadata extraction over a file list."""

    name = "batch"

    def __init__(
        self,
        extractor: MetadataExtractor,
        control: ScanControl,
        monitor: ResourceMonitor,
    ):
        self.extractor = extractor
        self.control = control
        self.monitor = monitor

    @property
    def settings(self) -> ScanSettings:
        return self.monitor.settings

    @abstractmethod
    async def process(
        self,
        files: Sequence[MediaFile],
        scan_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        """
        Extract metadata for ``files``.

        Raises:
            ScanCancelledError: When the scan is cancelled; no partial
                result is returned.
        """

    async def _sleep_ms(self, milliseconds: float) -> None:
        if milliseconds > 0:
            await asyncio.sleep(milliseconds / 1000)

    async def _after_file(
        self,
        counter: _Counter,
        total: int,
        media_file: MediaFile,
        scan_id: str,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        """Count a file; every N files check resources and report progress."""
        counter.value += 1
        settings = self.settings
        if counter.value % settings.progress_update_interval != 0 and counter.value != total:
            return

        check = self.monitor.check_system_resources()
        if check.should_pause:
            backoff = max(settings.sleep_interval_ms * 2, PRESSURE_SLEEP_MIN_MS)
            logger.warning(
                "scan_resource_backoff",
                scan_id=scan_id,
                reason=check.message,
                memory_mb=check.memory_mb,
                sleep_ms=backoff,
            )
            await self._sleep_ms(backoff)

        logger.info(
            "scan_metadata_progress",
            scan_id=scan_id,
            strategy=self.name,
            processed=counter.value,
            total=total,
            memory_mb=check.memory_mb,
        )
        if on_progress is not None:
            await on_progress(
                ProgressUpdate(
                    processed=counter.value,
                    total=total,
                    current_file=media_file.file_name,
                    memory_mb=check.memory_mb,
                )
            )


def _split_chunks(files: Sequence[MediaFile], count: int) -> List[List[MediaFile]]:
    """Split into at most ``count`` contiguous chunks of near-equal size."""
    if not files:
        return []
    count = max(1, min(count, len(files)))
    size, extra = divmod(len(files), count)
    chunks = []
    start = 0
    for index in range(count):
        end = start + size + (1 if index < extra else 0)
        chunks.append(list(files[start:end]))
        start = end
    return chunks


class ChunkProcessor(BatchProcessor):
    """
    Splits the list into ``max_concurrent_operations`` contiguous chunks and
    runs one task per chunk, sequential within a chunk.
    """

    name = "chunk"

    async def _run_chunk(
        self,
        chunk: List[MediaFile],
        scan_id: str,
        counter: _Counter,
        total: int,
        on_progress: Optional[ProgressCallback],
    ) -> ProcessingResult:
        result = ProcessingResult()
        batch_size = self.monitor.recommend_batch_size()
        in_batch = 0

        for media_file in chunk:
            await self.control.check_control(scan_id)

            metadata = await self.extractor.extract(media_file.file_path)
            _collect(result, media_file, metadata)
            await self._after_file(counter, total, media_file, scan_id, on_progress)

            in_batch += 1
            if in_batch >= batch_size:
                in_batch = 0
                await self._sleep_ms(self.settings.sleep_interval_ms)
                batch_size = self.monitor.recommend_batch_size()

        return result

    async def process(
        self,
        files: Sequence[MediaFile],
        scan_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        chunks = _split_chunks(files, self.settings.max_concurrent_operations)
        counter = _Counter()
        total = len(files)
        logger.info("scan_chunk_processing_started", scan_id=scan_id, files=total, chunks=len(chunks))

        tasks = [
            asyncio.create_task(self._run_chunk(chunk, scan_id, counter, total, on_progress))
            for chunk in chunks
        ]
        if not tasks:
            return ProcessingResult()

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = next(
            (t for t in tasks if t in done and not t.cancelled() and t.exception() is not None),
            None,
        )
        if failed is not None:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise failed.exception()

        merged = ProcessingResult(processed=counter.value)
        for task in tasks:
            chunk_result = task.result()
            merged.records.extend(chunk_result.records)
            merged.failures.extend(chunk_result.failures)
        return merged


@dataclass
class _StreamItem:
    media_file: MediaFile
    metadata: FileMetadata


@dataclass
class _StreamFailure:
    error: BaseException


_END = object()


class StreamProcessor(BatchProcessor):
    """
    Two-stage pipeline over a bounded queue.

    The extraction stage pulls one file at a time; it blocks when the queue
    holds ``recommend_batch_size()`` unconsumed results, so memory stays
    bounded however large the tree is.
    """

    name = "stream"

    async def _produce(
        self,
        files: Sequence[MediaFile],
        scan_id: str,
        queue: "asyncio.Queue[Union[_StreamItem, _StreamFailure, object]]",
    ) -> None:
        try:
            for media_file in files:
                await self.control.check_control(scan_id)
                metadata = await self.extractor.extract(media_file.file_path)
                await queue.put(_StreamItem(media_file, metadata))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put(_StreamFailure(e))
            return
        await queue.put(_END)

    async def process(
        self,
        files: Sequence[MediaFile],
        scan_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        high_water_mark = self.monitor.recommend_batch_size()
        queue: asyncio.Queue = asyncio.Queue(maxsize=high_water_mark)
        total = len(files)
        counter = _Counter()
        result = ProcessingResult()

        logger.info(
            "scan_stream_processing_started",
            scan_id=scan_id,
            files=total,
            high_water_mark=high_water_mark,
        )

        producer = asyncio.create_task(self._produce(files, scan_id, queue))
        try:
            in_batch = 0
            while True:
                item = await queue.get()
                if item is _END:
                    break
                if isinstance(item, _StreamFailure):
                    raise item.error
                await self.control.check_control(scan_id)

                _collect(result, item.media_file, item.metadata)
                await self._after_file(counter, total, item.media_file, scan_id, on_progress)

                in_batch += 1
                if in_batch >= high_water_mark:
                    in_batch = 0
                    await self._sleep_ms(self.settings.sleep_interval_ms)
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

        result.processed = counter.value
        return result


def _collect(result: ProcessingResult, media_file: MediaFile, metadata: FileMetadata) -> None:
    if metadata.ok:
        result.records.append(build_record(media_file, metadata))
    else:
        result.failures.append(ExtractionFailure(file_path=media_file.file_path, error=metadata.error))


def create_processor(
    file_count: int,
    extractor: MetadataExtractor,
    control: ScanControl,
    monitor: ResourceMonitor,
    threshold: int = STREAM_PROCESSING_THRESHOLD,
) -> BatchProcessor:
    """Stream processing for ``threshold`` files or more, chunks below that."""
    if file_count >= threshold:
        return StreamProcessor(extractor, control, monitor)
    return ChunkProcessor(extractor, control, monitor)
