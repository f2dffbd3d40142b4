"""Per-file metadata extraction with a filesystem fallback."""

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import structlog

from ..clients.ffprobe_client import FFProbeClient
from ..core.exceptions import FFProbeError
from .filename_parser import parse_filename
from .models import ExtractedRecord, MediaFile

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_CONCURRENCY = 4


@dataclass
class FileMetadata:
    """Probe result for one file.

    ``duration`` is None when the probe failed and the stat fallback was
    used. ``error`` is set only when even the stat failed.
    """

    file_path: str
    file_size: int = 0
    duration: Optional[int] = None
    last_modified: Optional[datetime] = None
    probed: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExtractionFailure:
    file_path: str
    error: str


@dataclass
class BatchExtraction:
    results: Dict[str, FileMetadata] = field(default_factory=dict)
    failures: List[ExtractionFailure] = field(default_factory=list)


def build_record(media_file: MediaFile, metadata: FileMetadata) -> ExtractedRecord:
    """Combine probe metadata with fields parsed from the file name."""
    parsed = parse_filename(media_file.file_name)
    return ExtractedRecord(
        file_path=media_file.file_path,
        file_name=media_file.file_name,
        title=parsed.title,
        file_size=metadata.file_size,
        episode=parsed.episode,
        year=parsed.year,
        duration=metadata.duration,
        broadcast_date=parsed.broadcast_date.isoformat() if parsed.broadcast_date else None,
        station=parsed.station,
        last_modified=metadata.last_modified or datetime.now(timezone.utc),
    )


class MetadataExtractor:
    """
    Probes media files for duration and size.

    Never raises for a single file: a failed probe falls back to ``stat``
    with ``duration=None``, and a failed stat is reported through
    ``FileMetadata.error``.
    """

    def __init__(
        self,
        probe: FFProbeClient,
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ):
        self.probe = probe
        self.concurrency = concurrency

    async def extract(self, file_path: str) -> FileMetadata:
        try:
            stat = await asyncio.to_thread(os.stat, file_path)
        except OSError as e:
            logger.warning("metadata_stat_failed", file_path=file_path, error=str(e))
            return FileMetadata(file_path=file_path, error=str(e))

        metadata = FileMetadata(
            file_path=file_path,
            file_size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

        try:
            fmt = await self.probe.probe_format(Path(file_path))
        except (FFProbeError, OSError) as e:
            logger.warning(
                "metadata_probe_fallback",
                file_path=file_path,
                error=str(e),
                error_type=type(e).__name__,
            )
            return metadata

        if fmt.duration is not None and fmt.duration > 0:
            metadata.duration = int(round(fmt.duration))
        if fmt.size is not None:
            metadata.file_size = fmt.size
        metadata.probed = True
        return metadata

    async def extract_batch(self, file_paths: Sequence[str]) -> BatchExtraction:
        """
        Extract many files with at most ``concurrency`` probes in flight.

        Files that fail even after the fallback are collected in
        ``failures``; the batch itself never fails.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        batch = BatchExtraction()

        async def _one(path: str) -> None:
            async with semaphore:
                metadata = await self.extract(path)
            if metadata.ok:
                batch.results[path] = metadata
            else:
                batch.failures.append(ExtractionFailure(file_path=path, error=metadata.error))

        await asyncio.gather(*(_one(path) for path in file_paths))

        logger.debug(
            "metadata_batch_complete",
            files=len(file_paths),
            succeeded=len(batch.results),
            failed=len(batch.failures),
        )
        return batch
