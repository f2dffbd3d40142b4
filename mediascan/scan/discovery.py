"""Concurrent discovery of media files under the configured roots."""

import asyncio
import os
from typing import Awaitable, Callable, Iterable, List, Optional

import structlog

from ..common.config import normalize_path
from .filename_parser import is_media_file
from .models import EventType, MediaFile, ProgressEvent, ScanPhase

logger = structlog.get_logger(__name__)

EventEmitter = Callable[[ProgressEvent], Awaitable[object]]


def _walk(root: str) -> List[MediaFile]:
    """Recursively list media files below ``root`` (runs in a worker thread)."""
    found: List[MediaFile] = []
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as entries:
                children = sorted(entries, key=lambda e: e.name)
        except OSError as e:
            logger.warning("discovery_directory_unreadable", directory=directory, error=str(e))
            continue

        subdirectories = []
        for entry in children:
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirectories.append(entry.path)
                elif entry.is_file() and is_media_file(entry.name):
                    found.append(
                        MediaFile(file_path=normalize_path(entry.path), file_name=entry.name)
                    )
            except OSError as e:
                logger.warning("discovery_entry_unreadable", path=entry.path, error=str(e))
        # Reverse so the stack pops subdirectories in name order
        pending.extend(reversed(subdirectories))
    return found


class DirectoryDiscoverer:
    """Lists media files under several roots in parallel."""

    def __init__(self, emit: Optional[EventEmitter] = None):
        self._emit = emit

    async def _discover_root(self, root: str) -> List[MediaFile]:
        if not await asyncio.to_thread(os.path.isdir, root):
            logger.warning("discovery_directory_missing", directory=root)
            return []

        files = await asyncio.to_thread(_walk, root)
        logger.info("discovery_directory_scanned", directory=root, files=len(files))
        return files

    async def discover(
        self,
        roots: Iterable[str],
        scan_id: Optional[str] = None,
    ) -> List[MediaFile]:
        """
        Discover media files under every root.

        Missing or unreadable directories are skipped with a warning. The
        result is deduplicated by file path, in root order.
        """
        roots = list(roots)
        if self._emit is not None:
            await self._emit(
                ProgressEvent(
                    type=EventType.PHASE,
                    scan_id=scan_id,
                    phase=ScanPhase.DISCOVERY,
                    progress_pct=0,
                    message=f"Discovering media files in {len(roots)} directories",
                )
            )

        results = await asyncio.gather(*(self._discover_root(root) for root in roots))

        seen = set()
        files: List[MediaFile] = []
        for batch in results:
            for media_file in batch:
                if media_file.file_path not in seen:
                    seen.add(media_file.file_path)
                    files.append(media_file)

        logger.info("discovery_complete", directories=len(roots), files=len(files))
        return files
