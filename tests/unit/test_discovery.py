"""Tests for media file discovery."""

from unittest.mock import AsyncMock

import pytest

from mediascan.scan.discovery import DirectoryDiscoverer
from mediascan.scan.models import EventType, ScanPhase


class TestDirectoryDiscoverer:
    @pytest.mark.asyncio
    async def test_discovers_media_in_all_roots(self, media_tree):
        files = await DirectoryDiscoverer().discover(media_tree["roots"])

        assert len(files) == media_tree["media_count"]
        names = {f.file_name for f in files}
        assert "notes.txt" not in names
        assert "Series episode 12.mp4" in names

    @pytest.mark.asyncio
    async def test_missing_root_is_skipped(self, tmp_path):
        files = await DirectoryDiscoverer().discover([str(tmp_path / "nope")])
        assert files == []

    @pytest.mark.asyncio
    async def test_order_is_by_root_then_name(self, media_tree):
        files = await DirectoryDiscoverer().discover(media_tree["roots"])
        paths = [f.file_path for f in files]
        shows_root, movies_root = media_tree["roots"][:2]

        shows = [p for p in paths if p.startswith(shows_root)]
        assert paths[: len(shows)] == shows
        assert all(p.startswith(movies_root) for p in paths[len(shows):])

    @pytest.mark.asyncio
    async def test_duplicate_roots_are_deduplicated(self, media_tree):
        shows_root = media_tree["roots"][0]
        files = await DirectoryDiscoverer().discover([shows_root, shows_root])
        assert len(files) == 5

    @pytest.mark.asyncio
    async def test_emits_discovery_phase_event(self, media_tree):
        emit = AsyncMock()
        await DirectoryDiscoverer(emit=emit).discover(media_tree["roots"], scan_id="scan_1")

        event = emit.call_args[0][0]
        assert event.type == EventType.PHASE
        assert event.phase == ScanPhase.DISCOVERY
        assert event.scan_id == "scan_1"
