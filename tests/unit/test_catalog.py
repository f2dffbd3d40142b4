"""Tests for the catalog repository."""

from datetime import datetime, timezone

import pytest

from mediascan.core.db.catalog import CatalogRepository
from mediascan.core.db.exceptions import TransactionError
from mediascan.scan.models import ExtractedRecord


def _record(name: str, title: str = None, **kwargs) -> ExtractedRecord:
    return ExtractedRecord(
        file_path=f"/media/{name}",
        file_name=name,
        title=title or name.rsplit(".", 1)[0],
        file_size=kwargs.pop("file_size", 1024),
        last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
        **kwargs,
    )


@pytest.fixture
def catalog(db) -> CatalogRepository:
    return CatalogRepository(db)


class TestCatalogRepository:
    @pytest.mark.asyncio
    async def test_empty(self, catalog):
        assert await catalog.count() == 0
        assert await catalog.list_records() == []
        assert await catalog.get("/media/none.mp4") is None

    @pytest.mark.asyncio
    async def test_replace_all_round_trips_fields(self, catalog):
        written = await catalog.replace_all(
            [
                _record(
                    "news.mp4",
                    title="Evening News",
                    duration=1800,
                    station="NHK",
                    broadcast_date="2024-03-15T19:30:00",
                    year=2024,
                ),
                _record("drama ep3.mkv", title="Drama", episode=3),
            ]
        )

        assert written == 2
        news = await catalog.get("/media/news.mp4")
        assert news.title == "Evening News"
        assert news.duration == 1800
        assert news.station == "NHK"
        assert news.year == 2024
        assert news.last_modified == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert (await catalog.get("/media/drama ep3.mkv")).episode == 3

    @pytest.mark.asyncio
    async def test_replace_all_drops_old_rows(self, catalog):
        await catalog.replace_all([_record("a.mp4"), _record("b.mp4")])
        await catalog.replace_all([_record("c.mp4")])

        assert await catalog.count() == 1
        assert (await catalog.list_records())[0].file_name == "c.mp4"

    @pytest.mark.asyncio
    async def test_replace_with_nothing_empties_catalog(self, catalog):
        await catalog.replace_all([_record("a.mp4")])
        assert await catalog.replace_all([]) == 0
        assert await catalog.count() == 0

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_previous_rows(self, catalog):
        await catalog.replace_all([_record("a.mp4"), _record("b.mp4")])

        with pytest.raises(TransactionError):
            await catalog.replace_all([_record("c.mp4"), _record("c.mp4")])

        assert await catalog.count() == 2
        assert await catalog.get("/media/c.mp4") is None

    @pytest.mark.asyncio
    async def test_list_is_ordered_and_paginated(self, catalog):
        await catalog.replace_all(
            [_record("3.mp4", title="Charlie"), _record("1.mp4", title="Alpha"), _record("2.mp4", title="Bravo")]
        )

        titles = [r.title for r in await catalog.list_records()]
        assert titles == ["Alpha", "Bravo", "Charlie"]

        page = await catalog.list_records(limit=2, offset=1)
        assert [r.title for r in page] == ["Bravo", "Charlie"]
