"""Tests for Drop validation and DropRepository."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from dropfeed.drops.repository import DropRepository
from dropfeed.drops.schemas import DELETED_TAG, Drop


def _drop_row(**overrides) -> dict:
    row = {
        "id": 101,
        "source_id": 7,
        "url": "https://example.com/a",
        "title": "A",
        "summary": None,
        "image_url": None,
        "type": "article",
        "tags": None,
        "l1_topic_id": None,
        "l2_topic_id": None,
        "tag_done": False,
        "youtube_video_id": None,
        "youtube_channel_id": None,
        "popularity_score": None,
        "authority_score": None,
        "quality_score": None,
        "sponsored": False,
        "language_id": None,
        "published_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
        "created_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


class TestDropSchema:
    def test_invalid_type(self):
        with pytest.raises(ValueError, match="Invalid drop type"):
            Drop(url="https://example.com/a", title="A", type="podcast")

    def test_scores_bounded(self):
        with pytest.raises(ValueError, match="popularity_score"):
            Drop(url="https://example.com/a", title="A", popularity_score=1.5)

    def test_deleted_marker(self, sample_drop):
        assert not sample_drop.is_deleted
        sample_drop.tags.append(DELETED_TAG)
        assert sample_drop.is_deleted

    def test_bad_youtube_metadata(self):
        assert Drop(url="https://example.com/v", title="Clip", type="video").has_bad_youtube_metadata
        assert Drop(
            url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            title="- YouTube",
            type="video",
            youtube_video_id="dQw4w9WgXcQ",
        ).has_bad_youtube_metadata
        assert not Drop(
            url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            title="Real title",
            type="video",
            youtube_video_id="dQw4w9WgXcQ",
        ).has_bad_youtube_metadata


class TestDropRepository:
    @pytest.mark.asyncio
    async def test_create_conflict_returns_none(self, mock_database: AsyncMock, sample_drop):
        assert await DropRepository(mock_database).create(sample_drop) is None
        args = mock_database.fetchrow.call_args[0]
        assert args[2] == sample_drop.url
        assert args[7] == ["semiconductors", "memory"]

    @pytest.mark.asyncio
    async def test_row_mapping_defaults(self, mock_database: AsyncMock):
        mock_database.fetchrow.return_value = _drop_row()
        drop = await DropRepository(mock_database).get(101)
        assert drop.summary == ""
        assert drop.tags == []

    @pytest.mark.asyncio
    async def test_existing_urls(self, mock_database: AsyncMock):
        mock_database.fetch.return_value = [{"url": "https://example.com/a"}]
        repo = DropRepository(mock_database)
        assert await repo.existing_urls(["https://example.com/a", "https://example.com/b"]) == {
            "https://example.com/a"
        }
        assert await repo.existing_urls([]) == set()

    @pytest.mark.asyncio
    async def test_candidates_exclude_deleted(self, mock_database: AsyncMock):
        since = datetime(2026, 2, 1, tzinfo=timezone.utc)
        await DropRepository(mock_database).list_candidates(since, limit=50)
        sql, deleted, since_arg, limit = mock_database.fetch.call_args[0]
        assert "tag_done = TRUE" in sql
        assert deleted == DELETED_TAG
        assert since_arg == since
        assert limit == 50

    @pytest.mark.asyncio
    async def test_update_tags_keeps_deleted_marker(self, mock_database: AsyncMock):
        mock_database.execute.return_value = "UPDATE 1"
        ok = await DropRepository(mock_database).update_tags(101, ["technology"], 1, None)
        args = mock_database.execute.call_args[0]
        assert ok
        assert args[1:] == (101, ["technology"], 1, None, DELETED_TAG)

    @pytest.mark.asyncio
    async def test_mark_deleted_idempotent(self, mock_database: AsyncMock):
        mock_database.execute.return_value = "UPDATE 0"
        assert await DropRepository(mock_database).mark_deleted(101) is False

    @pytest.mark.asyncio
    async def test_coverage(self, mock_database: AsyncMock):
        mock_database.fetchrow.return_value = {"total": 8, "tagged": 6, "last_24h": 2}
        coverage = await DropRepository(mock_database).get_coverage()
        assert coverage == {
            "total": 8,
            "tagged": 6,
            "untagged": 2,
            "last_24h": 2,
            "coverage_pct": 75.0,
        }

    @pytest.mark.asyncio
    async def test_coverage_empty(self, mock_database: AsyncMock):
        mock_database.fetchrow.return_value = {"total": 0, "tagged": 0, "last_24h": 0}
        coverage = await DropRepository(mock_database).get_coverage()
        assert coverage["coverage_pct"] == 0.0
