"""Tests for the topic and tagging parameter repositories."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository
from dropfeed.tagging.schemas import Topic


class TestTopicRepository:
    @pytest.mark.asyncio
    async def test_get_by_ids_empty(self, mock_database: AsyncMock):
        assert await TopicRepository(mock_database).get_by_ids([]) == []
        mock_database.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_all_maps_rows(self, mock_database: AsyncMock):
        mock_database.fetch.return_value = [
            {"id": 1, "slug": "technology", "name": "Technology", "level": 1, "parent_id": None},
        ]
        topics = await TopicRepository(mock_database).list_all()
        assert topics == [Topic(id=1, slug="technology", name="Technology", level=1)]

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            Topic(id=1, slug="x", name="X", level=4)


class TestTaggingParamsRepository:
    @pytest.mark.asyncio
    async def test_get_all_flattens(self, mock_database: AsyncMock):
        ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
        mock_database.fetch.return_value = [
            {"key": "max_l3", "value": "3", "updated_at": ts},
            {"key": "prompt_style", "value": "concise", "updated_at": ts},
        ]
        params = await TaggingParamsRepository(mock_database).get_all()
        assert params == {"max_l3": "3", "prompt_style": "concise"}

    @pytest.mark.asyncio
    async def test_set_upserts(self, mock_database: AsyncMock):
        mock_database.fetchrow.return_value = {"key": "max_l3", "value": "2", "updated_at": None}
        param = await TaggingParamsRepository(mock_database).set("max_l3", "2")
        sql, key, value = mock_database.fetchrow.call_args[0]
        assert "ON CONFLICT (key) DO UPDATE" in sql
        assert (key, value) == ("max_l3", "2")
        assert param.value == "2"

    @pytest.mark.asyncio
    async def test_delete(self, mock_database: AsyncMock):
        mock_database.execute.return_value = "DELETE 0"
        assert await TaggingParamsRepository(mock_database).delete("nope") is False
