"""Tests for FeedRankingService orchestration and reasons."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from dropfeed.drops.schemas import DELETED_TAG, Drop
from dropfeed.engagement.schemas import EngagementEvent
from dropfeed.errors import NoPreferences
from dropfeed.preferences.schemas import UserPreference
from dropfeed.ranking.config import RankingConfig
from dropfeed.ranking.schemas import FeedResult
from dropfeed.ranking.service import FeedRankingService

NOW = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)


def _drop(drop_id: int, **kwargs) -> Drop:
    defaults = {
        "url": f"https://example.com/{drop_id}",
        "title": f"Drop {drop_id}",
        "tag_done": True,
        "published_at": NOW,
        "source_id": drop_id,
    }
    defaults.update(kwargs)
    return Drop(id=drop_id, **defaults)


class TestRankCandidates:
    def test_filters(self, service, topics):
        preference = UserPreference(user_id="u1", selected_topic_ids=[1], selected_language_ids=[1])
        candidates = [
            _drop(1, l1_topic_id=1),
            _drop(2, tags=[DELETED_TAG]),
            _drop(3, tag_done=False),
            _drop(4, l1_topic_id=1),
            _drop(5, language_id=2),
            _drop(6, language_id=1),
        ]
        events = [EngagementEvent(user_id="u1", drop_id=4, action="dismiss")]

        result = service.rank_candidates(candidates, preference, topics, events, "cold", 10, now=NOW)

        assert {i.drop.id for i in result.items} == {1, 6}
        assert result.total_candidates == 6
        assert result.constraints_applied["negative_excluded"] == 1
        assert result.constraints_applied["language_excluded"] == 1

    def test_topic_match_ranks_first(self, service, topics):
        preference = UserPreference(user_id="u1", selected_topic_ids=[1])
        candidates = [_drop(1), _drop(2, l1_topic_id=1)]

        result = service.rank_candidates(candidates, preference, topics, [], "cold", 10, now=NOW)

        assert result.items[0].drop.id == 2
        assert result.items[0].reason_for_ranking == "Matches your interests: Technology"


class TestReasons:
    def _components(self, **values) -> dict[str, float]:
        base = {
            "topic_match": 0.0,
            "catalog": 0.0,
            "similarity": 0.0,
            "feedback": 0.0,
            "recency": 0.0,
            "trust": 0.0,
            "popularity": 0.0,
        }
        base.update(values)
        return base

    def test_nothing_positive(self, service):
        assert service.reason_for(_drop(1), self._components(), "cold", [], []) == "Relevant content"

    def test_fresh(self, service):
        components = self._components(catalog=0.9, recency=0.9, trust=0.5, popularity=0.3)
        assert service.reason_for(_drop(1), components, "cold", [], []) == "Fresh content"

    def test_trusted_source(self, service):
        components = self._components(catalog=0.6, recency=0.1, trust=0.9, popularity=0.3)
        assert service.reason_for(_drop(1), components, "cold", [], []) == "High quality source"

    def test_similarity(self, service):
        components = self._components(similarity=0.9)
        assert service.reason_for(_drop(1), components, "mature", [], []) == "Similar to what you read"

    def test_saved_similar(self, service):
        drop = _drop(1)
        events = [EngagementEvent(user_id="u1", drop_id=50, action="save", source_id=1)]
        components = self._components(feedback=0.9)
        assert service.reason_for(drop, components, "mature", [], events) == "Because you saved similar content"

    def test_liked_similar(self, service):
        drop = _drop(1, tags=["ai"])
        events = [EngagementEvent(user_id="u1", drop_id=50, action="like", source_id=3, tags=["ai"])]
        components = self._components(feedback=0.9)
        assert service.reason_for(drop, components, "mature", [], events) == "Because you liked similar content"


class TestRank:
    @pytest.mark.asyncio
    async def test_no_preferences(self, service, repos):
        repos["preferences"].get.return_value = None
        with pytest.raises(NoPreferences):
            await service.rank("u1")

    @pytest.mark.asyncio
    async def test_empty_topic_selection(self, service, repos):
        repos["preferences"].get.return_value = UserPreference(user_id="u1")
        with pytest.raises(NoPreferences):
            await service.rank("u1")

    @pytest.mark.asyncio
    async def test_ranks_window_candidates(self, service, repos):
        repos["drops"].list_candidates.return_value = [_drop(1, l1_topic_id=1), _drop(2)]
        repos["engagement"].count_for_user.return_value = 12

        result = await service.rank("u1", limit=5)

        assert result.tier == "warm"
        assert [i.drop.id for i in result.items][0] == 1
        since, limit = repos["drops"].list_candidates.await_args.args
        assert limit == 500
        assert timedelta(days=29) < datetime.now(timezone.utc) - since <= timedelta(days=30, minutes=1)

    @pytest.mark.asyncio
    async def test_limit_capped(self, repos):
        cache = AsyncMock()
        cache.get = AsyncMock(return_value=None)
        service = FeedRankingService(cache=cache, config=RankingConfig(max_limit=50), **repos)

        await service.rank("u1", limit=500)

        cache.get.assert_awaited_once_with("u1", 50)
        assert cache.set.await_args.args[1] == 50

    @pytest.mark.asyncio
    async def test_cache_hit_skips_ranking(self, repos):
        cached = FeedResult(items=[], tier="cold", from_cache=True)
        cache = AsyncMock()
        cache.get = AsyncMock(return_value=cached)
        service = FeedRankingService(cache=cache, **repos)

        assert await service.rank("u1") is cached
        repos["drops"].list_candidates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_similarity_bypasses_cache(self, repos):
        cache = AsyncMock()
        service = FeedRankingService(cache=cache, **repos)
        repos["drops"].list_candidates.return_value = [_drop(1)]

        result = await service.rank("u1", similarity={1: 0.9})

        cache.get.assert_not_awaited()
        cache.set.assert_not_awaited()
        assert result.items[0].components["similarity"] == 0.9

    @pytest.mark.asyncio
    async def test_refresh_overwrites_cache(self, repos):
        cache = AsyncMock()
        service = FeedRankingService(cache=cache, **repos)

        await service.rank("u1", refresh=True)

        cache.get.assert_not_awaited()
        cache.set.assert_awaited_once()

    def test_requires_database_or_repositories(self):
        with pytest.raises(RuntimeError):
            FeedRankingService()._ensure_components()
