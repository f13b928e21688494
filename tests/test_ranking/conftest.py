"""Fixtures for ranking tests."""

from unittest.mock import AsyncMock

import pytest

from dropfeed.preferences.schemas import UserPreference
from dropfeed.ranking.cache import FeedCache
from dropfeed.ranking.config import RankingConfig
from dropfeed.ranking.service import FeedRankingService
from dropfeed.tagging.schemas import Topic


@pytest.fixture
def topics() -> list[Topic]:
    return [
        Topic(id=1, slug="technology", name="Technology", level=1),
        Topic(id=11, slug="ai", name="AI", level=2, parent_id=1),
    ]


@pytest.fixture
def repos(topics) -> dict:
    drops = AsyncMock()
    drops.list_candidates = AsyncMock(return_value=[])

    preferences = AsyncMock()
    preferences.get = AsyncMock(return_value=UserPreference(user_id="u1", selected_topic_ids=[1]))

    engagement = AsyncMock()
    engagement.count_for_user = AsyncMock(return_value=0)
    engagement.list_recent = AsyncMock(return_value=[])

    topic_repo = AsyncMock()
    topic_repo.get_by_ids = AsyncMock(return_value=topics)
    return {"drops": drops, "preferences": preferences, "engagement": engagement, "topics": topic_repo}


@pytest.fixture
def ranking_config() -> RankingConfig:
    return RankingConfig()


@pytest.fixture
def service(repos, ranking_config) -> FeedRankingService:
    return FeedRankingService(cache=FeedCache(None), config=ranking_config, **repos)
