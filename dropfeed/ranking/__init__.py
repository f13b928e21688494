"""Personalized feed ranking with tiered weights and assembly constraints."""

from dropfeed.ranking.cache import FeedCache
from dropfeed.ranking.config import RankingConfig
from dropfeed.ranking.schemas import FeedResult, RankedDrop
from dropfeed.ranking.service import (
    ACTION_WEIGHTS,
    FeedRankingService,
    feedback_score,
    recency_score,
    topic_match_score,
)

__all__ = [
    "ACTION_WEIGHTS",
    "FeedCache",
    "FeedRankingService",
    "FeedResult",
    "RankedDrop",
    "RankingConfig",
    "feedback_score",
    "recency_score",
    "topic_match_score",
]
