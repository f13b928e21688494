"""
Personalized feed ranking.

Each candidate gets four components in [0, 1] (feedback in [-1, 1]):

- topic_match: how directly the drop hits a selected topic
- catalog: user-independent prior (recency, trust, popularity)
- similarity: externally supplied content similarity
- feedback: the user's engagement with the same source or tags

The user's tier (cold, warm, mature by engagement count) picks the weights.
Assembly then applies hard post-filters in order: video floor, per-source
cap, sponsored placement. Ranking keeps no per-user state between calls;
the only memory is the Redis FeedCache.
"""

import math
import time
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from dropfeed.drops.repository import DropRepository
from dropfeed.drops.schemas import DELETED_TAG, Drop
from dropfeed.engagement.repository import EngagementRepository
from dropfeed.engagement.schemas import EngagementEvent
from dropfeed.errors import NoPreferences
from dropfeed.observability.metrics import get_metrics
from dropfeed.observability.tracing import get_tracer, traced
from dropfeed.preferences.repository import PreferenceRepository
from dropfeed.preferences.schemas import UserPreference
from dropfeed.ranking.cache import FeedCache
from dropfeed.ranking.config import RankingConfig
from dropfeed.ranking.schemas import FeedResult, RankedDrop
from dropfeed.storage.database import Database
from dropfeed.tagging.repository import TopicRepository
from dropfeed.tagging.schemas import Topic

logger = structlog.get_logger(__name__)
_tracer = get_tracer(__name__)

# save > like > open; negative actions pull related drops down.
ACTION_WEIGHTS: dict[str, float] = {
    "save": 1.0,
    "like": 0.7,
    "open": 0.3,
    "dislike": -0.8,
    "dismiss": -1.0,
}

WEIGHTED_COMPONENTS = ("topic_match", "catalog", "similarity", "feedback")


# ── Pure helpers ─────────────────────────────────────────────


def recency_score(published_at: datetime, now: datetime, half_life_hours: float) -> float:
    """Exponential decay: 1.0 now, 0.5 after one half-life."""
    hours_old = max(0.0, (now - published_at).total_seconds() / 3600)
    return math.exp(-hours_old * math.log(2) / half_life_hours)


def topic_match_score(drop: Drop, topic_ids: set[int], topic_slugs: set[str]) -> float:
    """1.0 for a selected L1 topic, 0.8 for L2, 0.6 for a matching tag slug."""
    if drop.l1_topic_id is not None and drop.l1_topic_id in topic_ids:
        return 1.0
    if drop.l2_topic_id is not None and drop.l2_topic_id in topic_ids:
        return 0.8
    if any(tag.lower() in topic_slugs for tag in drop.tags):
        return 0.6
    return 0.0


def feedback_score(
    drop: Drop,
    events: list[EngagementEvent],
    shared_tag_factor: float = 0.5,
    scale: float = 3.0,
) -> float:
    """Engagement with the drop's source or tags, squashed to [-1, 1].

    A same-source event counts fully; a tags-only match counts at
    ``shared_tag_factor``. Events on the drop itself are ignored.
    """
    drop_tags = {t for t in drop.tags if t != DELETED_TAG}
    raw = 0.0
    for event in events:
        if drop.id is not None and event.drop_id == drop.id:
            continue
        weight = ACTION_WEIGHTS.get(event.action, 0.0)
        if drop.source_id is not None and event.source_id == drop.source_id:
            raw += weight
        elif drop_tags.intersection(event.tags):
            raw += weight * shared_tag_factor
    return math.tanh(raw / scale)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _sort_key(item: RankedDrop) -> tuple[float, datetime]:
    # Equal scores: newer first.
    return (item.score, item.drop.published_at)


class FeedRankingService:
    """
    Ranks tagged drops for one user.

    Usage:
        service = FeedRankingService(database, redis_client=redis)
        result = await service.rank("user-1", limit=10)
    """

    def __init__(
        self,
        database: Database | None = None,
        drops: DropRepository | None = None,
        preferences: PreferenceRepository | None = None,
        engagement: EngagementRepository | None = None,
        topics: TopicRepository | None = None,
        cache: FeedCache | None = None,
        config: RankingConfig | None = None,
        redis_client: Any | None = None,
    ) -> None:
        self._config = config or RankingConfig()
        self._database = database
        self._drops = drops
        self._preferences = preferences
        self._engagement = engagement
        self._topics = topics
        if cache is None:
            cache = FeedCache(
                redis_client if self._config.cache_enabled else None,
                ttl_seconds=self._config.cache_ttl_seconds,
                key_prefix=self._config.cache_key_prefix,
            )
        self._cache = cache
        self._metrics = get_metrics()

    @property
    def config(self) -> RankingConfig:
        return self._config

    @property
    def cache(self) -> FeedCache:
        return self._cache

    def _ensure_components(self) -> None:
        if self._database is None and None in (
            self._drops, self._preferences, self._engagement, self._topics
        ):
            raise RuntimeError("FeedRankingService needs a database or all repositories")
        if self._drops is None:
            self._drops = DropRepository(self._database)
        if self._preferences is None:
            self._preferences = PreferenceRepository(self._database)
        if self._engagement is None:
            self._engagement = EngagementRepository(self._database)
        if self._topics is None:
            self._topics = TopicRepository(self._database)

    # ── Scoring ─────────────────────────────────────────────

    def compute_score(
        self,
        drop: Drop,
        *,
        tier: str,
        topic_ids: set[int],
        topic_slugs: set[str],
        events: list[EngagementEvent],
        similarity: float | None = None,
        now: datetime | None = None,
    ) -> tuple[float, dict[str, float]]:
        """Score one candidate. Pure: no I/O, no state.

        Returns:
            (score, components) where components holds the four weighted
            components and the catalog parts (recency, trust, popularity).
        """
        cfg = self._config
        now = now or datetime.now(timezone.utc)

        recency = recency_score(drop.published_at, now, cfg.recency_half_life_hours)
        authority = drop.authority_score if drop.authority_score is not None else cfg.trust_fallback
        quality = drop.quality_score if drop.quality_score is not None else cfg.trust_fallback
        trust = (authority + quality) / 2
        popularity = (
            drop.popularity_score if drop.popularity_score is not None else cfg.popularity_fallback
        )
        catalog = _clamp((recency + trust + popularity) / 3)

        components = {
            "topic_match": topic_match_score(drop, topic_ids, topic_slugs),
            "catalog": catalog,
            "similarity": _clamp(similarity if similarity is not None else cfg.similarity_fallback),
            "feedback": feedback_score(drop, events, cfg.shared_tag_factor, cfg.feedback_scale),
            "recency": recency,
            "trust": trust,
            "popularity": popularity,
        }
        weights = cfg.weights_for(tier)
        score = sum(weights[name] * components[name] for name in WEIGHTED_COMPONENTS)
        return score, components

    def reason_for(
        self,
        drop: Drop,
        components: dict[str, float],
        tier: str,
        topics: list[Topic],
        events: list[EngagementEvent],
    ) -> str:
        """Human-readable reason from the dominant weighted component."""
        weights = self._config.weights_for(tier)
        contributions = {name: weights[name] * components[name] for name in WEIGHTED_COMPONENTS}
        dominant = max(contributions, key=contributions.get)
        if contributions[dominant] <= 0:
            return "Relevant content"

        if dominant == "topic_match":
            tags = {t.lower() for t in drop.tags}
            names = [
                t.name
                for t in topics
                if t.id in (drop.l1_topic_id, drop.l2_topic_id) or t.slug.lower() in tags
            ]
            return f"Matches your interests: {', '.join(names[:2])}" if names else "Matches your interests"
        if dominant == "similarity":
            return "Similar to what you read"
        if dominant == "feedback":
            related = [
                e for e in events
                if e.source_id == drop.source_id or set(e.tags) & set(drop.tags)
            ]
            if any(e.action == "save" for e in related):
                return "Because you saved similar content"
            return "Because you liked similar content"

        parts = {k: components[k] for k in ("recency", "trust", "popularity")}
        top = max(parts, key=parts.get)
        if top == "recency":
            return "Fresh content"
        if top == "trust":
            return "High quality source"
        return "Popular right now"

    # ── Assembly ────────────────────────────────────────────

    def assemble(self, ranked: list[RankedDrop], limit: int) -> tuple[list[RankedDrop], dict[str, Any]]:
        """Apply video floor, per-source cap and sponsored placement."""
        cfg = self._config
        ordered = sorted(ranked, key=_sort_key, reverse=True)
        organic = [r for r in ordered if not r.drop.sponsored]
        sponsored = [r for r in ordered if r.drop.sponsored]
        constraints: dict[str, Any] = {
            "max_per_source": cfg.max_per_source,
            "per_source_capped": 0,
            "video_floor": False,
            "sponsored_included": False,
        }

        selected: list[RankedDrop] = []
        per_source: Counter = Counter()
        for item in organic:
            if len(selected) >= limit:
                break
            source_id = item.drop.source_id
            if source_id is not None and per_source[source_id] >= cfg.max_per_source:
                constraints["per_source_capped"] += 1
                continue
            selected.append(item)
            if source_id is not None:
                per_source[source_id] += 1

        if not any(r.drop.is_video for r in selected):
            video = next(
                (r for r in organic if r.drop.is_video and r.score >= cfg.video_min_score),
                None,
            )
            if video is not None and self._place_video(selected, video, per_source, limit):
                constraints["video_floor"] = True
        selected.sort(key=_sort_key, reverse=True)

        if sponsored and self._place_sponsored(selected, sponsored, per_source, limit):
            constraints["sponsored_included"] = True

        return selected, constraints

    def _place_video(
        self,
        selected: list[RankedDrop],
        video: RankedDrop,
        per_source: Counter,
        limit: int,
    ) -> bool:
        """Make room for ``video`` without breaking the per-source cap."""
        source_id = video.drop.source_id
        source_full = source_id is not None and per_source[source_id] >= self._config.max_per_source
        if len(selected) < limit and not source_full:
            selected.append(video)
            if source_id is not None:
                per_source[source_id] += 1
            return True

        for i in range(len(selected) - 1, -1, -1):
            victim = selected[i]
            if source_full and victim.drop.source_id != source_id:
                continue
            del selected[i]
            if victim.drop.source_id is not None:
                per_source[victim.drop.source_id] -= 1
            selected.append(video)
            if source_id is not None:
                per_source[source_id] += 1
            return True
        return False

    def _place_sponsored(
        self,
        selected: list[RankedDrop],
        sponsored: list[RankedDrop],
        per_source: Counter,
        limit: int,
    ) -> bool:
        """Place at most one sponsored drop, keeping the cap and the last video."""
        cfg = self._config
        slot = cfg.sponsored_slot
        if slot is None and len(selected) >= limit:
            return False

        for promoted in sponsored:
            victim_at = None
            if len(selected) >= limit:
                videos = sum(1 for r in selected if r.drop.is_video)
                victim_at = next(
                    (
                        i for i in range(len(selected) - 1, -1, -1)
                        if not (selected[i].drop.is_video and videos <= 1)
                    ),
                    None,
                )
                if victim_at is None:
                    return False

            source_id = promoted.drop.source_id
            if source_id is not None:
                used = per_source[source_id]
                if victim_at is not None and selected[victim_at].drop.source_id == source_id:
                    used -= 1
                if used >= cfg.max_per_source:
                    continue

            if victim_at is not None:
                victim = selected.pop(victim_at)
                if victim.drop.source_id is not None:
                    per_source[victim.drop.source_id] -= 1
            if slot is None:
                selected.append(promoted)
            else:
                selected.insert(min(slot, len(selected)), promoted)
            if source_id is not None:
                per_source[source_id] += 1
            return True
        return False

    # ── Orchestration ───────────────────────────────────────

    def rank_candidates(
        self,
        candidates: list[Drop],
        preference: UserPreference,
        topics: list[Topic],
        events: list[EngagementEvent],
        tier: str,
        limit: int,
        similarity: dict[int, float] | None = None,
        now: datetime | None = None,
    ) -> FeedResult:
        """Score, filter and assemble an in-memory candidate set."""
        now = now or datetime.now(timezone.utc)
        similarity = similarity or {}
        topic_ids = set(preference.selected_topic_ids)
        topic_slugs = {t.slug.lower() for t in topics}
        rejected = {e.drop_id for e in events if e.is_negative}
        languages = set(preference.selected_language_ids)

        ranked: list[RankedDrop] = []
        negative_excluded = language_excluded = 0
        for drop in candidates:
            if drop.is_deleted or not drop.tag_done:
                continue
            if drop.id in rejected:
                negative_excluded += 1
                continue
            if languages and drop.language_id is not None and drop.language_id not in languages:
                language_excluded += 1
                continue
            score, components = self.compute_score(
                drop,
                tier=tier,
                topic_ids=topic_ids,
                topic_slugs=topic_slugs,
                events=events,
                similarity=similarity.get(drop.id),
                now=now,
            )
            reason = self.reason_for(drop, components, tier, topics, events)
            ranked.append(RankedDrop(drop, score, reason, components))

        items, constraints = self.assemble(ranked, limit)
        constraints["negative_excluded"] = negative_excluded
        constraints["language_excluded"] = language_excluded
        return FeedResult(
            items=items,
            tier=tier,
            total_candidates=len(candidates),
            constraints_applied=constraints,
        )

    async def rank(
        self,
        user_id: str,
        limit: int | None = None,
        similarity: dict[int, float] | None = None,
        refresh: bool = False,
    ) -> FeedResult:
        """Build the feed for ``user_id``.

        Args:
            limit: Feed size; defaults to ``default_limit`` and is capped at
                ``max_limit``.
            similarity: Optional drop id -> similarity score. Feeds ranked
                with caller-supplied similarity are not cached.
            refresh: Bypass (and overwrite) the cached feed.

        Raises:
            NoPreferences: The user has selected no topics.
        """
        cfg = self._config
        limit = min(limit or cfg.default_limit, cfg.max_limit)
        self._ensure_components()

        preference = await self._preferences.get(user_id)
        if preference is None or not preference.has_topics:
            raise NoPreferences(user_id)

        cacheable = similarity is None
        if cacheable and not refresh:
            cached = await self._cache.get(user_id, limit)
            if cached is not None:
                return cached

        start = time.monotonic()
        with traced(_tracer, "ranking.rank", {"user_id": user_id, "limit": limit}) as span:
            event_count = await self._engagement.count_for_user(user_id)
            tier = cfg.tier_for(event_count)
            events = await self._engagement.list_recent(user_id, cfg.events_limit)
            topics = await self._topics.get_by_ids(preference.selected_topic_ids)

            now = datetime.now(timezone.utc)
            since = now - timedelta(days=cfg.recency_window_days)
            candidates = await self._drops.list_candidates(since, cfg.candidate_limit)

            result = self.rank_candidates(
                candidates, preference, topics, events, tier, limit, similarity, now
            )
            span.set_attribute("tier", tier)
            span.set_attribute("candidates", len(candidates))

        latency = time.monotonic() - start
        self._metrics.record_ranking(tier, latency)
        logger.info(
            "Feed ranked",
            user_id=user_id,
            tier=tier,
            candidates=result.total_candidates,
            returned=len(result.items),
            constraints=result.constraints_applied,
            latency_ms=round(latency * 1000, 2),
        )

        if cacheable:
            await self._cache.set(user_id, limit, result)
        return result

    async def invalidate(self, user_id: str) -> int:
        """Forget cached feeds of ``user_id`` (after new engagement)."""
        return await self._cache.invalidate(user_id)
