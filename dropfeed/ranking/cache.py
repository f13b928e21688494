"""Redis-backed cache of assembled feeds."""

import json
import re

import redis.asyncio as redis
import structlog

from dropfeed.observability.metrics import get_metrics
from dropfeed.ranking.schemas import FeedResult

logger = structlog.get_logger(__name__)

_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def _glob_escape(text: str) -> str:
    """Escape Redis MATCH metacharacters so ``text`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class FeedCache:
    """Stores serialized FeedResults per (user, limit) with a TTL.

    A missing Redis client disables the cache; Redis errors degrade to a
    miss so ranking still answers.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None,
        ttl_seconds: int = 7200,
        key_prefix: str = "dropfeed:feed:",
    ) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds
        self._prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._redis is not None and self._ttl > 0

    def key(self, user_id: str, limit: int) -> str:
        return f"{self._prefix}{user_id}:{limit}"

    async def get(self, user_id: str, limit: int) -> FeedResult | None:
        if not self.enabled:
            return None

        metrics = get_metrics()
        try:
            cached = await self._redis.get(self.key(user_id, limit))
        except redis.RedisError as e:
            logger.warning("Feed cache read failed", user_id=user_id, error=str(e))
            metrics.record_feed_cache("error")
            return None

        if not cached:
            metrics.record_feed_cache("miss")
            return None

        try:
            result = FeedResult.from_dict(json.loads(cached))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cached feed", user_id=user_id, error=str(e))
            metrics.record_feed_cache("error")
            return None

        metrics.record_feed_cache("hit")
        result.from_cache = True
        return result

    async def set(self, user_id: str, limit: int, result: FeedResult) -> None:
        if not self.enabled:
            return
        try:
            await self._redis.setex(
                self.key(user_id, limit),
                self._ttl,
                json.dumps(result.to_dict(), default=str),
            )
        except redis.RedisError as e:
            logger.warning("Feed cache write failed", user_id=user_id, error=str(e))

    async def invalidate(self, user_id: str) -> int:
        """Drop every cached feed of ``user_id``. Returns keys deleted."""
        if self._redis is None:
            return 0
        try:
            base = f"{self._prefix}{user_id}:"
            pattern = _glob_escape(base) + "*"
            # Only keys of the form <base><limit>; "u1" must not take "u1:x"'s feeds.
            keys = [
                k async for k in self._redis.scan_iter(match=pattern)
                if k[len(base):].isdigit()
            ]
            if not keys:
                return 0
            return await self._redis.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Feed cache invalidation failed", user_id=user_id, error=str(e))
            return 0
