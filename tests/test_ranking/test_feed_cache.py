"""Tests for the Redis feed cache."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dropfeed.drops.schemas import Drop
from dropfeed.ranking.cache import FeedCache
from dropfeed.ranking.schemas import FeedResult, RankedDrop


def _result() -> FeedResult:
    drop = Drop(
        id=1,
        url="https://example.com/1",
        title="One",
        tags=["ai"],
        tag_done=True,
        published_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    return FeedResult(
        items=[RankedDrop(drop, 0.8, "Fresh content", {"catalog": 0.9})],
        tier="warm",
        total_candidates=40,
        constraints_applied={"video_floor": False},
    )


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=0)
    return client


class TestFeedCache:
    @pytest.mark.asyncio
    async def test_disabled_without_client(self):
        cache = FeedCache(None)
        assert not cache.enabled
        assert await cache.get("u1", 10) is None
        await cache.set("u1", 10, _result())
        assert await cache.invalidate("u1") == 0

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self, redis_client):
        await FeedCache(redis_client, ttl_seconds=7200).set("u1", 10, _result())

        key, ttl, payload = redis_client.setex.await_args.args
        assert key == "dropfeed:feed:u1:10"
        assert ttl == 7200
        assert json.loads(payload)["tier"] == "warm"

    @pytest.mark.asyncio
    async def test_hit_restores_result(self, redis_client):
        redis_client.get.return_value = json.dumps(_result().to_dict())

        cached = await FeedCache(redis_client).get("u1", 10)

        assert cached.from_cache is True
        assert cached.tier == "warm"
        assert cached.items[0].drop.published_at == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert cached.items[0].components == {"catalog": 0.9}

    @pytest.mark.asyncio
    async def test_miss(self, redis_client):
        assert await FeedCache(redis_client).get("u1", 10) is None

    @pytest.mark.asyncio
    async def test_redis_error_is_miss(self, redis_client):
        redis_client.get = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await FeedCache(redis_client).get("u1", 10) is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_miss(self, redis_client):
        redis_client.get.return_value = "{not json"
        assert await FeedCache(redis_client).get("u1", 10) is None

    @pytest.mark.asyncio
    async def test_invalidate_all_limits(self, redis_client):
        async def _scan(match):
            for key in ("dropfeed:feed:u1:10", "dropfeed:feed:u1:25"):
                yield key

        redis_client.scan_iter = MagicMock(side_effect=_scan)
        redis_client.delete.return_value = 2

        assert await FeedCache(redis_client).invalidate("u1") == 2
        redis_client.scan_iter.assert_called_once_with(match="dropfeed:feed:u1:*")
        redis_client.delete.assert_awaited_once_with("dropfeed:feed:u1:10", "dropfeed:feed:u1:25")

    @pytest.mark.asyncio
    async def test_invalidate_escapes_glob_characters(self, redis_client):
        async def _scan(match):
            yield "dropfeed:feed:a*[b]?:10"

        redis_client.scan_iter = MagicMock(side_effect=_scan)
        redis_client.delete.return_value = 1

        assert await FeedCache(redis_client).invalidate("a*[b]?") == 1
        redis_client.scan_iter.assert_called_once_with(match=r"dropfeed:feed:a\*\[b\]\?:*")
        redis_client.delete.assert_awaited_once_with("dropfeed:feed:a*[b]?:10")

    @pytest.mark.asyncio
    async def test_invalidate_skips_other_users_with_shared_prefix(self, redis_client):
        async def _scan(match):
            for key in ("dropfeed:feed:u1:10", "dropfeed:feed:u1:x:10"):
                yield key

        redis_client.scan_iter = MagicMock(side_effect=_scan)
        redis_client.delete.return_value = 1

        assert await FeedCache(redis_client).invalidate("u1") == 1
        redis_client.delete.assert_awaited_once_with("dropfeed:feed:u1:10")

    def test_zero_ttl_disables(self, redis_client):
        assert not FeedCache(redis_client, ttl_seconds=0).enabled
