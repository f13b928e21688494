"""Tests for YouTube Data API enrichment."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from dropfeed.errors import EnrichmentFailure
from dropfeed.ingestion.config import YouTubeConfig
from dropfeed.ingestion.youtube import (
    YouTubeClient,
    fallback_thumbnail_url,
    parse_iso8601_duration,
    pick_thumbnail,
    popularity_from_views,
)

API_URL = "https://yt.test/youtube/v3/videos"
VIDEO_ID = "dQw4w9WgXcQ"


def _client(api_keys: str | None = "k1,k2") -> YouTubeClient:
    return YouTubeClient(YouTubeConfig(api_keys=api_keys, api_url=API_URL))


def _item(**snippet) -> dict:
    base = {
        "title": "Never Gonna Give You Up",
        "description": "Official video",
        "channelId": "UCuAXFkgsw1L7xaCfnd5JJOw",
        "channelTitle": "Rick Astley",
        "publishedAt": "2009-10-25T06:57:33Z",
        "thumbnails": {"high": {"url": "https://i.ytimg.com/vi/x/high.jpg"}},
    }
    base.update(snippet)
    return {
        "snippet": base,
        "statistics": {"viewCount": "999"},
        "contentDetails": {"duration": "PT3M33S"},
    }


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    with patch("dropfeed.ingestion.http_client.asyncio.sleep", new_callable=AsyncMock):
        yield


class TestHelpers:
    @pytest.mark.parametrize(
        "value,seconds",
        [("PT1H2M3S", 3723), ("PT45S", 45), ("P1DT1M", 86460), ("", 0), ("garbage", 0)],
    )
    def test_duration(self, value, seconds):
        assert parse_iso8601_duration(value) == seconds

    def test_popularity_log_scaled(self):
        assert popularity_from_views(0, 10_000_000) == 0.0
        assert popularity_from_views(10_000_000, 10_000_000) == 1.0
        assert popularity_from_views(10**9, 10_000_000) == 1.0
        assert 0.4 < popularity_from_views(999, 10_000_000) < 0.45

    def test_thumbnail_preference(self):
        thumbs = {"default": {"url": "d"}, "medium": {"url": "m"}, "maxres": {"url": "x"}}
        assert pick_thumbnail(thumbs, VIDEO_ID) == "x"
        assert pick_thumbnail({}, VIDEO_ID) == fallback_thumbnail_url(VIDEO_ID)


class TestYouTubeClient:
    @pytest.mark.asyncio
    async def test_unconfigured_fails_with_partial(self):
        client = _client(api_keys=None)
        assert not client.is_configured

        with pytest.raises(EnrichmentFailure) as exc:
            await client.get_video(VIDEO_ID)

        assert exc.value.partial == {
            "video_id": VIDEO_ID,
            "thumbnail_url": fallback_thumbnail_url(VIDEO_ID),
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_success(self):
        route = respx.get(API_URL).mock(return_value=httpx.Response(200, json={"items": [_item()]}))

        video = await _client().get_video(VIDEO_ID)

        assert video.title == "Never Gonna Give You Up"
        assert video.channel_id == "UCuAXFkgsw1L7xaCfnd5JJOw"
        assert video.published_at == datetime(2009, 10, 25, 6, 57, 33, tzinfo=timezone.utc)
        assert video.duration_seconds == 213
        assert video.view_count == 999
        assert video.thumbnail_url == "https://i.ytimg.com/vi/x/high.jpg"
        request_url = str(route.calls.last.request.url)
        assert "key=k1" in request_url
        assert f"id={VIDEO_ID}" in request_url

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found(self):
        respx.get(API_URL).mock(return_value=httpx.Response(200, json={"items": []}))

        with pytest.raises(EnrichmentFailure, match="not found") as exc:
            await _client().get_video(VIDEO_ID)

        assert exc.value.partial["video_id"] == VIDEO_ID

    @pytest.mark.asyncio
    @respx.mock
    async def test_quota_exceeded(self):
        body = {"error": {"errors": [{"reason": "quotaExceeded"}]}}
        respx.get(API_URL).mock(return_value=httpx.Response(403, text=json.dumps(body)))

        with pytest.raises(EnrichmentFailure) as exc:
            await _client().get_video(VIDEO_ID)

        assert exc.value.quota_exceeded
        assert exc.value.message == "YouTube API quota exceeded"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_title_keeps_thumbnail(self):
        respx.get(API_URL).mock(return_value=httpx.Response(200, json={"items": [_item(title="  ")]}))

        with pytest.raises(EnrichmentFailure, match="no title") as exc:
            await _client().get_video(VIDEO_ID)

        assert exc.value.partial["thumbnail_url"] == "https://i.ytimg.com/vi/x/high.jpg"
        assert exc.value.partial["channel_id"] == "UCuAXFkgsw1L7xaCfnd5JJOw"
