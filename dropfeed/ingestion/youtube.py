"""
YouTube Data API v3 enrichment.

Looks up a single video (``videos?part=snippet,statistics,contentDetails``)
and turns it into a YouTubeVideo with a log-scaled popularity score.

Failures raise EnrichmentFailure. When something usable is still known
(at minimum the video id and a derived thumbnail) it is attached as
``partial`` so the worker can create the drop with degraded metadata.
"""

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from dropfeed.errors import EnrichmentFailure
from dropfeed.ingestion.config import YouTubeConfig
from dropfeed.ingestion.http_client import (
    APIKeyRotator,
    HTTPClient,
    HTTPClientError,
    RetryConfig,
)

logger = structlog.get_logger(__name__)

_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)

THUMBNAIL_PREFERENCE = ("maxres", "high", "medium", "default")


def fallback_thumbnail_url(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def parse_iso8601_duration(value: str | None) -> int:
    """Parse an ISO-8601 duration such as ``PT1H2M3S`` into seconds.

    Unparseable or missing values yield 0.
    """
    if not value:
        return 0
    match = _DURATION_RE.match(value.strip())
    if not match:
        return 0
    parts = {k: int(v) if v else 0 for k, v in match.groupdict().items()}
    return (
        parts["days"] * 86400
        + parts["hours"] * 3600
        + parts["minutes"] * 60
        + parts["seconds"]
    )


def popularity_from_views(views: int | None, ceiling: int) -> float:
    """``log10(1 + views) / log10(1 + ceiling)`` clamped to [0, 1]."""
    if not views or views <= 0:
        return 0.0
    score = math.log10(1 + views) / math.log10(1 + ceiling)
    return max(0.0, min(1.0, score))


def pick_thumbnail(thumbnails: dict[str, Any] | None, video_id: str) -> str:
    """Best available thumbnail: maxres, high, medium, default, then i.ytimg."""
    thumbnails = thumbnails or {}
    for key in THUMBNAIL_PREFERENCE:
        url = (thumbnails.get(key) or {}).get("url")
        if url:
            return url
    return fallback_thumbnail_url(video_id)


def _is_quota_error(body: str | None) -> bool:
    if not body:
        return False
    try:
        data = json.loads(body)
    except ValueError:
        return "quotaExceeded" in body
    errors = (data.get("error") or {}).get("errors") or []
    return any(e.get("reason") in ("quotaExceeded", "dailyLimitExceeded") for e in errors)


@dataclass
class YouTubeVideo:
    """Enriched metadata for one YouTube video."""

    video_id: str
    title: str
    description: str = ""
    channel_id: str | None = None
    channel_title: str | None = None
    published_at: datetime | None = None
    duration_seconds: int = 0
    view_count: int = 0
    thumbnail_url: str | None = None
    category_id: str | None = None
    popularity_score: float = 0.0


class YouTubeClient:
    """Fetch video metadata from the YouTube Data API."""

    def __init__(
        self,
        config: YouTubeConfig | None = None,
        key_rotator: APIKeyRotator | None = None,
    ) -> None:
        self._config = config or YouTubeConfig()
        self._rotator = key_rotator or APIKeyRotator.from_env_var(self._config.api_keys)

    @property
    def is_configured(self) -> bool:
        return self._rotator is not None

    def _partial(self, video_id: str) -> dict[str, Any]:
        return {
            "video_id": video_id,
            "thumbnail_url": fallback_thumbnail_url(video_id),
        }

    async def get_video(self, video_id: str) -> YouTubeVideo:
        """Look up ``video_id``.

        Raises:
            EnrichmentFailure: No key configured, quota exceeded, API
                error, video not found, or no title in the response.
        """
        if self._rotator is None:
            raise EnrichmentFailure(
                "YouTube API key not configured", partial=self._partial(video_id)
            )

        params = {"id": video_id, "part": "snippet,statistics,contentDetails"}
        try:
            async with HTTPClient(
                RetryConfig(max_retries=1),
                timeout=self._config.timeout_seconds,
            ) as client:
                response = await client.get(
                    self._config.api_url,
                    params=params,
                    api_key_rotator=self._rotator,
                    api_key_param="key",
                )
            data = response.json()
        except HTTPClientError as e:
            quota = e.status_code == 403 and _is_quota_error(e.response_body)
            message = "YouTube API quota exceeded" if quota else f"YouTube API error: {e}"
            logger.warning("YouTube lookup failed", video_id=video_id, quota_exceeded=quota)
            raise EnrichmentFailure(
                message, partial=self._partial(video_id), quota_exceeded=quota
            ) from e
        except ValueError as e:
            raise EnrichmentFailure(
                f"YouTube API returned invalid JSON: {e}", partial=self._partial(video_id)
            ) from e

        items = data.get("items") or []
        if not items:
            raise EnrichmentFailure(
                f"YouTube video {video_id} not found or not available",
                partial=self._partial(video_id),
            )

        return self.parse_video(video_id, items[0])

    def parse_video(self, video_id: str, item: dict[str, Any]) -> YouTubeVideo:
        """Build a YouTubeVideo from one ``items[]`` entry of the API response."""
        snippet = item.get("snippet") or {}
        statistics = item.get("statistics") or {}
        details = item.get("contentDetails") or {}

        title = (snippet.get("title") or "").strip()
        thumbnail = pick_thumbnail(snippet.get("thumbnails"), video_id)
        if not title:
            partial = self._partial(video_id)
            partial["thumbnail_url"] = thumbnail
            partial["channel_id"] = snippet.get("channelId")
            raise EnrichmentFailure("YouTube video has no title", partial=partial)

        try:
            views = int(statistics.get("viewCount") or 0)
        except (TypeError, ValueError):
            views = 0

        published_at = None
        if snippet.get("publishedAt"):
            try:
                published_at = datetime.fromisoformat(
                    snippet["publishedAt"].replace("Z", "+00:00")
                )
            except ValueError:
                published_at = None
        if published_at is not None and published_at.tzinfo is None:
            published_at = published_at.replace(tzinfo=timezone.utc)

        return YouTubeVideo(
            video_id=video_id,
            title=title,
            description=snippet.get("description") or "",
            channel_id=snippet.get("channelId") or None,
            channel_title=snippet.get("channelTitle") or None,
            published_at=published_at,
            duration_seconds=parse_iso8601_duration(details.get("duration")),
            view_count=views,
            thumbnail_url=thumbnail,
            category_id=snippet.get("categoryId"),
            popularity_score=popularity_from_views(
                views, self._config.popularity_view_ceiling
            ),
        )
