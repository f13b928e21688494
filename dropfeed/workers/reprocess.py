"""
Repair passes over existing drops.

- YouTubeReprocessor: re-runs YouTube enrichment for drops whose metadata
  is a known-bad placeholder and resets ``tag_done`` so they get re-tagged.
- RetagWorker: tags drops with ``tag_done = false``.

Neither pass touches the ingestion queue.
"""

from dataclasses import dataclass, field

import structlog

from dropfeed.drops.repository import DropRepository
from dropfeed.errors import EnrichmentFailure, TaggingFailure
from dropfeed.ingestion.youtube import YouTubeClient
from dropfeed.tagging.client import TaggingService
from dropfeed.urls import extract_youtube_id

logger = structlog.get_logger(__name__)


@dataclass
class PassResult:
    """Summary of one repair pass."""

    examined: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    stopped_early: bool = False

    def to_dict(self) -> dict:
        return {
            "examined": self.examined,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors[:20],
            "stopped_early": self.stopped_early,
        }


class YouTubeReprocessor:
    """Repair video drops with placeholder titles or missing video ids."""

    def __init__(self, drops: DropRepository, youtube: YouTubeClient | None = None) -> None:
        self._drops = drops
        self._youtube = youtube or YouTubeClient()

    async def run(self, limit: int = 50) -> PassResult:
        """Re-enrich up to ``limit`` bad drops in place.

        Stops at the first quota-exceeded error; the remaining drops are
        picked up by the next run.
        """
        result = PassResult()
        candidates = await self._drops.find_bad_youtube(limit)

        for drop in candidates:
            result.examined += 1
            video_id = drop.youtube_video_id or extract_youtube_id(drop.url)
            if video_id is None:
                result.skipped += 1
                continue

            try:
                video = await self._youtube.get_video(video_id)
            except EnrichmentFailure as e:
                result.failed += 1
                result.errors.append(f"drop {drop.id}: {e.message}")
                if e.quota_exceeded:
                    result.stopped_early = True
                    logger.warning("YouTube quota exceeded, stopping reprocess", drop_id=drop.id)
                    break
                continue

            drop.title = video.title
            drop.summary = video.description[:1000]
            drop.image_url = video.thumbnail_url
            drop.type = "video"
            drop.youtube_video_id = video.video_id
            drop.youtube_channel_id = video.channel_id
            drop.popularity_score = video.popularity_score
            if video.published_at is not None:
                drop.published_at = video.published_at

            if await self._drops.update_enrichment(drop):
                result.updated += 1
            else:
                result.skipped += 1

        logger.info("YouTube reprocess finished", **result.to_dict())
        return result


class RetagWorker:
    """Tag drops whose ``tag_done`` is false."""

    def __init__(self, drops: DropRepository, tagging: TaggingService) -> None:
        self._drops = drops
        self._tagging = tagging

    async def run_once(self, limit: int = 25) -> PassResult:
        result = PassResult()
        for drop in await self._drops.list_untagged(limit):
            result.examined += 1
            try:
                resolved = await self._tagging.tag_text(f"{drop.title}\n\n{drop.summary}")
            except TaggingFailure as e:
                result.failed += 1
                result.errors.append(f"drop {drop.id}: {e.message}")
                continue

            if await self._drops.update_tags(
                drop.id, resolved.tags, resolved.l1_topic_id, resolved.l2_topic_id
            ):
                result.updated += 1
            else:
                result.skipped += 1

        logger.info("Retag pass finished", **result.to_dict())
        return result
