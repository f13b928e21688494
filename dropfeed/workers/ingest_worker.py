"""
Ingest worker - drains the ingestion queue into tagged drops.

Runs as a standalone service that:
1. Claims batches of pending queue items (atomic, SKIP LOCKED)
2. Fetches each page, or enriches it through the YouTube API
3. Scores and tags the content
4. Persists the drop and completes the queue item

Any failure of a single item is recorded on the item (``error`` status,
``tries`` incremented, message set) and the loop moves on; retrying is
left to the queue sweep.
"""

import asyncio
import os
import socket
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
import structlog

from dropfeed.config.settings import get_settings
from dropfeed.drops.repository import DropRepository
from dropfeed.drops.schemas import BAD_YOUTUBE_TITLES, Drop
from dropfeed.errors import DropfeedError, EnrichmentFailure, FetchFailure
from dropfeed.ingestion.config import IngestionConfig
from dropfeed.ingestion.extractor import MetadataExtractor, PageMetadata, parse_date
from dropfeed.ingestion.fetcher import ContentFetcher
from dropfeed.ingestion.scoring import authority_score, quality_score
from dropfeed.ingestion.youtube import YouTubeClient, YouTubeVideo
from dropfeed.observability.logging import bind_context, clear_context
from dropfeed.observability.metrics import get_metrics
from dropfeed.observability.tracing import get_tracer, traced
from dropfeed.queue.config import QueueConfig
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.queue.schemas import QueueItem, RssPayload, YouTubePayload
from dropfeed.sources.repository import SourcesRepository
from dropfeed.sources.schemas import Source
from dropfeed.status.broadcaster import StatusBroadcaster
from dropfeed.storage.database import Database
from dropfeed.tagging.client import TaggingService
from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository
from dropfeed.urls import extract_youtube_id, is_youtube_url

logger = structlog.get_logger(__name__)
_tracer = get_tracer(__name__)


def make_worker_id(prefix: str = "ingest") -> str:
    return f"{prefix}-{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


class IngestWorker:
    """
    Worker that turns queue items into drops.

    Usage:
        worker = IngestWorker()
        await worker.start()  # Runs until stop()

    Tests and one-shot CLI runs inject the repositories and clients and
    call ``run_once()`` or ``process_item()`` directly.
    """

    def __init__(
        self,
        database: Database | None = None,
        queue: IngestionQueueRepository | None = None,
        drops: DropRepository | None = None,
        sources: SourcesRepository | None = None,
        tagging: TaggingService | None = None,
        fetcher: ContentFetcher | None = None,
        extractor: MetadataExtractor | None = None,
        youtube: YouTubeClient | None = None,
        config: QueueConfig | None = None,
        ingestion_config: IngestionConfig | None = None,
        redis_client: Any | None = None,
        worker_id: str | None = None,
    ):
        self._config = config or QueueConfig()
        self._ingestion_config = ingestion_config or IngestionConfig()
        self._database = database or Database()
        self._owns_redis = False

        self._queue = queue
        self._drops = drops
        self._sources = sources
        self._tagging = tagging
        self._fetcher = fetcher or ContentFetcher(self._ingestion_config)
        self._extractor = extractor or MetadataExtractor(
            self._ingestion_config.max_date_age_years
        )
        self._youtube = youtube or YouTubeClient()
        self._redis = redis_client

        self.worker_id = worker_id or make_worker_id()
        self._running = False
        self._metrics = get_metrics()

        logger.info(
            "IngestWorker initialized",
            worker_id=self.worker_id,
            batch_size=self._config.claim_batch_size,
            concurrency=self._config.worker_concurrency,
        )

    def _ensure_components(self) -> None:
        if self._queue is None:
            self._queue = IngestionQueueRepository(self._database)
        if self._drops is None:
            self._drops = DropRepository(self._database)
        if self._sources is None:
            self._sources = SourcesRepository(self._database)
        if self._tagging is None:
            self._tagging = TaggingService(
                TaggingParamsRepository(self._database),
                TopicRepository(self._database),
            )

    async def start(self) -> None:
        """Run the claim/process loop until stop() is called."""
        self._running = True
        settings = get_settings()

        logger.info("Starting ingest worker", worker_id=self.worker_id)
        bind_context(worker_id=self.worker_id)

        await self._database.connect()
        self._ensure_components()

        if self._redis is None and settings.status_events_enabled:
            self._redis = redis.from_url(
                str(settings.redis_url), encoding="utf-8", decode_responses=True
            )
            self._owns_redis = True

        try:
            await self._process_loop()
        except asyncio.CancelledError:
            logger.info("Ingest worker cancelled", worker_id=self.worker_id)
        except Exception as e:
            logger.error("Ingest worker error", worker_id=self.worker_id, error=str(e))
            raise
        finally:
            await self._cleanup()
            clear_context()

    async def stop(self) -> None:
        logger.info("Stopping ingest worker", worker_id=self.worker_id)
        self._running = False

    async def _cleanup(self) -> None:
        if self._redis is not None and self._owns_redis:
            await self._redis.close()
            self._redis = None
        await self._database.close()
        logger.info("Ingest worker cleaned up", worker_id=self.worker_id)

    async def _process_loop(self) -> None:
        while self._running:
            processed = await self.run_once()
            if processed == 0 and self._running:
                await asyncio.sleep(self._config.worker_poll_interval_seconds)

    async def run_once(self, limit: int | None = None) -> int:
        """Claim one batch and process it with bounded concurrency.

        Returns:
            Number of items claimed.
        """
        self._ensure_components()
        items = await self._queue.claim_batch(
            self.worker_id, limit or self._config.claim_batch_size
        )
        self._metrics.record_claim(len(items))
        if not items:
            return 0

        semaphore = asyncio.Semaphore(self._config.worker_concurrency)

        async def _bounded(item: QueueItem) -> str:
            async with semaphore:
                return await self.process_item(item)

        start = time.monotonic()
        outcomes = await asyncio.gather(*(_bounded(i) for i in items))
        logger.info(
            "Processed batch",
            worker_id=self.worker_id,
            claimed=len(items),
            done=outcomes.count("done"),
            duplicate=outcomes.count("duplicate"),
            errors=outcomes.count("error"),
            latency_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return len(items)

    async def process_item(self, item: QueueItem) -> str:
        """Fetch, enrich, tag and persist one claimed item.

        Returns:
            "done", "duplicate" or "error". Never raises for item failures.
        """
        self._ensure_components()
        try:
            with traced(_tracer, "worker.process_item", {"item_id": item.id, "kind": item.kind}):
                existing = await self._drops.exists_by_url(item.url)
                if existing is not None:
                    outcome = "duplicate"
                else:
                    drop = await self.build_drop(item)
                    created = await self._drops.create(drop)
                    outcome = "done" if created is not None else "duplicate"
                if not await self._queue.complete(item.id, self.worker_id):
                    logger.warning("Claim lost before completion", item_id=item.id, url=item.url)
        except DropfeedError as e:
            await self._record_failure(item, e.message, type(e).__name__)
            return "error"
        except Exception as e:
            logger.error(
                "Unexpected error processing item",
                item_id=item.id,
                url=item.url,
                error=str(e),
                exc_info=True,
            )
            await self._record_failure(item, f"Unexpected error: {e}", type(e).__name__)
            return "error"

        self._metrics.record_item(item.kind, outcome)
        logger.debug("Item processed", item_id=item.id, url=item.url, outcome=outcome)
        return outcome

    async def _record_failure(self, item: QueueItem, message: str, error_type: str) -> None:
        tries = await self._queue.fail(item.id, message, self.worker_id)
        self._metrics.record_item(item.kind, "error", error_type)
        logger.warning(
            "Item failed",
            item_id=item.id,
            url=item.url,
            error_type=error_type,
            error=message,
            tries=tries,
        )
        await StatusBroadcaster.publish(
            self._redis,
            "item_failed",
            {
                "item_id": item.id,
                "source_id": item.source_id,
                "url": item.url,
                "error": message,
                "tries": tries,
            },
        )

    async def _get_source(self, source_id: int | None) -> Source | None:
        if source_id is None:
            return None
        return await self._sources.get(source_id)

    async def build_drop(self, item: QueueItem) -> Drop:
        """Build a tagged Drop for ``item`` without persisting it.

        Raises:
            FetchFailure: Page unreachable or without a title.
            EnrichmentFailure: YouTube lookup failed with nothing usable.
            TaggingFailure: Tagging capability failed.
        """
        source = await self._get_source(item.source_id)
        start = time.monotonic()

        if isinstance(item.payload, YouTubePayload) or is_youtube_url(item.url):
            drop = await self._build_video(item)
        else:
            drop = await self._build_article(item)
        self._metrics.record_fetch_latency(drop.type, time.monotonic() - start)

        drop.source_id = item.source_id
        drop.authority_score = authority_score(source, drop.url)
        drop.quality_score = quality_score(drop.title, drop.summary, drop.image_url, drop.type)

        resolved = await self._tagging.tag_text(f"{drop.title}\n\n{drop.summary}")
        drop.tags = resolved.tags
        drop.l1_topic_id = resolved.l1_topic_id
        drop.l2_topic_id = resolved.l2_topic_id
        drop.tag_done = True
        return drop

    async def _build_article(self, item: QueueItem) -> Drop:
        page = await self._fetcher.fetch(item.url)
        meta = self._extractor.extract(page.text, page.final_url)
        if not meta.title:
            raise FetchFailure(f"Unparseable content: no title found at {item.url}")

        return Drop(
            url=item.url,
            title=meta.title,
            type=meta.content_type,
            summary=meta.summary,
            image_url=meta.image_url,
            published_at=self._published_at(item, meta),
        )

    def _published_at(self, item: QueueItem, meta: PageMetadata | None = None) -> datetime:
        if meta is not None and meta.published_at is not None:
            return meta.published_at
        if isinstance(item.payload, RssPayload) and item.payload.entry_published_at:
            parsed = parse_date(
                item.payload.entry_published_at, self._ingestion_config.max_date_age_years
            )
            if parsed is not None:
                return parsed
        return datetime.now(timezone.utc)

    async def _build_video(self, item: QueueItem) -> Drop:
        if isinstance(item.payload, YouTubePayload):
            video_id = item.payload.video_id
        else:
            video_id = extract_youtube_id(item.url)
        if video_id is None:
            raise FetchFailure(f"Unparseable content: no YouTube video id in {item.url}")

        try:
            video = await self._youtube.get_video(video_id)
        except EnrichmentFailure as e:
            return await self._degraded_video(item, video_id, e)
        return self.video_drop(item.url, video)

    @staticmethod
    def video_drop(url: str, video: YouTubeVideo) -> Drop:
        return Drop(
            url=url,
            title=video.title,
            type="video",
            summary=video.description[:1000],
            image_url=video.thumbnail_url,
            youtube_video_id=video.video_id,
            youtube_channel_id=video.channel_id,
            popularity_score=video.popularity_score,
            published_at=video.published_at or datetime.now(timezone.utc),
        )

    async def _degraded_video(
        self, item: QueueItem, video_id: str, failure: EnrichmentFailure
    ) -> Drop:
        """Fall back to the watch page's Open Graph tags.

        Raises the original EnrichmentFailure when there is no partial
        data or the page yields no real title.
        """
        if failure.partial is None:
            raise failure

        try:
            page = await self._fetcher.fetch(item.url)
        except FetchFailure as e:
            raise failure from e
        meta = self._extractor.extract(page.text, page.final_url)
        if not meta.title or meta.title.strip() in BAD_YOUTUBE_TITLES:
            raise failure

        logger.warning(
            "Creating video drop with degraded metadata",
            item_id=item.id,
            video_id=video_id,
            reason=failure.message,
            quota_exceeded=failure.quota_exceeded,
        )
        payload_channel = (
            item.payload.channel_id if isinstance(item.payload, YouTubePayload) else None
        )
        return Drop(
            url=item.url,
            title=meta.title,
            type="video",
            summary=meta.summary,
            image_url=meta.image_url or failure.partial.get("thumbnail_url"),
            youtube_video_id=video_id,
            youtube_channel_id=failure.partial.get("channel_id") or payload_channel,
            published_at=self._published_at(item, meta),
        )
