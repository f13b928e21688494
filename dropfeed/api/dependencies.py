"""
Dependency injection for FastAPI endpoints.

Services are process-wide singletons created on first use and torn down
by ``cleanup_dependencies()`` in the app lifespan. Tests replace them
through ``app.dependency_overrides``.
"""

from typing import AsyncGenerator

import redis.asyncio as redis

from dropfeed.config.settings import get_settings
from dropfeed.drops.repository import DropRepository
from dropfeed.engagement.repository import EngagementRepository
from dropfeed.preferences.repository import PreferenceRepository
from dropfeed.queue.intake import QueueIntake
from dropfeed.queue.maintenance import QueueMaintenance
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.ranking.service import FeedRankingService
from dropfeed.scheduler.service import SourceScheduler
from dropfeed.sources.service import SourcesService
from dropfeed.status.broadcaster import StatusBroadcaster
from dropfeed.status.service import StatusService
from dropfeed.storage.database import Database
from dropfeed.tagging.client import TaggingService
from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository
from dropfeed.workers.reprocess import RetagWorker, YouTubeReprocessor

_database: Database | None = None
_redis_client: redis.Redis | None = None
_sources_service: SourcesService | None = None
_scheduler: SourceScheduler | None = None
_ranking_service: FeedRankingService | None = None
_status_broadcaster: StatusBroadcaster | None = None


def _get_redis() -> redis.Redis:
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def get_database() -> Database:
    global _database

    if _database is None:
        _database = Database()
        await _database.connect()
    return _database


async def get_redis_client() -> AsyncGenerator[redis.Redis, None]:
    yield _get_redis()


async def get_sources_service() -> SourcesService:
    global _sources_service

    if _sources_service is None:
        _sources_service = SourcesService(await get_database())
    return _sources_service


async def get_scheduler() -> SourceScheduler:
    """Scheduler used for prioritize, run-now and stale release from the API.

    The polling loop itself runs in the ``dropfeed scheduler`` process;
    this instance only serves on-demand operations.
    """
    global _scheduler

    if _scheduler is None:
        settings = get_settings()
        _scheduler = SourceScheduler(
            database=await get_database(),
            sources=await get_sources_service(),
            redis_client=_get_redis() if settings.status_events_enabled else None,
        )
    return _scheduler


async def get_queue_repository() -> IngestionQueueRepository:
    return IngestionQueueRepository(await get_database())


async def get_queue_intake() -> QueueIntake:
    db = await get_database()
    return QueueIntake(IngestionQueueRepository(db), DropRepository(db))


async def get_queue_maintenance() -> QueueMaintenance:
    return QueueMaintenance(IngestionQueueRepository(await get_database()))


async def get_drop_repository() -> DropRepository:
    return DropRepository(await get_database())


async def get_tagging_params_repository() -> TaggingParamsRepository:
    return TaggingParamsRepository(await get_database())


async def get_preference_repository() -> PreferenceRepository:
    return PreferenceRepository(await get_database())


async def get_engagement_repository() -> EngagementRepository:
    return EngagementRepository(await get_database())


async def get_ranking_service() -> FeedRankingService:
    """Ranking service with the Redis feed cache."""
    global _ranking_service

    if _ranking_service is None:
        _ranking_service = FeedRankingService(
            database=await get_database(),
            redis_client=_get_redis(),
        )
    return _ranking_service


async def get_status_service() -> StatusService:
    return StatusService(await get_database())


async def get_youtube_reprocessor() -> YouTubeReprocessor:
    return YouTubeReprocessor(DropRepository(await get_database()))


async def get_retag_worker() -> RetagWorker:
    db = await get_database()
    tagging = TaggingService(TaggingParamsRepository(db), TopicRepository(db))
    return RetagWorker(DropRepository(db), tagging)


async def get_event_publisher() -> redis.Redis | None:
    """Redis client for status events, or None when publishing is off."""
    if not get_settings().status_events_enabled:
        return None
    return _get_redis()


async def get_status_broadcaster() -> StatusBroadcaster:
    """Create and start the process-wide status broadcaster."""
    global _status_broadcaster

    if _status_broadcaster is None:
        settings = get_settings()
        _status_broadcaster = StatusBroadcaster(
            max_connections=settings.ws_status_max_connections,
            heartbeat_interval=settings.ws_status_heartbeat_seconds,
        )
        await _status_broadcaster.start(_get_redis())
    return _status_broadcaster


async def stop_status_broadcaster() -> None:
    global _status_broadcaster

    if _status_broadcaster is not None:
        await _status_broadcaster.stop()
        _status_broadcaster = None


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _database, _redis_client, _sources_service, _scheduler, _ranking_service

    if _scheduler is not None:
        await _scheduler.wait_background()
        _scheduler = None

    _sources_service = None
    _ranking_service = None

    if _database is not None:
        await _database.close()
        _database = None

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
