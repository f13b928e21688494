"""
Source scheduler.

Decides per tick which sources to poll, runs them with bounded
concurrency and records a SourceRunStatus for each run. Two overrides
compose with the cadence:

- prioritize: flag sources so the next tick includes them; the flag is
  cleared when that run finishes
- run now: start immediately, outside the cadence; a source whose run is
  still live is rejected with ConcurrentRunConflict, never queued

Run exclusivity is the guarded upsert in SourceRunRepository.try_start,
so several scheduler processes can share one database safely.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis
import structlog

from dropfeed.config.settings import get_settings
from dropfeed.drops.repository import DropRepository
from dropfeed.errors import ConcurrentRunConflict, DropfeedError
from dropfeed.ingestion.feed_reader import FeedReader
from dropfeed.observability.metrics import get_metrics
from dropfeed.observability.tracing import get_tracer, traced
from dropfeed.queue.intake import DiscoveryCandidate, QueueIntake
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.scheduler.config import SchedulerConfig
from dropfeed.scheduler.repository import SourceRunRepository
from dropfeed.scheduler.schemas import RunOutcome, SourceRunStatus
from dropfeed.sources.schemas import Source
from dropfeed.sources.service import SourcesService
from dropfeed.status.broadcaster import StatusBroadcaster
from dropfeed.storage.database import Database

logger = structlog.get_logger(__name__)
_tracer = get_tracer(__name__)


class SourceScheduler:
    """
    Polls sources and enqueues what they publish.

    Usage:
        scheduler = SourceScheduler()
        await scheduler.start()  # ticks until stop()

        # or, one-shot
        outcomes = await scheduler.tick()
    """

    def __init__(
        self,
        database: Database | None = None,
        sources: SourcesService | None = None,
        runs: SourceRunRepository | None = None,
        intake: QueueIntake | None = None,
        feed_reader: FeedReader | None = None,
        config: SchedulerConfig | None = None,
        redis_client: Any | None = None,
    ):
        self._config = config or SchedulerConfig()
        self._database = database or Database()
        self._sources = sources
        self._runs = runs
        self._intake = intake
        self._feed_reader = feed_reader or FeedReader()
        self._redis = redis_client
        self._owns_redis = False

        self._running = False
        self._background: set[asyncio.Task] = set()
        self._metrics = get_metrics()

    def _ensure_components(self) -> None:
        if self._sources is None:
            self._sources = SourcesService(self._database)
        if self._runs is None:
            self._runs = SourceRunRepository(self._database)
        if self._intake is None:
            self._intake = QueueIntake(
                IngestionQueueRepository(self._database), DropRepository(self._database)
            )

    async def start(self) -> None:
        """Tick every ``tick_interval_seconds`` until stop() is called."""
        self._running = True
        settings = get_settings()
        logger.info(
            "Starting scheduler",
            cadence_seconds=self._config.poll_cadence_seconds,
            max_concurrent_runs=self._config.max_concurrent_runs,
        )

        await self._database.connect()
        self._ensure_components()
        await self._sources.ensure_seeded()

        if self._redis is None and settings.status_events_enabled:
            self._redis = redis.from_url(
                str(settings.redis_url), encoding="utf-8", decode_responses=True
            )
            self._owns_redis = True

        try:
            while self._running:
                try:
                    await self.tick()
                except DropfeedError as e:
                    logger.error("Scheduler tick failed", error=e.message)
                if self._running:
                    await asyncio.sleep(self._config.tick_interval_seconds)
        except asyncio.CancelledError:
            logger.info("Scheduler cancelled")
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        logger.info("Stopping scheduler")
        self._running = False

    async def wait_background(self) -> None:
        """Wait for run-now tasks started with ``wait=False``."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _cleanup(self) -> None:
        await self.wait_background()
        if self._redis is not None and self._owns_redis:
            await self._redis.close()
            self._redis = None
        await self._database.close()
        logger.info("Scheduler cleaned up")

    # ── Selection ───────────────────────────────────────────

    def is_due(self, source: Source, now: datetime | None = None) -> bool:
        """Pollable, has something to poll, and flagged or past its cadence."""
        if not source.is_pollable or self._feed_reader.feed_url_for(source) is None:
            return False
        if source.priority_flag or source.last_fetched_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - source.last_fetched_at >= timedelta(
            seconds=self._config.poll_cadence_seconds
        )

    async def due_sources(self) -> list[Source]:
        self._ensure_components()
        now = datetime.now(timezone.utc)
        return [s for s in await self._sources.get_pollable_sources() if self.is_due(s, now)]

    # ── Operations ──────────────────────────────────────────

    async def tick(self) -> list[RunOutcome]:
        """Release stale runs, then run every due source (bounded concurrency)."""
        self._ensure_components()
        await self.mark_stale_runs()

        due = await self.due_sources()
        if not due:
            logger.debug("Scheduler tick: nothing due")
            return []

        semaphore = asyncio.Semaphore(self._config.max_concurrent_runs)

        async def _bounded(source: Source) -> RunOutcome:
            async with semaphore:
                trigger = "prioritized" if source.priority_flag else "schedule"
                try:
                    run = await self._begin(source, trigger)
                except ConcurrentRunConflict as e:
                    return RunOutcome(source.id, "conflict", error=e.message)
                return await self.run_source(source, run)

        outcomes = await asyncio.gather(*(_bounded(s) for s in due))
        logger.info(
            "Scheduler tick finished",
            due=len(due),
            success=sum(1 for o in outcomes if o.status == "success"),
            errors=sum(1 for o in outcomes if o.status == "error"),
            conflicts=sum(1 for o in outcomes if o.status == "conflict"),
            items_ingested=sum(o.items_ingested for o in outcomes),
        )
        return list(outcomes)

    async def prioritize(self, source_ids: list[int]) -> list[int]:
        """Flag sources for the next tick. Returns the ids flagged."""
        self._ensure_components()
        return await self._sources.prioritize(source_ids)

    async def run_now(self, source_ids: list[int], wait: bool = True) -> list[RunOutcome]:
        """Start runs immediately, outside the cadence.

        Every id gets its own guarded ``running`` transition. Ids whose
        source has a live run come back with status ``conflict``.

        Args:
            wait: When False the runs continue in the background and the
                started ids come back with status ``started``.
        """
        self._ensure_components()
        outcomes: dict[int, RunOutcome] = {}
        started: list[tuple[Source, SourceRunStatus]] = []

        for source_id in dict.fromkeys(source_ids):
            source = await self._sources.repository.get(source_id)
            if source is None:
                outcomes[source_id] = RunOutcome(source_id, "not_found", error="Source not found")
                continue
            try:
                run = await self._begin(source, "run_now")
            except ConcurrentRunConflict as e:
                outcomes[source_id] = RunOutcome(source_id, "conflict", error=e.message)
                continue
            started.append((source, run))

        if wait:
            results = await asyncio.gather(*(self.run_source(s, r) for s, r in started))
            for outcome in results:
                outcomes[outcome.source_id] = outcome
        else:
            for source, run in started:
                task = asyncio.create_task(self.run_source(source, run))
                self._background.add(task)
                task.add_done_callback(self._background.discard)
                outcomes[source.id] = RunOutcome(source.id, "started")

        return [outcomes[sid] for sid in dict.fromkeys(source_ids)]

    async def _begin(self, source: Source, trigger: str) -> SourceRunStatus:
        """Guarded transition to ``running``.

        Raises:
            ConcurrentRunConflict: A non-stale run of this source is live.
        """
        run = await self._runs.try_start(source.id, trigger, self._config.stale_run_seconds)
        if run is None:
            raise ConcurrentRunConflict(source.id)
        await StatusBroadcaster.publish(
            self._redis,
            "run_started",
            {"source_id": source.id, "source_name": source.name, "trigger": trigger},
        )
        return run

    async def run_source(self, source: Source, run: SourceRunStatus) -> RunOutcome:
        """Discover, normalize, dedup and enqueue for one started run.

        A failure to reach or parse the feed is a top-level run error: it
        lands on the run row and counts against source health. Items that
        later fail in the worker do not affect the run.
        """
        start = time.monotonic()
        error: str | None = None
        created = discovered = 0

        try:
            with traced(_tracer, "scheduler.run_source", {"source_id": source.id}):
                found = await self._feed_reader.discover(source)
                candidates = [
                    DiscoveryCandidate(
                        url=d.url,
                        source_type=source.type,
                        feed_url=self._feed_reader.feed_url_for(source),
                        entry_title=d.title,
                        entry_published_at=d.published_at,
                        homepage_url=source.homepage_url,
                        channel_id=d.channel_id,
                    )
                    for d in found
                ]
                batch = await self._intake.enqueue_discovered(candidates, source_id=source.id)
                created, discovered = batch.created, batch.discovered
        except DropfeedError as e:
            error = e.message
        except Exception as e:
            logger.error(
                "Unexpected error during source run",
                source_id=source.id,
                error=str(e),
                exc_info=True,
            )
            error = f"Unexpected error: {e}"

        status = "error" if error else "success"
        finished = await self._runs.finish(
            source.id,
            status,
            items_ingested=created,
            items_discovered=discovered,
            error_message=error,
            started_at=run.started_at,
        )
        if finished:
            await self._sources.record_run_result(source.id, error, run.started_at)
        else:
            logger.warning("Run superseded before finish", source_id=source.id)

        latency = time.monotonic() - start
        self._metrics.record_source_run(run.trigger, status, latency)
        log = logger.warning if error else logger.info
        log(
            "Source run finished",
            source_id=source.id,
            trigger=run.trigger,
            status=status,
            discovered=discovered,
            items_ingested=created,
            error=error,
            latency_ms=round(latency * 1000, 2),
        )
        await StatusBroadcaster.publish(
            self._redis,
            "run_finished",
            {
                "source_id": source.id,
                "status": status,
                "items_ingested": created,
                "error": error,
            },
        )
        return RunOutcome(source.id, status, items_ingested=created, error=error)

    async def mark_stale_runs(self) -> list[int]:
        """Fail runs stuck in ``running`` past the timeout, releasing the lock."""
        self._ensure_components()
        stale = await self._runs.mark_stale(self._config.stale_run_seconds)
        for source_id in stale:
            await self._sources.record_run_result(source_id, "stale run")
            await StatusBroadcaster.publish(
                self._redis,
                "run_finished",
                {"source_id": source_id, "status": "error", "error": "stale run"},
            )
        return stale
