"""Pipeline status snapshots.

Reads the queue, drops, sources and run tables; never writes pipeline
state. Follows the monitoring-service pattern: takes Database directly
and keeps the alert rules in module-level pure helpers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from dropfeed.drops.repository import DropRepository
from dropfeed.observability.metrics import get_metrics
from dropfeed.queue.config import QueueConfig
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.scheduler.config import SchedulerConfig
from dropfeed.scheduler.repository import SourceRunRepository
from dropfeed.scheduler.schemas import SourceRunStatus
from dropfeed.sources.repository import SourcesRepository
from dropfeed.status.config import StatusConfig
from dropfeed.status.schemas import Alert, SourceStatusEntry, StatusSnapshot
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)


# ── Pure helpers (stateless, no I/O) ─────────────────────────


def source_entry(
    run: SourceRunStatus,
    stale_run_seconds: int,
    stuck_items: int = 0,
    now: datetime | None = None,
) -> SourceStatusEntry:
    """Report a run, flagging it stale when it outlived the timeout.

    A live run whose source also has claims stuck in ``processing`` is
    stale too: the worker side is not making progress either.
    """
    stale = run.is_stale(stale_run_seconds, now) or (run.status == "running" and stuck_items > 0)
    return SourceStatusEntry(
        source_id=run.source_id,
        status="stale" if stale else run.status,
        trigger=run.trigger,
        started_at=run.started_at,
        finished_at=run.finished_at,
        items_ingested=run.items_ingested,
        error_message=run.error_message,
        stale=stale,
        stuck_items=stuck_items,
    )


def build_alerts(
    queue: dict[str, Any],
    coverage: dict[str, Any],
    source_counts: dict[str, int],
    stale_sources: int,
    config: StatusConfig,
) -> tuple[list[Alert], list[str]]:
    """Threshold rules over a snapshot. Returns (alerts, recommendations)."""
    alerts: list[Alert] = []
    recommendations: list[str] = []

    pending = queue["counts"].get("pending", 0)
    if pending > config.pending_backlog_critical:
        alerts.append(Alert(
            "pending_backlog", "critical", f"High pending queue: {pending} items", pending,
        ))
    elif pending > config.pending_backlog_warning:
        alerts.append(Alert(
            "pending_backlog", "warning", f"Pending queue growing: {pending} items", pending,
        ))
    if pending > config.pending_backlog_warning:
        recommendations.append("Sweep the queue and check that workers are running")

    high_retry = queue["high_retry"]
    if high_retry > config.high_retry_warning:
        alerts.append(Alert(
            "high_retry",
            "warning",
            f"High retry items: {high_retry} items failing repeatedly",
            high_retry,
        ))
        recommendations.append("Inspect error messages and clear unrecoverable items")

    untagged = coverage["untagged"]
    if untagged > config.untagged_warning:
        alerts.append(Alert(
            "untagged_backlog",
            "warning",
            f"Many untagged drops: {untagged} items need tagging",
            untagged,
        ))
        recommendations.append("Run the retag pass")

    last_24h = coverage["last_24h"]
    if last_24h < config.low_daily_volume:
        alerts.append(Alert(
            "low_daily_volume",
            "warning",
            f"Low ingestion rate: only {last_24h} drops in last 24h",
            last_24h,
        ))
        recommendations.append("Check source feeds and the ingestion pipeline")

    error_sources = source_counts.get("error", 0)
    if error_sources > config.error_sources_warning:
        alerts.append(Alert(
            "error_sources",
            "warning",
            f"{error_sources} sources in error",
            error_sources,
        ))
        recommendations.append("Review failing sources and prioritize the fixed ones")

    if stale_sources:
        alerts.append(Alert(
            "stale_runs",
            "warning",
            f"{stale_sources} source runs stale",
            stale_sources,
        ))
        recommendations.append("Release stale runs")

    return alerts, recommendations


class StatusService:
    """Read-only status queries for operators and the status API."""

    def __init__(
        self,
        database: Database,
        config: StatusConfig | None = None,
        queue_config: QueueConfig | None = None,
        scheduler_config: SchedulerConfig | None = None,
    ) -> None:
        self._db = database
        self._config = config or StatusConfig()
        self._queue_config = queue_config or QueueConfig()
        self._scheduler_config = scheduler_config or SchedulerConfig()
        self._queue = IngestionQueueRepository(database)
        self._drops = DropRepository(database)
        self._sources = SourcesRepository(database)
        self._runs = SourceRunRepository(database)

    async def source_statuses(self, now: datetime | None = None) -> dict[int, SourceStatusEntry]:
        """Last-run status per source, with stale runs flagged."""
        runs = await self._runs.list_all()
        stuck = await self._queue.stale_processing_by_source(
            self._queue_config.stale_claim_seconds
        )
        return {
            run.source_id: source_entry(
                run,
                self._scheduler_config.stale_run_seconds,
                stuck.get(run.source_id, 0),
                now,
            )
            for run in runs
        }

    async def queue_status(self, now: datetime | None = None) -> dict[str, Any]:
        counts = await self._queue.counts_by_status()
        get_metrics().set_queue_depth(counts)

        oldest = await self._queue.oldest_pending_at()
        now = now or datetime.now(timezone.utc)
        return {
            "counts": counts,
            "total": sum(counts.values()),
            "oldest_pending_at": oldest.isoformat() if oldest else None,
            "oldest_pending_age_seconds": (
                round((now - oldest).total_seconds()) if oldest else None
            ),
            "high_retry": await self._queue.count_high_retry(
                self._queue_config.high_retry_threshold
            ),
        }

    async def coverage(self) -> dict[str, Any]:
        """Tagging coverage over non-deleted drops."""
        return await self._drops.get_coverage()

    async def snapshot(self) -> StatusSnapshot:
        now = datetime.now(timezone.utc)
        sources = await self.source_statuses(now)
        queue = await self.queue_status(now)
        coverage = await self.coverage()
        source_counts = await self._sources.count_by_status()

        stale_sources = sum(1 for e in sources.values() if e.stale)
        alerts, recommendations = build_alerts(
            queue, coverage, source_counts, stale_sources, self._config
        )

        snapshot = StatusSnapshot(
            sources=sources,
            queue=queue,
            coverage=coverage,
            source_counts=source_counts,
            alerts=alerts,
            recommendations=recommendations,
            generated_at=now,
        )
        snapshot.recommended_poll_seconds = (
            self._config.poll_active_seconds
            if snapshot.any_running
            else self._config.poll_idle_seconds
        )

        if snapshot.overall != "healthy":
            logger.warning(
                "Status %s: %s",
                snapshot.overall,
                "; ".join(a.message for a in alerts),
            )
        return snapshot
