"""
Enqueue paths for discovered and manually submitted URLs.

Both paths run the same dedup order: normalize, then check ``drops`` for
the normalized URL (authoritative), then insert-ignore into the queue
(soft, via the unique constraint on ``url``).
"""

from dataclasses import dataclass
from typing import Any

import structlog

from dropfeed.drops.repository import DropRepository
from dropfeed.errors import InvalidURL
from dropfeed.observability.metrics import get_metrics
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.queue.schemas import QueuePayload, payload_for_url
from dropfeed.urls import normalize

logger = structlog.get_logger(__name__)


@dataclass
class IntakeResult:
    """Outcome of a manual submission.

    ``status`` is one of: exists (already a drop), queued (new queue row),
    in_queue (URL already queued), invalid (normalization rejected it).
    """

    status: str
    normalized_url: str | None = None
    queue_id: int | None = None
    drop_id: int | None = None
    queue_status: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "normalized_url": self.normalized_url,
            "queue_id": self.queue_id,
            "drop_id": self.drop_id,
            "queue_status": self.queue_status,
            "error": self.error,
        }


@dataclass
class DiscoveryCandidate:
    """A raw discovered URL plus the fields its payload needs."""

    url: str
    source_type: str | None = None
    feed_url: str | None = None
    entry_title: str | None = None
    entry_published_at: str | None = None
    homepage_url: str | None = None
    channel_id: str | None = None


@dataclass
class BatchIntakeResult:
    discovered: int = 0
    invalid: int = 0
    already_drops: int = 0
    created: int = 0


class QueueIntake:
    """Normalize, dedup and enqueue URLs."""

    def __init__(self, queue: IngestionQueueRepository, drops: DropRepository) -> None:
        self._queue = queue
        self._drops = drops
        self._metrics = get_metrics()

    async def submit(
        self,
        url: str,
        source_label: str | None = None,
        notes: str | None = None,
        source_id: int | None = None,
    ) -> IntakeResult:
        """Manual ingestion of a single URL.

        Invalid input is reported as ``status="invalid"``; callers that
        want an exception call ``normalize`` themselves first.
        """
        try:
            normalized = normalize(url)
            payload = payload_for_url(normalized, homepage_url=None)
        except InvalidURL as e:
            return IntakeResult(status="invalid", error=e.reason)
        except ValueError as e:
            return IntakeResult(status="invalid", error=str(e))

        drop_id = await self._drops.exists_by_url(normalized)
        if drop_id is not None:
            return IntakeResult(status="exists", normalized_url=normalized, drop_id=drop_id)

        item = await self._queue.enqueue(
            normalized,
            payload,
            source_id=source_id,
            source_label=source_label,
            notes=notes,
        )
        if item is not None:
            self._metrics.record_enqueue("manual")
            logger.info("Manual URL queued", url=normalized, queue_id=item.id)
            return IntakeResult(
                status="queued",
                normalized_url=normalized,
                queue_id=item.id,
                queue_status=item.status,
            )

        existing = await self._queue.get_by_url(normalized)
        return IntakeResult(
            status="in_queue",
            normalized_url=normalized,
            queue_id=existing.id if existing else None,
            queue_status=existing.status if existing else None,
        )

    async def enqueue_discovered(
        self,
        candidates: list[DiscoveryCandidate],
        source_id: int | None = None,
    ) -> BatchIntakeResult:
        """Enqueue a source run's discoveries; ``created`` counts new rows only."""
        result = BatchIntakeResult(discovered=len(candidates))

        entries: dict[str, QueuePayload] = {}
        for candidate in candidates:
            try:
                normalized = normalize(candidate.url)
                payload = payload_for_url(
                    normalized,
                    candidate.source_type,
                    candidate.feed_url,
                    entry_title=candidate.entry_title,
                    entry_published_at=candidate.entry_published_at,
                    homepage_url=candidate.homepage_url,
                    channel_id=candidate.channel_id,
                )
            except (InvalidURL, ValueError) as e:
                result.invalid += 1
                logger.debug("Skipping discovered URL", url=candidate.url[:200], error=str(e))
                continue
            entries.setdefault(normalized, payload)

        if not entries:
            return result

        known = await self._drops.existing_urls(list(entries))
        result.already_drops = len(known)

        batch = [(url, source_id, payload) for url, payload in entries.items() if url not in known]
        if batch:
            result.created = await self._queue.enqueue_many(batch)
            self._metrics.record_enqueue("scheduler", result.created)
        return result
