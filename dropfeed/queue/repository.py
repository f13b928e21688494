"""
Ingestion queue repository.

All state transitions are single SQL statements guarded on the current
status, so two workers (or a worker and an operator) can never both move
the same row. Claiming uses ``FOR UPDATE SKIP LOCKED`` inside the UPDATE
so concurrent claimers partition the pending set instead of colliding.
"""

import json
import logging
from datetime import datetime
from typing import Any

from dropfeed.queue.schemas import (
    QueueItem,
    QueuePayload,
    payload_from_dict,
    payload_to_dict,
)
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS ingestion_queue (
    id            BIGSERIAL PRIMARY KEY,
    source_id     BIGINT REFERENCES sources(id) ON DELETE SET NULL,
    url           TEXT NOT NULL UNIQUE,
    status        TEXT NOT NULL DEFAULT 'pending'
                  CHECK (status IN ('pending', 'processing', 'done', 'error', 'failed')),
    tries         INTEGER NOT NULL DEFAULT 0 CHECK (tries >= 0),
    error_message TEXT,
    payload       JSONB NOT NULL DEFAULT '{}',
    source_label  TEXT,
    notes         TEXT,
    claimed_by    TEXT,
    claimed_at    TIMESTAMPTZ,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_ingestion_queue_pending
    ON ingestion_queue(created_at, id) WHERE status = 'pending';
CREATE INDEX IF NOT EXISTS idx_ingestion_queue_status
    ON ingestion_queue(status);
CREATE INDEX IF NOT EXISTS idx_ingestion_queue_source
    ON ingestion_queue(source_id, status);
"""

_ENQUEUE_SQL = """
INSERT INTO ingestion_queue (url, source_id, status, tries, payload, source_label, notes)
VALUES ($1, $2, 'pending', 0, $3::jsonb, $4, $5)
ON CONFLICT (url) DO NOTHING
RETURNING *
"""

_ENQUEUE_MANY_SQL = """
INSERT INTO ingestion_queue (url, source_id, payload)
SELECT * FROM unnest($1::text[], $2::bigint[], $3::jsonb[])
ON CONFLICT (url) DO NOTHING
RETURNING id
"""

_CLAIM_SQL = """
UPDATE ingestion_queue AS q SET
    status = 'processing',
    claimed_by = $1,
    claimed_at = NOW(),
    updated_at = NOW()
FROM (
    SELECT id FROM ingestion_queue
    WHERE status = 'pending'
    ORDER BY created_at, id
    LIMIT $2
    FOR UPDATE SKIP LOCKED
) AS next_items
WHERE q.id = next_items.id AND q.status = 'pending'
RETURNING q.*
"""

_COMPLETE_SQL = """
UPDATE ingestion_queue SET
    status = 'done',
    error_message = NULL,
    claimed_by = NULL,
    updated_at = NOW()
WHERE id = $1 AND status = 'processing' AND claimed_by = $2
"""

_FAIL_SQL = """
UPDATE ingestion_queue SET
    status = 'error',
    tries = tries + 1,
    error_message = $2,
    claimed_by = NULL,
    updated_at = NOW()
WHERE id = $1 AND status = 'processing' AND claimed_by = $3
RETURNING tries
"""

_RETRY_SQL = """
UPDATE ingestion_queue SET
    status = 'pending',
    tries = tries + 1,
    error_message = NULL,
    claimed_by = NULL,
    claimed_at = NULL,
    updated_at = NOW()
WHERE id = $1 AND status IN ('error', 'failed', 'done')
RETURNING *
"""

_SWEEP_SQL = """
UPDATE ingestion_queue SET
    status = 'pending',
    tries = tries + 1,
    claimed_by = NULL,
    claimed_at = NULL,
    updated_at = NOW()
WHERE status = 'error' AND tries < $1
RETURNING id
"""

_RELEASE_STALE_SQL = """
UPDATE ingestion_queue SET
    status = 'error',
    tries = tries + 1,
    error_message = $2,
    claimed_by = NULL,
    updated_at = NOW()
WHERE status = 'processing'
  AND claimed_at < NOW() - make_interval(secs => $1)
RETURNING id
"""


def _decode_payload(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _record_to_item(record) -> QueueItem:
    """Convert an asyncpg Record to a QueueItem."""
    return QueueItem(
        id=record["id"],
        source_id=record["source_id"],
        url=record["url"],
        status=record["status"],
        tries=record["tries"],
        error_message=record["error_message"],
        payload=payload_from_dict(_decode_payload(record["payload"])),
        source_label=record["source_label"],
        notes=record["notes"],
        claimed_by=record["claimed_by"],
        claimed_at=record["claimed_at"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class IngestionQueueRepository:
    """Durable queue of discovered URLs with a guarded state machine."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the ingestion_queue table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Ingestion queue table ensured")

    # ── Enqueue ─────────────────────────────────────────────

    async def enqueue(
        self,
        url: str,
        payload: QueuePayload,
        source_id: int | None = None,
        source_label: str | None = None,
        notes: str | None = None,
    ) -> QueueItem | None:
        """Insert a pending item for an already-normalized URL.

        Returns:
            The new QueueItem, or None if the URL already had a row.
        """
        row = await self._db.fetchrow(
            _ENQUEUE_SQL,
            url,
            source_id,
            json.dumps(payload_to_dict(payload)),
            source_label,
            notes,
        )
        if row is None:
            logger.debug("Enqueue skipped, URL already queued: %s", url)
            return None
        return _record_to_item(row)

    async def enqueue_many(
        self,
        entries: list[tuple[str, int | None, QueuePayload]],
    ) -> int:
        """Bulk insert-ignore of (url, source_id, payload) tuples.

        Duplicate URLs within the batch collapse to the first occurrence.
        Returns the number of rows actually created.
        """
        seen: set[str] = set()
        urls: list[str] = []
        source_ids: list[int | None] = []
        payloads: list[str] = []
        for url, source_id, payload in entries:
            if url in seen:
                continue
            seen.add(url)
            urls.append(url)
            source_ids.append(source_id)
            payloads.append(json.dumps(payload_to_dict(payload)))

        if not urls:
            return 0

        rows = await self._db.fetch(_ENQUEUE_MANY_SQL, urls, source_ids, payloads)
        return len(rows)

    # ── Worker transitions ──────────────────────────────────

    async def claim(self, worker_id: str) -> QueueItem | None:
        """Atomically move the oldest pending item to processing."""
        items = await self.claim_batch(worker_id, limit=1)
        return items[0] if items else None

    async def claim_batch(self, worker_id: str, limit: int = 20) -> list[QueueItem]:
        """Atomically claim up to ``limit`` pending items (clamped to 1..100)."""
        limit = max(1, min(limit, 100))
        rows = await self._db.fetch(_CLAIM_SQL, worker_id, limit)
        return [_record_to_item(r) for r in rows]

    async def complete(self, item_id: int, worker_id: str) -> bool:
        """processing → done. False unless ``worker_id`` still holds the claim."""
        result = await self._db.execute(_COMPLETE_SQL, item_id, worker_id)
        return result.endswith("1")

    async def fail(self, item_id: int, error_message: str, worker_id: str) -> int | None:
        """processing → error with a message.

        Returns the new tries count, or None when ``worker_id`` no longer
        holds the claim (released as stale and possibly re-claimed).
        """
        return await self._db.fetchval(_FAIL_SQL, item_id, error_message[:2000], worker_id)

    # ── Retry and maintenance ───────────────────────────────

    async def retry(self, item_id: int) -> QueueItem | None:
        """Operator retry: error/failed/done → pending, tries += 1."""
        row = await self._db.fetchrow(_RETRY_SQL, item_id)
        return _record_to_item(row) if row else None

    async def sweep_errors(self, max_tries: int) -> list[int]:
        """Scheduled retry of error rows still under the ceiling."""
        rows = await self._db.fetch(_SWEEP_SQL, max_tries)
        return [r["id"] for r in rows]

    async def clear_errors(self, item_ids: list[int] | None = None) -> list[int]:
        """Force error rows to failed. ``None`` clears every error row."""
        if item_ids is None:
            rows = await self._db.fetch(
                """
                UPDATE ingestion_queue SET status = 'failed', updated_at = NOW()
                WHERE status = 'error'
                RETURNING id
                """
            )
        else:
            if not item_ids:
                return []
            rows = await self._db.fetch(
                """
                UPDATE ingestion_queue SET status = 'failed', updated_at = NOW()
                WHERE status = 'error' AND id = ANY($1::bigint[])
                RETURNING id
                """,
                item_ids,
            )
        return [r["id"] for r in rows]

    async def release_stale(self, stale_seconds: int) -> list[int]:
        """Release processing items whose claim is older than ``stale_seconds``."""
        rows = await self._db.fetch(
            _RELEASE_STALE_SQL,
            float(stale_seconds),
            f"Stale claim released after {stale_seconds}s without completion",
        )
        return [r["id"] for r in rows]

    # ── Reads ───────────────────────────────────────────────

    async def get(self, item_id: int) -> QueueItem | None:
        row = await self._db.fetchrow(
            "SELECT * FROM ingestion_queue WHERE id = $1", item_id
        )
        return _record_to_item(row) if row else None

    async def get_by_url(self, url: str) -> QueueItem | None:
        row = await self._db.fetchrow(
            "SELECT * FROM ingestion_queue WHERE url = $1", url
        )
        return _record_to_item(row) if row else None

    async def list_items(
        self,
        status: str | None = None,
        source_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[QueueItem], int]:
        """Paginated list, newest first. Returns (items, total)."""
        conditions: list[str] = []
        params: list[Any] = []
        idx = 1

        if status:
            conditions.append(f"status = ${idx}")
            params.append(status)
            idx += 1

        if source_id is not None:
            conditions.append(f"source_id = ${idx}")
            params.append(source_id)
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions) if conditions else ""

        total = await self._db.fetchval(
            f"SELECT COUNT(*) FROM ingestion_queue{where_clause}", *params
        )
        params.extend([limit, offset])
        rows = await self._db.fetch(
            f"""
            SELECT * FROM ingestion_queue{where_clause}
            ORDER BY updated_at DESC, id DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *params,
        )
        return [_record_to_item(r) for r in rows], total or 0

    async def list_errors(self, limit: int = 1000) -> list[QueueItem]:
        """Error rows, oldest first, for maintenance classification."""
        rows = await self._db.fetch(
            """
            SELECT * FROM ingestion_queue
            WHERE status = 'error'
            ORDER BY updated_at, id
            LIMIT $1
            """,
            limit,
        )
        return [_record_to_item(r) for r in rows]

    async def counts_by_status(self) -> dict[str, int]:
        """Row counts for every queue status (missing statuses are 0)."""
        rows = await self._db.fetch(
            "SELECT status, COUNT(*) AS n FROM ingestion_queue GROUP BY status"
        )
        counts = {s: 0 for s in ("pending", "processing", "done", "error", "failed")}
        for r in rows:
            counts[r["status"]] = r["n"]
        return counts

    async def oldest_pending_at(self) -> datetime | None:
        return await self._db.fetchval(
            "SELECT MIN(created_at) FROM ingestion_queue WHERE status = 'pending'"
        )

    async def count_high_retry(self, min_tries: int) -> int:
        """Non-terminal rows that have consumed at least ``min_tries`` attempts."""
        value = await self._db.fetchval(
            """
            SELECT COUNT(*) FROM ingestion_queue
            WHERE tries >= $1 AND status IN ('pending', 'processing', 'error')
            """,
            min_tries,
        )
        return value or 0

    async def stale_processing_by_source(self, stale_seconds: int) -> dict[int, int]:
        """Count processing items per source whose claim exceeds the threshold."""
        rows = await self._db.fetch(
            """
            SELECT source_id, COUNT(*) AS n FROM ingestion_queue
            WHERE status = 'processing'
              AND source_id IS NOT NULL
              AND claimed_at < NOW() - make_interval(secs => $1)
            GROUP BY source_id
            """,
            float(stale_seconds),
        )
        return {r["source_id"]: r["n"] for r in rows}
