"""
Source run status repository.

``try_start`` is the only way a run begins: one INSERT ... ON CONFLICT
DO UPDATE whose WHERE clause refuses to overwrite a live ``running`` row.
Two processes racing to start the same source therefore get exactly one
winner without any application-level lock.
"""

import logging
from datetime import datetime
from typing import Any

from dropfeed.scheduler.schemas import STALE_RUN_MESSAGE, SourceRunStatus
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS source_run_status (
    source_id        BIGINT PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
    status           TEXT NOT NULL CHECK (status IN ('running', 'success', 'error')),
    trigger          TEXT NOT NULL DEFAULT 'schedule'
                     CHECK (trigger IN ('schedule', 'run_now', 'prioritized')),
    started_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    finished_at      TIMESTAMPTZ,
    items_ingested   INTEGER NOT NULL DEFAULT 0,
    items_discovered INTEGER NOT NULL DEFAULT 0,
    error_message    TEXT
);

CREATE INDEX IF NOT EXISTS idx_source_run_status_running
    ON source_run_status(started_at) WHERE status = 'running';
"""

_TRY_START_SQL = """
INSERT INTO source_run_status AS r
    (source_id, status, trigger, started_at, finished_at,
     items_ingested, items_discovered, error_message)
VALUES ($1, 'running', $2, NOW(), NULL, 0, 0, NULL)
ON CONFLICT (source_id) DO UPDATE SET
    status = 'running',
    trigger = EXCLUDED.trigger,
    started_at = NOW(),
    finished_at = NULL,
    items_ingested = 0,
    items_discovered = 0,
    error_message = NULL
WHERE r.status <> 'running'
   OR r.started_at < NOW() - make_interval(secs => $3)
RETURNING *
"""

_FINISH_SQL = """
UPDATE source_run_status
SET status = $2,
    finished_at = NOW(),
    items_ingested = $3,
    items_discovered = $4,
    error_message = $5
WHERE source_id = $1 AND status = 'running' AND started_at = $6
"""

_MARK_STALE_SQL = """
UPDATE source_run_status
SET status = 'error', finished_at = NOW(), error_message = $2
WHERE status = 'running' AND started_at < NOW() - make_interval(secs => $1)
RETURNING source_id
"""


def _row_to_run(row: Any) -> SourceRunStatus:
    return SourceRunStatus(
        source_id=row["source_id"],
        status=row["status"],
        trigger=row["trigger"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        items_ingested=row["items_ingested"],
        items_discovered=row["items_discovered"],
        error_message=row["error_message"],
    )


class SourceRunRepository:
    """Persisted last-run snapshot per source."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Source run status table ensured")

    async def try_start(
        self, source_id: int, trigger: str, stale_seconds: int
    ) -> SourceRunStatus | None:
        """Transition the source to ``running``.

        Returns:
            The new run row, or None when a non-stale run is in progress.
        """
        row = await self._db.fetchrow(
            _TRY_START_SQL, source_id, trigger, float(stale_seconds)
        )
        return _row_to_run(row) if row else None

    async def finish(
        self,
        source_id: int,
        status: str,
        items_ingested: int = 0,
        items_discovered: int = 0,
        error_message: str | None = None,
        *,
        started_at: datetime,
    ) -> bool:
        """Record the terminal state of the run that began at ``started_at``.

        Returns False if that run is no longer the live one: it was marked
        stale, and possibly a newer run has started since.
        """
        result = await self._db.execute(
            _FINISH_SQL,
            source_id,
            status,
            items_ingested,
            items_discovered,
            error_message[:2000] if error_message else None,
            started_at,
        )
        return result.endswith("1")

    async def mark_stale(self, stale_seconds: int) -> list[int]:
        """Fail runs stuck in ``running`` longer than ``stale_seconds``."""
        rows = await self._db.fetch(_MARK_STALE_SQL, float(stale_seconds), STALE_RUN_MESSAGE)
        ids = [r["source_id"] for r in rows]
        if ids:
            logger.warning("Marked %d stale source runs: %s", len(ids), ids)
        return ids

    async def get(self, source_id: int) -> SourceRunStatus | None:
        row = await self._db.fetchrow(
            "SELECT * FROM source_run_status WHERE source_id = $1", source_id
        )
        return _row_to_run(row) if row else None

    async def list_all(self) -> list[SourceRunStatus]:
        rows = await self._db.fetch(
            "SELECT * FROM source_run_status ORDER BY started_at DESC"
        )
        return [_row_to_run(r) for r in rows]

    async def count_running(self) -> int:
        value = await self._db.fetchval(
            "SELECT COUNT(*) FROM source_run_status WHERE status = 'running'"
        )
        return value or 0
