"""Database repository for the sources table."""

import logging
from datetime import datetime

from dropfeed.sources.schemas import Source
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id                 BIGSERIAL PRIMARY KEY,
    name               TEXT NOT NULL,
    homepage_url       TEXT NOT NULL,
    feed_url           TEXT,
    type               TEXT NOT NULL DEFAULT 'rss'
                       CHECK (type IN ('rss', 'website', 'youtube')),
    status             TEXT NOT NULL DEFAULT 'active'
                       CHECK (status IN ('active', 'inactive', 'error')),
    official           BOOLEAN NOT NULL DEFAULT FALSE,
    priority_flag      BOOLEAN NOT NULL DEFAULT FALSE,
    prioritized_at     TIMESTAMPTZ,
    consecutive_errors INTEGER NOT NULL DEFAULT 0,
    last_fetched_at    TIMESTAMPTZ,
    last_error         TEXT,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (type, homepage_url)
);

ALTER TABLE sources ADD COLUMN IF NOT EXISTS prioritized_at TIMESTAMPTZ;

CREATE INDEX IF NOT EXISTS idx_sources_status
    ON sources(status);
CREATE INDEX IF NOT EXISTS idx_sources_priority
    ON sources(priority_flag) WHERE priority_flag = TRUE;
"""

_INSERT_SQL = """
INSERT INTO sources (name, homepage_url, feed_url, type, status, official)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (type, homepage_url) DO UPDATE SET
    name = EXCLUDED.name,
    feed_url = EXCLUDED.feed_url,
    official = EXCLUDED.official,
    updated_at = NOW()
RETURNING *
"""

# A success resets the error streak and lifts an automatic error status.
# The priority flag survives when it was set after the run started ($2).
_RECORD_SUCCESS_SQL = """
UPDATE sources SET
    consecutive_errors = 0,
    last_error = NULL,
    last_fetched_at = NOW(),
    status = CASE WHEN status = 'error' THEN 'active' ELSE status END,
    priority_flag = COALESCE(priority_flag AND prioritized_at > $2, FALSE),
    updated_at = NOW()
WHERE id = $1
"""

_RECORD_FAILURE_SQL = """
UPDATE sources SET
    consecutive_errors = consecutive_errors + 1,
    last_error = $2,
    last_fetched_at = NOW(),
    status = CASE
        WHEN status = 'active' AND consecutive_errors + 1 >= $3 THEN 'error'
        ELSE status
    END,
    priority_flag = COALESCE(priority_flag AND prioritized_at > $4, FALSE),
    updated_at = NOW()
WHERE id = $1
RETURNING status, consecutive_errors
"""


def _record_to_source(record) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    return Source(
        id=record["id"],
        name=record["name"],
        homepage_url=record["homepage_url"],
        feed_url=record["feed_url"],
        type=record["type"],
        status=record["status"],
        official=record["official"],
        priority_flag=record["priority_flag"],
        consecutive_errors=record["consecutive_errors"],
        last_fetched_at=record["last_fetched_at"],
        last_error=record["last_error"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class SourcesRepository:
    """CRUD, health and priority operations for the sources table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the sources table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Sources table ensured")

    async def create(self, source: Source) -> Source:
        """Insert a source, or refresh the existing row for the same homepage."""
        row = await self._db.fetchrow(
            _INSERT_SQL,
            source.name,
            source.homepage_url,
            source.feed_url,
            source.type,
            source.status,
            source.official,
        )
        return _record_to_source(row)

    async def get(self, source_id: int) -> Source | None:
        """Fetch a single source by id."""
        row = await self._db.fetchrow("SELECT * FROM sources WHERE id = $1", source_id)
        return _record_to_source(row) if row else None

    async def get_many(self, source_ids: list[int]) -> list[Source]:
        """Fetch several sources by id, ordered by id."""
        if not source_ids:
            return []
        rows = await self._db.fetch(
            "SELECT * FROM sources WHERE id = ANY($1::bigint[]) ORDER BY id",
            source_ids,
        )
        return [_record_to_source(r) for r in rows]

    async def list_sources(
        self,
        type: str | None = None,
        status: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Source], int]:
        """Paginated list with filters. Returns (sources, total)."""
        conditions: list[str] = []
        params: list = []
        idx = 1

        if type:
            conditions.append(f"type = ${idx}")
            params.append(type)
            idx += 1

        if status:
            conditions.append(f"status = ${idx}")
            params.append(status)
            idx += 1

        if search:
            conditions.append(f"(name ILIKE ${idx} OR homepage_url ILIKE ${idx})")
            params.append(f"%{search}%")
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions) if conditions else ""

        count_sql = f"SELECT COUNT(*) FROM sources{where_clause}"
        total = await self._db.fetchval(count_sql, *params)

        data_sql = f"""
            SELECT * FROM sources{where_clause}
            ORDER BY name, id
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        params.extend([limit, offset])
        rows = await self._db.fetch(data_sql, *params)

        return [_record_to_source(r) for r in rows], total or 0

    async def get_pollable(self) -> list[Source]:
        """Active sources plus error sources an operator has flagged."""
        rows = await self._db.fetch(
            """
            SELECT * FROM sources
            WHERE status = 'active'
               OR (status = 'error' AND priority_flag = TRUE)
            ORDER BY priority_flag DESC, last_fetched_at NULLS FIRST, id
            """
        )
        return [_record_to_source(r) for r in rows]

    async def latest_priority_at(self) -> datetime | None:
        """Newest ``prioritized_at`` among flagged sources; changes on every new flag."""
        return await self._db.fetchval(
            "SELECT MAX(prioritized_at) FROM sources WHERE priority_flag = TRUE"
        )

    async def set_priority(self, source_ids: list[int]) -> list[int]:
        """Flag sources for inclusion in the next scheduled tick.

        Returns the ids that exist and were flagged.
        """
        if not source_ids:
            return []
        rows = await self._db.fetch(
            """
            UPDATE sources SET priority_flag = TRUE, prioritized_at = NOW(), updated_at = NOW()
            WHERE id = ANY($1::bigint[]) AND status <> 'inactive'
            RETURNING id
            """,
            source_ids,
        )
        return [r["id"] for r in rows]

    async def record_success(self, source_id: int, run_started_at: datetime | None = None) -> None:
        """Reset health counters after a successful run.

        The priority flag is cleared unless it was raised after
        ``run_started_at``; None clears it unconditionally.
        """
        await self._db.execute(_RECORD_SUCCESS_SQL, source_id, run_started_at)

    async def record_failure(
        self,
        source_id: int,
        error: str,
        max_consecutive_errors: int,
        run_started_at: datetime | None = None,
    ) -> str | None:
        """Count a failed run. Returns the resulting status (None if missing)."""
        row = await self._db.fetchrow(
            _RECORD_FAILURE_SQL, source_id, error[:1000], max_consecutive_errors, run_started_at
        )
        if row is None:
            return None
        if row["status"] == "error":
            logger.warning(
                "Source %d moved to error after %d consecutive failures",
                source_id, row["consecutive_errors"],
            )
        return row["status"]

    async def deactivate(self, source_id: int) -> bool:
        """Soft-delete a source. Returns True if a row was updated."""
        result = await self._db.execute(
            """
            UPDATE sources SET status = 'inactive', priority_flag = FALSE, updated_at = NOW()
            WHERE id = $1 AND status <> 'inactive'
            """,
            source_id,
        )
        return result.endswith("1")

    async def count_by_status(self) -> dict[str, int]:
        """Source counts keyed by status (missing statuses are 0)."""
        rows = await self._db.fetch(
            "SELECT status, COUNT(*) AS n FROM sources GROUP BY status"
        )
        counts = {"active": 0, "inactive": 0, "error": 0}
        for r in rows:
            counts[r["status"]] = r["n"]
        return counts

    async def count(self) -> int:
        """Count total sources in the table."""
        return await self._db.fetchval("SELECT COUNT(*) FROM sources")
