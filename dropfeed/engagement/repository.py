"""Engagement event repository (append-only)."""

import logging
from typing import Any

from dropfeed.engagement.schemas import EngagementEvent
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS engagement_events (
    id         BIGSERIAL PRIMARY KEY,
    user_id    TEXT NOT NULL,
    drop_id    BIGINT NOT NULL REFERENCES drops(id) ON DELETE CASCADE,
    action     TEXT NOT NULL
               CHECK (action IN ('like', 'dislike', 'save', 'dismiss', 'open')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_engagement_user_created
    ON engagement_events(user_id, created_at DESC);
"""


def _row_to_event(row: Any) -> EngagementEvent:
    return EngagementEvent(
        id=row["id"],
        user_id=row["user_id"],
        drop_id=row["drop_id"],
        action=row["action"],
        created_at=row["created_at"],
        source_id=row.get("source_id"),
        tags=list(row.get("tags") or []),
    )


class EngagementRepository:
    """Append and read user engagement events."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Engagement events table ensured")

    async def create(self, event: EngagementEvent) -> EngagementEvent:
        row = await self._db.fetchrow(
            """
            INSERT INTO engagement_events (user_id, drop_id, action, created_at)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            event.user_id,
            event.drop_id,
            event.action,
            event.created_at,
        )
        return _row_to_event(row)

    async def list_recent(self, user_id: str, limit: int = 200) -> list[EngagementEvent]:
        """Newest events first, each joined with its drop's source and tags."""
        rows = await self._db.fetch(
            """
            SELECT e.*, d.source_id, d.tags
            FROM engagement_events e
            JOIN drops d ON d.id = e.drop_id
            WHERE e.user_id = $1
            ORDER BY e.created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_row_to_event(r) for r in rows]

    async def count_for_user(self, user_id: str) -> int:
        value = await self._db.fetchval(
            "SELECT COUNT(*) FROM engagement_events WHERE user_id = $1", user_id
        )
        return value or 0
