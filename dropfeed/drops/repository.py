"""Drops repository: persistence, candidate selection, and tagging coverage."""

import logging
from datetime import datetime
from typing import Any

from dropfeed.drops.schemas import DELETED_TAG, Drop
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS drops (
    id                 BIGSERIAL PRIMARY KEY,
    source_id          BIGINT REFERENCES sources(id) ON DELETE SET NULL,
    url                TEXT NOT NULL UNIQUE,
    title              TEXT NOT NULL,
    summary            TEXT NOT NULL DEFAULT '',
    image_url          TEXT,
    type               TEXT NOT NULL DEFAULT 'article'
                       CHECK (type IN ('article', 'video')),
    tags               TEXT[] NOT NULL DEFAULT '{}',
    l1_topic_id        INTEGER,
    l2_topic_id        INTEGER,
    tag_done           BOOLEAN NOT NULL DEFAULT FALSE,
    youtube_video_id   TEXT,
    youtube_channel_id TEXT,
    popularity_score   REAL,
    authority_score    REAL,
    quality_score      REAL,
    sponsored          BOOLEAN NOT NULL DEFAULT FALSE,
    language_id        INTEGER,
    published_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_drops_candidates
    ON drops(published_at DESC) WHERE tag_done = TRUE;
CREATE INDEX IF NOT EXISTS idx_drops_untagged
    ON drops(created_at) WHERE tag_done = FALSE;
CREATE INDEX IF NOT EXISTS idx_drops_source
    ON drops(source_id);
CREATE INDEX IF NOT EXISTS idx_drops_youtube
    ON drops(youtube_video_id) WHERE youtube_video_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_drops_tags
    ON drops USING GIN(tags);
"""

_INSERT_SQL = """
INSERT INTO drops (
    source_id, url, title, summary, image_url, type, tags,
    l1_topic_id, l2_topic_id, tag_done, youtube_video_id, youtube_channel_id,
    popularity_score, authority_score, quality_score, sponsored, language_id,
    published_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
ON CONFLICT (url) DO NOTHING
RETURNING *
"""

_CANDIDATES_SQL = """
SELECT * FROM drops
WHERE tag_done = TRUE
  AND NOT ($1 = ANY(tags))
  AND published_at >= $2
ORDER BY published_at DESC
LIMIT $3
"""

# Enrichment repair rewrites metadata in place and forces a re-tag.
_UPDATE_ENRICHMENT_SQL = """
UPDATE drops SET
    title = $2,
    summary = $3,
    image_url = $4,
    type = $5,
    youtube_video_id = $6,
    youtube_channel_id = $7,
    popularity_score = $8,
    published_at = COALESCE($9, published_at),
    tag_done = FALSE,
    updated_at = NOW()
WHERE id = $1
"""

_UPDATE_TAGS_SQL = """
UPDATE drops SET
    tags = CASE WHEN $5 = ANY(tags) THEN array_append($2::text[], $5) ELSE $2::text[] END,
    l1_topic_id = $3,
    l2_topic_id = $4,
    tag_done = TRUE,
    updated_at = NOW()
WHERE id = $1
"""


def _row_to_drop(row: Any) -> Drop:
    """Convert an asyncpg Record to a Drop."""
    return Drop(
        id=row["id"],
        source_id=row["source_id"],
        url=row["url"],
        title=row["title"],
        summary=row["summary"] or "",
        image_url=row["image_url"],
        type=row["type"],
        tags=list(row["tags"] or []),
        l1_topic_id=row["l1_topic_id"],
        l2_topic_id=row["l2_topic_id"],
        tag_done=row["tag_done"],
        youtube_video_id=row["youtube_video_id"],
        youtube_channel_id=row["youtube_channel_id"],
        popularity_score=row["popularity_score"],
        authority_score=row["authority_score"],
        quality_score=row["quality_score"],
        sponsored=row["sponsored"],
        language_id=row["language_id"],
        published_at=row["published_at"],
        created_at=row["created_at"],
    )


class DropRepository:
    """Repository for drop persistence and ranking candidate queries."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the drops table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Drops table ensured")

    async def exists_by_url(self, url: str) -> int | None:
        """Return the id of the drop with this normalized URL, if any."""
        return await self._db.fetchval("SELECT id FROM drops WHERE url = $1", url)

    async def existing_urls(self, urls: list[str]) -> set[str]:
        """The subset of ``urls`` that already are drops."""
        if not urls:
            return set()
        rows = await self._db.fetch(
            "SELECT url FROM drops WHERE url = ANY($1::text[])", urls
        )
        return {r["url"] for r in rows}

    async def create(self, drop: Drop) -> Drop | None:
        """Insert a drop. Returns None if a drop with the URL already exists."""
        row = await self._db.fetchrow(
            _INSERT_SQL,
            drop.source_id,
            drop.url,
            drop.title,
            drop.summary,
            drop.image_url,
            drop.type,
            drop.tags,
            drop.l1_topic_id,
            drop.l2_topic_id,
            drop.tag_done,
            drop.youtube_video_id,
            drop.youtube_channel_id,
            drop.popularity_score,
            drop.authority_score,
            drop.quality_score,
            drop.sponsored,
            drop.language_id,
            drop.published_at,
        )
        return _row_to_drop(row) if row else None

    async def get(self, drop_id: int) -> Drop | None:
        row = await self._db.fetchrow("SELECT * FROM drops WHERE id = $1", drop_id)
        return _row_to_drop(row) if row else None

    async def get_many(self, drop_ids: list[int]) -> list[Drop]:
        if not drop_ids:
            return []
        rows = await self._db.fetch(
            "SELECT * FROM drops WHERE id = ANY($1::bigint[])", drop_ids
        )
        return [_row_to_drop(r) for r in rows]

    async def list_candidates(self, since: datetime, limit: int = 500) -> list[Drop]:
        """Tagged, non-deleted drops published at or after ``since``."""
        rows = await self._db.fetch(_CANDIDATES_SQL, DELETED_TAG, since, limit)
        return [_row_to_drop(r) for r in rows]

    async def list_untagged(self, limit: int = 25) -> list[Drop]:
        """Drops awaiting (re-)tagging, oldest first."""
        rows = await self._db.fetch(
            """
            SELECT * FROM drops
            WHERE tag_done = FALSE AND NOT ($1 = ANY(tags))
            ORDER BY created_at
            LIMIT $2
            """,
            DELETED_TAG,
            limit,
        )
        return [_row_to_drop(r) for r in rows]

    async def find_bad_youtube(self, limit: int = 50) -> list[Drop]:
        """Video drops whose metadata is a known-bad placeholder."""
        rows = await self._db.fetch(
            """
            SELECT * FROM drops
            WHERE (youtube_video_id IS NOT NULL
                   AND btrim(title) IN ('- YouTube', 'YouTube', ''))
               OR (type = 'video' AND youtube_video_id IS NULL)
            ORDER BY created_at DESC
            LIMIT $1
            """,
            limit,
        )
        return [_row_to_drop(r) for r in rows]

    async def update_enrichment(self, drop: Drop) -> bool:
        """Rewrite metadata in place and reset tag_done. True if updated."""
        result = await self._db.execute(
            _UPDATE_ENRICHMENT_SQL,
            drop.id,
            drop.title,
            drop.summary,
            drop.image_url,
            drop.type,
            drop.youtube_video_id,
            drop.youtube_channel_id,
            drop.popularity_score,
            drop.published_at,
        )
        return result.endswith("1")

    async def update_tags(
        self,
        drop_id: int,
        tags: list[str],
        l1_topic_id: int | None,
        l2_topic_id: int | None,
    ) -> bool:
        """Store tagging output and mark tag_done. Keeps the deleted marker."""
        result = await self._db.execute(
            _UPDATE_TAGS_SQL, drop_id, tags, l1_topic_id, l2_topic_id, DELETED_TAG
        )
        return result.endswith("1")

    async def mark_deleted(self, drop_id: int) -> bool:
        """Soft-delete by adding the deleted tag."""
        result = await self._db.execute(
            """
            UPDATE drops SET tags = array_append(tags, $2), updated_at = NOW()
            WHERE id = $1 AND NOT ($2 = ANY(tags))
            """,
            drop_id,
            DELETED_TAG,
        )
        return result.endswith("1")

    async def get_coverage(self) -> dict[str, Any]:
        """Tagging coverage over non-deleted drops."""
        row = await self._db.fetchrow(
            """
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE tag_done) AS tagged,
                COUNT(*) FILTER (WHERE created_at >= NOW() - INTERVAL '24 hours') AS last_24h
            FROM drops
            WHERE NOT ($1 = ANY(tags))
            """,
            DELETED_TAG,
        )
        total = row["total"] if row else 0
        tagged = row["tagged"] if row else 0
        return {
            "total": total,
            "tagged": tagged,
            "untagged": total - tagged,
            "last_24h": row["last_24h"] if row else 0,
            "coverage_pct": round(100.0 * tagged / total, 2) if total else 0.0,
        }
