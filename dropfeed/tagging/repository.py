"""Repositories for the topic taxonomy and the tagging parameter store."""

import logging
from typing import Any

from dropfeed.storage.database import Database
from dropfeed.tagging.schemas import TaggingParam, Topic

logger = logging.getLogger(__name__)

_CREATE_TOPICS_SQL = """
CREATE TABLE IF NOT EXISTS topics (
    id        SERIAL PRIMARY KEY,
    slug      TEXT NOT NULL UNIQUE,
    name      TEXT NOT NULL,
    level     SMALLINT NOT NULL CHECK (level IN (1, 2, 3)),
    parent_id INTEGER REFERENCES topics(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_topics_level ON topics(level);
"""

_CREATE_PARAMS_SQL = """
CREATE TABLE IF NOT EXISTS tagging_params (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


def _row_to_topic(row: Any) -> Topic:
    return Topic(
        id=row["id"],
        slug=row["slug"],
        name=row["name"],
        level=row["level"],
        parent_id=row["parent_id"],
    )


class TopicRepository:
    """Read/write access to the topic taxonomy."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TOPICS_SQL)
        logger.info("Topics table ensured")

    async def upsert(
        self, slug: str, name: str, level: int, parent_id: int | None = None
    ) -> Topic:
        row = await self._db.fetchrow(
            """
            INSERT INTO topics (slug, name, level, parent_id)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (slug) DO UPDATE SET
                name = EXCLUDED.name,
                level = EXCLUDED.level,
                parent_id = EXCLUDED.parent_id
            RETURNING *
            """,
            slug, name, level, parent_id,
        )
        return _row_to_topic(row)

    async def list_all(self) -> list[Topic]:
        rows = await self._db.fetch("SELECT * FROM topics ORDER BY level, slug")
        return [_row_to_topic(r) for r in rows]

    async def get_by_ids(self, topic_ids: list[int]) -> list[Topic]:
        if not topic_ids:
            return []
        rows = await self._db.fetch(
            "SELECT * FROM topics WHERE id = ANY($1::int[])", topic_ids
        )
        return [_row_to_topic(r) for r in rows]


class TaggingParamsRepository:
    """Flat key/value configuration consumed by the tagging capability."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_PARAMS_SQL)
        logger.info("Tagging params table ensured")

    async def list_params(self) -> list[TaggingParam]:
        rows = await self._db.fetch("SELECT * FROM tagging_params ORDER BY key")
        return [
            TaggingParam(key=r["key"], value=r["value"], updated_at=r["updated_at"])
            for r in rows
        ]

    async def get_all(self) -> dict[str, str]:
        return {p.key: p.value for p in await self.list_params()}

    async def set(self, key: str, value: str) -> TaggingParam:
        row = await self._db.fetchrow(
            """
            INSERT INTO tagging_params (key, value) VALUES ($1, $2)
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
            RETURNING *
            """,
            key, value,
        )
        logger.info("Tagging param %s updated", key)
        return TaggingParam(key=row["key"], value=row["value"], updated_at=row["updated_at"])

    async def delete(self, key: str) -> bool:
        result = await self._db.execute("DELETE FROM tagging_params WHERE key = $1", key)
        return result.endswith("1")
