"""User preference repository."""

import logging
from typing import Any

from dropfeed.preferences.schemas import UserPreference
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS user_preferences (
    user_id               TEXT PRIMARY KEY,
    selected_topic_ids    INTEGER[] NOT NULL DEFAULT '{}',
    selected_language_ids INTEGER[] NOT NULL DEFAULT '{}'
                          CHECK (cardinality(selected_language_ids) <= 3),
    updated_at            TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


def _row_to_preference(row: Any) -> UserPreference:
    return UserPreference(
        user_id=row["user_id"],
        selected_topic_ids=list(row["selected_topic_ids"] or []),
        selected_language_ids=list(row["selected_language_ids"] or []),
        updated_at=row["updated_at"],
    )


class PreferenceRepository:
    """Read access for ranking plus an upsert for onboarding flows and tests."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("User preferences table ensured")

    async def get(self, user_id: str) -> UserPreference | None:
        row = await self._db.fetchrow(
            "SELECT * FROM user_preferences WHERE user_id = $1", user_id
        )
        return _row_to_preference(row) if row else None

    async def upsert(self, preference: UserPreference) -> UserPreference:
        row = await self._db.fetchrow(
            """
            INSERT INTO user_preferences (user_id, selected_topic_ids, selected_language_ids)
            VALUES ($1, $2, $3)
            ON CONFLICT (user_id) DO UPDATE SET
                selected_topic_ids = EXCLUDED.selected_topic_ids,
                selected_language_ids = EXCLUDED.selected_language_ids,
                updated_at = NOW()
            RETURNING *
            """,
            preference.user_id,
            preference.selected_topic_ids,
            preference.selected_language_ids,
        )
        return _row_to_preference(row)
