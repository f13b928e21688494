"""Create every dropfeed table, in foreign-key dependency order."""

import logging

from dropfeed.drops.repository import DropRepository
from dropfeed.engagement.repository import EngagementRepository
from dropfeed.preferences.repository import PreferenceRepository
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.scheduler.repository import SourceRunRepository
from dropfeed.sources.repository import SourcesRepository
from dropfeed.storage.database import Database
from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository

logger = logging.getLogger(__name__)

# Referenced tables first.
_REPOSITORIES = (
    SourcesRepository,
    TopicRepository,
    TaggingParamsRepository,
    DropRepository,
    IngestionQueueRepository,
    SourceRunRepository,
    PreferenceRepository,
    EngagementRepository,
)


async def create_tables(database: Database) -> list[str]:
    """Ensure all tables and indexes exist (idempotent).

    Returns the repository names in the order they were ensured.
    """
    ensured = []
    for repository_cls in _REPOSITORIES:
        await repository_cls(database).create_table()
        ensured.append(repository_cls.__name__)
    logger.info("Schema ensured (%d tables)", len(ensured))
    return ensured
