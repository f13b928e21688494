"""Sources service with caching, health tracking and seed support."""

import json
import logging
import time
from datetime import datetime
from pathlib import Path

from dropfeed.sources.config import SourcesConfig
from dropfeed.sources.repository import SourcesRepository
from dropfeed.sources.schemas import Source
from dropfeed.storage.database import Database

logger = logging.getLogger(__name__)

_SEED_FILE = Path(__file__).parent / "data" / "seed_sources.json"


def _parse_seed_entry(entry: dict) -> Source:
    """Convert a JSON seed entry to a Source dataclass."""
    return Source(
        name=entry["name"],
        homepage_url=entry["homepage_url"],
        feed_url=entry.get("feed_url"),
        type=entry.get("type", "rss"),
        official=entry.get("official", False),
    )


class SourcesService:
    """Cached access to pollable sources plus run-health bookkeeping.

    The scheduler asks for pollable sources on every tick; the TTL cache
    keeps that off the database. Any write through this service
    invalidates the cache so prioritization is visible on the next tick.
    """

    def __init__(
        self,
        database: Database,
        config: SourcesConfig | None = None,
    ) -> None:
        self._config = config or SourcesConfig()
        self._repo = SourcesRepository(database)

        self._pollable_cache: list[Source] | None = None
        self._pollable_cached_at: float = 0.0
        self._priority_marker: datetime | None = None

    @property
    def repository(self) -> SourcesRepository:
        """Access the underlying repository for direct DB operations."""
        return self._repo

    async def get_pollable_sources(self) -> list[Source]:
        """Active (or flagged) sources, cached for ``cache_ttl_seconds``.

        A priority flag raised by another process (the API) changes the
        latest ``prioritized_at`` and forces a reload before the TTL runs out.
        """
        now = time.monotonic()
        ttl = self._config.cache_ttl_seconds
        marker = await self._repo.latest_priority_at()
        if (
            self._pollable_cache is not None
            and (now - self._pollable_cached_at) < ttl
            and marker == self._priority_marker
        ):
            return self._pollable_cache

        sources = await self._repo.get_pollable()
        self._pollable_cache = sources
        self._pollable_cached_at = now
        self._priority_marker = marker
        return sources

    def invalidate_cache(self) -> None:
        """Force-clear the cache so next access hits the DB."""
        self._pollable_cache = None
        self._pollable_cached_at = 0.0

    async def prioritize(self, source_ids: list[int]) -> list[int]:
        """Flag sources for the next tick. Returns the ids actually flagged."""
        flagged = await self._repo.set_priority(source_ids)
        self.invalidate_cache()
        logger.info("Prioritized %d/%d sources", len(flagged), len(source_ids))
        return flagged

    async def record_run_result(
        self,
        source_id: int,
        error: str | None = None,
        started_at: datetime | None = None,
    ) -> None:
        """Update health counters after a run.

        Clears the priority flag either way, unless it was raised again after
        ``started_at``.
        """
        if error is None:
            await self._repo.record_success(source_id, started_at)
        else:
            await self._repo.record_failure(
                source_id, error, self._config.max_consecutive_errors, started_at
            )
        self.invalidate_cache()

    async def seed_from_json(self, path: Path | None = None) -> int:
        """Load sources from a JSON file. Returns the number of sources written."""
        seed_path = path or _SEED_FILE
        with open(seed_path) as f:
            entries = json.load(f)

        count = 0
        for entry in entries:
            await self._repo.create(_parse_seed_entry(entry))
            count += 1

        self.invalidate_cache()
        logger.info("Seeded %d sources from %s", count, seed_path)
        return count

    async def ensure_seeded(self) -> None:
        """Seed from default JSON if the table is empty and seed_on_init is True."""
        if not self._config.seed_on_init:
            return

        existing = await self._repo.count()
        if existing > 0:
            logger.debug("Sources table has %d rows, skipping seed", existing)
            return

        logger.info("Sources table empty, seeding from default JSON")
        await self.seed_from_json()
