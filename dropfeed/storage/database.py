"""
PostgreSQL access for dropfeed.

Repositories never touch asyncpg directly. They receive a ``Database`` and
call its four query coroutines, which is also the whole surface the test
suite mocks.
"""

import logging
from typing import Any

import asyncpg

from dropfeed.config.settings import get_settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "dropfeed"


class Database:
    """Lazily connected asyncpg pool shared by every repository."""

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
    ):
        settings = get_settings()
        self._dsn = database_url or str(settings.database_url)
        self._pool_size = (
            min_size or settings.db_pool_min_size,
            max_size or settings.db_pool_max_size,
        )
        self._command_timeout = settings.db_command_timeout
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected; await connect() first")
        return self._pool

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        if self._pool is not None:
            return

        low, high = self._pool_size
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=low,
                max_size=high,
                command_timeout=self._command_timeout,
                server_settings={"application_name": APPLICATION_NAME},
            )
        except (OSError, asyncpg.PostgresError) as e:
            logger.error("Could not open PostgreSQL pool: %s", e)
            raise
        logger.info("PostgreSQL pool open (%d..%d connections)", low, high)

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("PostgreSQL pool closed")

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement; returns the command tag, e.g. ``UPDATE 3``."""
        return await self.pool.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self.pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self.pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self.pool.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True when the pool answers ``SELECT 1``."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except (RuntimeError, OSError, asyncpg.PostgresError) as e:
            logger.warning("PostgreSQL health check failed: %s", e)
            return False
