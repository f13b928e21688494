"""Storage layer: the asyncpg pool wrapper shared by all repositories.

Table DDL lives in ``dropfeed.storage.schema``; import it explicitly so
repositories can depend on this package without a cycle.
"""

from dropfeed.storage.database import Database

__all__ = ["Database"]
