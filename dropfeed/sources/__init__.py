"""Sources: registry of content origins with health and priority state."""

from dropfeed.sources.config import SourcesConfig
from dropfeed.sources.repository import SourcesRepository
from dropfeed.sources.schemas import Source
from dropfeed.sources.service import SourcesService

__all__ = [
    "Source",
    "SourcesConfig",
    "SourcesRepository",
    "SourcesService",
]
