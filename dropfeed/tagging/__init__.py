"""Tagging: topic taxonomy, parameter store and the tagging capability client."""

from dropfeed.tagging.client import TaggingService, parse_tagging_response, resolve_tags
from dropfeed.tagging.config import TaggingConfig
from dropfeed.tagging.repository import TaggingParamsRepository, TopicRepository
from dropfeed.tagging.schemas import ResolvedTags, TaggingParam, TaggingResult, Topic

__all__ = [
    "ResolvedTags",
    "TaggingConfig",
    "TaggingParam",
    "TaggingParamsRepository",
    "TaggingResult",
    "TaggingService",
    "Topic",
    "TopicRepository",
    "parse_tagging_response",
    "resolve_tags",
]
