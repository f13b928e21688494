"""URL canonicalization and YouTube id helpers."""

from dropfeed.urls.normalizer import (
    MAX_URL_LENGTH,
    extract_youtube_id,
    host_of,
    is_youtube_url,
    normalize,
    youtube_watch_url,
)

__all__ = [
    "MAX_URL_LENGTH",
    "extract_youtube_id",
    "host_of",
    "is_youtube_url",
    "normalize",
    "youtube_watch_url",
]
