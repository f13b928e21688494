"""Schema definitions for drops (tagged, rankable content items)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

VALID_DROP_TYPES: frozenset[str] = frozenset({"article", "video"})

# Soft-delete marker; drops are never removed from the table.
DELETED_TAG = "deleted"

# Titles YouTube serves when a page is scraped without the video API.
BAD_YOUTUBE_TITLES: frozenset[str] = frozenset({"- YouTube", "YouTube", ""})


@dataclass
class Drop:
    """A single tagged content item ready for ranking.

    Attributes:
        tags: Topic slugs assigned by tagging (plus DELETED_TAG when removed).
        l1_topic_id / l2_topic_id: Resolved ids of the top two taxonomy levels.
        tag_done: False until tagging succeeded; reset to force re-tagging.
        popularity_score: Log-scaled view count in [0, 1] (videos only).
        authority_score / quality_score: Catalog priors in [0, 1].
    """

    url: str
    title: str
    type: str = "article"
    summary: str = ""
    image_url: str | None = None
    source_id: int | None = None
    tags: list[str] = field(default_factory=list)
    l1_topic_id: int | None = None
    l2_topic_id: int | None = None
    tag_done: bool = False
    youtube_video_id: str | None = None
    youtube_channel_id: str | None = None
    popularity_score: float | None = None
    authority_score: float | None = None
    quality_score: float | None = None
    sponsored: bool = False
    language_id: int | None = None
    published_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    id: int | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.type not in VALID_DROP_TYPES:
            raise ValueError(
                f"Invalid drop type {self.type!r}. "
                f"Must be one of: {sorted(VALID_DROP_TYPES)}"
            )
        for name in ("popularity_score", "authority_score", "quality_score"):
            value = getattr(self, name)
            if value is not None and not (0.0 <= value <= 1.0):
                raise ValueError(f"Invalid {name} {value}. Must be within [0, 1].")

    @property
    def is_deleted(self) -> bool:
        return DELETED_TAG in self.tags

    @property
    def is_video(self) -> bool:
        return self.type == "video"

    @property
    def has_bad_youtube_metadata(self) -> bool:
        """Title is a YouTube placeholder, or a video lacks its id."""
        if self.youtube_video_id is None and self.type == "video":
            return True
        return self.youtube_video_id is not None and self.title.strip() in BAD_YOUTUBE_TITLES
