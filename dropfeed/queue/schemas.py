"""
Schema definitions for the ingestion queue.

A QueueItem's payload is a tagged variant keyed by source type. The
variant is validated when the item is built, before any insert, so a
worker never sees a payload it cannot interpret.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

from dropfeed.urls.normalizer import extract_youtube_id, is_youtube_url

VALID_QUEUE_STATUSES: frozenset[str] = frozenset({
    "pending",
    "processing",
    "done",
    "error",
    "failed",
})

ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "processing"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"done", "failed"})


@dataclass(frozen=True)
class RssPayload:
    """Item discovered in an RSS/Atom feed entry."""

    feed_url: str
    entry_title: str | None = None
    entry_published_at: str | None = None
    kind: Literal["rss"] = "rss"

    def __post_init__(self) -> None:
        if not self.feed_url:
            raise ValueError("rss payload requires feed_url")


@dataclass(frozen=True)
class WebsitePayload:
    """Item discovered on a website or submitted manually."""

    homepage_url: str | None = None
    kind: Literal["website"] = "website"


@dataclass(frozen=True)
class YouTubePayload:
    """A YouTube video, identified by its stable video id."""

    video_id: str
    channel_id: str | None = None
    kind: Literal["youtube"] = "youtube"

    def __post_init__(self) -> None:
        if extract_youtube_id(self.video_id) != self.video_id:
            raise ValueError(f"Invalid YouTube video id {self.video_id!r}")


QueuePayload = Union[RssPayload, WebsitePayload, YouTubePayload]

_PAYLOAD_TYPES: dict[str, type] = {
    "rss": RssPayload,
    "website": WebsitePayload,
    "youtube": YouTubePayload,
}


def payload_to_dict(payload: QueuePayload) -> dict[str, Any]:
    """Serialize a payload variant for the JSONB column."""
    return asdict(payload)


def payload_from_dict(data: dict[str, Any] | None) -> QueuePayload:
    """Rebuild (and re-validate) a payload variant from its stored form.

    Raises:
        ValueError: Unknown kind or invalid fields.
    """
    data = dict(data or {})
    kind = data.pop("kind", "website")
    payload_type = _PAYLOAD_TYPES.get(kind)
    if payload_type is None:
        raise ValueError(
            f"Invalid payload kind {kind!r}. Must be one of: {sorted(_PAYLOAD_TYPES)}"
        )
    try:
        return payload_type(**data)
    except TypeError as e:
        raise ValueError(f"Invalid {kind} payload: {e}") from e


def payload_for_url(
    url: str,
    source_type: str | None = None,
    feed_url: str | None = None,
    **extra: Any,
) -> QueuePayload:
    """Choose and validate the payload variant for a discovered URL.

    YouTube URLs always become YouTubePayload regardless of the source
    type, since the worker enriches them through the video API.
    """
    if is_youtube_url(url):
        video_id = extract_youtube_id(url)
        if video_id is None:
            raise ValueError(f"YouTube URL without a video id: {url}")
        return YouTubePayload(video_id=video_id, channel_id=extra.get("channel_id"))

    if source_type == "youtube":
        raise ValueError(f"youtube source produced a non-YouTube URL: {url}")

    if source_type == "rss":
        return RssPayload(
            feed_url=feed_url or "",
            entry_title=extra.get("entry_title"),
            entry_published_at=extra.get("entry_published_at"),
        )

    return WebsitePayload(homepage_url=extra.get("homepage_url"))


@dataclass
class QueueItem:
    """A discovered URL awaiting fetch/tag processing.

    Attributes:
        url: Normalized URL (unique across the queue).
        status: pending, processing, done, error or failed.
        tries: Attempts consumed so far; bounded by the max-tries policy.
        payload: Source-type variant describing how the URL was found.
        claimed_by: Worker id holding a ``processing`` item.
    """

    url: str
    payload: QueuePayload = field(default_factory=WebsitePayload)
    source_id: int | None = None
    status: str = "pending"
    tries: int = 0
    error_message: str | None = None
    source_label: str | None = None
    notes: str | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_QUEUE_STATUSES:
            raise ValueError(
                f"Invalid queue status {self.status!r}. "
                f"Must be one of: {sorted(VALID_QUEUE_STATUSES)}"
            )
        if self.tries < 0:
            raise ValueError(f"Invalid tries {self.tries}. Must be >= 0.")

    @property
    def kind(self) -> str:
        return self.payload.kind

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
