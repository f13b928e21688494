"""Data models for the sources module."""

from dataclasses import dataclass
from datetime import datetime

VALID_SOURCE_TYPES: frozenset[str] = frozenset({"rss", "website", "youtube"})

VALID_SOURCE_STATUSES: frozenset[str] = frozenset({"active", "inactive", "error"})


@dataclass
class Source:
    """A content origin polled for new drops.

    ``priority_flag`` is ephemeral: the scheduler includes flagged sources
    in its next tick regardless of cadence. A finishing run clears it
    unless it was raised again after that run started.
    ``consecutive_errors`` drives the automatic transition to
    ``status="error"``.
    """

    name: str
    homepage_url: str
    type: str = "rss"
    feed_url: str | None = None
    status: str = "active"
    official: bool = False
    priority_flag: bool = False
    consecutive_errors: int = 0
    last_fetched_at: datetime | None = None
    last_error: str | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.type not in VALID_SOURCE_TYPES:
            raise ValueError(
                f"Invalid source type {self.type!r}. "
                f"Must be one of: {sorted(VALID_SOURCE_TYPES)}"
            )
        if self.status not in VALID_SOURCE_STATUSES:
            raise ValueError(
                f"Invalid source status {self.status!r}. "
                f"Must be one of: {sorted(VALID_SOURCE_STATUSES)}"
            )

    @property
    def is_pollable(self) -> bool:
        """Whether the scheduler may poll this source."""
        return self.status == "active" or (self.status == "error" and self.priority_flag)
