"""Schema definitions for engagement events.

Each event is one user action on one drop. Events are append-only.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

VALID_ACTIONS: frozenset[str] = frozenset({
    "like",
    "dislike",
    "save",
    "dismiss",
    "open",
})

NEGATIVE_ACTIONS: frozenset[str] = frozenset({"dislike", "dismiss"})


@dataclass
class EngagementEvent:
    """A user's action on a drop.

    Attributes:
        source_id / tags: The engaged drop's source and tags. Filled on
            reads (joined from ``drops``) so ranking can match candidates
            against past engagement; ignored on insert.
    """

    user_id: str
    drop_id: int
    action: str
    id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    source_id: int | None = None
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.action not in VALID_ACTIONS:
            raise ValueError(
                f"Invalid action {self.action!r}. "
                f"Must be one of: {sorted(VALID_ACTIONS)}"
            )

    @property
    def is_negative(self) -> bool:
        return self.action in NEGATIVE_ACTIONS
