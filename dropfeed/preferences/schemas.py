"""Schema definitions for user preferences."""

from dataclasses import dataclass, field
from datetime import datetime

MAX_LANGUAGES = 3


@dataclass
class UserPreference:
    """Topics and languages a user selected during onboarding.

    Ranking requires at least one topic; an empty selection is a valid
    stored state that ranking reports as NoPreferences.
    """

    user_id: str
    selected_topic_ids: list[int] = field(default_factory=list)
    selected_language_ids: list[int] = field(default_factory=list)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id is required")
        if len(self.selected_language_ids) > MAX_LANGUAGES:
            raise ValueError(
                f"At most {MAX_LANGUAGES} languages may be selected, "
                f"got {len(self.selected_language_ids)}"
            )
        self.selected_topic_ids = list(dict.fromkeys(self.selected_topic_ids))
        self.selected_language_ids = list(dict.fromkeys(self.selected_language_ids))

    @property
    def has_topics(self) -> bool:
        return bool(self.selected_topic_ids)
