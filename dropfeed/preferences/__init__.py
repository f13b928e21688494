"""User topic and language preferences consumed by ranking."""

from dropfeed.preferences.repository import PreferenceRepository
from dropfeed.preferences.schemas import MAX_LANGUAGES, UserPreference

__all__ = ["MAX_LANGUAGES", "PreferenceRepository", "UserPreference"]
