"""Append-only user engagement events."""

from dropfeed.engagement.repository import EngagementRepository
from dropfeed.engagement.schemas import NEGATIVE_ACTIONS, VALID_ACTIONS, EngagementEvent

__all__ = ["EngagementEvent", "EngagementRepository", "NEGATIVE_ACTIONS", "VALID_ACTIONS"]
