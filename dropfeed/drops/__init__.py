"""Drops: tagged content items produced by the ingestion workers."""

from dropfeed.drops.repository import DropRepository
from dropfeed.drops.schemas import DELETED_TAG, Drop

__all__ = ["DELETED_TAG", "Drop", "DropRepository"]
