"""Ingestion queue: durable URL backlog with a guarded state machine."""

from dropfeed.queue.config import QueueConfig
from dropfeed.queue.intake import BatchIntakeResult, DiscoveryCandidate, IntakeResult, QueueIntake
from dropfeed.queue.maintenance import ClearResult, QueueMaintenance
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.queue.schemas import (
    QueueItem,
    QueuePayload,
    RssPayload,
    WebsitePayload,
    YouTubePayload,
    payload_for_url,
)

__all__ = [
    "BatchIntakeResult",
    "ClearResult",
    "DiscoveryCandidate",
    "IngestionQueueRepository",
    "IntakeResult",
    "QueueConfig",
    "QueueIntake",
    "QueueItem",
    "QueueMaintenance",
    "QueuePayload",
    "RssPayload",
    "WebsitePayload",
    "YouTubePayload",
    "payload_for_url",
]
