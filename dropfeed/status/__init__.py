"""Operational status: read-only snapshots and the push channel."""

from dropfeed.status.broadcaster import (
    CHANNEL_NAME,
    VALID_EVENT_TYPES,
    StatusBroadcaster,
    build_event,
)
from dropfeed.status.config import StatusConfig
from dropfeed.status.schemas import Alert, SourceStatusEntry, StatusSnapshot
from dropfeed.status.service import StatusService, build_alerts, source_entry

__all__ = [
    "Alert",
    "CHANNEL_NAME",
    "SourceStatusEntry",
    "StatusBroadcaster",
    "StatusConfig",
    "StatusService",
    "StatusSnapshot",
    "VALID_EVENT_TYPES",
    "build_alerts",
    "build_event",
    "source_entry",
]
