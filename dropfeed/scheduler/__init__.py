"""Source scheduling with per-source run exclusivity."""

from dropfeed.scheduler.config import SchedulerConfig
from dropfeed.scheduler.repository import SourceRunRepository
from dropfeed.scheduler.schemas import (
    VALID_RUN_STATUSES,
    VALID_RUN_TRIGGERS,
    RunOutcome,
    SourceRunStatus,
)
from dropfeed.scheduler.service import SourceScheduler

__all__ = [
    "RunOutcome",
    "SchedulerConfig",
    "SourceRunRepository",
    "SourceRunStatus",
    "SourceScheduler",
    "VALID_RUN_STATUSES",
    "VALID_RUN_TRIGGERS",
]
