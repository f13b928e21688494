"""Schema definitions for source runs."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

VALID_RUN_STATUSES: frozenset[str] = frozenset({"running", "success", "error"})

VALID_RUN_TRIGGERS: frozenset[str] = frozenset({"schedule", "run_now", "prioritized"})

STALE_RUN_MESSAGE = "stale run: no terminal update before timeout"


@dataclass
class SourceRunStatus:
    """Last-run snapshot for one source (one persisted row per source).

    The row doubles as the per-source exclusivity lock: a run may only
    start when the current row is not ``running`` or has gone stale.
    """

    source_id: int
    status: str = "running"
    trigger: str = "schedule"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    items_ingested: int = 0
    items_discovered: int = 0
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Invalid run status {self.status!r}. "
                f"Must be one of: {sorted(VALID_RUN_STATUSES)}"
            )
        if self.trigger not in VALID_RUN_TRIGGERS:
            raise ValueError(
                f"Invalid run trigger {self.trigger!r}. "
                f"Must be one of: {sorted(VALID_RUN_TRIGGERS)}"
            )

    def is_stale(self, timeout_seconds: int, now: datetime | None = None) -> bool:
        """Running for longer than ``timeout_seconds`` without finishing."""
        if self.status != "running":
            return False
        now = now or datetime.now(timezone.utc)
        return now - self.started_at > timedelta(seconds=timeout_seconds)


@dataclass
class RunOutcome:
    """Per-source result of a run-now or tick request."""

    source_id: int
    status: str  # started, success, error, conflict, not_found
    items_ingested: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "status": self.status,
            "items_ingested": self.items_ingested,
            "error": self.error,
        }
