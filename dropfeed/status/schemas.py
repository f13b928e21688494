"""Schema definitions for status snapshots.

Alerts carry a severity; the snapshot's overall status is the worst of
them, so callers can decide at a glance whether to page or keep polling.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Severity = Literal["warning", "critical"]

VALID_OVERALL_STATUSES: frozenset[str] = frozenset({"healthy", "warning", "critical"})

VALID_ALERT_CODES: frozenset[str] = frozenset({
    "pending_backlog",
    "high_retry",
    "untagged_backlog",
    "low_daily_volume",
    "error_sources",
    "stale_runs",
})


@dataclass
class Alert:
    code: str
    severity: Severity
    message: str
    value: int = 0

    def __post_init__(self) -> None:
        if self.code not in VALID_ALERT_CODES:
            raise ValueError(
                f"Invalid alert code {self.code!r}. "
                f"Must be one of: {sorted(VALID_ALERT_CODES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity,
            "message": self.message,
            "value": self.value,
        }


@dataclass
class SourceStatusEntry:
    """Last run of one source as reported to operators.

    ``status`` is the persisted run status, except that a ``running`` run
    past the staleness timeout (or with claims stuck in ``processing``) is
    reported as ``stale``.
    """

    source_id: int
    status: str
    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    items_ingested: int = 0
    error_message: str | None = None
    stale: bool = False
    stuck_items: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "status": self.status,
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "items_ingested": self.items_ingested,
            "error_message": self.error_message,
            "stale": self.stale,
            "stuck_items": self.stuck_items,
        }


@dataclass
class StatusSnapshot:
    """Point-in-time view of the pipeline."""

    sources: dict[int, SourceStatusEntry]
    queue: dict[str, Any]
    coverage: dict[str, Any]
    source_counts: dict[str, int]
    alerts: list[Alert] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    recommended_poll_seconds: int = 60
    generated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def overall(self) -> str:
        """Worst alert severity, or healthy."""
        severities = {a.severity for a in self.alerts}
        if "critical" in severities:
            return "critical"
        if "warning" in severities:
            return "warning"
        return "healthy"

    @property
    def any_running(self) -> bool:
        return any(e.status == "running" for e in self.sources.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "generated_at": self.generated_at.isoformat(),
            "recommended_poll_seconds": self.recommended_poll_seconds,
            "sources": {str(k): v.to_dict() for k, v in self.sources.items()},
            "queue": self.queue,
            "coverage": self.coverage,
            "source_counts": self.source_counts,
            "alerts": [a.to_dict() for a in self.alerts],
            "recommendations": self.recommendations,
        }
