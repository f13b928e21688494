"""
Queue maintenance: scheduled retry sweep, stale-claim release, and the
administrative "clear error queue" action.

The sweep is the only automatic retry path. Workers never retry inline;
a failed item waits in ``error`` until the next sweep moves it back to
``pending`` (while under the retry ceiling).

Clearing is explicit and auditable: each cleared row is classified with
a reason and the summary is logged and returned to the caller.
"""

from collections import Counter
from dataclasses import dataclass, field

import structlog

from dropfeed.queue.config import QueueConfig
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.queue.schemas import QueueItem
from dropfeed.urls.normalizer import host_of

logger = structlog.get_logger(__name__)

_MALFORMED_MARKERS = ("{", "}", "undefined", "null")


@dataclass
class ClearResult:
    """Audit record of a clear-error-queue action."""

    cleared_ids: list[int] = field(default_factory=list)
    reasons: dict[str, int] = field(default_factory=dict)
    examined: int = 0
    kept: int = 0

    @property
    def cleared(self) -> int:
        return len(self.cleared_ids)


class QueueMaintenance:
    """Sweep, release and clear operations over the ingestion queue."""

    def __init__(
        self,
        repository: IngestionQueueRepository,
        config: QueueConfig | None = None,
    ) -> None:
        self._repo = repository
        self._config = config or QueueConfig()

    def classify(self, item: QueueItem) -> str | None:
        """Return why an error row should be cleared, or None to keep it.

        Reasons, in precedence order: max_tries, malformed_url,
        blocked_domain, permanent_error.
        """
        if item.tries >= self._config.max_tries:
            return "max_tries"

        url = item.url or ""
        if len(url) > self._config.malformed_url_length or any(
            marker in url for marker in _MALFORMED_MARKERS
        ):
            return "malformed_url"

        host = host_of(url)
        for domain in self._config.blocked_domains:
            if host == domain or host.endswith("." + domain):
                return "blocked_domain"

        message = (item.error_message or "").lower()
        if message and any(m in message for m in self._config.permanent_error_markers):
            return "permanent_error"

        return None

    async def sweep(self) -> list[int]:
        """Move retry-eligible error rows back to pending."""
        ids = await self._repo.sweep_errors(self._config.max_tries)
        if ids:
            logger.info("Queue sweep requeued items", count=len(ids))
        return ids

    async def release_stale_claims(self) -> list[int]:
        """Fail processing rows whose worker went away."""
        ids = await self._repo.release_stale(self._config.stale_claim_seconds)
        if ids:
            logger.warning(
                "Released stale queue claims",
                count=len(ids),
                stale_seconds=self._config.stale_claim_seconds,
            )
        return ids

    async def clear_errors(
        self,
        item_ids: list[int] | None = None,
        force: bool = False,
        limit: int = 1000,
    ) -> ClearResult:
        """Move error rows to failed.

        Args:
            item_ids: Restrict the action to these rows.
            force: Clear every examined error row regardless of policy.
            limit: Maximum error rows to examine.
        """
        candidates = await self._repo.list_errors(limit=limit)
        if item_ids is not None:
            wanted = set(item_ids)
            candidates = [c for c in candidates if c.id in wanted]

        reasons: Counter[str] = Counter()
        to_clear: list[int] = []
        for item in candidates:
            reason = self.classify(item)
            if reason is None and force:
                reason = "forced"
            if reason is not None:
                reasons[reason] += 1
                to_clear.append(item.id)

        cleared = await self._repo.clear_errors(to_clear) if to_clear else []
        result = ClearResult(
            cleared_ids=cleared,
            reasons=dict(reasons),
            examined=len(candidates),
            kept=len(candidates) - len(cleared),
        )
        logger.info(
            "Cleared error queue",
            examined=result.examined,
            cleared=result.cleared,
            kept=result.kept,
            reasons=result.reasons,
            forced=force,
        )
        return result
