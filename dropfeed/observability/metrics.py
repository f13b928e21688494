"""
Prometheus metrics for the ingestion pipeline and ranking engine.

Defines and exposes metrics for:
- Queue inflow (enqueues by origin) and depth by status
- Worker claims, item outcomes and fetch latency
- Source runs by trigger and outcome
- Ranking latency and feed cache hits
- Administrative queue actions

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from dropfeed.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for dropfeed.

    Usage:
        metrics = get_metrics()
        metrics.record_item("youtube", "done")
        metrics.record_fetch_latency("article", 0.42)
    """

    def __init__(self):
        self.items_enqueued = Counter(
            "dropfeed_items_enqueued_total",
            "Queue rows created",
            ["origin"],  # scheduler, manual
        )

        self.items_claimed = Counter(
            "dropfeed_items_claimed_total",
            "Queue rows claimed by workers",
        )

        self.item_outcomes = Counter(
            "dropfeed_item_outcomes_total",
            "Processed queue items by payload kind and outcome",
            ["kind", "status"],  # status: done, duplicate, error
        )

        self.item_errors = Counter(
            "dropfeed_item_errors_total",
            "Queue item failures by error type",
            ["error_type"],
        )

        self.fetch_latency = Histogram(
            "dropfeed_fetch_latency_seconds",
            "Time to fetch and enrich one queue item",
            ["content_type"],
            buckets=LATENCY_BUCKETS,
        )

        self.source_runs = Counter(
            "dropfeed_source_runs_total",
            "Source runs by trigger and outcome",
            ["trigger", "status"],
        )

        self.source_run_latency = Histogram(
            "dropfeed_source_run_latency_seconds",
            "Duration of a source run",
            buckets=LATENCY_BUCKETS,
        )

        self.ranking_latency = Histogram(
            "dropfeed_ranking_latency_seconds",
            "Time to rank a feed",
            ["tier"],
            buckets=LATENCY_BUCKETS,
        )

        self.feed_cache = Counter(
            "dropfeed_feed_cache_total",
            "Feed cache lookups",
            ["result"],  # hit, miss, bypass
        )

        self.queue_depth = Gauge(
            "dropfeed_queue_depth",
            "Queue rows by status",
            ["status"],
        )

        self.admin_actions = Counter(
            "dropfeed_admin_actions_total",
            "Rows affected by administrative queue actions",
            ["action"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Start the Prometheus scrape endpoint (default ``METRICS_PORT``)."""
        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_enqueue(self, origin: str, count: int = 1) -> None:
        if count > 0:
            self.items_enqueued.labels(origin=origin).inc(count)

    def record_claim(self, count: int) -> None:
        if count > 0:
            self.items_claimed.inc(count)

    def record_item(self, kind: str, status: str, error_type: str | None = None) -> None:
        """
        Record the outcome of one queue item.

        Args:
            kind: Payload kind (rss, website, youtube)
            status: done, duplicate or error
            error_type: Exception class name for failures
        """
        self.item_outcomes.labels(kind=kind, status=status).inc()
        if error_type:
            self.item_errors.labels(error_type=error_type).inc()

    def record_fetch_latency(self, content_type: str, latency: float) -> None:
        self.fetch_latency.labels(content_type=content_type).observe(latency)

    def record_source_run(self, trigger: str, status: str, latency: float | None = None) -> None:
        self.source_runs.labels(trigger=trigger, status=status).inc()
        if latency is not None:
            self.source_run_latency.observe(latency)

    def record_ranking(self, tier: str, latency: float) -> None:
        self.ranking_latency.labels(tier=tier).observe(latency)

    def record_feed_cache(self, result: str) -> None:
        self.feed_cache.labels(result=result).inc()

    def set_queue_depth(self, counts: dict[str, int]) -> None:
        for status, count in counts.items():
            self.queue_depth.labels(status=status).set(count)

    def record_admin_action(self, action: str, count: int) -> None:
        self.admin_actions.labels(action=action).inc(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
