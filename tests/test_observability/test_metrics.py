"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from dropfeed.observability.metrics import get_metrics


def _value(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_singleton():
    assert get_metrics() is get_metrics()


def test_record_item_outcome():
    metrics = get_metrics()
    labels = {"kind": "youtube", "status": "error"}
    before = _value("dropfeed_item_outcomes_total", labels)
    errors_before = _value("dropfeed_item_errors_total", {"error_type": "EnrichmentFailure"})

    metrics.record_item("youtube", "error", "EnrichmentFailure")

    assert _value("dropfeed_item_outcomes_total", labels) == before + 1
    assert _value("dropfeed_item_errors_total", {"error_type": "EnrichmentFailure"}) == errors_before + 1


def test_zero_counts_ignored():
    metrics = get_metrics()
    before = _value("dropfeed_items_claimed_total")
    metrics.record_claim(0)
    metrics.record_enqueue("manual", 0)
    assert _value("dropfeed_items_claimed_total") == before


def test_queue_depth_gauge():
    get_metrics().set_queue_depth({"pending": 14, "failed": 2})
    assert _value("dropfeed_queue_depth", {"status": "pending"}) == 14
    assert _value("dropfeed_queue_depth", {"status": "failed"}) == 2
