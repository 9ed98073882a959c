"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from src.observability.metrics import get_metrics


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    """Counters move by one per recorded event."""

    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_run_degraded(self):
        before = _sample("risk_monitor_runs_total", status="degraded")
        get_metrics().record_run(1.5, degraded=True)
        assert _sample("risk_monitor_runs_total", status="degraded") == before + 1

    def test_record_partition(self):
        labels = {"metric": "tickets_total", "outcome": "skipped"}
        before = _sample("risk_monitor_partitions_total", **labels)
        get_metrics().record_partition("tickets_total", "skipped", 0.0)
        assert _sample("risk_monitor_partitions_total", **labels) == before + 1

    def test_record_alert_write_by_action(self):
        metrics = get_metrics()
        created = _sample("risk_monitor_alerts_created_total", alert_type="tag_spike")
        closed = _sample("risk_monitor_alerts_auto_closed_total", alert_type="tag_spike")

        metrics.record_alert_write("tag_spike", "created")
        metrics.record_alert_write("tag_spike", "closed")

        assert _sample(
            "risk_monitor_alerts_created_total", alert_type="tag_spike"
        ) == created + 1
        assert _sample(
            "risk_monitor_alerts_auto_closed_total", alert_type="tag_spike"
        ) == closed + 1

    def test_record_priority(self):
        labels = {"policy": "safety", "priority": "high", "overridden": "true"}
        before = _sample("risk_monitor_priority_decisions_total", **labels)
        get_metrics().record_priority("safety", "high", True)
        assert _sample("risk_monitor_priority_decisions_total", **labels) == before + 1
