"""
Prometheus metrics for the monitoring batch job.

Defines and exposes metrics for:
- Monitoring runs and their duration
- Partition outcomes (succeeded, skipped, failed)
- Alert lifecycle writes (created, already open, auto-closed)
- Transient store retries
- Prediction policy decisions

Metrics are exposed via HTTP endpoint for Prometheus scraping, or pushed
nowhere at all when the job runs from cron without ``--metrics-port``.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for run duration histograms (in seconds)
RUN_DURATION_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)
PARTITION_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the risk monitor.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_partition("tickets_total", "succeeded", latency=0.04)
        metrics.record_alert_write("queue_spike", "created")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.monitor_runs = Counter(
            "risk_monitor_runs_total",
            "Total monitoring batch runs",
            ["status"],  # completed, degraded
        )

        self.run_duration = Histogram(
            "risk_monitor_run_duration_seconds",
            "Wall-clock duration of a monitoring run",
            buckets=RUN_DURATION_BUCKETS,
        )

        self.partitions = Counter(
            "risk_monitor_partitions_total",
            "Metric/level partitions evaluated",
            ["metric", "outcome"],  # outcome: succeeded, skipped, failed
        )

        self.partition_latency = Histogram(
            "risk_monitor_partition_latency_seconds",
            "Time to evaluate and materialize one partition",
            ["metric"],
            buckets=PARTITION_LATENCY_BUCKETS,
        )

        self.alerts_created = Counter(
            "risk_monitor_alerts_created_total",
            "New open alerts inserted",
            ["alert_type"],
        )

        self.alerts_existing = Counter(
            "risk_monitor_alerts_existing_total",
            "Anomalies that matched an already active alert",
            ["alert_type"],
        )

        self.alerts_closed = Counter(
            "risk_monitor_alerts_auto_closed_total",
            "Open alerts closed because the condition cleared",
            ["alert_type"],
        )

        self.store_retries = Counter(
            "risk_monitor_store_retries_total",
            "Transient store failures that were retried",
            ["operation"],
        )

        self.priority_decisions = Counter(
            "risk_monitor_priority_decisions_total",
            "Final priorities produced by the prediction policy",
            ["policy", "priority", "overridden"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info("Prometheus metrics server started on port %d", port)

    # Convenience methods

    def record_run(self, elapsed: float, degraded: bool) -> None:
        """
        Record a finished monitoring run.

        Args:
            elapsed: Run duration in seconds
            degraded: True if any partition was skipped or failed
        """
        self.monitor_runs.labels(
            status="degraded" if degraded else "completed",
        ).inc()
        self.run_duration.observe(elapsed)

    def record_partition(
        self,
        metric: str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one (metric, level) partition.

        Args:
            metric: Metric name
            outcome: succeeded, skipped or failed
            latency: Optional processing time in seconds
        """
        self.partitions.labels(metric=metric, outcome=outcome).inc()
        if latency is not None:
            self.partition_latency.labels(metric=metric).observe(latency)

    def record_alert_write(self, alert_type: str, action: str) -> None:
        """
        Record a single alert write.

        Args:
            alert_type: Alert type of the written alert
            action: created, existing or closed
        """
        if action == "created":
            self.alerts_created.labels(alert_type=alert_type).inc()
        elif action == "existing":
            self.alerts_existing.labels(alert_type=alert_type).inc()
        elif action == "closed":
            self.alerts_closed.labels(alert_type=alert_type).inc()

    def record_store_retry(self, operation: str) -> None:
        """Record one retried store call."""
        self.store_retries.labels(operation=operation).inc()

    def record_priority(self, policy: str, priority: str, overridden: bool) -> None:
        """Record a prediction policy decision."""
        self.priority_decisions.labels(
            policy=policy,
            priority=priority,
            overridden=str(overridden).lower(),
        ).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
