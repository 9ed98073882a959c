"""Alert Materializer: anomaly events in, deduplicated alert writes out.

For each actionable anomalous bucket an alert keyed by
``(alert_type, level, metric, bucket)`` is upserted; an existing active
alert turns the write into a no-op, and a past bucket whose alert
was already closed is not written again. When a series' latest bucket has a
baseline and is not actionable, open alerts of that series whose bucket
lies within ``auto_close_lookback_buckets`` of the latest bucket are
closed. Older alerts are history and are left untouched.

Store calls are retried with backoff; a ``StoreUnavailable`` after the
retry budget propagates so the caller can skip the partition.
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from src.alerts.config import AlertConfig
from src.alerts.repository import AlertRepository
from src.alerts.schemas import Alert
from src.anomaly.evaluator import AnomalyEvent
from src.series.buckets import bucket_width
from src.storage.retry import retry_store_call

logger = logging.getLogger(__name__)

SeriesKey = tuple[str, str, str]  # (alert_type, level, metric)


@dataclass
class MaterializeResult:
    """Writes performed by one ``materialize`` call."""

    created: list[Alert] = field(default_factory=list)
    existing: list[Alert] = field(default_factory=list)
    closed: list[int] = field(default_factory=list)
    resolved: list[datetime] = field(default_factory=list)

    def merge(self, other: "MaterializeResult") -> None:
        self.created.extend(other.created)
        self.existing.extend(other.existing)
        self.closed.extend(other.closed)
        self.resolved.extend(other.resolved)


def _series_key(event: AnomalyEvent) -> SeriesKey:
    return (event.alert_type, str(event.level), event.metric)


class AlertMaterializer:
    """Turns anomaly events into persisted, deduplicated alerts.

    Args:
        alert_repo: Alert store.
        config: Auto-resolution settings.
        on_write: Optional ``(alert_type, action)`` callback for metrics;
            action is ``created``, ``existing`` or ``closed``.
        on_retry: Optional callback for retried store calls.
    """

    def __init__(
        self,
        alert_repo: AlertRepository,
        config: AlertConfig | None = None,
        on_write: Callable[[str, str], None] | None = None,
        on_retry: Callable[[str], None] | None = None,
    ) -> None:
        self._repo = alert_repo
        self._config = config or AlertConfig()
        self._on_write = on_write
        self._on_retry = on_retry

    def _record(self, alert_type: str, action: str) -> None:
        if self._on_write is not None:
            self._on_write(alert_type, action)

    async def materialize(
        self,
        events: Sequence[AnomalyEvent],
        latest_bucket: datetime | None = None,
        granularity: str = "day",
    ) -> MaterializeResult:
        """Persist alerts for actionable events and auto-close cleared ones.

        Args:
            events: Evaluator output, possibly for several series.
            latest_bucket: Most recent bucket of the evaluated range. Defaults
                to the latest bucket among ``events``.
            granularity: Bucket granularity (for the auto-close window).

        Returns:
            MaterializeResult listing created, pre-existing and closed alerts.
        """
        result = MaterializeResult()
        if not events:
            return result

        if latest_bucket is None:
            latest_bucket = max(e.bucket_start for e in events)

        by_series: dict[SeriesKey, list[AnomalyEvent]] = defaultdict(list)
        for event in events:
            by_series[_series_key(event)].append(event)

        for key, series_events in by_series.items():
            result.merge(
                await self._materialize_series(key, series_events, latest_bucket, granularity)
            )

        if result.created or result.closed:
            logger.info(
                "Alerts materialized: %d created, %d already active, %d auto-closed",
                len(result.created),
                len(result.existing),
                len(result.closed),
            )
        return result

    async def _materialize_series(
        self,
        key: SeriesKey,
        events: list[AnomalyEvent],
        latest_bucket: datetime,
        granularity: str,
    ) -> MaterializeResult:
        result = MaterializeResult()
        alert_type, level, metric = key

        actionable = sorted(
            (e for e in events if e.is_anomalous and e.actionable),
            key=lambda e: e.bucket_start,
        )
        resolved: set[datetime] = set()
        historical = [e for e in actionable if e.bucket_start < latest_bucket]
        if historical:
            resolved = await retry_store_call(
                self._repo.closed_buckets,
                alert_type,
                level,
                metric,
                historical[0].bucket_start,
                latest_bucket,
                operation=f"read_closed:{alert_type}:{level}",
                on_retry=self._on_retry,
            )

        for event in actionable:
            # A closed incident for a past bucket stays closed; only the
            # latest bucket can start a new one
            if event.bucket_start in resolved:
                result.resolved.append(event.bucket_start)
                continue
            alert, created = await retry_store_call(
                self._repo.upsert_open,
                Alert.from_event(event),
                operation=f"write:{alert_type}:{level}",
                on_retry=self._on_retry,
            )
            if created:
                result.created.append(alert)
                self._record(alert_type, "created")
                logger.info(
                    "New %s alert %s/%s at %s (z=%s)",
                    alert.severity, alert_type, level,
                    alert.alert_time.isoformat(), alert.zscore,
                )
            else:
                result.existing.append(alert)
                self._record(alert_type, "existing")

        if self._config.auto_close:
            latest = next((e for e in events if e.bucket_start == latest_bucket), None)
            if latest is not None and latest.zscore is not None and not latest.actionable:
                result.closed = await self._auto_close(key, latest_bucket, granularity)

        return result

    async def _auto_close(
        self,
        key: SeriesKey,
        latest_bucket: datetime,
        granularity: str,
    ) -> list[int]:
        """Close open alerts of a series that tracked the now-cleared state."""
        alert_type, level, metric = key
        since = latest_bucket - bucket_width(granularity) * self._config.auto_close_lookback_buckets

        candidates = await retry_store_call(
            self._repo.list_open_for_series,
            alert_type,
            level,
            metric,
            since,
            latest_bucket,
            operation=f"read_open:{alert_type}:{level}",
            on_retry=self._on_retry,
        )
        if not candidates:
            return []

        closed = await retry_store_call(
            self._repo.auto_close,
            [a.alert_id for a in candidates],
            operation=f"auto_close:{alert_type}:{level}",
            on_retry=self._on_retry,
        )
        for _ in closed:
            self._record(alert_type, "closed")
        if closed:
            logger.info(
                "Auto-closed %d %s alert(s) for %s/%s: condition cleared at %s",
                len(closed), alert_type, level, metric, latest_bucket.isoformat(),
            )
        return closed
