"""Metric Source Adapter.

Reads time-stamped facts from the ticket/event store and exposes them as
gap-free bucketed series, one per partition. Read-only; transient store
errors are retried with backoff before surfacing as ``StoreUnavailable``.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime
from typing import Any

from src.series.buckets import TimeRange, to_utc
from src.series.definitions import (
    DEFAULT_METRICS,
    MetricDefinition,
    build_series_query,
    query_params,
)
from src.series.levels import GLOBAL, Level
from src.series.schemas import LevelSelector, MetricSeries
from src.storage.database import Database
from src.storage.retry import retry_store_call

logger = logging.getLogger(__name__)


# ── Pure helpers (stateless, no I/O) ─────────────────────────


def _bucket_value(definition: MetricDefinition, numerator: float, denominator: float) -> float:
    """Value of one bucket. Ratios of empty buckets are 0."""
    if definition.aggregation == "ratio":
        return numerator / denominator if denominator else 0.0
    return numerator


def rows_to_series(
    definition: MetricDefinition,
    kind: str,
    rows: list[Any],
    time_range: TimeRange,
    limit: int | None = None,
) -> dict[Level, MetricSeries]:
    """Group ``(partition, bucket, numerator, denominator)`` rows into series.

    Only partitions that appear in ``rows`` get a series. With ``limit``,
    the partitions with the largest total volume (denominator sum) win;
    ties break on the partition key so the choice is deterministic.

    Args:
        definition: Metric being materialised.
        kind: Level kind the rows were grouped by.
        rows: Query result rows (mappings or asyncpg Records).
        time_range: Range the rows were fetched for.
        limit: Optional top-N cap.

    Returns:
        Mapping of level to gap-free series, ordered by descending volume.
    """
    values: dict[str | None, dict[datetime, float]] = defaultdict(dict)
    volume: dict[str | None, float] = defaultdict(float)

    for row in rows:
        partition = row["partition"]
        bucket = to_utc(row["bucket"])
        numerator = float(row["numerator"] or 0.0)
        denominator = float(row["denominator"] or 0.0)
        values[partition][bucket] = _bucket_value(definition, numerator, denominator)
        volume[partition] += denominator

    ranked = sorted(volume, key=lambda p: (-volume[p], p or ""))
    if limit is not None:
        ranked = ranked[:limit]

    result: dict[Level, MetricSeries] = {}
    for partition in ranked:
        level = GLOBAL if kind == "global" else Level(kind, partition)
        result[level] = MetricSeries.fill(
            definition.name, level, time_range, values[partition],
        )
    return result


# ── Adapter ──────────────────────────────────────────────────


class MetricSourceAdapter:
    """Materialises metric series from the backing store.

    Args:
        database: Connected Database.
        metrics: Metric definitions by name (defaults to ``DEFAULT_METRICS``).
        on_retry: Optional callback for retried store calls (metrics hook).
    """

    def __init__(
        self,
        database: Database,
        metrics: dict[str, MetricDefinition] | None = None,
        on_retry: Callable[[str], None] | None = None,
    ) -> None:
        self._db = database
        self._metrics = metrics if metrics is not None else DEFAULT_METRICS
        self._on_retry = on_retry

    def definition(self, metric: str | MetricDefinition) -> MetricDefinition:
        """Resolve a metric name to its definition."""
        if isinstance(metric, MetricDefinition):
            return metric
        try:
            return self._metrics[metric]
        except KeyError:
            raise ValueError(
                f"Unknown metric {metric!r}. Known: {sorted(self._metrics)}"
            ) from None

    async def fetch_rows(
        self,
        definition: MetricDefinition,
        kind: str,
        time_range: TimeRange,
    ) -> list[Any]:
        """Run the grouped range scan for one metric and level kind."""
        sql = build_series_query(definition, kind)
        return await retry_store_call(
            self._db.fetch,
            sql,
            time_range.start,
            time_range.end,
            time_range.granularity,
            *query_params(definition),
            operation=f"read:{definition.name}:{kind}",
            on_retry=self._on_retry,
        )

    async def series_for_kind(
        self,
        metric: str | MetricDefinition,
        kind: str,
        time_range: TimeRange,
        limit: int | None = None,
    ) -> dict[Level, MetricSeries]:
        """Series for every partition of one level kind."""
        definition = self.definition(metric)
        rows = await self.fetch_rows(definition, kind, time_range)
        result = rows_to_series(definition, kind, rows, time_range, limit)
        logger.debug(
            "Materialised %d %s series for %s (%d rows)",
            len(result), kind, definition.name, len(rows),
        )
        return result

    async def series(
        self,
        metric: str | MetricDefinition,
        selector: LevelSelector,
        time_range: TimeRange,
    ) -> dict[Level, MetricSeries]:
        """Series for every selected partition of ``metric``.

        Level kinds the metric does not support are skipped. A store
        failure on any kind propagates (as ``StoreUnavailable``).
        """
        definition = self.definition(metric)
        result: dict[Level, MetricSeries] = {}
        for kind in selector.kinds:
            if not definition.supports(kind):
                continue
            result.update(
                await self.series_for_kind(
                    definition, kind, time_range, selector.limit_for(kind),
                )
            )
        return result
