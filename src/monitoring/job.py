"""Batch anomaly monitoring job.

Runs as an offline batch process, once per bucket:
1. Resolves the evaluation range: ``window_size + evaluation_buckets``
   complete buckets ending before the bucket that contains ``as_of``
2. Materialises series per (metric, level kind) through the source adapter
3. Per partition: rolling z-score, rule evaluation, alert materialization
4. Collects partition outcomes into a MonitorRunSummary

Partitions run concurrently under a semaphore of ``max_workers``; buckets
within one series are always processed in order. A partition whose store
calls keep failing is skipped, an unexpected error fails only that
partition, and the rest of the run carries on.

Designed for external cron scheduling: ``5 0 * * * risk-monitor monitor``
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from src.alerts.config import AlertConfig
from src.alerts.materializer import AlertMaterializer
from src.alerts.repository import AlertRepository
from src.anomaly.evaluator import evaluate
from src.anomaly.rolling import latest_gap, rolling_zscore
from src.anomaly.rules import AnomalyRule, RuleSet, load_rule_set
from src.monitoring.config import MonitorConfig
from src.monitoring.schemas import MonitorRunSummary, PartitionResult
from src.observability.metrics import get_metrics
from src.series.buckets import TimeRange, to_utc
from src.series.definitions import MetricDefinition
from src.series.levels import Level
from src.series.schemas import MetricSeries
from src.series.source import MetricSourceAdapter
from src.storage.database import Database
from src.storage.retry import StoreUnavailable

logger = logging.getLogger(__name__)


async def run_monitoring(
    database: Database,
    as_of: datetime | None = None,
    config: MonitorConfig | None = None,
    alert_config: AlertConfig | None = None,
    *,
    rule_set: RuleSet | None = None,
    metrics: dict[str, MetricDefinition] | None = None,
    dry_run: bool = False,
) -> MonitorRunSummary:
    """
    Run one monitoring pass over every enabled metric.

    Args:
        database: Connected Database instance (caller manages lifecycle).
        as_of: Evaluation time (default: now UTC). Its own bucket is still
            filling up and is not evaluated.
        config: Monitor configuration (default: from env).
        alert_config: Alert auto-resolution settings (default: from env).
        rule_set: Anomaly rules (default: built-ins plus ``rules_file``).
        metrics: Metric definitions (default: built-in metrics).
        dry_run: Evaluate without writing or closing alerts.

    Returns:
        MonitorRunSummary with per-partition outcomes and totals.
    """
    config = config or MonitorConfig()
    as_of = to_utc(as_of) if as_of is not None else datetime.now(timezone.utc)
    time_range = TimeRange.ending_at(
        as_of, config.range_buckets, config.bucket_granularity,
    )
    summary = MonitorRunSummary(as_of=as_of, time_range=time_range, dry_run=dry_run)
    start_time = time.monotonic()

    collector = get_metrics()
    rule_set = rule_set or load_rule_set(config.default_threshold, config.rules_file)
    source = MetricSourceAdapter(
        database, metrics=metrics, on_retry=collector.record_store_retry,
    )
    materializer = AlertMaterializer(
        AlertRepository(database),
        alert_config,
        on_write=collector.record_alert_write,
        on_retry=collector.record_store_retry,
    )
    selector = config.level_selector()
    semaphore = asyncio.Semaphore(config.max_workers)

    logger.info(
        "Monitoring run as of %s: %s .. %s (%d %s buckets, window %d)",
        as_of.isoformat(),
        time_range.start.isoformat(),
        time_range.end.isoformat(),
        time_range.num_buckets,
        time_range.granularity,
        config.window_size,
    )

    # Phase 1: Resolve the (metric, kind) reads
    reads: list[tuple[AnomalyRule, MetricDefinition, str]] = []
    for rule in rule_set.enabled():
        try:
            definition = source.definition(rule.metric)
        except ValueError as e:
            logger.warning("Skipping rule without metric definition: %s", e)
            summary.errors.append(str(e))
            continue
        for kind in selector.kinds:
            if definition.supports(kind):
                reads.append((rule, definition, kind))

    # Phase 2: Fetch series, one grouped scan per (metric, kind)
    async def fetch(definition: MetricDefinition, kind: str) -> dict[Level, MetricSeries]:
        async with semaphore:
            return await source.series_for_kind(
                definition, kind, time_range, selector.limit_for(kind),
            )

    fetched = await asyncio.gather(
        *(fetch(definition, kind) for _, definition, kind in reads),
        return_exceptions=True,
    )

    work: list[tuple[AnomalyRule, MetricSeries]] = []
    for (rule, definition, kind), outcome in zip(reads, fetched):
        if isinstance(outcome, StoreUnavailable):
            logger.warning("Skipping %s/%s: %s", definition.name, kind, outcome)
            summary.add(PartitionResult(
                metric=definition.name, level=kind, outcome="skipped", error=str(outcome),
            ))
            collector.record_partition(definition.name, "skipped", 0.0)
        elif isinstance(outcome, BaseException):
            logger.error(
                "Failed to read %s/%s", definition.name, kind, exc_info=outcome,
            )
            summary.add(PartitionResult(
                metric=definition.name, level=kind, outcome="failed", error=str(outcome),
            ))
            collector.record_partition(definition.name, "failed", 0.0)
        else:
            work.extend((rule, series) for series in outcome.values())

    # Phase 3: Evaluate and materialise each partition
    async def process(rule: AnomalyRule, series: MetricSeries) -> PartitionResult:
        async with semaphore:
            return await _process_partition(
                series, rule, materializer, config, time_range, dry_run,
            )

    results = await asyncio.gather(*(process(rule, series) for rule, series in work))
    for result in results:
        summary.add(result)
        collector.record_partition(result.metric, result.outcome, result.elapsed_seconds)

    summary.elapsed_seconds = time.monotonic() - start_time
    collector.record_run(summary.elapsed_seconds, summary.degraded)

    for gap in summary.data_gaps:
        logger.info("Data gap: %s", gap)

    logger.info(
        "Monitoring run complete: %d succeeded, %d skipped, %d failed; "
        "alerts %d created, %d existing, %d closed (%.1fs)%s",
        summary.succeeded,
        summary.skipped,
        summary.failed,
        summary.alerts_created,
        summary.alerts_existing,
        summary.alerts_closed,
        summary.elapsed_seconds,
        " [dry run]" if dry_run else "",
    )
    return summary


async def _process_partition(
    series: MetricSeries,
    rule: AnomalyRule,
    materializer: AlertMaterializer,
    config: MonitorConfig,
    time_range: TimeRange,
    dry_run: bool,
) -> PartitionResult:
    """Rolling z-score, evaluation and alert writes for one partition."""
    started = time.monotonic()
    result = PartitionResult(metric=series.metric, level=str(series.level))

    try:
        stats = rolling_zscore(series, config.window_size)
        result.data_gap = latest_gap(series, config.window_size)

        events = evaluate(
            series.metric, stats, rule, level=series.level, window_size=config.window_size,
        )
        result.anomalies = sum(1 for e in events if e.is_anomalous)
        result.actionable = sum(1 for e in events if e.actionable)

        if not dry_run:
            written = await materializer.materialize(
                events,
                latest_bucket=time_range.latest_bucket,
                granularity=time_range.granularity,
            )
            result.alerts_created = len(written.created)
            result.alerts_existing = len(written.existing)
            result.alerts_closed = len(written.closed)
    except StoreUnavailable as e:
        logger.warning("Skipping %s@%s: %s", series.metric, series.level, e)
        result.outcome = "skipped"
        result.error = str(e)
    except Exception as e:
        logger.exception("Partition %s@%s failed", series.metric, series.level)
        result.outcome = "failed"
        result.error = f"{type(e).__name__}: {e}"

    result.elapsed_seconds = time.monotonic() - started
    return result
