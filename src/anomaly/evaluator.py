"""Anomaly Policy Evaluator.

Applies a metric's rule to its rolling z-scores. Every bucket yields an
``AnomalyEvent``; ``is_anomalous`` records the statistical finding and
``actionable`` says whether it should become an alert. For increase-only
metrics a drop is anomalous but never actionable.

No I/O, no state.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from src.anomaly.rolling import RollingStat
from src.anomaly.rules import AnomalyRule, RuleSet
from src.series.levels import GLOBAL, Level


@dataclass(frozen=True)
class AnomalyEvent:
    """Evaluation result for one bucket of one (metric, level) series."""

    metric: str
    level: Level
    bucket_start: datetime
    value: float
    zscore: float | None
    mean: float | None
    stddev: float | None
    is_anomalous: bool
    actionable: bool
    severity: str | None
    alert_type: str
    window_size: int | None = None

    @property
    def deviation(self) -> str | None:
        """``increase`` / ``decrease`` for anomalous buckets, else None."""
        if not self.is_anomalous or self.zscore is None:
            return None
        return "increase" if self.zscore > 0 else "decrease"


def is_anomalous(zscore: float | None, threshold: float) -> bool:
    """|z| >= threshold; buckets without a baseline are never anomalous."""
    return zscore is not None and abs(zscore) >= threshold


def is_actionable(zscore: float | None, rule: AnomalyRule) -> bool:
    """Whether an anomalous z-score should raise an alert under ``rule``."""
    if not is_anomalous(zscore, rule.threshold):
        return False
    if rule.direction == "increase":
        return zscore >= rule.threshold
    return True


def evaluate(
    metric: str,
    zscore_series: Sequence[RollingStat],
    rules: RuleSet | AnomalyRule,
    level: Level = GLOBAL,
    window_size: int | None = None,
) -> list[AnomalyEvent]:
    """Evaluate every bucket of a z-score series.

    Args:
        metric: Metric name.
        zscore_series: Output of ``rolling_zscore`` for the series.
        rules: Rule set (the metric's rule is looked up) or a single rule.
        level: Partition the series belongs to.
        window_size: Window used to compute the z-scores (copied onto events).

    Returns:
        One event per bucket, same order as the input.

    Raises:
        KeyError: If ``rules`` has no rule for ``metric``.
    """
    if isinstance(rules, RuleSet):
        rule = rules.get(metric)
        if rule is None:
            raise KeyError(f"No anomaly rule for metric {metric!r}")
    else:
        rule = rules

    alert_type = rule.alert_type_for(level)
    events: list[AnomalyEvent] = []

    for stat in zscore_series:
        anomalous = is_anomalous(stat.zscore, rule.threshold)
        events.append(
            AnomalyEvent(
                metric=metric,
                level=level,
                bucket_start=stat.bucket_start,
                value=stat.value,
                zscore=stat.zscore,
                mean=stat.mean,
                stddev=stat.stddev,
                is_anomalous=anomalous,
                actionable=anomalous and is_actionable(stat.zscore, rule),
                severity=rule.severity_for(stat.zscore) if anomalous else None,
                alert_type=alert_type,
                window_size=window_size,
            )
        )

    return events
