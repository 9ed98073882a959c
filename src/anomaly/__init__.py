"""Rolling statistics and anomaly evaluation for metric series.

Components:
- rolling_zscore / RollingStat: Trailing-window mean, stddev and z-score
- DataGapError: Insufficient history marker recorded by the batch job
- AnomalyRule / RuleSet / load_rule_set: Per-metric rules as data
- evaluate / AnomalyEvent: Threshold, direction and severity per bucket
"""

from src.anomaly.evaluator import AnomalyEvent, evaluate
from src.anomaly.rolling import (
    ZSCORE_POS_INF,
    DataGapError,
    RollingStat,
    compute_zscore,
    rolling_zscore,
)
from src.anomaly.rules import (
    AnomalyRule,
    RuleSet,
    SeverityBreakpoint,
    default_rule_set,
    load_rule_set,
)

__all__ = [
    "AnomalyEvent",
    "AnomalyRule",
    "DataGapError",
    "RollingStat",
    "RuleSet",
    "SeverityBreakpoint",
    "ZSCORE_POS_INF",
    "compute_zscore",
    "default_rule_set",
    "evaluate",
    "load_rule_set",
    "rolling_zscore",
]
