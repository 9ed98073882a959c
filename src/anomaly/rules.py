"""Per-metric anomaly rules, loaded as data at the start of a run.

A rule says how far a bucket must deviate (``threshold`` on |z|), which
direction is actionable, how |z| maps to severity, and which alert type
to raise at each level kind. Defaults cover the built-in metrics; a JSON
rules file can override or add metrics without code changes::

    {"rules": [
        {"metric": "tickets_total", "threshold": 2.5},
        {"metric": "refund_requests", "direction": "both",
         "severity_breakpoints": [{"min_abs_zscore": 2.0, "severity": "warning"},
                                  {"min_abs_zscore": 5.0, "severity": "critical"}]}
    ]}
"""

import json
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from src.series.levels import Level

logger = logging.getLogger(__name__)

Direction = Literal["increase", "both"]
Severity = Literal["warning", "critical"]

DEFAULT_THRESHOLD = 2.0


class SeverityBreakpoint(BaseModel):
    """|z| at or above ``min_abs_zscore`` maps to ``severity``."""

    min_abs_zscore: float = Field(ge=0.0)
    severity: Severity


def _default_breakpoints() -> list[SeverityBreakpoint]:
    return [
        SeverityBreakpoint(min_abs_zscore=2.0, severity="warning"),
        SeverityBreakpoint(min_abs_zscore=3.5, severity="critical"),
    ]


class AnomalyRule(BaseModel):
    """Anomaly rule for one metric."""

    metric: str
    threshold: float = Field(default=DEFAULT_THRESHOLD, gt=0.0)
    direction: Direction = "increase"
    severity_breakpoints: list[SeverityBreakpoint] = Field(
        default_factory=_default_breakpoints,
    )
    alert_type: str = ""
    alert_types_by_level: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @field_validator("severity_breakpoints")
    @classmethod
    def _sorted_breakpoints(cls, v: list[SeverityBreakpoint]) -> list[SeverityBreakpoint]:
        if not v:
            raise ValueError("at least one severity breakpoint is required")
        return sorted(v, key=lambda b: b.min_abs_zscore)

    def model_post_init(self, __context: Any) -> None:
        if not self.alert_type:
            self.alert_type = f"{self.metric}_spike"

    def alert_type_for(self, level: Level) -> str:
        """Alert type raised for anomalies at ``level``."""
        return self.alert_types_by_level.get(level.kind, self.alert_type)

    def severity_for(self, zscore: float) -> str:
        """Severity for a z-score; monotone in |z|.

        Values below the lowest breakpoint (possible when ``threshold`` is
        set under it) get the lowest severity.
        """
        magnitude = abs(zscore)
        severity = self.severity_breakpoints[0].severity
        for bp in self.severity_breakpoints:
            if magnitude >= bp.min_abs_zscore:
                severity = bp.severity
        return severity


class RuleSet(BaseModel):
    """All rules for a run, keyed by metric name."""

    rules: dict[str, AnomalyRule] = Field(default_factory=dict)

    def get(self, metric: str) -> AnomalyRule | None:
        return self.rules.get(metric)

    def enabled(self) -> list[AnomalyRule]:
        return [r for r in self.rules.values() if r.enabled]

    def merged(self, overrides: list[dict[str, Any]]) -> "RuleSet":
        """Return a copy with per-metric fields from ``overrides`` applied."""
        rules = dict(self.rules)
        for raw in overrides:
            metric = raw["metric"]
            base = rules.get(metric)
            data = base.model_dump() if base is not None else {}
            data.update(raw)
            if base is not None and "alert_type" not in raw:
                data["alert_type"] = base.alert_type
            rules[metric] = AnomalyRule.model_validate(data)
        return RuleSet(rules=rules)


def default_rule_set(threshold: float = DEFAULT_THRESHOLD) -> RuleSet:
    """Built-in rules for the default metrics. All are increase-only."""
    rules = [
        AnomalyRule(
            metric="tickets_total",
            threshold=threshold,
            alert_type="tickets_spike",
            alert_types_by_level={
                "queue": "queue_spike",
                "tag": "tag_spike",
                "customer": "customer_spike",
            },
        ),
        AnomalyRule(
            metric="high_rate",
            threshold=threshold,
            alert_type="high_rate_spike",
        ),
        AnomalyRule(
            metric="auth_failures",
            threshold=threshold,
            alert_type="auth_fail_spike",
        ),
        AnomalyRule(
            metric="refund_requests",
            threshold=threshold,
            alert_type="refund_spike",
        ),
        AnomalyRule(
            metric="product_errors",
            threshold=threshold,
            alert_type="product_error_spike",
        ),
    ]
    return RuleSet(rules={r.metric: r for r in rules})


def load_rule_set(
    default_threshold: float = DEFAULT_THRESHOLD,
    rules_file: str | Path | None = None,
) -> RuleSet:
    """Load the rule set for a run.

    Args:
        default_threshold: Threshold for built-in rules.
        rules_file: Optional JSON file with a ``rules`` list (or a bare list)
            of per-metric overrides.

    Returns:
        RuleSet with overrides applied.
    """
    rule_set = default_rule_set(default_threshold)
    if rules_file is None:
        return rule_set

    path = Path(rules_file)
    raw = json.loads(path.read_text(encoding="utf-8"))
    overrides = raw.get("rules", []) if isinstance(raw, dict) else raw
    if not isinstance(overrides, list):
        raise ValueError(f"{path}: expected a list of rules")

    rule_set = rule_set.merged(overrides)
    logger.info("Loaded %d rule override(s) from %s", len(overrides), path)
    return rule_set
