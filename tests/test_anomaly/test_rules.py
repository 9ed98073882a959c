"""Tests for anomaly rules and rule loading."""

import json

import pytest
from pydantic import ValidationError

from src.anomaly.rules import (
    AnomalyRule,
    SeverityBreakpoint,
    default_rule_set,
    load_rule_set,
)
from src.series.levels import GLOBAL, Level


class TestAnomalyRule:
    """Tests for AnomalyRule."""

    def test_default_alert_type_from_metric(self):
        assert AnomalyRule(metric="refunds").alert_type == "refunds_spike"

    def test_alert_type_per_level_kind(self):
        rule = default_rule_set().get("tickets_total")
        assert rule.alert_type_for(GLOBAL) == "tickets_spike"
        assert rule.alert_type_for(Level("queue", "Billing")) == "queue_spike"
        assert rule.alert_type_for(Level("customer", "7")) == "customer_spike"

    def test_severity_monotone_in_abs_z(self):
        rule = AnomalyRule(metric="m")
        assert rule.severity_for(2.0) == "warning"
        assert rule.severity_for(3.49) == "warning"
        assert rule.severity_for(3.5) == "critical"
        assert rule.severity_for(float("inf")) == "critical"
        assert rule.severity_for(-4.0) == "critical"

    def test_breakpoints_sorted(self):
        rule = AnomalyRule(
            metric="m",
            severity_breakpoints=[
                SeverityBreakpoint(min_abs_zscore=5.0, severity="critical"),
                SeverityBreakpoint(min_abs_zscore=2.0, severity="warning"),
            ],
        )
        assert [b.min_abs_zscore for b in rule.severity_breakpoints] == [2.0, 5.0]

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            AnomalyRule(metric="m", threshold=0)

    def test_invalid_direction(self):
        with pytest.raises(ValidationError):
            AnomalyRule(metric="m", direction="decrease")


class TestRuleSet:
    """Tests for the default rule set and overrides."""

    def test_defaults_use_given_threshold(self):
        rule_set = default_rule_set(threshold=3.0)
        assert all(r.threshold == 3.0 for r in rule_set.enabled())
        assert rule_set.get("high_rate").alert_type == "high_rate_spike"

    def test_merged_overrides_fields_only(self):
        rule_set = default_rule_set().merged([{"metric": "tickets_total", "threshold": 2.5}])
        rule = rule_set.get("tickets_total")
        assert rule.threshold == 2.5
        assert rule.alert_type == "tickets_spike"
        assert rule.alert_types_by_level["queue"] == "queue_spike"

    def test_disabled_rules_excluded(self):
        rule_set = default_rule_set().merged([{"metric": "product_errors", "enabled": False}])
        assert "product_errors" not in {r.metric for r in rule_set.enabled()}

    def test_load_rule_set_from_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [
            {"metric": "refund_requests", "direction": "both"},
            {"metric": "escalations", "threshold": 4.0},
        ]}))

        rule_set = load_rule_set(2.0, path)

        assert rule_set.get("refund_requests").direction == "both"
        assert rule_set.get("escalations").alert_type == "escalations_spike"

    def test_load_rule_set_rejects_non_list(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": {"metric": "x"}}))
        with pytest.raises(ValueError, match="expected a list"):
            load_rule_set(2.0, path)

    def test_load_without_file_is_defaults(self):
        assert load_rule_set(2.0).rules.keys() == default_rule_set().rules.keys()
