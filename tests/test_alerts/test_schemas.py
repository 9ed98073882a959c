"""Tests for alert schemas."""

import math
from datetime import datetime, timezone

import pytest

from src.alerts.schemas import ACTIVE_STATUSES, VALID_STATUSES, Alert, AlertKey
from src.anomaly.evaluator import AnomalyEvent
from src.series.levels import Level

BUCKET = datetime(2026, 3, 15, tzinfo=timezone.utc)


def _event(**overrides):
    fields = dict(
        metric="tickets_total",
        level=Level("queue", "Billing"),
        bucket_start=BUCKET,
        value=50.0,
        zscore=math.inf,
        mean=10.0,
        stddev=0.0,
        is_anomalous=True,
        actionable=True,
        severity="critical",
        alert_type="queue_spike",
        window_size=14,
    )
    fields.update(overrides)
    return AnomalyEvent(**fields)


class TestAlert:
    """Tests for the Alert dataclass."""

    def test_defaults(self):
        alert = Alert(
            alert_type="tickets_spike", level="global", metric="tickets_total",
            alert_time=BUCKET, value=30.0, zscore=2.5,
        )
        assert alert.status == "open"
        assert alert.severity == "warning"
        assert alert.is_active
        assert alert.key == AlertKey("tickets_spike", "global", "tickets_total", BUCKET)

    def test_invalid_status(self):
        with pytest.raises(ValueError, match="Invalid status"):
            Alert(
                alert_type="t", level="global", metric="m",
                alert_time=BUCKET, value=1.0, status="resolved",
            )

    def test_invalid_severity(self):
        with pytest.raises(ValueError, match="Invalid severity"):
            Alert(
                alert_type="t", level="global", metric="m",
                alert_time=BUCKET, value=1.0, severity="info",
            )

    def test_closed_not_active(self):
        assert "closed" in VALID_STATUSES
        assert "closed" not in ACTIVE_STATUSES


class TestFromEvent:
    """Tests for Alert.from_event."""

    def test_copies_key_fields(self):
        alert = Alert.from_event(_event())
        assert alert.key == AlertKey("queue_spike", "queue:Billing", "tickets_total", BUCKET)
        assert alert.severity == "critical"
        assert alert.window_size == 14
        assert alert.zscore == math.inf

    def test_details_only_hold_json_safe_values(self):
        alert = Alert.from_event(_event())
        assert alert.details["baseline_mean"] == 10.0
        assert alert.details["zscore_infinite"] is True
        assert alert.details["direction"] == "increase"
        assert alert.details["level_kind"] == "queue"
        assert all(
            not isinstance(v, float) or math.isfinite(v) for v in alert.details.values()
        )


class TestSerialization:
    """Tests for to_dict / from_dict."""

    def test_infinite_zscore_serialized_as_string(self):
        data = Alert.from_event(_event()).to_dict()
        assert data["zscore"] == "inf"
        assert data["alert_time"] == BUCKET.isoformat()

    def test_from_dict_restores_alert(self):
        original = Alert.from_event(_event())
        original.alert_id = 7
        restored = Alert.from_dict(original.to_dict())
        assert restored.alert_id == 7
        assert restored.key == original.key
        assert restored.zscore == math.inf
        assert restored.details == original.details
