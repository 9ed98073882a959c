"""Schema definitions for alert records.

Maps 1:1 to the ``alerts`` database table. Each alert is one incident of a
metric deviating at one partition level in one time bucket. The natural
key is ``(alert_type, level, metric, alert_time)``; at most one alert per
key may be active (open or acknowledged) at a time.

Lifecycle::

    open -> acknowledged -> closed   (operator)
    open -> closed                   (engine auto-resolution)

``closed`` is terminal. A recurrence after closure is a new alert row.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal, NamedTuple

if TYPE_CHECKING:
    from src.anomaly.evaluator import AnomalyEvent

AlertStatus = Literal["open", "acknowledged", "closed"]

VALID_STATUSES: frozenset[str] = frozenset({
    "open",
    "acknowledged",
    "closed",
})

ACTIVE_STATUSES: frozenset[str] = frozenset({"open", "acknowledged"})

AlertSeverity = Literal["critical", "warning"]

VALID_SEVERITIES: frozenset[str] = frozenset({
    "critical",
    "warning",
})


class AlertKey(NamedTuple):
    """Natural key of an alert."""

    alert_type: str
    level: str
    metric: str
    alert_time: datetime


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return round(value, 6)


@dataclass
class Alert:
    """A persisted alert record from the alerts table.

    Attributes:
        alert_type: What fired (tickets_spike, queue_spike, high_rate_spike, ...).
        level: Partition in text form (``global``, ``queue:Billing``, ...).
        metric: Metric name (tickets_total, high_rate, ...).
        alert_time: Start of the bucket where the anomaly occurred.
        value: Observed metric value in that bucket.
        zscore: Z-score against the trailing window; ``inf`` for a flat
            baseline that was exceeded.
        window_size: Number of trailing buckets in the baseline.
        severity: warning or critical.
        status: open, acknowledged or closed.
        details: JSONB payload (baseline mean/stddev, direction, ...).
        alert_id: Database identity, None until inserted.
    """

    alert_type: str
    level: str
    metric: str
    alert_time: datetime
    value: float
    zscore: float | None = None
    window_size: int = 14
    severity: str = "warning"
    status: str = "open"
    details: dict[str, Any] = field(default_factory=dict)
    alert_id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime | None = None
    acknowledged_at: datetime | None = None
    closed_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_STATUSES)}"
            )
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )

    @property
    def key(self) -> AlertKey:
        return AlertKey(self.alert_type, self.level, self.metric, self.alert_time)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @classmethod
    def from_event(cls, event: "AnomalyEvent") -> "Alert":
        """Build an open alert from an actionable anomaly event."""
        return cls(
            alert_type=event.alert_type,
            level=str(event.level),
            metric=event.metric,
            alert_time=event.bucket_start,
            value=event.value,
            zscore=event.zscore,
            window_size=event.window_size or 0,
            severity=event.severity or "warning",
            details={
                "baseline_mean": _finite_or_none(event.mean),
                "baseline_stddev": _finite_or_none(event.stddev),
                "direction": event.deviation,
                "zscore_infinite": event.zscore is not None and math.isinf(event.zscore),
                "level_kind": event.level.kind,
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary (non-finite z-scores become strings)."""
        zscore: float | str | None = self.zscore
        if zscore is not None and not math.isfinite(zscore):
            zscore = "inf" if zscore > 0 else "-inf"
        return {
            "alert_id": self.alert_id,
            "alert_type": self.alert_type,
            "level": self.level,
            "metric": self.metric,
            "alert_time": self.alert_time.isoformat(),
            "value": self.value,
            "zscore": zscore,
            "window_size": self.window_size,
            "severity": self.severity,
            "status": self.status,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
            "acknowledged_at": (
                self.acknowledged_at.isoformat() if self.acknowledged_at else None
            ),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        """Create an Alert from a dictionary produced by ``to_dict``.

        Args:
            data: Dictionary with alert fields.

        Returns:
            Alert instance.
        """

        def _dt(value: Any) -> datetime | None:
            if isinstance(value, str):
                return datetime.fromisoformat(value)
            return value

        details = data.get("details", {})
        if isinstance(details, str):
            details = json.loads(details)

        zscore = data.get("zscore")
        if isinstance(zscore, str):
            zscore = float(zscore)

        return cls(
            alert_id=data.get("alert_id"),
            alert_type=data["alert_type"],
            level=data["level"],
            metric=data["metric"],
            alert_time=_dt(data["alert_time"]),
            value=float(data["value"]),
            zscore=zscore,
            window_size=data.get("window_size", 14),
            severity=data.get("severity", "warning"),
            status=data.get("status", "open"),
            details=details,
            created_at=_dt(data.get("created_at")) or datetime.now(timezone.utc),
            acknowledged_at=_dt(data.get("acknowledged_at")),
            closed_at=_dt(data.get("closed_at")),
        )
