"""Result types of a monitoring run.

Each (metric, level) partition produces a ``PartitionResult``; the run
collects them into a ``MonitorRunSummary`` that carries the totals the
CLI prints and the metrics exporter records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from src.anomaly.rolling import DataGapError
from src.series.buckets import TimeRange

PartitionOutcome = Literal["succeeded", "skipped", "failed"]

VALID_OUTCOMES: frozenset[str] = frozenset({"succeeded", "skipped", "failed"})


@dataclass
class PartitionResult:
    """Outcome of one (metric, level) partition.

    Attributes:
        metric: Metric name.
        level: Partition (``global``, ``queue:billing``...). When a whole
            level kind could not be read, the kind name alone.
        outcome: succeeded / skipped (store unavailable) / failed.
        anomalies: Buckets whose z-score crossed the threshold.
        actionable: Anomalous buckets that pass the rule's direction.
        alerts_created: New alerts written.
        alerts_existing: Actionable buckets that already had an active alert.
        alerts_closed: Open alerts auto-closed.
        data_gap: Set when the latest bucket lacks a full baseline.
        error: Error text for skipped/failed partitions.
        elapsed_seconds: Wall time spent on the partition.
    """

    metric: str
    level: str
    outcome: PartitionOutcome = "succeeded"
    anomalies: int = 0
    actionable: int = 0
    alerts_created: int = 0
    alerts_existing: int = 0
    alerts_closed: int = 0
    data_gap: DataGapError | None = None
    error: str | None = None
    elapsed_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.outcome not in VALID_OUTCOMES:
            raise ValueError(
                f"Invalid outcome {self.outcome!r}. "
                f"Must be one of: {sorted(VALID_OUTCOMES)}"
            )


@dataclass
class MonitorRunSummary:
    """Summary of one monitoring batch run."""

    as_of: datetime
    time_range: TimeRange
    dry_run: bool = False
    partitions: list[PartitionResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def add(self, result: PartitionResult) -> None:
        self.partitions.append(result)
        if result.error:
            self.errors.append(f"{result.metric}@{result.level}: {result.error}")

    def _count(self, outcome: str) -> int:
        return sum(1 for p in self.partitions if p.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self._count("succeeded")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def degraded(self) -> bool:
        """True if any partition was skipped or failed."""
        return self.skipped > 0 or self.failed > 0

    @property
    def alerts_created(self) -> int:
        return sum(p.alerts_created for p in self.partitions)

    @property
    def alerts_existing(self) -> int:
        return sum(p.alerts_existing for p in self.partitions)

    @property
    def alerts_closed(self) -> int:
        return sum(p.alerts_closed for p in self.partitions)

    @property
    def actionable(self) -> int:
        return sum(p.actionable for p in self.partitions)

    @property
    def data_gaps(self) -> list[DataGapError]:
        return [p.data_gap for p in self.partitions if p.data_gap is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "range_start": self.time_range.start.isoformat(),
            "range_end": self.time_range.end.isoformat(),
            "granularity": self.time_range.granularity,
            "dry_run": self.dry_run,
            "partitions_succeeded": self.succeeded,
            "partitions_skipped": self.skipped,
            "partitions_failed": self.failed,
            "actionable": self.actionable,
            "alerts_created": self.alerts_created,
            "alerts_existing": self.alerts_existing,
            "alerts_closed": self.alerts_closed,
            "data_gaps": [str(g) for g in self.data_gaps],
            "errors": list(self.errors),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }
