"""Schema definitions for metric series and the level selector."""

from dataclasses import dataclass, field
from datetime import datetime

from src.series.buckets import TimeRange, floor_bucket
from src.series.levels import VALID_LEVEL_KINDS, Level


@dataclass(frozen=True)
class MetricPoint:
    """One bucket of a metric series."""

    bucket_start: datetime
    value: float


@dataclass
class MetricSeries:
    """Gap-free, ascending series for one (metric, level) pair.

    Derived on every run from ticket/prediction/event facts; never stored.
    """

    metric: str
    level: Level
    granularity: str
    points: list[MetricPoint] = field(default_factory=list)

    def __post_init__(self) -> None:
        for prev, cur in zip(self.points, self.points[1:]):
            if cur.bucket_start <= prev.bucket_start:
                raise ValueError(
                    f"Series {self.metric}/{self.level} is not strictly "
                    f"increasing at {cur.bucket_start.isoformat()}"
                )

    def __len__(self) -> int:
        return len(self.points)

    @property
    def buckets(self) -> list[datetime]:
        return [p.bucket_start for p in self.points]

    @property
    def values(self) -> list[float]:
        return [p.value for p in self.points]

    @property
    def latest(self) -> MetricPoint | None:
        return self.points[-1] if self.points else None

    @classmethod
    def fill(
        cls,
        metric: str,
        level: Level,
        time_range: TimeRange,
        values: dict[datetime, float],
        zero: float = 0.0,
    ) -> "MetricSeries":
        """Build a series with one point per bucket of ``time_range``.

        Buckets absent from ``values`` get ``zero``; keys outside the range
        are ignored.
        """
        aligned = {
            floor_bucket(ts, time_range.granularity): v for ts, v in values.items()
        }
        points = [
            MetricPoint(bucket_start=b, value=float(aligned.get(b, zero)))
            for b in time_range.buckets()
        ]
        return cls(
            metric=metric,
            level=level,
            granularity=time_range.granularity,
            points=points,
        )


@dataclass(frozen=True)
class LevelSelector:
    """Which partitions to materialise for a metric.

    Attributes:
        kinds: Level kinds to include (``global`` always yields one series
            when it has any facts in range).
        top_n: Per-kind cap, ranked by volume within the range. Kinds not
            listed are uncapped.
    """

    kinds: tuple[str, ...] = ("global",)
    top_n: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.kinds) - VALID_LEVEL_KINDS
        if unknown:
            raise ValueError(f"Unknown level kinds: {sorted(unknown)}")

    def limit_for(self, kind: str) -> int | None:
        if kind == "global":
            return None
        return self.top_n.get(kind)
