"""Bucket arithmetic for fixed-width UTC time buckets.

Bucket starts are aligned the same way PostgreSQL ``date_trunc`` aligns
them (weeks start on Monday), so buckets computed here line up with the
ones returned by the source queries.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

Granularity = Literal["hour", "day", "week"]

BUCKET_WIDTHS: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}


def bucket_width(granularity: str) -> timedelta:
    """Return the width of one bucket."""
    try:
        return BUCKET_WIDTHS[granularity]
    except KeyError:
        raise ValueError(
            f"Invalid granularity {granularity!r}. "
            f"Must be one of: {sorted(BUCKET_WIDTHS)}"
        ) from None


def to_utc(ts: datetime) -> datetime:
    """Make ``ts`` timezone-aware UTC (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def floor_bucket(ts: datetime, granularity: str) -> datetime:
    """Return the start of the bucket containing ``ts``."""
    bucket_width(granularity)
    ts = to_utc(ts)
    if granularity == "hour":
        return ts.replace(minute=0, second=0, microsecond=0)
    day = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    return day


@dataclass(frozen=True)
class TimeRange:
    """Half-open bucket-aligned range ``[start, end)``."""

    start: datetime
    end: datetime
    granularity: str = "day"

    def __post_init__(self) -> None:
        width = bucket_width(self.granularity)
        if self.start >= self.end:
            raise ValueError("TimeRange start must be before end")
        if floor_bucket(self.start, self.granularity) != self.start:
            raise ValueError(f"start {self.start} is not bucket-aligned")
        if (self.end - self.start) % width:
            raise ValueError("TimeRange must span a whole number of buckets")

    @classmethod
    def ending_at(
        cls,
        as_of: datetime,
        num_buckets: int,
        granularity: str = "day",
    ) -> "TimeRange":
        """Range of ``num_buckets`` complete buckets ending before ``as_of``'s bucket.

        The bucket containing ``as_of`` is still filling up and is excluded.
        """
        if num_buckets < 1:
            raise ValueError("num_buckets must be >= 1")
        end = floor_bucket(as_of, granularity)
        start = end - bucket_width(granularity) * num_buckets
        return cls(start=start, end=end, granularity=granularity)

    @property
    def width(self) -> timedelta:
        return bucket_width(self.granularity)

    @property
    def num_buckets(self) -> int:
        return (self.end - self.start) // self.width

    @property
    def latest_bucket(self) -> datetime:
        return self.end - self.width

    def buckets(self) -> list[datetime]:
        """All bucket starts in the range, ascending."""
        width = self.width
        return [self.start + width * i for i in range(self.num_buckets)]
