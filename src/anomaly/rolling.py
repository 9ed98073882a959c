"""Rolling Statistics Engine.

Trailing-window mean, standard deviation and z-score for every bucket of
a series. For bucket *i* the baseline is the ``window_size`` buckets
strictly before *i*, so a spike never inflates its own baseline.

Pure and stateless: the output depends only on the values passed in.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from src.series.schemas import MetricSeries

# z-score reported when the baseline is flat and the current value is above it
ZSCORE_POS_INF = math.inf


class DataGapError(Exception):
    """A series has fewer than ``window_size`` buckets before its latest bucket.

    Never raised by the engine itself: buckets without enough history get
    ``zscore=None``. The batch job records instances of this error in its
    run summary so gaps are visible without failing the run.
    """

    def __init__(self, metric: str, level: str, available: int, window_size: int) -> None:
        self.metric = metric
        self.level = level
        self.available = available
        self.window_size = window_size
        super().__init__(
            f"{metric}@{level}: {available} prior bucket(s) available, "
            f"window needs {window_size}"
        )


@dataclass(frozen=True)
class RollingStat:
    """Trailing statistics for one bucket.

    ``mean``/``stddev``/``zscore`` are None when fewer than ``window_size``
    buckets precede this one.
    """

    bucket_start: datetime
    value: float
    mean: float | None
    stddev: float | None
    zscore: float | None

    @property
    def has_baseline(self) -> bool:
        return self.zscore is not None


def compute_zscore(current: float, window: Sequence[float]) -> tuple[float, float, float]:
    """Z-score of ``current`` against a full trailing window.

    Uses the population standard deviation. A flat window (stddev 0)
    yields ``+inf`` when ``current`` exceeds the window's constant value
    and 0.0 otherwise.

    Args:
        current: Value of the bucket being scored.
        window: The preceding bucket values (non-empty).

    Returns:
        (mean, stddev, zscore)
    """
    arr = np.asarray(window, dtype=np.float64)
    if arr.size == 0:
        raise ValueError("window must not be empty")

    mean = float(arr.mean())
    stddev = float(arr.std())

    # Treat float noise from a constant window as zero spread
    if stddev <= 1e-12 * max(1.0, abs(mean)):
        stddev = 0.0
        zscore = ZSCORE_POS_INF if current > mean else 0.0
        return mean, stddev, zscore

    return mean, stddev, (current - mean) / stddev


def rolling_zscore(
    series: MetricSeries | Sequence[tuple[datetime, float]],
    window_size: int,
) -> list[RollingStat]:
    """Compute trailing-window statistics for every bucket.

    Args:
        series: A ``MetricSeries`` or ascending ``(bucket_start, value)`` pairs.
        window_size: Number of preceding buckets in each baseline.

    Returns:
        One ``RollingStat`` per input bucket, in the same order.

    Raises:
        ValueError: If ``window_size < 1`` or buckets are not strictly increasing.
    """
    if window_size < 1:
        raise ValueError("window_size must be >= 1")

    if isinstance(series, MetricSeries):
        pairs = [(p.bucket_start, p.value) for p in series.points]
    else:
        pairs = [(b, float(v)) for b, v in series]

    for (prev, _), (cur, _) in zip(pairs, pairs[1:]):
        if cur <= prev:
            raise ValueError(
                f"Buckets must be strictly increasing ({prev} then {cur})"
            )

    values = np.array([v for _, v in pairs], dtype=np.float64)
    stats: list[RollingStat] = []

    for i, (bucket, value) in enumerate(pairs):
        if i < window_size:
            stats.append(RollingStat(bucket, value, None, None, None))
            continue
        mean, stddev, zscore = compute_zscore(value, values[i - window_size:i])
        stats.append(RollingStat(bucket, value, mean, stddev, zscore))

    return stats


def latest_gap(
    series: MetricSeries,
    window_size: int,
) -> DataGapError | None:
    """Return a ``DataGapError`` if the series' latest bucket lacks history."""
    available = max(len(series) - 1, 0)
    if available >= window_size:
        return None
    return DataGapError(series.metric, str(series.level), available, window_size)
