"""Tests for rolling z-score statistics."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from src.anomaly.rolling import (
    DataGapError,
    compute_zscore,
    latest_gap,
    rolling_zscore,
)

START = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _pairs(values):
    return [(START + timedelta(days=i), float(v)) for i, v in enumerate(values)]


class TestComputeZscore:
    """Tests for the single-bucket z-score."""

    def test_population_stddev(self):
        mean, std, z = compute_zscore(14.0, [10, 12, 8, 10, 10])
        assert mean == pytest.approx(10.0)
        assert std == pytest.approx(math.sqrt(1.6))
        assert z == pytest.approx(4.0 / math.sqrt(1.6))

    def test_flat_window_spike_is_positive_infinity(self):
        _, std, z = compute_zscore(50.0, [10.0] * 14)
        assert std == 0.0
        assert z == math.inf

    def test_flat_window_equal_value_is_zero(self):
        _, _, z = compute_zscore(10.0, [10.0] * 14)
        assert z == 0.0

    def test_flat_window_drop_is_zero(self):
        _, _, z = compute_zscore(3.0, [10.0] * 14)
        assert z == 0.0

    def test_float_noise_treated_as_flat(self):
        _, std, z = compute_zscore(0.2, [0.1] * 10)
        assert std == 0.0
        assert z == math.inf

    def test_empty_window_rejected(self):
        with pytest.raises(ValueError):
            compute_zscore(1.0, [])


class TestRollingZscore:
    """Tests for trailing-window statistics over a series."""

    def test_first_window_buckets_have_no_score(self, spike_series):
        stats = rolling_zscore(spike_series, 14)
        assert len(stats) == 15
        assert all(s.zscore is None and not s.has_baseline for s in stats[:14])
        assert stats[14].zscore == math.inf

    def test_window_excludes_current_bucket(self):
        stats = rolling_zscore(_pairs([1, 2, 3, 100]), 3)
        last = stats[-1]
        assert last.mean == pytest.approx(2.0)
        assert last.zscore == pytest.approx((100 - 2.0) / math.sqrt(2 / 3))

    def test_window_slides(self):
        stats = rolling_zscore(_pairs([1, 2, 3, 4, 5]), 2)
        assert stats[2].mean == pytest.approx(1.5)
        assert stats[3].mean == pytest.approx(2.5)
        assert stats[4].mean == pytest.approx(3.5)

    def test_output_aligned_with_input(self, series_factory):
        series = series_factory([5, 6, 7, 8])
        stats = rolling_zscore(series, 2)
        assert [s.bucket_start for s in stats] == series.buckets
        assert [s.value for s in stats] == series.values

    def test_deterministic(self, series_factory):
        series = series_factory([3, 9, 4, 7, 12, 5, 30])
        assert rolling_zscore(series, 3) == rolling_zscore(series, 3)

    def test_sign_matches_deviation(self):
        stats = rolling_zscore(_pairs([10, 12, 8, 10, 10, 2]), 5)
        assert stats[-1].zscore < 0

    def test_non_increasing_buckets_rejected(self):
        pairs = _pairs([1, 2, 3])
        pairs[2] = pairs[1]
        with pytest.raises(ValueError, match="strictly increasing"):
            rolling_zscore(pairs, 1)

    def test_window_must_be_positive(self):
        with pytest.raises(ValueError):
            rolling_zscore(_pairs([1, 2]), 0)


class TestLatestGap:
    """Tests for data gap detection."""

    def test_short_series_reports_gap(self, series_factory):
        gap = latest_gap(series_factory([1, 2, 3]), 14)
        assert isinstance(gap, DataGapError)
        assert gap.available == 2
        assert gap.window_size == 14
        assert "tickets_total@global" in str(gap)

    def test_full_history_no_gap(self, spike_series):
        assert latest_gap(spike_series, 14) is None
