"""Metric source adapter: bucketed, gap-free series per partition level.

Components:
- Level / GLOBAL: Tagged partition value (global, queue, tag, customer)
- TimeRange / floor_bucket: UTC bucket arithmetic
- MetricDefinition / DEFAULT_METRICS: Metrics as data
- MetricSeries / MetricPoint / LevelSelector: Series schemas
- MetricSourceAdapter: Reads facts and builds series
"""

from src.series.buckets import TimeRange, bucket_width, floor_bucket
from src.series.definitions import DEFAULT_METRICS, MetricDefinition
from src.series.levels import GLOBAL, VALID_LEVEL_KINDS, Level
from src.series.schemas import LevelSelector, MetricPoint, MetricSeries
from src.series.source import MetricSourceAdapter

__all__ = [
    "DEFAULT_METRICS",
    "GLOBAL",
    "Level",
    "LevelSelector",
    "MetricDefinition",
    "MetricPoint",
    "MetricSeries",
    "MetricSourceAdapter",
    "TimeRange",
    "VALID_LEVEL_KINDS",
    "bucket_width",
    "floor_bucket",
]
