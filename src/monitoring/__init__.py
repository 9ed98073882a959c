"""Batch anomaly monitoring over ticket and event metrics.

Usage:
    from src.monitoring import run_monitoring

    summary = await run_monitoring(database)
    if summary.degraded:
        print(summary.errors)
"""

from src.monitoring.config import MonitorConfig
from src.monitoring.job import run_monitoring
from src.monitoring.schemas import MonitorRunSummary, PartitionOutcome, PartitionResult

__all__ = [
    "MonitorConfig",
    "MonitorRunSummary",
    "PartitionOutcome",
    "PartitionResult",
    "run_monitoring",
]
