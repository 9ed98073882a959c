"""Alert materialization and lifecycle for metric anomalies.

Components:
- Alert / AlertKey: Dataclass mapping to the alerts table and its natural key
- AlertConfig: Pydantic settings for auto-resolution
- AlertRepository: Upsert-by-key writes, lifecycle updates, listing
- AlertMaterializer: Dedup + auto-close orchestration over anomaly events
- DuplicateAlertRace: Raised if a key cannot be settled under contention
- VALID_STATUSES / VALID_SEVERITIES: Frozensets for runtime validation
"""

from src.alerts.config import AlertConfig
from src.alerts.materializer import AlertMaterializer, MaterializeResult
from src.alerts.repository import AlertRepository, DuplicateAlertRace
from src.alerts.schemas import (
    ACTIVE_STATUSES,
    VALID_SEVERITIES,
    VALID_STATUSES,
    Alert,
    AlertKey,
    AlertSeverity,
    AlertStatus,
)

__all__ = [
    "ACTIVE_STATUSES",
    "Alert",
    "AlertConfig",
    "AlertKey",
    "AlertMaterializer",
    "AlertRepository",
    "AlertSeverity",
    "AlertStatus",
    "DuplicateAlertRace",
    "MaterializeResult",
    "VALID_SEVERITIES",
    "VALID_STATUSES",
]
