"""Alert repository: upsert-by-natural-key writes, lifecycle updates, listing.

Deduplication is enforced by the database: the partial unique index
``uq_alerts_active_key`` allows one active (open or acknowledged) row per
``(alert_type, level, metric, alert_time)``. ``upsert_open`` inserts with
``ON CONFLICT DO NOTHING`` and falls back to reading the active row, so two
overlapping runs can race freely without creating duplicates.
"""

import json
import logging
from datetime import datetime
from typing import Any

from src.alerts.schemas import VALID_STATUSES, Alert, AlertKey
from src.storage.database import Database

logger = logging.getLogger(__name__)

MAX_UPSERT_ATTEMPTS = 3


class DuplicateAlertRace(Exception):
    """The active row for a key kept changing under a concurrent writer.

    Raised only if neither the insert nor the follow-up read settles within
    ``MAX_UPSERT_ATTEMPTS`` tries (e.g. the conflicting row is closed between
    the two statements on every attempt).
    """

    def __init__(self, key: AlertKey) -> None:
        self.key = key
        super().__init__(
            f"Could not settle alert {key.alert_type}/{key.level}/{key.metric}"
            f"@{key.alert_time.isoformat()} after {MAX_UPSERT_ATTEMPTS} attempts"
        )


class AlertRepository:
    """Repository for alert persistence and querying."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def upsert_open(self, alert: Alert) -> tuple[Alert, bool]:
        """Insert ``alert`` as open unless an active alert exists for its key.

        Args:
            alert: Candidate alert (status is forced to open).

        Returns:
            ``(stored_alert, created)``. ``created`` is False when an active
            alert already represented the condition (no-op).

        Raises:
            DuplicateAlertRace: If the key could not be settled.
        """
        sql = """
            INSERT INTO alerts (
                alert_time, alert_type, level, metric, value, zscore,
                window_size, severity, status, details, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, 'open', $9, $10, $10)
            ON CONFLICT (alert_type, level, metric, alert_time)
                WHERE status IN ('open', 'acknowledged')
            DO NOTHING
            RETURNING *
        """
        for _ in range(MAX_UPSERT_ATTEMPTS):
            row = await self._db.fetchrow(
                sql,
                alert.alert_time,
                alert.alert_type,
                alert.level,
                alert.metric,
                alert.value,
                alert.zscore,
                alert.window_size,
                alert.severity,
                json.dumps(alert.details),
                alert.created_at,
            )
            if row is not None:
                return _row_to_alert(row), True

            existing = await self.get_active(alert.key)
            if existing is not None:
                return existing, False

            logger.debug("Active alert for %s vanished between statements, retrying", alert.key)

        raise DuplicateAlertRace(alert.key)

    async def get_by_id(self, alert_id: int) -> Alert | None:
        """Get an alert by ID."""
        row = await self._db.fetchrow("SELECT * FROM alerts WHERE alert_id = $1", alert_id)
        if row is None:
            return None
        return _row_to_alert(row)

    async def get_active(self, key: AlertKey) -> Alert | None:
        """Get the open or acknowledged alert for a natural key, if any."""
        sql = """
            SELECT * FROM alerts
            WHERE alert_type = $1 AND level = $2 AND metric = $3 AND alert_time = $4
              AND status IN ('open', 'acknowledged')
        """
        row = await self._db.fetchrow(sql, *key)
        if row is None:
            return None
        return _row_to_alert(row)

    async def list_open_for_series(
        self,
        alert_type: str,
        level: str,
        metric: str,
        since: datetime,
        until: datetime,
    ) -> list[Alert]:
        """Open alerts of one series with ``since <= alert_time <= until``."""
        sql = """
            SELECT * FROM alerts
            WHERE alert_type = $1 AND level = $2 AND metric = $3
              AND status = 'open'
              AND alert_time >= $4 AND alert_time <= $5
            ORDER BY alert_time
        """
        rows = await self._db.fetch(sql, alert_type, level, metric, since, until)
        return [_row_to_alert(row) for row in rows]

    async def closed_buckets(
        self,
        alert_type: str,
        level: str,
        metric: str,
        since: datetime,
        until: datetime,
    ) -> set[datetime]:
        """Buckets of one series in ``[since, until)`` that have a closed alert."""
        sql = """
            SELECT DISTINCT alert_time FROM alerts
            WHERE alert_type = $1 AND level = $2 AND metric = $3
              AND status = 'closed'
              AND alert_time >= $4 AND alert_time < $5
        """
        rows = await self._db.fetch(sql, alert_type, level, metric, since, until)
        return {row["alert_time"] for row in rows}

    async def list_alerts(
        self,
        *,
        status: str | None = None,
        alert_type: str | None = None,
        level: str | None = None,
        metric: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        """List alerts with optional filtering.

        Uses a dynamic SQL builder with incremental param_idx.

        Args:
            status: Filter by lifecycle status.
            alert_type: Filter by alert type.
            level: Filter by level text (``global``, ``queue:Billing``).
            metric: Filter by metric name.
            since: Only alerts with ``alert_time >= since``.
            until: Only alerts with ``alert_time < until``.
            limit: Maximum alerts to return.
            offset: Offset for pagination.

        Returns:
            Alerts ordered by alert_time descending, then newest first.
        """
        if status is not None and status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status {status!r}. Must be one of: {sorted(VALID_STATUSES)}"
            )

        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        for column, op, value in (
            ("status", "=", status),
            ("alert_type", "=", alert_type),
            ("level", "=", level),
            ("metric", "=", metric),
            ("alert_time", ">=", since),
            ("alert_time", "<", until),
        ):
            if value is None:
                continue
            conditions.append(f"{column} {op} ${param_idx}")
            params.append(value)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        sql = f"""
            SELECT * FROM alerts
            {where_clause}
            ORDER BY alert_time DESC, alert_id DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_alert(row) for row in rows]

    async def acknowledge(self, alert_id: int) -> bool:
        """Mark an alert as acknowledged.

        Idempotent: acknowledging an already acknowledged alert succeeds
        without changing ``acknowledged_at``.

        Returns:
            True if the alert is now acknowledged, False if it does not
            exist or is already closed.
        """
        sql = """
            UPDATE alerts
            SET status = 'acknowledged',
                acknowledged_at = COALESCE(acknowledged_at, NOW()),
                updated_at = NOW()
            WHERE alert_id = $1 AND status IN ('open', 'acknowledged')
            RETURNING alert_id
        """
        result = await self._db.fetchval(sql, alert_id)
        return result is not None

    async def close(self, alert_id: int) -> bool:
        """Operator close (from open or acknowledged).

        Returns:
            True if the alert transitioned to closed, False if it does not
            exist or was already closed.
        """
        sql = """
            UPDATE alerts
            SET status = 'closed',
                closed_at = NOW(),
                updated_at = NOW(),
                details = details || '{"closed_by": "operator"}'::jsonb
            WHERE alert_id = $1 AND status IN ('open', 'acknowledged')
            RETURNING alert_id
        """
        result = await self._db.fetchval(sql, alert_id)
        return result is not None

    async def auto_close(self, alert_ids: list[int]) -> list[int]:
        """Engine auto-resolution: close still-open alerts.

        Acknowledged alerts are left to the operator.

        Returns:
            IDs that were actually closed.
        """
        if not alert_ids:
            return []
        sql = """
            UPDATE alerts
            SET status = 'closed',
                closed_at = NOW(),
                updated_at = NOW(),
                details = details || '{"closed_by": "auto"}'::jsonb
            WHERE alert_id = ANY($1::bigint[]) AND status = 'open'
            RETURNING alert_id
        """
        rows = await self._db.fetch(sql, alert_ids)
        return [row["alert_id"] for row in rows]


def _row_to_alert(row: Any) -> Alert:
    """Convert an asyncpg Record to an Alert."""
    details = row.get("details") or {}
    if isinstance(details, str):
        details = json.loads(details)

    return Alert(
        alert_id=row["alert_id"],
        alert_type=row["alert_type"],
        level=row["level"],
        metric=row["metric"],
        alert_time=row["alert_time"],
        value=row["value"],
        zscore=row.get("zscore"),
        window_size=row.get("window_size", 14),
        severity=row.get("severity", "warning"),
        status=row.get("status", "open"),
        details=details,
        created_at=row["created_at"],
        updated_at=row.get("updated_at"),
        acknowledged_at=row.get("acknowledged_at"),
        closed_at=row.get("closed_at"),
    )
