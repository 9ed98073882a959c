"""Prediction repository: append-only inserts and history reads."""

import json
import logging
from typing import Any

from src.storage.database import Database
from src.triage.schemas import Prediction

logger = logging.getLogger(__name__)


class PredictionRepository:
    """Repository for the append-only ``predictions`` table.

    There is no update or delete: a new classification of a ticket is a
    new row, and the newest row is the ticket's current prediction.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def insert(self, prediction: Prediction) -> Prediction:
        """Append a prediction.

        Returns:
            The stored prediction with its ``prediction_id``.
        """
        sql = """
            INSERT INTO predictions (
                ticket_id, created_at, model_name, model_version, policy,
                threshold_high, pred_category, pred_priority, proba_high, meta
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            prediction.ticket_id,
            prediction.created_at,
            prediction.model_name,
            prediction.model_version,
            prediction.policy,
            prediction.threshold_high,
            prediction.pred_category,
            prediction.pred_priority,
            prediction.proba_high,
            json.dumps(prediction.meta) if prediction.meta else None,
        )
        return _row_to_prediction(row)

    async def latest_for_ticket(self, ticket_id: int) -> Prediction | None:
        """The ticket's current prediction (newest by created_at)."""
        sql = """
            SELECT * FROM predictions
            WHERE ticket_id = $1
            ORDER BY created_at DESC, prediction_id DESC
            LIMIT 1
        """
        row = await self._db.fetchrow(sql, ticket_id)
        if row is None:
            return None
        return _row_to_prediction(row)

    async def history_for_ticket(self, ticket_id: int, limit: int = 50) -> list[Prediction]:
        """All predictions for a ticket, newest first."""
        sql = """
            SELECT * FROM predictions
            WHERE ticket_id = $1
            ORDER BY created_at DESC, prediction_id DESC
            LIMIT $2
        """
        rows = await self._db.fetch(sql, ticket_id, limit)
        return [_row_to_prediction(row) for row in rows]


def _row_to_prediction(row: Any) -> Prediction:
    """Convert an asyncpg Record to a Prediction."""
    meta = row.get("meta") or {}
    if isinstance(meta, str):
        meta = json.loads(meta)

    return Prediction(
        prediction_id=row["prediction_id"],
        ticket_id=row["ticket_id"],
        created_at=row["created_at"],
        model_name=row["model_name"],
        model_version=row.get("model_version"),
        policy=row.get("policy", "balanced"),
        threshold_high=row.get("threshold_high"),
        pred_category=row.get("pred_category"),
        pred_priority=row["pred_priority"],
        proba_high=row.get("proba_high"),
        meta=meta,
    )
