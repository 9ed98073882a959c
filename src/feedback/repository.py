"""Feedback repository: read access for retraining exports.

Feedback rows are written by the agent-facing application; this side
only reads them back.
"""

import logging
from datetime import datetime
from typing import Any

from src.feedback.schemas import Feedback
from src.storage.database import Database

logger = logging.getLogger(__name__)


class FeedbackRepository:
    """Repository for querying ``feedback`` records."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_by_ticket(
        self,
        ticket_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Feedback]:
        """Get feedback for one ticket, newest first."""
        sql = """
            SELECT * FROM feedback
            WHERE ticket_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
        """
        rows = await self._db.fetch(sql, ticket_id, limit, offset)
        return [_row_to_feedback(row) for row in rows]

    async def list_since(
        self,
        since: datetime,
        *,
        until: datetime | None = None,
        limit: int = 1000,
    ) -> list[Feedback]:
        """Get feedback submitted in ``[since, until)``, oldest first.

        Args:
            since: Inclusive lower bound on created_at.
            until: Optional exclusive upper bound on created_at.
            limit: Maximum records to return.
        """
        conditions = ["created_at >= $1"]
        params: list[Any] = [since]
        param_idx = 2

        if until is not None:
            conditions.append(f"created_at < ${param_idx}")
            params.append(until)
            param_idx += 1

        where_clause = " AND ".join(conditions)
        sql = f"""
            SELECT * FROM feedback
            WHERE {where_clause}
            ORDER BY created_at ASC
            LIMIT ${param_idx}
        """
        params.append(limit)
        rows = await self._db.fetch(sql, *params)
        return [_row_to_feedback(row) for row in rows]


def _row_to_feedback(row: Any) -> Feedback:
    """Convert an asyncpg Record to a Feedback."""
    return Feedback(
        feedback_id=row["feedback_id"],
        ticket_id=row["ticket_id"],
        user_category=row.get("user_category"),
        user_priority=row.get("user_priority"),
        comment=row.get("comment"),
        created_at=row["created_at"],
    )
