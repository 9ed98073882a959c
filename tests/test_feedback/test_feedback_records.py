"""Tests for feedback records and the read-only repository."""

from datetime import datetime, timezone

import pytest

from src.feedback.repository import FeedbackRepository, _row_to_feedback
from src.feedback.schemas import Feedback

CREATED = datetime(2026, 3, 12, 14, 0, tzinfo=timezone.utc)


def _make_db_row(**overrides):
    row = {
        "feedback_id": 3,
        "ticket_id": 5,
        "created_at": CREATED,
        "user_category": "Billing",
        "user_priority": "high",
        "comment": "customer was double charged",
    }
    row.update(overrides)
    return row


class TestFeedback:
    """Tests for the Feedback dataclass."""

    def test_optional_corrections(self):
        fb = Feedback(ticket_id=5, user_category="Account")
        assert fb.user_priority is None
        assert fb.feedback_id is None

    def test_invalid_priority(self):
        with pytest.raises(ValueError, match="Invalid user_priority"):
            Feedback(ticket_id=5, user_priority="urgent")

    def test_row_conversion(self):
        fb = _row_to_feedback(_make_db_row())
        assert fb.feedback_id == 3
        assert fb.user_priority == "high"


class TestFeedbackRepository:
    """Tests for feedback reads."""

    @pytest.mark.asyncio
    async def test_list_by_ticket(self, mock_db):
        mock_db.fetch.return_value = [_make_db_row()]
        result = await FeedbackRepository(mock_db).list_by_ticket(5, limit=10)

        assert len(result) == 1
        sql, *params = mock_db.fetch.call_args.args
        assert "WHERE ticket_id = $1" in sql
        assert params == [5, 10, 0]

    @pytest.mark.asyncio
    async def test_list_since(self, mock_db):
        since = datetime(2026, 3, 1, tzinfo=timezone.utc)
        await FeedbackRepository(mock_db).list_since(since)

        sql, *params = mock_db.fetch.call_args.args
        assert "created_at >= $1" in sql
        assert "LIMIT $2" in sql
        assert params == [since, 1000]

    @pytest.mark.asyncio
    async def test_list_since_with_until(self, mock_db):
        since = datetime(2026, 3, 1, tzinfo=timezone.utc)
        await FeedbackRepository(mock_db).list_since(since, until=CREATED, limit=5)

        sql, *params = mock_db.fetch.call_args.args
        assert "created_at < $2" in sql
        assert "LIMIT $3" in sql
        assert params == [since, CREATED, 5]
