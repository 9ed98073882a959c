"""Tests for AlertRepository with mocked Database."""

import json
import math
from datetime import datetime, timezone

import pytest

from src.alerts.repository import (
    MAX_UPSERT_ATTEMPTS,
    AlertRepository,
    DuplicateAlertRace,
    _row_to_alert,
)
from src.alerts.schemas import Alert

BUCKET = datetime(2026, 3, 15, tzinfo=timezone.utc)


@pytest.fixture
def repo(mock_db):
    return AlertRepository(mock_db)


def _make_db_row(**overrides):
    """Create a mock asyncpg Record as a dict."""
    row = {
        "alert_id": 11,
        "created_at": datetime(2026, 3, 16, 0, 5, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 3, 16, 0, 5, tzinfo=timezone.utc),
        "alert_time": BUCKET,
        "alert_type": "tickets_spike",
        "level": "global",
        "metric": "tickets_total",
        "value": 50.0,
        "zscore": math.inf,
        "window_size": 14,
        "severity": "critical",
        "status": "open",
        "details": {"baseline_mean": 10.0},
        "acknowledged_at": None,
        "closed_at": None,
    }
    row.update(overrides)
    return row


def _alert():
    return Alert(
        alert_type="tickets_spike", level="global", metric="tickets_total",
        alert_time=BUCKET, value=50.0, zscore=math.inf, severity="critical",
        details={"baseline_mean": 10.0},
    )


class TestRowToAlert:
    """Test the module-level _row_to_alert helper."""

    def test_basic_conversion(self):
        alert = _row_to_alert(_make_db_row())
        assert alert.alert_id == 11
        assert alert.zscore == math.inf
        assert alert.status == "open"

    def test_details_as_string(self):
        alert = _row_to_alert(_make_db_row(details='{"key": "val"}'))
        assert alert.details == {"key": "val"}


class TestUpsertOpen:
    """Tests for the dedup write."""

    @pytest.mark.asyncio
    async def test_inserted_when_no_active_alert(self, repo, mock_db):
        mock_db.fetchrow.return_value = _make_db_row()

        alert, created = await repo.upsert_open(_alert())

        assert created is True
        assert alert.alert_id == 11
        sql, *params = mock_db.fetchrow.call_args.args
        assert "ON CONFLICT (alert_type, level, metric, alert_time)" in sql
        assert "DO NOTHING" in sql
        assert json.loads(params[8]) == {"baseline_mean": 10.0}

    @pytest.mark.asyncio
    async def test_existing_active_alert_is_noop(self, repo, mock_db):
        existing = _make_db_row(status="acknowledged")
        mock_db.fetchrow.side_effect = [None, existing]

        alert, created = await repo.upsert_open(_alert())

        assert created is False
        assert alert.status == "acknowledged"
        assert mock_db.fetchrow.call_count == 2

    @pytest.mark.asyncio
    async def test_retries_when_conflicting_row_vanishes(self, repo, mock_db):
        mock_db.fetchrow.side_effect = [None, None, _make_db_row()]

        alert, created = await repo.upsert_open(_alert())

        assert created is True

    @pytest.mark.asyncio
    async def test_raises_when_key_never_settles(self, repo, mock_db):
        mock_db.fetchrow.return_value = None

        with pytest.raises(DuplicateAlertRace):
            await repo.upsert_open(_alert())

        assert mock_db.fetchrow.call_count == 2 * MAX_UPSERT_ATTEMPTS


class TestLifecycle:
    """Tests for acknowledge / close / auto_close."""

    @pytest.mark.asyncio
    async def test_acknowledge(self, repo, mock_db):
        mock_db.fetchval.return_value = 11
        assert await repo.acknowledge(11) is True
        sql = mock_db.fetchval.call_args.args[0]
        assert "COALESCE(acknowledged_at, NOW())" in sql
        assert "status IN ('open', 'acknowledged')" in sql

    @pytest.mark.asyncio
    async def test_acknowledge_closed_returns_false(self, repo, mock_db):
        mock_db.fetchval.return_value = None
        assert await repo.acknowledge(11) is False

    @pytest.mark.asyncio
    async def test_operator_close(self, repo, mock_db):
        mock_db.fetchval.return_value = 11
        assert await repo.close(11) is True
        assert '"closed_by": "operator"' in mock_db.fetchval.call_args.args[0]

    @pytest.mark.asyncio
    async def test_auto_close_only_open(self, repo, mock_db):
        mock_db.fetch.return_value = [{"alert_id": 3}]
        closed = await repo.auto_close([3, 4])
        assert closed == [3]
        sql, ids = mock_db.fetch.call_args.args
        assert "status = 'open'" in sql
        assert ids == [3, 4]

    @pytest.mark.asyncio
    async def test_auto_close_empty_is_noop(self, repo, mock_db):
        assert await repo.auto_close([]) == []
        mock_db.fetch.assert_not_called()


class TestListAlerts:
    """Tests for the dynamic listing query."""

    @pytest.mark.asyncio
    async def test_no_filters(self, repo, mock_db):
        mock_db.fetch.return_value = [_make_db_row()]
        alerts = await repo.list_alerts()
        assert len(alerts) == 1
        sql, *params = mock_db.fetch.call_args.args
        assert "WHERE" not in sql
        assert params == [50, 0]

    @pytest.mark.asyncio
    async def test_filters_numbered_in_order(self, repo, mock_db):
        since = datetime(2026, 3, 1, tzinfo=timezone.utc)
        await repo.list_alerts(status="open", level="queue:Billing", since=since, limit=5)
        sql, *params = mock_db.fetch.call_args.args
        assert "status = $1" in sql
        assert "level = $2" in sql
        assert "alert_time >= $3" in sql
        assert "LIMIT $4 OFFSET $5" in sql
        assert params == ["open", "queue:Billing", since, 5, 0]

    @pytest.mark.asyncio
    async def test_invalid_status(self, repo):
        with pytest.raises(ValueError, match="Invalid status"):
            await repo.list_alerts(status="resolved")

    @pytest.mark.asyncio
    async def test_open_for_series_window(self, repo, mock_db):
        since = datetime(2026, 3, 14, tzinfo=timezone.utc)
        await repo.list_open_for_series("tickets_spike", "global", "tickets_total", since, BUCKET)
        sql, *params = mock_db.fetch.call_args.args
        assert "alert_time >= $4 AND alert_time <= $5" in sql
        assert params == ["tickets_spike", "global", "tickets_total", since, BUCKET]

    @pytest.mark.asyncio
    async def test_closed_buckets(self, repo, mock_db):
        since = datetime(2026, 3, 8, tzinfo=timezone.utc)
        mock_db.fetch.return_value = [{"alert_time": since}, {"alert_time": BUCKET}]

        result = await repo.closed_buckets("tickets_spike", "global", "tickets_total", since, BUCKET)

        assert result == {since, BUCKET}
        sql, *params = mock_db.fetch.call_args.args
        assert "status = 'closed'" in sql
        assert "alert_time >= $4 AND alert_time < $5" in sql
        assert params == ["tickets_spike", "global", "tickets_total", since, BUCKET]
