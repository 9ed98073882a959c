"""Pytest fixtures for risk-monitor tests."""

from datetime import datetime, timedelta, timezone
from itertools import count
from unittest.mock import AsyncMock

import pytest

from src.alerts.schemas import ACTIVE_STATUSES, Alert, AlertKey
from src.config.settings import get_settings
from src.series.buckets import TimeRange
from src.series.levels import GLOBAL, Level
from src.series.schemas import MetricPoint, MetricSeries

BASE_DAY = datetime(2026, 3, 1, tzinfo=timezone.utc)


def day(n: int) -> datetime:
    """UTC midnight ``n`` days after the fixture base day."""
    return BASE_DAY + timedelta(days=n)


def make_series(
    values: list[float],
    metric: str = "tickets_total",
    level: Level = GLOBAL,
    start: datetime = BASE_DAY,
) -> MetricSeries:
    """Daily series starting at ``start`` with one point per value."""
    return MetricSeries(
        metric=metric,
        level=level,
        granularity="day",
        points=[
            MetricPoint(bucket_start=start + timedelta(days=i), value=float(v))
            for i, v in enumerate(values)
        ],
    )


class InMemoryAlertStore:
    """Alert repository double backed by a list.

    Mirrors the partial unique index: at most one open/acknowledged row
    per ``(alert_type, level, metric, alert_time)``; closed rows do not
    count.
    """

    def __init__(self) -> None:
        self.rows: list[Alert] = []
        self._ids = count(1)

    def active(self) -> list[Alert]:
        return [a for a in self.rows if a.status in ACTIVE_STATUSES]

    async def get_active(self, key: AlertKey) -> Alert | None:
        for alert in self.rows:
            if alert.key == key and alert.status in ACTIVE_STATUSES:
                return alert
        return None

    async def upsert_open(self, alert: Alert) -> tuple[Alert, bool]:
        existing = await self.get_active(alert.key)
        if existing is not None:
            return existing, False
        alert.alert_id = next(self._ids)
        alert.status = "open"
        self.rows.append(alert)
        return alert, True

    async def get_by_id(self, alert_id: int) -> Alert | None:
        return next((a for a in self.rows if a.alert_id == alert_id), None)

    async def list_open_for_series(
        self,
        alert_type: str,
        level: str,
        metric: str,
        since: datetime,
        until: datetime,
    ) -> list[Alert]:
        return sorted(
            (
                a for a in self.rows
                if a.status == "open"
                and (a.alert_type, a.level, a.metric) == (alert_type, level, metric)
                and since <= a.alert_time <= until
            ),
            key=lambda a: a.alert_time,
        )

    async def closed_buckets(
        self,
        alert_type: str,
        level: str,
        metric: str,
        since: datetime,
        until: datetime,
    ) -> set[datetime]:
        return {
            a.alert_time for a in self.rows
            if a.status == "closed"
            and (a.alert_type, a.level, a.metric) == (alert_type, level, metric)
            and since <= a.alert_time < until
        }

    async def acknowledge(self, alert_id: int) -> bool:
        alert = await self.get_by_id(alert_id)
        if alert is None or alert.status == "closed":
            return False
        alert.status = "acknowledged"
        alert.acknowledged_at = alert.acknowledged_at or datetime.now(timezone.utc)
        return True

    async def close(self, alert_id: int) -> bool:
        alert = await self.get_by_id(alert_id)
        if alert is None or alert.status == "closed":
            return False
        alert.status = "closed"
        alert.closed_at = datetime.now(timezone.utc)
        alert.details["closed_by"] = "operator"
        return True

    async def auto_close(self, alert_ids: list[int]) -> list[int]:
        closed = []
        for alert in self.rows:
            if alert.alert_id in alert_ids and alert.status == "open":
                alert.status = "closed"
                alert.closed_at = datetime.now(timezone.utc)
                alert.details["closed_by"] = "auto"
                closed.append(alert.alert_id)
        return closed


@pytest.fixture(autouse=True)
def fast_store_retries(monkeypatch):
    """Keep store retry backoff in the millisecond range."""
    monkeypatch.setenv("STORE_BASE_DELAY", "0.001")
    monkeypatch.setenv("STORE_MAX_RETRIES", "2")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mock_db() -> AsyncMock:
    """Database double; configure fetch/fetchrow/fetchval per test."""
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def spike_series() -> MetricSeries:
    """Fourteen flat days of 10 tickets followed by a day of 50."""
    return make_series([10.0] * 14 + [50.0])


@pytest.fixture
def week_range() -> TimeRange:
    return TimeRange(start=day(0), end=day(7), granularity="day")


@pytest.fixture
def series_factory():
    """The ``make_series`` helper, for tests that build their own series."""
    return make_series
