"""Tests for TriageService and PredictionRepository."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.triage.config import TriagePolicyConfig
from src.triage.policy import ConfigurationError
from src.triage.repository import PredictionRepository, _row_to_prediction
from src.triage.schemas import ClassifierOutput, Prediction
from src.triage.service import TriageService

CREATED = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


def _make_db_row(**overrides):
    row = {
        "prediction_id": 21,
        "ticket_id": 5,
        "created_at": CREATED,
        "model_name": "t4_lr",
        "model_version": "v3",
        "policy": "safety",
        "threshold_high": 0.7,
        "pred_category": "Billing",
        "pred_priority": "high",
        "proba_high": 0.85,
        "meta": '{"argmax_priority": "medium"}',
    }
    row.update(overrides)
    return row


class TestPredictionRepository:
    """Tests for the append-only prediction store."""

    def test_row_to_prediction(self):
        prediction = _row_to_prediction(_make_db_row())
        assert prediction.prediction_id == 21
        assert prediction.meta == {"argmax_priority": "medium"}

    @pytest.mark.asyncio
    async def test_insert(self, mock_db):
        mock_db.fetchrow.return_value = _make_db_row()
        repo = PredictionRepository(mock_db)

        stored = await repo.insert(Prediction(ticket_id=5, model_name="t4_lr", pred_priority="high"))

        assert stored.prediction_id == 21
        sql = mock_db.fetchrow.call_args.args[0]
        assert sql.strip().startswith("INSERT INTO predictions")

    @pytest.mark.asyncio
    async def test_latest_orders_by_created_at(self, mock_db):
        mock_db.fetchrow.return_value = _make_db_row()
        repo = PredictionRepository(mock_db)

        latest = await repo.latest_for_ticket(5)

        assert latest.pred_priority == "high"
        assert "ORDER BY created_at DESC" in mock_db.fetchrow.call_args.args[0]

    @pytest.mark.asyncio
    async def test_latest_none(self, mock_db):
        assert await PredictionRepository(mock_db).latest_for_ticket(5) is None

    @pytest.mark.asyncio
    async def test_history(self, mock_db):
        mock_db.fetch.return_value = [_make_db_row(), _make_db_row(prediction_id=20)]
        history = await PredictionRepository(mock_db).history_for_ticket(5)
        assert [p.prediction_id for p in history] == [21, 20]


class TestTriageService:
    """Tests for policy application and persistence."""

    @pytest.fixture
    def repo(self):
        repo = AsyncMock()
        repo.insert = AsyncMock(side_effect=lambda p: p)
        return repo

    @pytest.mark.asyncio
    async def test_records_safety_override(self, repo):
        config = TriagePolicyConfig(policy="safety", threshold_high=0.7, model_version="v3")
        service = TriageService(repo, config)

        stored = await service.record_prediction(
            5, ClassifierOutput(category="Billing", priority="medium", proba_high=0.85),
        )

        assert stored.pred_priority == "high"
        assert stored.policy == "safety"
        assert stored.threshold_high == 0.7
        assert stored.meta == {"argmax_priority": "medium"}
        assert stored.ticket_id == 5
        repo.insert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_balanced_drops_threshold(self, repo):
        service = TriageService(repo, TriagePolicyConfig(policy="balanced", threshold_high=0.7))
        stored = await service.record_prediction(5, ClassifierOutput(priority="low", proba_high=0.9))
        assert stored.pred_priority == "low"
        assert stored.threshold_high is None

    @pytest.mark.asyncio
    async def test_per_call_override(self, repo):
        service = TriageService(repo, TriagePolicyConfig())
        stored = await service.record_prediction(
            5, ClassifierOutput(priority="medium", proba_high=0.8), policy="safety", threshold_high=0.75,
        )
        assert stored.pred_priority == "high"

    @pytest.mark.asyncio
    async def test_misconfiguration_writes_nothing(self, repo):
        service = TriageService(repo, TriagePolicyConfig(policy="safety"))

        with pytest.raises(ConfigurationError):
            await service.record_prediction(5, ClassifierOutput(priority="medium", proba_high=0.9))

        repo.insert.assert_not_called()


class TestTriagePolicyConfig:
    """Tests for env-driven configuration."""

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TRIAGE_POLICY", "safety")
        monkeypatch.setenv("TRIAGE_THRESHOLD_HIGH", "0.65")
        config = TriagePolicyConfig()
        assert config.policy == "safety"
        assert config.threshold_high == 0.65

    def test_threshold_bounds(self):
        with pytest.raises(ValueError):
            TriagePolicyConfig(threshold_high=1.5)
