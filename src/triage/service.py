"""Apply the active prediction policy and persist the result."""

import logging

from src.observability.metrics import get_metrics
from src.triage.config import TriagePolicyConfig
from src.triage.policy import select_priority
from src.triage.repository import PredictionRepository
from src.triage.schemas import ClassifierOutput, Prediction

logger = logging.getLogger(__name__)


class TriageService:
    """Turn classifier output into stored predictions.

    The policy and model identity come from ``TriagePolicyConfig`` unless
    overridden per call. ``ConfigurationError`` from the selector is
    propagated; nothing is written for a misconfigured call. Without a
    repository only ``decide`` is usable.
    """

    def __init__(
        self,
        prediction_repo: PredictionRepository | None,
        config: TriagePolicyConfig | None = None,
    ) -> None:
        self._repo = prediction_repo
        self._config = config or TriagePolicyConfig()

    @property
    def config(self) -> TriagePolicyConfig:
        return self._config

    def decide(
        self,
        ticket_id: int,
        output: ClassifierOutput,
        policy: str | None = None,
        threshold_high: float | None = None,
    ) -> Prediction:
        """Build (but do not store) the prediction for ``output``."""
        policy = policy or self._config.policy
        if threshold_high is None:
            threshold_high = self._config.threshold_high

        priority = select_priority(output, policy, threshold_high)
        overridden = priority != output.argmax_priority

        get_metrics().record_priority(policy, priority, overridden)
        if overridden:
            logger.debug(
                "Safety policy raised priority %s -> %s (proba_high=%.3f, threshold=%.3f)",
                output.argmax_priority,
                priority,
                output.effective_proba_high,
                threshold_high,
            )

        return Prediction(
            ticket_id=ticket_id,
            model_name=self._config.model_name,
            model_version=self._config.model_version,
            policy=policy,
            threshold_high=threshold_high if policy == "safety" else None,
            pred_category=output.category,
            pred_priority=priority,
            proba_high=output.effective_proba_high,
            meta={"argmax_priority": output.argmax_priority},
        )

    async def record_prediction(
        self,
        ticket_id: int,
        output: ClassifierOutput,
        policy: str | None = None,
        threshold_high: float | None = None,
    ) -> Prediction:
        """Select the priority for a ticket and append it to predictions."""
        prediction = self.decide(ticket_id, output, policy, threshold_high)
        stored = await self._repo.insert(prediction)
        logger.info(
            "Recorded prediction %s for ticket %d: priority=%s policy=%s",
            stored.prediction_id,
            ticket_id,
            stored.pred_priority,
            stored.policy,
        )
        return stored
