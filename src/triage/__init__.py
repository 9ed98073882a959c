"""Prediction policy selection and prediction persistence.

Components:
- ClassifierOutput / Prediction: Classifier result and stored prediction row
- select_priority: balanced / safety policy decision
- ConfigurationError: Raised for unknown policy or missing safety inputs
- TriagePolicyConfig: Pydantic settings for the active policy
- PredictionRepository: Append-only prediction writes and history reads
- TriageService: Applies the configured policy and stores the result
"""

from src.triage.config import TriagePolicyConfig
from src.triage.policy import ConfigurationError, select_priority
from src.triage.repository import PredictionRepository
from src.triage.schemas import (
    VALID_POLICIES,
    VALID_PRIORITIES,
    ClassifierOutput,
    Prediction,
)
from src.triage.service import TriageService

__all__ = [
    "ClassifierOutput",
    "ConfigurationError",
    "Prediction",
    "PredictionRepository",
    "TriagePolicyConfig",
    "TriageService",
    "VALID_POLICIES",
    "VALID_PRIORITIES",
    "select_priority",
]
