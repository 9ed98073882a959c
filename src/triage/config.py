"""Prediction policy configuration.

All settings can be overridden via ``TRIAGE_*`` environment variables
(e.g. ``TRIAGE_POLICY=safety TRIAGE_THRESHOLD_HIGH=0.7``). Whether
``threshold_high`` is present for the safety policy is checked at call
time by ``select_priority``, which raises ``ConfigurationError``.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TriagePolicyConfig(BaseSettings):
    """Active prediction policy and model identity."""

    model_config = SettingsConfigDict(
        env_prefix="TRIAGE_",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    policy: Literal["balanced", "safety"] = Field(
        default="balanced",
        description="balanced trusts the classifier; safety biases toward high",
    )
    threshold_high: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="proba_high cutoff that forces priority=high (safety only)",
    )
    model_name: str = Field(
        default="t4_lr",
        description="Classifier identifier stored with each prediction",
    )
    model_version: str | None = Field(
        default=None,
        description="Classifier version stored with each prediction",
    )
