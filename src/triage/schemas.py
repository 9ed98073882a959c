"""Schema definitions for classifier output and stored predictions.

``Prediction`` maps 1:1 to the append-only ``predictions`` table. Several
predictions may exist per ticket; the newest by ``created_at`` is the one
the monitor counts.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Priority = Literal["low", "medium", "high"]

VALID_PRIORITIES: tuple[str, ...] = ("low", "medium", "high")

PolicyName = Literal["balanced", "safety"]

VALID_POLICIES: frozenset[str] = frozenset({"balanced", "safety"})


@dataclass(frozen=True)
class ClassifierOutput:
    """Raw output of the triage classifier for one ticket.

    Attributes:
        category: Predicted category (Billing, Bug, Account, Other, ...).
        priority: Argmax priority label, if the model reports one.
        priority_scores: Per-label scores; used for the argmax when
            ``priority`` is not given.
        proba_high: Probability of the ``high`` label, if available.
        category_score: Confidence of the category prediction.
    """

    category: str | None = None
    priority: str | None = None
    priority_scores: dict[str, float] | None = None
    proba_high: float | None = None
    category_score: float | None = None

    def __post_init__(self) -> None:
        if self.priority is not None and self.priority not in VALID_PRIORITIES:
            raise ValueError(
                f"Invalid priority {self.priority!r}. "
                f"Must be one of: {list(VALID_PRIORITIES)}"
            )
        if self.proba_high is not None and not (0.0 <= self.proba_high <= 1.0):
            raise ValueError(f"proba_high must be in [0, 1], got {self.proba_high}")
        if self.priority_scores:
            unknown = set(self.priority_scores) - set(VALID_PRIORITIES)
            if unknown:
                raise ValueError(f"Unknown priority labels in scores: {sorted(unknown)}")

    @property
    def argmax_priority(self) -> str:
        """The classifier's own priority decision."""
        if self.priority is not None:
            return self.priority
        if self.priority_scores:
            # Ties resolve toward the more severe label
            return max(
                self.priority_scores,
                key=lambda label: (self.priority_scores[label], VALID_PRIORITIES.index(label)),
            )
        raise ValueError("ClassifierOutput has neither priority nor priority_scores")

    @property
    def effective_proba_high(self) -> float | None:
        """``proba_high``, falling back to the ``high`` score if present."""
        if self.proba_high is not None:
            return self.proba_high
        if self.priority_scores and "high" in self.priority_scores:
            return self.priority_scores["high"]
        return None


@dataclass
class Prediction:
    """A persisted prediction record from the predictions table."""

    ticket_id: int
    model_name: str
    pred_priority: str
    policy: str = "balanced"
    model_version: str | None = None
    threshold_high: float | None = None
    pred_category: str | None = None
    proba_high: float | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    prediction_id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.pred_priority not in VALID_PRIORITIES:
            raise ValueError(
                f"Invalid pred_priority {self.pred_priority!r}. "
                f"Must be one of: {list(VALID_PRIORITIES)}"
            )
        if self.policy not in VALID_POLICIES:
            raise ValueError(
                f"Invalid policy {self.policy!r}. Must be one of: {sorted(VALID_POLICIES)}"
            )
        if isinstance(self.meta, str):
            self.meta = json.loads(self.meta)
