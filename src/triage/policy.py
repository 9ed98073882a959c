"""Prediction Policy Selector.

Turns raw classifier output into the priority that gets stored:

- ``balanced``: trust the classifier's argmax label.
- ``safety``: force ``high`` whenever ``proba_high >= threshold_high``,
  otherwise fall back to the argmax. Requires both a threshold and a
  probability; missing either is a ``ConfigurationError``, never a silent
  downgrade to balanced.

Pure function; the caller persists the resulting prediction.
"""

from src.triage.schemas import VALID_POLICIES, ClassifierOutput


class ConfigurationError(Exception):
    """Invalid or missing policy parameter for a prediction call."""


def select_priority(
    output: ClassifierOutput,
    policy: str = "balanced",
    threshold_high: float | None = None,
) -> str:
    """Select the final priority for one ticket.

    Args:
        output: Classifier output (argmax label and optional ``proba_high``).
        policy: ``balanced`` or ``safety``.
        threshold_high: Probability cutoff for the safety override.

    Returns:
        ``low``, ``medium`` or ``high``.

    Raises:
        ConfigurationError: Unknown policy, or safety policy without a
            valid threshold or without a probability signal.
    """
    if policy not in VALID_POLICIES:
        raise ConfigurationError(
            f"Unknown policy {policy!r}. Must be one of: {sorted(VALID_POLICIES)}"
        )

    argmax = output.argmax_priority
    if policy == "balanced":
        return argmax

    if threshold_high is None:
        raise ConfigurationError("safety policy requires threshold_high")
    if not (0.0 <= threshold_high <= 1.0):
        raise ConfigurationError(
            f"threshold_high must be in [0, 1], got {threshold_high}"
        )

    proba_high = output.effective_proba_high
    if proba_high is None:
        raise ConfigurationError(
            "safety policy requires a probability for 'high' (proba_high)"
        )

    if proba_high >= threshold_high:
        return "high"
    return argmax
