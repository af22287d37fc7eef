"""Deterministic priority derivation from the AI urgency score."""
from __future__ import annotations

DEFAULT_PRIORITY = "medium"

# Lower bound (inclusive) of each band, highest first.
URGENCY_BANDS: tuple[tuple[float, str], ...] = (
    (8, "critical"),
    (6, "high"),
    (4, "medium"),
)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def derive_priority(urgency_score: float | None) -> str:
    """Map an urgency score to a priority; no score means ``medium``."""
    if urgency_score is None:
        return DEFAULT_PRIORITY
    for lower_bound, priority in URGENCY_BANDS:
        if urgency_score >= lower_bound:
            return priority
    return "low"
