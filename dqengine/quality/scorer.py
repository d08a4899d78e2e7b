"""Score composer -- rounding, overall score and quality band.

Pure functions shared by the metric calculators, the table assessor and
the catalog aggregator.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

from dqengine.quality.models import MetricSet, QualityBand

DEFAULT_BAND_THRESHOLDS: dict[str, int] = {
    "Excellent": 85,
    "Good": 70,
    "Fair": 50,
}


def round_score(value: float) -> int:
    """Round half-up (2.5 -> 3) and clamp to [0, 100].

    Python's round() is banker's rounding; scores must round .5 upward.
    """
    rounded = math.floor(value + 0.5)
    return max(0, min(100, int(rounded)))


def mean_score(values: Iterable[float]) -> int:
    """Rounded arithmetic mean; 0 for an empty input."""
    items = list(values)
    if not items:
        return 0
    return round_score(sum(items) / len(items))


def compose_overall(metrics: MetricSet) -> int:
    """Overall score: rounded mean of the six metric values."""
    return mean_score(metrics.values())


def classify_band(
    score: int,
    thresholds: Mapping[str, int] | None = None,
) -> QualityBand:
    """Map an overall score to Excellent / Good / Fair / Poor."""
    cutoffs = thresholds or DEFAULT_BAND_THRESHOLDS
    for band in (QualityBand.EXCELLENT, QualityBand.GOOD, QualityBand.FAIR):
        if score >= cutoffs[band.value]:
            return band
    return QualityBand.POOR
