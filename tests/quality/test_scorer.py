"""Tests for the score composer: rounding, overall score and bands."""

from __future__ import annotations

import pytest

from dqengine.quality.models import MetricSet, QualityBand
from dqengine.quality.scorer import (
    classify_band,
    compose_overall,
    mean_score,
    round_score,
)


class TestRoundScore:
    """round_score: half-up, clamped to 0..100."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(2.5, 3), (91.5, 92), (88.8889, 89), (96.3333, 96), (0.49, 0)],
    )
    def test_rounds_half_up(self, value: float, expected: int) -> None:
        assert round_score(value) == expected

    def test_clamps_out_of_range(self) -> None:
        assert round_score(-4.0) == 0
        assert round_score(140.0) == 100


class TestMeanScore:
    def test_empty_input_is_zero(self) -> None:
        assert mean_score([]) == 0

    def test_rounded_mean(self) -> None:
        assert mean_score([100, 92, 100]) == 97


class TestComposeOverall:
    def test_all_perfect(self) -> None:
        assert compose_overall(MetricSet()) == 100

    def test_mean_of_six_metrics(self) -> None:
        metrics = MetricSet(
            completeness=90,
            accuracy=90,
            consistency=90,
            validity=89,
            uniqueness=90,
            timeliness=100,
        )
        # 549 / 6 = 91.5 -> 92
        assert compose_overall(metrics) == 92


class TestClassifyBand:
    @pytest.mark.parametrize(
        ("score", "band"),
        [
            (100, QualityBand.EXCELLENT),
            (85, QualityBand.EXCELLENT),
            (84, QualityBand.GOOD),
            (70, QualityBand.GOOD),
            (69, QualityBand.FAIR),
            (50, QualityBand.FAIR),
            (49, QualityBand.POOR),
            (0, QualityBand.POOR),
        ],
    )
    def test_default_thresholds(self, score: int, band: QualityBand) -> None:
        assert classify_band(score) == band

    def test_custom_thresholds(self) -> None:
        thresholds = {"Excellent": 95, "Good": 90, "Fair": 80}
        assert classify_band(92, thresholds) == QualityBand.GOOD
        assert classify_band(79, thresholds) == QualityBand.POOR
