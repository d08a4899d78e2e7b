"""Quality scoring configuration.

Provides the configurable thresholds, count multipliers, band cut-offs,
freshness brackets and remediation templates used by the metric
calculators, issue detector and recommendation generator. Defaults can be
overridden per instance.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

from pydantic import Field

from dqengine.models.common import DQEngineBase


class IssueRule(DQEngineBase, frozen=True):
    """One row of the issue threshold table.

    An issue fires when the metric is strictly below ``threshold``; the
    severity is ``high`` when it is also below ``high_below``, otherwise
    ``medium``.
    """

    metric: str
    issue_type: str
    threshold: int
    high_below: int
    count_multiplier: int
    description: str


class RecommendationTemplate(DQEngineBase, frozen=True):
    """Remediation text attached to an issue type."""

    recommendation: str
    effort_estimate: str
    expected_impact: str


class QualityScoringConfig(DQEngineBase):
    """Configuration for the assessment engine.

    ``issue_rules`` order is the order issues are emitted in.
    """

    issue_rules: list[IssueRule] = Field(
        default_factory=lambda: [
            IssueRule(
                metric="completeness",
                issue_type="missing_data",
                threshold=90,
                high_below=80,
                count_multiplier=10,
                description="Data completeness is {value:.1f}% - below recommended 90% threshold",
            ),
            IssueRule(
                metric="uniqueness",
                issue_type="duplicate_records",
                threshold=95,
                high_below=85,
                count_multiplier=5,
                description="Data uniqueness is {value:.1f}% - potential duplicate records detected",
            ),
            IssueRule(
                metric="validity",
                issue_type="invalid_format",
                threshold=90,
                high_below=80,
                count_multiplier=8,
                description="Data validity is {value:.1f}% - format validation errors detected",
            ),
            IssueRule(
                metric="consistency",
                issue_type="inconsistent_values",
                threshold=85,
                high_below=70,
                count_multiplier=6,
                description="Data consistency is {value:.1f}% - inconsistent value patterns detected",
            ),
        ],
    )

    band_thresholds: dict[str, int] = Field(
        default_factory=lambda: {
            "Excellent": 85,
            "Good": 70,
            "Fair": 50,
        },
    )

    # (max age / SLA ratio, score) brackets, walked in order.
    freshness_ratio_thresholds: list[tuple[float, int]] = Field(
        default_factory=lambda: [
            (1.0, 100),
            (1.5, 70),
            (2.0, 40),
            (99.0, 20),
        ],
    )
    freshness_sla_hours: float = 24 * 7

    email_pattern: str = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"
    max_issue_examples: int = 3

    recommendation_templates: dict[str, RecommendationTemplate] = Field(
        default_factory=lambda: {
            "missing_data": RecommendationTemplate(
                recommendation="Implement mandatory field validation and default value strategies",
                effort_estimate="1-2 weeks",
                expected_impact="Improve data completeness by 15-25%",
            ),
            "duplicate_records": RecommendationTemplate(
                recommendation="Implement deduplication procedures and unique constraints",
                effort_estimate="2-3 weeks",
                expected_impact="Eliminate duplicate records and prevent future occurrences",
            ),
            "invalid_format": RecommendationTemplate(
                recommendation="Standardize data formats and implement input validation rules",
                effort_estimate="1-2 weeks",
                expected_impact="Improve data validity and consistency",
            ),
            "inconsistent_values": RecommendationTemplate(
                recommendation="Review and standardize data entry procedures and validation rules",
                effort_estimate="2-4 weeks",
                expected_impact="Improve data consistency and reliability",
            ),
        },
    )
    general_recommendation: RecommendationTemplate = Field(
        default_factory=lambda: RecommendationTemplate(
            recommendation="Implement comprehensive data governance and quality management framework",
            effort_estimate="4-8 weeks",
            expected_impact="Establish systematic approach to data quality improvement",
        ),
    )
    general_recommendation_below: int = 80

    # Reports
    trend_alert_below: int = 80
    roadmap_target_gain: int = 15
    roadmap_target_cap: int = 95
