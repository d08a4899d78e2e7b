"""Recommendation generator -- remediation advice for detected issues."""

from __future__ import annotations

from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.models import (
    GENERAL_ISSUE_TYPE,
    PRIORITY_RANK,
    Issue,
    IssueSeverity,
    MetricSet,
    Recommendation,
    RecommendationPriority,
)
from dqengine.quality.scorer import compose_overall

SEVERITY_TO_PRIORITY: dict[IssueSeverity, RecommendationPriority] = {
    IssueSeverity.CRITICAL: RecommendationPriority.URGENT,
    IssueSeverity.HIGH: RecommendationPriority.HIGH,
    IssueSeverity.MEDIUM: RecommendationPriority.MEDIUM,
    IssueSeverity.LOW: RecommendationPriority.LOW,
}


class RecommendationGenerator:
    """Maps issues to templated recommendations.

    At most one recommendation per issue type; when several issues share a
    type the highest-priority one wins. A ``general`` governance
    recommendation is appended when the overall score is below
    ``general_recommendation_below``.
    """

    def __init__(self, config: QualityScoringConfig | None = None) -> None:
        self._config = config or QualityScoringConfig()

    def generate(
        self,
        issues: list[Issue],
        metrics: MetricSet,
    ) -> list[Recommendation]:
        by_type: dict[str, Recommendation] = {}
        for issue in issues:
            template = self._config.recommendation_templates.get(issue.type.value)
            if template is None:
                continue
            priority = SEVERITY_TO_PRIORITY.get(
                issue.severity, RecommendationPriority.MEDIUM,
            )
            existing = by_type.get(issue.type.value)
            if existing and PRIORITY_RANK[existing.priority] <= PRIORITY_RANK[priority]:
                continue
            by_type[issue.type.value] = Recommendation(
                issue_type=issue.type.value,
                recommendation=template.recommendation,
                priority=priority,
                effort_estimate=template.effort_estimate,
                expected_impact=template.expected_impact,
            )

        recommendations = list(by_type.values())
        if compose_overall(metrics) < self._config.general_recommendation_below:
            general = self._config.general_recommendation
            recommendations.append(
                Recommendation(
                    issue_type=GENERAL_ISSUE_TYPE,
                    recommendation=general.recommendation,
                    priority=RecommendationPriority.HIGH,
                    effort_estimate=general.effort_estimate,
                    expected_impact=general.expected_impact,
                )
            )
        return recommendations
