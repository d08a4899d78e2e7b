"""Issue detector -- threshold checks over a table's metric set.

Walks ``QualityScoringConfig.issue_rules`` in order and emits one Issue per
metric that falls strictly below its threshold. The affected-record count
is an estimate, ``floor((100 - metric) * multiplier)``, not a measured row
count. Field name and example values come from the metric's worst column.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

import math
from collections import Counter

from dqengine.quality.config import IssueRule, QualityScoringConfig
from dqengine.quality.models import (
    Issue,
    IssueSeverity,
    IssueType,
    MetricAssessment,
    MetricSet,
    QualityMetric,
)


class IssueDetector:
    """Turns metric values into classified issues."""

    def __init__(self, config: QualityScoringConfig | None = None) -> None:
        self._config = config or QualityScoringConfig()

    def check_rule(
        self,
        rule: IssueRule,
        table_name: str,
        metrics: MetricSet,
        detail: MetricAssessment | None = None,
    ) -> Issue | None:
        """Evaluate one threshold row; None when the metric passes.

        * metric < high_below -> HIGH
        * metric < threshold  -> MEDIUM
        """
        value = metrics.value_of(rule.metric)
        if value >= rule.threshold:
            return None

        severity = IssueSeverity.HIGH if value < rule.high_below else IssueSeverity.MEDIUM
        return Issue(
            type=IssueType(rule.issue_type),
            description=rule.description.format(value=float(value)),
            severity=severity,
            count=math.floor((100 - value) * rule.count_multiplier),
            table_name=table_name,
            field_name=detail.worst_column if detail else None,
            examples=list(detail.examples) if detail else [],
        )

    def detect(
        self,
        table_name: str,
        metrics: MetricSet,
        details: list[MetricAssessment] | None = None,
    ) -> list[Issue]:
        """Run every rule in configured order and collect firing issues."""
        by_metric: dict[QualityMetric, MetricAssessment] = {
            d.metric: d for d in details or []
        }
        issues: list[Issue] = []
        for rule in self._config.issue_rules:
            issue = self.check_rule(
                rule,
                table_name,
                metrics,
                by_metric.get(QualityMetric(rule.metric)),
            )
            if issue is not None:
                issues.append(issue)
        return issues

    @staticmethod
    def count_by_severity(issues: list[Issue]) -> dict[str, int]:
        """Count issues by severity level; every level is present."""
        counts = Counter(i.severity for i in issues)
        return {s.value: counts.get(s, 0) for s in IssueSeverity}
