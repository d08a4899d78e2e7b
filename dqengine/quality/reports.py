"""Derived reports built from assessments and assessment history.

Scorecards, issue summaries, improvement plans, trend analysis and the
combined quality report. Every function here is pure: inputs are
assessment models and history points, outputs are Pydantic models.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from pydantic import Field

from dqengine.models.common import DQEngineBase, UTCTimestamp, utc_now
from dqengine.quality.aggregator import summarize_catalog
from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.issues import IssueDetector
from dqengine.quality.models import (
    CatalogAssessment,
    Issue,
    IssueSeverity,
    IssueType,
    MetricSet,
    QualityBand,
    QualityMetric,
    Recommendation,
    RecommendationPriority,
    TableAssessment,
)
from dqengine.quality.scorer import classify_band, mean_score, round_score

TOP_ISSUES_LIMIT = 10
SCORECARD_RECOMMENDATIONS_LIMIT = 8
TREND_POINTS_LIMIT = 10
TREND_STABLE_BAND = 2


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ScorecardOverview(DQEngineBase):
    total_tables: int
    total_records: int
    total_columns: int
    overall_score: int
    status: QualityBand


class TableScore(DQEngineBase):
    table: str
    score: int
    records: int
    issues: int


class TrendDirection(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class MetricTrend(DQEngineBase):
    current: int
    previous: int
    change: str
    direction: TrendDirection
    data_points: list[int] = Field(default_factory=list)


class QualityAlert(DQEngineBase):
    severity: str
    message: str
    metric: str | None = None
    current_score: int | None = None
    triggered_at: UTCTimestamp = Field(default_factory=utc_now)


class QualityTrends(DQEngineBase):
    """Per-metric trends over a history window, with optional predictions."""

    analysis_period: str
    window_days: int
    assessments_analyzed: int
    tables_tracked: int
    trends: dict[str, MetricTrend] = Field(default_factory=dict)
    predictions: dict[str, int] | None = None
    prediction_confidence: str | None = None
    alerts: list[QualityAlert] = Field(default_factory=list)
    generated_at: UTCTimestamp = Field(default_factory=utc_now)


class QualityScorecard(DQEngineBase):
    title: str
    overview: ScorecardOverview
    metrics: dict[str, int]
    table_scores: list[TableScore] = Field(default_factory=list)
    failed_tables: list[dict[str, str]] = Field(default_factory=list)
    top_issues: list[Issue] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    trends: QualityTrends | None = None
    generated_at: UTCTimestamp = Field(default_factory=utc_now)


class IssueSummary(DQEngineBase):
    total_issues: int
    critical_issues: int
    issues_by_severity: dict[str, int]
    issues_by_type: dict[str, int]
    top_issues: list[Issue] = Field(default_factory=list)
    affected_tables: list[str] = Field(default_factory=list)
    generated_at: UTCTimestamp = Field(default_factory=utc_now)


class RoadmapPhase(DQEngineBase):
    phase: int
    title: str
    duration: str
    priority: RecommendationPriority
    tasks: list[str]
    expected_improvement: str


class ImplementationGuide(DQEngineBase):
    immediate_actions: list[str] = Field(default_factory=list)
    short_term: list[str] = Field(default_factory=list)
    long_term: list[str] = Field(default_factory=list)


class ImprovementPlan(DQEngineBase):
    title: str
    current_score: int
    target_score: int
    phases: list[RoadmapPhase] = Field(default_factory=list)
    total_recommendations: int
    priority_recommendations: list[Recommendation] = Field(default_factory=list)
    implementation_guide: ImplementationGuide
    generated_at: UTCTimestamp = Field(default_factory=utc_now)


class TableHealth(DQEngineBase):
    table: str
    score: int
    records: int
    issues: int
    status: str


class QualityReport(DQEngineBase):
    title: str
    report_type: str
    format: str
    executive_summary: dict[str, object]
    detailed_findings: dict[str, object]
    trends_analysis: QualityTrends | None = None
    recommendations: ImplementationGuide
    next_steps: list[str] = Field(default_factory=list)
    generated_at: UTCTimestamp = Field(default_factory=utc_now)


@dataclass(frozen=True)
class HistoryPoint:
    """One persisted table assessment, as consumed by trend analysis."""

    table_name: str
    assessed_at: datetime
    metrics: dict[str, int]
    score: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def as_catalog(
    assessment: TableAssessment | CatalogAssessment,
    config: QualityScoringConfig | None = None,
) -> CatalogAssessment:
    """View a single-table assessment as a one-table catalog."""
    if isinstance(assessment, CatalogAssessment):
        return assessment
    return summarize_catalog([assessment], config)


def _unique(items: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _recommendation_texts(
    recommendations: Sequence[Recommendation],
    *priorities: RecommendationPriority,
) -> list[str]:
    return _unique([r.recommendation for r in recommendations if r.priority in priorities])


def _issues_by_type(issues: Sequence[Issue]) -> dict[str, int]:
    counts = Counter(i.type for i in issues)
    return {t.value: counts.get(t, 0) for t in IssueType}


def parse_window_days(label: str, default: int = 30) -> int:
    """``"30-days"`` / ``"last-7-days"`` -> 30 / 7."""
    match = re.search(r"(\d+)", label)
    return int(match.group(1)) if match else default


# ---------------------------------------------------------------------------
# Scorecard
# ---------------------------------------------------------------------------


def build_scorecard(
    assessment: TableAssessment | CatalogAssessment,
    *,
    title: str = "Data Quality Scorecard",
    trends: QualityTrends | None = None,
    config: QualityScoringConfig | None = None,
) -> QualityScorecard:
    """Scorecard: overview, metrics, per-table scores, top issues."""
    catalog = as_catalog(assessment, config)
    cfg = config or QualityScoringConfig()
    return QualityScorecard(
        title=title,
        overview=ScorecardOverview(
            total_tables=catalog.total_tables,
            total_records=catalog.total_rows,
            total_columns=catalog.total_columns,
            overall_score=catalog.overall_score,
            status=classify_band(catalog.overall_score, cfg.band_thresholds),
        ),
        metrics=catalog.metrics.as_scores(),
        table_scores=[
            TableScore(
                table=a.table_name,
                score=a.overall_score,
                records=a.row_count,
                issues=len(a.issues),
            )
            for a in catalog.successful
        ],
        failed_tables=catalog.failed_tables,
        top_issues=catalog.issues[:TOP_ISSUES_LIMIT],
        recommendations=catalog.recommendations[:SCORECARD_RECOMMENDATIONS_LIMIT],
        trends=trends,
    )


# ---------------------------------------------------------------------------
# Issue summary
# ---------------------------------------------------------------------------


def summarize_issues(assessment: TableAssessment | CatalogAssessment) -> IssueSummary:
    """Counts by severity and type, the worst issues, and affected tables."""
    issues = as_catalog(assessment).issues
    serious = [
        i for i in issues
        if i.severity in (IssueSeverity.CRITICAL, IssueSeverity.HIGH)
    ]
    return IssueSummary(
        total_issues=len(issues),
        critical_issues=len(serious),
        issues_by_severity=IssueDetector.count_by_severity(issues),
        issues_by_type=_issues_by_type(issues),
        top_issues=serious[:TOP_ISSUES_LIMIT],
        affected_tables=_unique([i.table_name for i in issues]),
    )


# ---------------------------------------------------------------------------
# Improvement plan
# ---------------------------------------------------------------------------

# (priority, title, duration, task limit, expected improvement)
_PHASES: list[tuple[RecommendationPriority, str, str, int, str]] = [
    (RecommendationPriority.URGENT, "Critical Fixes & Urgent Issues", "2-3 weeks", 5, "+6 points"),
    (RecommendationPriority.HIGH, "High Priority Improvements", "4-6 weeks", 5, "+5 points"),
    (RecommendationPriority.MEDIUM, "Medium Priority Enhancements", "6-8 weeks", 4, "+3 points"),
    (RecommendationPriority.LOW, "Long-term Optimizations", "8-10 weeks", 3, "+2 points"),
]


def build_improvement_plan(
    assessment: TableAssessment | CatalogAssessment,
    config: QualityScoringConfig | None = None,
) -> ImprovementPlan:
    """Group recommendations by priority into numbered phases.

    Tasks are de-duplicated recommendation texts; phases without tasks are
    dropped and the remainder numbered from 1.
    """
    cfg = config or QualityScoringConfig()
    catalog = as_catalog(assessment, cfg)
    recs = catalog.recommendations

    phases: list[RoadmapPhase] = []
    for priority, title, duration, limit, improvement in _PHASES:
        tasks = _recommendation_texts(recs, priority)[:limit]
        if not tasks:
            continue
        phases.append(
            RoadmapPhase(
                phase=len(phases) + 1,
                title=title,
                duration=duration,
                priority=priority,
                tasks=tasks,
                expected_improvement=improvement,
            )
        )

    return ImprovementPlan(
        title="Data Quality Improvement Plan",
        current_score=catalog.overall_score,
        target_score=min(
            cfg.roadmap_target_cap,
            catalog.overall_score + cfg.roadmap_target_gain,
        ),
        phases=phases,
        total_recommendations=len(recs),
        priority_recommendations=[
            r for r in recs
            if r.priority in (RecommendationPriority.URGENT, RecommendationPriority.HIGH)
        ][:SCORECARD_RECOMMENDATIONS_LIMIT],
        implementation_guide=ImplementationGuide(
            immediate_actions=_recommendation_texts(recs, RecommendationPriority.URGENT),
            short_term=_recommendation_texts(recs, RecommendationPriority.HIGH),
            long_term=_recommendation_texts(
                recs, RecommendationPriority.MEDIUM, RecommendationPriority.LOW,
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


def _direction(change: int) -> TrendDirection:
    if change >= TREND_STABLE_BAND:
        return TrendDirection.IMPROVING
    if change <= -TREND_STABLE_BAND:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def _daily_means(history: Sequence[HistoryPoint]) -> list[tuple[date, dict[str, int], int]]:
    """Bucket history by UTC day; per-day mean of each metric and score."""
    buckets: dict[date, list[HistoryPoint]] = defaultdict(list)
    for point in history:
        buckets[point.assessed_at.date()].append(point)
    days: list[tuple[date, dict[str, int], int]] = []
    for day in sorted(buckets):
        points = buckets[day]
        metrics = {
            m.value: mean_score(p.metrics.get(m.value, 0) for p in points)
            for m in QualityMetric
        }
        days.append((day, metrics, mean_score(p.score for p in points)))
    return days


def compute_trends(
    history: Sequence[HistoryPoint],
    *,
    analysis_period: str = "30-days",
    current: MetricSet | None = None,
    current_overall: int | None = None,
    predict: bool = False,
    config: QualityScoringConfig | None = None,
) -> QualityTrends:
    """Trend per metric from persisted history.

    Each data point is the mean over one UTC day's assessments. When
    ``current`` is given it is appended as the newest point. ``previous``
    is the point before the newest (equal to current with a single
    point). A change of at least +/-2 is improving / declining.
    """
    cfg = config or QualityScoringConfig()
    days = _daily_means(history)
    series: dict[str, list[int]] = {
        m.value: [d[1][m.value] for d in days] for m in QualityMetric
    }
    overall_series = [d[2] for d in days]
    if current is not None:
        for m in QualityMetric:
            series[m.value].append(current.value_of(m))
        overall_series.append(
            current_overall if current_overall is not None else mean_score(current.values())
        )

    trends: dict[str, MetricTrend] = {}
    for metric, points in series.items():
        if not points:
            continue
        points = points[-TREND_POINTS_LIMIT:]
        latest = points[-1]
        previous = points[-2] if len(points) > 1 else latest
        change = latest - previous
        trends[metric] = MetricTrend(
            current=latest,
            previous=previous,
            change=f"{change:+d}%",
            direction=_direction(change),
            data_points=points,
        )

    predictions: dict[str, int] | None = None
    confidence: str | None = None
    if predict and trends:
        predictions = {
            metric: round_score(t.current + (t.current - t.previous))
            for metric, t in trends.items()
        }
        basis = overall_series[-1] if overall_series else 0
        confidence = "high" if basis > 85 else "medium" if basis > 70 else "low"

    alerts: list[QualityAlert] = []
    if overall_series and overall_series[-1] < cfg.trend_alert_below:
        alerts.append(
            QualityAlert(
                severity="warning",
                message=(
                    f"Overall data quality score below threshold "
                    f"({cfg.trend_alert_below}%)"
                ),
                current_score=overall_series[-1],
            )
        )
    for metric, t in trends.items():
        if t.direction == TrendDirection.DECLINING:
            alerts.append(
                QualityAlert(
                    severity="info",
                    message=f"{metric.capitalize()} metrics showing declining trend",
                    metric=metric,
                    current_score=t.current,
                )
            )

    return QualityTrends(
        analysis_period=analysis_period,
        window_days=parse_window_days(analysis_period),
        assessments_analyzed=len(history),
        tables_tracked=len({p.table_name for p in history}),
        trends=trends,
        predictions=predictions,
        prediction_confidence=confidence,
        alerts=alerts,
    )


# ---------------------------------------------------------------------------
# Quality report
# ---------------------------------------------------------------------------

NEXT_STEPS: list[str] = [
    "Schedule weekly quality assessments",
    "Implement automated monitoring",
    "Address critical issues within 48 hours",
    "Review and update validation rules monthly",
]


def _health(score: int) -> str:
    if score >= 85:
        return "healthy"
    if score >= 70:
        return "attention"
    return "critical"


def build_quality_report(
    assessment: TableAssessment | CatalogAssessment,
    *,
    report_type: str = "executive-summary",
    report_format: str = "json",
    trends: QualityTrends | None = None,
    config: QualityScoringConfig | None = None,
) -> QualityReport:
    """Executive summary, detailed findings and phased recommendations."""
    cfg = config or QualityScoringConfig()
    catalog = as_catalog(assessment, cfg)
    issues = catalog.issues
    recs = catalog.recommendations
    metrics = catalog.metrics

    executive_summary: dict[str, object] = {
        "overall_health": classify_band(catalog.overall_score, cfg.band_thresholds).value,
        "score": catalog.overall_score,
        "total_tables": catalog.total_tables,
        "total_records": catalog.total_rows,
        "critical_issues": sum(1 for i in issues if i.severity == IssueSeverity.CRITICAL),
        "key_findings": [
            f"Data quality score: {catalog.overall_score}%",
            (
                f"{catalog.successful_assessments} of {catalog.total_tables} "
                "tables assessed successfully"
            ),
            f"{len(issues)} total issues identified",
            f"Completeness: {metrics.completeness}%",
            f"Accuracy: {metrics.accuracy}%",
        ],
    }

    detailed_findings: dict[str, object] = {
        "metrics_breakdown": metrics.as_scores(),
        "table_health": [
            TableHealth(
                table=a.table_name,
                score=a.overall_score,
                records=a.row_count,
                issues=len(a.issues),
                status=_health(a.overall_score),
            ).model_dump(mode="json")
            for a in catalog.successful
        ],
        "failed_tables": catalog.failed_tables,
        "issue_summary": {
            "by_severity": IssueDetector.count_by_severity(issues),
            "by_type": _issues_by_type(issues),
        },
    }

    return QualityReport(
        title=f"Data Quality {report_type.replace('-', ' ').upper()}",
        report_type=report_type,
        format=report_format,
        executive_summary=executive_summary,
        detailed_findings=detailed_findings,
        trends_analysis=trends,
        recommendations=ImplementationGuide(
            immediate_actions=_recommendation_texts(recs, RecommendationPriority.URGENT)[:5],
            short_term=_recommendation_texts(recs, RecommendationPriority.HIGH)[:5],
            long_term=_recommendation_texts(
                recs, RecommendationPriority.MEDIUM, RecommendationPriority.LOW,
            )[:5],
        ),
        next_steps=list(NEXT_STEPS),
    )
