"""Assessment enums and Pydantic models.

Defines the six quality metrics, issue and recommendation vocabularies,
quality bands, and the table / catalog assessment models returned by the
engine. Table and catalog assessments are immutable once returned.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import Field

from dqengine.models.common import (
    DQEngineBase,
    Score,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


# ---------------------------------------------------------------------------
# Enums (all StrEnum)
# ---------------------------------------------------------------------------


class QualityMetric(StrEnum):
    """The six quality metrics measured for each table."""

    COMPLETENESS = "completeness"
    ACCURACY = "accuracy"
    CONSISTENCY = "consistency"
    VALIDITY = "validity"
    UNIQUENESS = "uniqueness"
    TIMELINESS = "timeliness"


class MetricSource(StrEnum):
    """Whether a metric value came from probes or is the unmeasured ceiling."""

    MEASURED = "measured"
    UNAVAILABLE = "unavailable"


class IssueType(StrEnum):
    MISSING_DATA = "missing_data"
    DUPLICATE_RECORDS = "duplicate_records"
    INVALID_FORMAT = "invalid_format"
    INCONSISTENT_VALUES = "inconsistent_values"
    OUTDATED_DATA = "outdated_data"
    CONSTRAINT_VIOLATION = "constraint_violation"


class IssueSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendationPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class QualityBand(StrEnum):
    """Human label for an overall score."""

    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


GENERAL_ISSUE_TYPE = "general"

SEVERITY_RANK: dict[IssueSeverity, int] = {
    IssueSeverity.CRITICAL: 0,
    IssueSeverity.HIGH: 1,
    IssueSeverity.MEDIUM: 2,
    IssueSeverity.LOW: 3,
}

PRIORITY_RANK: dict[RecommendationPriority, int] = {
    RecommendationPriority.URGENT: 0,
    RecommendationPriority.HIGH: 1,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.LOW: 3,
}


# ---------------------------------------------------------------------------
# Catalog metadata
# ---------------------------------------------------------------------------


class ColumnMetadata(DQEngineBase, frozen=True):
    name: str
    data_type: str
    nullable: bool = True
    default: str | None = None
    max_length: int | None = None


class ForeignKeyMetadata(DQEngineBase, frozen=True):
    """A declared reference from ``columns`` to ``referred_table``."""

    columns: list[str]
    referred_table: str
    referred_columns: list[str]
    referred_schema: str | None = None


class TableMetadata(DQEngineBase, frozen=True):
    """Row count and ordered column list for one table."""

    table_name: str
    row_count: int = Field(ge=0)
    columns: list[ColumnMetadata] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyMetadata] = Field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.columns)


class TableSummary(DQEngineBase, frozen=True):
    """Catalog listing entry."""

    table_name: str
    column_count: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class MetricAssessment(DQEngineBase):
    """Per-metric score with provenance.

    ``column_scores`` holds the unrounded per-column score of every probe
    that contributed; ``failed_probes`` lists columns whose probe errored
    or timed out and was skipped.
    """

    metric: QualityMetric
    score: Score
    source: MetricSource
    column_scores: dict[str, float] = Field(default_factory=dict)
    failed_probes: list[str] = Field(default_factory=list)
    worst_column: str | None = None
    examples: list[str] = Field(default_factory=list)
    rules_triggered: list[str] = Field(default_factory=list)


class MetricSet(DQEngineBase, frozen=True):
    """The six integer metric values of one table (or a catalog mean)."""

    completeness: Score = 100
    accuracy: Score = 100
    consistency: Score = 100
    validity: Score = 100
    uniqueness: Score = 100
    timeliness: Score = 100
    sources: dict[QualityMetric, MetricSource] = Field(default_factory=dict)

    def values(self) -> list[int]:
        """The six values in canonical metric order."""
        return [getattr(self, m.value) for m in QualityMetric]

    def value_of(self, metric: QualityMetric | str) -> int:
        return int(getattr(self, QualityMetric(metric).value))

    def as_scores(self) -> dict[str, int]:
        return {m.value: getattr(self, m.value) for m in QualityMetric}

    @classmethod
    def from_assessments(cls, details: list[MetricAssessment]) -> MetricSet:
        values: dict[str, object] = {d.metric.value: d.score for d in details}
        values["sources"] = {d.metric: d.source for d in details}
        return cls.model_validate(values)


# ---------------------------------------------------------------------------
# Issues and recommendations
# ---------------------------------------------------------------------------


class Issue(DQEngineBase):
    """A detected quality problem attached to a table."""

    type: IssueType
    description: str
    severity: IssueSeverity
    count: int = Field(ge=0)
    table_name: str
    field_name: str | None = None
    examples: list[str] = Field(default_factory=list)


class Recommendation(DQEngineBase):
    """Remediation advice for an issue type (or ``general``)."""

    issue_type: str
    recommendation: str
    priority: RecommendationPriority
    effort_estimate: str
    expected_impact: str


# ---------------------------------------------------------------------------
# Assessments
# ---------------------------------------------------------------------------


class TableAssessment(DQEngineBase, frozen=True):
    """Immutable result of assessing one table.

    ``assessment_id`` is the local id of the computation; ``persisted_id``
    is the history row id, or None when the result could not be saved.
    """

    assessment_id: UUIDv7 = Field(default_factory=new_uuid7)
    persisted_id: UUID | None = None
    table_name: str
    assessment_type: str = "comprehensive"
    metrics: MetricSet
    metric_details: list[MetricAssessment] = Field(default_factory=list)
    overall_score: Score
    quality_band: QualityBand
    issues: list[Issue] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    status: Literal["completed"] = "completed"
    row_count: int = Field(ge=0)
    column_count: int = Field(ge=0)
    assessed_at: UTCTimestamp = Field(default_factory=utc_now)


class FailedTableAssessment(DQEngineBase, frozen=True):
    """Per-table failure stub inside a catalog assessment."""

    table_name: str
    error: str
    status: Literal["failed"] = "failed"


TableOutcome = Annotated[
    TableAssessment | FailedTableAssessment,
    Field(discriminator="status"),
]


class CatalogAssessment(DQEngineBase, frozen=True):
    """Immutable aggregate over every table in the catalog."""

    assessment_id: UUIDv7 = Field(default_factory=new_uuid7)
    assessment_type: str = "multi-table-comprehensive"
    total_tables: int = Field(ge=0)
    successful_assessments: int = Field(ge=0)
    failed_assessments: int = Field(ge=0)
    total_rows: int = Field(ge=0)
    total_columns: int = Field(ge=0)
    metrics: MetricSet
    overall_score: Score
    quality_band: QualityBand
    issues: list[Issue] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    individual_assessments: list[TableOutcome] = Field(default_factory=list)
    assessed_at: UTCTimestamp = Field(default_factory=utc_now)

    @property
    def successful(self) -> list[TableAssessment]:
        return [
            a for a in self.individual_assessments
            if isinstance(a, TableAssessment)
        ]

    @property
    def failed_tables(self) -> list[dict[str, str]]:
        return [
            {"table_name": a.table_name, "error": a.error}
            for a in self.individual_assessments
            if isinstance(a, FailedTableAssessment)
        ]
