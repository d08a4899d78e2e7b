"""Closed set of quality tasks, parsed from task payloads.

Each known task name maps to one request model with typed parameters.
Parsing is a Pydantic discriminated union on ``task``; names outside the
union become an explicit ``UnrecognizedTaskRequest`` rather than an error.
Invalid parameters for a known task raise ``pydantic.ValidationError``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, get_args

from pydantic import Field, TypeAdapter

from dqengine.dispatch.envelope import TaskPayload
from dqengine.models.common import DQEngineBase

ALL_TABLES = "all"


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


class _Params(DQEngineBase):
    """Task parameters. Unknown keys are ignored."""


class AssessParams(_Params):
    data_source_id: str | None = Field(default=None, alias="dataSourceId")
    table_name: str | None = Field(default=None, alias="tableName")
    assessment_type: str = Field(default="comprehensive", alias="assessmentType")
    generate_scorecard: bool = Field(default=False, alias="generateScorecard")


class ScorecardParams(_Params):
    data_source_id: str = Field(default=ALL_TABLES, alias="dataSourceId")
    include_trends: bool = Field(default=True, alias="includeTrends")


class TrendsParams(_Params):
    analysis_window: str = Field(default="30-days", alias="analysisWindow")
    predict_future_trends: bool = Field(default=False, alias="predictFutureTrends")


class MonitorParams(_Params):
    time_range: str = Field(default="last-30-days", alias="timeRange")
    alert_on_degradation: bool = Field(default=True, alias="alertOnDegradation")


class SpecificSourceParams(_Params):
    data_source_id: str = Field(alias="dataSourceId")
    assessment_type: str = Field(default="deep-dive", alias="assessmentType")


class ReportParams(_Params):
    report_type: str = Field(default="executive-summary", alias="reportType")
    include_visualization: bool = Field(default=True, alias="includeVisualization")
    format: str = "json"


class IntegrityParams(_Params):
    validation_type: str = Field(default="cross-source", alias="validationType")
    check_constraints: bool = Field(default=True, alias="checkConstraints")
    detect_anomalies: bool = Field(default=True, alias="detectAnomalies")
    max_tables: int | None = Field(default=None, ge=1, alias="maxTables")


class NoParams(_Params):
    pass


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class AssessDataQualityTask(DQEngineBase):
    task: Literal["assess-data-quality"]
    parameters: AssessParams = Field(default_factory=AssessParams)


class QualityScorecardTask(DQEngineBase):
    task: Literal["quality-scorecard", "generate-quality-scorecard"]
    parameters: ScorecardParams = Field(default_factory=ScorecardParams)


class QualityTrendsTask(DQEngineBase):
    task: Literal["quality-trends", "get-quality-trends"]
    parameters: TrendsParams = Field(default_factory=TrendsParams)


class MonitorQualityTrendsTask(DQEngineBase):
    task: Literal["monitor-quality-trends"]
    parameters: MonitorParams = Field(default_factory=MonitorParams)


class ImprovementRoadmapTask(DQEngineBase):
    task: Literal["improvement-roadmap", "recommend-improvements"]
    parameters: NoParams = Field(default_factory=NoParams)


class AssessSpecificSourceTask(DQEngineBase):
    task: Literal["assess-specific-source"]
    parameters: SpecificSourceParams


class IdentifyDataIssuesTask(DQEngineBase):
    task: Literal["identify-data-issues"]
    parameters: NoParams = Field(default_factory=NoParams)


class GenerateQualityReportTask(DQEngineBase):
    task: Literal["generate-quality-report"]
    parameters: ReportParams = Field(default_factory=ReportParams)


class ValidateDataIntegrityTask(DQEngineBase):
    task: Literal["validate-data-integrity"]
    parameters: IntegrityParams = Field(default_factory=IntegrityParams)


class UnrecognizedTaskRequest(DQEngineBase):
    """A task name outside the known set; answered with a generic ack."""

    task: str
    parameters: dict[str, Any] = Field(default_factory=dict)


KnownTask = Annotated[
    AssessDataQualityTask
    | QualityScorecardTask
    | QualityTrendsTask
    | MonitorQualityTrendsTask
    | ImprovementRoadmapTask
    | AssessSpecificSourceTask
    | IdentifyDataIssuesTask
    | GenerateQualityReportTask
    | ValidateDataIntegrityTask,
    Field(discriminator="task"),
]

TaskRequest = (
    AssessDataQualityTask
    | QualityScorecardTask
    | QualityTrendsTask
    | MonitorQualityTrendsTask
    | ImprovementRoadmapTask
    | AssessSpecificSourceTask
    | IdentifyDataIssuesTask
    | GenerateQualityReportTask
    | ValidateDataIntegrityTask
    | UnrecognizedTaskRequest
)

_KNOWN_ADAPTER: TypeAdapter[Any] = TypeAdapter(KnownTask)

KNOWN_TASK_NAMES: frozenset[str] = frozenset(
    name
    for model in (
        AssessDataQualityTask,
        QualityScorecardTask,
        QualityTrendsTask,
        MonitorQualityTrendsTask,
        ImprovementRoadmapTask,
        AssessSpecificSourceTask,
        IdentifyDataIssuesTask,
        GenerateQualityReportTask,
        ValidateDataIntegrityTask,
    )
    for name in get_args(model.model_fields["task"].annotation)
)


def parse_task(payload: TaskPayload) -> TaskRequest:
    """Map a task payload onto the closed task union."""
    if payload.task not in KNOWN_TASK_NAMES:
        return UnrecognizedTaskRequest(task=payload.task, parameters=payload.parameters)
    return _KNOWN_ADAPTER.validate_python(
        {"task": payload.task, "parameters": payload.parameters},
    )
