"""Task handlers: the quality responder and simulated collaborators.

Every handler returns a normalized result dict::

    {"success": True, "data": {...}, "message": "..."}

Exceptions propagate to the dispatcher, which turns them into failure
responses.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from dqengine.dispatch.envelope import TaskEnvelope
from dqengine.dispatch.tasks import (
    ALL_TABLES,
    AssessDataQualityTask,
    AssessSpecificSourceTask,
    GenerateQualityReportTask,
    IdentifyDataIssuesTask,
    ImprovementRoadmapTask,
    MonitorQualityTrendsTask,
    QualityScorecardTask,
    QualityTrendsTask,
    TaskRequest,
    UnrecognizedTaskRequest,
    ValidateDataIntegrityTask,
)
from dqengine.models.common import DQEngineBase, utc_now
from dqengine.quality.aggregator import CatalogAggregator
from dqengine.quality.assessor import (
    ProgressCallback,
    SessionFactoryProvider,
    TableAssessor,
)
from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.errors import (
    PersistenceError,
    StorageUnavailable,
    UnrecognizedTask,
)
from dqengine.quality.integrity import IntegrityValidator
from dqengine.quality.models import CatalogAssessment, TableAssessment
from dqengine.quality.reports import (
    HistoryPoint,
    QualityTrends,
    build_improvement_plan,
    build_quality_report,
    build_scorecard,
    compute_trends,
    parse_window_days,
    summarize_issues,
)
from dqengine.repositories.data_quality import AssessmentRepository

logger = logging.getLogger(__name__)

TaskResult = dict[str, Any]

TEAM_COORDINATION = "team-coordination"


def _ok(data: Any, message: str, **extra: Any) -> TaskResult:
    if isinstance(data, DQEngineBase):
        data = data.to_wire()
    return {"success": True, "data": data, "message": message, **extra}


class QualityTaskHandler:
    """Executes the quality task set against the assessment engine."""

    def __init__(
        self,
        *,
        assessor: TableAssessor,
        aggregator: CatalogAggregator,
        integrity: IntegrityValidator,
        session_factory: SessionFactoryProvider | None = None,
        config: QualityScoringConfig | None = None,
        catalog_name: str = "primary-db",
    ) -> None:
        self._assessor = assessor
        self._aggregator = aggregator
        self._integrity = integrity
        self._session_factory = session_factory
        self._config = config or QualityScoringConfig()
        self._catalog_name = catalog_name

    async def handle(
        self, request: TaskRequest, progress: ProgressCallback,
    ) -> TaskResult:
        """Route a parsed task to its handler."""
        # Task type -> handler routing table.
        dispatch: dict[type, Callable[[Any, ProgressCallback], Awaitable[TaskResult]]] = {
            AssessDataQualityTask: self.assess_data_quality,
            QualityScorecardTask: self.quality_scorecard,
            QualityTrendsTask: self.quality_trends,
            MonitorQualityTrendsTask: self.monitor_quality_trends,
            ImprovementRoadmapTask: self.improvement_plan,
            AssessSpecificSourceTask: self.assess_specific_source,
            IdentifyDataIssuesTask: self.identify_data_issues,
            GenerateQualityReportTask: self.quality_report,
            ValidateDataIntegrityTask: self.validate_data_integrity,
            UnrecognizedTaskRequest: self.acknowledge,
        }
        handler = dispatch.get(type(request))
        if handler is None:
            raise UnrecognizedTask(getattr(request, "task", type(request).__name__))
        return await handler(request, progress)

    # ---------------------------------------------------------------
    # Shared steps
    # ---------------------------------------------------------------

    def _is_whole_catalog(self, source: str | None) -> bool:
        return source is None or source in (ALL_TABLES, self._catalog_name)

    async def _assess(
        self,
        source: str | None,
        progress: ProgressCallback,
        assessment_type: str = "comprehensive",
    ) -> TableAssessment | CatalogAssessment:
        if self._is_whole_catalog(source):
            return await self._aggregator.assess_all(progress, assessment_type)
        return await self._assessor.assess_table(source, assessment_type, progress)

    async def load_history(self, window_days: int) -> list[HistoryPoint]:
        """Persisted assessments inside the window, oldest first."""
        if self._session_factory is None:
            return []
        since = utc_now() - timedelta(days=window_days)
        try:
            async with self._session_factory()() as session:
                rows = await AssessmentRepository(session).list_since(since)
        except (SQLAlchemyError, StorageUnavailable) as exc:
            raise PersistenceError(f"Assessment history unavailable: {exc}") from exc
        return [
            HistoryPoint(
                table_name=row.table_name,
                assessed_at=row.assessed_at,
                metrics={k: int(v) for k, v in (row.metrics or {}).items()},
                score=row.score,
            )
            for row in rows
        ]

    async def _optional_trends(
        self,
        window: str,
        current: CatalogAssessment | TableAssessment | None = None,
    ) -> QualityTrends | None:
        """Trends for decorating scorecards and reports; None when unavailable."""
        try:
            history = await self.load_history(parse_window_days(window))
        except PersistenceError as exc:
            logger.warning("Omitting trends: %s", exc)
            return None
        return compute_trends(
            history,
            analysis_period=window,
            current=current.metrics if current is not None else None,
            current_overall=current.overall_score if current is not None else None,
            config=self._config,
        )

    # ---------------------------------------------------------------
    # Task handlers
    # ---------------------------------------------------------------

    async def assess_data_quality(
        self, request: AssessDataQualityTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        source = params.table_name or params.data_source_id
        if params.data_source_id == ALL_TABLES:
            source = ALL_TABLES
        assessment = await self._assess(source, progress, params.assessment_type)
        if params.generate_scorecard:
            return _ok(
                build_scorecard(assessment, config=self._config),
                "Quality scorecard generated successfully",
            )
        return _ok(assessment, f"Assessment of {source or ALL_TABLES} completed")

    async def quality_scorecard(
        self, request: QualityScorecardTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        assessment = await self._assess(params.data_source_id, progress)
        trends = None
        if params.include_trends:
            trends = await self._optional_trends("30-days", assessment)
        scorecard = build_scorecard(assessment, trends=trends, config=self._config)
        return _ok(scorecard, "Quality scorecard generated successfully")

    async def quality_trends(
        self, request: QualityTrendsTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        await progress(30, "Loading assessment history...")
        history = await self.load_history(parse_window_days(params.analysis_window))
        trends = compute_trends(
            history,
            analysis_period=params.analysis_window,
            predict=params.predict_future_trends,
            config=self._config,
        )
        return _ok(trends, "Quality trends analysis completed")

    async def monitor_quality_trends(
        self, request: MonitorQualityTrendsTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        current = await self._aggregator.assess_all(progress)
        history = await self.load_history(parse_window_days(params.time_range))
        trends = compute_trends(
            history,
            analysis_period=params.time_range,
            current=current.metrics,
            current_overall=current.overall_score,
            predict=True,
            config=self._config,
        )
        alerts = trends.alerts if params.alert_on_degradation else []
        return _ok(
            trends,
            f"Quality trends analysis completed for {params.time_range}",
            alerts=[a.to_wire() for a in alerts],
        )

    async def improvement_plan(
        self, request: ImprovementRoadmapTask, progress: ProgressCallback,
    ) -> TaskResult:
        catalog = await self._aggregator.assess_all(progress)
        plan = build_improvement_plan(catalog, self._config)
        return _ok(
            plan,
            (
                f"Generated improvement plan with {plan.total_recommendations} "
                f"recommendations organized into {len(plan.phases)} phases"
            ),
        )

    async def assess_specific_source(
        self, request: AssessSpecificSourceTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        assessment = await self._assess(
            params.data_source_id, progress, params.assessment_type,
        )
        return _ok(assessment, f"Assessment of {params.data_source_id} completed")

    async def identify_data_issues(
        self, request: IdentifyDataIssuesTask, progress: ProgressCallback,
    ) -> TaskResult:
        catalog = await self._aggregator.assess_all(progress)
        summary = summarize_issues(catalog)
        return _ok(
            summary,
            (
                f"Found {summary.total_issues} data issues "
                f"({summary.critical_issues} critical)"
            ),
        )

    async def quality_report(
        self, request: GenerateQualityReportTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        catalog = await self._aggregator.assess_all(progress)
        trends = None
        if params.include_visualization:
            trends = await self._optional_trends("30-days", catalog)
        report = build_quality_report(
            catalog,
            report_type=params.report_type,
            report_format=params.format,
            trends=trends,
            config=self._config,
        )
        return _ok(report, f"{params.report_type} report generated successfully")

    async def validate_data_integrity(
        self, request: ValidateDataIntegrityTask, progress: ProgressCallback,
    ) -> TaskResult:
        params = request.parameters
        await progress(30, "Checking constraints and anomalies...")
        report = await self._integrity.validate(
            check_constraints=params.check_constraints,
            detect_anomalies=params.detect_anomalies,
            max_tables=params.max_tables,
        )
        return _ok(
            report,
            f"Data integrity validation completed. Score: {report.integrity_score}%",
        )

    async def acknowledge(
        self, request: UnrecognizedTaskRequest, progress: ProgressCallback,
    ) -> TaskResult:
        logger.info("Acknowledging unrecognized task %r", request.task)
        return _ok(
            {"task": request.task, "status": "completed"},
            f"Task '{request.task}' completed",
        )


class SimulatedResponder:
    """Answers tasks addressed to collaborators this service only simulates.

    Replies after a constant delay with a canned completion payload.
    """

    TEAM_MEMBERS = ["data-quality-agent", "database-manager", "validation-engine"]

    def __init__(self, delay: float = 1.0) -> None:
        self._delay = delay

    async def respond(self, envelope: TaskEnvelope) -> TaskResult:
        await asyncio.sleep(self._delay)
        task = envelope.payload.task
        params = envelope.payload.parameters

        if task == TEAM_COORDINATION:
            action = params.get("action")
            return {
                "success": True,
                "teamId": params.get("teamId"),
                "action": action,
                "status": "completed",
                "message": f"Team {action} completed successfully",
                "data": {"teamStatus": "active", "members": list(self.TEAM_MEMBERS)},
            }
        if envelope.to == "database-manager":
            message = f"Database {task} completed"
        elif envelope.to == "validation-engine":
            message = f"Validation {task} completed"
        else:
            message = f"Task '{task}' processed"
        return {
            "success": True,
            "task": task,
            "status": "completed",
            "message": message,
            "data": {"status": "completed", "agent": envelope.to},
        }
