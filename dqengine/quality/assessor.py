"""Table assessor -- end-to-end assessment of a single table.

Describes the table, measures its metrics, composes the overall score,
detects issues, generates recommendations, and appends the result to the
assessment history.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dqengine.quality.catalog import SchemaCatalogReader
from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.errors import PersistenceError, StorageUnavailable
from dqengine.quality.issues import IssueDetector
from dqengine.quality.metrics import MetricCalculator
from dqengine.quality.models import MetricSet, TableAssessment
from dqengine.quality.recommendations import RecommendationGenerator
from dqengine.quality.scorer import classify_band, compose_overall
from dqengine.repositories.data_quality import AssessmentRepository

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], Awaitable[None]]
SessionFactoryProvider = Callable[[], async_sessionmaker[AsyncSession]]


class TableAssessor:
    """Orchestrates one table's assessment.

    ``session_factory`` is a zero-argument callable returning the session
    maker (usually ``lambda: db.session_factory``) so a disconnected store
    surfaces at persist time; None disables persistence.
    """

    def __init__(
        self,
        catalog: SchemaCatalogReader,
        calculator: MetricCalculator,
        *,
        detector: IssueDetector | None = None,
        generator: RecommendationGenerator | None = None,
        config: QualityScoringConfig | None = None,
        session_factory: SessionFactoryProvider | None = None,
    ) -> None:
        self._config = config or QualityScoringConfig()
        self._catalog = catalog
        self._calculator = calculator
        self._detector = detector or IssueDetector(config=self._config)
        self._generator = generator or RecommendationGenerator(config=self._config)
        self._session_factory = session_factory

    @property
    def catalog(self) -> SchemaCatalogReader:
        return self._catalog

    async def assess_table(
        self,
        table_name: str,
        assessment_type: str = "comprehensive",
        progress: ProgressCallback | None = None,
    ) -> TableAssessment:
        """Assess one table.

        Steps:
        1. Describe the table (TableNotFound / StorageUnavailable propagate).
        2. Measure the six metrics.
        3. Compose overall score and band.
        4. Detect issues.
        5. Generate recommendations.
        6. Persist; a PersistenceError is logged and the result returned
           with ``persisted_id=None``.
        """
        # 1. Describe
        metadata = await self._catalog.describe_table(table_name)
        if progress is not None:
            await progress(30, f"Analyzing {metadata.column_count} columns in {table_name}")

        # 2. Metrics
        details = await self._calculator.calculate(metadata)
        metrics = MetricSet.from_assessments(details)
        if progress is not None:
            await progress(70, f"Metrics computed for {table_name}")

        # 3. Compose
        overall = compose_overall(metrics)

        # 4-5. Issues and recommendations
        issues = self._detector.detect(table_name, metrics, details)
        recommendations = self._generator.generate(issues, metrics)

        assessment = TableAssessment(
            table_name=table_name,
            assessment_type=assessment_type,
            metrics=metrics,
            metric_details=details,
            overall_score=overall,
            quality_band=classify_band(overall, self._config.band_thresholds),
            issues=issues,
            recommendations=recommendations,
            row_count=metadata.row_count,
            column_count=metadata.column_count,
        )

        # 6. Persist
        try:
            persisted_id = await self._persist(assessment)
        except PersistenceError as exc:
            logger.error("Assessment of %s not saved: %s", table_name, exc)
            persisted_id = None

        logger.info(
            "Assessed %s: overall=%d issues=%d",
            table_name, overall, len(issues),
        )
        if persisted_id is None:
            return assessment
        return assessment.model_copy(update={"persisted_id": persisted_id})

    async def _persist(self, assessment: TableAssessment) -> UUID | None:
        if self._session_factory is None:
            return None
        try:
            async with self._session_factory()() as session:
                repo = AssessmentRepository(session)
                row = await repo.save_assessment(
                    table_name=assessment.table_name,
                    assessment_type=assessment.assessment_type,
                    metrics=assessment.metrics.as_scores(),
                    score=assessment.overall_score,
                    issues=[i.model_dump(mode="json") for i in assessment.issues],
                    recommendations=[
                        r.model_dump(mode="json") for r in assessment.recommendations
                    ],
                    assessed_at=assessment.assessed_at,
                    status=assessment.status,
                )
                await session.commit()
                return row.id
        except (SQLAlchemyError, StorageUnavailable) as exc:
            raise PersistenceError(str(exc)) from exc
