"""Catalog aggregator -- assess every table and combine the results.

Tables are assessed concurrently on a bounded pool (an asyncio.Semaphore
sized to the connection pool), each under a whole-table timeout. A table
that raises becomes a FailedTableAssessment at its catalog position; the
aggregate is computed only after every table has finished.

Deterministic -- no LLM calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from dqengine.quality.assessor import ProgressCallback, TableAssessor
from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.errors import EngineError
from dqengine.quality.models import (
    CatalogAssessment,
    FailedTableAssessment,
    MetricSet,
    QualityMetric,
    TableAssessment,
)
from dqengine.quality.scorer import classify_band, mean_score

logger = logging.getLogger(__name__)

TableResult = TableAssessment | FailedTableAssessment


def summarize_catalog(
    outcomes: Sequence[TableResult],
    config: QualityScoringConfig | None = None,
) -> CatalogAssessment:
    """Fold per-table outcomes into a CatalogAssessment.

    Metric values and the overall score are rounded means over successful
    tables only (0 when none succeeded). Row and column totals, issues and
    recommendations also come from successes only.
    """
    cfg = config or QualityScoringConfig()
    successes = [o for o in outcomes if isinstance(o, TableAssessment)]

    metric_means = {
        m.value: mean_score(a.metrics.value_of(m) for a in successes)
        for m in QualityMetric
    }
    overall = mean_score(a.overall_score for a in successes)

    return CatalogAssessment(
        total_tables=len(outcomes),
        successful_assessments=len(successes),
        failed_assessments=len(outcomes) - len(successes),
        total_rows=sum(a.row_count for a in successes),
        total_columns=sum(a.column_count for a in successes),
        metrics=MetricSet.model_validate(metric_means),
        overall_score=overall,
        quality_band=classify_band(overall, cfg.band_thresholds),
        issues=[i for a in successes for i in a.issues],
        recommendations=[r for a in successes for r in a.recommendations],
        individual_assessments=list(outcomes),
    )


class CatalogAggregator:
    """Runs a table assessment for every table in the catalog."""

    def __init__(
        self,
        assessor: TableAssessor,
        *,
        config: QualityScoringConfig | None = None,
        max_concurrency: int = 5,
        table_timeout: float | None = None,
    ) -> None:
        self._assessor = assessor
        self._config = config or QualityScoringConfig()
        self._max_concurrency = max_concurrency
        self._table_timeout = table_timeout

    async def assess_all(
        self,
        progress: ProgressCallback | None = None,
        assessment_type: str = "comprehensive",
    ) -> CatalogAssessment:
        """Assess all catalog tables.

        Steps:
        1. List tables (StorageUnavailable is fatal and propagates).
        2. Assess each table on the bounded pool; exceptions become
           per-table failure stubs.
        3. Wait for every table (barrier).
        4. Summarize in catalog order.
        """
        # 1. Discover
        if progress is not None:
            await progress(15, "Discovering tables in catalog...")
        tables = await self._assessor.catalog.list_tables()
        total = len(tables)
        if progress is not None:
            await progress(20, f"Found {total} tables to assess")

        # 2-3. Assess on the bounded pool
        semaphore = asyncio.Semaphore(self._max_concurrency)
        done = 0

        async def _one(table_name: str) -> TableResult:
            nonlocal done
            async with semaphore:
                outcome = await self._assess_contained(table_name, assessment_type)
            done += 1
            if progress is not None:
                await progress(
                    20 + (done * 70) // max(total, 1),
                    f"Assessed {done}/{total} tables ({table_name})",
                )
            return outcome

        outcomes = await asyncio.gather(*(_one(t.table_name) for t in tables))

        # 4. Summarize
        if progress is not None:
            await progress(95, "Aggregating catalog results...")
        catalog = summarize_catalog(outcomes, self._config)
        logger.info(
            "Catalog assessment: %d tables, %d succeeded, %d failed, overall=%d",
            catalog.total_tables,
            catalog.successful_assessments,
            catalog.failed_assessments,
            catalog.overall_score,
        )
        return catalog

    async def _assess_contained(
        self, table_name: str, assessment_type: str,
    ) -> TableResult:
        try:
            async with asyncio.timeout(self._table_timeout):
                return await self._assessor.assess_table(table_name, assessment_type)
        except TimeoutError:
            error = f"Assessment timed out after {self._table_timeout}s"
        except EngineError as exc:
            error = str(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure assessing %s", table_name)
            error = str(exc) or type(exc).__name__
        logger.warning("Table %s failed: %s", table_name, error)
        return FailedTableAssessment(table_name=table_name, error=error)
