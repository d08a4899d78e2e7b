"""FastAPI data quality endpoints.

POST /api/data-quality/assess        -- assess one table
POST /api/data-quality/assess-all    -- assess every catalog table
GET  /api/data-quality/assessments   -- recent persisted assessments

Every response is wrapped as ``{success, data, timestamp}``; errors are
mapped by the exception handlers in ``dqengine.api.main``.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from dqengine.api.dependencies import (
    get_aggregator,
    get_assessment_repo,
    get_assessor,
)
from dqengine.db.tables import DataQualityAssessmentRow
from dqengine.models.common import utc_now
from dqengine.quality.aggregator import CatalogAggregator
from dqengine.quality.assessor import TableAssessor
from dqengine.repositories.data_quality import AssessmentRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/data-quality", tags=["data-quality"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class AssessTableRequest(BaseModel):
    """Request body for a single-table assessment."""

    table_name: str = Field(alias="tableName", min_length=1)
    assessment_type: str = Field(default="comprehensive", alias="assessmentType")


class AssessAllRequest(BaseModel):
    assessment_type: str = Field(default="comprehensive", alias="assessmentType")


def _envelope(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data, "timestamp": utc_now().isoformat()}


def _row_to_dict(row: DataQualityAssessmentRow) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "table_name": row.table_name,
        "assessment_type": row.assessment_type,
        "metrics": row.metrics,
        "score": row.score,
        "issues": row.issues,
        "recommendations": row.recommendations,
        "status": row.status,
        "assessed_at": row.assessed_at.isoformat(),
        "created_at": row.created_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/assess")
async def assess_table(
    body: AssessTableRequest,
    assessor: TableAssessor = Depends(get_assessor),
) -> dict:
    """Assess one table. 404 if it is unknown or excluded."""
    assessment = await assessor.assess_table(body.table_name, body.assessment_type)
    return _envelope(assessment.model_dump(mode="json"))


@router.post("/assess-all")
async def assess_all_tables(
    body: AssessAllRequest | None = None,
    aggregator: CatalogAggregator = Depends(get_aggregator),
) -> dict:
    """Assess every catalog table; per-table failures are reported inline."""
    assessment_type = body.assessment_type if body else "comprehensive"
    catalog = await aggregator.assess_all(assessment_type=assessment_type)
    logger.info(
        "Catalog assessment: %d/%d tables, score %d",
        catalog.successful_assessments,
        catalog.total_tables,
        catalog.overall_score,
    )
    return _envelope(catalog.model_dump(mode="json"))


@router.get("/assessments")
async def list_assessments(
    limit: int = Query(default=20, ge=1, le=100),
    repo: AssessmentRepository = Depends(get_assessment_repo),
) -> dict:
    """Most recent persisted assessments, newest first."""
    rows = await repo.list_recent(limit)
    assessments = [_row_to_dict(r) for r in rows]
    return _envelope({"assessments": assessments, "count": len(assessments)})
