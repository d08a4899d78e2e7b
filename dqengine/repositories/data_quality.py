"""Assessment history repository.

Repos take AsyncSession, call add()/flush() only and never commit().
The caller owns the unit of work (session dependency or the assessor's
own session scope).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dqengine.db.tables import DataQualityAssessmentRow
from dqengine.models.common import utc_now


class AssessmentRepository:
    """Repository for append-only table assessment rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save_assessment(
        self,
        *,
        table_name: str,
        assessment_type: str,
        metrics: dict,
        score: int,
        issues: list[dict],
        recommendations: list[dict],
        assessed_at: datetime,
        status: str = "completed",
    ) -> DataQualityAssessmentRow:
        """Insert one assessment. The row id is generated on insert."""
        row = DataQualityAssessmentRow(
            table_name=table_name,
            assessment_type=assessment_type,
            metrics=metrics,
            score=score,
            issues=issues,
            recommendations=recommendations,
            status=status,
            assessed_at=assessed_at,
            created_at=utc_now(),
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def get(self, assessment_id: UUID) -> DataQualityAssessmentRow | None:
        result = await self._session.execute(
            select(DataQualityAssessmentRow).where(
                DataQualityAssessmentRow.id == assessment_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 20) -> list[DataQualityAssessmentRow]:
        """Most recent assessments, newest first."""
        result = await self._session.execute(
            select(DataQualityAssessmentRow)
            .order_by(
                DataQualityAssessmentRow.assessed_at.desc(),
                DataQualityAssessmentRow.id.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_since(self, since: datetime) -> list[DataQualityAssessmentRow]:
        """All assessments at or after ``since``, oldest first (trend input)."""
        result = await self._session.execute(
            select(DataQualityAssessmentRow)
            .where(DataQualityAssessmentRow.assessed_at >= since)
            .order_by(DataQualityAssessmentRow.assessed_at.asc())
        )
        return list(result.scalars().all())

    async def list_by_table(
        self, table_name: str,
    ) -> list[DataQualityAssessmentRow]:
        """Assessment history for one table, newest first."""
        result = await self._session.execute(
            select(DataQualityAssessmentRow)
            .where(DataQualityAssessmentRow.table_name == table_name)
            .order_by(DataQualityAssessmentRow.assessed_at.desc())
        )
        return list(result.scalars().all())
