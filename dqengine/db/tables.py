"""SQLAlchemy ORM table models for dqengine.

Uses FlexJSON (JSONB on Postgres, JSON on SQLite) for nested assessment
payloads. Assessment history rows are append-only.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from dqengine.db.session import Base
from dqengine.models.common import new_uuid7, utc_now

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")


class DataQualityAssessmentRow(Base):
    """One persisted table assessment. The id is assigned at insert time."""

    __tablename__ = "data_quality_assessments"
    __table_args__ = (
        Index("ix_data_quality_assessments_assessed_at", "assessed_at"),
        Index("ix_data_quality_assessments_table_name", "table_name"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=new_uuid7)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    assessment_type: Mapped[str] = mapped_column(String(100), nullable=False)
    metrics = mapped_column(FlexJSON, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    issues = mapped_column(FlexJSON, nullable=False)
    recommendations = mapped_column(FlexJSON, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="completed")
    assessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now,
    )
