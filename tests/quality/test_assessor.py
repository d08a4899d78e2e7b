"""Tests for TableAssessor: end-to-end single-table assessment."""

from __future__ import annotations

import pytest

from dqengine.db.session import DatabaseHandle
from dqengine.quality.assessor import TableAssessor
from dqengine.quality.catalog import SchemaCatalogReader
from dqengine.quality.errors import TableNotFound
from dqengine.quality.metrics import MetricCalculator
from dqengine.quality.models import (
    IssueSeverity,
    IssueType,
    QualityBand,
    RecommendationPriority,
)
from dqengine.repositories.data_quality import AssessmentRepository


def _assessor(db: DatabaseHandle, *, persist: bool = True) -> TableAssessor:
    return TableAssessor(
        SchemaCatalogReader(db),
        MetricCalculator(db),
        session_factory=(lambda: db.session_factory) if persist else None,
    )


class TestAssessTable:
    @pytest.mark.anyio
    async def test_customers_assessment(self, db: DatabaseHandle) -> None:
        result = await _assessor(db).assess_table("customers")
        assert result.status == "completed"
        assert result.overall_score == 92
        assert result.quality_band == QualityBand.EXCELLENT
        assert result.row_count == 10
        assert result.column_count == 5
        assert len(result.metric_details) == 6

    @pytest.mark.anyio
    async def test_issues_and_recommendations(self, db: DatabaseHandle) -> None:
        result = await _assessor(db).assess_table("customers")
        assert [i.type for i in result.issues] == [
            IssueType.DUPLICATE_RECORDS,
            IssueType.INVALID_FORMAT,
        ]
        assert all(i.severity == IssueSeverity.MEDIUM for i in result.issues)
        invalid = result.issues[1]
        assert invalid.field_name == "email"
        assert invalid.count == 88
        assert invalid.examples == ["not-an-email"]
        assert [r.priority for r in result.recommendations] == [
            RecommendationPriority.MEDIUM,
            RecommendationPriority.MEDIUM,
        ]

    @pytest.mark.anyio
    async def test_progress_reported(self, db: DatabaseHandle) -> None:
        seen: list[tuple[int, str]] = []

        async def progress(percent: int, stage: str) -> None:
            seen.append((percent, stage))

        await _assessor(db).assess_table("orders", progress=progress)
        assert [p for p, _ in seen] == [30, 70]
        assert seen[0][1] == "Analyzing 5 columns in orders"

    @pytest.mark.anyio
    async def test_unknown_table_raises(self, db: DatabaseHandle) -> None:
        with pytest.raises(TableNotFound):
            await _assessor(db).assess_table("missing")


class TestPersistence:
    @pytest.mark.anyio
    async def test_result_appended_to_history(self, db: DatabaseHandle) -> None:
        result = await _assessor(db).assess_table("customers", "deep-dive")
        assert result.persisted_id is not None

        async with db.session_factory() as session:
            row = await AssessmentRepository(session).get(result.persisted_id)
        assert row is not None
        assert row.table_name == "customers"
        assert row.assessment_type == "deep-dive"
        assert row.score == 92
        assert row.metrics["validity"] == 89
        assert len(row.issues) == 2

    @pytest.mark.anyio
    async def test_persistence_failure_still_returns_result(
        self, db: DatabaseHandle,
    ) -> None:
        offline = DatabaseHandle("sqlite+aiosqlite:///unused.db")
        assessor = TableAssessor(
            SchemaCatalogReader(db),
            MetricCalculator(db),
            session_factory=lambda: offline.session_factory,
        )
        result = await assessor.assess_table("customers")
        assert result.persisted_id is None
        assert result.overall_score == 92

    @pytest.mark.anyio
    async def test_persistence_disabled(self, db: DatabaseHandle) -> None:
        result = await _assessor(db, persist=False).assess_table("orders")
        assert result.persisted_id is None
        async with db.session_factory() as session:
            assert await AssessmentRepository(session).list_recent() == []
