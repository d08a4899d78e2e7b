"""Tests for AssessmentRepository."""

from datetime import timedelta

import pytest

from dqengine.db.session import DatabaseHandle
from dqengine.models.common import utc_now
from dqengine.repositories.data_quality import AssessmentRepository


async def _save(repo: AssessmentRepository, table_name: str, *, hours_ago: int, score: int = 90):
    return await repo.save_assessment(
        table_name=table_name,
        assessment_type="comprehensive",
        metrics={"completeness": score},
        score=score,
        issues=[],
        recommendations=[{"issue_type": "general"}],
        assessed_at=utc_now() - timedelta(hours=hours_ago),
    )


class TestAssessmentRepository:
    @pytest.mark.anyio
    async def test_save_generates_id(self, db: DatabaseHandle) -> None:
        async with db.session_factory() as session:
            repo = AssessmentRepository(session)
            row = await _save(repo, "customers", hours_ago=0)
            await session.commit()
        assert row.id is not None
        assert row.status == "completed"
        assert row.recommendations == [{"issue_type": "general"}]

    @pytest.mark.anyio
    async def test_get_missing_returns_none(self, db: DatabaseHandle) -> None:
        from dqengine.models.common import new_uuid7

        async with db.session_factory() as session:
            assert await AssessmentRepository(session).get(new_uuid7()) is None

    @pytest.mark.anyio
    async def test_list_recent_newest_first_with_limit(self, db: DatabaseHandle) -> None:
        async with db.session_factory() as session:
            repo = AssessmentRepository(session)
            await _save(repo, "old", hours_ago=48)
            await _save(repo, "mid", hours_ago=24)
            await _save(repo, "new", hours_ago=1)
            await session.commit()

            rows = await repo.list_recent(limit=2)
        assert [r.table_name for r in rows] == ["new", "mid"]

    @pytest.mark.anyio
    async def test_list_since_oldest_first(self, db: DatabaseHandle) -> None:
        async with db.session_factory() as session:
            repo = AssessmentRepository(session)
            await _save(repo, "ancient", hours_ago=24 * 40)
            await _save(repo, "b", hours_ago=2)
            await _save(repo, "a", hours_ago=30)
            await session.commit()

            rows = await repo.list_since(utc_now() - timedelta(days=30))
        assert [r.table_name for r in rows] == ["a", "b"]

    @pytest.mark.anyio
    async def test_list_by_table(self, db: DatabaseHandle) -> None:
        async with db.session_factory() as session:
            repo = AssessmentRepository(session)
            await _save(repo, "customers", hours_ago=5, score=70)
            await _save(repo, "orders", hours_ago=4)
            await _save(repo, "customers", hours_ago=1, score=95)
            await session.commit()

            rows = await repo.list_by_table("customers")
        assert [r.score for r in rows] == [95, 70]
