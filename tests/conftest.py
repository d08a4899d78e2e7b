"""Shared pytest fixtures for the dqengine test suite.

Provides:
- seeded_db_path: file-based SQLite catalog with three assessable tables
  (customers, orders, audit_log) plus the assessment history table
- db: connected DatabaseHandle over the seeded file (aiosqlite)
- settings / services: engine components wired as in production
- client: AsyncClient against the app with state set directly

Seeded values (customers, 10 rows): one NULL email, one malformed email,
one padded name, one negative balance; overall score 92. orders (4 rows)
is clean (every customer_id resolves) but holds one future timestamp.
audit_log is empty.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.ext.asyncio import create_async_engine

import dqengine.db.tables  # noqa: F401 -- register ORM models on Base.metadata
from dqengine.api.dependencies import build_services
from dqengine.config.settings import Settings
from dqengine.db.session import Base, DatabaseHandle
from dqengine.quality.models import MetricSet, TableAssessment
from dqengine.quality.scorer import classify_band, compose_overall


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Seeded catalog
# ---------------------------------------------------------------------------

_catalog = MetaData()

customers = Table(
    "customers",
    _catalog,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
    Column("email", String(255)),
    Column("balance", Float),
    Column("signup_at", DateTime),
)

orders = Table(
    "orders",
    _catalog,
    Column("id", Integer, primary_key=True),
    Column("customer_id", Integer, ForeignKey("customers.id")),
    Column("total_amount", Float),
    Column("status", String(20)),
    Column("created_at", DateTime),
)

audit_log = Table(
    "audit_log",
    _catalog,
    Column("id", Integer, primary_key=True),
    Column("note", Text),
)


def seed_database(path) -> None:
    """Create and fill the test catalog with a synchronous engine."""
    now = datetime.now(tz=timezone.utc).replace(tzinfo=None)
    engine = create_engine(f"sqlite:///{path}")
    _catalog.create_all(engine)
    Base.metadata.create_all(engine)

    names = ["Ann", " Bob ", "Cy", "Dee", "Eve", "Fay", "Gus", "Hal", "Ivy", "Jo"]
    emails = [f"user{i}@example.com" for i in range(8)] + ["not-an-email", None]
    balances = [100.0] * 9 + [-15.0]
    with engine.begin() as conn:
        conn.execute(
            customers.insert(),
            [
                {
                    "id": i + 1,
                    "name": names[i],
                    "email": emails[i],
                    "balance": balances[i],
                    "signup_at": now - timedelta(days=1, hours=i),
                }
                for i in range(10)
            ],
        )
        conn.execute(
            orders.insert(),
            [
                {"id": 1, "customer_id": 1, "total_amount": 10.5, "status": "paid",
                 "created_at": now - timedelta(hours=5)},
                {"id": 2, "customer_id": 2, "total_amount": 20.0, "status": "pending",
                 "created_at": now - timedelta(hours=4)},
                {"id": 3, "customer_id": 3, "total_amount": 30.0, "status": "paid",
                 "created_at": now - timedelta(hours=3)},
                {"id": 4, "customer_id": 4, "total_amount": 40.25, "status": "shipped",
                 "created_at": now + timedelta(days=2)},
            ],
        )
    engine.dispose()


@pytest.fixture
def seeded_db_path(tmp_path):
    path = tmp_path / "catalog.db"
    seed_database(path)
    return path


@pytest.fixture
async def db(seeded_db_path):
    """Connected handle over the seeded catalog."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{seeded_db_path}")
    handle = DatabaseHandle.from_engine(engine)
    yield handle
    await handle.disconnect()


@pytest.fixture
def settings(seeded_db_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{seeded_db_path}",
        SIMULATED_RESPONSE_DELAY_SECONDS=0,
        GENERIC_RESPONSE_DELAY_SECONDS=0,
        PROBE_TIMEOUT_SECONDS=10,
        TABLE_TIMEOUT_SECONDS=30,
    )


@pytest.fixture
async def services(db, settings):
    services = build_services(db, settings)
    yield services
    await services.dispatcher.aclose()


@pytest.fixture
async def client(db, services):
    """AsyncClient with the app state pointing at the seeded catalog."""
    from dqengine.api.main import app

    app.state.db = db
    app.state.services = services

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_assessment():
    """Build a TableAssessment from metric values without touching a store."""

    def _make(
        table_name: str = "t",
        *,
        issues=None,
        recommendations=None,
        row_count: int = 10,
        column_count: int = 3,
        **metric_values: int,
    ) -> TableAssessment:
        metrics = MetricSet(**metric_values)
        overall = compose_overall(metrics)
        return TableAssessment(
            table_name=table_name,
            metrics=metrics,
            overall_score=overall,
            quality_band=classify_band(overall),
            issues=issues or [],
            recommendations=recommendations or [],
            row_count=row_count,
            column_count=column_count,
        )

    return _make
