"""Service wiring and FastAPI dependency factories.

``build_services`` assembles the engine components around one
DatabaseHandle; the lifespan stores the result on ``app.state`` and the
getters below hand the pieces to endpoints via Depends().
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dqengine.config.settings import Settings
from dqengine.db.session import DatabaseHandle, get_async_session
from dqengine.dispatch.bus import EventBus
from dqengine.dispatch.dispatcher import TaskDispatcher
from dqengine.dispatch.handlers import QualityTaskHandler, SimulatedResponder
from dqengine.quality.aggregator import CatalogAggregator
from dqengine.quality.assessor import TableAssessor
from dqengine.quality.catalog import SchemaCatalogReader
from dqengine.quality.classifier import HeuristicColumnClassifier
from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.integrity import IntegrityValidator
from dqengine.quality.metrics import MetricCalculator
from dqengine.repositories.data_quality import AssessmentRepository

# Targets (or, for team coordination, the task name) answered by SimulatedResponder.
SIMULATED_COLLABORATORS = ("database-manager", "validation-engine", "team-coordination")


@dataclass
class QualityServices:
    assessor: TableAssessor
    aggregator: CatalogAggregator
    integrity: IntegrityValidator
    handler: QualityTaskHandler
    bus: EventBus
    dispatcher: TaskDispatcher


def build_services(
    db: DatabaseHandle,
    settings: Settings,
    config: QualityScoringConfig | None = None,
) -> QualityServices:
    """Assemble every engine component around one database handle."""
    config = config or QualityScoringConfig()
    classifier = HeuristicColumnClassifier()
    catalog = SchemaCatalogReader(
        db,
        schema=settings.DATABASE_SCHEMA,
        excluded_tables=settings.EXCLUDED_TABLES,
        timeout=settings.PROBE_TIMEOUT_SECONDS,
    )
    calculator = MetricCalculator(
        db,
        config=config,
        classifier=classifier,
        schema=settings.DATABASE_SCHEMA,
        probe_timeout=settings.PROBE_TIMEOUT_SECONDS,
    )
    assessor = TableAssessor(
        catalog,
        calculator,
        config=config,
        session_factory=lambda: db.session_factory,
    )
    aggregator = CatalogAggregator(
        assessor,
        config=config,
        max_concurrency=min(settings.MAX_CONCURRENT_TABLES, settings.DB_POOL_SIZE),
        table_timeout=settings.TABLE_TIMEOUT_SECONDS,
    )
    integrity = IntegrityValidator(
        catalog, calculator, classifier=classifier, schema=settings.DATABASE_SCHEMA,
    )
    handler = QualityTaskHandler(
        assessor=assessor,
        aggregator=aggregator,
        integrity=integrity,
        session_factory=lambda: db.session_factory,
        config=config,
        catalog_name=settings.CATALOG_NAME,
    )
    bus = EventBus()
    simulated = SimulatedResponder(delay=settings.SIMULATED_RESPONSE_DELAY_SECONDS)
    dispatcher = TaskDispatcher(
        handler,
        bus,
        responder_id=settings.RESPONDER_ID,
        simulated={name: simulated for name in SIMULATED_COLLABORATORS},
        fallback=SimulatedResponder(delay=settings.GENERIC_RESPONSE_DELAY_SECONDS),
    )
    return QualityServices(
        assessor=assessor,
        aggregator=aggregator,
        integrity=integrity,
        handler=handler,
        bus=bus,
        dispatcher=dispatcher,
    )


# ---------------------------------------------------------------------------
# Engine components
# ---------------------------------------------------------------------------


def get_services(request: Request) -> QualityServices:
    return request.app.state.services


def get_assessor(services: QualityServices = Depends(get_services)) -> TableAssessor:
    return services.assessor


def get_aggregator(
    services: QualityServices = Depends(get_services),
) -> CatalogAggregator:
    return services.aggregator


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


async def get_assessment_repo(
    session: AsyncSession = Depends(get_async_session),
) -> AssessmentRepository:
    return AssessmentRepository(session)
