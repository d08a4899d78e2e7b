"""FastAPI application entry point for dqengine.

The lifespan connects one DatabaseHandle, builds the engine services
around it and stores both on ``app.state``. A failed connection is
logged and the app still starts; requests that need the store get 503.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dqengine.api.data_quality import router as data_quality_router
from dqengine.api.dependencies import build_services
from dqengine.api.tasks import router as tasks_router
from dqengine.config.settings import Environment, get_settings
from dqengine.db.session import DatabaseHandle
from dqengine.models.common import utc_now
from dqengine.quality.errors import StorageUnavailable, TableNotFound

APP_VERSION = "0.1.0"

settings = get_settings()

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --- Structured logging ---
logging.basicConfig(
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    level=_LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
)
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.ENVIRONMENT == Environment.DEV
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    current = get_settings()
    db = DatabaseHandle(current.DATABASE_URL, pool_size=current.DB_POOL_SIZE)
    result = await db.connect()
    if result.connected:
        logger.info("database_connected")
        if current.AUTO_CREATE_TABLES:
            await db.create_tables()
    else:
        logger.error("database_unavailable", error=result.error)

    services = build_services(db, current)
    app.state.db = db
    app.state.services = services
    try:
        yield
    finally:
        await services.dispatcher.aclose()
        await db.disconnect()
        logger.info("database_disconnected")


# --- FastAPI app ---
app = FastAPI(
    title="dqengine API",
    description="Data quality assessment engine with task dispatch.",
    version=APP_VERSION,
    lifespan=lifespan,
)

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENVIRONMENT == Environment.DEV else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error envelope ---


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": utc_now().isoformat()},
    )


@app.exception_handler(TableNotFound)
async def table_not_found_handler(request: Request, exc: TableNotFound) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(
    request: Request, exc: StorageUnavailable,
) -> JSONResponse:
    logger.error("storage_unavailable", path=request.url.path, error=str(exc))
    return _error(503, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    messages = [
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    return _error(400, "; ".join(messages) or "Invalid request")


# --- Routers ---
app.include_router(data_quality_router)
app.include_router(tasks_router)


# --- Infrastructure Endpoints ---


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Liveness probe with a database round trip.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True}
    db: DatabaseHandle | None = getattr(request.app.state, "db", None)
    checks["database"] = db is not None and await db.ping()

    return {
        "status": "ok" if all(checks.values()) else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": "dqengine",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
