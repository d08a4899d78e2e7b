"""SQLAlchemy async session setup for dqengine.

Provides:
- Base: DeclarativeBase for all ORM models
- DatabaseHandle: explicitly constructed pool handle with connect/disconnect
- get_async_session: FastAPI dependency with Unit-of-Work commit/rollback

There is no module-level engine. The application builds one DatabaseHandle
at startup and passes it to every component that touches the store.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dqengine.quality.errors import StorageUnavailable

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


@dataclass(frozen=True)
class ConnectionResult:
    """Outcome of DatabaseHandle.connect()."""

    connected: bool
    error: str | None = None


class DatabaseHandle:
    """Owns the async engine and session factory for one store.

    ``connect()`` builds the engine and verifies it with a round trip;
    ``disconnect()`` disposes the pool. While disconnected, ``engine`` and
    ``session_factory`` raise StorageUnavailable.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._echo = echo
        self._pool_size = pool_size
        self._connect_timeout = connect_timeout
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "DatabaseHandle":
        """Wrap an already-built engine (tests, embedding)."""
        handle = cls(engine.url.render_as_string(hide_password=False))
        handle._bind(engine)
        return handle

    def _bind(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise StorageUnavailable("Database is not connected")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise StorageUnavailable("Database is not connected")
        return self._session_factory

    async def connect(self) -> ConnectionResult:
        """Create the pool and run ``SELECT 1``.

        Never raises for connectivity problems; the failure is reported in
        the returned ConnectionResult and the handle stays disconnected.
        """
        if self._engine is not None:
            return ConnectionResult(connected=True)

        kwargs: dict[str, object] = {"echo": self._echo, "pool_pre_ping": True}
        if self._pool_size is not None and not self._url.startswith("sqlite"):
            kwargs["pool_size"] = self._pool_size
        engine = create_async_engine(self._url, **kwargs)

        try:
            async with asyncio.timeout(self._connect_timeout):
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            await engine.dispose()
            logger.warning("Database connection failed: %s", exc)
            return ConnectionResult(connected=False, error=str(exc))

        self._bind(engine)
        logger.info("Database connected (%s)", engine.url.render_as_string())
        return ConnectionResult(connected=True)

    async def disconnect(self) -> None:
        """Dispose the pool. Safe to call when already disconnected."""
        engine = self._engine
        self._engine = None
        self._session_factory = None
        if engine is not None:
            await engine.dispose()
            logger.info("Database disconnected")

    async def ping(self) -> bool:
        """Return True when a ``SELECT 1`` round trip succeeds."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError):
            return False
        return True

    async def create_tables(self) -> None:
        """Create the engine's own ORM tables (assessment history)."""
        import dqengine.db.tables  # noqa: F401 -- register ORM models on Base.metadata

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def get_async_session(
    request: Request,
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session with Unit-of-Work semantics.

    Repositories only call add()/flush()/refresh().
    Commit happens once at the end of a successful request.
    Rollback happens on any exception.
    """
    db: DatabaseHandle = request.app.state.db
    async with db.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
