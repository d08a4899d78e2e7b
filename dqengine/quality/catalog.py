"""Schema catalog reader.

Lists the assessable tables of the store and describes a single table
(row count, ordered column metadata and declared foreign keys). Uses
SQLAlchemy runtime inspection, so the same code reads PostgreSQL
(asyncpg) and SQLite (aiosqlite) catalogs. Read-only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from sqlalchemy import func, inspect, select, table
from sqlalchemy.engine import Connection
from sqlalchemy.exc import CompileError, DBAPIError, NoSuchTableError

from dqengine.config.settings import DEFAULT_EXCLUDED_TABLES
from dqengine.db.session import DatabaseHandle
from dqengine.quality.errors import StorageUnavailable, TableNotFound
from dqengine.quality.models import (
    ColumnMetadata,
    ForeignKeyMetadata,
    TableMetadata,
    TableSummary,
)

logger = logging.getLogger(__name__)


def _is_system_table(name: str) -> bool:
    return name.startswith(("pg_", "sqlite_"))


def _type_name(type_, sync_conn: Connection) -> str:
    try:
        return str(type_.compile(dialect=sync_conn.dialect))
    except CompileError:
        # Untyped SQLite columns reflect as NullType.
        return type(type_).__name__.upper()


class SchemaCatalogReader:
    """Reads table names, row counts and column metadata."""

    def __init__(
        self,
        db: DatabaseHandle,
        *,
        schema: str | None = None,
        excluded_tables: Iterable[str] = DEFAULT_EXCLUDED_TABLES,
        timeout: float = 30.0,
    ) -> None:
        self._db = db
        self._schema = schema
        self._excluded = frozenset(excluded_tables)
        self._timeout = timeout

    def is_excluded(self, table_name: str) -> bool:
        return table_name in self._excluded or _is_system_table(table_name)

    async def list_tables(self) -> list[TableSummary]:
        """Every assessable base table, sorted by name."""

        def _read(sync_conn: Connection) -> list[TableSummary]:
            inspector = inspect(sync_conn)
            summaries: list[TableSummary] = []
            for name in sorted(inspector.get_table_names(schema=self._schema)):
                if self.is_excluded(name):
                    continue
                columns = inspector.get_columns(name, schema=self._schema)
                summaries.append(
                    TableSummary(table_name=name, column_count=len(columns)),
                )
            return summaries

        summaries = await self._run(_read)
        logger.info("Catalog lists %d assessable tables", len(summaries))
        return summaries

    async def describe_table(self, table_name: str) -> TableMetadata:
        """Row count and ordered columns. Raises TableNotFound."""
        if self.is_excluded(table_name):
            raise TableNotFound(table_name)

        def _read(sync_conn: Connection) -> TableMetadata:
            inspector = inspect(sync_conn)
            if not inspector.has_table(table_name, schema=self._schema):
                raise TableNotFound(table_name)
            try:
                raw_columns = inspector.get_columns(table_name, schema=self._schema)
            except NoSuchTableError as exc:
                raise TableNotFound(table_name) from exc

            columns = [
                ColumnMetadata(
                    name=col["name"],
                    data_type=_type_name(col["type"], sync_conn),
                    nullable=bool(col.get("nullable", True)),
                    default=(
                        str(col["default"]) if col.get("default") is not None else None
                    ),
                    max_length=getattr(col["type"], "length", None),
                )
                for col in raw_columns
            ]
            foreign_keys = [
                ForeignKeyMetadata(
                    columns=fk["constrained_columns"],
                    referred_table=fk["referred_table"],
                    referred_columns=fk["referred_columns"],
                    referred_schema=fk.get("referred_schema"),
                )
                for fk in inspector.get_foreign_keys(table_name, schema=self._schema)
                if fk.get("referred_table")
            ]
            target = table(table_name, schema=self._schema)
            row_count = sync_conn.execute(
                select(func.count()).select_from(target)
            ).scalar_one()
            return TableMetadata(
                table_name=table_name,
                row_count=int(row_count),
                columns=columns,
                foreign_keys=foreign_keys,
            )

        return await self._run(_read)

    async def _run(self, fn):
        """Run a sync inspection callable on a pooled connection."""
        try:
            async with asyncio.timeout(self._timeout):
                async with self._db.engine.connect() as conn:
                    return await conn.run_sync(fn)
        except (DBAPIError, OSError) as exc:
            logger.error("Catalog read failed: %s", exc)
            raise StorageUnavailable(str(exc)) from exc
        except TimeoutError as exc:
            raise StorageUnavailable(
                f"Catalog read timed out after {self._timeout}s"
            ) from exc
