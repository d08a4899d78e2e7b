"""Integrity validation -- constraint violations and temporal anomalies.

Three read-only checks per catalog table:

* rows whose single-column foreign key points at no row of the referred
  table (orphaned records, severity critical)
* NULL values stored in columns declared NOT NULL (constraint_violation,
  severity high)
* timestamp values in the future (outdated_data anomaly, severity medium)

Integrity score: ``max(0, 100 - 2 * violations - 5 * critical_checks)``.
Recommendations are the first three check recommendations followed by
the generic advice, which is always included.
"""

from __future__ import annotations

import logging

from pydantic import Field
from sqlalchemy import column, func, select, table

from dqengine.models.common import DQEngineBase, UTCTimestamp, utc_now
from dqengine.quality.catalog import SchemaCatalogReader
from dqengine.quality.classifier import ColumnClassifier, HeuristicColumnClassifier
from dqengine.quality.errors import ProbeError, TableNotFound
from dqengine.quality.metrics import MetricCalculator
from dqengine.quality.models import IssueSeverity, IssueType, TableMetadata

logger = logging.getLogger(__name__)


class IntegrityCheck(DQEngineBase):
    type: IssueType
    table: str
    column: str
    issue: str
    severity: IssueSeverity
    count: int
    recommendation: str


class IntegrityReport(DQEngineBase):
    integrity_score: int
    status: str
    tables_checked: int
    total_violations: int
    critical_violations: int
    constraints_checked: bool
    anomalies_checked: bool
    integrity_checks: list[IntegrityCheck] = Field(default_factory=list)
    anomalies: list[IntegrityCheck] = Field(default_factory=list)
    skipped_tables: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    checked_at: UTCTimestamp = Field(default_factory=utc_now)


GENERIC_INTEGRITY_ADVICE: list[str] = [
    "Implement foreign key constraints where missing",
    "Set up automated integrity monitoring",
    "Regular data quality audits recommended",
]


def integrity_status(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


class IntegrityValidator:
    """Runs integrity checks table by table through the probe runner."""

    def __init__(
        self,
        catalog: SchemaCatalogReader,
        calculator: MetricCalculator,
        *,
        classifier: ColumnClassifier | None = None,
        schema: str | None = None,
    ) -> None:
        self._catalog = catalog
        self._calculator = calculator
        self._classifier = classifier or HeuristicColumnClassifier()
        self._schema = schema

    async def _count(self, metadata: TableMetadata, col: str, condition) -> int | None:
        target = table(
            metadata.table_name,
            *[column(c.name) for c in metadata.columns],
            schema=self._schema,
        )
        stmt = select(func.count()).select_from(target).where(condition(target.c[col]))
        try:
            rows = await self._calculator.execute_probe(metadata.table_name, col, stmt)
        except ProbeError as exc:
            logger.warning("Skipping integrity check: %s", exc)
            return None
        return int(rows[0][0])

    async def _orphan_checks(self, metadata: TableMetadata) -> list[IntegrityCheck]:
        """Rows whose foreign key value is missing from the referred table."""
        checks: list[IntegrityCheck] = []
        known = {c.name for c in metadata.columns}
        for fk in metadata.foreign_keys:
            # Composite keys are not checked.
            if len(fk.columns) != 1 or len(fk.referred_columns) != 1:
                continue
            col, ref_col = fk.columns[0], fk.referred_columns[0]
            if col not in known:
                continue
            referred = table(
                fk.referred_table,
                column(ref_col),
                schema=fk.referred_schema or self._schema,
            )
            keys = select(referred.c[ref_col]).where(referred.c[ref_col].is_not(None))
            orphans = await self._count(
                metadata, col, lambda c: c.is_not(None) & c.not_in(keys),
            )
            if orphans:
                checks.append(
                    IntegrityCheck(
                        type=IssueType.CONSTRAINT_VIOLATION,
                        table=metadata.table_name,
                        column=col,
                        issue="Orphaned records found",
                        severity=IssueSeverity.CRITICAL,
                        count=orphans,
                        recommendation=(
                            f"Clean up orphaned records in {metadata.table_name}"
                            f".{col} or restore the missing {fk.referred_table} rows"
                        ),
                    )
                )
        return checks

    async def check_table(
        self,
        metadata: TableMetadata,
        *,
        check_constraints: bool = True,
        detect_anomalies: bool = True,
    ) -> tuple[list[IntegrityCheck], list[IntegrityCheck]]:
        checks: list[IntegrityCheck] = []
        anomalies: list[IntegrityCheck] = []
        if check_constraints:
            checks.extend(await self._orphan_checks(metadata))
        for col in metadata.columns:
            if check_constraints and not col.nullable:
                nulls = await self._count(metadata, col.name, lambda c: c.is_(None))
                if nulls:
                    checks.append(
                        IntegrityCheck(
                            type=IssueType.CONSTRAINT_VIOLATION,
                            table=metadata.table_name,
                            column=col.name,
                            issue="NULL values in NOT NULL column",
                            severity=IssueSeverity.HIGH,
                            count=nulls,
                            recommendation=(
                                f"Update NULL values in {col.name} or modify constraint"
                            ),
                        )
                    )
            if detect_anomalies and self._classifier.is_temporal(col):
                future = await self._count(
                    metadata, col.name, lambda c: c > func.current_timestamp(),
                )
                if future:
                    anomalies.append(
                        IntegrityCheck(
                            type=IssueType.OUTDATED_DATA,
                            table=metadata.table_name,
                            column=col.name,
                            issue="Future timestamps detected",
                            severity=IssueSeverity.MEDIUM,
                            count=future,
                            recommendation=(
                                f"Review clock sources writing {col.name}"
                            ),
                        )
                    )
        return checks, anomalies

    async def validate(
        self,
        *,
        check_constraints: bool = True,
        detect_anomalies: bool = True,
        max_tables: int | None = None,
    ) -> IntegrityReport:
        """Check every catalog table (or the first ``max_tables``)."""
        tables = await self._catalog.list_tables()
        if max_tables is not None:
            tables = tables[:max_tables]

        checks: list[IntegrityCheck] = []
        anomalies: list[IntegrityCheck] = []
        skipped: list[str] = []
        for summary in tables:
            try:
                metadata = await self._catalog.describe_table(summary.table_name)
            except TableNotFound:
                skipped.append(summary.table_name)
                continue
            table_checks, table_anomalies = await self.check_table(
                metadata,
                check_constraints=check_constraints,
                detect_anomalies=detect_anomalies,
            )
            checks.extend(table_checks)
            anomalies.extend(table_anomalies)

        violations = sum(c.count for c in checks)
        critical = sum(1 for c in checks if c.severity == IssueSeverity.CRITICAL)
        score = max(0, 100 - violations * 2 - critical * 5)
        return IntegrityReport(
            integrity_score=score,
            status=integrity_status(score),
            tables_checked=len(tables) - len(skipped),
            total_violations=violations,
            critical_violations=critical,
            constraints_checked=check_constraints,
            anomalies_checked=detect_anomalies,
            integrity_checks=checks,
            anomalies=anomalies,
            skipped_tables=skipped,
            recommendations=[
                *[c.recommendation for c in checks[:3]],
                *GENERIC_INTEGRITY_ADVICE,
            ],
        )
