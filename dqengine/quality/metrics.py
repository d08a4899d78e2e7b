"""Metric calculators -- six per-table quality metrics measured in the store.

Every metric starts at a ceiling of 100 and is lowered only by the minimum
score over the column probes that contributed to it. Each probe is a
single SQLAlchemy Core query run on its own pooled connection under a
timeout; a failing probe raises ProbeError, is logged, and is skipped.

Per-metric rules:

* completeness -- every column, ``100 * (1 - nulls / rows)``
* uniqueness   -- identifier columns, ``100 * distinct / rows``
* validity     -- email columns, ``100 * (1 - malformed / non_null)``
* consistency  -- text columns, ``100 * (1 - padded / non_null)`` where
  padded values differ from their whitespace-trimmed form
* accuracy     -- non-negative quantity columns,
  ``100 * (1 - negatives / non_null)``
* timeliness   -- temporal columns, age of ``MAX(col)`` against the
  freshness SLA, walked through ``freshness_ratio_thresholds``

A metric with no contributing probe keeps the ceiling value and is flagged
``MetricSource.UNAVAILABLE`` (except the zero-row rule for completeness
and uniqueness, which is a measurement).

Deterministic -- no LLM calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import Select, column, func, select, table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import TableClause

from dqengine.db.session import DatabaseHandle
from dqengine.models.common import utc_now
from dqengine.quality.classifier import ColumnClassifier, HeuristicColumnClassifier
from dqengine.quality.config import QualityScoringConfig
from dqengine.quality.errors import ProbeError
from dqengine.quality.models import (
    ColumnMetadata,
    MetricAssessment,
    MetricSet,
    MetricSource,
    QualityMetric,
    TableMetadata,
)
from dqengine.quality.scorer import round_score

logger = logging.getLogger(__name__)


@dataclass
class _Tally:
    """Running per-column scores for one metric."""

    metric: QualityMetric
    column_scores: dict[str, float] = field(default_factory=dict)
    failed_probes: list[str] = field(default_factory=list)
    examples: dict[str, list[str]] = field(default_factory=dict)
    rules: list[str] = field(default_factory=list)
    vacuous: bool = False

    def to_assessment(self) -> MetricAssessment:
        worst: str | None = None
        value = 100.0
        if self.column_scores:
            worst = min(self.column_scores, key=self.column_scores.__getitem__)
            value = min(value, self.column_scores[worst])
        measured = bool(self.column_scores) or self.vacuous
        return MetricAssessment(
            metric=self.metric,
            score=round_score(value),
            source=MetricSource.MEASURED if measured else MetricSource.UNAVAILABLE,
            column_scores=dict(self.column_scores),
            failed_probes=list(self.failed_probes),
            worst_column=worst,
            examples=self.examples.get(worst, []) if worst else [],
            rules_triggered=list(self.rules),
        )


def _as_utc(value: Any) -> datetime | None:
    """Coerce a MAX() result to an aware datetime; None if not temporal."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MetricCalculator:
    """Measures the six quality metrics of one table.

    Probes within a table run one after another; concurrency across tables
    is the aggregator's job.
    """

    def __init__(
        self,
        db: DatabaseHandle,
        *,
        config: QualityScoringConfig | None = None,
        classifier: ColumnClassifier | None = None,
        schema: str | None = None,
        probe_timeout: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._config = config or QualityScoringConfig()
        self._classifier = classifier or HeuristicColumnClassifier()
        self._schema = schema
        self._probe_timeout = probe_timeout
        self._clock = clock

    async def calculate(self, metadata: TableMetadata) -> list[MetricAssessment]:
        """All six metric assessments, in canonical metric order."""
        return [
            await self.measure_completeness(metadata),
            await self.measure_accuracy(metadata),
            await self.measure_consistency(metadata),
            await self.measure_validity(metadata),
            await self.measure_uniqueness(metadata),
            await self.measure_timeliness(metadata),
        ]

    async def measure(self, metadata: TableMetadata) -> MetricSet:
        return MetricSet.from_assessments(await self.calculate(metadata))

    # ---------------------------------------------------------------
    # Probe plumbing
    # ---------------------------------------------------------------

    def _target(self, metadata: TableMetadata) -> TableClause:
        return table(
            metadata.table_name,
            *[column(c.name) for c in metadata.columns],
            schema=self._schema,
        )

    async def execute_probe(self, table_name: str, col: str, stmt: Select) -> list[Any]:
        try:
            async with asyncio.timeout(self._probe_timeout):
                async with self._db.engine.connect() as conn:
                    result = await conn.execute(stmt)
                    return list(result.all())
        except SQLAlchemyError as exc:
            raise ProbeError(table_name, col, str(exc)) from exc
        except TimeoutError as exc:
            raise ProbeError(
                table_name, col, f"timed out after {self._probe_timeout}s",
            ) from exc

    async def _probe(
        self, tally: _Tally, metadata: TableMetadata, col: str, stmt: Select,
    ) -> list[Any] | None:
        """Run one probe; on ProbeError record the skip and return None."""
        try:
            return await self.execute_probe(metadata.table_name, col, stmt)
        except ProbeError as exc:
            logger.warning("Skipping %s probe: %s", tally.metric.value, exc)
            tally.failed_probes.append(col)
            return None

    async def _count_non_null(
        self, tally: _Tally, metadata: TableMetadata, target: TableClause, col: str,
    ) -> int | None:
        rows = await self._probe(
            tally, metadata, col,
            select(func.count(target.c[col])).select_from(target),
        )
        return None if rows is None else int(rows[0][0])

    def _columns(
        self, metadata: TableMetadata, predicate: Callable[[ColumnMetadata], bool],
    ) -> list[str]:
        return [c.name for c in metadata.columns if predicate(c)]

    # ---------------------------------------------------------------
    # Completeness
    # ---------------------------------------------------------------

    async def measure_completeness(self, metadata: TableMetadata) -> MetricAssessment:
        tally = _Tally(QualityMetric.COMPLETENESS)
        if metadata.row_count == 0:
            tally.vacuous = True
            tally.rules.append("completeness_empty_table")
            return tally.to_assessment()

        target = self._target(metadata)
        tally.rules.append("completeness_null_ratio")
        for col in metadata.columns:
            rows = await self._probe(
                tally, metadata, col.name,
                select(func.count()).select_from(target).where(
                    target.c[col.name].is_(None),
                ),
            )
            if rows is None:
                continue
            nulls = int(rows[0][0])
            tally.column_scores[col.name] = 100.0 * (1 - nulls / metadata.row_count)
        return tally.to_assessment()

    # ---------------------------------------------------------------
    # Uniqueness
    # ---------------------------------------------------------------

    async def measure_uniqueness(self, metadata: TableMetadata) -> MetricAssessment:
        tally = _Tally(QualityMetric.UNIQUENESS)
        if metadata.row_count == 0:
            tally.vacuous = True
            tally.rules.append("uniqueness_empty_table")
            return tally.to_assessment()

        identifiers = self._columns(metadata, self._classifier.is_identifier)
        if not identifiers:
            tally.rules.append("uniqueness_no_identifier_columns")
            return tally.to_assessment()

        target = self._target(metadata)
        tally.rules.append("uniqueness_distinct_ratio")
        for name in identifiers:
            rows = await self._probe(
                tally, metadata, name,
                select(func.count(func.distinct(target.c[name]))).select_from(target),
            )
            if rows is None:
                continue
            distinct = int(rows[0][0])
            tally.column_scores[name] = 100.0 * distinct / metadata.row_count
        return tally.to_assessment()

    # ---------------------------------------------------------------
    # Validity
    # ---------------------------------------------------------------

    async def measure_validity(self, metadata: TableMetadata) -> MetricAssessment:
        tally = _Tally(QualityMetric.VALIDITY)
        emails = self._columns(metadata, self._classifier.is_email)
        if not emails or metadata.row_count == 0:
            tally.rules.append("validity_no_email_values")
            return tally.to_assessment()

        target = self._target(metadata)
        pattern = self._config.email_pattern
        tally.rules.append("validity_email_pattern")
        for name in emails:
            col = target.c[name]
            non_null = await self._count_non_null(tally, metadata, target, name)
            if not non_null:
                continue
            malformed = col.is_not(None) & ~col.regexp_match(pattern)
            rows = await self._probe(
                tally, metadata, name,
                select(func.count()).select_from(target).where(malformed),
            )
            if rows is None:
                continue
            invalid = int(rows[0][0])
            tally.column_scores[name] = 100.0 * (1 - invalid / non_null)
            if invalid:
                samples = await self._probe(
                    tally, metadata, name,
                    select(col).where(malformed).limit(self._config.max_issue_examples),
                )
                tally.examples[name] = [str(r[0]) for r in samples or []]
        return tally.to_assessment()

    # ---------------------------------------------------------------
    # Consistency
    # ---------------------------------------------------------------

    async def measure_consistency(self, metadata: TableMetadata) -> MetricAssessment:
        tally = _Tally(QualityMetric.CONSISTENCY)
        texts = self._columns(metadata, self._classifier.is_text)
        if not texts or metadata.row_count == 0:
            tally.rules.append("consistency_no_text_values")
            return tally.to_assessment()

        target = self._target(metadata)
        tally.rules.append("consistency_untrimmed_ratio")
        for name in texts:
            col = target.c[name]
            non_null = await self._count_non_null(tally, metadata, target, name)
            if not non_null:
                continue
            padded = col.is_not(None) & (col != func.trim(col))
            rows = await self._probe(
                tally, metadata, name,
                select(func.count()).select_from(target).where(padded),
            )
            if rows is None:
                continue
            inconsistent = int(rows[0][0])
            tally.column_scores[name] = 100.0 * (1 - inconsistent / non_null)
            if inconsistent:
                samples = await self._probe(
                    tally, metadata, name,
                    select(col).where(padded).limit(self._config.max_issue_examples),
                )
                tally.examples[name] = [repr(r[0]) for r in samples or []]
        return tally.to_assessment()

    # ---------------------------------------------------------------
    # Accuracy
    # ---------------------------------------------------------------

    async def measure_accuracy(self, metadata: TableMetadata) -> MetricAssessment:
        tally = _Tally(QualityMetric.ACCURACY)
        quantities = self._columns(metadata, self._classifier.is_non_negative_quantity)
        if not quantities or metadata.row_count == 0:
            tally.rules.append("accuracy_no_reference")
            return tally.to_assessment()

        target = self._target(metadata)
        tally.rules.append("accuracy_negative_quantity")
        for name in quantities:
            col = target.c[name]
            non_null = await self._count_non_null(tally, metadata, target, name)
            if not non_null:
                continue
            rows = await self._probe(
                tally, metadata, name,
                select(func.count()).select_from(target).where(col < 0),
            )
            if rows is None:
                continue
            negatives = int(rows[0][0])
            tally.column_scores[name] = 100.0 * (1 - negatives / non_null)
        return tally.to_assessment()

    # ---------------------------------------------------------------
    # Timeliness
    # ---------------------------------------------------------------

    def score_freshness(self, age_hours: float) -> tuple[int, str]:
        """Walk freshness_ratio_thresholds for an age; returns (score, rule)."""
        ratio = max(age_hours, 0.0) / self._config.freshness_sla_hours
        for max_ratio, bracket_score in self._config.freshness_ratio_thresholds:
            if ratio <= max_ratio:
                return bracket_score, f"freshness_ratio_le_{max_ratio}"
        return 0, "freshness_fallback"

    async def measure_timeliness(self, metadata: TableMetadata) -> MetricAssessment:
        tally = _Tally(QualityMetric.TIMELINESS)
        temporal = self._columns(metadata, self._classifier.is_temporal)
        if not temporal or metadata.row_count == 0:
            tally.rules.append("timeliness_no_temporal_values")
            return tally.to_assessment()

        target = self._target(metadata)
        now = self._clock()
        for name in temporal:
            rows = await self._probe(
                tally, metadata, name,
                select(func.max(target.c[name])).select_from(target),
            )
            if rows is None or rows[0][0] is None:
                continue
            latest = _as_utc(rows[0][0])
            if latest is None:
                logger.warning(
                    "Skipping timeliness probe on %s.%s: unparseable value %r",
                    metadata.table_name, name, rows[0][0],
                )
                tally.failed_probes.append(name)
                continue
            age_hours = (now - latest).total_seconds() / 3600
            score, rule = self.score_freshness(age_hours)
            tally.column_scores[name] = float(score)
            if rule not in tally.rules:
                tally.rules.append(rule)
        return tally.to_assessment()
