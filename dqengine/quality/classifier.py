"""Column classification heuristics.

The metric calculators never inspect column names or types directly; they
ask a ColumnClassifier which columns each probe applies to. Swap in a
different classifier to change probe targeting without touching scoring.
"""

from __future__ import annotations

import re
from typing import Protocol

from dqengine.quality.models import ColumnMetadata


class ColumnClassifier(Protocol):
    def is_identifier(self, column: ColumnMetadata) -> bool: ...

    def is_email(self, column: ColumnMetadata) -> bool: ...

    def is_text(self, column: ColumnMetadata) -> bool: ...

    def is_temporal(self, column: ColumnMetadata) -> bool: ...

    def is_non_negative_quantity(self, column: ColumnMetadata) -> bool: ...


_TEXT_TYPES = ("CHAR", "TEXT", "STRING", "CLOB", "CITEXT")
_TEMPORAL_TYPES = ("TIMESTAMP", "DATETIME", "DATE")
_NUMERIC_TYPES = (
    "INT", "NUMERIC", "DECIMAL", "REAL", "FLOAT", "DOUBLE", "MONEY",
)
_QUANTITY_NAME = re.compile(
    r"(amount|price|quantity|qty|count|total|cost|age|balance)", re.IGNORECASE,
)


class HeuristicColumnClassifier:
    """Name- and type-based classifier.

    * identifier: name contains ``id`` or ``email`` (case-insensitive)
    * email: name contains ``email``
    * text / temporal / numeric: declared type family
    * non-negative quantity: numeric type and a quantity-like name
    """

    def is_identifier(self, column: ColumnMetadata) -> bool:
        name = column.name.lower()
        return "id" in name or "email" in name

    def is_email(self, column: ColumnMetadata) -> bool:
        return "email" in column.name.lower()

    def is_text(self, column: ColumnMetadata) -> bool:
        return _type_matches(column, _TEXT_TYPES)

    def is_temporal(self, column: ColumnMetadata) -> bool:
        return _type_matches(column, _TEMPORAL_TYPES)

    def is_non_negative_quantity(self, column: ColumnMetadata) -> bool:
        if not _type_matches(column, _NUMERIC_TYPES):
            return False
        return _QUANTITY_NAME.search(column.name) is not None


def _type_matches(column: ColumnMetadata, families: tuple[str, ...]) -> bool:
    declared = column.data_type.upper()
    # INTERVAL contains "INT" but is not numeric.
    if declared.startswith("INTERVAL"):
        return False
    return any(family in declared for family in families)
