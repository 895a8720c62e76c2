# File: modelgen/patterns.py
"""
NexaFlow ModelGen - Pattern Detectors
======================================

Pluggable column-name heuristics that annotate a table with the
conventions the templates care about:

- soft deletion: rows are archived through a timestamp column
- positioning:   rows are ordered by an integer column
- enums:         column → allowed values

Patterns are advisory.  A table without any pattern is perfectly normal,
and a detector that blows up is logged and ignored for that table.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence

from modelgen.models import (
    Column,
    Patterns,
    PositioningPattern,
    SoftDeletionPattern,
    TableRelationships,
    TableSchema,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.patterns")

# ---------------------------------------------------------------------------
# Heuristic tables
# ---------------------------------------------------------------------------

# Column name → mechanism that conventionally owns it.
SOFT_DELETION_MARKERS: Dict[str, str] = {
    "discarded_at": "discard",
    "deleted_at": "paranoia",
    "archived_at": "archive",
}

POSITION_COLUMNS: tuple = ("position", "sort_order", "row_order", "display_order")

_TIMESTAMP_TYPES: FrozenSet[str] = frozenset({
    "datetime", "timestamp", "timestamptz", "date",
    "timestamp with time zone", "timestamp without time zone",
})

_INTEGER_TYPES: FrozenSet[str] = frozenset({
    "integer", "int", "bigint", "smallint", "decimal", "numeric", "float",
})


def _base_type(column: Column) -> str:
    return column.type.split("(")[0].strip()


# ---------------------------------------------------------------------------
# Detector interface
# ---------------------------------------------------------------------------


class PatternDetector(ABC):
    """Inspect one table and return the ``Patterns`` fields it found."""

    name: str = "pattern"

    @abstractmethod
    def detect(
        self,
        table: TableSchema,
        relationships: TableRelationships,
    ) -> Dict[str, Any]:
        """Return a partial ``Patterns`` mapping (empty when nothing matched)."""


class SoftDeletionDetector(PatternDetector):
    name = "soft_deletion"

    def __init__(self, markers: Optional[Mapping[str, str]] = None) -> None:
        self._markers: Dict[str, str] = dict(markers or SOFT_DELETION_MARKERS)

    def detect(
        self,
        table: TableSchema,
        relationships: TableRelationships,
    ) -> Dict[str, Any]:
        for column_name, mechanism in self._markers.items():
            col: Optional[Column] = table.column(column_name)
            if col is not None and _base_type(col) in _TIMESTAMP_TYPES:
                return {
                    "soft_deletion": SoftDeletionPattern(
                        column=column_name, mechanism=mechanism
                    )
                }
        return {}


class PositioningDetector(PatternDetector):
    """
    Finds an ordering column.

    The scope defaults to the foreign keys of the table's non-polymorphic
    ``belongs_to`` associations that are present as columns.
    """

    name = "positioning"

    def __init__(self, columns: Sequence[str] = POSITION_COLUMNS) -> None:
        self._columns: tuple = tuple(columns)

    def detect(
        self,
        table: TableSchema,
        relationships: TableRelationships,
    ) -> Dict[str, Any]:
        for column_name in self._columns:
            col: Optional[Column] = table.column(column_name)
            if col is None or _base_type(col) not in _INTEGER_TYPES:
                continue
            scope: List[str] = [
                rel.foreign_key
                for rel in relationships.belongs_to
                if not rel.polymorphic
                and rel.foreign_key
                and table.has_column(rel.foreign_key)
            ]
            return {
                "positioning": PositioningPattern(
                    column=column_name, scope=tuple(sorted(scope))
                )
            }
        return {}


class EnumDetector(PatternDetector):
    name = "enums"

    def detect(
        self,
        table: TableSchema,
        relationships: TableRelationships,
    ) -> Dict[str, Any]:
        enums: Dict[str, tuple] = {
            col.name: col.enum_values
            for col in table.columns
            if col.enum and col.enum_values
        }
        return {"enums": enums} if enums else {}


def default_detectors() -> List[PatternDetector]:
    return [SoftDeletionDetector(), PositioningDetector(), EnumDetector()]


# ---------------------------------------------------------------------------
# Detection entry point
# ---------------------------------------------------------------------------


def detect_patterns(
    table: TableSchema,
    relationships: TableRelationships,
    detectors: Sequence[PatternDetector],
    declared: Optional[Mapping[str, Any]] = None,
) -> Patterns:
    """
    Run every detector against *table* and merge the findings.

    Explicitly *declared* patterns (from the schema source) take
    precedence over detected ones.
    """
    found: Dict[str, Any] = {}
    for detector in detectors:
        try:
            found.update(detector.detect(table, relationships))
        except Exception as exc:
            logger.warning(
                "Pattern detector '%s' failed on table '%s': %s",
                detector.name,
                table.name,
                exc,
            )

    if declared:
        found.update({k: v for k, v in declared.items() if v is not None})

    patterns: Patterns = Patterns.model_validate(found)
    if patterns.is_empty:
        logger.debug("No patterns detected for table '%s'.", table.name)
    return patterns


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "SOFT_DELETION_MARKERS",
    "POSITION_COLUMNS",
    "PatternDetector",
    "SoftDeletionDetector",
    "PositioningDetector",
    "EnumDetector",
    "default_detectors",
    "detect_patterns",
]

logger.debug("modelgen.patterns loaded.")
