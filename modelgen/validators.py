# File: modelgen/validators.py
"""
NexaFlow ModelGen - Schema Snapshot Validators
===============================================
Cross-entity semantic checks over a ``SchemaSnapshot``.

Pydantic already guarantees per-model structure (enum columns have values,
association kinds are known, ...).  This module adds the checks that need
the whole snapshot: association targets, foreign-key columns, ``through``
chains, polymorphic interfaces and output-name collisions.

Every finding carries the table it concerns.  The coordinator skips tables
with errors (recording the reason) and only logs warnings.

Usage::

    from modelgen.validators import validate_snapshot
    result = validate_snapshot(snapshot)
    for table, reasons in result.errors_by_table().items():
        ...
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

from modelgen.introspector import is_excluded_table
from modelgen.models import SchemaSnapshot
from modelgen.utils import to_kebab_case, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationError:
    """Lightweight finding descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    @property
    def table(self) -> Optional[str]:
        return self.context.get("table")

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()


class ValidationResult:
    """Accumulates ``ValidationError`` instances produced by the checks."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationError] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(self, code: str, message: str, table: str, **context: Any) -> None:
        self._items.append(ValidationError("error", code, message, {"table": table, **context}))

    def add_warning(self, code: str, message: str, table: str, **context: Any) -> None:
        self._items.append(ValidationError("warning", code, message, {"table": table, **context}))

    def add_info(self, code: str, message: str, table: str, **context: Any) -> None:
        self._items.append(ValidationError("info", code, message, {"table": table, **context}))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_warning]

    @property
    def all_items(self) -> List[ValidationError]:
        return list(self._items)

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def errors_by_table(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = defaultdict(list)
        for item in self.errors:
            grouped[item.table or "<schema>"].append(item.message)
        return dict(grouped)

    def codes(self) -> Set[str]:
        return {item.code for item in self._items}

    def summary(self) -> str:
        return (
            f"Validation: {len(self.errors)} error(s), "
            f"{len(self.warnings)} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self, include_info: bool = False) -> str:
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            if not include_info and item.level == "info":
                continue
            prefix: str = {"error": "✗", "warning": "⚠", "info": "ℹ"}.get(item.level, "•")
            lines.append(f"  {prefix} [{item.code}] {item.message}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def validate_columns(snapshot: SchemaSnapshot) -> ValidationResult:
    """Duplicate column names are errors; tables without columns warnings."""
    result = ValidationResult()
    for table in snapshot.tables:
        if not table.columns:
            result.add_warning(
                "NO_COLUMNS",
                f"Table '{table.name}' declares no columns.",
                table.name,
            )
        counts = Counter(col.name for col in table.columns)
        for name, count in sorted(counts.items()):
            if count > 1:
                result.add_error(
                    "DUPLICATE_COLUMN",
                    f"Table '{table.name}' declares column '{name}' {count} times.",
                    table.name,
                    column=name,
                )
    return result


def validate_relationships(snapshot: SchemaSnapshot) -> ValidationResult:
    """Association targets, foreign-key columns and ``through`` chains."""
    result = ValidationResult()
    for table in snapshot.tables:
        rels = snapshot.relationships_for(table.name)

        for rel in rels.belongs_to:
            if rel.polymorphic:
                continue
            if rel.foreign_key and not table.has_column(rel.foreign_key):
                result.add_warning(
                    "MISSING_FOREIGN_KEY",
                    f"Table '{table.name}': belongs_to '{rel.name}' expects "
                    f"column '{rel.foreign_key}', which does not exist.",
                    table.name,
                )

        for rel in rels.all():
            if rel.polymorphic or snapshot.has_table(rel.target_table):
                continue
            if rel.target_table and is_excluded_table(rel.target_table):
                result.add_info(
                    "TARGET_EXCLUDED",
                    f"Table '{table.name}': '{rel.name}' targets internal "
                    f"table '{rel.target_table}'.",
                    table.name,
                )
            else:
                result.add_warning(
                    "UNKNOWN_TARGET",
                    f"Table '{table.name}': '{rel.name}' targets unknown "
                    f"table '{rel.target_table}'.",
                    table.name,
                )

        for rel in rels.all():
            if rel.through and rels.find(rel.through) is None:
                result.add_error(
                    "UNKNOWN_THROUGH",
                    f"Table '{table.name}': '{rel.name}' goes through "
                    f"'{rel.through}', which is not declared on the table.",
                    table.name,
                )
    return result


def validate_polymorphic(snapshot: SchemaSnapshot) -> ValidationResult:
    """``as:`` declarations must match a polymorphic belongs_to on the target."""
    result = ValidationResult()
    for table in snapshot.tables:
        rels = snapshot.relationships_for(table.name)
        for rel in (*rels.has_many, *rels.has_one):
            if not rel.as_ or not snapshot.has_table(rel.target_table):
                continue
            target_rel = snapshot.relationships_for(rel.target_table or "").find(rel.as_)
            if target_rel is None or not target_rel.polymorphic:
                result.add_warning(
                    "UNMATCHED_INTERFACE",
                    f"Table '{table.name}': '{rel.name}' declares as: "
                    f"'{rel.as_}', but '{rel.target_table}' has no polymorphic "
                    f"belongs_to '{rel.as_}'.",
                    table.name,
                )
    return result


def validate_output_names(snapshot: SchemaSnapshot) -> ValidationResult:
    """Two tables must never render into the same file names."""
    result = ValidationResult()
    owners: Dict[str, List[str]] = defaultdict(list)
    for table in snapshot.tables:
        kebab: str = to_kebab_case(to_snake_case(snapshot.class_name_for(table.name)))
        owners[kebab].append(table.name)

    for kebab, tables in sorted(owners.items()):
        if len(tables) < 2:
            continue
        for name in tables:
            result.add_error(
                "OUTPUT_COLLISION",
                f"Tables {', '.join(sorted(tables))} would all generate "
                f"'{kebab}.ts'; set class_name on one of them.",
                name,
            )
    return result


_CHECKS: List[Callable[[SchemaSnapshot], ValidationResult]] = [
    validate_columns,
    validate_relationships,
    validate_polymorphic,
    validate_output_names,
]


def validate_snapshot(snapshot: SchemaSnapshot) -> ValidationResult:
    """Run every check and merge the findings."""
    result = ValidationResult()
    for check in _CHECKS:
        result.merge(check(snapshot))
    logger.debug(result.summary())
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationError",
    "ValidationResult",
    "validate_columns",
    "validate_relationships",
    "validate_polymorphic",
    "validate_output_names",
    "validate_snapshot",
]

logger.debug("modelgen.validators loaded.")
