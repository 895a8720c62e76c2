# File: modelgen/type_mapper.py
"""
NexaFlow ModelGen - Column Type Mapping
========================================

Maps native column types to TypeScript type expressions.

The mapping is total: every native type produces *some* expression.
Types missing from the table fall back to ``any`` with a one-off warning
per type, never an exception.  Enum columns always render as a union of
quoted literals, whatever their native type says.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Dict, List, Optional, Sequence, Set

from modelgen.models import Column
from modelgen.utils import ts_string

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.type_mapper")

ANY_TYPE: str = "any"

_TYPE_SUFFIX_RE: re.Pattern[str] = re.compile(r"\s*[\(\[].*$")

# Native type → TypeScript type.  Date and time values travel as
# ISO-8601 strings.
TYPE_MAP: Dict[str, str] = {
    # Text
    "string": "string",
    "text": "string",
    "citext": "string",
    "varchar": "string",
    "character varying": "string",
    "char": "string",
    "character": "string",
    # Numbers
    "integer": "number",
    "int": "number",
    "bigint": "number",
    "smallint": "number",
    "decimal": "number",
    "numeric": "number",
    "float": "number",
    "double": "number",
    "double precision": "number",
    "real": "number",
    # Boolean
    "boolean": "boolean",
    "bool": "boolean",
    # Date / time
    "datetime": "string",
    "timestamp": "string",
    "timestamptz": "string",
    "timestamp with time zone": "string",
    "timestamp without time zone": "string",
    "date": "string",
    "time": "string",
    # Structured
    "json": ANY_TYPE,
    "jsonb": ANY_TYPE,
    # Identifiers
    "uuid": "string",
    # Binary
    "binary": "Uint8Array",
    "bytea": "Uint8Array",
    "blob": "Uint8Array",
}


def normalise_native_type(native_type: Optional[str]) -> str:
    """``VARCHAR(255)`` → ``varchar``; ``None`` → ``unknown``."""
    if not native_type:
        return "unknown"
    return _TYPE_SUFFIX_RE.sub("", native_type.strip().lower()) or "unknown"


class TypeMapper:
    """
    Native type → TypeScript type expression.

    Usage::

        mapper = TypeMapper()
        mapper.map(column.type, column)   # 'number', "'a' | 'b'", ...
    """

    def __init__(self, overrides: Optional[Dict[str, str]] = None) -> None:
        self._table: Dict[str, str] = dict(TYPE_MAP)
        if overrides:
            self._table.update(
                {normalise_native_type(k): v for k, v in overrides.items()}
            )
        self._warned: Set[str] = set()
        self._lock: threading.Lock = threading.Lock()

    def map(self, native_type: Optional[str], column: Optional[Column] = None) -> str:
        """Return a non-empty TypeScript type expression."""
        if column is not None and column.enum and column.enum_values:
            return self.enum_union(column.enum_values)

        key: str = normalise_native_type(native_type)
        mapped: Optional[str] = self._table.get(key)
        if mapped:
            return mapped

        self._warn_unknown(key, column)
        return ANY_TYPE

    def map_column(self, column: Column) -> str:
        return self.map(column.type, column)

    @staticmethod
    def enum_union(values: Sequence[str]) -> str:
        literals: List[str] = [ts_string(str(v)) for v in values]
        return " | ".join(literals) if literals else ANY_TYPE

    def is_known(self, native_type: Optional[str]) -> bool:
        return normalise_native_type(native_type) in self._table

    def _warn_unknown(self, key: str, column: Optional[Column]) -> None:
        with self._lock:
            if key in self._warned:
                return
            self._warned.add(key)
        logger.warning(
            "Unmapped column type '%s'%s, using '%s'.",
            key,
            f" (column '{column.name}')" if column is not None else "",
            ANY_TYPE,
        )

    @property
    def unknown_types(self) -> List[str]:
        with self._lock:
            return sorted(self._warned)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ANY_TYPE",
    "TYPE_MAP",
    "TypeMapper",
    "normalise_native_type",
]

logger.debug("modelgen.type_mapper loaded.")
