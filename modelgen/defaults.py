# File: modelgen/defaults.py
"""
NexaFlow ModelGen - Default Value Conversion
=============================================

Turns column defaults into TypeScript literal initialisers for the
``defaults`` object of generated model configs.

Defaults that only the database can evaluate (``now()``,
``CURRENT_TIMESTAMP``, sequences, UUID generators) are skipped, as are
the primary key and the timestamp columns the server maintains.
"""

from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, FrozenSet, List, Optional, Sequence, Tuple

from modelgen.models import Column
from modelgen.type_mapper import TYPE_MAP, normalise_native_type
from modelgen.utils import ts_property_key, ts_string

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.defaults")

SKIPPED_COLUMNS: FrozenSet[str] = frozenset({"id", "created_at", "updated_at"})

_SERVER_EXPRESSION_RE: re.Pattern[str] = re.compile(
    r"^(now\(\)|current_timestamp|current_date|current_time|localtimestamp"
    r"|nextval\(.*\)|gen_random_uuid\(\)|uuid_generate_v4\(\)|uuid\(\))$",
    re.IGNORECASE,
)
# Postgres reports string defaults as  'value'::character varying
_PG_CAST_RE: re.Pattern[str] = re.compile(r"^'(?P<body>(?:[^']|'')*)'::[\w\s\"\[\]]+$")

_TRUE_STRINGS: FrozenSet[str] = frozenset({"true", "t", "1", "yes"})
_FALSE_STRINGS: FrozenSet[str] = frozenset({"false", "f", "0", "no"})


class DefaultValueConverter:
    """Column default → TypeScript literal (or ``None`` when not representable)."""

    def convert(self, column: Column) -> Optional[str]:
        value: Any = column.default
        if value is None:
            return None

        if isinstance(value, str):
            value = self._strip_cast(value.strip())
            if _SERVER_EXPRESSION_RE.match(value.strip()):
                return None

        if column.enum:
            text: str = str(value)
            if text not in column.enum_values:
                logger.warning(
                    "Default '%s' of enum column '%s' is not one of %s, skipping.",
                    text,
                    column.name,
                    list(column.enum_values),
                )
                return None
            return ts_string(text)

        ts_type: Optional[str] = TYPE_MAP.get(normalise_native_type(column.type))

        if ts_type == "boolean":
            return self._boolean(value, column)
        if ts_type == "number":
            return self._number(value, column)
        if ts_type == "any":
            return self._json(value, column)
        if ts_type == "Uint8Array":
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)) and ts_type is None:
            return self._number(value, column)
        return ts_string(str(value))

    def generate_defaults(
        self,
        columns: Sequence[Column],
        primary_key: str = "id",
    ) -> Tuple[Tuple[str, str], ...]:
        """Ordered ``(property key, literal)`` pairs for every usable default."""
        pairs: List[Tuple[str, str]] = []
        for col in columns:
            if col.name in SKIPPED_COLUMNS or col.name == primary_key:
                continue
            literal: Optional[str] = self.convert(col)
            if literal is not None:
                pairs.append((ts_property_key(col.name), literal))
        return tuple(pairs)

    def generate_defaults_object(
        self,
        columns: Sequence[Column],
        primary_key: str = "id",
        indent: str = "  ",
    ) -> Optional[str]:
        """Render the pairs as an object literal, ``None`` when empty."""
        pairs = self.generate_defaults(columns, primary_key)
        if not pairs:
            return None
        body: str = "\n".join(f"{indent}  {key}: {literal}," for key, literal in pairs)
        return "{\n" + body + "\n" + indent + "}"

    # -- Per-type conversions ----------------------------------------------

    @staticmethod
    def _strip_cast(value: str) -> str:
        match = _PG_CAST_RE.match(value)
        if match:
            return match.group("body").replace("''", "'")
        return value

    @staticmethod
    def _boolean(value: Any, column: Column) -> Optional[str]:
        if isinstance(value, bool):
            return "true" if value else "false"
        text: str = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return "true"
        if text in _FALSE_STRINGS:
            return "false"
        logger.warning(
            "Unrecognised boolean default %r on column '%s', skipping.",
            value,
            column.name,
        )
        return None

    @staticmethod
    def _number(value: Any, column: Column) -> Optional[str]:
        if isinstance(value, bool):
            return "1" if value else "0"
        try:
            number: Decimal = Decimal(str(value).strip())
        except InvalidOperation:
            logger.warning(
                "Non-numeric default %r on column '%s', skipping.",
                value,
                column.name,
            )
            return None
        if not number.is_finite():
            return None
        if number == number.to_integral_value():
            return str(int(number))
        return format(number.normalize(), "f")

    @staticmethod
    def _json(value: Any, column: Column) -> Optional[str]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return ts_string(value)
        try:
            return json.dumps(value, sort_keys=True, separators=(", ", ": "))
        except (TypeError, ValueError):
            logger.warning(
                "Default of JSON column '%s' is not serialisable, skipping.",
                column.name,
            )
            return None


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "SKIPPED_COLUMNS",
    "DefaultValueConverter",
]

logger.debug("modelgen.defaults loaded.")
