# File: modelgen/polymorphic.py
"""
NexaFlow ModelGen - Polymorphic Association Analysis
=====================================================

A ``has_many ... as: X`` (or ``has_one ... as: X``) declaration names a
polymorphic interface ``X`` on its target table.  The table owning
``belongs_to :X, polymorphic: true`` stores the pair ``X_type``/``X_id``
and may point at *every* model that declares the interface.

The analyzer scans the whole snapshot once, so all candidate models are
found (not just the first), deduplicated by type name, and emitted as a
declarative block::

    declarePolymorphicRelationships({
      tableName: 'activity_logs',
      belongsTo: {
        loggable: {
          typeField: 'loggable_type',
          idField: 'loggable_id',
          allowedTypes: ['client', 'job', 'task'],
        },
      },
    });

Adding a new target later only grows ``allowedTypes``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set, Tuple

from modelgen.models import (
    Column,
    PolymorphicAssociation,
    Relationship,
    SchemaSnapshot,
    TableSchema,
)
from modelgen.utils import to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.polymorphic")

# (owning table, interface name)
InterfaceKey = Tuple[str, str]


def allowed_type_key(class_name: str) -> str:
    """``ScheduledDateTime`` → ``scheduleddatetime`` (runtime type key)."""
    return to_snake_case(class_name).replace("_", "")


class PolymorphicModelAnalyzer:
    """
    Resolves the candidate models of every polymorphic ``belongs_to``.

    Candidates for ``belongs_to :X, polymorphic: true`` on table ``T`` are
    every model declaring ``has_many``/``has_one ... as: X`` that targets
    ``T``, plus any ``allowed_types`` declared on the association itself.
    """

    def __init__(self, snapshot: SchemaSnapshot) -> None:
        self._snapshot: SchemaSnapshot = snapshot
        self._interfaces: Dict[InterfaceKey, Set[str]] = self._collect()

    def _collect(self) -> Dict[InterfaceKey, Set[str]]:
        interfaces: Dict[InterfaceKey, Set[str]] = {}
        for table in self._snapshot.tables:
            rels = self._snapshot.relationships_for(table.name)
            for rel in (*rels.has_many, *rels.has_one):
                if not rel.as_ or not rel.target_table:
                    continue
                key: InterfaceKey = (rel.target_table, rel.as_)
                interfaces.setdefault(key, set()).add(
                    self._snapshot.class_name_for(table.name)
                )

        logger.debug(
            "Collected %d polymorphic interface(s): %s",
            len(interfaces),
            ", ".join(f"{t}.{n}" for t, n in sorted(interfaces)),
        )
        return interfaces

    # -----------------------------------------------------------------
    # Public
    # -----------------------------------------------------------------

    def associations_for_table(self, table_name: str) -> List[PolymorphicAssociation]:
        """Every polymorphic ``belongs_to`` of *table_name* with its candidates."""
        associations: List[PolymorphicAssociation] = []
        for rel in self._polymorphic_belongs_to(table_name):
            candidates: Set[str] = set(
                self._interfaces.get((table_name, rel.name), set())
            )
            candidates.update(rel.allowed_types)

            if not candidates:
                logger.warning(
                    "Table '%s': polymorphic association '%s' has no declared "
                    "targets; no registration will be generated for it.",
                    table_name,
                    rel.name,
                )
                continue

            associations.append(PolymorphicAssociation(
                name=rel.name,
                type_field=f"{rel.name}_type",
                id_field=rel.foreign_key or f"{rel.name}_id",
                allowed_types=tuple(candidates),
            ))
        return associations

    def synthesize_columns(self, table: TableSchema) -> TableSchema:
        """
        Return *table* with any missing ``X_type``/``X_id`` columns appended.

        The original table is returned untouched when nothing is missing.
        """
        extra: List[Column] = []
        for rel in self._polymorphic_belongs_to(table.name):
            type_field: str = f"{rel.name}_type"
            id_field: str = rel.foreign_key or f"{rel.name}_id"
            if not table.has_column(type_field):
                extra.append(Column(name=type_field, type="string", nullable=rel.optional))
            if not table.has_column(id_field):
                extra.append(Column(name=id_field, type="bigint", nullable=rel.optional))

        if not extra:
            return table

        logger.info(
            "Table '%s': synthesized polymorphic column(s) %s.",
            table.name,
            ", ".join(col.name for col in extra),
        )
        return table.model_copy(update={"columns": (*table.columns, *extra)})

    def interfaces(self) -> Dict[str, List[str]]:
        """``"table.interface"`` → sorted candidate class names."""
        return {
            f"{table}.{name}": sorted(classes)
            for (table, name), classes in sorted(self._interfaces.items())
        }

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _polymorphic_belongs_to(self, table_name: str) -> List[Relationship]:
        rels = self._snapshot.relationships_for(table_name)
        return [rel for rel in rels.belongs_to if rel.polymorphic]


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PolymorphicModelAnalyzer",
    "allowed_type_key",
]

logger.debug("modelgen.polymorphic loaded.")
