# File: modelgen/relationships.py
"""
NexaFlow ModelGen - Relationship Processing
============================================

Given a table's declared associations, produces everything the templates
need for them:

- ``properties``:    optional interface properties typed as the target
- ``imports``:       ``import type`` statements for those property types
- ``exclusions``:    property names dropped from Create/Update payloads
- ``documentation``: doc-comment lines describing each association
- ``registration``:  the ``registerModelRelationships(...)`` call

Import rules:

- A self-reference never imports its own type (it is already in scope).
- Only concrete property types trigger imports.  Documentation lines never
  do, which keeps mutually referencing tables free of needless imports.
- Targets that are not generated (unknown or excluded tables) are typed
  ``any`` and imported from nowhere.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from modelgen.exceptions import ModelGenerationError
from modelgen.models import (
    ProcessedRelationships,
    Relationship,
    RelationshipKind,
    RelationshipProperty,
    SchemaSnapshot,
    TableRelationships,
)
from modelgen.type_mapper import ANY_TYPE
from modelgen.utils import (
    table_to_class_name,
    to_camel_case,
    to_kebab_case,
    to_snake_case,
    ts_string,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.relationships")

# Association macro → runtime relationship type name.
REGISTRATION_TYPES: Dict[str, str] = {
    RelationshipKind.BELONGS_TO.value: "belongsTo",
    RelationshipKind.HAS_MANY.value: "hasMany",
    RelationshipKind.HAS_ONE.value: "hasOne",
}


def data_module_for(class_name: str) -> str:
    """Module specifier of a data-interface file, relative to its siblings."""
    return f"./{to_kebab_case(to_snake_case(class_name))}-data"


class RelationshipProcessor:
    """
    Turns one table's ``TableRelationships`` into template material.

    Args:
        relationships: The owning table's partitioned associations.
        owning_table: Name of the table being generated.
        snapshot: The run's schema snapshot.  Used to resolve target class
            names and to decide whether a target is generated at all.
            Without it every target is assumed to exist.
    """

    def __init__(
        self,
        relationships: TableRelationships,
        owning_table: str,
        snapshot: Optional[SchemaSnapshot] = None,
    ) -> None:
        self._relationships: TableRelationships = relationships
        self._owning_table: str = owning_table
        self._snapshot: Optional[SchemaSnapshot] = snapshot

    # -----------------------------------------------------------------
    # Public
    # -----------------------------------------------------------------

    def process(self) -> ProcessedRelationships:
        properties: List[RelationshipProperty] = []
        imports: Set[str] = set()
        exclusions: List[str] = []
        documentation: List[str] = []
        registrations: List[str] = []

        for rel in self._relationships.all():
            if rel.is_polymorphic_belongs_to:
                documentation.append(
                    f" * - {rel.property_name}: belongs_to (polymorphic, "
                    f"{rel.name}_type/{rel.foreign_key})"
                )
                continue

            target_class, generated = self._resolve_target(rel)
            self_reference: bool = rel.target_table == self._owning_table
            type_name: str = f"{target_class}Type" if generated else ANY_TYPE
            ts_type: str = (
                f"{type_name}[]" if rel.kind == RelationshipKind.HAS_MANY else type_name
            )

            if generated and not self_reference:
                imports.add(self._import_line(target_class))

            if rel.through:
                join_import: Optional[str] = self._through_import(rel)
                if join_import:
                    imports.add(join_import)

            properties.append(RelationshipProperty(
                name=rel.property_name,
                ts_type=ts_type,
                kind=rel.kind,
                relationship_name=rel.name,
                target_class=target_class if generated else None,
                self_reference=self_reference,
            ))
            exclusions.append(rel.property_name)
            documentation.append(
                self._doc_line(rel, target_class, generated, self_reference)
            )
            registrations.append(
                self._registration_entry(rel, target_class)
            )

        registration: str = ""
        if registrations:
            registration = (
                f"registerModelRelationships({ts_string(self._owning_table)}, {{\n"
                + "\n".join(registrations)
                + "\n});"
            )

        return ProcessedRelationships(
            properties=tuple(properties),
            imports=tuple(sorted(imports)),
            exclusions=tuple(exclusions),
            documentation=tuple(documentation),
            registration=registration,
        )

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _resolve_target(self, rel: Relationship) -> Tuple[str, bool]:
        """Return ``(class name, is generated)`` for a non-polymorphic target."""
        target_table: str = rel.target_table or ""
        if self._snapshot is None:
            return rel.target_class or table_to_class_name(target_table), True

        if self._snapshot.has_table(target_table):
            return self._snapshot.class_name_for(target_table), True

        logger.warning(
            "Table '%s': association '%s' targets '%s', which is not generated; "
            "typing it as '%s'.",
            self._owning_table,
            rel.name,
            target_table,
            ANY_TYPE,
        )
        return rel.target_class or table_to_class_name(target_table), False

    def _through_import(self, rel: Relationship) -> Optional[str]:
        join: Optional[Relationship] = self._relationships.find(rel.through or "")
        if join is None:
            raise ModelGenerationError(
                self._owning_table,
                f"Association '{rel.name}' goes through '{rel.through}', "
                "which is not declared on this table.",
            )
        if join.target_table == self._owning_table:
            return None
        join_class, generated = self._resolve_target(join)
        if not generated:
            return None
        return self._import_line(join_class)

    @staticmethod
    def _import_line(class_name: str) -> str:
        return (
            f"import type {{ {class_name}Type }} from "
            f"'{data_module_for(class_name)}';"
        )

    @staticmethod
    def _doc_line(
        rel: Relationship,
        target_class: str,
        generated: bool,
        self_reference: bool,
    ) -> str:
        line: str = f" * - {rel.property_name}: {rel.kind} {target_class}"
        if rel.through:
            line += f", through: {to_camel_case(rel.through)}"
        if self_reference:
            line += " (self-reference)"
        if not generated:
            line += " (not generated)"
        return line

    @staticmethod
    def _registration_entry(rel: Relationship, target_class: str) -> str:
        parts: List[str] = [
            f"type: '{REGISTRATION_TYPES[rel.kind]}'",
            f"model: {ts_string(target_class)}",
        ]
        if rel.through:
            parts.append(f"through: {ts_string(to_camel_case(rel.through))}")
        return f"  {rel.property_name}: {{ {', '.join(parts)} }},"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "REGISTRATION_TYPES",
    "RelationshipProcessor",
    "data_module_for",
]

logger.debug("modelgen.relationships loaded.")
