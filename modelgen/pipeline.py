# File: modelgen/pipeline.py
"""
NexaFlow ModelGen - Per-Table Generation Pipeline
==================================================

One table travels through::

    SchemaAnalysisStage   build the GenerationContext
    RelationshipStage     properties, imports, exclusions, registration
    PolymorphicStage      polymorphic belongs_to declarations
    TypeMappingStage      typed column properties and defaults
    RenderStage           data-interface, active and reactive bodies
    BufferWriteStage      hand the bodies to the FileManager buffer

Each stage receives a frozen context and returns a new one.  ``Pipeline``
runs the stages in order and converts any exception into a failed
``GenerationResult`` so that one table can never stop its neighbours.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from modelgen.defaults import DefaultValueConverter
from modelgen.exceptions import ModelGenError, ModelGenerationError
from modelgen.exporters import FileManager
from modelgen.models import (
    GenerationConfig,
    GenerationContext,
    GenerationResult,
    ProcessedRelationships,
    SchemaSnapshot,
    TableSchema,
    TypedProperty,
)
from modelgen.polymorphic import PolymorphicModelAnalyzer, allowed_type_key
from modelgen.relationships import RelationshipProcessor
from modelgen.templates import (
    ACTIVE_TEMPLATE,
    DATA_TEMPLATE,
    REACTIVE_TEMPLATE,
    TemplateRenderer,
)
from modelgen.type_mapper import TypeMapper
from modelgen.utils import Timer, single_line, to_camel_case, ts_property_key, ts_string

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.pipeline")

# Columns the server maintains; never part of a create/update payload.
GENERATED_COLUMNS: Tuple[str, ...] = ("created_at", "updated_at")


# ---------------------------------------------------------------------------
# Stage protocol
# ---------------------------------------------------------------------------


class Stage(ABC):
    """One enrichment step.  Must not mutate its input."""

    name: str = "stage"

    @abstractmethod
    def process(self, context: GenerationContext) -> GenerationContext:
        """Return a new context carrying this stage's contribution."""


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class SchemaAnalysisStage:
    """Builds the initial context of a table from the snapshot."""

    name: str = "schema_analysis"

    def __init__(
        self,
        snapshot: SchemaSnapshot,
        analyzer: PolymorphicModelAnalyzer,
    ) -> None:
        self._snapshot: SchemaSnapshot = snapshot
        self._analyzer: PolymorphicModelAnalyzer = analyzer

    def build(self, table_name: str) -> GenerationContext:
        table: Optional[TableSchema] = self._snapshot.table(table_name)
        if table is None:
            raise ModelGenerationError(table_name, "Table not found in schema snapshot.")

        return GenerationContext(
            table=self._analyzer.synthesize_columns(table),
            relationships=self._snapshot.relationships_for(table_name),
            patterns=self._snapshot.patterns_for(table_name),
            capabilities=self._snapshot.capabilities_for(table_name),
        )


class RelationshipStage(Stage):
    name = "relationships"

    def __init__(self, snapshot: SchemaSnapshot) -> None:
        self._snapshot: SchemaSnapshot = snapshot

    def process(self, context: GenerationContext) -> GenerationContext:
        processed: ProcessedRelationships = RelationshipProcessor(
            context.relationships,
            context.table_name,
            self._snapshot,
        ).process()
        return context.with_updates(relationship_data=processed)


class PolymorphicStage(Stage):
    name = "polymorphic"

    def __init__(self, analyzer: PolymorphicModelAnalyzer) -> None:
        self._analyzer: PolymorphicModelAnalyzer = analyzer

    def process(self, context: GenerationContext) -> GenerationContext:
        associations = tuple(self._analyzer.associations_for_table(context.table_name))
        return context.with_updates(polymorphic=associations)


class TypeMappingStage(Stage):
    """Column → ``TypedProperty`` rows, plus the config defaults."""

    name = "type_mapping"

    def __init__(
        self,
        type_mapper: TypeMapper,
        converter: Optional[DefaultValueConverter] = None,
    ) -> None:
        self._type_mapper: TypeMapper = type_mapper
        self._converter: DefaultValueConverter = converter or DefaultValueConverter()

    def process(self, context: GenerationContext) -> GenerationContext:
        properties: List[TypedProperty] = []
        for col in context.table.columns:
            is_key = col.primary_key or col.name == context.table.primary_key
            properties.append(TypedProperty(
                name=col.name,
                key=ts_property_key(col.name),
                ts_type=self._type_mapper.map_column(col),
                optional=col.nullable and not is_key,
                comment=single_line(col.comment),
            ))

        defaults = self._converter.generate_defaults(
            context.table.columns,
            context.table.primary_key,
        )
        return context.with_updates(properties=tuple(properties), defaults=defaults)


class RenderStage(Stage):
    """Renders the three per-table files."""

    name = "render"

    def __init__(self, renderer: TemplateRenderer, config: GenerationConfig) -> None:
        self._renderer: TemplateRenderer = renderer
        self._config: GenerationConfig = config

    def process(self, context: GenerationContext) -> GenerationContext:
        variables: Dict[str, Any] = build_template_context(context, self._config)
        rendered: Dict[str, str] = {
            context.data_filename: self._renderer.render(DATA_TEMPLATE, variables),
            context.active_filename: self._renderer.render(ACTIVE_TEMPLATE, variables),
            context.reactive_filename: self._renderer.render(REACTIVE_TEMPLATE, variables),
        }
        return context.with_updates(rendered=rendered)


class BufferWriteStage(Stage):
    name = "buffer_write"

    def __init__(self, file_manager: FileManager) -> None:
        self._file_manager: FileManager = file_manager

    def process(self, context: GenerationContext) -> GenerationContext:
        for path in sorted(context.rendered):
            self._file_manager.write(path, context.rendered[path])
        return context.with_metadata(buffered=len(context.rendered))


# ---------------------------------------------------------------------------
# Template context
# ---------------------------------------------------------------------------


def _exclusions(
    context: GenerationContext,
    processed: ProcessedRelationships,
    include_soft_deletion: bool,
) -> List[str]:
    names: List[str] = [context.table.primary_key, *GENERATED_COLUMNS]
    soft_deletion = context.patterns.soft_deletion
    if include_soft_deletion and soft_deletion is not None:
        names.append(soft_deletion.column)
    names.extend(processed.exclusions)
    # dict.fromkeys keeps first-seen order
    return list(dict.fromkeys(names))


def build_template_context(
    context: GenerationContext,
    config: GenerationConfig,
) -> Dict[str, Any]:
    """Plain dict handed to every per-table template."""
    processed: ProcessedRelationships = (
        context.relationship_data or ProcessedRelationships()
    )
    patterns = context.patterns
    soft_deletion = patterns.soft_deletion

    enum_docs: List[str] = [
        f" * - {column}: {' | '.join(ts_string(v) for v in values)}"
        for column, values in sorted(patterns.enums.items())
    ]

    positioning: Optional[Dict[str, Any]] = None
    if patterns.positioning is not None:
        positioning = {
            "column": patterns.positioning.column,
            "scope": list(patterns.positioning.scope),
        }

    return {
        "table_name": context.table_name,
        "table_comment": single_line(context.table.comment),
        "class_name": context.class_name,
        "model_name": context.model_name,
        "variable_name": to_camel_case(context.model_name),
        "kebab_name": context.kebab_name,
        "reactive_class_name": context.reactive_class_name,
        "data_type_name": context.data_type_name,
        "create_type_name": context.create_type_name,
        "update_type_name": context.update_type_name,
        "primary_key": context.table.primary_key,
        "properties": [prop.model_dump() for prop in context.properties],
        "relationship_properties": [
            {"name": rel.name, "ts_type": rel.ts_type, "kind": rel.kind}
            for rel in processed.properties
        ],
        "relationship_imports": list(processed.imports),
        "relationship_docs": list(processed.documentation),
        "registration": processed.registration,
        "enum_docs": enum_docs,
        "create_exclusions": _exclusions(context, processed, include_soft_deletion=True),
        "update_exclusions": _exclusions(context, processed, include_soft_deletion=False),
        "supports_discard": soft_deletion is not None and soft_deletion.mechanism == "discard",
        "defaults": list(context.defaults),
        "positioning": positioning,
        "polymorphic": [
            {
                "name": assoc.name,
                "type_field": assoc.type_field,
                "id_field": assoc.id_field,
                "allowed_types": sorted({allowed_type_key(t) for t in assoc.allowed_types}),
            }
            for assoc in context.polymorphic
        ],
        "base_import_path": config.base_import_path,
        "polymorphic_import_path": config.polymorphic_import_path,
    }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """
    Runs the stages for one table and returns its ``GenerationResult``.

    Safe to share between worker threads: stages hold only read-only
    services or services with their own locking.
    """

    def __init__(self, analysis: SchemaAnalysisStage, stages: Sequence[Stage]) -> None:
        self._analysis: SchemaAnalysisStage = analysis
        self._stages: Tuple[Stage, ...] = tuple(stages)

    @property
    def stage_names(self) -> List[str]:
        return [self._analysis.name, *(stage.name for stage in self._stages)]

    def run(self, table_name: str) -> GenerationResult:
        with Timer(f"pipeline {table_name}") as timer:
            try:
                context: GenerationContext = self._analysis.build(table_name)
                for stage in self._stages:
                    logger.debug("Table '%s': stage %s.", table_name, stage.name)
                    context = stage.process(context)
            except ModelGenError as exc:
                error: str = str(exc)
                logger.error("Table '%s' failed: %s", table_name, error)
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.error("Table '%s' failed: %s", table_name, error, exc_info=True)
            else:
                error = ""

        if error:
            return GenerationResult.failure(table_name, error, timer.elapsed)
        return GenerationResult.from_context(context, timer.elapsed)


def build_pipeline(
    snapshot: SchemaSnapshot,
    config: GenerationConfig,
    renderer: TemplateRenderer,
    file_manager: FileManager,
    type_mapper: Optional[TypeMapper] = None,
) -> Pipeline:
    """The standard stage sequence."""
    analyzer = PolymorphicModelAnalyzer(snapshot)
    return Pipeline(
        SchemaAnalysisStage(snapshot, analyzer),
        [
            RelationshipStage(snapshot),
            PolymorphicStage(analyzer),
            TypeMappingStage(type_mapper or TypeMapper()),
            RenderStage(renderer, config),
            BufferWriteStage(file_manager),
        ],
    )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Stage",
    "SchemaAnalysisStage",
    "RelationshipStage",
    "PolymorphicStage",
    "TypeMappingStage",
    "RenderStage",
    "BufferWriteStage",
    "Pipeline",
    "build_pipeline",
    "build_template_context",
]

logger.debug("modelgen.pipeline loaded.")
