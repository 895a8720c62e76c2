# File: modelgen/__init__.py
"""
NexaFlow ModelGen — Schema-Driven TypeScript Model Generator
=============================================================

Introspects a relational schema (tables, columns, associations, enums,
soft-deletion and positioning conventions) and emits, for every table, a
typed data interface, an "active" CRUD model and a "reactive" query model,
plus an index and a loggable-models registry.

Architecture overview::

    ┌──────────────┐     ┌────────────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ GenerationCoordinator  │────▶│  SchemaIntrospector│
    │   (cli.py)   │     │    (generator.py)      │     │ (introspector.py) │
    └──────────────┘     └───────────┬────────────┘     └──────────────────┘
                                     │ per table
                     ┌───────────────┼────────────────┐
                     ▼               ▼                ▼
              ┌────────────┐  ┌─────────────┐  ┌─────────────┐
              │  pipeline  │  │  templates  │  │  exporters  │
              │   (.py)    │  │    (.py)    │  │    (.py)    │
              └────────────┘  └─────────────┘  └─────────────┘

Usage::

    # As a library
    from modelgen import GenerationConfig, GenerationCoordinator, FileSchemaSource
    config = GenerationConfig(output_dir="frontend/src/lib/models")
    report = GenerationCoordinator(config, FileSchemaSource(path)).execute()

    # From the command line
    python -m modelgen generate --schema schema.yaml -v

Public API:
    - GenerationCoordinator — Master orchestrator
    - GenerationConfig      — Run options
    - SchemaIntrospector    — Schema source → SchemaSnapshot
    - TemplateRenderer      — Jinja2 rendering
    - FileManager           — Batched, idempotent writer
    - validate_snapshot     — Schema validation entry point
"""

from __future__ import annotations

__version__: str = "1.0.0"
__author__: str = "NexaFlow Team"
__license__: str = "MIT"

from modelgen.exceptions import (
    FileOperationError,
    GenerationError,
    ModelGenError,
    ModelGenerationError,
    SchemaExtractionError,
    ServiceInitializationError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRenderingError,
)
from modelgen.models import (
    Column,
    GenerationConfig,
    GenerationContext,
    GenerationResult,
    Relationship,
    RelationshipKind,
    SchemaSnapshot,
    TableRelationships,
    TableSchema,
)
from modelgen.introspector import (
    DatabaseSchemaSource,
    DictSchemaSource,
    FileSchemaSource,
    SchemaIntrospector,
)
from modelgen.type_mapper import TypeMapper
from modelgen.relationships import RelationshipProcessor
from modelgen.polymorphic import PolymorphicModelAnalyzer
from modelgen.defaults import DefaultValueConverter
from modelgen.templates import TemplateRenderer
from modelgen.exporters import BatchResult, FileManager
from modelgen.validators import ValidationResult, validate_snapshot
from modelgen.generator import GenerationCoordinator, GenerationReport, RunStatistics

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Core orchestrator
    "GenerationCoordinator",
    "GenerationReport",
    "RunStatistics",
    # Models
    "Column",
    "GenerationConfig",
    "GenerationContext",
    "GenerationResult",
    "Relationship",
    "RelationshipKind",
    "SchemaSnapshot",
    "TableRelationships",
    "TableSchema",
    # Schema sources
    "DatabaseSchemaSource",
    "DictSchemaSource",
    "FileSchemaSource",
    "SchemaIntrospector",
    # Components
    "TypeMapper",
    "RelationshipProcessor",
    "PolymorphicModelAnalyzer",
    "DefaultValueConverter",
    "TemplateRenderer",
    "FileManager",
    "BatchResult",
    # Validation
    "validate_snapshot",
    "ValidationResult",
    # Errors
    "ModelGenError",
    "GenerationError",
    "SchemaExtractionError",
    "ServiceInitializationError",
    "ModelGenerationError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRenderingError",
    "FileOperationError",
]
