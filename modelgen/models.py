# File: modelgen/models.py
"""
NexaFlow ModelGen - Core Data Models
=====================================
Pydantic V2 models forming the intermediate representation (IR) of the
generator: schema elements as extracted from the schema source, the
per-table ``GenerationContext`` that drives rendering, per-table results
and the run configuration.

Schema Extraction → Context Build → Enrichment → Render → Write

Schema-side models are frozen: once a snapshot has been extracted for a
run nothing may mutate it.  Contexts are frozen as well; stages derive a
new context with ``GenerationContext.with_updates`` instead of patching.
"""

from __future__ import annotations

import logging
import shlex
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from modelgen.utils import (
    class_to_table_name,
    table_to_class_name,
    to_camel_case,
    to_kebab_case,
    to_plural,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.models")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TYPES_DIR: str = "types"
INDEX_FILENAME: str = "index.ts"
LOGGABLE_CONFIG_FILENAME: str = "generated-loggable-config.ts"
LOGGABLE_CAPABILITY: str = "loggable"

# Used only when no table declares the loggable capability.
DEFAULT_LOGGABLE_MODELS: Tuple[str, ...] = (
    "Job",
    "Task",
    "Client",
    "User",
    "Person",
    "Device",
    "ScheduledDateTime",
)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RelationshipKind(str, Enum):
    """Association macros understood by the generator."""

    BELONGS_TO = "belongs_to"
    HAS_MANY = "has_many"
    HAS_ONE = "has_one"


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
)

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    use_enum_values=True,
    frozen=True,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Schema primitives
# ---------------------------------------------------------------------------


class Column(BaseModel):
    """A single table column as reported by the schema source."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, description="Column name.")
    type: str = Field(default="string", description="Native column type.")
    sql_type: Optional[str] = Field(default=None, description="Raw SQL type.")
    nullable: bool = Field(
        default=True,
        validation_alias=AliasChoices("nullable", "null"),
    )
    enum: bool = Field(default=False, description="Column is an enumeration.")
    enum_values: Tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("enum_values", "values"),
    )
    default: Optional[Any] = Field(default=None, description="Default value.")
    comment: Optional[str] = Field(default=None)
    primary_key: bool = Field(default=False)

    @model_validator(mode="before")
    @classmethod
    def _infer_enum_flag(cls, data: Any) -> Any:
        """A column that lists values but omits ``enum`` is an enum."""
        if isinstance(data, dict):
            values = data.get("enum_values", data.get("values"))
            if values and "enum" not in data:
                data = {**data, "enum": True}
        return data

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> str:
        if value is None:
            return "unknown"
        text: str = str(value).strip().lower()
        return text or "unknown"

    @field_validator("enum_values", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, dict):
            # Rails-style mapping {name: integer}; the names are the values.
            return tuple(str(v) for v in value.keys())
        return tuple(str(v) for v in value)

    @model_validator(mode="after")
    def _check_enum_values(self) -> "Column":
        if self.enum and not self.enum_values:
            raise ValueError(
                f"Enum column '{self.name}' must declare at least one value."
            )
        return self


class TableSchema(BaseModel):
    """A table and its ordered columns."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1)
    columns: Tuple[Column, ...] = Field(default=())
    primary_key: str = Field(default="id")
    class_name: Optional[str] = Field(
        default=None,
        description="Override for the derived model class name.",
    )
    comment: Optional[str] = None

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]


class Relationship(BaseModel):
    """
    One declared association.

    Missing targets are filled in with the usual naming conventions:
    ``belongs_to :client`` targets ``clients`` through ``client_id``,
    ``has_many :tasks`` targets ``tasks``.  Polymorphic ``belongs_to``
    associations have no single target.
    """

    model_config = _FROZEN_CONFIG

    kind: RelationshipKind
    name: str = Field(..., min_length=1)
    target_table: Optional[str] = None
    target_class: Optional[str] = None
    foreign_key: Optional[str] = None
    through: Optional[str] = None
    polymorphic: bool = False
    as_: Optional[str] = Field(default=None, alias="as")
    optional: bool = False
    dependent: Optional[str] = None
    allowed_types: Tuple[str, ...] = Field(
        default=(),
        description="Declared candidate types of a polymorphic belongs_to.",
    )

    @model_validator(mode="before")
    @classmethod
    def _fill_conventions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        kind: Any = data.get("kind")
        if isinstance(kind, RelationshipKind):
            kind = kind.value
        name: str = str(data.get("name") or "")
        polymorphic: bool = bool(data.get("polymorphic"))

        if not data.get("target_table") and data.get("target_class"):
            data["target_table"] = class_to_table_name(str(data["target_class"]))

        if kind == RelationshipKind.BELONGS_TO.value:
            if not data.get("foreign_key"):
                data["foreign_key"] = f"{name}_id"
            if not polymorphic and not data.get("target_table"):
                data["target_table"] = to_plural(name)
        elif not data.get("target_table"):
            if kind == RelationshipKind.HAS_MANY.value:
                data["target_table"] = name
            else:
                data["target_table"] = to_plural(name)

        if not polymorphic and data.get("target_table") and not data.get("target_class"):
            data["target_class"] = table_to_class_name(str(data["target_table"]))

        return data

    @property
    def property_name(self) -> str:
        """camelCase name used for the generated TypeScript property."""
        return to_camel_case(self.name)

    @property
    def is_polymorphic_belongs_to(self) -> bool:
        return self.kind == RelationshipKind.BELONGS_TO and self.polymorphic

    def __repr__(self) -> str:
        return f"<Relationship {self.kind} {self.name} → {self.target_table}>"


class TableRelationships(BaseModel):
    """A table's associations partitioned by kind, each sorted by name."""

    model_config = _FROZEN_CONFIG

    table: str
    belongs_to: Tuple[Relationship, ...] = ()
    has_many: Tuple[Relationship, ...] = ()
    has_one: Tuple[Relationship, ...] = ()

    @classmethod
    def partition(
        cls,
        table: str,
        relationships: Iterable[Relationship],
    ) -> "TableRelationships":
        buckets: Dict[str, List[Relationship]] = {
            kind.value: [] for kind in RelationshipKind
        }
        for rel in relationships:
            buckets[rel.kind].append(rel)
        return cls(
            table=table,
            **{
                kind: tuple(sorted(rels, key=lambda r: r.name))
                for kind, rels in buckets.items()
            },
        )

    def all(self) -> List[Relationship]:
        return [*self.belongs_to, *self.has_many, *self.has_one]

    def find(self, name: str) -> Optional[Relationship]:
        for rel in self.all():
            if rel.name == name:
                return rel
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.belongs_to or self.has_many or self.has_one)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


class SoftDeletionPattern(BaseModel):
    """Rows are archived through a timestamp column instead of deleted."""

    model_config = _FROZEN_CONFIG

    column: str
    mechanism: str


class PositioningPattern(BaseModel):
    """Rows are ordered by an integer column, optionally within a scope."""

    model_config = _FROZEN_CONFIG

    column: str
    scope: Tuple[str, ...] = ()


class Patterns(BaseModel):
    """Table-level conventions inferred by the pattern detectors."""

    model_config = _FROZEN_CONFIG

    soft_deletion: Optional[SoftDeletionPattern] = None
    positioning: Optional[PositioningPattern] = None
    enums: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return (
            self.soft_deletion is None
            and self.positioning is None
            and not self.enums
        )


class PolymorphicAssociation(BaseModel):
    """A ``(type, id)`` column pair that may point at several models."""

    model_config = _FROZEN_CONFIG

    name: str
    type_field: str
    id_field: str
    allowed_types: Tuple[str, ...] = Field(..., min_length=1)

    @field_validator("allowed_types", mode="before")
    @classmethod
    def _dedupe_sorted(cls, value: Any) -> Tuple[str, ...]:
        return tuple(sorted({str(v) for v in value or ()}))


# ---------------------------------------------------------------------------
# Snapshot returned by the introspector
# ---------------------------------------------------------------------------


class SchemaSnapshot(BaseModel):
    """
    Everything the generator knows about the schema for one run.

    ``tables`` is sorted by name; ``excluded_tables`` lists the internal
    bookkeeping tables that were dropped during extraction.
    """

    model_config = _FROZEN_CONFIG

    tables: Tuple[TableSchema, ...] = ()
    relationships: Dict[str, TableRelationships] = Field(default_factory=dict)
    patterns: Dict[str, Patterns] = Field(default_factory=dict)
    capabilities: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)
    excluded_tables: Tuple[str, ...] = ()

    @property
    def table_names(self) -> List[str]:
        return [tbl.name for tbl in self.tables]

    def table(self, name: str) -> Optional[TableSchema]:
        for tbl in self.tables:
            if tbl.name == name:
                return tbl
        return None

    def has_table(self, name: Optional[str]) -> bool:
        return name is not None and self.table(name) is not None

    def relationships_for(self, name: str) -> TableRelationships:
        return self.relationships.get(name) or TableRelationships(table=name)

    def patterns_for(self, name: str) -> Patterns:
        return self.patterns.get(name) or Patterns()

    def capabilities_for(self, name: str) -> Tuple[str, ...]:
        return self.capabilities.get(name, ())

    def class_name_for(self, table_name: str) -> str:
        tbl: Optional[TableSchema] = self.table(table_name)
        if tbl is not None and tbl.class_name:
            return tbl.class_name
        return table_to_class_name(table_name)


# ---------------------------------------------------------------------------
# Enrichment products
# ---------------------------------------------------------------------------


class TypedProperty(BaseModel):
    """A column rendered as a TypeScript interface property."""

    model_config = _FROZEN_CONFIG

    name: str
    key: str
    ts_type: str
    optional: bool = False
    comment: str = ""


class RelationshipProperty(BaseModel):
    """An association rendered as a TypeScript interface property."""

    model_config = _FROZEN_CONFIG

    name: str
    ts_type: str
    kind: str
    relationship_name: str
    target_class: Optional[str] = None
    self_reference: bool = False


class ProcessedRelationships(BaseModel):
    """Output of ``RelationshipProcessor.process``."""

    model_config = _FROZEN_CONFIG

    properties: Tuple[RelationshipProperty, ...] = ()
    imports: Tuple[str, ...] = ()
    exclusions: Tuple[str, ...] = ()
    documentation: Tuple[str, ...] = ()
    registration: str = ""


# ---------------------------------------------------------------------------
# GenerationContext
# ---------------------------------------------------------------------------


class GenerationContext(BaseModel):
    """
    Immutable per-table bundle driving one generation pass.

    Built by ``SchemaAnalysisStage``; each later stage returns a new
    context through ``with_updates`` carrying its enrichment.
    """

    model_config = _FROZEN_CONFIG

    table: TableSchema
    relationships: TableRelationships
    patterns: Patterns = Field(default_factory=Patterns)
    polymorphic: Tuple[PolymorphicAssociation, ...] = ()
    capabilities: Tuple[str, ...] = ()

    # Enrichment
    relationship_data: Optional[ProcessedRelationships] = None
    properties: Tuple[TypedProperty, ...] = ()
    defaults: Tuple[Tuple[str, str], ...] = ()
    rendered: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # -- Derived names ------------------------------------------------------

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def class_name(self) -> str:
        return self.table.class_name or table_to_class_name(self.table.name)

    @property
    def model_name(self) -> str:
        return to_snake_case(self.class_name)

    @property
    def kebab_name(self) -> str:
        return to_kebab_case(self.model_name)

    @property
    def reactive_class_name(self) -> str:
        return f"Reactive{self.class_name}"

    @property
    def data_type_name(self) -> str:
        return f"{self.class_name}Type"

    @property
    def create_type_name(self) -> str:
        return f"Create{self.class_name}Type"

    @property
    def update_type_name(self) -> str:
        return f"Update{self.class_name}Type"

    @property
    def data_filename(self) -> str:
        return f"{TYPES_DIR}/{self.kebab_name}-data.ts"

    @property
    def active_filename(self) -> str:
        return f"{self.kebab_name}.ts"

    @property
    def reactive_filename(self) -> str:
        return f"reactive-{self.kebab_name}.ts"

    @property
    def output_filenames(self) -> Tuple[str, str, str]:
        return (self.data_filename, self.active_filename, self.reactive_filename)

    # -- Derivation ---------------------------------------------------------

    def with_updates(self, **changes: Any) -> "GenerationContext":
        """Return a new context with *changes* applied."""
        return self.model_copy(update=changes)

    def with_metadata(self, **entries: Any) -> "GenerationContext":
        merged: Dict[str, Any] = {**self.metadata, **entries}
        return self.with_updates(metadata=merged)

    def __repr__(self) -> str:
        return f"<GenerationContext {self.table_name} → {self.class_name}>"


# ---------------------------------------------------------------------------
# Per-table result
# ---------------------------------------------------------------------------


class GenerationResult(BaseModel):
    """Success-with-metadata or failure-with-reason for one table."""

    model_config = _FROZEN_CONFIG

    table_name: str
    class_name: str = ""
    kebab_name: str = ""
    files: Tuple[str, ...] = ()
    error: Optional[str] = None
    elapsed_seconds: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def from_context(
        cls,
        context: GenerationContext,
        elapsed_seconds: float = 0.0,
    ) -> "GenerationResult":
        return cls(
            table_name=context.table_name,
            class_name=context.class_name,
            kebab_name=context.kebab_name,
            files=tuple(sorted(context.rendered)),
            elapsed_seconds=elapsed_seconds,
        )

    @classmethod
    def failure(
        cls,
        table_name: str,
        error: str,
        elapsed_seconds: float = 0.0,
    ) -> "GenerationResult":
        return cls(
            table_name=table_name,
            error=error,
            elapsed_seconds=elapsed_seconds,
        )


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------


class GenerationConfig(BaseModel):
    """
    Options for one generation run.

    Passed explicitly to every component; nothing reads options from
    module-level state.
    """

    model_config = _SHARED_CONFIG

    output_dir: Path = Field(default=Path("frontend/src/lib/models"))
    dry_run: bool = False
    force: bool = Field(
        default=False,
        description="Rewrite files even when their content is unchanged.",
    )
    table: Optional[str] = Field(default=None, description="Only this table.")
    exclude_tables: Tuple[str, ...] = ()
    workers: int = Field(default=4, ge=1, le=64)
    schema_timeout: float = Field(default=30.0, gt=0)
    formatter_command: Optional[Tuple[str, ...]] = None
    formatter_timeout: float = Field(default=120.0, gt=0)
    skip_format: bool = False
    fail_on_partial: bool = True
    loggable_capability: str = LOGGABLE_CAPABILITY
    loggable_fallback: Tuple[str, ...] = DEFAULT_LOGGABLE_MODELS
    base_import_path: str = "./base"
    polymorphic_import_path: str = "../zero/polymorphic"
    template_dir: Optional[Path] = Field(
        default=None,
        description="Directory of *.ts.j2 templates replacing the packaged ones.",
    )

    @field_validator("exclude_tables", "loggable_fallback", mode="before")
    @classmethod
    def _split_names(cls, value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(item.strip() for item in value if item and item.strip())

    @field_validator("formatter_command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Optional[Tuple[str, ...]]:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return tuple(shlex.split(value))
        return tuple(value)

    @field_validator("table", mode="before")
    @classmethod
    def _blank_table_is_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text: str = str(value).strip()
        return text or None


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "TYPES_DIR",
    "INDEX_FILENAME",
    "LOGGABLE_CONFIG_FILENAME",
    "LOGGABLE_CAPABILITY",
    "DEFAULT_LOGGABLE_MODELS",
    "RelationshipKind",
    "Column",
    "TableSchema",
    "Relationship",
    "TableRelationships",
    "SoftDeletionPattern",
    "PositioningPattern",
    "Patterns",
    "PolymorphicAssociation",
    "SchemaSnapshot",
    "TypedProperty",
    "RelationshipProperty",
    "ProcessedRelationships",
    "GenerationContext",
    "GenerationResult",
    "GenerationConfig",
]

logger.debug("modelgen.models loaded.")
