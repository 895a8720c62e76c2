# File: modelgen/introspector.py
"""
NexaFlow ModelGen - Schema Introspection
=========================================

Extracts tables, columns, associations, declared capabilities and
inferred patterns from a schema source and returns one immutable
``SchemaSnapshot`` per run.

Sources::

    FileSchemaSource      YAML / JSON schema description
    DatabaseSchemaSource  live database reflected with SQLAlchemy, plus an
                          optional YAML overlay for what a database cannot
                          express (through / polymorphic associations,
                          capabilities, class-name overrides)

Schema document layout (both sources produce it)::

    tables:
      - name: jobs
        capabilities: [loggable]
        columns:
          - {name: id, type: bigint, nullable: false, primary_key: true}
          - {name: status, type: string, enum_values: [open, closed]}
          - {name: client_id, type: bigint}
        belongs_to: [client]
        has_many:
          - tasks
          - {name: activity_logs, as: loggable}
    loggable_models: [Job]

Guarantees:
    - Deterministic: tables sorted by name, columns in declared order,
      associations sorted by kind then name.
    - Internal bookkeeping tables are always dropped.
    - An unreachable or malformed source raises ``SchemaExtractionError``;
      so does a source that does not answer within the timeout.
"""

from __future__ import annotations

import concurrent.futures
import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

import yaml
from pydantic import ValidationError
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlalchemy.types import Enum as SAEnum, TypeEngine

from modelgen.exceptions import SchemaExtractionError
from modelgen.models import (
    LOGGABLE_CAPABILITY,
    Column,
    Patterns,
    Relationship,
    RelationshipKind,
    SchemaSnapshot,
    TableRelationships,
    TableSchema,
)
from modelgen.patterns import PatternDetector, default_detectors, detect_patterns
from modelgen.utils import Timer, table_to_class_name, to_singular

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.introspector")

# ---------------------------------------------------------------------------
# Fixed exclusions: internal bookkeeping tables are never generated
# ---------------------------------------------------------------------------

EXCLUDED_TABLES: FrozenSet[str] = frozenset({
    "schema_migrations",
    "ar_internal_metadata",
    "versions",
    "solid_cache_entries",
    "solid_cable_messages",
    "refresh_tokens",
    "revoked_tokens",
    "unique_ids",
})
EXCLUDED_TABLE_PREFIXES: Tuple[str, ...] = ("solid_queue_",)

_RELATIONSHIP_KEYS: Tuple[str, ...] = tuple(kind.value for kind in RelationshipKind)
_TABLE_KEYS: FrozenSet[str] = frozenset({
    "name", "class_name", "comment", "primary_key", "columns",
    "relationships", "associations", "capabilities", "patterns",
    *_RELATIONSHIP_KEYS,
})


def is_excluded_table(name: str) -> bool:
    """True for internal bookkeeping tables (migrations, queues, caches, ...)."""
    return name in EXCLUDED_TABLES or name.startswith(EXCLUDED_TABLE_PREFIXES)


# ---------------------------------------------------------------------------
# Schema file loading
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Dict[str, Any]:
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SchemaExtractionError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaExtractionError(
            f"Expected a JSON object at top level of {path}, "
            f"got {type(data).__name__}."
        )
    return data


def _restore_null_keys(node: Any) -> Any:
    """
    YAML 1.1 reads a bare ``null:`` key as ``None``; give it its name back
    so ``{name: id, null: false}`` means what it says.
    """
    if isinstance(node, dict):
        return {
            ("null" if key is None else key): _restore_null_keys(value)
            for key, value in node.items()
        }
    if isinstance(node, list):
        return [_restore_null_keys(item) for item in node]
    return node


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SchemaExtractionError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaExtractionError(
            f"Expected a YAML mapping at top level of {path}, "
            f"got {type(data).__name__}."
        )
    return _restore_null_keys(data)


def load_schema_file(path: Path) -> Dict[str, Any]:
    """
    Load a schema description file (JSON or YAML), dispatching on extension.

    Raises:
        SchemaExtractionError: If the file is missing or cannot be parsed.
    """
    if not path.exists():
        raise SchemaExtractionError(f"Schema file not found: {path}")
    if not path.is_file():
        raise SchemaExtractionError(f"Schema path is not a file: {path}")

    if path.suffix.lower() == ".json":
        return _load_json_file(path)
    # YAML is a superset of JSON, so it also covers unknown extensions.
    return _load_yaml_file(path)


# ---------------------------------------------------------------------------
# Schema sources
# ---------------------------------------------------------------------------


class SchemaSource(ABC):
    """A read-only provider of the raw schema document."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable origin, used in logs and reports."""

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """Return the raw schema document.  Must not mutate the source."""


class FileSchemaSource(SchemaSource):
    def __init__(self, path: Path) -> None:
        self._path: Path = Path(path)

    @property
    def description(self) -> str:
        return str(self._path)

    def load(self) -> Dict[str, Any]:
        return load_schema_file(self._path)


class DictSchemaSource(SchemaSource):
    """In-memory schema document (library use and tests)."""

    def __init__(self, document: Dict[str, Any], label: str = "<memory>") -> None:
        self._document: Dict[str, Any] = document
        self._label: str = label

    @property
    def description(self) -> str:
        return self._label

    def load(self) -> Dict[str, Any]:
        return copy.deepcopy(self._document)


def _native_type_name(sa_type: TypeEngine) -> str:
    try:
        return str(sa_type).lower()
    except CompileError:
        return str(getattr(sa_type, "__visit_name__", "unknown")).lower()


class DatabaseSchemaSource(SchemaSource):
    """
    Reflect a live database with ``sqlalchemy.inspect``.

    Foreign keys become ``belongs_to`` associations on the referencing
    table and ``has_many`` associations on the referenced one.  An overlay
    document (same layout as a schema file) is merged on top, table by
    table: its associations are added, its scalar keys win.
    """

    def __init__(
        self,
        url: str,
        *,
        overlay_path: Optional[Path] = None,
        schema: Optional[str] = None,
        engine: Optional[Engine] = None,
    ) -> None:
        self._url: str = url
        self._overlay_path: Optional[Path] = overlay_path
        self._schema: Optional[str] = schema
        self._engine: Optional[Engine] = engine

    @property
    def description(self) -> str:
        if self._engine is not None:
            return self._engine.url.render_as_string(hide_password=True)
        return self._url.split("@")[-1]

    def load(self) -> Dict[str, Any]:
        try:
            engine: Engine = self._engine or create_engine(self._url)
        except (SQLAlchemyError, ImportError) as exc:
            raise SchemaExtractionError(
                f"Could not create database engine: {exc}",
                {"source": self.description},
            ) from exc

        try:
            document: Dict[str, Any] = self._reflect(engine)
        except SQLAlchemyError as exc:
            raise SchemaExtractionError(
                f"Could not reflect database schema: {exc}",
                {"source": self.description},
            ) from exc
        finally:
            if self._engine is None:
                engine.dispose()

        if self._overlay_path is not None:
            document = merge_overlay(document, load_schema_file(self._overlay_path))
        return document

    def _reflect(self, engine: Engine) -> Dict[str, Any]:
        inspector = inspect(engine)
        tables: Dict[str, Dict[str, Any]] = {}
        reverse: Dict[str, List[Dict[str, Any]]] = {}

        for table_name in sorted(inspector.get_table_names(schema=self._schema)):
            pk: Dict[str, Any] = inspector.get_pk_constraint(table_name, schema=self._schema) or {}
            pk_columns: List[str] = list(pk.get("constrained_columns") or [])

            columns: List[Dict[str, Any]] = []
            for col in inspector.get_columns(table_name, schema=self._schema):
                sa_type: TypeEngine = col["type"]
                entry: Dict[str, Any] = {
                    "name": col["name"],
                    "type": "string" if isinstance(sa_type, SAEnum) else _native_type_name(sa_type),
                    "sql_type": _native_type_name(sa_type),
                    "null": bool(col.get("nullable", True)),
                    "default": col.get("default"),
                    "comment": col.get("comment"),
                    "primary_key": col["name"] in pk_columns,
                }
                if isinstance(sa_type, SAEnum) and sa_type.enums:
                    entry["enum_values"] = list(sa_type.enums)
                columns.append(entry)

            nullable: Dict[str, bool] = {c["name"]: c["null"] for c in columns}
            belongs_to: List[Dict[str, Any]] = []
            for fk in inspector.get_foreign_keys(table_name, schema=self._schema):
                constrained: List[str] = fk.get("constrained_columns") or []
                if len(constrained) != 1:
                    continue
                fk_column: str = constrained[0]
                target: str = fk["referred_table"]
                assoc_name: str = (
                    fk_column[:-3] if fk_column.endswith("_id") else f"{fk_column}_ref"
                )
                belongs_to.append({
                    "name": assoc_name,
                    "target_table": target,
                    "foreign_key": fk_column,
                    "optional": nullable.get(fk_column, True),
                })
                if target != table_name:
                    reverse.setdefault(target, []).append({
                        "name": table_name,
                        "target_table": table_name,
                        "foreign_key": fk_column,
                    })

            tables[table_name] = {
                "name": table_name,
                "primary_key": pk_columns[0] if pk_columns else "id",
                "columns": columns,
                "belongs_to": belongs_to,
                "has_many": [],
            }

        for target, entries in reverse.items():
            if target not in tables:
                continue
            seen: Set[str] = set()
            for entry in entries:
                if entry["name"] in seen:
                    logger.debug(
                        "Skipping duplicate reverse association %s.%s.",
                        target,
                        entry["name"],
                    )
                    continue
                seen.add(entry["name"])
                tables[target]["has_many"].append(entry)

        return {"tables": [tables[name] for name in sorted(tables)]}


def merge_overlay(document: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Merge an overlay schema document into a reflected one."""
    by_name: Dict[str, Dict[str, Any]] = {
        tbl["name"]: dict(tbl) for tbl in _table_entries(document.get("tables"))
    }
    for extra in _table_entries(overlay.get("tables")):
        name: str = extra["name"]
        base: Dict[str, Any] = by_name.setdefault(name, {"name": name, "columns": []})
        for key, value in extra.items():
            if key in _RELATIONSHIP_KEYS or key in ("relationships", "associations"):
                existing = list(base.get(key) or [])
                existing_names = {_association_name(e) for e in existing}
                for item in value or []:
                    if _association_name(item) in existing_names:
                        existing = [e for e in existing if _association_name(e) != _association_name(item)]
                    existing.append(item)
                base[key] = existing
            elif key == "columns":
                overrides = {c["name"]: c for c in value or []}
                merged_cols = [
                    {**col, **overrides.pop(col["name"])} if col["name"] in overrides else col
                    for col in base.get("columns") or []
                ]
                merged_cols.extend(overrides.values())
                base["columns"] = merged_cols
            elif key != "name":
                base[key] = value

    merged: Dict[str, Any] = {k: v for k, v in overlay.items() if k != "tables"}
    merged.update({k: v for k, v in document.items() if k != "tables"})
    merged["tables"] = [by_name[name] for name in sorted(by_name)]
    return merged


def _association_name(entry: Any) -> str:
    return entry if isinstance(entry, str) else str(entry.get("name", ""))


def _table_entries(tables: Any) -> List[Dict[str, Any]]:
    """Accept a list of table dicts or a ``{name: table}`` mapping."""
    if tables is None:
        return []
    if isinstance(tables, dict):
        return [{"name": name, **(body or {})} for name, body in tables.items()]
    if isinstance(tables, list):
        entries: List[Dict[str, Any]] = []
        for item in tables:
            if not isinstance(item, dict) or not item.get("name"):
                raise SchemaExtractionError(
                    f"Every table entry needs a 'name'; got {item!r}."
                )
            entries.append(item)
        return entries
    raise SchemaExtractionError(
        f"'tables' must be a list or mapping, got {type(tables).__name__}."
    )


def _association_items(table: TableSchema, raw: Dict[str, Any], key: str) -> List[Any]:
    items = raw.get(key) or []
    if not isinstance(items, list):
        raise SchemaExtractionError(
            f"Table '{table.name}': '{key}' must be a list, got {type(items).__name__}."
        )
    return items


# ---------------------------------------------------------------------------
# Introspector
# ---------------------------------------------------------------------------


class SchemaIntrospector:
    """
    Turns a ``SchemaSource`` into a ``SchemaSnapshot``.

    Usage::

        introspector = SchemaIntrospector(FileSchemaSource(Path("schema.yaml")))
        snapshot = introspector.extract()
    """

    def __init__(
        self,
        source: SchemaSource,
        *,
        timeout: float = 30.0,
        detectors: Optional[Sequence[PatternDetector]] = None,
    ) -> None:
        self._source: SchemaSource = source
        self._timeout: float = timeout
        self._detectors: List[PatternDetector] = list(
            detectors if detectors is not None else default_detectors()
        )

    @property
    def source(self) -> SchemaSource:
        return self._source

    def extract(self) -> SchemaSnapshot:
        with Timer("schema_extraction") as t:
            document: Dict[str, Any] = self._load_with_timeout()
            try:
                snapshot: SchemaSnapshot = self._build_snapshot(document)
            except ValidationError as exc:
                raise SchemaExtractionError(
                    f"Schema from {self._source.description} is invalid: {exc}"
                ) from exc

        logger.info(
            "Extracted %d table(s) from %s in %.3fs (%d excluded).",
            len(snapshot.tables),
            self._source.description,
            t.elapsed,
            len(snapshot.excluded_tables),
        )
        return snapshot

    # -----------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------

    def _load_with_timeout(self) -> Dict[str, Any]:
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="modelgen-schema"
        )
        future = executor.submit(self._source.load)
        try:
            document: Dict[str, Any] = future.result(timeout=self._timeout)
        except concurrent.futures.TimeoutError as exc:
            raise SchemaExtractionError(
                f"Schema source did not respond within {self._timeout:g}s.",
                {"source": self._source.description},
            ) from exc
        except SchemaExtractionError:
            raise
        except (OSError, ValueError) as exc:
            raise SchemaExtractionError(
                f"Could not read schema: {exc}",
                {"source": self._source.description},
            ) from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if not isinstance(document, dict):
            raise SchemaExtractionError(
                f"Schema source returned {type(document).__name__}, expected a mapping."
            )
        return document

    # -----------------------------------------------------------------
    # Snapshot building
    # -----------------------------------------------------------------

    def _build_snapshot(self, document: Dict[str, Any]) -> SchemaSnapshot:
        tables: List[TableSchema] = []
        relationships: Dict[str, TableRelationships] = {}
        capabilities: Dict[str, Tuple[str, ...]] = {}
        declared_patterns: Dict[str, Dict[str, Any]] = {}
        excluded: List[str] = []

        for raw in _table_entries(document.get("tables")):
            name: str = str(raw["name"])
            if is_excluded_table(name):
                excluded.append(name)
                continue

            unknown: Set[str] = set(raw) - _TABLE_KEYS
            if unknown:
                logger.warning(
                    "Table '%s': ignoring unknown key(s) %s.",
                    name,
                    ", ".join(sorted(unknown)),
                )

            table: TableSchema = TableSchema(
                name=name,
                columns=tuple(
                    Column.model_validate(col) for col in raw.get("columns") or []
                ),
                primary_key=raw.get("primary_key") or "id",
                class_name=raw.get("class_name"),
                comment=raw.get("comment"),
            )
            tables.append(table)
            relationships[name] = TableRelationships.partition(
                name, self._parse_relationships(table, raw)
            )
            capabilities[name] = tuple(sorted({str(c) for c in raw.get("capabilities") or []}))
            if raw.get("patterns"):
                declared_patterns[name] = dict(raw["patterns"])

        tables.sort(key=lambda tbl: tbl.name)
        self._apply_declared_models(document, tables, capabilities)

        patterns: Dict[str, Patterns] = {
            tbl.name: detect_patterns(
                tbl,
                relationships[tbl.name],
                self._detectors,
                declared_patterns.get(tbl.name),
            )
            for tbl in tables
        }

        return SchemaSnapshot(
            tables=tuple(tables),
            relationships=relationships,
            patterns=patterns,
            capabilities=capabilities,
            excluded_tables=tuple(sorted(excluded)),
        )

    @staticmethod
    def _parse_relationships(table: TableSchema, raw: Dict[str, Any]) -> List[Relationship]:
        owner_fk: str = f"{to_singular(table.name)}_id"
        entries: List[Dict[str, Any]] = []

        for key in ("relationships", "associations"):
            for item in _association_items(table, raw, key):
                if not isinstance(item, dict):
                    raise SchemaExtractionError(
                        f"Table '{table.name}': each '{key}' entry must be a mapping, "
                        f"got {type(item).__name__}."
                    )
                entries.append(dict(item))

        for kind in _RELATIONSHIP_KEYS:
            for item in _association_items(table, raw, kind):
                if not isinstance(item, (str, dict)):
                    raise SchemaExtractionError(
                        f"Table '{table.name}': each '{kind}' entry must be a name or a mapping, "
                        f"got {type(item).__name__}."
                    )
                entry: Dict[str, Any] = {"name": item} if isinstance(item, str) else dict(item)
                entry["kind"] = kind
                entries.append(entry)

        parsed: List[Relationship] = []
        seen: Set[str] = set()
        for entry in entries:
            if entry.get("kind") != RelationshipKind.BELONGS_TO.value and not entry.get("foreign_key"):
                polymorphic_as = entry.get("as") or entry.get("as_")
                entry["foreign_key"] = f"{polymorphic_as}_id" if polymorphic_as else owner_fk
            try:
                rel: Relationship = Relationship.model_validate(entry)
            except ValidationError as exc:
                raise SchemaExtractionError(
                    f"Table '{table.name}': invalid association {entry.get('name')!r}: {exc}"
                ) from exc
            if rel.name in seen:
                logger.warning(
                    "Table '%s': association '%s' declared twice; keeping the first.",
                    table.name,
                    rel.name,
                )
                continue
            seen.add(rel.name)
            parsed.append(rel)
        return parsed

    @staticmethod
    def _apply_declared_models(
        document: Dict[str, Any],
        tables: Iterable[TableSchema],
        capabilities: Dict[str, Tuple[str, ...]],
    ) -> None:
        """Top-level ``loggable_models`` adds the capability by class name."""
        declared: Set[str] = {str(m) for m in document.get("loggable_models") or []}
        if not declared:
            return
        for tbl in tables:
            class_name: str = tbl.class_name or table_to_class_name(tbl.name)
            if class_name in declared:
                capabilities[tbl.name] = tuple(
                    sorted({*capabilities.get(tbl.name, ()), LOGGABLE_CAPABILITY})
                )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "EXCLUDED_TABLES",
    "EXCLUDED_TABLE_PREFIXES",
    "is_excluded_table",
    "load_schema_file",
    "merge_overlay",
    "SchemaSource",
    "FileSchemaSource",
    "DictSchemaSource",
    "DatabaseSchemaSource",
    "SchemaIntrospector",
]

logger.debug("modelgen.introspector loaded.")
