# File: modelgen/generator.py
"""
NexaFlow ModelGen - Generation Coordinator (Orchestrator)
==========================================================

Connects every phase of a run::

    Schema Extraction → Validation → per table: Pipeline → Batch Flush
        → Post-processing (index, loggable registry) → Report

The ``GenerationCoordinator`` provides both the programmatic API and the
backend for the CLI.

Error handling strategy:
    - ``SchemaExtractionError`` and ``ServiceInitializationError`` are
      fatal.  They propagate to the caller and nothing is written.
    - Everything that goes wrong for a single table (validation errors,
      template failures, write failures) is recorded as a failed
      ``GenerationResult``.  Other tables are unaffected.
    - The loggable registry is advisory: if it cannot be produced the
      run still succeeds.
    - ``success`` is false on partial failure only when
      ``GenerationConfig.fail_on_partial`` is set.

Concurrency:
    Tables run on a ``ThreadPoolExecutor``; results are re-ordered by the
    snapshot's table order before aggregation, so reports and index files
    never depend on scheduling.  The batch flush is a barrier after every
    task has finished.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from modelgen.exceptions import ModelGenError, ServiceInitializationError
from modelgen.exporters import BatchResult, FileManager
from modelgen.introspector import SchemaIntrospector, SchemaSource
from modelgen.models import (
    INDEX_FILENAME,
    LOGGABLE_CONFIG_FILENAME,
    GenerationConfig,
    GenerationResult,
    SchemaSnapshot,
)
from modelgen.patterns import PatternDetector
from modelgen.pipeline import Pipeline, build_pipeline
from modelgen.templates import (
    ACTIVE_TEMPLATE,
    DATA_TEMPLATE,
    INDEX_TEMPLATE,
    LOGGABLE_TEMPLATE,
    REACTIVE_TEMPLATE,
    TemplateRenderer,
)
from modelgen.type_mapper import TypeMapper
from modelgen.utils import Timer
from modelgen.validators import ValidationResult, validate_snapshot

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.generator")

REQUIRED_TEMPLATES: Tuple[str, ...] = (
    DATA_TEMPLATE,
    ACTIVE_TEMPLATE,
    REACTIVE_TEMPLATE,
    INDEX_TEMPLATE,
    LOGGABLE_TEMPLATE,
)


# ---------------------------------------------------------------------------
# Statistics & report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class RunStatistics:
    """Counters for one run, owned by the coordinator."""

    tables_processed: int = 0
    models_generated: int = 0
    tables_skipped: int = 0
    files_created: int = 0
    files_identical: int = 0
    errors_encountered: int = 0
    execution_time: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of attempted tables that generated successfully."""
        attempted: int = self.models_generated + self.tables_skipped
        if attempted == 0:
            return 100.0
        return round(self.models_generated / attempted * 100.0, 1)

    @property
    def throughput(self) -> float:
        """Models per second."""
        if self.execution_time <= 0:
            return 0.0
        return self.models_generated / self.execution_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables_processed": self.tables_processed,
            "models_generated": self.models_generated,
            "tables_skipped": self.tables_skipped,
            "files_created": self.files_created,
            "files_identical": self.files_identical,
            "errors_encountered": self.errors_encountered,
            "execution_time": round(self.execution_time, 4),
            "success_rate": self.success_rate,
        }


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Everything a run produced, returned by ``GenerationCoordinator.execute``.

    ``results`` follows the snapshot's table order.
    """

    success: bool = False
    dry_run: bool = False
    output_directory: str = ""
    results: List[GenerationResult] = field(default_factory=list)
    statistics: RunStatistics = field(default_factory=RunStatistics)
    written_files: List[str] = field(default_factory=list)
    would_write_files: List[str] = field(default_factory=list)
    identical_files: List[str] = field(default_factory=list)
    loggable_models: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    post_process_errors: List[str] = field(default_factory=list)
    post_process_warnings: List[str] = field(default_factory=list)

    @property
    def generated(self) -> List[GenerationResult]:
        return [r for r in self.results if r.success]

    @property
    def skipped(self) -> List[Tuple[str, str]]:
        """``(table, reason)`` for every table that failed."""
        return [(r.table_name, r.error or "") for r in self.results if not r.success]

    @property
    def errors(self) -> List[str]:
        return [f"{table}: {reason}" for table, reason in self.skipped] + list(
            self.post_process_errors
        )

    def summary(self) -> str:
        """Return a human-readable summary string."""
        stats: RunStatistics = self.statistics
        lines: List[str] = []
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        if self.dry_run:
            status += " (dry run)"
        lines.append(f"{'='*60}")
        lines.append("  NexaFlow ModelGen — Generation Report")
        lines.append(f"{'='*60}")
        lines.append(f"  Status:           {status}")
        lines.append(f"  Output:           {self.output_directory}")
        lines.append(f"  Tables processed: {stats.tables_processed}")
        lines.append(f"  Models generated: {stats.models_generated}")
        lines.append(f"  Tables skipped:   {stats.tables_skipped}")
        if self.dry_run:
            lines.append(f"  Would write:      {len(self.would_write_files)}")
        else:
            lines.append(f"  Files written:    {len(self.written_files)}")
        lines.append(f"  Files unchanged:  {len(self.identical_files)}")
        lines.append(f"  Success rate:     {stats.success_rate:.1f}%")
        lines.append(f"  Total time:       {stats.execution_time:.3f}s")
        lines.append(f"  Throughput:       {stats.throughput:.1f} models/s")
        lines.append(f"{'─'*60}")

        if self.generated:
            lines.append("  Generated Models:")
            for result in self.generated:
                lines.append(
                    f"    ✓ {result.class_name:<28s} "
                    f"{result.elapsed_seconds:>7.3f}s  {result.table_name}"
                )

        if self.skipped:
            lines.append(f"{'─'*60}")
            lines.append(f"  Skipped Tables ({len(self.skipped)}):")
            for table, reason in self.skipped:
                lines.append(f"    ⊘ {table}: {reason}")

        if self.post_process_errors:
            lines.append(f"{'─'*60}")
            lines.append(f"  Post-processing Errors ({len(self.post_process_errors)}):")
            for err in self.post_process_errors:
                lines.append(f"    ✗ {err}")

        warnings: List[str] = [*self.validation_warnings, *self.post_process_warnings]
        if warnings:
            lines.append(f"{'─'*60}")
            lines.append(f"  Warnings ({len(warnings)}):")
            for warn in warnings:
                lines.append(f"    ⚠ {warn}")

        if self.dry_run and self.would_write_files:
            lines.append(f"{'─'*60}")
            lines.append("  Would write:")
            for path in self.would_write_files:
                lines.append(f"    • {path}")

        lines.append(f"{'='*60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# GenerationCoordinator
# ---------------------------------------------------------------------------


class GenerationCoordinator:
    """
    Master orchestrator of one generation run.

    Usage::

        coordinator = GenerationCoordinator(config, FileSchemaSource(path))
        report = coordinator.execute()
        print(report.summary())

    Args:
        config: Run options.  Passed on to every component.
        source: Where the schema comes from.
        detectors: Pattern detectors; the defaults when omitted.
        type_mapper: Shared ``TypeMapper``; a fresh one when omitted.
    """

    def __init__(
        self,
        config: GenerationConfig,
        source: SchemaSource,
        *,
        detectors: Optional[Sequence[PatternDetector]] = None,
        type_mapper: Optional[TypeMapper] = None,
    ) -> None:
        self._config: GenerationConfig = config
        self._source: SchemaSource = source
        self._detectors: Optional[Sequence[PatternDetector]] = detectors
        self._type_mapper: TypeMapper = type_mapper or TypeMapper()

        logger.debug(
            "GenerationCoordinator initialised: source=%s, output=%s, workers=%d.",
            source.description,
            config.output_dir,
            config.workers,
        )

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def extract_schema(self) -> SchemaSnapshot:
        """Run introspection only.  Raises ``SchemaExtractionError``."""
        introspector = SchemaIntrospector(
            self._source,
            timeout=self._config.schema_timeout,
            detectors=self._detectors,
        )
        return introspector.extract()

    def execute(self) -> GenerationReport:
        """
        Run the whole generation.

        Raises:
            SchemaExtractionError: The schema could not be obtained.
            ServiceInitializationError: Renderer or file manager could
                not start.
        """
        report = GenerationReport(
            dry_run=self._config.dry_run,
            output_directory=str(Path(self._config.output_dir).resolve()),
        )
        stats: RunStatistics = report.statistics

        with Timer("generation run") as run_timer:
            snapshot: SchemaSnapshot = self.extract_schema()
            renderer, file_manager = self._init_services()

            validation: ValidationResult = validate_snapshot(snapshot)
            for warning in validation.warnings:
                logger.warning("%s", warning.message)
                report.validation_warnings.append(warning.message)
            invalid: Dict[str, List[str]] = validation.errors_by_table()

            tables: List[str] = self._select_tables(snapshot)
            stats.tables_processed = len(tables)
            if self._config.dry_run:
                logger.info("Dry-run mode: files will not be written to disk.")

            pipeline: Pipeline = build_pipeline(
                snapshot,
                self._config,
                renderer,
                file_manager,
                self._type_mapper,
            )
            try:
                results: List[GenerationResult] = self._run_tables(
                    pipeline, tables, invalid, snapshot
                )
            except KeyboardInterrupt:
                dropped: int = file_manager.discard()
                logger.error("Interrupted; discarded %d buffered file(s).", dropped)
                raise

            batch: BatchResult = file_manager.process_batch()
            results = self._apply_write_errors(results, batch)
            self._record_batch(report, batch)

            report.results = results
            self._post_process(report, snapshot, renderer, file_manager)

        stats.models_generated = len(report.generated)
        stats.tables_skipped = len(report.skipped)
        stats.files_created = file_manager.statistics.written
        stats.files_identical = file_manager.statistics.identical
        stats.errors_encountered = len(report.skipped) + len(report.post_process_errors)
        stats.execution_time = run_timer.elapsed

        partial_failure: bool = bool(report.skipped)
        report.success = not report.post_process_errors and not (
            partial_failure and self._config.fail_on_partial
        )

        if report.success:
            logger.info(
                "Generation finished: %d model(s), %d skipped, %.3fs.",
                stats.models_generated,
                stats.tables_skipped,
                stats.execution_time,
            )
        else:
            logger.error(
                "Generation finished with %d error(s) in %.3fs.",
                stats.errors_encountered,
                stats.execution_time,
            )
        return report

    # -----------------------------------------------------------------
    # Internal: setup
    # -----------------------------------------------------------------

    def _init_services(self) -> Tuple[TemplateRenderer, FileManager]:
        try:
            renderer = TemplateRenderer(self._config.template_dir)
            available: List[str] = renderer.available_templates()
        except OSError as exc:
            raise ServiceInitializationError(
                f"Template renderer could not start: {exc}",
                {"template_dir": str(self._config.template_dir)},
            ) from exc

        missing: List[str] = [name for name in REQUIRED_TEMPLATES if name not in available]
        if missing:
            raise ServiceInitializationError(
                f"Missing template(s): {', '.join(missing)}",
                {"template_dir": str(renderer.template_dir)},
            )

        output_dir: Path = Path(self._config.output_dir)
        if output_dir.exists() and not output_dir.is_dir():
            raise ServiceInitializationError(
                f"Output path {output_dir} exists and is not a directory."
            )
        return renderer, FileManager(self._config)

    def _select_tables(self, snapshot: SchemaSnapshot) -> List[str]:
        excluded = set(self._config.exclude_tables)
        names: List[str] = [n for n in snapshot.table_names if n not in excluded]
        for name in sorted(excluded - set(snapshot.table_names)):
            logger.warning("Excluded table '%s' is not in the schema.", name)

        if self._config.table is not None:
            names = [n for n in names if n == self._config.table]
            if not names:
                logger.error("Table '%s' not found in the schema.", self._config.table)
                # Kept so the run reports it as a failed table.
                names = [self._config.table]

        logger.info("Selected %d table(s) for generation.", len(names))
        return names

    # -----------------------------------------------------------------
    # Internal: per-table execution
    # -----------------------------------------------------------------

    def _run_tables(
        self,
        pipeline: Pipeline,
        tables: Sequence[str],
        invalid: Dict[str, List[str]],
        snapshot: SchemaSnapshot,
    ) -> List[GenerationResult]:
        by_table: Dict[str, GenerationResult] = {}
        runnable: List[str] = []

        for name in tables:
            if name in invalid:
                by_table[name] = GenerationResult.failure(name, "; ".join(invalid[name]))
            elif not snapshot.has_table(name):
                by_table[name] = GenerationResult.failure(name, "Table not found in schema.")
            else:
                runnable.append(name)

        total: int = len(tables)
        done: int = len(by_table)
        for result in by_table.values():
            self._log_progress(result, 0, total)

        if runnable:
            workers: int = max(1, min(self._config.workers, len(runnable)))
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="modelgen-table"
            ) as executor:
                futures: Dict[concurrent.futures.Future, str] = {
                    executor.submit(pipeline.run, name): name for name in runnable
                }
                try:
                    for future in concurrent.futures.as_completed(futures):
                        result: GenerationResult = future.result()
                        by_table[futures[future]] = result
                        done += 1
                        self._log_progress(result, done, total)
                except KeyboardInterrupt:
                    for pending in futures:
                        pending.cancel()
                    raise

        return [by_table[name] for name in tables]

    @staticmethod
    def _log_progress(result: GenerationResult, done: int, total: int) -> None:
        prefix: str = f"[{done}/{total}]" if done else "[skip]"
        if result.success:
            logger.info(
                "%s ✓ %s → %s (%.3fs)",
                prefix,
                result.table_name,
                result.class_name,
                result.elapsed_seconds,
            )
        else:
            logger.warning("%s ✗ %s: %s", prefix, result.table_name, result.error)

    @staticmethod
    def _apply_write_errors(
        results: List[GenerationResult],
        batch: BatchResult,
    ) -> List[GenerationResult]:
        """A table whose files could not be written becomes a failure."""
        if not batch.errors:
            return results
        updated: List[GenerationResult] = []
        for result in results:
            failed: List[str] = [f for f in result.files if f in batch.errors]
            if result.success and failed:
                updated.append(GenerationResult.failure(
                    result.table_name,
                    "Write failed: " + "; ".join(f"{f}: {batch.errors[f]}" for f in failed),
                    result.elapsed_seconds,
                ))
            else:
                updated.append(result)
        return updated

    @staticmethod
    def _record_batch(report: GenerationReport, batch: BatchResult) -> None:
        report.written_files.extend(batch.written)
        report.would_write_files.extend(batch.would_write)
        report.identical_files.extend(batch.identical)

    # -----------------------------------------------------------------
    # Internal: post-processing
    # -----------------------------------------------------------------

    def _post_process(
        self,
        report: GenerationReport,
        snapshot: SchemaSnapshot,
        renderer: TemplateRenderer,
        file_manager: FileManager,
    ) -> None:
        """Index and loggable registry, flushed as a second batch."""
        generated: List[GenerationResult] = report.generated
        if not generated:
            logger.info(
                "No models generated; %s and %s left untouched.",
                INDEX_FILENAME,
                LOGGABLE_CONFIG_FILENAME,
            )
            return

        try:
            file_manager.write(INDEX_FILENAME, self._render_index(renderer, generated))
        except ModelGenError as exc:
            message: str = f"Index generation failed: {exc}"
            logger.error(message)
            report.post_process_errors.append(message)

        try:
            loggable: List[Tuple[str, str]] = self._loggable_models(snapshot)
            file_manager.write(
                LOGGABLE_CONFIG_FILENAME,
                renderer.render(LOGGABLE_TEMPLATE, {
                    "models": [
                        {"table_name": table_name, "class_name": class_name}
                        for table_name, class_name in loggable
                    ],
                }),
            )
            report.loggable_models = sorted(class_name for _, class_name in loggable)
        except Exception as exc:
            message = f"Loggable registry not generated: {type(exc).__name__}: {exc}"
            logger.warning(message)
            report.post_process_warnings.append(message)

        batch: BatchResult = file_manager.process_batch()
        self._record_batch(report, batch)
        for path, error in sorted(batch.errors.items()):
            message = f"Failed to write {path}: {error}"
            if path == LOGGABLE_CONFIG_FILENAME:
                report.post_process_warnings.append(message)
            else:
                report.post_process_errors.append(message)

    @staticmethod
    def _render_index(renderer: TemplateRenderer, generated: Sequence[GenerationResult]) -> str:
        models: List[Dict[str, str]] = [
            {
                "class_name": r.class_name,
                "kebab_name": r.kebab_name,
                "reactive_class_name": f"Reactive{r.class_name}",
                "data_type_name": f"{r.class_name}Type",
                "create_type_name": f"Create{r.class_name}Type",
                "update_type_name": f"Update{r.class_name}Type",
            }
            for r in generated
        ]
        return renderer.render(INDEX_TEMPLATE, {"models": models})

    def _loggable_models(self, snapshot: SchemaSnapshot) -> List[Tuple[str, str]]:
        """
        ``(table, class name)`` of every schema model carrying the loggable
        capability, in table order.

        Read from the whole snapshot, so single-table runs and failed
        tables never drop entries.  The static fallback list applies only
        when no table in the schema declares the capability at all.
        """
        capability: str = self._config.loggable_capability
        models: List[Tuple[str, str]] = [
            (name, snapshot.class_name_for(name)) for name in snapshot.table_names
        ]
        declared: List[Tuple[str, str]] = [
            (name, class_name)
            for name, class_name in models
            if capability in snapshot.capabilities_for(name)
        ]
        if declared:
            return declared

        fallback = set(self._config.loggable_fallback)
        logger.info(
            "No table declares '%s'; using the default list (%s).",
            capability,
            ", ".join(sorted(fallback)),
        )
        return [(name, class_name) for name, class_name in models if class_name in fallback]


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "GenerationCoordinator",
    "GenerationReport",
    "RunStatistics",
    "REQUIRED_TEMPLATES",
]

logger.debug("modelgen.generator loaded.")
