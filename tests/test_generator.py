"""
tests/test_generator.py
Integration tests for modelgen.generator (GenerationCoordinator).

Tests cover:
- Full runs over the reference schema and the rendered TypeScript
- Idempotent reruns, force and dry-run modes
- Deterministic output regardless of worker count
- Partial failures and the fail_on_partial switch
- Table selection and exclusion
- Loggable registry resolution
- Fatal initialisation errors
"""

from __future__ import annotations

import pathlib
import shutil
from typing import Any, Callable, Dict, List

import pytest

from modelgen.exceptions import ServiceInitializationError
from modelgen.generator import GenerationCoordinator, GenerationReport, RunStatistics
from modelgen.models import GenerationConfig
from modelgen.templates import DEFAULT_TEMPLATE_DIR

MakeCoordinator = Callable[[Dict[str, Any], GenerationConfig], GenerationCoordinator]

REFERENCE_FILES: List[str] = [
    "activity-log.ts",
    "client.ts",
    "generated-loggable-config.ts",
    "index.ts",
    "job.ts",
    "reactive-activity-log.ts",
    "reactive-client.ts",
    "reactive-job.ts",
    "reactive-task.ts",
    "task.ts",
    "types/activity-log-data.ts",
    "types/client-data.ts",
    "types/job-data.ts",
    "types/task-data.ts",
]


def _tree(directory: pathlib.Path) -> Dict[str, bytes]:
    return {
        path.relative_to(directory).as_posix(): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


def _read(directory: pathlib.Path, name: str) -> str:
    return (directory / name).read_text(encoding="utf-8")


def _config(output_dir: pathlib.Path, **options: Any) -> GenerationConfig:
    options.setdefault("skip_format", True)
    return GenerationConfig(output_dir=output_dir, **options)


# ===========================================================================
# Full runs
# ===========================================================================


class TestReferenceSchema:
    @pytest.fixture()
    def report(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        config: GenerationConfig,
    ) -> GenerationReport:
        return make_coordinator(schema_dict, config).execute()

    def test_run_succeeds(self, report: GenerationReport, output_dir: pathlib.Path) -> None:
        assert report.success, report.errors
        assert [r.class_name for r in report.results] == ["ActivityLog", "Client", "Job", "Task"]
        assert sorted(_tree(output_dir)) == REFERENCE_FILES
        assert sorted(report.written_files) == REFERENCE_FILES

    def test_statistics(self, report: GenerationReport) -> None:
        stats = report.statistics
        assert stats.tables_processed == 4
        assert stats.models_generated == 4
        assert stats.tables_skipped == 0
        assert stats.files_created == 14
        assert stats.errors_encountered == 0
        assert stats.success_rate == 100.0

    def test_data_interface(self, report: GenerationReport, output_dir: pathlib.Path) -> None:
        body = _read(output_dir, "types/job-data.ts")
        assert "import type { ActivityLogType } from './activity-log-data';" in body
        assert "import type { ClientType } from './client-data';" in body
        assert "import type { TaskType } from './task-data';" in body
        assert "export interface JobType extends BaseRecord {" in body
        assert "  status: 'open' | 'in_progress' | 'closed';" in body
        assert "  client_id: number;" in body
        assert "  position?: number;" in body
        assert "  client?: ClientType; // belongs_to" in body
        assert "  activityLogs?: ActivityLogType[]; // has_many" in body
        assert (
            "export type CreateJobType = Omit<JobType, 'id' | 'created_at' | 'updated_at' "
            "| 'discarded_at' | 'client' | 'activityLogs' | 'tasks'>;"
        ) in body
        assert (
            "export type UpdateJobType = Partial<Omit<JobType, 'id' | 'created_at' "
            "| 'updated_at' | 'client' | 'activityLogs' | 'tasks'>>;"
        ) in body

    def test_column_comment_and_enum(
        self, report: GenerationReport, output_dir: pathlib.Path
    ) -> None:
        body = _read(output_dir, "types/client-data.ts")
        assert "  client_type: 'residential' | 'business';" in body
        assert "  notes?: string; // Free-form notes" in body
        assert " * Customers that own jobs" in body

    def test_self_reference_is_not_imported(
        self, report: GenerationReport, output_dir: pathlib.Path
    ) -> None:
        body = _read(output_dir, "types/task-data.ts")
        assert "  parent?: TaskType; // belongs_to" in body
        assert "  subtasks?: TaskType[]; // has_many" in body
        assert "from './task-data'" not in body
        assert " * - parent: belongs_to Task (self-reference)" in body

    def test_active_model(self, report: GenerationReport, output_dir: pathlib.Path) -> None:
        body = _read(output_dir, "job.ts")
        assert "  supportsDiscard: true," in body
        assert "    status: 'open'," in body
        assert "    priority: 0," in body
        assert "  positioning: { column: 'position', scope: ['client_id'] }," in body
        assert "registerModelRelationships('jobs', {" in body
        assert "  client: { type: 'belongsTo', model: 'Client' }," in body
        assert "  tasks: { type: 'hasMany', model: 'Task' }," in body
        assert "export default Job;" in body

    def test_polymorphic_declaration(
        self, report: GenerationReport, output_dir: pathlib.Path
    ) -> None:
        body = _read(output_dir, "activity-log.ts")
        assert "import { declarePolymorphicRelationships } from '../zero/polymorphic';" in body
        assert "      typeField: 'loggable_type'," in body
        assert "      idField: 'loggable_id'," in body
        assert "      allowedTypes: ['client', 'job', 'task']," in body
        assert "registerModelRelationships" not in body
        assert "  supportsDiscard: false," in body

    def test_index(self, report: GenerationReport, output_dir: pathlib.Path) -> None:
        body = _read(output_dir, "index.ts")
        assert "import { ActivityLog } from './activity-log';" in body
        assert "import { ReactiveTask } from './reactive-task';" in body
        assert (
            "export type { JobType, CreateJobType, UpdateJobType } from './types/job-data';"
        ) in body
        # Models appear in table order.
        assert body.index("ActivityLog }") < body.index("Client }") < body.index("Job }")

    def test_loggable_registry(self, report: GenerationReport, output_dir: pathlib.Path) -> None:
        body = _read(output_dir, "generated-loggable-config.ts")
        assert "  'clients': { modelName: 'Client', includesLoggable: true }," in body
        assert "  'jobs': { modelName: 'Job', includesLoggable: true }," in body
        assert "'tasks'" not in body
        assert report.loggable_models == ["Client", "Job"]

    def test_excluded_tables_are_not_generated(
        self, report: GenerationReport, output_dir: pathlib.Path
    ) -> None:
        assert "schema_migrations" not in {r.table_name for r in report.results}
        assert not (output_dir / "schema-migration.ts").exists()

    def test_summary(self, report: GenerationReport) -> None:
        summary = report.summary()
        assert "✅ SUCCESS" in summary
        assert "Models generated: 4" in summary
        assert "Files written:    14" in summary


class TestClientsAndJobs:
    def test_two_tables(
        self,
        make_coordinator: MakeCoordinator,
        clients_jobs_schema: Dict[str, Any],
        config: GenerationConfig,
        output_dir: pathlib.Path,
    ) -> None:
        report = make_coordinator(clients_jobs_schema, config).execute()

        assert report.success
        assert len(report.written_files) == 8
        body = _read(output_dir, "types/job-data.ts")
        assert "  title?: string;" in body
        assert "  client?: ClientType; // belongs_to" in body
        assert "  jobs?: JobType[]; // has_many" in _read(output_dir, "types/client-data.ts")

    def test_second_run_writes_nothing(
        self,
        make_coordinator: MakeCoordinator,
        clients_jobs_schema: Dict[str, Any],
        config: GenerationConfig,
    ) -> None:
        make_coordinator(clients_jobs_schema, config).execute()
        report = make_coordinator(clients_jobs_schema, config).execute()

        assert report.success
        assert report.written_files == []
        assert len(report.identical_files) == 8
        assert report.statistics.files_created == 0
        assert report.statistics.files_identical == 8


# ===========================================================================
# Output modes
# ===========================================================================


class TestOutputModes:
    def test_worker_count_does_not_change_output(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        tmp_path: pathlib.Path,
    ) -> None:
        serial = tmp_path / "serial"
        parallel = tmp_path / "parallel"
        first = make_coordinator(schema_dict, _config(serial, workers=1)).execute()
        second = make_coordinator(schema_dict, _config(parallel, workers=4)).execute()

        assert first.success and second.success
        assert _tree(serial) == _tree(parallel)
        assert [r.table_name for r in first.results] == [r.table_name for r in second.results]

    def test_dry_run_matches_real_run(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        dry = make_coordinator(schema_dict, _config(output_dir, dry_run=True)).execute()
        assert dry.success
        assert dry.dry_run
        assert dry.written_files == []
        assert not output_dir.exists()
        assert "Would write:      14" in dry.summary()

        real = make_coordinator(schema_dict, _config(output_dir)).execute()
        assert dry.would_write_files == real.written_files

    def test_dry_run_after_real_run_reports_nothing(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        make_coordinator(schema_dict, _config(output_dir)).execute()
        dry = make_coordinator(schema_dict, _config(output_dir, dry_run=True)).execute()
        assert dry.would_write_files == []
        assert len(dry.identical_files) == 14

    def test_force_rewrites_everything(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        make_coordinator(schema_dict, _config(output_dir)).execute()
        before = _tree(output_dir)
        report = make_coordinator(schema_dict, _config(output_dir, force=True)).execute()

        assert sorted(report.written_files) == REFERENCE_FILES
        assert _tree(output_dir) == before


# ===========================================================================
# Failures
# ===========================================================================


class TestPartialFailure:
    @pytest.fixture()
    def broken_templates(self, tmp_path: pathlib.Path) -> pathlib.Path:
        directory = tmp_path / "templates"
        shutil.copytree(DEFAULT_TEMPLATE_DIR, directory)
        data = directory / "data_interface.ts.j2"
        data.write_text(
            data.read_text(encoding="utf-8")
            + "{% if table_name == 'jobs' %}{{ missing_var }}{% endif %}\n",
            encoding="utf-8",
        )
        return directory

    def test_one_table_fails_others_generate(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
        broken_templates: pathlib.Path,
    ) -> None:
        cfg = _config(output_dir, template_dir=broken_templates)
        report = make_coordinator(schema_dict, cfg).execute()

        assert not report.success
        assert [t for t, _ in report.skipped] == ["jobs"]
        assert "missing_var" in report.skipped[0][1]
        assert [r.class_name for r in report.generated] == ["ActivityLog", "Client", "Task"]
        assert not (output_dir / "job.ts").exists()
        assert (output_dir / "task.ts").exists()

        index = _read(output_dir, "index.ts")
        assert "'./job'" not in index
        assert "import { Task } from './task';" in index
        assert report.loggable_models == ["Client", "Job"]
        assert report.statistics.errors_encountered == 1
        assert "⊘ jobs:" in report.summary()

    def test_allow_partial(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
        broken_templates: pathlib.Path,
    ) -> None:
        cfg = _config(output_dir, template_dir=broken_templates, fail_on_partial=False)
        report = make_coordinator(schema_dict, cfg).execute()

        assert report.success
        assert report.statistics.tables_skipped == 1
        assert report.statistics.success_rate == 75.0

    def test_unknown_through_skips_the_table(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        config: GenerationConfig,
        output_dir: pathlib.Path,
    ) -> None:
        jobs = next(t for t in schema_dict["tables"] if t["name"] == "jobs")
        jobs["has_many"].append({"name": "workers", "through": "assignments", "target_table": "tasks"})

        report = make_coordinator(schema_dict, config).execute()

        assert not report.success
        assert [t for t, _ in report.skipped] == ["jobs"]
        assert "assignments" in report.skipped[0][1]
        assert (output_dir / "client.ts").exists()
        assert not (output_dir / "job.ts").exists()

    def test_unknown_table_writes_nothing(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        report = make_coordinator(schema_dict, _config(output_dir, table="invoices")).execute()

        assert not report.success
        assert report.skipped == [("invoices", "Table not found in schema.")]
        assert not output_dir.exists()


class TestInitialisationErrors:
    def test_missing_templates(
        self,
        make_coordinator: MakeCoordinator,
        minimal_schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
        tmp_path: pathlib.Path,
    ) -> None:
        empty = tmp_path / "empty-templates"
        empty.mkdir()
        coordinator = make_coordinator(minimal_schema_dict, _config(output_dir, template_dir=empty))
        with pytest.raises(ServiceInitializationError, match="Missing template"):
            coordinator.execute()

    def test_output_path_is_a_file(
        self,
        make_coordinator: MakeCoordinator,
        minimal_schema_dict: Dict[str, Any],
        tmp_path: pathlib.Path,
    ) -> None:
        target = tmp_path / "models.ts"
        target.write_text("", encoding="utf-8")
        with pytest.raises(ServiceInitializationError, match="not a directory"):
            make_coordinator(minimal_schema_dict, _config(target)).execute()


# ===========================================================================
# Selection
# ===========================================================================


class TestTableSelection:
    def test_single_table(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        report = make_coordinator(schema_dict, _config(output_dir, table="jobs")).execute()

        assert report.success
        assert [r.class_name for r in report.results] == ["Job"]
        index = _read(output_dir, "index.ts")
        assert "import { Job } from './job';" in index
        assert "Client }" not in index

    def test_exclude_tables(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        cfg = _config(output_dir, exclude_tables="activity_logs, tasks")
        report = make_coordinator(schema_dict, cfg).execute()

        assert [r.table_name for r in report.results] == ["clients", "jobs"]
        assert not (output_dir / "task.ts").exists()


# ===========================================================================
# Loggable registry
# ===========================================================================


class TestLoggableModels:
    def test_declared_capability_wins(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        config: GenerationConfig,
    ) -> None:
        jobs = next(t for t in schema_dict["tables"] if t["name"] == "jobs")
        jobs.pop("capabilities")
        report = make_coordinator(schema_dict, config).execute()
        assert report.loggable_models == ["Client"]

    def test_fallback_when_nothing_declares_it(
        self,
        make_coordinator: MakeCoordinator,
        clients_jobs_schema: Dict[str, Any],
        config: GenerationConfig,
    ) -> None:
        report = make_coordinator(clients_jobs_schema, config).execute()
        assert report.loggable_models == ["Client", "Job"]

    def test_fallback_filtered_to_schema_models(
        self,
        make_coordinator: MakeCoordinator,
        minimal_schema_dict: Dict[str, Any],
        config: GenerationConfig,
        output_dir: pathlib.Path,
    ) -> None:
        report = make_coordinator(minimal_schema_dict, config).execute()

        assert report.success
        assert report.loggable_models == []
        body = _read(output_dir, "generated-loggable-config.ts")
        assert "export const LOGGABLE_MODELS = {\n} as const;" in body

    def test_single_table_run_keeps_full_registry(
        self,
        make_coordinator: MakeCoordinator,
        schema_dict: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        make_coordinator(schema_dict, _config(output_dir)).execute()
        report = make_coordinator(schema_dict, _config(output_dir, table="jobs")).execute()

        assert report.success
        assert report.loggable_models == ["Client", "Job"]
        body = _read(output_dir, "generated-loggable-config.ts")
        assert "  'clients': { modelName: 'Client', includesLoggable: true }," in body
        assert "  'jobs': { modelName: 'Job', includesLoggable: true }," in body

    def test_custom_fallback(
        self,
        make_coordinator: MakeCoordinator,
        clients_jobs_schema: Dict[str, Any],
        output_dir: pathlib.Path,
    ) -> None:
        cfg = _config(output_dir, loggable_fallback="Job")
        report = make_coordinator(clients_jobs_schema, cfg).execute()
        assert report.loggable_models == ["Job"]


# ===========================================================================
# RunStatistics
# ===========================================================================


class TestRunStatistics:
    def test_empty_run(self) -> None:
        stats = RunStatistics()
        assert stats.success_rate == 100.0
        assert stats.throughput == 0.0

    def test_to_dict(self) -> None:
        stats = RunStatistics(
            tables_processed=3,
            models_generated=2,
            tables_skipped=1,
            execution_time=0.5,
        )
        data = stats.to_dict()
        assert data["success_rate"] == 66.7
        assert data["execution_time"] == 0.5
        assert stats.throughput == 4.0
