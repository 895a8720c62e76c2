"""
tests/test_relationships.py
Unit tests for modelgen.relationships and modelgen.polymorphic.

Tests cover:
- Import generation (self-references, mutual references, unknown targets)
- Payload exclusions, documentation lines and registration calls
- ``through`` associations
- Polymorphic candidate discovery and column synthesis
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from modelgen.exceptions import ModelGenerationError
from modelgen.introspector import DictSchemaSource, SchemaIntrospector
from modelgen.models import SchemaSnapshot
from modelgen.polymorphic import PolymorphicModelAnalyzer, allowed_type_key
from modelgen.relationships import RelationshipProcessor, data_module_for


def _snapshot(tables: List[Dict[str, Any]]) -> SchemaSnapshot:
    return SchemaIntrospector(DictSchemaSource({"tables": tables})).extract()


def _process(snapshot: SchemaSnapshot, table: str):
    return RelationshipProcessor(
        snapshot.relationships_for(table), table, snapshot
    ).process()


def _id() -> Dict[str, Any]:
    return {"name": "id", "type": "bigint", "null": False, "primary_key": True}


# ===========================================================================
# RelationshipProcessor
# ===========================================================================


class TestRelationshipImports:
    def test_data_module_for(self) -> None:
        assert data_module_for("ScheduledDateTime") == "./scheduled-date-time-data"
        assert data_module_for("Job") == "./job-data"

    def test_self_reference_does_not_import_itself(self) -> None:
        snap = _snapshot([
            {
                "name": "tasks",
                "columns": [_id(), {"name": "parent_id", "type": "bigint"}],
                "belongs_to": [{"name": "parent", "target_table": "tasks"}],
                "has_many": [
                    {"name": "subtasks", "target_table": "tasks", "foreign_key": "parent_id"}
                ],
            }
        ])
        processed = _process(snap, "tasks")

        assert processed.imports == ()
        types = {p.name: p.ts_type for p in processed.properties}
        assert types == {"parent": "TaskType", "subtasks": "TaskType[]"}
        assert all(p.self_reference for p in processed.properties)
        assert any("(self-reference)" in line for line in processed.documentation)

    def test_mutual_references_import_each_other_once(
        self, clients_jobs_schema: Dict[str, Any]
    ) -> None:
        snap = SchemaIntrospector(DictSchemaSource(clients_jobs_schema)).extract()

        client = _process(snap, "clients")
        job = _process(snap, "jobs")

        assert client.imports == ("import type { JobType } from './job-data';",)
        assert job.imports == ("import type { ClientType } from './client-data';",)

    def test_unknown_target_is_typed_any_without_import(self) -> None:
        snap = _snapshot([
            {
                "name": "jobs",
                "columns": [_id(), {"name": "region_id", "type": "bigint"}],
                "belongs_to": ["region"],
            }
        ])
        processed = _process(snap, "jobs")

        assert processed.imports == ()
        assert processed.properties[0].ts_type == "any"
        assert processed.properties[0].target_class is None
        assert "(not generated)" in processed.documentation[0]

    def test_imports_are_sorted_and_unique(self) -> None:
        snap = _snapshot([
            {
                "name": "jobs",
                "columns": [_id(), {"name": "client_id", "type": "bigint"}],
                "belongs_to": ["client"],
                "has_many": ["tasks", {"name": "open_tasks", "target_table": "tasks"}],
            },
            {"name": "clients", "columns": [_id()]},
            {"name": "tasks", "columns": [_id(), {"name": "job_id", "type": "bigint"}]},
        ])
        processed = _process(snap, "jobs")
        assert processed.imports == (
            "import type { ClientType } from './client-data';",
            "import type { TaskType } from './task-data';",
        )


class TestRelationshipMetadata:
    def test_exclusions_are_property_names(self, snapshot: SchemaSnapshot) -> None:
        processed = _process(snapshot, "jobs")
        assert processed.exclusions == ("client", "activityLogs", "tasks")

    def test_registration_call(self, snapshot: SchemaSnapshot) -> None:
        processed = _process(snapshot, "jobs")
        assert processed.registration.startswith("registerModelRelationships('jobs', {")
        assert "  client: { type: 'belongsTo', model: 'Client' }," in processed.registration
        assert "  tasks: { type: 'hasMany', model: 'Task' }," in processed.registration
        assert processed.registration.endswith("});")

    def test_no_relationships_means_no_registration(self) -> None:
        snap = _snapshot([{"name": "items", "columns": [_id()]}])
        processed = _process(snap, "items")
        assert processed.registration == ""
        assert processed.properties == ()

    def test_polymorphic_belongs_to_is_documented_only(self, snapshot: SchemaSnapshot) -> None:
        processed = _process(snapshot, "activity_logs")
        assert processed.properties == ()
        assert processed.exclusions == ()
        assert processed.documentation == (
            " * - loggable: belongs_to (polymorphic, loggable_type/loggable_id)",
        )


class TestThroughAssociations:
    def _tables(self, through: str) -> List[Dict[str, Any]]:
        return [
            {
                "name": "jobs",
                "columns": [_id()],
                "has_many": [
                    "job_people",
                    {"name": "people", "through": through},
                ],
            },
            {
                "name": "job_people",
                "columns": [
                    _id(),
                    {"name": "job_id", "type": "bigint"},
                    {"name": "person_id", "type": "bigint"},
                ],
                "belongs_to": ["job", "person"],
            },
            {"name": "people", "columns": [_id()]},
        ]

    def test_through_imports_join_and_target(self) -> None:
        processed = _process(_snapshot(self._tables("job_people")), "jobs")

        assert "import type { JobPersonType } from './job-person-data';" in processed.imports
        assert "import type { PersonType } from './person-data';" in processed.imports
        assert "  people: { type: 'hasMany', model: 'Person', through: 'jobPeople' }," in (
            processed.registration
        )

    def test_unknown_through_raises(self) -> None:
        snap = _snapshot(self._tables("assignments"))
        with pytest.raises(ModelGenerationError) as excinfo:
            _process(snap, "jobs")
        assert excinfo.value.table_name == "jobs"
        assert "assignments" in str(excinfo.value)


# ===========================================================================
# PolymorphicModelAnalyzer
# ===========================================================================


class TestPolymorphicAnalyzer:
    def _tables(self) -> List[Dict[str, Any]]:
        def declarer(name: str) -> Dict[str, Any]:
            return {
                "name": name,
                "columns": [_id()],
                "has_many": [{"name": "items", "as": "owner"}],
            }

        return [
            declarer("alphas"),
            declarer("betas"),
            declarer("gammas"),
            {
                "name": "items",
                "columns": [_id()],
                "belongs_to": [{"name": "owner", "polymorphic": True}],
            },
        ]

    def test_every_declarer_is_a_candidate(self) -> None:
        analyzer = PolymorphicModelAnalyzer(_snapshot(self._tables()))
        associations = analyzer.associations_for_table("items")

        assert len(associations) == 1
        assoc = associations[0]
        assert assoc.name == "owner"
        assert assoc.type_field == "owner_type"
        assert assoc.id_field == "owner_id"
        assert assoc.allowed_types == ("Alpha", "Beta", "Gamma")

    def test_declared_allowed_types_are_merged_and_deduplicated(self) -> None:
        tables = self._tables()
        tables[-1]["belongs_to"][0]["allowed_types"] = ["Delta", "Alpha"]
        analyzer = PolymorphicModelAnalyzer(_snapshot(tables))

        assoc = analyzer.associations_for_table("items")[0]
        assert assoc.allowed_types == ("Alpha", "Beta", "Delta", "Gamma")

    def test_association_without_candidates_is_dropped(self) -> None:
        snap = _snapshot([
            {
                "name": "items",
                "columns": [_id()],
                "belongs_to": [{"name": "owner", "polymorphic": True}],
            }
        ])
        assert PolymorphicModelAnalyzer(snap).associations_for_table("items") == []

    def test_interfaces_listing(self) -> None:
        analyzer = PolymorphicModelAnalyzer(_snapshot(self._tables()))
        assert analyzer.interfaces() == {"items.owner": ["Alpha", "Beta", "Gamma"]}

    def test_missing_columns_are_synthesized(self) -> None:
        snap = _snapshot(self._tables())
        table = snap.table("items")
        assert table is not None

        synthesized = PolymorphicModelAnalyzer(snap).synthesize_columns(table)
        assert synthesized.column_names == ["id", "owner_type", "owner_id"]
        assert synthesized.column("owner_type").type == "string"
        assert synthesized.column("owner_id").type == "bigint"
        # The snapshot itself is untouched.
        assert table.column_names == ["id"]

    def test_existing_columns_are_kept(self, snapshot: SchemaSnapshot) -> None:
        table = snapshot.table("activity_logs")
        assert table is not None
        assert PolymorphicModelAnalyzer(snapshot).synthesize_columns(table) is table

    @pytest.mark.parametrize(
        "class_name, key",
        [("Job", "job"), ("ScheduledDateTime", "scheduleddatetime"), ("ActivityLog", "activitylog")],
    )
    def test_allowed_type_key(self, class_name: str, key: str) -> None:
        assert allowed_type_key(class_name) == key
