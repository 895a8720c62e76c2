"""
tests/test_validators.py
Unit tests for modelgen.validators.

Tests cover:
- Column checks (duplicates, empty tables)
- Association checks (foreign keys, targets, ``through`` chains)
- Polymorphic interface matching
- Output-name collisions
- ValidationResult aggregation and reporting
"""

from __future__ import annotations

from typing import Any, Dict, List

from modelgen.introspector import DictSchemaSource, SchemaIntrospector
from modelgen.models import SchemaSnapshot
from modelgen.validators import (
    ValidationResult,
    validate_columns,
    validate_output_names,
    validate_polymorphic,
    validate_relationships,
    validate_snapshot,
)


def _snapshot(tables: List[Dict[str, Any]]) -> SchemaSnapshot:
    return SchemaIntrospector(DictSchemaSource({"tables": tables})).extract()


def _pk() -> Dict[str, Any]:
    return {"name": "id", "type": "bigint", "null": False, "primary_key": True}


# ===========================================================================
# Full validation
# ===========================================================================


class TestValidateSnapshot:
    def test_reference_schema_is_clean(self, snapshot: SchemaSnapshot) -> None:
        result = validate_snapshot(snapshot)
        assert result.is_valid, result.format_report()
        assert len(result) == 0

    def test_errors_are_grouped_by_table(self) -> None:
        snap = _snapshot([
            {"name": "a", "columns": [_pk(), {"name": "x"}, {"name": "x"}]},
            {"name": "b", "columns": [_pk()]},
        ])
        result = validate_snapshot(snap)
        assert not result
        assert list(result.errors_by_table()) == ["a"]


# ===========================================================================
# Individual checks
# ===========================================================================


class TestValidateColumns:
    def test_duplicate_column_is_error(self) -> None:
        snap = _snapshot([{"name": "jobs", "columns": [_pk(), {"name": "title"}, {"name": "title"}]}])
        result = validate_columns(snap)
        assert result.has_errors
        assert result.codes() == {"DUPLICATE_COLUMN"}
        assert "title" in result.errors[0].message

    def test_table_without_columns_is_warning(self) -> None:
        result = validate_columns(_snapshot([{"name": "empty"}]))
        assert result.is_valid
        assert [w.code for w in result.warnings] == ["NO_COLUMNS"]


class TestValidateRelationships:
    def test_missing_foreign_key_column(self) -> None:
        snap = _snapshot([
            {"name": "jobs", "columns": [_pk()], "belongs_to": ["client"]},
            {"name": "clients", "columns": [_pk()]},
        ])
        result = validate_relationships(snap)
        assert result.is_valid
        assert [w.code for w in result.warnings] == ["MISSING_FOREIGN_KEY"]
        assert result.warnings[0].table == "jobs"

    def test_unknown_target_is_warning(self) -> None:
        snap = _snapshot([
            {
                "name": "jobs",
                "columns": [_pk(), {"name": "region_id", "type": "bigint"}],
                "belongs_to": ["region"],
            },
        ])
        result = validate_relationships(snap)
        assert result.is_valid
        assert [w.code for w in result.warnings] == ["UNKNOWN_TARGET"]

    def test_excluded_target_is_info_only(self) -> None:
        snap = _snapshot([
            {
                "name": "sessions",
                "columns": [_pk(), {"name": "token_id", "type": "bigint"}],
                "belongs_to": [{"name": "token", "target_table": "refresh_tokens"}],
            },
        ])
        result = validate_relationships(snap)
        assert result.is_valid
        assert result.warnings == []
        assert result.codes() == {"TARGET_EXCLUDED"}

    def test_unknown_through_is_error(self) -> None:
        snap = _snapshot([
            {
                "name": "jobs",
                "columns": [_pk()],
                "has_many": [{"name": "people", "through": "assignments"}],
            },
            {"name": "people", "columns": [_pk(), {"name": "job_id", "type": "bigint"}]},
        ])
        result = validate_relationships(snap)
        assert result.has_errors
        assert result.errors_by_table() == {
            "jobs": [
                "Table 'jobs': 'people' goes through 'assignments', "
                "which is not declared on the table."
            ]
        }

    def test_polymorphic_belongs_to_needs_no_target(self, snapshot: SchemaSnapshot) -> None:
        assert len(validate_relationships(snapshot)) == 0


class TestValidatePolymorphic:
    def test_unmatched_interface_is_warning(self) -> None:
        snap = _snapshot([
            {"name": "alphas", "columns": [_pk()], "has_many": [{"name": "items", "as": "owner"}]},
            {"name": "items", "columns": [_pk(), {"name": "owner_id", "type": "bigint"}]},
        ])
        result = validate_polymorphic(snap)
        assert [w.code for w in result.warnings] == ["UNMATCHED_INTERFACE"]
        assert result.warnings[0].table == "alphas"

    def test_matched_interface(self, snapshot: SchemaSnapshot) -> None:
        assert len(validate_polymorphic(snapshot)) == 0


class TestValidateOutputNames:
    def test_collision_fails_every_table_involved(self) -> None:
        snap = _snapshot([
            {"name": "person", "columns": [_pk()]},
            {"name": "people", "columns": [_pk()]},
            {"name": "jobs", "columns": [_pk()]},
        ])
        result = validate_output_names(snap)
        assert sorted(result.errors_by_table()) == ["people", "person"]
        assert all("person.ts" in e.message for e in result.errors)

    def test_class_name_override_resolves_collision(self) -> None:
        snap = _snapshot([
            {"name": "person", "class_name": "LegacyPerson", "columns": [_pk()]},
            {"name": "people", "columns": [_pk()]},
        ])
        assert validate_output_names(snap).is_valid


# ===========================================================================
# ValidationResult
# ===========================================================================


class TestValidationResult:
    def test_merge_and_summary(self) -> None:
        first = ValidationResult()
        first.add_error("E1", "broken", "a")
        second = ValidationResult()
        second.add_warning("W1", "odd", "b")
        second.add_info("I1", "fyi", "b")

        first.merge(second)
        assert len(first) == 3
        assert first.summary() == (
            "Validation: 1 error(s), 1 warning(s), 3 total item(s)."
        )
        assert first.codes() == {"E1", "W1", "I1"}

    def test_format_report(self) -> None:
        result = ValidationResult()
        result.add_error("E1", "broken", "a")
        result.add_info("I1", "fyi", "a")

        report = result.format_report()
        assert "✗ [E1] broken" in report
        assert "I1" not in report
        assert "ℹ [I1] fyi" in result.format_report(include_info=True)

    def test_context_is_kept(self) -> None:
        result = ValidationResult()
        result.add_error("DUPLICATE_COLUMN", "dup", "jobs", column="title")
        item = result.errors[0]
        assert item.table == "jobs"
        assert item.context["column"] == "title"
        assert repr(item) == "[ERROR] DUPLICATE_COLUMN: dup"
