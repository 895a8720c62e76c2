"""
tests/conftest.py
Shared fixtures for the modelgen test suite.

All fixtures are session-scoped or function-scoped as appropriate.
No external mocking libraries are used; real file I/O is performed
inside temporary directories managed by pytest's tmp_path fixtures.
"""

from __future__ import annotations

import copy
import logging
import pathlib
from typing import Any, Callable, Dict, Iterator

import pytest
import yaml

from modelgen.generator import GenerationCoordinator
from modelgen.introspector import DictSchemaSource, SchemaIntrospector
from modelgen.models import GenerationConfig, SchemaSnapshot


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"


# ---------------------------------------------------------------------------
# Raw schema data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_schema_dict() -> Dict[str, Any]:
    """Load the reference schema_example.yaml once per session and return as dict."""
    assert SCHEMA_EXAMPLE_PATH.exists(), (
        f"Reference schema not found at {SCHEMA_EXAMPLE_PATH}. "
        "Make sure schema_example.yaml is in the project root."
    )
    with open(SCHEMA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data


@pytest.fixture()
def schema_dict(raw_schema_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_schema_dict)


@pytest.fixture()
def schema_yaml_path(schema_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    """Write the schema dict to a temporary YAML file and return its path."""
    path = tmp_path / "schema.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(schema_dict, fh, default_flow_style=False, allow_unicode=True)
    return path


@pytest.fixture()
def snapshot(schema_dict: Dict[str, Any]) -> SchemaSnapshot:
    """Snapshot of the reference schema."""
    return SchemaIntrospector(DictSchemaSource(schema_dict)).extract()


# ---------------------------------------------------------------------------
# Minimal / edge-case schema fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clients_jobs_schema() -> Dict[str, Any]:
    """Two tables: clients has_many jobs, jobs belongs_to client."""
    return {
        "tables": [
            {
                "name": "clients",
                "columns": [
                    {"name": "id", "type": "bigint", "null": False, "primary_key": True},
                    {"name": "name", "type": "string", "null": False},
                    {
                        "name": "client_type",
                        "type": "string",
                        "null": False,
                        "enum_values": ["residential", "business"],
                    },
                ],
                "has_many": ["jobs"],
            },
            {
                "name": "jobs",
                "columns": [
                    {"name": "id", "type": "bigint", "null": False, "primary_key": True},
                    {"name": "title", "type": "string"},
                    {"name": "client_id", "type": "bigint"},
                ],
                "belongs_to": ["client"],
            },
        ],
    }


@pytest.fixture()
def minimal_schema_dict() -> Dict[str, Any]:
    """Smallest valid schema: one table, one primary-key column, no associations."""
    return {
        "tables": [
            {
                "name": "items",
                "columns": [
                    {"name": "id", "type": "integer", "null": False, "primary_key": True},
                ],
            }
        ],
    }


# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def output_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """Not created up front: the generator creates it on first write."""
    return tmp_path / "models"


@pytest.fixture()
def config(output_dir: pathlib.Path) -> GenerationConfig:
    """Formatter disabled so no test shells out to npx."""
    return GenerationConfig(output_dir=output_dir, skip_format=True, workers=2)


@pytest.fixture()
def make_coordinator() -> Callable[[Dict[str, Any], GenerationConfig], GenerationCoordinator]:
    """Factory: coordinator over an in-memory schema document."""

    def _make(document: Dict[str, Any], cfg: GenerationConfig) -> GenerationCoordinator:
        return GenerationCoordinator(cfg, DictSchemaSource(document, label="test-schema"))

    return _make


@pytest.fixture(autouse=True)
def _restore_modelgen_logger() -> Iterator[None]:
    """The CLI reconfigures the ``modelgen`` logger; undo it between tests."""
    root = logging.getLogger("modelgen")
    handlers = list(root.handlers)
    level = root.level
    propagate = root.propagate
    yield
    logging.disable(logging.NOTSET)
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate
