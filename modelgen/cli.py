# File: modelgen/cli.py
"""
NexaFlow ModelGen - Command-Line Interface
===========================================

Built with the standard-library ``argparse`` module.

Usage examples::

    # Generate every model from a schema file
    python -m modelgen generate --schema schema.yaml

    # Preview a single table without touching the disk
    python -m modelgen generate -s schema.yaml --table jobs --dry-run

    # Reflect a live database, add associations from an overlay
    python -m modelgen generate --database-url postgresql://localhost/app \\
        --overlay associations.yaml --output-dir frontend/src/lib/models

    # Validate only (no file output)
    python -m modelgen validate -s schema.yaml

Exit codes:
    0 — success
    1 — validation error
    2 — generation error (at least one table failed)
    3 — schema extraction or service initialisation failure
    4 — input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, NoReturn, Optional, Sequence

import yaml
from pydantic import ValidationError as PydanticValidationError

from modelgen.exceptions import SchemaExtractionError, ServiceInitializationError

if TYPE_CHECKING:
    from modelgen.introspector import SchemaSource
    from modelgen.models import GenerationConfig

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_SCHEMA_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root modelgen logger based on verbosity level.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("modelgen")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Schema source, config file and verbosity: shared by all commands."""
    source_group = parser.add_argument_group("schema source")
    source = source_group.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "-s", "--schema",
        type=str,
        metavar="PATH",
        help="Schema description file (YAML or JSON).",
    )
    source.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Reflect a live database (SQLAlchemy URL).",
    )
    source_group.add_argument(
        "--overlay",
        type=str,
        default=None,
        metavar="PATH",
        help="YAML/JSON overlay merged over a reflected database schema.",
    )
    source_group.add_argument(
        "--db-schema",
        type=str,
        default=None,
        metavar="NAME",
        help="Database schema (namespace) to reflect.",
    )
    source_group.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="YAML file with generation options; command-line flags win.",
    )
    source_group.add_argument(
        "--schema-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up on schema extraction after this long (default: 30).",
    )

    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except the final report.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from modelgen import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="modelgen",
        description=(
            "NexaFlow ModelGen — schema-driven TypeScript model generator.\n\n"
            "Turns a relational schema into typed data interfaces, active "
            "and reactive model classes, an index and a loggable registry."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s generate -s schema.yaml\n"
            "  %(prog)s generate -s schema.yaml --table jobs --dry-run\n"
            "  %(prog)s validate -s schema.yaml\n"
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"NexaFlow ModelGen v{__version__}",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    # --- generate ---
    generate = commands.add_parser(
        "generate",
        help="Generate model files.",
        description="Generate data interfaces, active and reactive models.",
    )
    _add_common_arguments(generate)

    output_group = generate.add_argument_group("output")
    output_group.add_argument(
        "-o", "--output-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Directory receiving the models (default: frontend/src/lib/models).",
    )
    output_group.add_argument(
        "--table",
        type=str,
        default=None,
        metavar="NAME",
        help="Generate only this table.",
    )
    output_group.add_argument(
        "--exclude-tables",
        type=str,
        default=None,
        metavar="A,B",
        help="Comma-separated tables to skip.",
    )
    output_group.add_argument(
        "--template-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Use *.ts.j2 templates from this directory.",
    )

    mode_group = generate.add_argument_group("operation modes")
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Run every stage but only report what would be written.",
    )
    mode_group.add_argument(
        "--force",
        action="store_true",
        default=None,
        help="Rewrite files even when their content is unchanged.",
    )
    mode_group.add_argument(
        "--allow-partial",
        action="store_true",
        default=None,
        help="Exit 0 even when some tables failed.",
    )
    mode_group.add_argument(
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Tables generated in parallel (default: 4).",
    )

    format_group = generate.add_argument_group("formatting")
    format_group.add_argument(
        "--formatter",
        type=str,
        default=None,
        metavar="CMD",
        help="Formatter command run once over the batch (e.g. 'npx prettier --write').",
    )
    format_group.add_argument(
        "--skip-format",
        action="store_true",
        default=None,
        help="Do not run any formatter.",
    )

    # --- validate ---
    validate = commands.add_parser(
        "validate",
        help="Check the schema without generating anything.",
        description="Extract the schema and report validation findings.",
    )
    _add_common_arguments(validate)

    return parser


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Read generation options from a YAML file.

    Raises:
        ValueError: Unreadable file, invalid YAML or not a mapping.
    """
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValueError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a mapping at top level of {path}, got {type(data).__name__}."
        )
    return data


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, object]:
    """Build a config override dictionary from CLI arguments."""
    overrides: Dict[str, object] = {}
    mapping: Dict[str, str] = {
        "output_dir": "output_dir",
        "table": "table",
        "exclude_tables": "exclude_tables",
        "template_dir": "template_dir",
        "dry_run": "dry_run",
        "force": "force",
        "workers": "workers",
        "formatter": "formatter_command",
        "skip_format": "skip_format",
        "schema_timeout": "schema_timeout",
    }
    for arg_name, field_name in mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            overrides[field_name] = value

    if getattr(args, "allow_partial", None):
        overrides["fail_on_partial"] = False

    return overrides


def _build_config(args: argparse.Namespace) -> GenerationConfig:
    from modelgen.models import GenerationConfig

    options: Dict[str, Any] = {}
    if args.config:
        options.update(load_config_file(Path(args.config)))
    options.update(_build_config_overrides(args))
    return GenerationConfig.model_validate(options)


def _build_source(args: argparse.Namespace) -> SchemaSource:
    from modelgen.introspector import DatabaseSchemaSource, FileSchemaSource

    if args.schema:
        schema_path: Path = Path(args.schema).resolve()
        if not schema_path.is_file():
            raise ValueError(f"Schema file not found: {schema_path}")
        return FileSchemaSource(schema_path)

    overlay: Optional[Path] = None
    if args.overlay:
        overlay = Path(args.overlay).resolve()
        if not overlay.is_file():
            raise ValueError(f"Overlay file not found: {overlay}")
    return DatabaseSchemaSource(
        args.database_url,
        overlay_path=overlay,
        schema=args.db_schema,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _run_validate(args: argparse.Namespace) -> int:
    """Extract and validate only.  Returns the exit code."""
    from modelgen.generator import GenerationCoordinator
    from modelgen.utils import Timer
    from modelgen.validators import validate_snapshot

    try:
        config = _build_config(args)
        source = _build_source(args)
    except (ValueError, PydanticValidationError) as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    coordinator = GenerationCoordinator(config, source)
    with Timer("validation") as t:
        try:
            snapshot = coordinator.extract_schema()
        except SchemaExtractionError as exc:
            logger.error("Schema extraction failed: %s", exc)
            return EXIT_SCHEMA_ERROR
        result = validate_snapshot(snapshot)

    print(f"\n{'='*50}")
    print("  Schema Validation Report")
    print(f"{'='*50}")
    print(f"  Source:   {source.description}")
    print(f"  Tables:   {len(snapshot.tables)}")
    print(f"  Excluded: {len(snapshot.excluded_tables)}")
    print(f"  Time:     {t.elapsed:.3f}s")
    print(f"  Valid:    {'Yes' if result.is_valid else 'No'}")

    if result.errors:
        print(f"\n  Errors ({len(result.errors)}):")
        for err in result.errors:
            print(f"    ✗ {err.message}")

    if result.warnings:
        print(f"\n  Warnings ({len(result.warnings)}):")
        for warn in result.warnings:
            print(f"    ⚠ {warn.message}")

    if result.is_valid and not result.warnings:
        print("\n  ✅ All validations passed!")

    print(f"{'='*50}\n")

    return EXIT_SUCCESS if result.is_valid else EXIT_VALIDATION_ERROR


def _run_generation(args: argparse.Namespace) -> int:
    """Run the full generation.  Returns the exit code."""
    from modelgen.generator import GenerationCoordinator, GenerationReport

    try:
        config = _build_config(args)
        source = _build_source(args)
    except (ValueError, PydanticValidationError) as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    logger.info("Source:  %s", source.description)
    logger.info("Output:  %s", Path(config.output_dir).resolve())

    try:
        report: GenerationReport = GenerationCoordinator(config, source).execute()
    except SchemaExtractionError as exc:
        logger.error("Schema extraction failed: %s", exc)
        return EXIT_SCHEMA_ERROR
    except ServiceInitializationError as exc:
        logger.error("Initialisation failed: %s", exc)
        return EXIT_SCHEMA_ERROR

    print(report.summary())

    if not report.success:
        return EXIT_GENERATION_ERROR
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    try:
        args: argparse.Namespace = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse exits with 2 on bad usage; keep 0 for --help/--version.
        sys.exit(EXIT_SUCCESS if exc.code in (0, None) else EXIT_INPUT_ERROR)

    if args.quiet:
        verbosity: int = -1
        logging.disable(logging.CRITICAL)
    else:
        verbosity = args.verbose

    _setup_logging(verbosity)

    if args.command == "validate":
        exit_code: int = _run_validate(args)
    else:
        exit_code = _run_generation(args)

    if exit_code == EXIT_SUCCESS:
        logger.info("%s completed successfully.", args.command.capitalize())
    else:
        logger.error("%s failed with exit code %d.", args.command.capitalize(), exit_code)

    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "load_config_file",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_SCHEMA_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("modelgen.cli loaded.")
