# File: modelgen/exporters.py
"""
NexaFlow ModelGen - File Manager
=================================

Buffers generated file bodies and flushes them to disk in one batch.

Responsible for:
    1. Collecting bodies from concurrent pipeline workers (lock-protected).
    2. Running an optional formatter once over the whole batch.
    3. Comparing each body with the file on disk byte for byte.
    4. Writing only changed files, atomically (write-to-temp then rename).
    5. Creating directories lazily, only when a file is actually written.

Nothing touches the output directory before ``process_batch``, so an
interrupted run leaves the disk exactly as it found it.  In dry-run mode
the comparison still happens and the would-be writes are recorded.

Formatting happens *before* the comparison: the bytes compared are the
bytes that would land on disk, which keeps reruns write-free.
"""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from modelgen.exceptions import FileOperationError
from modelgen.models import GenerationConfig
from modelgen.utils import Timer, count_lines, ensure_directory, read_bytes, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.exporters")

PRETTIER_COMMAND: Tuple[str, ...] = ("npx", "--no-install", "prettier", "--write")
PRETTIER_CONFIG_FILES: Tuple[str, ...] = (
    ".prettierrc",
    ".prettierrc.json",
    ".prettierrc.yaml",
    ".prettierrc.yml",
    ".prettierrc.js",
    ".prettierrc.cjs",
    "prettier.config.js",
    "prettier.config.cjs",
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class FileStatistics:
    """Counters accumulated over every batch of one ``FileManager``."""

    created: int = 0
    updated: int = 0
    identical: int = 0
    formatted: int = 0
    directories_created: int = 0
    errors: int = 0

    @property
    def written(self) -> int:
        return self.created + self.updated

    def to_dict(self) -> Dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "identical": self.identical,
            "formatted": self.formatted,
            "directories_created": self.directories_created,
            "errors": self.errors,
        }


@dataclass(frozen=False, slots=True)
class BatchResult:
    """
    Outcome of one ``process_batch`` call.

    All paths are relative to the output directory, in sorted order.
    """

    written: List[str] = field(default_factory=list)
    identical: List[str] = field(default_factory=list)
    would_write: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    formatted: bool = False
    total_lines: int = 0

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def paths(self) -> List[str]:
        """Every path the batch accounted for, whatever the outcome."""
        return sorted({*self.written, *self.identical, *self.would_write})


# ---------------------------------------------------------------------------
# Formatter detection
# ---------------------------------------------------------------------------


def detect_formatter(output_dir: Path) -> Optional[Tuple[str, ...]]:
    """
    Find the nearest ``package.json`` at or above *output_dir*.

    Returns the prettier command when that package lists prettier as a
    dependency, otherwise ``None``.  The search stops at the first
    ``package.json`` found.
    """
    start: Path = output_dir.resolve()
    for directory in (start, *start.parents):
        manifest: Path = directory / "package.json"
        if not manifest.is_file():
            continue

        try:
            package: Dict = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s", manifest, exc)
            return None

        deps: Dict = {
            **(package.get("dependencies") or {}),
            **(package.get("devDependencies") or {}),
        }
        if "prettier" not in deps:
            logger.debug("%s does not list prettier.", manifest)
            return None

        command: List[str] = list(PRETTIER_COMMAND)
        for name in PRETTIER_CONFIG_FILES:
            config_path: Path = directory / name
            if config_path.is_file():
                command.extend(["--config", str(config_path)])
                break
        logger.debug("Using formatter from %s: %s", manifest, " ".join(command))
        return tuple(command)

    return None


# ---------------------------------------------------------------------------
# FileManager
# ---------------------------------------------------------------------------


class FileManager:
    """
    Deferred, batched, idempotent writer for generated files.

    Usage::

        manager = FileManager(config)
        manager.write("types/client-data.ts", body)
        result = manager.process_batch()

    Thread-safety: ``write`` may be called from any number of workers.
    ``process_batch`` must only be called once they have all finished.
    """

    def __init__(self, config: GenerationConfig) -> None:
        self._output_dir: Path = Path(config.output_dir).resolve()
        self._dry_run: bool = config.dry_run
        self._force: bool = config.force
        self._formatter_timeout: float = config.formatter_timeout

        self._formatter: Optional[Tuple[str, ...]] = None
        if not config.skip_format:
            self._formatter = config.formatter_command or detect_formatter(self._output_dir)

        self._buffer: Dict[str, str] = {}
        self._lock: threading.Lock = threading.Lock()
        self.statistics: FileStatistics = FileStatistics()

        logger.debug(
            "FileManager initialised: output_dir=%s, dry_run=%s, force=%s, formatter=%s.",
            self._output_dir,
            self._dry_run,
            self._force,
            " ".join(self._formatter) if self._formatter else None,
        )

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def formatter(self) -> Optional[Tuple[str, ...]]:
        return self._formatter

    @property
    def pending(self) -> List[str]:
        with self._lock:
            return sorted(self._buffer)

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def write(self, path: str, content: str, defer: bool = True) -> Path:
        """
        Queue *content* for *path* (relative to the output directory).

        With ``defer=False`` the file goes through the same
        format/compare/write path immediately, in a batch of its own.

        Raises:
            FileOperationError: The path escapes the output directory, or
                an immediate write failed.
        """
        relative: str = self._normalise(path)
        with self._lock:
            if relative in self._buffer and self._buffer[relative] != content:
                logger.warning("Buffered content for %s replaced.", relative)
            self._buffer[relative] = content

        if not defer:
            result: BatchResult = self._flush({relative: self._take(relative)})
            if relative in result.errors:
                raise FileOperationError(
                    f"Failed to write {relative}: {result.errors[relative]}",
                    {"path": str(self._output_dir / relative)},
                )
        return self._output_dir / relative

    def process_batch(self) -> BatchResult:
        """Format, compare and write every buffered file."""
        with self._lock:
            bodies: Dict[str, str] = dict(self._buffer)
            self._buffer.clear()
        return self._flush(bodies)

    def discard(self) -> int:
        """Drop everything buffered; returns how many files were dropped."""
        with self._lock:
            dropped: int = len(self._buffer)
            self._buffer.clear()
        return dropped

    # -----------------------------------------------------------------
    # Internal: batch flush
    # -----------------------------------------------------------------

    def _take(self, relative: str) -> str:
        with self._lock:
            return self._buffer.pop(relative)

    def _flush(self, bodies: Dict[str, str]) -> BatchResult:
        result = BatchResult()
        if not bodies:
            return result

        with Timer("batch flush") as timer:
            final_bodies: Dict[str, str]
            final_bodies, result.formatted = self._format(bodies)

            for relative in sorted(final_bodies):
                body: str = final_bodies[relative]
                result.total_lines += count_lines(body)
                try:
                    self._commit(relative, body, result)
                except OSError as exc:
                    message: str = f"{type(exc).__name__}: {exc}"
                    result.errors[relative] = message
                    self.statistics.errors += 1
                    logger.error("Failed to write %s: %s", relative, message)

        logger.info(
            "Batch of %d file(s): %d %s, %d identical, %d error(s) in %.3fs.",
            len(bodies),
            len(result.would_write) if self._dry_run else len(result.written),
            "would be written" if self._dry_run else "written",
            len(result.identical),
            len(result.errors),
            timer.elapsed,
        )
        return result

    def _commit(self, relative: str, body: str, result: BatchResult) -> None:
        target: Path = self._output_dir / relative
        encoded: bytes = body.encode("utf-8")
        existing: Optional[bytes] = read_bytes(target)

        if existing == encoded and not self._force:
            result.identical.append(relative)
            self.statistics.identical += 1
            logger.debug("Identical, skipped: %s", relative)
            return

        if self._dry_run:
            result.would_write.append(relative)
            logger.info("Would write: %s", relative)
            return

        if ensure_directory(target.parent):
            self.statistics.directories_created += 1
        write_file(target, body)
        result.written.append(relative)

        if existing is None:
            self.statistics.created += 1
            logger.info("Created: %s", relative)
        else:
            self.statistics.updated += 1
            logger.info("Updated: %s", relative)

    # -----------------------------------------------------------------
    # Internal: formatting
    # -----------------------------------------------------------------

    def _format(self, bodies: Dict[str, str]) -> Tuple[Dict[str, str], bool]:
        """
        Run the formatter once over a staged copy of *bodies*.

        Any formatter failure is a warning and the unformatted bodies are
        returned unchanged.
        """
        if not self._formatter:
            return bodies, False

        with tempfile.TemporaryDirectory(prefix="modelgen-format-") as staging:
            staging_dir: Path = Path(staging)
            relatives: List[str] = sorted(bodies)
            for relative in relatives:
                staged: Path = staging_dir / relative
                staged.parent.mkdir(parents=True, exist_ok=True)
                staged.write_text(bodies[relative], encoding="utf-8")

            if not self._run_formatter(staging_dir, relatives):
                return bodies, False

            formatted: Dict[str, str] = {}
            for relative in relatives:
                try:
                    formatted[relative] = (staging_dir / relative).read_text(encoding="utf-8")
                except OSError as exc:
                    logger.warning(
                        "Formatter output for %s unreadable (%s); using unformatted bodies.",
                        relative,
                        exc,
                    )
                    return bodies, False

        self.statistics.formatted += len(formatted)
        return formatted, True

    def _run_formatter(self, staging_dir: Path, relatives: Sequence[str]) -> bool:
        command: List[str] = [*(self._formatter or ()), *relatives]
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._formatter_timeout,
                cwd=str(staging_dir),
            )
        except FileNotFoundError:
            logger.warning(
                "Formatter '%s' not found; writing unformatted files.",
                command[0],
            )
            return False
        except subprocess.TimeoutExpired:
            logger.warning(
                "Formatter timed out after %.0fs; writing unformatted files.",
                self._formatter_timeout,
            )
            return False
        except OSError as exc:
            logger.warning("Formatter could not start (%s); writing unformatted files.", exc)
            return False

        if completed.returncode != 0:
            logger.warning(
                "Formatter exited with code %d; writing unformatted files.\n%s",
                completed.returncode,
                (completed.stderr or completed.stdout).strip()[-2000:],
            )
            return False

        logger.debug("Formatted %d file(s).", len(relatives))
        return True

    # -----------------------------------------------------------------
    # Internal: paths
    # -----------------------------------------------------------------

    def _normalise(self, path: str) -> str:
        candidate: Path = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(self._output_dir)
            except ValueError as exc:
                raise FileOperationError(
                    f"Path {path} is outside the output directory",
                    {"output_dir": str(self._output_dir)},
                ) from exc
        if ".." in candidate.parts:
            raise FileOperationError(
                f"Path {path} is outside the output directory",
                {"output_dir": str(self._output_dir)},
            )
        return candidate.as_posix()


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "BatchResult",
    "FileManager",
    "FileStatistics",
    "detect_formatter",
]

logger.debug("modelgen.exporters loaded.")
