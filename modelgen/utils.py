# File: modelgen/utils.py
"""
NexaFlow ModelGen - Utility Functions & Helpers
=================================================
String transformation, TypeScript literal helpers and file I/O utilities
used throughout the generation pipeline.

Performance strategy:
- ALL naming functions are decorated with ``@lru_cache(maxsize=None)``;
  the same table and column names are converted many times per run.
- File writes go through a temporary file and ``os.replace`` so a crash
  never leaves a half-written model behind.
"""

from __future__ import annotations

import functools
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_MULTI_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"_{2,}")
_LEADING_TRAILING_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"^_+|_+$")
_SPLIT_WORDS_RE: re.Pattern[str] = re.compile(
    r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[A-Z]|\d+"
)
_TS_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

# Irregular nouns that show up in table names
_IRREGULAR_PLURALS: Dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    "axis": "axes",
    "crisis": "crises",
    "analysis": "analyses",
    "status": "statuses",
    "address": "addresses",
    "alias": "aliases",
}
_IRREGULAR_SINGULARS: Dict[str, str] = {v: k for k, v in _IRREGULAR_PLURALS.items()}

# Words whose singular and plural forms are identical
_UNCOUNTABLE: FrozenSet[str] = frozenset({
    "data", "metadata", "information", "equipment", "series",
    "species", "news", "feedback", "settings",
})


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert any string to snake_case.

    Examples:
        >>> to_snake_case("ScheduledDateTime")
        'scheduled_date_time'
        >>> to_snake_case("already_snake")
        'already_snake'
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_ALPHANUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s)
    s = _LEADING_TRAILING_UNDERSCORE_RE.sub("", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def to_pascal_case(name: str) -> str:
    """
    Convert any string to PascalCase.

    Examples:
        >>> to_pascal_case("scheduled_date_time")
        'ScheduledDateTime'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return "".join(word.capitalize() for word in words)


@functools.lru_cache(maxsize=None)
def to_camel_case(name: str) -> str:
    """
    Convert any string to camelCase.

    Examples:
        >>> to_camel_case("parent_task")
        'parentTask'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    if not words:
        return ""
    return words[0].lower() + "".join(w.capitalize() for w in words[1:])


@functools.lru_cache(maxsize=None)
def to_kebab_case(name: str) -> str:
    """Convert any string to kebab-case (used for generated file names)."""
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return "-".join(w.lower() for w in words)


def _match_case(source: str, target: str) -> str:
    if source and source[0].isupper():
        return target[0].upper() + target[1:]
    return target


def _split_last_word(name: str) -> Tuple[str, str]:
    """Split ``job_people`` into ``("job_", "people")``."""
    idx: int = name.rfind("_")
    if idx == -1:
        return "", name
    return name[: idx + 1], name[idx + 1:]


@functools.lru_cache(maxsize=None)
def to_plural(name: str) -> str:
    """
    English pluralisation of the last word of an identifier.

    Examples:
        >>> to_plural("job_person")
        'job_people'
        >>> to_plural("activity")
        'activities'
    """
    if not name:
        return ""
    prefix, word = _split_last_word(name)
    lower: str = word.lower()

    if lower in _UNCOUNTABLE or lower in _IRREGULAR_SINGULARS:
        return name
    if lower in _IRREGULAR_PLURALS:
        return prefix + _match_case(word, _IRREGULAR_PLURALS[lower])
    if lower.endswith(("sh", "ch", "x", "z", "ss")):
        return name + "es"
    if lower.endswith("y") and len(word) > 1 and lower[-2] not in "aeiou":
        return name[:-1] + "ies"
    if lower.endswith("s"):
        return name
    return name + "s"


@functools.lru_cache(maxsize=None)
def to_singular(name: str) -> str:
    """
    English singularisation of the last word of an identifier.

    Examples:
        >>> to_singular("scheduled_date_times")
        'scheduled_date_time'
        >>> to_singular("job_people")
        'job_person'
        >>> to_singular("addresses")
        'address'
    """
    if not name:
        return ""
    prefix, word = _split_last_word(name)
    lower: str = word.lower()

    if lower in _UNCOUNTABLE or lower in _IRREGULAR_PLURALS:
        return name
    if lower in _IRREGULAR_SINGULARS:
        return prefix + _match_case(word, _IRREGULAR_SINGULARS[lower])
    if lower.endswith("ies") and len(word) > 3:
        return name[:-3] + "y"
    if lower.endswith(("sses", "shes", "ches", "xes", "zes")):
        return name[:-2]
    if lower.endswith(("ss", "us", "is")):
        return name
    if lower.endswith("s"):
        return name[:-1]
    return name


@functools.lru_cache(maxsize=None)
def _extract_words(name: str) -> Tuple[str, ...]:
    """Extract lowercase words from any casing style (hashable for the cache)."""
    cleaned: str = _NON_ALPHANUM_RE.sub(" ", name)
    words: List[str] = _SPLIT_WORDS_RE.findall(cleaned)
    return tuple(w.lower() for w in words if w)


@functools.lru_cache(maxsize=None)
def table_to_class_name(table_name: str) -> str:
    """``scheduled_date_times`` -> ``ScheduledDateTime``."""
    return to_pascal_case(to_singular(table_name))


@functools.lru_cache(maxsize=None)
def class_to_table_name(class_name: str) -> str:
    """``ScheduledDateTime`` -> ``scheduled_date_times``."""
    return to_plural(to_snake_case(class_name))


# ---------------------------------------------------------------------------
# TypeScript literal helpers
# ---------------------------------------------------------------------------


def ts_string(value: str) -> str:
    """Single-quoted TypeScript string literal with escaping."""
    escaped: str = (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f"'{escaped}'"


def ts_property_key(name: str) -> str:
    """Bare identifier when legal, quoted key otherwise."""
    if _TS_IDENTIFIER_RE.match(name):
        return name
    return ts_string(name)


def single_line(text: Optional[str]) -> str:
    """Collapse whitespace so a comment can sit on one line."""
    if not text:
        return ""
    return " ".join(text.split())


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> bool:
    """
    Create directory (and parents) if it doesn't exist.

    Returns True when the directory had to be created.
    """
    if path.is_dir():
        return False
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Created directory: %s", path)
    return True


def write_file(path: Path, content: str) -> int:
    """
    Atomically write *content* to *path*.

    Writes to a temporary file in the target directory first, then
    renames it over the destination.

    Returns the number of bytes written.
    """
    encoded: bytes = content.encode("utf-8")

    fd: int
    tmp_path: str
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, str(path))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


def read_bytes(path: Path) -> Optional[bytes]:
    """Return file bytes, or None when the file does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def count_lines(content: str) -> int:
    """Count the number of lines in a string."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling generation steps.

    Usage:
        with Timer("schema extraction") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "to_snake_case",
    "to_pascal_case",
    "to_camel_case",
    "to_kebab_case",
    "to_plural",
    "to_singular",
    "table_to_class_name",
    "class_to_table_name",
    "ts_string",
    "ts_property_key",
    "single_line",
    "ensure_directory",
    "write_file",
    "read_bytes",
    "count_lines",
    "Timer",
]

logger.debug("modelgen.utils loaded — %d public symbols.", len(__all__))
