# File: modelgen/exceptions.py
"""
NexaFlow ModelGen - Error Taxonomy
===================================

Exception hierarchy::

    ModelGenError (base)
    ├── GenerationError
    │   ├── SchemaExtractionError       fatal, aborts the run
    │   ├── ServiceInitializationError  fatal, aborts the run
    │   └── ModelGenerationError        per table, recorded and skipped
    ├── TemplateError
    │   ├── TemplateNotFoundError
    │   └── TemplateRenderingError
    └── FileOperationError

Only ``SchemaExtractionError`` and ``ServiceInitializationError`` are
allowed to unwind past the coordinator.  Everything raised while a single
table is processed is converted into a failed ``GenerationResult``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.exceptions")


class ModelGenError(Exception):
    """
    Base exception for all generator errors.

    Attributes:
        message: Human-readable error message.
        context: Extra key/value detail (table name, template, path, ...).
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message: str = message
        self.context: Dict[str, Any] = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        context_str: str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({context_str})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Generation errors
# ---------------------------------------------------------------------------


class GenerationError(ModelGenError):
    """Raised by the coordinator and its stages."""


class SchemaExtractionError(GenerationError):
    """The schema source is unreachable, malformed or timed out."""


class ServiceInitializationError(GenerationError):
    """A pipeline service (renderer, file manager, ...) could not start."""


class ModelGenerationError(GenerationError):
    """A single table failed to generate."""

    def __init__(
        self,
        table_name: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.table_name: str = table_name
        ctx: Dict[str, Any] = {"table": table_name}
        ctx.update(context or {})
        super().__init__(message, ctx)


# ---------------------------------------------------------------------------
# Template errors
# ---------------------------------------------------------------------------


class TemplateError(ModelGenError):
    """Base class for template lookup and rendering failures."""


class TemplateNotFoundError(TemplateError):
    """The named template does not exist in the template directory."""


class TemplateRenderingError(TemplateError):
    """A template failed to compile or referenced an undefined variable."""


# ---------------------------------------------------------------------------
# File errors
# ---------------------------------------------------------------------------


class FileOperationError(ModelGenError):
    """Reading, formatting or writing a generated file failed."""


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ModelGenError",
    "GenerationError",
    "SchemaExtractionError",
    "ServiceInitializationError",
    "ModelGenerationError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRenderingError",
    "FileOperationError",
]

logger.debug("modelgen.exceptions loaded.")
