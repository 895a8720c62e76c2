# File: modelgen/templates.py
"""
NexaFlow ModelGen - Template Renderer
======================================
Renders the TypeScript model files from Jinja2 templates shipped in
``modelgen/ts_templates``.

The renderer receives explicit context dicts.  Templates never read the
clock or any process state, so the same ``(name, context)`` pair always
produces the same bytes.

**Thread-safety:**
    Parsed templates are cached by name behind a lock.  Jinja2 templates
    are safe to render concurrently once compiled.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from modelgen.exceptions import TemplateNotFoundError, TemplateRenderingError
from modelgen.utils import (
    single_line,
    to_camel_case,
    to_kebab_case,
    to_pascal_case,
    to_snake_case,
    ts_string,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("modelgen.templates")

TEMPLATE_SUFFIX: str = ".ts.j2"
DEFAULT_TEMPLATE_DIR: Path = Path(__file__).resolve().parent / "ts_templates"

# Template names used by the pipeline.
DATA_TEMPLATE: str = "data_interface.ts.j2"
ACTIVE_TEMPLATE: str = "active_model.ts.j2"
REACTIVE_TEMPLATE: str = "reactive_model.ts.j2"
INDEX_TEMPLATE: str = "index.ts.j2"
LOGGABLE_TEMPLATE: str = "loggable_config.ts.j2"


def create_environment(template_dir: Path) -> Environment:
    """Jinja2 environment with the TypeScript naming filters."""
    env = Environment(
        loader=FileSystemLoader(str(template_dir)),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )

    env.filters["camel"] = to_camel_case
    env.filters["pascal"] = to_pascal_case
    env.filters["kebab"] = lambda value: to_kebab_case(to_snake_case(value))
    env.filters["quote"] = ts_string
    env.filters["one_line"] = single_line

    return env


class TemplateRenderer:
    """
    Caching Jinja2 renderer.

    Args:
        template_dir: Directory holding ``*.ts.j2`` templates.  Defaults to
            the templates packaged with ``modelgen``.
    """

    def __init__(self, template_dir: Optional[Path] = None) -> None:
        self._template_dir: Path = Path(template_dir or DEFAULT_TEMPLATE_DIR)
        self._env: Environment = create_environment(self._template_dir)
        self._cache: Dict[str, Template] = {}
        self._lock: threading.Lock = threading.Lock()

        # Stats
        self.renders: int = 0
        self.cache_hits: int = 0
        self.cache_misses: int = 0
        self.total_time: float = 0.0

        logger.debug("TemplateRenderer initialised (dir=%s).", self._template_dir)

    @property
    def template_dir(self) -> Path:
        return self._template_dir

    # -----------------------------------------------------------------
    # Public
    # -----------------------------------------------------------------

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        """
        Render template *name* with *context*.

        Raises:
            TemplateNotFoundError: The template does not exist.
            TemplateRenderingError: Syntax error or undefined variable.
        """
        template: Template = self._get_template(name)
        start: float = time.perf_counter()
        try:
            body: str = template.render(**context)
        except UndefinedError as exc:
            raise TemplateRenderingError(
                f"Template '{name}' references an undefined value: {exc}",
                {"template": name},
            ) from exc
        except TemplateSyntaxError as exc:
            raise TemplateRenderingError(
                f"Template '{name}' has a syntax error: {exc}",
                {"template": name, "line": exc.lineno},
            ) from exc
        elapsed: float = time.perf_counter() - start

        with self._lock:
            self.renders += 1
            self.total_time += elapsed
        return body

    def available_templates(self) -> List[str]:
        """Sorted names of all templates in the template directory."""
        return sorted(
            name for name in self._env.list_templates()
            if name.endswith(TEMPLATE_SUFFIX)
        )

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "renders": self.renders,
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "total_time": round(self.total_time, 4),
            }

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _get_template(self, name: str) -> Template:
        with self._lock:
            cached: Optional[Template] = self._cache.get(name)
            if cached is not None:
                self.cache_hits += 1
                return cached
            self.cache_misses += 1

            try:
                template: Template = self._env.get_template(name)
            except TemplateNotFound as exc:
                raise TemplateNotFoundError(
                    f"Template '{name}' not found",
                    {"template_dir": str(self._template_dir)},
                ) from exc
            except TemplateSyntaxError as exc:
                raise TemplateRenderingError(
                    f"Template '{name}' has a syntax error: {exc.message}",
                    {"template": name, "line": exc.lineno},
                ) from exc

            self._cache[name] = template
            logger.debug("Compiled template '%s'.", name)
            return template


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DEFAULT_TEMPLATE_DIR",
    "DATA_TEMPLATE",
    "ACTIVE_TEMPLATE",
    "REACTIVE_TEMPLATE",
    "INDEX_TEMPLATE",
    "LOGGABLE_TEMPLATE",
    "TemplateRenderer",
    "create_environment",
]

logger.debug("modelgen.templates loaded.")
