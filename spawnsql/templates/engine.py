"""
Template Engine - renders migration scripts into SQL.

Provides:
- Component includes resolved through a live or pinned ComponentSource
- SQL value formatting for every output expression
- Materialized (``render``) or lazily streamed (``stream``) output
- Uniform fault reporting for missing templates, fragments and render errors
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

import yaml
from jinja2 import Template, TemplateError, TemplateNotFound, TemplateSyntaxError

from ..faults import Fault, FragmentNotFoundFault, RenderFault, TemplateNotFoundFault
from .loader import ComponentLoader
from .security import SandboxPolicy, TemplateSandbox, create_sql_filters, create_sql_globals
from .sources import ComponentSource

logger = logging.getLogger("spawnsql.templates.engine")


def create_template_context(
    environment: str,
    variables: Any = None,
) -> Dict[str, Any]:
    """Context every migration script sees: ``env`` and ``variables``."""
    return {
        "env": environment,
        "variables": {} if variables is None else variables,
    }


@contextmanager
def translate_template_errors(name: str):
    """Re-raise jinja2 and parser errors as template faults naming *name*."""
    try:
        yield
    except Fault:
        raise
    except TemplateNotFound as exc:
        raise FragmentNotFoundFault(exc.name or str(exc), template=name) from exc
    except TemplateSyntaxError as exc:
        where = exc.name or name
        raise RenderFault(where, f"line {exc.lineno}: {exc.message}") from exc
    except TemplateError as exc:
        raise RenderFault(name, str(exc)) from exc
    except (ValueError, TypeError, LookupError, OSError, yaml.YAMLError) as exc:
        raise RenderFault(name, f"{type(exc).__name__}: {exc}") from exc


class TemplateRenderer:
    """
    Sandboxed Jinja2 renderer for SQL migration scripts.

    Args:
        source: Component source used for includes and ``read_file``
        environment: Value exposed to templates as ``env``
        policy: Sandbox policy (dialect and allowlists)
        filters: Extra filters
        globals: Extra globals

    Example:
        renderer = TemplateRenderer(LiveComponentSource("spawn/components"))
        sql = renderer.render("spawn/migrations/20240101000000-init/up.sql",
                              {"table_name": "users"})
    """

    def __init__(
        self,
        source: ComponentSource,
        *,
        environment: str = "dev",
        policy: Optional[SandboxPolicy] = None,
        filters: Optional[Dict[str, Callable]] = None,
        globals: Optional[Dict[str, Any]] = None,
    ):
        self.source = source
        self.environment = environment
        self._sandbox = TemplateSandbox(policy=policy)

        for name, func in create_sql_filters(source).items():
            self._sandbox.register_filter(name, func)
        for name, value in create_sql_globals().items():
            self._sandbox.register_global(name, value)

        for name, func in (filters or {}).items():
            self._sandbox.register_filter(name, func)
        for name, value in (globals or {}).items():
            self._sandbox.register_global(name, value)

        self.env = self._sandbox.create_environment(loader=ComponentLoader(source))

    # ── Loading ──────────────────────────────────────────────────────

    def load_script(self, script_path: str | Path) -> str:
        """
        Read a root script from disk.

        Raises:
            TemplateNotFoundFault: If the script does not exist.
        """
        path = Path(script_path)
        try:
            return path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise TemplateNotFoundFault(str(path)) from exc

    def compile(self, text: str, name: str = "<string>") -> Template:
        with translate_template_errors(name):
            return self.env.from_string(text)

    # ── Rendering ────────────────────────────────────────────────────

    def render(
        self,
        script_path: str | Path,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Render the script at *script_path* to a string.

        Raises:
            TemplateNotFoundFault: Root script missing
            FragmentNotFoundFault: An included component is missing
            RenderFault: Syntax or evaluation failure
            InvalidValueFault: An expression has no SQL form
        """
        name = str(script_path)
        return self.render_string(self.load_script(script_path), variables, name=name)

    def render_string(
        self,
        text: str,
        variables: Optional[Mapping[str, Any]] = None,
        *,
        name: str = "<string>",
    ) -> str:
        template = self.compile(text, name)
        context = create_template_context(self.environment, variables)
        with translate_template_errors(name):
            rendered = template.render(context)
        logger.debug("Rendered %s (%d chars)", name, len(rendered))
        return rendered

    def render_bytes(
        self,
        script_path: str | Path,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> bytes:
        return self.render(script_path, variables).encode("utf-8")

    def stream(
        self,
        script_path: str | Path,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[bytes]:
        """
        Render lazily, yielding encoded chunks as the template produces them.

        Errors surface while iterating, possibly after earlier chunks were
        yielded; use :meth:`render` when nothing may be emitted on failure.
        """
        name = str(script_path)
        template = self.compile(self.load_script(script_path), name)
        context = create_template_context(self.environment, variables)
        with translate_template_errors(name):
            for chunk in template.generate(context):
                yield chunk.encode("utf-8")

    # ── Registration ─────────────────────────────────────────────────

    def register_filter(self, name: str, func: Callable) -> None:
        self._sandbox.register_filter(name, func)
        self.env.filters[name] = func

    def register_global(self, name: str, value: Any) -> None:
        self._sandbox.register_global(name, value)
        self.env.globals[name] = value
