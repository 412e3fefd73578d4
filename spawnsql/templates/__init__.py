"""
SQL template rendering.

Migration scripts are Jinja2 templates. Components are included from a
``ComponentSource`` (live folder or pinned snapshot) and every output
expression is formatted as SQL.
"""

from .sources import ComponentSource, LiveComponentSource, PinnedComponentSource, normalize_name
from .loader import ComponentLoader
from .security import SandboxPolicy, TemplateSandbox, gen_uuid_v4, gen_uuid_v5
from .engine import TemplateRenderer, create_template_context, translate_template_errors

__all__ = [
    "ComponentSource",
    "LiveComponentSource",
    "PinnedComponentSource",
    "normalize_name",
    "ComponentLoader",
    "SandboxPolicy",
    "TemplateSandbox",
    "gen_uuid_v4",
    "gen_uuid_v5",
    "TemplateRenderer",
    "create_template_context",
    "translate_template_errors",
]
