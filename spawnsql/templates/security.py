"""
Template Security - sandboxed environment for SQL templates.

Provides:
- Sandboxed Jinja2 environment whose output formatter is the SQL formatter
- Allowlist-based filter and global registry
- SQL-aware replacements for built-ins that would otherwise emit HTML
"""

from __future__ import annotations

import json
import tomllib
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

import yaml
from jinja2 import pass_environment
from jinja2.compiler import CodeGenerator, optimizeconst
from jinja2.filters import make_attrgetter
from jinja2.sandbox import ImmutableSandboxedEnvironment, SandboxedEnvironment
from markupsafe import Markup

from ..faults import FragmentNotFoundFault
from ..sql import SqlDialect, escape_identifier, get_formatter
from .sources import ComponentSource


@dataclass
class SandboxPolicy:
    """
    Template sandbox policy.

    HTML-specific built-ins (``escape``, ``forceescape``, ``urlize``,
    ``xmlattr``, ``striptags``) are not on the allowlist: their output would
    bypass the SQL formatter.

    Attributes:
        allowed_filters: Allowlist of filter names
        allowed_tests: Allowlist of test names
        allowed_globals: Allowlist of global names
        dialect: SQL dialect used to format every output expression
    """

    allowed_filters: Set[str] = field(default_factory=lambda: {
        # Built-ins
        "abs", "attr", "batch", "capitalize", "center", "default", "d",
        "dictsort", "first", "float", "format", "groupby", "int", "items",
        "join", "last", "length", "count", "list", "lower", "map", "max",
        "min", "reject", "rejectattr", "replace", "reverse", "round",
        "safe", "select", "selectattr", "slice", "sort", "string", "sum",
        "title", "tojson", "trim", "truncate", "unique", "upper",
        "wordcount",

        # spawnsql filters
        "escape_identifier", "read_file", "to_string_lossy",
        "parse_json", "parse_toml", "parse_yaml",
    })

    allowed_tests: Set[str] = field(default_factory=lambda: {
        "boolean", "callable", "defined", "divisibleby", "eq", "even",
        "false", "filter", "float", "ge", "gt", "in", "integer", "iterable",
        "le", "lower", "lt", "mapping", "ne", "none", "number", "odd",
        "sameas", "sequence", "string", "test", "true", "undefined", "upper",
    })

    allowed_globals: Set[str] = field(default_factory=lambda: {
        "range", "dict", "cycler", "joiner", "namespace",
        "gen_uuid_v4", "gen_uuid_v5",
    })

    dialect: SqlDialect = SqlDialect.POSTGRES

    @classmethod
    def strict(cls) -> "SandboxPolicy":
        return cls()

    def is_filter_allowed(self, name: str) -> bool:
        return name in self.allowed_filters

    def is_test_allowed(self, name: str) -> bool:
        return name in self.allowed_tests

    def is_global_allowed(self, name: str) -> bool:
        return name in self.allowed_globals


def _plain(value: Any) -> Any:
    return str(value) if isinstance(value, Markup) else value


class SqlCodeGenerator(CodeGenerator):
    """
    Compiles ``~`` to a plain string join.

    Under autoescape Jinja joins with ``markup_join``, which HTML-escapes
    the untrusted operands once any operand is ``Markup``. The joined text
    must reach the SQL formatter as an ordinary value instead.
    """

    @optimizeconst
    def visit_Concat(self, node, frame):
        self.write("str_join((")
        for arg in node.nodes:
            self.visit(arg, frame)
            self.write(", ")
        self.write("))")


class SqlSandboxedEnvironment(ImmutableSandboxedEnvironment):
    """Immutable sandbox where mixing trusted SQL with values yields plain ``str``."""

    code_generator_class = SqlCodeGenerator
    intercepted_binops = frozenset(["+", "%"])

    def call_binop(self, context, operator, left, right):
        return super().call_binop(context, operator, _plain(left), _plain(right))


class TemplateSandbox:
    """
    Creates sandboxed Jinja2 environments for SQL rendering.

    Autoescaping is always on: it is what marks macro output, ``{% set %}``
    blocks and ``|safe`` values as trusted, while every other value goes
    through the SQL formatter.
    """

    def __init__(self, policy: Optional[SandboxPolicy] = None):
        self.policy = policy or SandboxPolicy.strict()

        self._custom_filters: Dict[str, Callable] = {}
        self._custom_tests: Dict[str, Callable] = {}
        self._custom_globals: Dict[str, Any] = {}

    def create_environment(self, **kwargs) -> SandboxedEnvironment:
        env = SqlSandboxedEnvironment(
            autoescape=True,
            finalize=get_formatter(self.policy.dialect),
            keep_trailing_newline=True,
            **kwargs,
        )

        self._filter_environment(env)

        for name, func in self._custom_filters.items():
            if self.policy.is_filter_allowed(name):
                env.filters[name] = func

        for name, func in self._custom_tests.items():
            if self.policy.is_test_allowed(name):
                env.tests[name] = func

        for name, value in self._custom_globals.items():
            if self.policy.is_global_allowed(name):
                env.globals[name] = value

        return env

    def register_filter(self, name: str, func: Callable) -> None:
        self._custom_filters[name] = func
        self.policy.allowed_filters.add(name)

    def register_test(self, name: str, func: Callable) -> None:
        self._custom_tests[name] = func
        self.policy.allowed_tests.add(name)

    def register_global(self, name: str, value: Any) -> None:
        self._custom_globals[name] = value
        self.policy.allowed_globals.add(name)

    def _filter_environment(self, env: SandboxedEnvironment) -> None:
        """Remove disallowed built-in filters, tests, and globals."""
        for name in list(env.filters.keys()):
            if not self.policy.is_filter_allowed(name):
                del env.filters[name]

        for name in list(env.tests.keys()):
            if not self.policy.is_test_allowed(name):
                del env.tests[name]

        for name in list(env.globals.keys()):
            if not self.policy.is_global_allowed(name):
                del env.globals[name]


# ── Filters and globals ─────────────────────────────────────────────────


def _escape_identifier_filter(value: Any) -> Markup:
    return Markup(escape_identifier(str(value)))


def _to_string_lossy(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _parse_json(value: Any) -> Any:
    return json.loads(_to_string_lossy(value))


def _parse_toml(value: Any) -> Any:
    return tomllib.loads(_to_string_lossy(value))


def _parse_yaml(value: Any) -> Any:
    return yaml.safe_load(_to_string_lossy(value))


@pass_environment
def _join(environment: Any, value: Any, d: str = "", attribute: Any = None) -> str:
    # Plain str so the joined text is quoted as one literal
    if attribute is not None:
        value = map(make_attrgetter(environment, attribute), value)
    return str(d).join(str(item) for item in value)


def _format(value: Any, *args: Any, **kwargs: Any) -> str:
    if args and kwargs:
        raise TypeError("can't handle positional and keyword arguments at the same time")
    return str(value) % (kwargs or tuple(_plain(a) for a in args))


def _replace(value: Any, old: str, new: str, count: Optional[int] = None) -> str:
    return str(value).replace(old, new, -1 if count is None else count)


def _tojson(value: Any, indent: Optional[int] = None) -> str:
    return json.dumps(value, indent=indent, default=str, ensure_ascii=False)


def create_sql_filters(source: ComponentSource) -> Dict[str, Callable]:
    """
    Filters registered on every SQL environment.

    ``read_file`` resolves through *source*, so pinned renders read the
    pinned copy of data files too.
    """

    def read_file(name: Any) -> bytes:
        data = source.load(str(name))
        if data is None:
            raise FragmentNotFoundFault(str(name))
        return data

    return {
        "escape_identifier": _escape_identifier_filter,
        "read_file": read_file,
        "to_string_lossy": _to_string_lossy,
        "parse_json": _parse_json,
        "parse_toml": _parse_toml,
        "parse_yaml": _parse_yaml,
        "format": _format,
        "join": _join,
        "replace": _replace,
        "tojson": _tojson,
    }


def gen_uuid_v4() -> str:
    return str(uuid.uuid4())


def gen_uuid_v5(seed: str) -> str:
    """Deterministic UUID for *seed* in the DNS namespace."""
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, str(seed)))


def create_sql_globals() -> Dict[str, Any]:
    return {
        "gen_uuid_v4": gen_uuid_v4,
        "gen_uuid_v5": gen_uuid_v5,
    }
