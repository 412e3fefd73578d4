"""
SQL value formatter - turns every template expression into SQL syntax.

Installed as the jinja2 ``finalize`` hook, so it runs for every ``{{ }}``
output, not only for values passed through a filter:

    None            → NULL
    True / False    → TRUE / FALSE
    42, 3.5         → 42, 3.5
    "it's"          → 'it''s'
    b"\\x01"         → '\\x01'::bytea
    [1, "a", True]  → ARRAY[1, 'a', TRUE]
    {"k": 1}        → '{"k": 1}'
    Markup("now()") → now()        (``|safe``, macro output)
    undefined       → (empty)
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from jinja2 import Undefined, pass_eval_context
from markupsafe import Markup

from ..faults import InvalidValueFault
from .escape import escape_literal


class SqlDialect(str, Enum):
    """Dialects with a value formatter."""

    POSTGRES = "postgres"


def format_postgres(value: Any) -> str:
    """Format *value* as PostgreSQL syntax."""
    if isinstance(value, Undefined):
        return ""
    if isinstance(value, Markup):
        return str(value)
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidValueFault("float", f"{value!r} has no SQL literal form")
        return repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidValueFault("Decimal", f"{value!r} has no SQL literal form")
        return str(value)
    if isinstance(value, str):
        return escape_literal(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "'\\x" + bytes(value).hex() + "'::bytea"
    if isinstance(value, Mapping):
        return escape_literal(json.dumps(dict(value), default=str, ensure_ascii=False))
    if callable(value):
        raise InvalidValueFault(type(value).__name__, "callables cannot be rendered; did you forget to call it?")
    if isinstance(value, Iterable):
        return "ARRAY[" + ", ".join(format_postgres(item) for item in value) + "]"
    return escape_literal(str(value))


_FORMATTERS: dict[SqlDialect, Callable[[Any], str]] = {
    SqlDialect.POSTGRES: format_postgres,
}


def format_value(value: Any, dialect: SqlDialect = SqlDialect.POSTGRES) -> str:
    return _FORMATTERS[dialect](value)


def get_formatter(dialect: SqlDialect = SqlDialect.POSTGRES) -> Callable[..., Markup]:
    """
    Build a jinja2 ``finalize`` callable for *dialect*.

    The result is marked safe so that autoescaping leaves it alone. It takes
    the eval context so jinja2 never folds constants at compile time, which
    would bypass the formatter.
    """
    fmt = _FORMATTERS[dialect]

    @pass_eval_context
    def finalize(eval_ctx: Any, value: Any) -> Markup:
        if isinstance(value, Markup):
            return value
        return Markup(fmt(value))

    return finalize
