"""
SQL escaping primitives.

Only instances of :class:`SqlSafe` may be interpolated into a query built
with :func:`sql_query`. Plain strings are rejected before the query exists,
so building ledger SQL from unescaped input fails loudly instead of silently.

    sql_query(
        "SELECT 1 FROM {}.migration WHERE name = {}",
        EscapedIdentifier(schema),
        EscapedLiteral(name),
    )

Trusted static fragments go through the deliberately awkward
:class:`InsecureRawSql`.
"""

from __future__ import annotations

import string
from typing import Optional


def escape_identifier(raw: str) -> str:
    """Quote *raw* as a PostgreSQL identifier."""
    return '"' + raw.replace('"', '""') + '"'


def escape_literal(raw: str) -> str:
    """
    Quote *raw* as a PostgreSQL string literal.

    Backslashes switch to the ``E'...'`` form with every backslash doubled,
    matching libpq's ``PQescapeLiteral`` (including its leading space).
    """
    escaped = raw.replace("'", "''")
    if "\\" in raw:
        return " E'" + escaped.replace("\\", "\\\\") + "'"
    return "'" + escaped + "'"


class SqlSafe:
    """Base for values that may be placed into SQL verbatim."""

    __slots__ = ("_sql",)

    def __init__(self, sql: str) -> None:
        self._sql = sql

    def as_sql(self) -> str:
        return self._sql

    def __str__(self) -> str:
        return self._sql

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._sql!r})"

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other._sql == self._sql

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._sql))


class EscapedIdentifier(SqlSafe):
    """Schema, table or column name."""

    __slots__ = ()

    def __init__(self, raw: str) -> None:
        if not isinstance(raw, str):
            raise TypeError(f"EscapedIdentifier expects str, got {type(raw).__name__}")
        super().__init__(escape_identifier(raw))


class EscapedLiteral(SqlSafe):
    """String value."""

    __slots__ = ()

    def __init__(self, raw: str) -> None:
        if not isinstance(raw, str):
            raise TypeError(f"EscapedLiteral expects str, got {type(raw).__name__}")
        super().__init__(escape_literal(raw))

    @classmethod
    def optional(cls, raw: Optional[str]) -> SqlSafe:
        """Literal for *raw*, or ``NULL`` when it is ``None``."""
        return SQL_NULL if raw is None else cls(raw)


class InsecureRawSql(SqlSafe):
    """
    Unescaped SQL. Only for trusted static keywords and fragments.

    Never wrap user input or template variables in this class.
    """

    __slots__ = ()

    def __init__(self, raw: str) -> None:
        if not isinstance(raw, str):
            raise TypeError(f"InsecureRawSql expects str, got {type(raw).__name__}")
        super().__init__(raw)


class EscapedQuery(SqlSafe):
    """A full query assembled by :func:`sql_query`."""

    __slots__ = ()


SQL_NULL = InsecureRawSql("NULL")

_formatter = string.Formatter()


def sql_query(template: str, *args: SqlSafe) -> EscapedQuery:
    """
    Build a query from *template* with positional ``{}`` placeholders.

    ``{{`` and ``}}`` produce literal braces.

    Raises:
        TypeError: If any argument is not a :class:`SqlSafe` instance.
        ValueError: On named/indexed placeholders or a count mismatch.
    """
    for index, arg in enumerate(args):
        if not isinstance(arg, SqlSafe):
            raise TypeError(
                f"sql_query argument {index} is {type(arg).__name__}; wrap it in "
                f"EscapedIdentifier, EscapedLiteral or InsecureRawSql"
            )

    placeholders = 0
    for _literal, field_name, format_spec, conversion in _formatter.parse(template):
        if field_name is None:
            continue
        if field_name or format_spec or conversion:
            raise ValueError(f"sql_query only supports bare '{{}}' placeholders, got {{{field_name}}}")
        placeholders += 1

    if placeholders != len(args):
        raise ValueError(
            f"sql_query template has {placeholders} placeholder(s) but {len(args)} argument(s)"
        )

    return EscapedQuery(template.format(*(arg.as_sql() for arg in args)))
