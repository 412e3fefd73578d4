"""
SQL safety layer.

- Escaping wrappers: ``EscapedIdentifier``, ``EscapedLiteral``, ``InsecureRawSql``
- ``sql_query`` - builds an ``EscapedQuery`` from ``SqlSafe`` arguments only
- Value formatter used as the template engine's ``finalize`` hook
"""

from .escape import (
    SqlSafe,
    EscapedIdentifier,
    EscapedLiteral,
    InsecureRawSql,
    EscapedQuery,
    SQL_NULL,
    escape_identifier,
    escape_literal,
    sql_query,
)
from .formatter import SqlDialect, format_value, format_postgres, get_formatter

__all__ = [
    "SqlSafe",
    "EscapedIdentifier",
    "EscapedLiteral",
    "InsecureRawSql",
    "EscapedQuery",
    "SQL_NULL",
    "escape_identifier",
    "escape_literal",
    "sql_query",
    "SqlDialect",
    "format_value",
    "format_postgres",
    "get_formatter",
]
