"""Quoting helpers for building SQL text.

Values never reach a statement unquoted: identifiers go through
``quote_ident`` and values through ``quote_literal``.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

import orjson


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "'true'" if value else "'false'"
    if isinstance(value, (list, tuple)):
        return ",".join(quote_literal(v) for v in value)
    if isinstance(value, (int, float, Decimal)):
        return f"'{value}'"
    if isinstance(value, (datetime, date, time)):
        return f"'{value.isoformat()}'"
    if isinstance(value, dict):
        value = orjson.dumps(value).decode()

    text = str(value).replace("'", "''")
    if "\\" in text:
        return "E'" + text.replace("\\", "\\\\") + "'"
    return f"'{text}'"


def qualify(field: str, table: str) -> str:
    """Quote ``field`` as ``table.column``, keeping an explicit table prefix."""
    if "." in field:
        table, column = field.split(".", 1)
    else:
        column = field
    return f"{quote_ident(table)}.{quote_ident(column)}"


def column_name(field: str) -> str:
    return field.split(".", 1)[1] if "." in field else field
