"""SQL text builders shared by the catalog components.

All statements are assembled from runtime-discovered column names; every
identifier goes through quote_ident and every value is bound.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Mapping, Sequence

from catalog_errors import ConstraintViolation, SchemaMismatch
from catalog_guid import CatalogGuid

SCHEMA_ERROR_MARKERS = ("no such column", "no such table", "has no column named")


def quote_ident(ident: str) -> str:
    s = str(ident or "").replace('"', '""')
    return f'"{s}"'


def guid_match(column: str, guid: CatalogGuid) -> tuple[str, list[Any]]:
    """WHERE fragment matching column against guid in blob, dashed-text or hex-text form."""
    col = quote_ident(column)
    sql = (
        f"({col} = ?"
        f" OR lower(CAST({col} AS TEXT)) IN (?, ?)"
        f" OR lower(hex({col})) IN (?, ?))"
    )
    return sql, [guid.raw, guid.dashed, guid.no_dashes, guid.raw_hex, guid.no_dashes]


def is_schema_error(e: sqlite3.Error) -> bool:
    msg = str(e).lower()
    return isinstance(e, sqlite3.OperationalError) and any(m in msg for m in SCHEMA_ERROR_MARKERS)


def _where_equal(columns: Sequence[str], values: Mapping[str, Any]) -> tuple[str, list[Any]]:
    parts: list[str] = []
    params: list[Any] = []
    for c in columns:
        v = values.get(c)
        if v is None:
            parts.append(f"{quote_ident(c)} IS NULL")
            continue
        parts.append(f"{quote_ident(c)} = ?")
        params.append(v)
    return " AND ".join(parts) or "1", params


def row_exists(con: sqlite3.Connection, table: str, columns: Sequence[str], values: Mapping[str, Any]) -> bool:
    where, params = _where_equal(columns, values)
    try:
        row = con.execute(f"SELECT 1 FROM {quote_ident(table)} WHERE {where} LIMIT 1", params).fetchone()
    except sqlite3.OperationalError as e:
        if is_schema_error(e):
            raise SchemaMismatch(f"{table}: {e}") from e
        raise
    return row is not None


def insert_row(con: sqlite3.Connection, table: str, columns: Sequence[str], values: Mapping[str, Any]) -> None:
    cols_sql = ", ".join(quote_ident(c) for c in columns)
    marks = ", ".join("?" for _ in columns)
    try:
        con.execute(
            f"INSERT INTO {quote_ident(table)} ({cols_sql}) VALUES ({marks})",
            [values.get(c) for c in columns],
        )
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(f"{table}: {e}") from e
    except sqlite3.OperationalError as e:
        if is_schema_error(e):
            raise SchemaMismatch(f"{table}: {e}") from e
        raise
