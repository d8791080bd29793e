"""Template-clone a catalog item row under a new identity.

New rows are always copied from an existing row so that NOT NULL columns
and defaults the engine does not know about are satisfied.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Mapping

from catalog_errors import CloneFailed, ConstraintViolation, SchemaMismatch
from catalog_guid import CatalogGuid
from catalog_schema import ITEMS_TABLE, get_table_info
from catalog_sql import is_schema_error, quote_ident

ID_COLUMN = "guid"


def clone_row(
    con: sqlite3.Connection,
    source_id: CatalogGuid,
    target_id: CatalogGuid,
    overrides: Mapping[str, Any],
    table: str = ITEMS_TABLE,
    id_column: str = ID_COLUMN,
) -> None:
    cols = [c.name for c in get_table_info(con, table)]
    if not cols:
        raise SchemaMismatch(f"cannot read {table} schema")
    if id_column.lower() not in {c.lower() for c in cols}:
        raise SchemaMismatch(f"{table} has no identity column {id_column!r}")

    # Column names are not consistently cased across server versions.
    ov = {k.lower(): v for k, v in overrides.items()}
    select_exprs: list[str] = []
    params: list[Any] = []
    for c in cols:
        if c.lower() == id_column.lower():
            select_exprs.append("?")
            params.append(target_id.raw)
        elif c.lower() in ov:
            select_exprs.append("?")
            params.append(ov[c.lower()])
        else:
            select_exprs.append(quote_ident(c))
    params.append(source_id.raw)

    sql = (
        f"INSERT INTO {quote_ident(table)} ({', '.join(quote_ident(c) for c in cols)}) "
        f"SELECT {', '.join(select_exprs)} FROM {quote_ident(table)} "
        f"WHERE {quote_ident(id_column)} = ? LIMIT 1"
    )
    try:
        cur = con.execute(sql, params)
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(f"{table}: clone {source_id} -> {target_id}: {e}") from e
    except sqlite3.OperationalError as e:
        if is_schema_error(e):
            raise SchemaMismatch(f"{table}: {e}") from e
        raise
    if cur.rowcount != 1:
        raise CloneFailed(f"clone failed; inserted rows: {cur.rowcount} (source={source_id} target={target_id})")
