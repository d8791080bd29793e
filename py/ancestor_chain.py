"""Materialise AncestorIds rows for one item by walking ParentId pointers."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from typing import Any

from catalog_common import CancellationToken, check_cancel
from catalog_guid import CatalogGuid
from catalog_schema import ANCESTORS_TABLE, ITEMS_TABLE, ColumnInfo, find_column, get_table_info, table_exists
from catalog_sql import guid_match, insert_row, quote_ident

MAX_CHAIN_HOPS = 128


@dataclass
class AncestorResult:
    item_id: str
    chain_length: int = 0
    inserted: int = 0
    skipped_existing: int = 0
    removed: int = 0
    skipped_reason: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_parent_id(con: sqlite3.Connection, item_id: CatalogGuid) -> CatalogGuid | None:
    row = con.execute(
        f"SELECT ParentId FROM {quote_ident(ITEMS_TABLE)} WHERE guid = ? LIMIT 1",
        (item_id.raw,),
    ).fetchone()
    if row is None:
        return None
    parent = CatalogGuid.from_db_value(row[0])
    if parent is None or parent.is_empty:
        return None
    return parent


def walk_parents(
    con: sqlite3.Connection,
    item_id: CatalogGuid,
    cancel: CancellationToken | None = None,
    max_hops: int = MAX_CHAIN_HOPS,
) -> list[CatalogGuid]:
    """Ancestors of item_id, nearest first. Stops at the root or at a repeated id."""
    chain: list[CatalogGuid] = []
    seen = {item_id}
    current = item_id
    for _ in range(max_hops):
        check_cancel(cancel)
        parent = get_parent_id(con, current)
        if parent is None or parent in seen:
            break
        seen.add(parent)
        chain.append(parent)
        current = parent
    return chain


def _coerce_for_column(col: ColumnInfo, guid: CatalogGuid) -> Any:
    return guid.dashed if col.is_text else guid.raw


def ensure_ancestors(
    con: sqlite3.Connection,
    item_id: CatalogGuid,
    cancel: CancellationToken | None = None,
    prune_stale: bool = False,
) -> AncestorResult:
    """Insert missing (item, ancestor) edges; with prune_stale also delete edges to ids no longer in the chain."""
    result = AncestorResult(item_id=item_id.no_dashes)
    if not table_exists(con, ANCESTORS_TABLE):
        result.skipped_reason = "table_missing"
        return result
    cols = get_table_info(con, ANCESTORS_TABLE)
    item_col = find_column(cols, "ItemId")
    anc_col = find_column(cols, "AncestorId")
    if item_col is None or anc_col is None:
        result.skipped_reason = "key_column_missing"
        return result
    text_col = find_column(cols, "AncestorIdText")

    chain = walk_parents(con, item_id, cancel=cancel)
    result.chain_length = len(chain)

    item_sql, item_params = guid_match(item_col.name, item_id)
    if prune_stale:
        result.removed = prune_stale_edges(con, item_col, anc_col, item_id, chain)
    for anc in chain:
        check_cancel(cancel)
        anc_sql, anc_params = guid_match(anc_col.name, anc)
        exists = con.execute(
            f"SELECT 1 FROM {quote_ident(ANCESTORS_TABLE)} WHERE {item_sql} AND {anc_sql} LIMIT 1",
            [*item_params, *anc_params],
        ).fetchone()
        if exists is not None:
            result.skipped_existing += 1
            continue
        row = {
            item_col.name: _coerce_for_column(item_col, item_id),
            anc_col.name: _coerce_for_column(anc_col, anc),
        }
        if text_col is not None:
            row[text_col.name] = anc.no_dashes
        insert_row(con, ANCESTORS_TABLE, list(row), row)
        result.inserted += 1
    return result


def prune_stale_edges(
    con: sqlite3.Connection,
    item_col: ColumnInfo,
    anc_col: ColumnInfo,
    item_id: CatalogGuid,
    chain: list[CatalogGuid],
) -> int:
    item_sql, item_params = guid_match(item_col.name, item_id)
    rows = con.execute(
        f"SELECT {quote_ident(anc_col.name)} FROM {quote_ident(ANCESTORS_TABLE)} WHERE {item_sql}",
        item_params,
    ).fetchall()
    keep = set(chain)
    removed = 0
    for r in rows:
        anc = CatalogGuid.from_db_value(r[0])
        if anc is not None and anc in keep:
            continue
        cur = con.execute(
            f"DELETE FROM {quote_ident(ANCESTORS_TABLE)} WHERE {item_sql} AND {quote_ident(anc_col.name)} IS ?",
            [*item_params, r[0]],
        )
        removed += cur.rowcount
    return removed
