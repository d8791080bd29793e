"""Copy dependent rows of one catalog item onto another item id.

Rows are duplicated, never moved: the source rows stay untouched. Each copy
keeps the storage shape of the identifier it replaces (TEXT stays TEXT,
BLOB stays BLOB) and is inserted only when no equivalent row exists yet,
which makes reruns after a partial failure insert nothing twice.
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

from catalog_common import CancellationToken, check_cancel
from catalog_errors import SchemaMismatch
from catalog_guid import CatalogGuid, represents, rewrite_in_shape
from catalog_schema import ColumnInfo, find_column, get_table_info, table_exists
from catalog_sql import guid_match, insert_row, is_schema_error, quote_ident, row_exists

STATUS_APPLIED = "applied"
STATUS_SKIPPED = "skipped"


@dataclass(frozen=True)
class DuplicatePolicy:
    """How to decide that a candidate row already exists at the destination.

    whole_row: every inserted column must match (NULL matches NULL).
    reduced: only the rewritten key columns plus the first present
    secondary column must match; whole-row when no secondary column exists.
    """

    kind: str = "whole_row"
    secondary_candidates: tuple[str, ...] = ()

    @classmethod
    def reduced(cls, *secondary_candidates: str) -> DuplicatePolicy:
        return cls(kind="reduced", secondary_candidates=tuple(secondary_candidates))


WHOLE_ROW = DuplicatePolicy()


@dataclass
class ReplicateResult:
    table: str
    status: str
    reason: str | None = None
    key_columns: list[str] = field(default_factory=list)
    selected: int = 0
    inserted: int = 0
    skipped_existing: int = 0

    @classmethod
    def skipped(cls, table: str, reason: str) -> ReplicateResult:
        return cls(table=table, status=STATUS_SKIPPED, reason=reason)

    @property
    def applied(self) -> bool:
        return self.status == STATUS_APPLIED

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def resolve_columns(cols: Sequence[ColumnInfo], names: Sequence[str]) -> list[str] | None:
    """Actual column names for names, or None when any is missing."""
    out: list[str] = []
    for n in names:
        c = find_column(cols, n)
        if c is None:
            return None
        out.append(c.name)
    return out


def surrogate_key_column(cols: Sequence[ColumnInfo], key_columns: Sequence[str]) -> str | None:
    pk_cols = [c for c in cols if c.pk > 0]
    if len(pk_cols) != 1:
        return None
    pk = pk_cols[0]
    if not pk.is_integerish:
        return None
    if pk.name.lower() in {k.lower() for k in key_columns}:
        return None
    return pk.name


def duplicate_check_columns(policy: DuplicatePolicy, insert_cols: Sequence[str], key_columns: Sequence[str]) -> list[str]:
    if policy.kind != "reduced":
        return list(insert_cols)
    by_lower = {c.lower(): c for c in insert_cols}
    for cand in policy.secondary_candidates:
        secondary = by_lower.get(cand.lower())
        if secondary:
            return [*key_columns, secondary]
    return list(insert_cols)


def replicate_rows(
    con: sqlite3.Connection,
    table: str,
    key_columns: Sequence[str],
    source_id: CatalogGuid,
    target_id: CatalogGuid,
    policy: DuplicatePolicy = WHOLE_ROW,
    cancel: CancellationToken | None = None,
) -> ReplicateResult:
    if not table_exists(con, table):
        return ReplicateResult.skipped(table, "table_missing")
    cols = get_table_info(con, table)
    keys = resolve_columns(cols, key_columns)
    if not keys:
        return ReplicateResult.skipped(table, "key_column_missing")

    surrogate = surrogate_key_column(cols, keys)
    insert_cols = [c.name for c in cols if c.name != surrogate]
    check_cols = duplicate_check_columns(policy, insert_cols, keys)

    where_parts: list[str] = []
    params: list[Any] = []
    for k in keys:
        sql, p = guid_match(k, source_id)
        where_parts.append(sql)
        params.extend(p)
    select_sql = (
        f"SELECT {', '.join(quote_ident(c) for c in insert_cols)} "
        f"FROM {quote_ident(table)} WHERE {' OR '.join(where_parts)}"
    )
    try:
        rows = con.execute(select_sql, params).fetchall()
    except sqlite3.OperationalError as e:
        if is_schema_error(e):
            raise SchemaMismatch(f"{table}: {e}") from e
        raise

    result = ReplicateResult(table=table, status=STATUS_APPLIED, key_columns=list(keys))
    for r in rows:
        check_cancel(cancel)
        result.selected += 1
        row = {c: r[i] for i, c in enumerate(insert_cols)}
        for k in keys:
            if represents(row[k], source_id):
                row[k] = rewrite_in_shape(row[k], source_id, target_id)

        if row_exists(con, table, check_cols, row):
            result.skipped_existing += 1
            continue
        insert_row(con, table, insert_cols, row)
        result.inserted += 1
    return result
