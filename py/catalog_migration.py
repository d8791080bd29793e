"""catalog_migration.py

Per-item migration pipeline:

  planned -> directory_ensured -> tree_linked -> item_linked (created|reused)
          -> ancestors_linked -> dependents_replicated -> done
  or failed(step, error) from any state.

Every item runs inside its own SAVEPOINT of the caller's transaction, so a
failed item leaves no partial rows behind and never aborts the batch. The
engine never commits; the caller owns the transaction.
"""

from __future__ import annotations

import json
import os
import re
import sqlite3
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from ancestor_chain import ensure_ancestors
from catalog_common import CancellationToken, check_cancel
from catalog_errors import ConfigurationError, IdentifierMalformed, MigrationCancelled, TypeMismatch
from catalog_guid import CatalogGuid
from catalog_schema import ITEMS_TABLE, MOVIE_TYPE, find_column, get_table_info, table_exists
from catalog_sql import guid_match, quote_ident
from folder_tree import FolderTreeBuilder, join_catalog_path, normalize_for_compare
from item_cloner import clone_row
from migration_events import EventSink
from naming_templates import NamingTemplates, file_name, folder_segments, render_template
from row_replicator import WHOLE_ROW, DuplicatePolicy, ReplicateResult, replicate_rows, resolve_columns

SAVEPOINT = "migrate_item"

STEP_PLANNED = "planned"
STEP_DIRECTORY = "directory_ensured"
STEP_TREE = "tree_linked"
STEP_ITEM = "item_linked"
STEP_ANCESTORS = "ancestors_linked"
STEP_DEPENDENTS = "dependents_replicated"
STEP_DONE = "done"
STEP_FAILED = "failed"

LINK_CREATED = "created"
LINK_REUSED = "reused"


@dataclass(frozen=True)
class DependentCategory:
    name: str
    table: str
    key_candidates: tuple[tuple[str, ...], ...]
    policy: DuplicatePolicy = WHOLE_ROW


DEPENDENT_CATEGORIES: tuple[DependentCategory, ...] = (
    DependentCategory("people", "People", (("ItemId",),)),
    DependentCategory(
        "user_data",
        "UserDatas",
        (("Key", "ItemId"), ("Key",), ("ItemId",)),
        DuplicatePolicy.reduced("UserId", "UserGuid"),
    ),
    DependentCategory("item_values", "ItemValues", (("ItemId",),)),
    DependentCategory("chapters", "Chapters2", (("ItemId",),)),
    DependentCategory("attachments", "MediaAttachments", (("ItemId",),)),
    DependentCategory("streams", "MediaStreams", (("ItemId",),)),
)


@dataclass
class SourceItem:
    guid: CatalogGuid
    name: str
    original_name: str | None = None
    year: int | None = None
    old_path: str = ""


@dataclass
class MigrationPlan:
    dest_dir: str
    dest_path: str
    file_name: str
    existing_id: CatalogGuid | None = None


@dataclass
class ItemOutcome:
    source_id: str
    state: str = STEP_PLANNED
    link: str | None = None
    new_id: str | None = None
    dest_path: str | None = None
    error: str | None = None
    error_type: str | None = None
    failed_step: str | None = None
    dependents: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class RunSummary:
    run_id: str
    processed: int = 0
    created: int = 0
    reused: int = 0
    failed: int = 0
    folders_created: int = 0
    cancelled: bool = False
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d.pop("outcomes")
        return d


@dataclass
class MigrationRun:
    con: sqlite3.Connection
    source_top_id: CatalogGuid
    dest_top_id: CatalogGuid
    dest_base_path: str
    naming: NamingTemplates
    events: EventSink
    content_type: str = MOVIE_TYPE
    cancel: CancellationToken | None = None
    make_dir: Callable[[str], None] | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def emit(self, event: str, **payload: Any) -> None:
        self.events.emit(event, run_id=self.run_id, **payload)


def _to_int(v: Any) -> int | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        return None


def _json_payload(v: Any) -> dict[str, Any]:
    if v is None:
        return {}
    try:
        text = v.decode("utf-8") if isinstance(v, (bytes, bytearray, memoryview)) else str(v)
        obj = json.loads(text)
    except (UnicodeDecodeError, ValueError):
        return {}
    return obj if isinstance(obj, dict) else {}


def hydrate_from_payload(item: SourceItem, payload: dict[str, Any]) -> None:
    if not item.original_name and isinstance(payload.get("OriginalTitle"), str):
        item.original_name = payload["OriginalTitle"]
    if item.year is None:
        item.year = _to_int(payload.get("ProductionYear"))
    if not item.old_path:
        if isinstance(payload.get("Path"), str):
            item.old_path = payload["Path"]
        else:
            sources = payload.get("MediaSources")
            if isinstance(sources, list) and sources and isinstance(sources[0], dict):
                p = sources[0].get("Path")
                if isinstance(p, str):
                    item.old_path = p


def read_source_items(con: sqlite3.Connection, source_top_id: CatalogGuid, content_type: str) -> list[SourceItem]:
    cols = get_table_info(con, ITEMS_TABLE)
    optional = {n: find_column(cols, n) for n in ("Name", "OriginalTitle", "ProductionYear", "Path", "data")}
    selected = ["guid"] + [c.name for c in optional.values() if c is not None]
    top_sql, top_params = guid_match("TopParentId", source_top_id)
    path_order = f"{quote_ident(optional['Path'].name)}, " if optional["Path"] else ""
    rows = con.execute(
        f"""
        SELECT {', '.join(quote_ident(c) for c in selected)}
        FROM {quote_ident(ITEMS_TABLE)}
        WHERE type = ? AND {top_sql}
        ORDER BY {path_order}hex(guid)
        """,
        [content_type, *top_params],
    ).fetchall()

    items: list[SourceItem] = []
    for r in rows:
        guid = CatalogGuid.from_db_value(r["guid"])
        if guid is None or guid.is_empty:
            continue

        vals = {k: (r[c.name] if c is not None else None) for k, c in optional.items()}
        item = SourceItem(
            guid=guid,
            name=str(vals["Name"] or ""),
            original_name=vals["OriginalTitle"] or None,
            year=_to_int(vals["ProductionYear"]),
            old_path=str(vals["Path"] or ""),
        )
        hydrate_from_payload(item, _json_payload(vals["data"]))
        items.append(item)
    return items


def extension_of(path: str) -> str:
    leaf = re.split(r"[\\/]", path or "")[-1]
    stem, dot, ext = leaf.rpartition(".")
    return ext if dot and stem else ""


def compose_destination(base_path: str, naming: NamingTemplates, item: SourceItem) -> tuple[str, str, str]:
    ext = extension_of(item.old_path)
    folder = render_template(naming.folder, item.name, item.original_name, item.year, ext, escape_separators=True)
    rendered_file = render_template(naming.file, item.name, item.original_name, item.year, ext, escape_separators=True)
    fname = file_name(rendered_file, naming.sanitize)
    dest_dir = normalize_for_compare(base_path)
    for seg in folder_segments(folder, naming.sanitize):
        dest_dir = join_catalog_path(dest_dir, seg)
    return dest_dir, join_catalog_path(dest_dir, fname), fname


def find_item_by_path(con: sqlite3.Connection, path: str) -> sqlite3.Row | None:
    return con.execute(
        f"SELECT guid, type, ParentId FROM {quote_ident(ITEMS_TABLE)} WHERE lower(Path) = lower(?) LIMIT 1",
        (path,),
    ).fetchone()


def relink_existing_item(con: sqlite3.Connection, row: sqlite3.Row, expected_type: str, path: str, parent_id: CatalogGuid) -> bool:
    """Verify an item already at the destination path and fix its parent; True when the parent changed."""
    actual = row["type"]
    if str(actual or "").lower() != expected_type.lower():
        raise TypeMismatch(path, expected_type, actual)
    current_parent = CatalogGuid.from_db_value(row["ParentId"])
    if current_parent == parent_id:
        return False
    con.execute(
        f"UPDATE {quote_ident(ITEMS_TABLE)} SET ParentId = ? WHERE guid = ?",
        (parent_id.raw, bytes(row["guid"])),
    )
    return True


def pick_key_columns(con: sqlite3.Connection, category: DependentCategory) -> tuple[str, ...]:
    if table_exists(con, category.table):
        cols = get_table_info(con, category.table)
        for cand in category.key_candidates:
            if resolve_columns(cols, cand):
                return cand
    return category.key_candidates[0]


def plan_item(run: MigrationRun, item: SourceItem) -> MigrationPlan:
    dest_dir, dest_path, fname = compose_destination(run.dest_base_path, run.naming, item)
    existing = find_item_by_path(run.con, dest_path)
    existing_id = CatalogGuid.from_db_value(existing["guid"]) if existing is not None else None
    return MigrationPlan(dest_dir=dest_dir, dest_path=dest_path, file_name=fname, existing_id=existing_id)


def migrate_item(run: MigrationRun, tree: FolderTreeBuilder, item: SourceItem, outcome: ItemOutcome) -> ItemOutcome:
    con = run.con
    source = item.guid

    plan = plan_item(run, item)
    outcome.dest_path = plan.dest_path
    run.emit(
        "item_planned",
        source_id=source.no_dashes,
        name=item.name,
        old_path=item.old_path,
        new_path=plan.dest_path,
        new_dir=plan.dest_dir,
        existing_id=plan.existing_id.no_dashes if plan.existing_id else None,
    )

    if run.make_dir is not None:
        run.make_dir(plan.dest_dir)
    outcome.state = STEP_DIRECTORY
    run.emit("fs_mkdir", source_id=source.no_dashes, new_dir=plan.dest_dir)

    check_cancel(run.cancel)
    folder_id = tree.ensure_folder_path(plan.dest_dir)
    outcome.state = STEP_TREE
    run.emit("db_tree", source_id=source.no_dashes, parent_folder=folder_id.no_dashes)

    existing = find_item_by_path(con, plan.dest_path)
    if existing is not None:
        new_id = CatalogGuid.from_raw(existing["guid"])
        parent_updated = relink_existing_item(con, existing, run.content_type, plan.dest_path, folder_id)
        outcome.link = LINK_REUSED
    else:
        new_id = CatalogGuid.new()
        clone_row(
            con,
            source,
            new_id,
            {
                "Path": plan.dest_path,
                "ParentId": folder_id.raw,
                "TopParentId": tree.root_id.no_dashes,
            },
        )
        parent_updated = False
        outcome.link = LINK_CREATED
    outcome.new_id = new_id.no_dashes
    outcome.state = STEP_ITEM
    run.emit(
        "item_linked",
        source_id=source.no_dashes,
        new_id=new_id.no_dashes,
        link=outcome.link,
        path=plan.dest_path,
        parent_updated=parent_updated,
    )

    anc = ensure_ancestors(con, new_id, cancel=run.cancel, prune_stale=parent_updated)
    outcome.state = STEP_ANCESTORS
    run.emit("db_ancestors", source_id=source.no_dashes, **anc.as_dict())

    for category in DEPENDENT_CATEGORIES:
        check_cancel(run.cancel)
        res: ReplicateResult = replicate_rows(
            con,
            category.table,
            pick_key_columns(con, category),
            source,
            new_id,
            category.policy,
            cancel=run.cancel,
        )
        outcome.dependents[category.name] = res.as_dict()
        run.emit("db_dependent", source_id=source.no_dashes, new_id=new_id.no_dashes, category=category.name, **res.as_dict())
    outcome.state = STEP_DEPENDENTS

    outcome.state = STEP_DONE
    run.emit(
        "item_done",
        source_id=source.no_dashes,
        new_id=new_id.no_dashes,
        link=outcome.link,
        inserted={k: v["inserted"] for k, v in outcome.dependents.items()},
    )
    return outcome


def _parse_root(label: str, value: CatalogGuid | str | None) -> CatalogGuid:
    if isinstance(value, CatalogGuid):
        guid = value
    else:
        if not str(value or "").strip():
            raise ConfigurationError(f"{label} is required")
        try:
            guid = CatalogGuid.parse(str(value))
        except IdentifierMalformed as e:
            raise ConfigurationError(f"{label} is not a valid identifier: {value!r}") from e
    if guid.is_empty:
        raise ConfigurationError(f"{label} must not be the empty identifier")
    return guid


def run_migration(
    con: sqlite3.Connection,
    source_top_id: CatalogGuid | str | None,
    dest_top_id: CatalogGuid | str | None,
    dest_base_path: str | None,
    naming: NamingTemplates,
    events: EventSink,
    content_type: str = MOVIE_TYPE,
    cancel: CancellationToken | None = None,
    make_dir: Callable[[str], None] | None = None,
    limit: int = 0,
) -> RunSummary:
    src = _parse_root("source top id", source_top_id)
    dst = _parse_root("destination top id", dest_top_id)
    if not str(dest_base_path or "").strip():
        raise ConfigurationError("destination base path is required")
    if not (naming.file or "").strip():
        raise ConfigurationError("file template is required")
    if not con.in_transaction:
        raise ConfigurationError("catalog connection has no open transaction: call begin_immediate(con) first")

    run = MigrationRun(
        con=con,
        source_top_id=src,
        dest_top_id=dst,
        dest_base_path=str(dest_base_path).strip(),
        naming=naming,
        events=events,
        content_type=content_type,
        cancel=cancel,
        make_dir=make_dir if make_dir is not None else (lambda d: os.makedirs(d, exist_ok=True)),
    )
    tree = FolderTreeBuilder.open(con, dst, cancel=cancel)
    items = read_source_items(con, src, content_type)
    if limit > 0:
        items = items[:limit]

    summary = RunSummary(run_id=run.run_id)
    run.emit(
        "run_started",
        source_top_id=src.no_dashes,
        dest_top_id=dst.no_dashes,
        dest_base_path=run.dest_base_path,
        dest_root_path=tree.base_path,
        content_type=content_type,
        folder_template=naming.folder,
        file_template=naming.file,
        items=len(items),
    )

    for item in items:
        if cancel is not None and cancel.is_set():
            summary.cancelled = True
            break
        summary.processed += 1
        outcome = ItemOutcome(source_id=item.guid.no_dashes)
        folders_before = tree.folders_created
        con.execute(f"SAVEPOINT {SAVEPOINT}")
        try:
            migrate_item(run, tree, item, outcome)
        except MigrationCancelled:
            con.execute(f"ROLLBACK TO {SAVEPOINT}")
            con.execute(f"RELEASE {SAVEPOINT}")
            tree.folders_created = folders_before
            summary.processed -= 1
            summary.cancelled = True
            break
        except Exception as e:
            con.execute(f"ROLLBACK TO {SAVEPOINT}")
            con.execute(f"RELEASE {SAVEPOINT}")
            tree.folders_created = folders_before
            outcome.failed_step = outcome.state
            outcome.state = STEP_FAILED
            outcome.error = str(e)
            outcome.error_type = type(e).__name__
            summary.failed += 1
            run.emit(
                "item_failed",
                source_id=item.guid.no_dashes,
                source_raw_hex=item.guid.raw_hex,
                name=item.name,
                step=outcome.failed_step,
                error_type=outcome.error_type,
                error=outcome.error,
            )
        else:
            con.execute(f"RELEASE {SAVEPOINT}")
            if outcome.link == LINK_CREATED:
                summary.created += 1
            else:
                summary.reused += 1
        summary.outcomes.append(outcome)

    summary.folders_created = tree.folders_created
    if summary.cancelled:
        run.emit("run_cancelled", processed=summary.processed, remaining=len(items) - summary.processed)
    run.emit("run_complete", **{k: v for k, v in summary.as_dict().items() if k != "run_id"})
    return summary
