"""Mirror a filesystem directory path as Folder items under a catalog root."""

from __future__ import annotations

import re
import sqlite3

from ancestor_chain import ensure_ancestors
from catalog_common import CancellationToken, check_cancel
from catalog_errors import PathOutsideBase, RootNotFound
from catalog_guid import CatalogGuid
from catalog_schema import FOLDER_TYPE, ITEMS_TABLE
from catalog_sql import guid_match, quote_ident
from item_cloner import clone_row

SEPARATORS = "/\\"
SPLIT_RE = re.compile(r"[\\/]+")


def is_windows_style(path: str) -> bool:
    return bool(re.match(r"^[A-Za-z]:", path)) or path.startswith("\\\\") or ("\\" in path and "/" not in path)


def join_catalog_path(base: str, part: str) -> str:
    sep = "\\" if is_windows_style(base) else "/"
    return base.rstrip(SEPARATORS) + sep + part


def normalize_for_compare(p: str) -> str:
    return p.strip().rstrip(SEPARATORS)


def relative_segments(base_path: str, target_dir: str) -> list[str]:
    """Path segments of target_dir below base_path; raises PathOutsideBase."""
    norm_base = normalize_for_compare(base_path)
    norm_target = normalize_for_compare(target_dir)
    if not norm_target.lower().startswith(norm_base.lower()):
        raise PathOutsideBase(base_path, target_dir)
    rest = norm_target[len(norm_base):]
    if rest and norm_base and rest[0] not in SEPARATORS:
        raise PathOutsideBase(base_path, target_dir)
    return [s.strip() for s in SPLIT_RE.split(rest) if s.strip()]


class FolderTreeBuilder:
    def __init__(self, con: sqlite3.Connection, root_id: CatalogGuid, base_path: str, cancel: CancellationToken | None = None) -> None:
        self.con = con
        self.root_id = root_id
        self.base_path = base_path
        self.cancel = cancel
        self.folders_created = 0

    @classmethod
    def open(cls, con: sqlite3.Connection, top_parent_id: CatalogGuid, cancel: CancellationToken | None = None) -> FolderTreeBuilder:
        row = con.execute(
            f"SELECT guid, Path FROM {quote_ident(ITEMS_TABLE)} WHERE guid = ? LIMIT 1",
            (top_parent_id.raw,),
        ).fetchone()
        root = CatalogGuid.from_db_value(row[0]) if row is not None else None
        path = str(row[1] or "").strip() if row is not None else ""
        if root is None or root.is_empty or not path:
            raise RootNotFound(f"cannot locate base folder in catalog for TopParentId={top_parent_id.no_dashes}")
        return cls(con, root, path, cancel=cancel)

    def find_folder(self, full_path: str, parent_id: CatalogGuid) -> CatalogGuid | None:
        top_sql, top_params = guid_match("TopParentId", self.root_id)
        parent_sql, parent_params = guid_match("ParentId", parent_id)
        row = self.con.execute(
            f"""
            SELECT guid
            FROM {quote_ident(ITEMS_TABLE)}
            WHERE type = ?
              AND lower(Path) = lower(?)
              AND {top_sql}
              AND {parent_sql}
            LIMIT 1
            """,
            [FOLDER_TYPE, full_path, *top_params, *parent_params],
        ).fetchone()
        return CatalogGuid.from_db_value(row[0]) if row is not None else None

    def ensure_folder_path(self, target_dir: str) -> CatalogGuid:
        """Find-or-create every folder between the base path and target_dir; returns the deepest id."""
        if not str(target_dir or "").strip():
            return self.root_id
        parts = relative_segments(self.base_path, target_dir)

        parent_id = self.root_id
        current_path = normalize_for_compare(self.base_path)
        for part in parts:
            check_cancel(self.cancel)
            current_path = join_catalog_path(current_path, part)

            existing = self.find_folder(current_path, parent_id)
            if existing is not None:
                parent_id = existing
                continue

            new_id = CatalogGuid.new()
            clone_row(
                self.con,
                parent_id,
                new_id,
                {
                    "type": FOLDER_TYPE,
                    "Name": part,
                    "SortName": part,
                    "Path": current_path,
                    "IsFolder": 1,
                    "ParentId": parent_id.raw,
                    # TopParentId is stored inconsistently by the server; undashed text is the common form.
                    "TopParentId": self.root_id.no_dashes,
                },
            )
            ensure_ancestors(self.con, new_id, cancel=self.cancel)
            self.folders_created += 1
            parent_id = new_id
        return parent_id
