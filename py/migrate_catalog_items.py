#!/usr/bin/env python3
r"""Migrate catalog items of one library root into another library root.

- Dry-run (default): runs the whole migration inside one transaction, writes
  the event log, then rolls back. No directories are created.
- Apply (--apply): commits the transaction and creates destination folders.

Settings resolve as: command-line flag -> --profile file -> CATALOG_MIGRATE_*
environment variables -> defaults.
"""

from __future__ import annotations

import argparse
import os
import signal
import sqlite3
from pathlib import Path
from typing import Any, Callable

from catalog_common import (
    CancellationToken,
    as_bool,
    expand_path,
    map_local_path,
    now_iso,
    parse_json_arg,
    parse_simple_yaml,
    safe_json,
    ts_compact,
    windows_to_wsl_path,
)
from catalog_errors import ConfigurationError, IdentifierMalformed, RootNotFound
from catalog_guid import CatalogGuid
from catalog_migration import RunSummary, run_migration
from catalog_schema import MOVIE_TYPE, begin_immediate, connect_db
from folder_tree import FolderTreeBuilder
from migration_events import JsonlEventSink
from naming_templates import DEFAULT_FILE_TEMPLATE, DEFAULT_FOLDER_TEMPLATE, NamingTemplates

TOOL = "catalog_migrate_items"
ENV_PREFIX = "CATALOG_MIGRATE_"
DEFAULT_LOG_DIR = "migration-plans"
MAX_SUMMARY_ERRORS = 50


def resolve_setting(key: str, cli_value: Any, profile: dict[str, Any], env_key: str | None = None, default: Any = None) -> Any:
    if cli_value is not None and str(cli_value).strip() != "":
        return cli_value
    v = profile.get(key)
    if v is not None and str(v).strip() != "":
        return v
    if env_key:
        v = os.environ.get(ENV_PREFIX + env_key)
        if v is not None and v.strip():
            return v
    return default


def resolve_db_path(args: argparse.Namespace, profile: dict[str, Any]) -> str:
    db = expand_path(resolve_setting("db", args.db, profile, "DB"))
    if not db:
        server_root = expand_path(resolve_setting("server_root", args.server_root, profile, "SERVER_ROOT"))
        if not server_root:
            raise SystemExit(
                "db is required: pass --db or --server-root "
                f"(or set {ENV_PREFIX}DB / {ENV_PREFIX}SERVER_ROOT)"
            )
        if args.wsl_paths:
            server_root = windows_to_wsl_path(server_root)
        db = str(Path(server_root) / "data" / "library.db")
    if args.wsl_paths:
        db = windows_to_wsl_path(db)
    if not os.path.exists(db):
        raise SystemExit(f"DB not found: {db}")
    return db


def make_dir_creator(path_map: dict[str, str], wsl: bool, created: list[str]) -> Callable[[str], None]:
    def make_dir(catalog_dir: str) -> None:
        local = map_local_path(catalog_dir, path_map, wsl=wsl)
        if not os.path.isdir(local):
            os.makedirs(local, exist_ok=True)
            created.append(local)

    return make_dir


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Migrate catalog items between library roots.")
    ap.add_argument("--db", default=None)
    ap.add_argument("--server-root", default=None, help="server root; DB defaults to <root>/data/library.db")
    ap.add_argument("--profile", default=None, help="simple YAML file with key: value settings")
    ap.add_argument("--source-top-id", default=None)
    ap.add_argument("--dest-top-id", default=None)
    ap.add_argument("--dest-base-path", default=None, help="catalog path of the destination root (default: its Path)")
    ap.add_argument("--content-type", default=None)
    ap.add_argument("--folder-template", default=None)
    ap.add_argument("--file-template", default=None)
    ap.add_argument("--no-sanitize", action="store_true")
    ap.add_argument("--path-map", default=None, help='JSON object {"catalog prefix": "local prefix"}')
    ap.add_argument("--wsl-paths", action="store_true")
    ap.add_argument("--log-dir", default=None)
    ap.add_argument("--limit", type=int, default=0)
    ap.add_argument("--apply", action="store_true")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    profile: dict[str, Any] = {}
    if args.profile:
        profile_path = Path(expand_path(args.profile) or "")
        try:
            profile = parse_simple_yaml(profile_path)
        except FileNotFoundError:
            raise SystemExit(f"profile not found: {profile_path}")

    db_path = resolve_db_path(args, profile)
    source_top_id = resolve_setting("source_top_id", args.source_top_id, profile)
    dest_top_id = resolve_setting("dest_top_id", args.dest_top_id, profile)
    if not source_top_id:
        raise SystemExit("source-top-id is required: pass --source-top-id")
    if not dest_top_id:
        raise SystemExit("dest-top-id is required: pass --dest-top-id")

    content_type = str(resolve_setting("content_type", args.content_type, profile, default=MOVIE_TYPE))
    sanitize = not args.no_sanitize and as_bool(profile.get("sanitize"), True)
    naming = NamingTemplates(
        folder=str(resolve_setting("folder_template", args.folder_template, profile, default=DEFAULT_FOLDER_TEMPLATE)),
        file=str(resolve_setting("file_template", args.file_template, profile, default=DEFAULT_FILE_TEMPLATE)),
        sanitize=sanitize,
    )

    path_map = parse_json_arg(resolve_setting("path_map", args.path_map, profile), {})
    if not isinstance(path_map, dict):
        raise SystemExit("path-map must be a JSON object")
    wsl = bool(args.wsl_paths) or as_bool(profile.get("wsl_paths"), False)
    limit = max(0, int(resolve_setting("limit", args.limit or None, profile, default=0)))

    log_dir = Path(expand_path(resolve_setting("log_dir", args.log_dir, profile, default=DEFAULT_LOG_DIR)) or DEFAULT_LOG_DIR)
    events_path = log_dir / f"migration_events_{ts_compact()}.jsonl"

    cancel = CancellationToken()
    prev_handler = signal.signal(signal.SIGINT, lambda *_: cancel.set())

    created_dirs: list[str] = []
    make_dir = make_dir_creator(path_map, wsl, created_dirs) if args.apply else (lambda _d: None)

    con = connect_db(db_path)
    summary: RunSummary | None = None
    errors: list[str] = []
    dest_base_path = resolve_setting("dest_base_path", args.dest_base_path, profile)
    try:
        with JsonlEventSink(
            events_path,
            meta={
                "tool": TOOL,
                "db": db_path,
                "apply": bool(args.apply),
                "source_top_id": str(source_top_id),
                "dest_top_id": str(dest_top_id),
            },
        ) as events:
            begin_immediate(con)
            try:
                if not dest_base_path:
                    try:
                        dest_base_path = FolderTreeBuilder.open(con, CatalogGuid.parse(str(dest_top_id))).base_path
                    except IdentifierMalformed as e:
                        raise ConfigurationError(f"dest-top-id is not a valid identifier: {dest_top_id!r}") from e
                summary = run_migration(
                    con,
                    str(source_top_id),
                    str(dest_top_id),
                    str(dest_base_path),
                    naming,
                    events=events,
                    content_type=content_type,
                    cancel=cancel,
                    make_dir=make_dir,
                    limit=limit,
                )
                if args.apply:
                    con.commit()
                else:
                    con.rollback()
            except (ConfigurationError, RootNotFound) as e:
                con.rollback()
                raise SystemExit(f"{type(e).__name__}: {e}")
            except BaseException:
                con.rollback()
                raise

            for rec in events.named("item_failed"):
                errors.append(f"{rec.get('source_id')} [{rec.get('step')}] {rec.get('error_type')}: {rec.get('error')}")
    except sqlite3.OperationalError as e:
        raise SystemExit(f"catalog database error: {e}")
    finally:
        con.close()
        signal.signal(signal.SIGINT, prev_handler)

    if summary is None:
        raise SystemExit("migration produced no summary")
    out = {
        "ok": summary.failed == 0 and not summary.cancelled,
        "tool": TOOL,
        "apply": bool(args.apply),
        "db": db_path,
        "runId": summary.run_id,
        "destBasePath": str(dest_base_path),
        "processed": summary.processed,
        "created": summary.created,
        "reused": summary.reused,
        "failed": summary.failed,
        "foldersCreated": summary.folders_created,
        "cancelled": summary.cancelled,
        "createdDirs": created_dirs,
        "eventsPath": str(events_path),
        "errors": errors[:MAX_SUMMARY_ERRORS],
        "errorsTruncated": len(errors) > MAX_SUMMARY_ERRORS,
        "finishedAt": now_iso(),
    }
    print(safe_json(out))
    return 0 if out["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
