#!/usr/bin/env python3
r"""Rotate catalog migration event logs to keep the log dir readable."""

from __future__ import annotations

import argparse
import gzip
import shutil
from datetime import datetime, timedelta
from pathlib import Path

from catalog_common import safe_json

EVENT_LOG_GLOB = "migration_events_*.jsonl"


def _gzip_file(src: Path) -> Path:
    dst = src.with_suffix(src.suffix + ".gz")
    if dst.exists():
        src.unlink(missing_ok=True)
        return dst
    with src.open("rb") as f_in, gzip.open(dst, "wb", compresslevel=9) as f_out:
        shutil.copyfileobj(f_in, f_out)
    src.unlink(missing_ok=True)
    return dst


def rotate(log_dir: Path, keep: int, ttl_days: int, now: datetime | None = None) -> dict[str, list[str]]:
    arc = log_dir / "archive"
    arc.mkdir(parents=True, exist_ok=True)

    logs = sorted(log_dir.glob(EVENT_LOG_GLOB), key=lambda p: p.stat().st_mtime, reverse=True)
    kept = [p.name for p in logs[: max(keep, 0)]]
    archived: list[str] = []
    for p in logs[max(keep, 0):]:
        dest = arc / p.name
        if not dest.exists():
            shutil.move(str(p), str(dest))
        else:
            p.unlink(missing_ok=True)
        archived.append(_gzip_file(dest).name)

    expired: list[str] = []
    ttl_cutoff = (now or datetime.now().astimezone()) - timedelta(days=max(ttl_days, 0))
    for p in arc.glob("*.gz"):
        if datetime.fromtimestamp(p.stat().st_mtime).astimezone() < ttl_cutoff:
            p.unlink(missing_ok=True)
            expired.append(p.name)

    return {"kept": kept, "archived": archived, "expired": sorted(expired)}


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--log-dir", default="migration-plans")
    ap.add_argument("--keep", type=int, default=10)
    ap.add_argument("--ttl-days", type=int, default=30)
    args = ap.parse_args(argv)

    log_dir = Path(args.log_dir)
    if not log_dir.is_dir():
        raise SystemExit(f"log dir not found: {log_dir}")
    res = rotate(log_dir, args.keep, args.ttl_days)
    print(safe_json({"ok": True, "tool": "catalog_rotate_migration_logs", "logDir": str(log_dir), **res}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
