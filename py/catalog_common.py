#!/usr/bin/env python3
from __future__ import annotations

import json
import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from catalog_errors import MigrationCancelled


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ts_compact(d: datetime | None = None) -> str:
    dt_obj = d or datetime.now()
    return dt_obj.strftime("%Y%m%d_%H%M%S")


def safe_json(v: Any) -> str:
    return json.dumps(v, ensure_ascii=False, default=str)


def as_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s in {"1", "true", "yes", "on"}:
            return True
        if s in {"0", "false", "no", "off"}:
            return False
    return default


def parse_json_arg(v: str | None, fallback: Any) -> Any:
    if v is None:
        return fallback
    s = v.strip()
    if not s:
        return fallback
    try:
        return json.loads(s)
    except Exception as e:
        raise SystemExit(f"invalid JSON arg: {e}")


def strip_quotes(s: str) -> str:
    t = s.strip()
    if len(t) >= 2 and ((t[0] == t[-1] == '"') or (t[0] == t[-1] == "'")):
        return t[1:-1]
    return t


def parse_simple_yaml(path: Path) -> dict[str, Any]:
    """Read `key: value` and `key:` + `- item` lines. Values stay strings (ids may be all digits)."""
    if not path.exists():
        raise FileNotFoundError(str(path))
    data: dict[str, Any] = {}
    current_list_key: str | None = None
    lines = path.read_text(encoding="utf-8").splitlines()
    for i, raw in enumerate(lines, start=1):
        line = raw.rstrip()
        if not line.strip():
            continue
        if line.lstrip().startswith("#"):
            continue
        m_key_list = re.match(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*:\s*$", line)
        if m_key_list:
            key = m_key_list.group(1)
            current_list_key = key
            if key not in data:
                data[key] = []
            if not isinstance(data[key], list):
                raise SystemExit(f"invalid YAML at {path}:{i}: key '{key}' used as both scalar and list")
            continue
        m_key_value = re.match(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(.+?)\s*$", line)
        if m_key_value:
            data[m_key_value.group(1)] = strip_quotes(m_key_value.group(2))
            current_list_key = None
            continue
        m_list_item = re.match(r"^\s*-\s*(.+?)\s*$", line)
        if m_list_item and current_list_key:
            data[current_list_key].append(strip_quotes(m_list_item.group(1)))
            continue
        raise SystemExit(f"invalid YAML syntax at {path}:{i}: {line}")
    return data


def expand_path(raw: str | None) -> str | None:
    s = strip_quotes(str(raw or ""))
    if not s:
        return None
    return os.path.expandvars(os.path.expanduser(s))


def windows_to_wsl_path(s: str) -> str:
    m = re.match(r"^([A-Za-z]):(?:[\\/](.*))?$", str(s))
    if not m:
        return str(s)
    drive = m.group(1).lower()
    rest = (m.group(2) or "").replace("\\", "/")
    return f"/mnt/{drive}/{rest}" if rest else f"/mnt/{drive}"


def map_local_path(catalog_path: str, path_map: dict[str, str] | None, wsl: bool = False) -> str:
    """Translate a catalog (server-side) path to a path usable on this machine."""
    p = str(catalog_path)
    for src_prefix in sorted(path_map or {}, key=len, reverse=True):
        if p.lower().startswith(src_prefix.lower()):
            p = str((path_map or {})[src_prefix]) + p[len(src_prefix):]
            break
    if wsl:
        p = windows_to_wsl_path(p)
    return p


class CancellationToken:
    def __init__(self) -> None:
        self._evt = threading.Event()

    def set(self) -> None:
        self._evt.set()

    def is_set(self) -> bool:
        return self._evt.is_set()

    def raise_if_set(self) -> None:
        if self._evt.is_set():
            raise MigrationCancelled("migration cancelled")


def check_cancel(cancel: CancellationToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_set()
