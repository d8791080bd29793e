"""JSON Lines event log for migration runs.

One JSON object per line; the first line is a `_meta` header describing the
run, every following line is `{"event": <name>, "ts": <iso>, ...payload}`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from catalog_common import now_iso, safe_json


class EventSink(Protocol):
    def emit(self, event: str, **payload: Any) -> None: ...


class JsonlEventSink:
    def __init__(self, path: Path | None = None, meta: dict[str, Any] | None = None) -> None:
        self.path = path
        self.records: list[dict[str, Any]] = []
        self._fh = None
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = path.open("w", encoding="utf-8")
            self._fh.write(safe_json({"_meta": {"kind": "catalog_migration_events", "generated_at": now_iso(), **(meta or {})}}) + "\n")
            self._fh.flush()

    def emit(self, event: str, **payload: Any) -> None:
        rec = {"event": event, "ts": now_iso(), **payload}
        self.records.append(rec)
        if self._fh is not None:
            self._fh.write(safe_json(rec) + "\n")
            self._fh.flush()

    def named(self, event: str) -> list[dict[str, Any]]:
        return [r for r in self.records if r["event"] == event]

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> JsonlEventSink:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
