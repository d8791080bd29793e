#!/usr/bin/env python3
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

FORB = re.compile(r'[<>:"/\\|?*]')
CTRL = re.compile(r"[\x00-\x1f]")
TRAIL = re.compile(r"[\. ]+$")
WS = re.compile(r"[\s\u3000]+")
SEGMENT_SPLIT = re.compile(r"[\\/]+")
SEPARATOR = re.compile(r"[\\/]")

DEFAULT_FOLDER_TEMPLATE = "{Name[0]}"
DEFAULT_FILE_TEMPLATE = "{Name} ({OriginalName}) {Year}.{Extension}"


@dataclass(frozen=True)
class NamingTemplates:
    folder: str = DEFAULT_FOLDER_TEMPLATE
    file: str = DEFAULT_FILE_TEMPLATE
    sanitize: bool = True


def first_char(name: str | None) -> str:
    s = (name or "").strip()
    return s[0] if s else "_"


def _replace_ci(text: str, token: str, value: str) -> str:
    return re.sub(re.escape(token), lambda _m: value, text, flags=re.IGNORECASE)


def render_template(
    template: str | None,
    name: str | None,
    original_name: str | None,
    year: int | None,
    extension: str | None,
    escape_separators: bool = False,
) -> str:
    """Substitute {Name}, {Name[0]}, {OriginalName}, {Year}, {Extension}; other tokens stay as written.

    With escape_separators, path separators inside substituted values become "_"
    so only separators written in the template itself add directory levels.
    """
    out = template or ""
    values = [
        ("{Name[0]}", first_char(name)),
        ("{MovieName[0]}", first_char(name)),
        ("{Name}", name or ""),
        ("{MovieName}", name or ""),
        ("{OriginalName}", original_name or ""),
        ("{Year}", str(year) if year is not None else ""),
        ("{Extension}", (extension or "").lstrip(".")),
    ]
    for token, value in values:
        if escape_separators:
            value = SEPARATOR.sub("_", value)
        out = _replace_ci(out, token, value)
    return out


def safe_segment(name: str, maxlen: int = 120) -> str:
    s = (name or "").strip()
    s = CTRL.sub("", s)
    s = FORB.sub("_", s)
    s = WS.sub(" ", s)
    s = TRAIL.sub("", s)
    if not s:
        s = "_"
    if len(s) > maxlen:
        h = hashlib.sha1(s.encode("utf-8")).hexdigest()[:8]
        s = s[: maxlen - 9].rstrip() + "_" + h
    return s


def folder_segments(rendered: str, sanitize: bool) -> list[str]:
    parts = [p.strip() for p in SEGMENT_SPLIT.split(rendered or "") if p.strip()]
    return [safe_segment(p) for p in parts] if sanitize else parts


def file_name(rendered: str, sanitize: bool) -> str:
    return safe_segment(rendered) if sanitize else (rendered or "").strip()
