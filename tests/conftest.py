from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from catalog_guid import CatalogGuid
from catalog_schema import COLLECTION_FOLDER_TYPE, MOVIE_TYPE, begin_immediate, connect_db, create_schema_if_needed

SRC_ROOT = CatalogGuid.parse("11111111-2222-3333-4444-555555555555")
DST_ROOT = CatalogGuid.parse("66666666-7777-8888-9999-aaaaaaaaaaaa")
MOVIE_ONE = CatalogGuid.parse("0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0")
MOVIE_TWO = CatalogGuid.parse("c0ffee00-1234-4abc-8def-0123456789ab")


def insert_item(
    con: sqlite3.Connection,
    guid: CatalogGuid,
    type_: str,
    path: str,
    name: str | None = None,
    parent: CatalogGuid | None = None,
    top: CatalogGuid | None = None,
    original_title: str | None = None,
    year: int | None = None,
    data: dict | None = None,
    is_folder: int = 0,
) -> None:
    con.execute(
        """
        INSERT INTO TypedBaseItems
          (guid, type, data, ParentId, Path, TopParentId, Name, SortName, OriginalTitle, ProductionYear, IsFolder, DateCreated)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            guid.raw,
            type_,
            json.dumps(data).encode("utf-8") if data is not None else None,
            parent.raw if parent else None,
            path,
            top.no_dashes if top else None,
            name,
            name,
            original_title,
            year,
            is_folder,
            "2024-01-01T00:00:00Z",
        ),
    )


def seed_roots(con: sqlite3.Connection) -> None:
    insert_item(con, SRC_ROOT, COLLECTION_FOLDER_TYPE, "/src", name="Source", is_folder=1)
    insert_item(con, DST_ROOT, COLLECTION_FOLDER_TYPE, "/dst", name="Destination", is_folder=1)


def seed_movie(con: sqlite3.Connection, guid: CatalogGuid, name: str, year: int, path: str) -> None:
    insert_item(con, guid, MOVIE_TYPE, path, name=name, parent=SRC_ROOT, top=SRC_ROOT, year=year)
    con.execute(
        "INSERT INTO AncestorIds (ItemId, AncestorId, AncestorIdText) VALUES (?, ?, ?)",
        (guid.raw, SRC_ROOT.raw, SRC_ROOT.no_dashes),
    )
    con.execute(
        "INSERT INTO People (ItemId, Name, Role, PersonType, ListOrder) VALUES (?, ?, ?, ?, ?)",
        (guid.raw, "Jane Doe", "Lead", "Actor", 0),
    )
    con.execute(
        "INSERT INTO People (ItemId, Name, Role, PersonType, ListOrder) VALUES (?, ?, ?, ?, ?)",
        (guid.raw, "John Roe", None, "Director", 1),
    )
    con.execute(
        "INSERT INTO UserDatas (key, userId, played, playCount, isFavorite, playbackPositionTicks) VALUES (?, ?, 1, 3, 0, 0)",
        (guid.dashed, 1),
    )
    con.execute("INSERT INTO ItemValues (ItemId, Type, Value, CleanValue) VALUES (?, 2, 'Drama', 'drama')", (guid.raw,))
    con.execute("INSERT INTO ItemValues (ItemId, Type, Value, CleanValue) VALUES (?, 3, 'Studio', 'studio')", (guid.raw,))
    con.execute(
        "INSERT INTO Chapters2 (ItemId, ChapterIndex, StartPositionTicks, Name) VALUES (?, 0, 0, 'Opening')",
        (guid.raw,),
    )
    con.execute(
        "INSERT INTO MediaStreams (ItemId, StreamIndex, StreamType, Codec) VALUES (?, 0, 'Video', 'h264')",
        (guid.raw,),
    )
    con.execute(
        "INSERT INTO MediaStreams (ItemId, StreamIndex, StreamType, Codec, Language) VALUES (?, 1, 'Audio', 'aac', 'eng')",
        (guid.raw,),
    )


def count(con: sqlite3.Connection, table: str, where: str = "1", params: tuple = ()) -> int:
    return int(con.execute(f'SELECT COUNT(*) FROM "{table}" WHERE {where}', params).fetchone()[0])


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "library.db"


@pytest.fixture
def catalog(db_path: Path):
    con = connect_db(str(db_path))
    create_schema_if_needed(con)
    seed_roots(con)
    seed_movie(con, MOVIE_ONE, "Movie One", 1999, "/src/one.mkv")
    begin_immediate(con)
    try:
        yield con
    finally:
        con.close()
