"""catalog_schema.py

SQLAlchemy Core description of the media catalog tables touched by the
migration engine (subset of the server's library.db), plus sqlite3
connection helpers and runtime schema introspection.

Design goals:
- The engine never trusts this description: column sets differ between
  server versions, so every component introspects with get_table_info().
- The description is used to create scratch/test catalogs
  (create_schema_if_needed) with the same storage quirks as the real one:
  identity columns are BLOB, TopParentId and UserDatas.key are TEXT.

DB path is provided by runtime config/CLI arguments.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import (
    BLOB,
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects import sqlite as sqlite_dialect
from sqlalchemy.schema import CreateIndex, CreateTable

from catalog_sql import quote_ident

ITEMS_TABLE = "TypedBaseItems"
ANCESTORS_TABLE = "AncestorIds"

FOLDER_TYPE = "MediaBrowser.Controller.Entities.Folder"
COLLECTION_FOLDER_TYPE = "MediaBrowser.Controller.Entities.CollectionFolder"
MOVIE_TYPE = "MediaBrowser.Controller.Entities.Movies.Movie"

metadata = MetaData()

typed_base_items = Table(
    ITEMS_TABLE,
    metadata,
    Column("guid", BLOB, primary_key=True),  # raw 16 bytes
    Column("type", Text, nullable=False),
    Column("data", BLOB, nullable=True),  # JSON payload (utf-8)
    Column("ParentId", BLOB, nullable=True),
    Column("Path", Text, nullable=True, unique=True),
    Column("TopParentId", Text, nullable=True),  # undashed text or raw bytes, depending on row
    Column("Name", Text, nullable=True),
    Column("SortName", Text, nullable=True),
    Column("OriginalTitle", Text, nullable=True),
    Column("ProductionYear", Integer, nullable=True),
    Column("IsFolder", Integer, nullable=False, server_default="0"),
    Column("DateCreated", Text, nullable=False),
    Column("DateModified", Text, nullable=True),
    Index("idx_items_parent", "ParentId"),
    Index("idx_items_top_type", "TopParentId", "type"),
)

ancestor_ids = Table(
    ANCESTORS_TABLE,
    metadata,
    Column("ItemId", BLOB, nullable=False),
    Column("AncestorId", BLOB, nullable=False),
    Column("AncestorIdText", Text, nullable=False),
    PrimaryKeyConstraint("ItemId", "AncestorId"),
    Index("idx_ancestors_ancestor", "AncestorId"),
)

people = Table(
    "People",
    metadata,
    Column("ItemId", BLOB, nullable=False),
    Column("Name", Text, nullable=False),
    Column("Role", Text, nullable=True),
    Column("PersonType", Text, nullable=True),
    Column("SortOrder", Integer, nullable=True),
    Column("ListOrder", Integer, nullable=True),
    Index("idx_people_item", "ItemId"),
)

user_datas = Table(
    "UserDatas",
    metadata,
    Column("key", Text, nullable=False),  # dashed text
    Column("userId", Integer, nullable=False),
    Column("rating", Float, nullable=True),
    Column("played", Integer, nullable=False, server_default="0"),
    Column("playCount", Integer, nullable=False, server_default="0"),
    Column("isFavorite", Integer, nullable=False, server_default="0"),
    Column("playbackPositionTicks", Integer, nullable=False, server_default="0"),
    Column("lastPlayedDate", Text, nullable=True),
    UniqueConstraint("key", "userId", name="uq_userdatas_key_user"),
)

item_values = Table(
    "ItemValues",
    metadata,
    Column("Id", Integer, primary_key=True, autoincrement=True),
    Column("ItemId", BLOB, nullable=False),
    Column("Type", Integer, nullable=False),
    Column("Value", Text, nullable=True),
    Column("CleanValue", Text, nullable=True),
    Index("idx_itemvalues_item", "ItemId"),
)

chapters2 = Table(
    "Chapters2",
    metadata,
    Column("ItemId", BLOB, nullable=False),
    Column("ChapterIndex", Integer, nullable=False),
    Column("StartPositionTicks", Integer, nullable=False),
    Column("Name", Text, nullable=True),
    Column("ImagePath", Text, nullable=True),
    PrimaryKeyConstraint("ItemId", "ChapterIndex"),
)

media_attachments = Table(
    "MediaAttachments",
    metadata,
    Column("ItemId", BLOB, nullable=False),
    Column("AttachmentIndex", Integer, nullable=False),
    Column("Codec", Text, nullable=True),
    Column("Filename", Text, nullable=True),
    Column("MimeType", Text, nullable=True),
    PrimaryKeyConstraint("ItemId", "AttachmentIndex"),
)

media_streams = Table(
    "MediaStreams",
    metadata,
    Column("ItemId", BLOB, nullable=False),
    Column("StreamIndex", Integer, nullable=False),
    Column("StreamType", Text, nullable=True),
    Column("Codec", Text, nullable=True),
    Column("Language", Text, nullable=True),
    Column("ChannelLayout", Text, nullable=True),
    Column("BitRate", Integer, nullable=True),
    PrimaryKeyConstraint("ItemId", "StreamIndex"),
)


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    pk: int  # 1-based position within the primary key, 0 when not part of it

    @property
    def is_text(self) -> bool:
        t = (self.type or "").lower()
        return "text" in t or "char" in t or "clob" in t

    @property
    def is_integerish(self) -> bool:
        return "int" in (self.type or "").lower() or self.name.lower() == "id"


def connect_db(db_path: str) -> sqlite3.Connection:
    con = sqlite3.connect(db_path, isolation_level=None)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON")
    return con


def begin_immediate(con: sqlite3.Connection) -> None:
    con.execute("BEGIN IMMEDIATE")


def create_schema_if_needed(con: sqlite3.Connection) -> None:
    dialect = sqlite_dialect.dialect()
    for table in metadata.sorted_tables:
        con.execute(str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)))
        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            con.execute(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)))


def table_exists(con: sqlite3.Connection, table: str) -> bool:
    row = con.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND lower(name) = lower(?) LIMIT 1",
        (table,),
    ).fetchone()
    return row is not None


def get_table_info(con: sqlite3.Connection, table: str) -> list[ColumnInfo]:
    # PRAGMA table_info => cid, name, type, notnull, dflt_value, pk
    rows = con.execute(f"PRAGMA table_info({quote_ident(table)})").fetchall()
    return [ColumnInfo(name=str(r[1] or ""), type=str(r[2] or ""), pk=int(r[5] or 0)) for r in rows]


def find_column(cols: Iterable[ColumnInfo], name: str) -> ColumnInfo | None:
    want = name.lower()
    for c in cols:
        if c.name.lower() == want:
            return c
    return None
