"""catalog_guid.py

128-bit catalog identifiers.

The catalog stores most identity columns (guid, ParentId, ItemId, ...) as
16-byte BLOBs in the server's native byte layout (little-endian first three
fields, i.e. uuid.UUID.bytes_le). Some columns hold the same value as text,
either dashed or undashed. CatalogGuid keeps all renderings consistent.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from catalog_errors import IdentifierMalformed

EMPTY_UUID = uuid.UUID(int=0)


@dataclass(frozen=True)
class CatalogGuid:
    value: uuid.UUID

    @property
    def raw(self) -> bytes:
        return self.value.bytes_le

    @property
    def dashed(self) -> str:
        return str(self.value)

    @property
    def no_dashes(self) -> str:
        return self.value.hex

    @property
    def raw_hex(self) -> str:
        # matches lower(hex(blob)) in SQLite; useful for logs
        return self.raw.hex()

    @property
    def is_empty(self) -> bool:
        return self.value == EMPTY_UUID

    def __str__(self) -> str:
        return self.no_dashes

    @classmethod
    def new(cls) -> CatalogGuid:
        return cls(uuid.uuid4())

    @classmethod
    def from_raw(cls, data: bytes) -> CatalogGuid:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise IdentifierMalformed(f"raw identifier must be bytes, got {type(data).__name__}")
        b = bytes(data)
        if len(b) != 16:
            raise IdentifierMalformed(f"raw identifier must be 16 bytes, got {len(b)}")
        return cls(uuid.UUID(bytes_le=b))

    @classmethod
    def parse(cls, text: str) -> CatalogGuid:
        s = str(text or "").strip()
        if not s:
            raise IdentifierMalformed("missing identifier text")
        try:
            return cls(uuid.UUID(s))
        except ValueError as e:
            raise IdentifierMalformed(f"invalid identifier text: {s!r}") from e

    @classmethod
    def try_parse(cls, text: str | None) -> CatalogGuid | None:
        try:
            return cls.parse(text or "")
        except IdentifierMalformed:
            return None

    @classmethod
    def from_db_value(cls, v: Any) -> CatalogGuid | None:
        """Decode a column value of unknown storage shape; None when it is not an identifier."""
        if v is None:
            return None
        if isinstance(v, (bytes, bytearray, memoryview)):
            if len(v) != 16:
                return None
            return cls.from_raw(v)
        if isinstance(v, str):
            return cls.try_parse(v)
        return None


def represents(value: Any, guid: CatalogGuid) -> bool:
    """True when a stored column value denotes guid in any rendering."""
    if value is None:
        return False
    if isinstance(value, (bytes, bytearray, memoryview)):
        b = bytes(value)
        return b == guid.raw or b == guid.value.bytes
    if isinstance(value, str):
        parsed = CatalogGuid.try_parse(value)
        return parsed is not None and parsed == guid
    return False


def rewrite_in_shape(old: Any, source: CatalogGuid, target: CatalogGuid) -> Any:
    """Render target in the storage shape old used for source."""
    if isinstance(old, str):
        return target.dashed if "-" in old else target.no_dashes
    if isinstance(old, (bytes, bytearray, memoryview)) and bytes(old) == source.value.bytes and source.value.bytes != source.raw:
        return target.value.bytes
    return target.raw
