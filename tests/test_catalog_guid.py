import uuid

import pytest

from catalog_errors import IdentifierMalformed, InvalidIdentifier
from catalog_guid import CatalogGuid, represents, rewrite_in_shape

TEXT = "0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0"


def test_renderings_are_consistent():
    g = CatalogGuid.parse(TEXT)
    assert g.dashed == TEXT
    assert g.no_dashes == TEXT.replace("-", "")
    assert g.raw == uuid.UUID(TEXT).bytes_le
    assert g.raw[:4] == bytes.fromhex("3c2d1e0f")
    assert CatalogGuid.from_raw(g.raw) == g
    assert str(g) == g.no_dashes


@pytest.mark.parametrize(
    "text",
    [TEXT, TEXT.upper(), TEXT.replace("-", ""), "{" + TEXT + "}", "  " + TEXT + "\n"],
)
def test_parse_accepts_common_forms(text):
    assert CatalogGuid.parse(text).dashed == TEXT


@pytest.mark.parametrize("text", ["", "   ", "not-a-guid", TEXT[:-1]])
def test_parse_rejects_malformed(text):
    with pytest.raises(IdentifierMalformed):
        CatalogGuid.parse(text)
    assert CatalogGuid.try_parse(text) is None


def test_from_raw_requires_16_bytes():
    with pytest.raises(InvalidIdentifier):
        CatalogGuid.from_raw(b"\x01" * 15)
    with pytest.raises(ValueError):
        CatalogGuid.from_raw(b"\x01" * 17)


def test_from_db_value_handles_unknown_shapes():
    g = CatalogGuid.parse(TEXT)
    assert CatalogGuid.from_db_value(g.raw) == g
    assert CatalogGuid.from_db_value(g.no_dashes) == g
    assert CatalogGuid.from_db_value(None) is None
    assert CatalogGuid.from_db_value(b"\x00" * 4) is None
    assert CatalogGuid.from_db_value("garbage") is None
    assert CatalogGuid.from_db_value(42) is None
    assert CatalogGuid.from_db_value(b"\x00" * 16).is_empty


def test_represents_any_storage_shape():
    g = CatalogGuid.parse(TEXT)
    other = CatalogGuid.new()
    assert represents(g.raw, g)
    assert represents(g.value.bytes, g)
    assert represents(g.dashed.upper(), g)
    assert represents(g.no_dashes, g)
    assert not represents(other.raw, g)
    assert not represents(None, g)
    assert not represents(7, g)


def test_rewrite_keeps_storage_shape():
    src = CatalogGuid.parse(TEXT)
    dst = CatalogGuid.new()
    assert rewrite_in_shape(src.dashed, src, dst) == dst.dashed
    assert rewrite_in_shape(src.no_dashes, src, dst) == dst.no_dashes
    assert rewrite_in_shape(src.raw, src, dst) == dst.raw
    assert rewrite_in_shape(src.value.bytes, src, dst) == dst.value.bytes
