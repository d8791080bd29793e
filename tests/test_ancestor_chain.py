from ancestor_chain import ensure_ancestors, walk_parents
from catalog_guid import CatalogGuid
from catalog_schema import FOLDER_TYPE, connect_db
from conftest import DST_ROOT, count, insert_item


def _chain(con):
    a = CatalogGuid.new()
    b = CatalogGuid.new()
    insert_item(con, a, FOLDER_TYPE, "/dst/A", name="A", parent=DST_ROOT, top=DST_ROOT, is_folder=1)
    insert_item(con, b, FOLDER_TYPE, "/dst/A/B", name="B", parent=a, top=DST_ROOT, is_folder=1)
    return a, b


def test_edges_for_every_ancestor(catalog):
    a, b = _chain(catalog)
    assert walk_parents(catalog, b) == [a, DST_ROOT]

    res = ensure_ancestors(catalog, b)

    assert (res.chain_length, res.inserted, res.skipped_existing) == (2, 2, 0)
    rows = catalog.execute("SELECT AncestorId, AncestorIdText FROM AncestorIds WHERE ItemId = ?", (b.raw,)).fetchall()
    assert {bytes(r[0]) for r in rows} == {a.raw, DST_ROOT.raw}
    assert {r[1] for r in rows} == {a.no_dashes, DST_ROOT.no_dashes}


def test_rerun_inserts_nothing(catalog):
    _, b = _chain(catalog)
    ensure_ancestors(catalog, b)
    again = ensure_ancestors(catalog, b)
    assert (again.inserted, again.skipped_existing) == (0, 2)
    assert count(catalog, "AncestorIds", "ItemId = ?", (b.raw,)) == 2


def test_root_item_has_no_ancestors(catalog):
    res = ensure_ancestors(catalog, DST_ROOT)
    assert (res.chain_length, res.inserted) == (0, 0)


def test_parent_cycle_terminates(catalog):
    a = CatalogGuid.new()
    b = CatalogGuid.new()
    insert_item(catalog, a, FOLDER_TYPE, "/loop/a", parent=b)
    insert_item(catalog, b, FOLDER_TYPE, "/loop/b", parent=a)

    assert walk_parents(catalog, a) == [b]
    assert walk_parents(catalog, a, max_hops=0) == []
    assert ensure_ancestors(catalog, a).inserted == 1


def test_text_ancestor_columns_are_written_dashed(tmp_path):
    con = connect_db(str(tmp_path / "text.db"))
    con.execute("CREATE TABLE TypedBaseItems (guid BLOB PRIMARY KEY, type TEXT, Path TEXT, ParentId BLOB)")
    con.execute("CREATE TABLE AncestorIds (ItemId TEXT, AncestorId TEXT)")
    parent = CatalogGuid.new()
    child = CatalogGuid.new()
    con.execute("INSERT INTO TypedBaseItems VALUES (?, 'x', '/p', NULL)", (parent.raw,))
    con.execute("INSERT INTO TypedBaseItems VALUES (?, 'x', '/p/c', ?)", (child.raw, parent.raw))

    assert ensure_ancestors(con, child).inserted == 1
    assert tuple(con.execute("SELECT ItemId, AncestorId FROM AncestorIds").fetchone()) == (child.dashed, parent.dashed)
    con.close()


def test_missing_ancestor_table_is_skipped(tmp_path):
    con = connect_db(str(tmp_path / "bare.db"))
    con.execute("CREATE TABLE TypedBaseItems (guid BLOB PRIMARY KEY, type TEXT, Path TEXT, ParentId BLOB)")
    res = ensure_ancestors(con, CatalogGuid.new())
    assert res.skipped_reason == "table_missing"
    assert res.inserted == 0
    con.close()


def test_prune_removes_edges_outside_the_current_chain(catalog):
    a, b = _chain(catalog)
    gone = CatalogGuid.new()
    catalog.execute(
        "INSERT INTO AncestorIds (ItemId, AncestorId, AncestorIdText) VALUES (?, ?, ?)",
        (b.raw, gone.raw, gone.no_dashes),
    )
    ensure_ancestors(catalog, b)
    assert count(catalog, "AncestorIds", "ItemId = ?", (b.raw,)) == 3

    res = ensure_ancestors(catalog, b, prune_stale=True)

    assert (res.chain_length, res.removed, res.inserted, res.skipped_existing) == (2, 1, 0, 2)
    rows = {bytes(r[0]) for r in catalog.execute("SELECT AncestorId FROM AncestorIds WHERE ItemId = ?", (b.raw,))}
    assert rows == {a.raw, DST_ROOT.raw}
