import pytest

from catalog_common import CancellationToken
from catalog_errors import MigrationCancelled, PathOutsideBase, RootNotFound
from catalog_guid import CatalogGuid
from catalog_schema import FOLDER_TYPE
from conftest import DST_ROOT, count
from folder_tree import FolderTreeBuilder, is_windows_style, join_catalog_path, relative_segments


def test_creates_each_missing_level_once(catalog):
    tree = FolderTreeBuilder.open(catalog, DST_ROOT)
    assert tree.base_path == "/dst"

    leaf = tree.ensure_folder_path("/dst/M/Movie One")
    assert tree.folders_created == 2

    row = catalog.execute("SELECT type, Name, Path, ParentId, TopParentId, IsFolder FROM TypedBaseItems WHERE guid = ?", (leaf.raw,)).fetchone()
    assert row["type"] == FOLDER_TYPE
    assert row["Name"] == "Movie One"
    assert row["Path"] == "/dst/M/Movie One"
    assert row["TopParentId"] == DST_ROOT.no_dashes
    assert row["IsFolder"] == 1
    parent = CatalogGuid.from_raw(row["ParentId"])
    assert catalog.execute("SELECT Path FROM TypedBaseItems WHERE guid = ?", (parent.raw,)).fetchone()[0] == "/dst/M"
    assert count(catalog, "AncestorIds", "ItemId = ?", (leaf.raw,)) == 2

    again = tree.ensure_folder_path("/dst/m/MOVIE ONE/")
    assert again == leaf
    assert tree.folders_created == 2


def test_base_path_itself_is_the_root(catalog):
    tree = FolderTreeBuilder.open(catalog, DST_ROOT)
    assert tree.ensure_folder_path("/dst/") == DST_ROOT
    assert tree.ensure_folder_path("") == DST_ROOT
    assert tree.folders_created == 0


@pytest.mark.parametrize("target", ["/dstx/a", "/src/a", "relative/a"])
def test_rejects_paths_outside_base(catalog, target):
    tree = FolderTreeBuilder.open(catalog, DST_ROOT)
    with pytest.raises(PathOutsideBase):
        tree.ensure_folder_path(target)


def test_unknown_root(catalog):
    with pytest.raises(RootNotFound):
        FolderTreeBuilder.open(catalog, CatalogGuid.new())


def test_cancelled_before_first_segment(catalog):
    cancel = CancellationToken()
    cancel.set()
    tree = FolderTreeBuilder.open(catalog, DST_ROOT, cancel=cancel)
    with pytest.raises(MigrationCancelled):
        tree.ensure_folder_path("/dst/x")
    assert count(catalog, "TypedBaseItems", "Path = '/dst/x'") == 0


def test_windows_style_paths():
    assert is_windows_style(r"D:\Movies")
    assert is_windows_style(r"\\nas\share")
    assert not is_windows_style("/mnt/d/Movies")
    assert join_catalog_path("D:\\Movies\\", "A") == r"D:\Movies\A"
    assert join_catalog_path("/dst/", "A") == "/dst/A"
    assert relative_segments(r"D:\Movies", r"d:\movies\A\Movie One") == ["A", "Movie One"]
