"""
Unit tests for folder hierarchy reconstruction and paths.

Tests cover:
- Forest construction in any input order
- Orphans and cycles
- Subtrees
- Name, entity ID and tx ID paths
"""

import random

import pytest

from sdk.arfs_sdk.entities import ArFSFileOrFolderWithPaths
from sdk.arfs_sdk.errors import HierarchyUsageError, NotFoundError
from sdk.arfs_sdk.hierarchy import FolderHierarchy
from sdk.arfs_sdk.types import ROOT_FOLDER_ID
from tests.factories import make_file, make_folder


@pytest.fixture
def folders():
    """root -> a -> b -> c, root -> d"""
    return [
        make_folder("c", "b"),
        make_folder("root", None, name="Drive"),
        make_folder("b", "a"),
        make_folder("d", "root"),
        make_folder("a", "root"),
    ]


class TestConstruction:
    """Tests for new_from_entities."""

    def test_every_folder_appears_once(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        assert sorted(hierarchy.all_folder_ids()) == ["a", "b", "c", "d", "root"]
        assert len(hierarchy) == 5

    def test_single_root(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        assert [r.folder_id for r in hierarchy.roots] == ["root"]

    def test_order_independent(self, folders):
        forward = FolderHierarchy.new_from_entities(folders)
        backward = FolderHierarchy.new_from_entities(list(reversed(folders)))
        for folder_id in forward.all_folder_ids():
            fwd = forward.node(folder_id).parent
            bwd = backward.node(folder_id).parent
            assert (fwd.folder_id if fwd else None) == (bwd.folder_id if bwd else None)

    def test_children_linked(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        children = {c.folder_id for c in hierarchy.node("root").children}
        assert children == {"a", "d"}

    def test_missing_parent_becomes_local_root(self):
        hierarchy = FolderHierarchy.new_from_entities([make_folder("x", "missing")])
        assert [r.folder_id for r in hierarchy.roots] == ["x"]

    def test_cycle_terminates(self):
        """A cycle is broken; every node still appears once."""
        hierarchy = FolderHierarchy.new_from_entities([make_folder("p", "q"), make_folder("q", "p")])
        assert sorted(hierarchy.all_folder_ids()) == ["p", "q"]
        assert len(hierarchy.roots) == 1

    def test_deep_chain_is_not_recursive(self):
        chain = [make_folder("f0", None)]
        chain.extend(make_folder(f"f{i}", f"f{i - 1}") for i in range(1, 5000))
        hierarchy = FolderHierarchy.new_from_entities(reversed(chain))
        assert len(hierarchy) == 5000

    def test_unknown_node_raises(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        with pytest.raises(NotFoundError):
            hierarchy.node("nope")


class TestSubtree:
    def test_subtree_contains_descendants_only(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        subtree = hierarchy.sub_tree_of("a")
        assert sorted(subtree.all_folder_ids()) == ["a", "b", "c"]
        assert [r.folder_id for r in subtree.roots] == ["a"]
        assert subtree.is_subtree

    def test_subtree_has_own_nodes(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        subtree = hierarchy.sub_tree_of("a")
        assert subtree.node("a") is not hierarchy.node("a")
        assert subtree.node("a").parent is None

    def test_paths_on_subtree_raise(self, folders):
        subtree = FolderHierarchy.new_from_entities(folders).sub_tree_of("a")
        with pytest.raises(HierarchyUsageError):
            subtree.path_to_folder_id("b")


class TestPaths:
    """Tests for path computation."""

    def test_root_folder_is_slash(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        assert hierarchy.path_to_folder_id("root") == "/"
        assert hierarchy.path_to_folder_id(ROOT_FOLDER_ID) == "/"

    def test_nested_paths(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        assert hierarchy.path_to_folder_id("a") == "/A/"
        assert hierarchy.path_to_folder_id("c") == "/A/B/C/"
        assert hierarchy.entity_path_to_folder_id("c") == "/a/b/c/"
        assert hierarchy.tx_path_to_folder_id("c") == "/tx-a/tx-b/tx-c/"

    def test_paths_have_same_shape(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        for folder_id in hierarchy.all_folder_ids():
            name_path = hierarchy.path_to_folder_id(folder_id)
            assert name_path.count("/") == hierarchy.entity_path_to_folder_id(folder_id).count("/")
            assert name_path.count("/") == hierarchy.tx_path_to_folder_id(folder_id).count("/")

    def test_orphan_keeps_its_segment(self):
        hierarchy = FolderHierarchy.new_from_entities([make_folder("x", "missing"), make_folder("y", "x")])
        assert hierarchy.path_to_folder_id("y") == "/X/Y/"

    def test_file_paths(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        file = make_file("f1", "a", "x.txt")
        annotated = ArFSFileOrFolderWithPaths.from_hierarchy(file, hierarchy)
        assert annotated.path == "/A/x.txt"
        assert annotated.entity_id_path == "/a/f1"
        assert annotated.tx_id_path == "/tx-a/tx-f1"

    def test_to_dict_adds_paths(self, folders):
        hierarchy = FolderHierarchy.new_from_entities(folders)
        result = ArFSFileOrFolderWithPaths.from_hierarchy(folders[0], hierarchy).to_dict()
        assert result["path"] == "/A/B/C/"
        assert result["entityIdPath"] == "/a/b/c/"
        assert result["entityType"] == "folder"
        assert result["parentFolderId"] == "b"


def random_forest(rng, size):
    """One drive root f0 and size - 1 folders, each under an earlier folder, shuffled."""
    parents = {"f0": None}
    for i in range(1, size):
        parents[f"f{i}"] = f"f{rng.randrange(i)}"
    folders = [make_folder(folder_id, parent) for folder_id, parent in parents.items()]
    rng.shuffle(folders)
    return parents, folders


def descendants(parents, folder_id):
    found = {folder_id}
    changed = True
    while changed:
        changed = False
        for child, parent in parents.items():
            if parent in found and child not in found:
                found.add(child)
                changed = True
    return found


def chain(parents, folder_id):
    ids = []
    while parents[folder_id] is not None:
        ids.append(folder_id)
        folder_id = parents[folder_id]
    return list(reversed(ids))


@pytest.mark.parametrize("seed", range(10))
class TestRandomForests:
    """Properties checked on seeded random forests in shuffled order."""

    def test_round_trip(self, seed):
        parents, folders = random_forest(random.Random(seed), 60)
        hierarchy = FolderHierarchy.new_from_entities(folders)
        assert set(hierarchy.all_folder_ids()) == set(parents)
        assert [r.folder_id for r in hierarchy.roots] == ["f0"]
        assert hierarchy.path_to_folder_id("f0") == "/"

    def test_subtree_is_exactly_the_descendants(self, seed):
        rng = random.Random(seed)
        parents, folders = random_forest(rng, 60)
        hierarchy = FolderHierarchy.new_from_entities(folders)
        target = rng.choice(sorted(parents))
        assert set(hierarchy.sub_tree_of(target).all_folder_ids()) == descendants(parents, target)

    def test_paths_follow_parent_chain(self, seed):
        parents, folders = random_forest(random.Random(seed), 60)
        hierarchy = FolderHierarchy.new_from_entities(folders)
        for folder_id in parents:
            ids = chain(parents, folder_id)
            name_path = hierarchy.path_to_folder_id(folder_id)
            assert name_path == "/" + "".join(f"{i.upper()}/" for i in ids)
            assert name_path.count("/") == hierarchy.entity_path_to_folder_id(folder_id).count("/")
            assert name_path.count("/") == hierarchy.tx_path_to_folder_id(folder_id).count("/")
