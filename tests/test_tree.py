"""Tests for TreeNode construction, traversal and the tree builders."""

from __future__ import annotations

import unittest

import pytest
from tree_helpers import FakeNode, folder, leaf

from bookmark_sync.errors import MalformedTreeError
from bookmark_sync.tree import (
    NodeData,
    TreeNode,
    build_tree,
    build_tree_from_pages,
    flatten_nested,
)


def _sample() -> list[FakeNode]:
    return [
        folder("a", None, "A"),
        folder("b", "a", "B"),
        leaf("c", "b", "http://c.com", "C"),
        leaf("d", "a", "http://d.com", "D"),
        folder("e", None, "E"),
        leaf("f", "e", "http://f.com", "F"),
    ]


# ---------------------------------------------------------------------------
# create_tree
# ---------------------------------------------------------------------------


def test_fake_node_satisfies_node_data() -> None:
    assert isinstance(folder("x", None), NodeData)


def test_synthetic_root_wraps_top_level_nodes() -> None:
    root = TreeNode.create_tree(None, _sample())

    assert root.data is None
    assert [c.data.id for c in root.children] == ["a", "e"]
    assert root.get_full_path() == []
    assert root.depth == 0


def test_explicit_root_adopts_children_by_id() -> None:
    root_data = folder("r", None, "Root")
    nodes = [folder("x", "r"), leaf("y", "x", "http://y.com")]

    root = TreeNode.create_tree(root_data, nodes)

    assert root.data is root_data
    assert [c.data.id for c in root.children] == ["x"]
    assert root.find("y").get_full_path() == ["Root", "x", "y"]
    assert root.find("y").get_full_path(stop_at=root) == ["x", "y"]


def test_sibling_order_follows_listing_order() -> None:
    nodes = [folder("p", None), leaf("z", "p", "http://z"), leaf("a", "p", "http://a")]
    root = TreeNode.create_tree(None, nodes)
    assert [c.data.id for c in root.find("p").children] == ["z", "a"]


def test_children_may_precede_their_parent() -> None:
    nodes = [leaf("c", "p", "http://c"), folder("p", None)]
    root = TreeNode.create_tree(None, nodes)
    assert root.find("c").parent is root.find("p")


def test_path_length_equals_depth() -> None:
    root = TreeNode.create_tree(None, _sample())
    for node in root.walk():
        assert len(node.get_full_path()) == node.depth
    assert root.find("c").get_full_path() == ["A", "B", "C"]


def test_walks_visit_every_node_exactly_once() -> None:
    nodes = _sample()
    root = TreeNode.create_tree(None, nodes)

    dfs = [n.data.id for n in root.walk() if n.data is not None]
    bfs = [n.data.id for n in root.walk_bfs() if n.data is not None]

    assert sorted(dfs) == sorted(n.id for n in nodes)
    assert sorted(bfs) == sorted(dfs)
    assert dfs == ["a", "b", "c", "d", "e", "f"]
    assert bfs == ["a", "e", "b", "d", "f", "c"]


def test_leaves_and_find() -> None:
    root = TreeNode.create_tree(None, _sample())

    assert [n.data.id for n in root.leaves()] == ["c", "d", "f"]
    assert root.find("missing") is None
    assert root.find("c").is_leaf
    assert not root.find("a").is_leaf


def test_unknown_parent_is_rejected() -> None:
    with pytest.raises(MalformedTreeError, match="unknown parent"):
        TreeNode.create_tree(None, [folder("a", None), leaf("b", "ghost", "http://b")])


def test_duplicate_id_is_rejected() -> None:
    with pytest.raises(MalformedTreeError, match="Duplicate"):
        TreeNode.create_tree(None, [folder("a", None), folder("a", None)])


def test_self_parent_is_rejected() -> None:
    with pytest.raises(MalformedTreeError, match="own parent"):
        TreeNode.create_tree(None, [folder("a", "a")])


def test_cycle_is_rejected() -> None:
    nodes = [folder("root", None), folder("x", "y"), folder("y", "x")]
    with pytest.raises(MalformedTreeError, match="cycle"):
        TreeNode.create_tree(None, nodes)


def test_empty_listing_yields_bare_root() -> None:
    root = build_tree([])
    assert root.data is None
    assert root.children == []


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def test_flatten_nested_is_breadth_first() -> None:
    nested = {
        "id": "top",
        "children": [
            {"id": "a", "children": [{"id": "a1", "children": []}]},
            {"id": "b", "children": []},
        ],
    }

    flat = flatten_nested(
        (nested, None),
        lambda pair: [(child, pair[0]["id"]) for child in pair[0]["children"]],
        lambda pair: folder(pair[0]["id"], pair[1]),
    )

    assert [n.id for n in flat] == ["top", "a", "b", "a1"]
    root = build_tree(flat)
    assert root.find("a1").get_full_path() == ["top", "a", "a1"]


class TestBuildTreeFromPages(unittest.IsolatedAsyncioTestCase):
    async def test_pages_are_concatenated_in_arrival_order(self):
        async def pages():
            yield [folder("a", None), leaf("x", "b", "http://x")]
            yield [folder("b", "a")]
            yield []

        root = await build_tree_from_pages(pages())

        assert [n.data.id for n in root.walk() if n.data is not None] == ["a", "b", "x"]

    async def test_malformed_pages_raise(self):
        async def pages():
            yield [leaf("x", "nowhere", "http://x")]

        with self.assertRaises(MalformedTreeError):
            await build_tree_from_pages(pages())
