"""Diffing utilities for comparing a source tree with a destination tree.

Both trees are flattened into maps keyed by a matching key (normalized
URL for bookmarks, relative folder path for folders) and the keys are
partitioned into four disjoint categories.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from bookmark_sync.tree.node import NodeData, TreeNode
from bookmark_sync.urls import normalize_url

L = TypeVar("L", bound=NodeData)
R = TypeVar("R", bound=NodeData)

KeyFunction = Callable[[TreeNode[Any], TreeNode[Any]], str]


@dataclass(frozen=True)
class MatchedPair(Generic[L, R]):
    """A source node and the destination node it was matched with."""

    left: TreeNode[L]
    right: TreeNode[R]


@dataclass
class SyncDiff(Generic[L, R]):
    """Result of :func:`compute_diff`; the four lists are disjoint."""

    only_in_left: list[TreeNode[L]] = field(default_factory=list)
    only_in_right: list[TreeNode[R]] = field(default_factory=list)
    in_both_but_different: list[MatchedPair[L, R]] = field(default_factory=list)
    unchanged: list[MatchedPair[L, R]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """``True`` when nothing needs to change on the destination."""
        return not (self.only_in_left or self.only_in_right or self.in_both_but_different)

    def summary(self) -> dict[str, int]:
        return {
            "only_in_left": len(self.only_in_left),
            "only_in_right": len(self.only_in_right),
            "in_both_but_different": len(self.in_both_but_different),
            "unchanged": len(self.unchanged),
        }


# ------------------------------------------------------------------
# Key functions
# ------------------------------------------------------------------


def path_key(node: TreeNode[Any], root: TreeNode[Any]) -> str:
    """Default matching key.

    Bookmarks are keyed by normalized URL.  Folders are keyed by their
    path relative to the compared root, so a folder matches independently
    of its contents.
    """
    assert node.data is not None  # noqa: S101
    if node.data.is_folder:
        segments = (
            name.replace("\\", "\\\\").replace("/", "\\/")
            for name in node.get_full_path(root)
        )
        return "folder:" + "/".join(segments)
    return "url:" + normalize_url(node.data.url or "")


def hash_key(node: TreeNode[Any], root: TreeNode[Any]) -> str:
    """Match on each payload's own ``hash`` fingerprint."""
    assert node.data is not None  # noqa: S101
    return node.data.hash


# ------------------------------------------------------------------
# Diff
# ------------------------------------------------------------------


def _index(
    root: TreeNode[Any], key_of: KeyFunction
) -> tuple[dict[str, TreeNode[Any]], list[TreeNode[Any]]]:
    """Map keys to the first node seen in pre-order; later duplicates are extras."""
    first: dict[str, TreeNode[Any]] = {}
    extras: list[TreeNode[Any]] = []
    for node in root.walk():
        if node is root or node.data is None:
            continue
        key = key_of(node, root)
        if key in first:
            extras.append(node)
        else:
            first[key] = node
    return first, extras


def _attributes_differ(left: NodeData, right: NodeData) -> bool:
    if left.name != right.name:
        return True
    if left.is_folder != right.is_folder:
        return True
    if left.is_folder:
        return False
    return left.url != right.url


def compute_diff(
    left: TreeNode[L],
    right: TreeNode[R],
    key_of: KeyFunction = path_key,
) -> SyncDiff[L, R]:
    """Partition the nodes of two trees into the four diff categories.

    The roots themselves are not compared.  When a key occurs more than
    once on one side, the first node in pre-order takes part in the match
    and the others are reported as ``only_in_left`` / ``only_in_right``.

    Args:
        left: The source tree.
        right: The destination tree.
        key_of: Called as ``key_of(node, root)``; defaults to :func:`path_key`.

    Returns:
        A ``SyncDiff`` whose lists preserve traversal order.
    """
    left_index, left_extras = _index(left, key_of)
    right_index, right_extras = _index(right, key_of)

    diff: SyncDiff[L, R] = SyncDiff()
    for key, left_node in left_index.items():
        right_node = right_index.get(key)
        if right_node is None:
            diff.only_in_left.append(left_node)
            continue
        assert left_node.data is not None and right_node.data is not None  # noqa: S101
        pair = MatchedPair(left=left_node, right=right_node)
        if _attributes_differ(left_node.data, right_node.data):
            diff.in_both_but_different.append(pair)
        else:
            diff.unchanged.append(pair)

    diff.only_in_left.extend(left_extras)
    diff.only_in_right.extend(
        node for key, node in right_index.items() if key not in left_index
    )
    diff.only_in_right.extend(right_extras)
    return diff
