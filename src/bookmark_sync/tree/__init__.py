"""Generic tree abstraction and builders."""

from bookmark_sync.tree.builder import (
    build_destination_tree,
    build_source_tree,
    build_tree,
    build_tree_from_pages,
    flatten_nested,
)
from bookmark_sync.tree.node import NodeData, TreeNode

__all__ = [
    "NodeData",
    "TreeNode",
    "build_destination_tree",
    "build_source_tree",
    "build_tree",
    "build_tree_from_pages",
    "flatten_nested",
]
