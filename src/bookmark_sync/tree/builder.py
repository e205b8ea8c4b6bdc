"""Builders that turn listings from either side into ``TreeNode`` hierarchies.

Listings arrive flat (each item knows its parent id), paginated, or
already nested (Chromium JSON); all of them end up in
:meth:`TreeNode.create_tree`.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterable, Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from bookmark_sync.errors import DestinationFolderMissing
from bookmark_sync.models import (
    UNSORTED_COLLECTION_ID,
    UNSORTED_FOLDER_TITLE,
    DestinationNode,
    SourceCollection,
)
from bookmark_sync.tree.node import NodeData, TreeNode

if TYPE_CHECKING:
    from bookmark_sync.sync.protocols import DestinationStore, SourceListing

T = TypeVar("T", bound=NodeData)
N = TypeVar("N")


def build_tree(flat: Iterable[T], root: T | None = None) -> TreeNode[T]:
    """Build a tree from a flat listing; see :meth:`TreeNode.create_tree`."""
    return TreeNode.create_tree(root, flat)


async def build_tree_from_pages(
    pages: AsyncIterable[Iterable[T]], root: T | None = None
) -> TreeNode[T]:
    """Concatenate pages in arrival order, then build the tree.

    Args:
        pages: Async iterable yielding one page of nodes at a time.
        root: Optional root payload.
    """
    flat: list[T] = []
    async for page in pages:
        flat.extend(page)
    return TreeNode.create_tree(root, flat)


def flatten_nested(
    root: N,
    children_of: Callable[[N], Iterable[N]],
    to_data: Callable[[N], T],
) -> list[T]:
    """Flatten an already-nested structure breadth-first.

    Args:
        root: The top of the nested structure (included in the result).
        children_of: Returns the direct children of a nested node.
        to_data: Converts a nested node into its ``NodeData`` payload.

    Returns:
        The payloads in BFS order, ready for :func:`build_tree`.
    """
    flat: list[T] = []
    queue: deque[N] = deque([root])
    while queue:
        node = queue.popleft()
        flat.append(to_data(node))
        queue.extend(children_of(node))
    return flat


async def build_source_tree(
    listing: SourceListing, *, include_unsorted: bool = True
) -> TreeNode[Any]:
    """Build the full source tree: collections as folders, items as leaves.

    The unsorted pseudo-collection is appended as a top-level folder
    named like its destination counterpart, but only when it holds items
    whose URL no collection already lists.
    """
    collection_tree = await listing.list_collections_as_tree()
    collections: list[SourceCollection] = [
        node.data for node in collection_tree.walk() if node.data is not None
    ]
    item_lists = await asyncio.gather(
        *(listing.list_items(c.collection_id) for c in collections)
    )

    flat: list[Any] = list(collections)
    seen: set[str] = set()
    placed: set[str] = set()
    for items in item_lists:
        for item in items:
            if item.id not in seen:
                seen.add(item.id)
                placed.add(item.hash)
                flat.append(item)

    if include_unsorted:
        loose = []
        for item in await listing.list_items(UNSORTED_COLLECTION_ID):
            # The unsorted listing may repeat items already placed in a collection.
            if item.id in seen or item.hash in placed:
                continue
            seen.add(item.id)
            placed.add(item.hash)
            loose.append(item)
        if loose:
            flat.append(
                SourceCollection(
                    collection_id=UNSORTED_COLLECTION_ID, title=UNSORTED_FOLDER_TITLE
                )
            )
            flat.extend(loose)
    return TreeNode.create_tree(None, flat)


async def build_destination_tree(
    store: DestinationStore, root_id: str
) -> TreeNode[DestinationNode]:
    """Snapshot the destination subtree rooted at ``root_id``.

    Raises:
        DestinationFolderMissing: If ``root_id`` does not exist.
    """
    root = await store.get_folder(root_id)
    if root is None:
        raise DestinationFolderMissing(root_id)

    flat: list[DestinationNode] = []
    queue: deque[str] = deque([root_id])
    while queue:
        children = await store.list_children(queue.popleft())
        flat.extend(children)
        queue.extend(child.id for child in children if child.is_folder)
    return TreeNode.create_tree(root, flat)
