"""In-memory destination store.

Implements the full :class:`~bookmark_sync.sync.protocols.DestinationStore`
contract with the semantics of a browser bookmark API: string ids,
ordered children, exact-URL search, and removal of non-empty folders
only through :meth:`remove_subtree`.
"""

from __future__ import annotations

import dataclasses
import logging

from bookmark_sync.models import DestinationNode

logger = logging.getLogger(__name__)


class MemoryBookmarkStore:
    """Bookmark tree kept entirely in memory.

    Every mutation is appended to :attr:`mutations` as an
    ``(operation, node_id)`` pair, which callers can use to audit what
    a sync run touched.

    Args:
        root_title: Title of the top-level node.
        root_id: Id of the top-level node.
    """

    def __init__(self, root_title: str = "", root_id: str = "0") -> None:
        self._nodes: dict[str, DestinationNode] = {}
        self._children: dict[str, list[str]] = {}
        self._next_id = 1
        self.mutations: list[tuple[str, str]] = []
        self.root_id = root_id
        self.insert(DestinationNode(id=root_id, parent_id=None, title=root_title))

    # ------------------------------------------------------------------
    # Loading / inspection
    # ------------------------------------------------------------------

    def insert(self, node: DestinationNode) -> DestinationNode:
        """Insert a node with a caller-chosen id, e.g. when loading from disk.

        Raises:
            ValueError: If the id is taken or the parent is not a folder.
        """
        if node.id in self._nodes:
            raise ValueError(f"Bookmark node {node.id} already exists")
        if node.parent_id is not None:
            self._require_folder(node.parent_id)
            self._children[node.parent_id].append(node.id)
        self._nodes[node.id] = node
        if node.is_folder:
            self._children[node.id] = []
        if node.id.isdigit():
            self._next_id = max(self._next_id, int(node.id) + 1)
        return node

    def get(self, node_id: str) -> DestinationNode | None:
        return self._nodes.get(node_id)

    def children_of(self, folder_id: str) -> list[DestinationNode]:
        return [self._nodes[child] for child in self._children.get(folder_id, [])]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    # ------------------------------------------------------------------
    # DestinationStore protocol
    # ------------------------------------------------------------------

    async def create_folder(self, parent_id: str, title: str) -> DestinationNode:
        node = self.insert(
            DestinationNode(id=self._allocate_id(), parent_id=parent_id, title=title)
        )
        self.mutations.append(("create_folder", node.id))
        return node

    async def create_item(self, parent_id: str, title: str, url: str) -> DestinationNode:
        node = self.insert(
            DestinationNode(
                id=self._allocate_id(), parent_id=parent_id, title=title, url=url
            )
        )
        self.mutations.append(("create_item", node.id))
        return node

    async def update_item(self, item_id: str, *, title: str) -> None:
        node = self._require(item_id)
        self._nodes[item_id] = dataclasses.replace(node, title=title)
        self.mutations.append(("update_item", item_id))

    async def move_item(self, item_id: str, new_parent_id: str) -> None:
        node = self._require(item_id)
        self._require_folder(new_parent_id)
        if node.parent_id is None:
            raise ValueError("The root node cannot be moved")
        if self._is_descendant(new_parent_id, item_id):
            raise ValueError(f"Cannot move {item_id} into its own subtree")
        self._children[node.parent_id].remove(item_id)
        self._children[new_parent_id].append(item_id)
        self._nodes[item_id] = dataclasses.replace(node, parent_id=new_parent_id)
        self.mutations.append(("move_item", item_id))

    async def remove_item(self, item_id: str) -> None:
        node = self._require(item_id)
        if self._children.get(item_id):
            raise ValueError(f"Folder {item_id} is not empty")
        self._detach(node)
        self.mutations.append(("remove_item", item_id))

    async def remove_subtree(self, node_id: str) -> None:
        node = self._require(node_id)
        self._detach(node)
        self.mutations.append(("remove_subtree", node_id))

    async def find_items_by_url(self, url: str) -> list[DestinationNode]:
        return [n for n in self._nodes.values() if n.url is not None and n.url == url]

    async def get_folder(self, folder_id: str) -> DestinationNode | None:
        node = self._nodes.get(folder_id)
        if node is None or not node.is_folder:
            return None
        return node

    async def list_children(self, folder_id: str) -> list[DestinationNode]:
        self._require_folder(folder_id)
        return self.children_of(folder_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _allocate_id(self) -> str:
        while str(self._next_id) in self._nodes:
            self._next_id += 1
        node_id = str(self._next_id)
        self._next_id += 1
        return node_id

    def _require(self, node_id: str) -> DestinationNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Bookmark node {node_id} not found")
        return node

    def _require_folder(self, folder_id: str) -> DestinationNode:
        node = self._require(folder_id)
        if not node.is_folder:
            raise ValueError(f"Bookmark node {folder_id} is not a folder")
        return node

    def _is_descendant(self, node_id: str, ancestor_id: str) -> bool:
        current: str | None = node_id
        while current is not None:
            if current == ancestor_id:
                return True
            current = self._nodes[current].parent_id
        return False

    def _detach(self, node: DestinationNode) -> None:
        if node.parent_id is None:
            raise ValueError("The root node cannot be removed")
        self._children[node.parent_id].remove(node.id)
        stack = [node.id]
        while stack:
            current = stack.pop()
            stack.extend(self._children.pop(current, []))
            del self._nodes[current]
        logger.debug("Removed bookmark node %s", node.id)
