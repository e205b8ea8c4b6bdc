"""Generic tree structure shared by the source and destination sides.

Every element of either tree satisfies the small :class:`NodeData`
capability.  :class:`TreeNode` owns one payload and an ordered list of
children, and is built from a flat listing by :meth:`TreeNode.create_tree`.
Trees are immutable snapshots once built.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Generic, Protocol, TypeVar, runtime_checkable

from bookmark_sync.errors import MalformedTreeError


@runtime_checkable
class NodeData(Protocol):
    """Identity contract every tree element must satisfy.

    ``url`` is ``None`` exactly when the node is a folder; ``is_folder``
    repeats that for readability at call sites.  ``hash`` is a content
    fingerprint that may be used for cross-tree matching.
    """

    @property
    def id(self) -> str: ...

    @property
    def parent_id(self) -> str | None: ...

    @property
    def hash(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def url(self) -> str | None: ...

    @property
    def is_folder(self) -> bool: ...


T = TypeVar("T", bound=NodeData)


class TreeNode(Generic[T]):
    """A node owning a :class:`NodeData` payload and its ordered children.

    The synthetic wrapping root produced by :meth:`create_tree` carries
    ``data=None`` and is excluded from paths.

    Args:
        data: The payload, or ``None`` for a synthetic root.
        parent: Back-reference to the owning node.
    """

    def __init__(self, data: T | None, parent: TreeNode[T] | None = None) -> None:
        self.data = data
        self.parent = parent
        self.children: list[TreeNode[T]] = []

    def __repr__(self) -> str:
        label = self.data.name if self.data is not None else "<root>"
        return f"TreeNode({label!r}, children={len(self.children)})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create_tree(cls, root_data: T | None, flat_list: Iterable[T]) -> TreeNode[T]:
        """Build a tree from a flat listing linked by ``parent_id``.

        Nodes whose ``parent_id`` is ``None`` (or equals ``root_data.id``)
        become children of the returned root.  When ``root_data`` is
        ``None`` the returned root is a synthetic wrapper; the real
        top-level nodes are its children.  Sibling order follows the
        order of ``flat_list``.

        Args:
            root_data: Payload for the root, or ``None`` for a synthetic root.
            flat_list: Every other node, in listing order.

        Returns:
            The root ``TreeNode``.

        Raises:
            MalformedTreeError: If an id is duplicated, a ``parent_id``
                cannot be resolved, or the parent links form a cycle.
        """
        root: TreeNode[T] = cls(root_data)
        root_id = root_data.id if root_data is not None else None

        index: dict[str, TreeNode[T]] = {}
        order: list[TreeNode[T]] = []
        for data in flat_list:
            if data.id in index or data.id == root_id:
                raise MalformedTreeError(f"Duplicate node id: {data.id}")
            node = cls(data)
            index[data.id] = node
            order.append(node)

        for node in order:
            assert node.data is not None  # noqa: S101
            parent_id = node.data.parent_id
            if parent_id is None or parent_id == root_id:
                parent = root
            elif parent_id in index:
                parent = index[parent_id]
            else:
                raise MalformedTreeError(
                    f"Node {node.data.id} references unknown parent {parent_id}"
                )
            if parent is node:
                raise MalformedTreeError(f"Node {node.data.id} is its own parent")
            node.parent = parent
            parent.children.append(node)

        # Nodes caught in a cycle are linked to each other but never to the root.
        reachable = sum(1 for _ in root.walk()) - 1
        if reachable != len(order):
            raise MalformedTreeError(
                f"Parent links form a cycle: {len(order) - reachable} node(s) "
                "are unreachable from the root"
            )
        return root

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def depth(self) -> int:
        """Number of real (non-synthetic) nodes from the root down to this one."""
        return len(self.get_full_path())

    def get_full_path(self, stop_at: TreeNode[T] | None = None) -> list[str]:
        """Return the names from the root (exclusive) down to this node.

        Walks parent back-references, so the cost is O(depth).

        Args:
            stop_at: Optional ancestor to treat as the root; its own name
                and everything above it are excluded.

        Returns:
            The ordered list of ``name`` values.
        """
        names: list[str] = []
        node: TreeNode[T] | None = self
        while node is not None and node is not stop_at:
            if node.data is not None:
                names.append(node.data.name)
            node = node.parent
        names.reverse()
        return names

    def walk(self) -> Iterator[TreeNode[T]]:
        """Pre-order depth-first traversal, including this node."""
        stack: list[TreeNode[T]] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def walk_bfs(self) -> Iterator[TreeNode[T]]:
        """Breadth-first traversal, including this node."""
        queue: deque[TreeNode[T]] = deque([self])
        while queue:
            node = queue.popleft()
            yield node
            queue.extend(node.children)

    def leaves(self) -> Iterator[TreeNode[T]]:
        """Yield every URL-bearing descendant in pre-order."""
        for node in self.walk():
            if node.data is not None and not node.data.is_folder:
                yield node

    def find(self, node_id: str) -> TreeNode[T] | None:
        """Return the descendant (or self) whose payload has ``node_id``."""
        for node in self.walk():
            if node.data is not None and node.data.id == node_id:
                return node
        return None
