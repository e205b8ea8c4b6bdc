"""Protocol definitions (ports) for the reconciliation engine.

The engine only talks to the source service, the destination store and
the state store through these protocols, so it can be exercised against
in-memory implementations.  Every method is a suspension point.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from bookmark_sync.models import DestinationNode, SourceCollection, SourceItem
    from bookmark_sync.sync.state import SyncState
    from bookmark_sync.tree.node import TreeNode


class SourceListing(Protocol):
    async def list_collections_as_tree(self) -> TreeNode[SourceCollection]: ...

    async def list_items(self, collection_id: int) -> list[SourceItem]: ...


class DestinationStore(Protocol):
    async def create_folder(self, parent_id: str, title: str) -> DestinationNode: ...

    async def create_item(self, parent_id: str, title: str, url: str) -> DestinationNode: ...

    async def update_item(self, item_id: str, *, title: str) -> None: ...

    async def move_item(self, item_id: str, new_parent_id: str) -> None: ...

    async def remove_item(self, item_id: str) -> None: ...

    async def remove_subtree(self, node_id: str) -> None: ...

    async def find_items_by_url(self, url: str) -> list[DestinationNode]: ...

    async def get_folder(self, folder_id: str) -> DestinationNode | None: ...

    async def list_children(self, folder_id: str) -> list[DestinationNode]: ...


class SyncStateStore(Protocol):
    async def load(self) -> SyncState | None: ...

    async def save(self, state: SyncState) -> None: ...
