"""Concrete node types for the source service and the destination store.

Each type satisfies :class:`~bookmark_sync.tree.node.NodeData`, so the
tree and diff machinery can treat them uniformly.  Source ids are the
bookmark service's integer ids; destination ids are opaque strings.
"""

from __future__ import annotations

from dataclasses import dataclass

from bookmark_sync.urls import normalize_url

UNSORTED_COLLECTION_ID = -1
UNSORTED_FOLDER_TITLE = "📥 Unsorted"
UNTITLED_COLLECTION = "No Title"

_ITEM_ID_PREFIX = "item:"


@dataclass(frozen=True)
class SourceCollection:
    """A folder-like collection on the source service."""

    collection_id: int
    title: str
    parent_collection_id: int | None = None

    @property
    def id(self) -> str:
        return str(self.collection_id)

    @property
    def parent_id(self) -> str | None:
        if self.parent_collection_id is None:
            return None
        return str(self.parent_collection_id)

    @property
    def hash(self) -> str:
        return f"collection:{self.collection_id}"

    @property
    def name(self) -> str:
        return self.title or UNTITLED_COLLECTION

    @property
    def url(self) -> str | None:
        return None

    @property
    def is_folder(self) -> bool:
        return True


@dataclass(frozen=True)
class SourceItem:
    """A URL-bearing bookmark on the source service."""

    item_id: int
    collection_id: int
    title: str
    link: str
    last_update: str | None = None
    cover: str | None = None

    @property
    def id(self) -> str:
        # Prefixed so items never collide with collection ids in one tree.
        return f"{_ITEM_ID_PREFIX}{self.item_id}"

    @property
    def parent_id(self) -> str | None:
        return str(self.collection_id)

    @property
    def hash(self) -> str:
        return normalize_url(self.link)

    @property
    def name(self) -> str:
        return self.title

    @property
    def url(self) -> str | None:
        return self.link

    @property
    def is_folder(self) -> bool:
        return False


@dataclass(frozen=True)
class DestinationNode:
    """A folder (``url is None``) or bookmark in the destination store.

    This is also the reference type returned by every
    :class:`~bookmark_sync.sync.protocols.DestinationStore` call.
    """

    id: str
    parent_id: str | None
    title: str
    url: str | None = None

    @property
    def hash(self) -> str:
        if self.url is None:
            return f"folder:{self.id}"
        return normalize_url(self.url)

    @property
    def name(self) -> str:
        return self.title

    @property
    def is_folder(self) -> bool:
        return self.url is None
