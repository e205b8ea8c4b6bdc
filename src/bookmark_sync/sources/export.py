"""Source listing backed by a bookmark-service JSON export.

The export mirrors the service's REST payloads::

    {
      "collections": [{"_id": 12, "title": "Reading", "parent": {"$id": 3}}, ...],
      "raindrops": [{"_id": 7, "link": "...", "title": "...",
                     "collection": {"$id": 12}, "lastUpdate": "...", "cover": "..."}, ...]
    }

Collection ``-1`` is the unsorted pseudo-collection and never appears in
``collections``; collection ``-99`` (trash) is ignored.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any

from bookmark_sync.models import SourceCollection, SourceItem
from bookmark_sync.tree.builder import build_tree
from bookmark_sync.tree.node import TreeNode

logger = logging.getLogger(__name__)

TRASH_COLLECTION_ID = -99


def _ref_id(value: Any) -> int | None:
    """Extract the id from a ``{"$id": n}`` reference (or a bare int)."""
    if isinstance(value, dict):
        value = value.get("$id")
    if value is None:
        return None
    return int(value)


class ExportSource:
    """In-memory :class:`~bookmark_sync.sync.protocols.SourceListing`.

    Args:
        collections: Collections in listing order.
        items: Bookmarks in listing order.
    """

    def __init__(
        self, collections: list[SourceCollection], items: list[SourceItem]
    ) -> None:
        self._collections = list(collections)
        self._items_by_collection: dict[int, list[SourceItem]] = defaultdict(list)
        for item in items:
            self._items_by_collection[item.collection_id].append(item)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExportSource:
        """Parse the export payload.

        Raises:
            KeyError: If a collection or bookmark lacks its ``_id``.
        """
        collections = [
            SourceCollection(
                collection_id=int(raw["_id"]),
                title=raw.get("title") or "",
                parent_collection_id=_ref_id(raw.get("parent")),
            )
            for raw in data.get("collections", [])
        ]

        items: list[SourceItem] = []
        for raw in data.get("raindrops", []):
            collection_id = _ref_id(raw.get("collection"))
            if collection_id is None:
                collection_id = _ref_id(raw.get("collectionId"))
            if collection_id is None or collection_id == TRASH_COLLECTION_ID:
                continue
            items.append(
                SourceItem(
                    item_id=int(raw["_id"]),
                    collection_id=collection_id,
                    title=raw.get("title") or "",
                    link=raw["link"],
                    last_update=raw.get("lastUpdate"),
                    cover=raw.get("cover") or None,
                )
            )

        logger.debug(
            "Parsed export with %d collection(s) and %d bookmark(s)",
            len(collections), len(items),
        )
        return cls(collections, items)

    @classmethod
    def from_file(cls, path: str | Path) -> ExportSource:
        raw = Path(path).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(raw))

    # ------------------------------------------------------------------
    # SourceListing protocol
    # ------------------------------------------------------------------

    async def list_collections_as_tree(self) -> TreeNode[SourceCollection]:
        return build_tree(self._collections)

    async def list_items(self, collection_id: int) -> list[SourceItem]:
        return list(self._items_by_collection.get(collection_id, []))
