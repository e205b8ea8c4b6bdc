"""Destination store backed by a Chromium ``Bookmarks`` JSON file.

The file layout is ``{"checksum": ..., "roots": {"bookmark_bar": {...},
"other": {...}, "synced": {...}}, "version": 1}``; every node carries
``id``, ``name``, ``type`` (``url`` or ``folder``), ``url`` for bookmarks
and ``children`` for folders.  The file is loaded into a
:class:`MemoryBookmarkStore`, mutated in memory, and written back by
:meth:`ChromiumBookmarkStore.save`.  The browser must not be running
while the file is rewritten.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bookmark_sync.destination.memory import MemoryBookmarkStore
from bookmark_sync.models import DestinationNode
from bookmark_sync.tree.builder import build_tree, flatten_nested

logger = logging.getLogger(__name__)

ROOT_FOLDERS: dict[str, str] = {
    "bookmark_bar": "Bookmarks bar",
    "other": "Other bookmarks",
    "synced": "Mobile bookmarks",
}
MANAGED_PARENT_ROOT = "other"

# WebKit timestamps count microseconds since 1601-01-01.
_WEBKIT_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)

_NestedNode = tuple[dict[str, Any], str | None]


def webkit_timestamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return str(int((moment - _WEBKIT_EPOCH).total_seconds() * 1_000_000))


class ChromiumBookmarkStore(MemoryBookmarkStore):
    """A Chromium profile's bookmarks with one managed sync folder.

    Use :meth:`open` rather than the constructor.

    Args:
        path: Location of the ``Bookmarks`` file.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__(root_title="", root_id="0")
        self._path = Path(path)
        self._root_keys: dict[str, str] = {}
        self._raw_nodes: dict[str, dict[str, Any]] = {}
        self._document: dict[str, Any] = {"version": 1}
        self.managed_root_id = ""

    @classmethod
    def open(cls, path: str | Path, managed_folder_title: str) -> ChromiumBookmarkStore:
        """Load the bookmarks file and locate (or create) the managed folder.

        The managed folder is looked up by title directly under
        "Other bookmarks" and created there when missing.

        Raises:
            MalformedTreeError: If the file's nodes do not form a tree.
        """
        store = cls(path)
        store._load(json.loads(store._path.read_text(encoding="utf-8")))

        other_id = store._root_keys[MANAGED_PARENT_ROOT]
        managed = next(
            (
                child
                for child in store.children_of(other_id)
                if child.is_folder and child.title == managed_folder_title
            ),
            None,
        )
        if managed is None:
            managed = store.insert(
                DestinationNode(
                    id=store._allocate_id(), parent_id=other_id, title=managed_folder_title
                )
            )
            logger.info("Created managed folder %r (%s)", managed_folder_title, managed.id)
        store.managed_root_id = managed.id
        return store

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, document: dict[str, Any]) -> None:
        self._document = document
        roots: dict[str, Any] = document.get("roots", {})
        for key, title in ROOT_FOLDERS.items():
            roots.setdefault(
                key, {"id": "", "name": title, "type": "folder", "children": []}
            )
        for key, raw in roots.items():
            if isinstance(raw, dict) and raw.get("id"):
                self._root_keys[key] = str(raw["id"])
        # Chromium ids are unique per file; give any id-less root a fresh one.
        next_free = 1 + max(
            (int(i) for i in self._collect_ids(roots.values()) if i.isdigit()), default=0
        )
        for key in ROOT_FOLDERS:
            if key not in self._root_keys:
                roots[key]["id"] = str(next_free)
                self._root_keys[key] = str(next_free)
                next_free += 1

        wrapper: dict[str, Any] = {
            "id": self.root_id,
            "children": [roots[key] for key in ROOT_FOLDERS],
        }
        flat = flatten_nested(
            (wrapper, None),
            self._nested_children,
            self._to_node,
        )[1:]
        tree = build_tree(flat, root=self.get(self.root_id))
        for node in tree.walk_bfs():
            if node.data is not None and node.data.id != self.root_id:
                self.insert(node.data)
        logger.info("Loaded %d bookmark node(s) from %s", len(self) - 1, self._path)

    def _collect_ids(self, nodes: Any) -> list[str]:
        ids: list[str] = []
        stack = [n for n in nodes if isinstance(n, dict)]
        while stack:
            raw = stack.pop()
            if raw.get("id"):
                ids.append(str(raw["id"]))
            stack.extend(raw.get("children", []))
        return ids

    @staticmethod
    def _nested_children(pair: _NestedNode) -> list[_NestedNode]:
        raw, _parent = pair
        return [(child, str(raw["id"])) for child in raw.get("children", [])]

    def _to_node(self, pair: _NestedNode) -> DestinationNode:
        raw, parent_id = pair
        node_id = str(raw["id"])
        self._raw_nodes[node_id] = {
            k: v for k, v in raw.items() if k not in ("children", "id", "name", "url")
        }
        url = raw.get("url") if raw.get("type") == "url" else None
        return DestinationNode(
            id=node_id, parent_id=parent_id, title=raw.get("name", ""), url=url
        )

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Render the current tree back into the Chromium file layout.

        The ``checksum`` key is dropped; the browser recomputes it.
        """
        document = {k: v for k, v in self._document.items() if k not in ("checksum", "roots")}
        document["roots"] = {
            key: self._render(root_id) for key, root_id in self._root_keys.items()
        }
        document.setdefault("version", 1)
        return document

    def save(self) -> None:
        """Atomically rewrite the bookmarks file."""
        payload = json.dumps(self.to_document(), indent=3, ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Wrote %d bookmark node(s) to %s", len(self) - 1, self._path)

    def _render(self, node_id: str) -> dict[str, Any]:
        node = self.get(node_id)
        assert node is not None  # noqa: S101
        extra = self._raw_nodes.setdefault(
            node_id, {"date_added": webkit_timestamp(), "guid": str(uuid.uuid4())}
        )
        rendered: dict[str, Any] = {**extra, "id": node.id, "name": node.title}
        if node.is_folder:
            rendered["type"] = "folder"
            rendered["children"] = [self._render(c.id) for c in self.children_of(node_id)]
        else:
            rendered["type"] = "url"
            rendered["url"] = node.url
        return rendered
