"""Sync state persistence using JSON-backed Pydantic models.

Records, for the last successful run, which source bookmark ended up at
which URL and which source collection maps to which destination folder,
so the next run only has to apply the delta.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bookmark_sync.errors import StatePersistFailure
from bookmark_sync.models import SourceItem
from bookmark_sync.urls import normalize_url

DEFAULT_STATE_KEY = "syncState"


class BookmarkState(BaseModel):
    """What was synced for a single bookmark, keyed by normalized URL."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    title: str
    source_collection_id: int = Field(alias="sourceCollectionId")
    source_item_id: int = Field(alias="sourceItemId")
    last_modified: str | None = Field(default=None, alias="lastModified")
    cover: str | None = None

    @classmethod
    def from_item(cls, item: SourceItem, collection_id: int) -> BookmarkState:
        return cls(
            url=item.link,
            title=item.title,
            source_collection_id=collection_id,
            source_item_id=item.item_id,
            last_modified=item.last_update,
            cover=item.cover or None,
        )


class SyncState(BaseModel):
    """Snapshot of one managed destination folder after a successful run."""

    model_config = ConfigDict(populate_by_name=True)

    bookmarks: dict[str, BookmarkState] = Field(default_factory=dict)
    collection_folders: dict[int, str] = Field(
        default_factory=dict, alias="collectionFolders"
    )
    last_sync: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="lastSync"
    )

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def collection_id_for_folder(self, folder_id: str) -> int | None:
        """Return the source collection mapped to a destination folder."""
        for collection_id, mapped_folder in self.collection_folders.items():
            if mapped_folder == folder_id:
                return collection_id
        return None

    def source_item_id_for_url(self, url: str) -> int | None:
        bookmark = self.bookmarks.get(normalize_url(url))
        return bookmark.source_item_id if bookmark else None

    def cover_for_url(self, url: str) -> str | None:
        """Return the cover image recorded by the source service for a URL.

        The destination manages its own favicons; covers are kept only
        for display purposes.
        """
        bookmark = self.bookmarks.get(normalize_url(url))
        return bookmark.cover if bookmark else None

    def bookmarks_with_covers(self) -> list[BookmarkState]:
        return [b for b in self.bookmarks.values() if b.cover]

    def to_blob(self) -> dict[str, Any]:
        """Serialize to the persisted layout (camelCase keys, ISO timestamp)."""
        return self.model_dump(mode="json", by_alias=True)


class JsonFileStateStore:
    """Key-value JSON file holding one opaque state blob per key.

    Each managed destination folder uses its own key.  Saving rewrites
    the whole file through a temporary file and an atomic rename, so a
    crash mid-write leaves the previous file intact.

    Args:
        state_file: Path to the JSON state file.
        key: The well-known key under which this store's blob lives.
    """

    def __init__(self, state_file: str | Path, key: str = DEFAULT_STATE_KEY) -> None:
        self._state_file = Path(state_file)
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> SyncState | None:
        """Load the state blob for this key.

        Returns:
            The deserialized ``SyncState``, or ``None`` if the file does
            not exist, is empty, or has no blob under this key.
        """
        document = await asyncio.to_thread(self._read_document)
        blob = document.get(self._key)
        if blob is None:
            return None
        return SyncState.model_validate(blob)

    async def save(self, state: SyncState) -> None:
        """Atomically replace the blob for this key, keeping other keys.

        Raises:
            StatePersistFailure: If the file cannot be read or written.
        """
        try:
            await asyncio.to_thread(self._write_blob, state.to_blob())
        except (OSError, ValueError) as exc:
            raise StatePersistFailure(
                f"Failed to persist sync state to {self._state_file}: {exc}"
            ) from exc

    def _read_document(self) -> dict[str, Any]:
        if not self._state_file.exists() or self._state_file.stat().st_size == 0:
            return {}
        return json.loads(self._state_file.read_text(encoding="utf-8"))

    def _write_blob(self, blob: dict[str, Any]) -> None:
        document = self._read_document()
        document[self._key] = blob

        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._state_file.parent, prefix=f".{self._state_file.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(document, indent=2, ensure_ascii=False) + "\n")
            os.replace(tmp_name, self._state_file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class MemoryStateStore:
    """In-process state store; keeps a deep copy of the last saved state."""

    def __init__(self, state: SyncState | None = None) -> None:
        self._state = state.model_copy(deep=True) if state is not None else None
        self.save_count = 0

    @property
    def state(self) -> SyncState | None:
        return self._state

    async def load(self) -> SyncState | None:
        if self._state is None:
            return None
        return self._state.model_copy(deep=True)

    async def save(self, state: SyncState) -> None:
        self._state = state.model_copy(deep=True)
        self.save_count += 1
