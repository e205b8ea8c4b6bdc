from __future__ import annotations

import os

_TRUTHY = {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.source_file: str = os.environ.get(
            "BOOKMARK_SYNC_SOURCE_FILE", "./raindrop-export.json"
        )
        self.bookmarks_file: str = os.environ.get("BOOKMARK_SYNC_BOOKMARKS_FILE", "")
        self.root_folder: str = os.environ.get("BOOKMARK_SYNC_ROOT_FOLDER", "Raindrop")
        self.state_file: str = os.environ.get(
            "BOOKMARK_SYNC_STATE_FILE", ".bookmark-sync-state.json"
        )
        self.state_key: str = os.environ.get("BOOKMARK_SYNC_STATE_KEY", "syncState")
        self.include_unsorted: bool = (
            os.environ.get("BOOKMARK_SYNC_INCLUDE_UNSORTED", "true").lower() in _TRUTHY
        )

    def validate(self) -> None:
        if not self.bookmarks_file:
            raise ValueError("BOOKMARK_SYNC_BOOKMARKS_FILE environment variable is required")
        if not self.root_folder:
            raise ValueError("BOOKMARK_SYNC_ROOT_FOLDER must not be empty")


settings = Settings()
