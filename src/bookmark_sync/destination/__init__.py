from bookmark_sync.destination.chromium import ChromiumBookmarkStore
from bookmark_sync.destination.memory import MemoryBookmarkStore

__all__ = ["ChromiumBookmarkStore", "MemoryBookmarkStore"]
