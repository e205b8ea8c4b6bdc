"""Sync engine package for source -> destination bookmark reconciliation."""

from bookmark_sync.sync.differ import MatchedPair, SyncDiff, compute_diff, hash_key, path_key
from bookmark_sync.sync.engine import SyncEngine, SyncPhase, SyncStats
from bookmark_sync.sync.protocols import DestinationStore, SourceListing, SyncStateStore
from bookmark_sync.sync.state import (
    BookmarkState,
    JsonFileStateStore,
    MemoryStateStore,
    SyncState,
)

__all__ = [
    "BookmarkState",
    "DestinationStore",
    "JsonFileStateStore",
    "MatchedPair",
    "MemoryStateStore",
    "SourceListing",
    "SyncDiff",
    "SyncEngine",
    "SyncPhase",
    "SyncState",
    "SyncStateStore",
    "SyncStats",
    "compute_diff",
    "hash_key",
    "path_key",
]
