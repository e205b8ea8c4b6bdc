"""Exception hierarchy for tree building and reconciliation.

Only :class:`MalformedTreeError` and :class:`StatePersistFailure` escape a
reconciliation run.  The remaining errors are recovered inside the engine
and reported through :class:`~bookmark_sync.sync.engine.SyncStats`.
"""

from __future__ import annotations


class BookmarkSyncError(Exception):
    """Base class for every error raised by this package."""


class MalformedTreeError(BookmarkSyncError):
    """A flat listing cannot be turned into a tree.

    Raised for unresolvable parent references, duplicate ids and cycles.
    """


class DestinationFolderMissing(BookmarkSyncError):
    """A destination folder recorded in the previous state no longer exists."""

    def __init__(self, folder_id: str) -> None:
        super().__init__(f"Folder with ID {folder_id} not found")
        self.folder_id = folder_id


class MutationFailure(BookmarkSyncError):
    """A single create/update/move/remove call against the destination failed."""

    def __init__(self, operation: str, target: str, cause: BaseException) -> None:
        super().__init__(f"Failed to {operation} {target}: {cause}")
        self.operation = operation
        self.target = target
        self.cause = cause


class SourceFetchFailure(BookmarkSyncError):
    """Listing the items of one source collection failed."""

    def __init__(self, collection_id: int, cause: BaseException) -> None:
        super().__init__(f"Failed to list items of collection {collection_id}: {cause}")
        self.collection_id = collection_id
        self.cause = cause


class StatePersistFailure(BookmarkSyncError):
    """Writing the new sync state failed after destination mutations were applied."""


class SyncInProgressError(BookmarkSyncError):
    """A reconciliation run is already in progress on this engine."""


class SyncAborted(BookmarkSyncError):
    """The run was aborted between two phases; no state was persisted."""
