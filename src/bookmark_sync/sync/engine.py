"""Sync engine orchestrator for source -> destination bookmark reconciliation.

Coordinates a whole run: loading the previous state, walking the source
collection tree, applying the minimal set of destination mutations,
deleting bookmarks that disappeared from the source, and persisting the
new state.  Recoverable failures are counted in :class:`SyncStats`;
only a malformed tree, a missing managed root and a failed state write
escape to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from bookmark_sync.errors import (
    DestinationFolderMissing,
    MutationFailure,
    SourceFetchFailure,
    StatePersistFailure,
    SyncAborted,
    SyncInProgressError,
)
from bookmark_sync.models import (
    UNSORTED_COLLECTION_ID,
    UNSORTED_FOLDER_TITLE,
    DestinationNode,
    SourceCollection,
    SourceItem,
)
from bookmark_sync.sync.differ import SyncDiff, compute_diff
from bookmark_sync.sync.state import BookmarkState, SyncState
from bookmark_sync.tree.builder import build_destination_tree, build_source_tree
from bookmark_sync.urls import normalize_url, url_spellings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from bookmark_sync.sync.protocols import DestinationStore, SourceListing, SyncStateStore
    from bookmark_sync.tree.node import TreeNode

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Result / Status models
# ------------------------------------------------------------------


class SyncPhase(StrEnum):
    """Top-level steps of a reconciliation run."""

    IDLE = "idle"
    LOADING_STATE = "loading_state"
    BUILDING_SOURCE_TREE = "building_source_tree"
    CLEARING_DESTINATION = "clearing_destination"
    WALKING_TREE = "walking_tree"
    DELETING_STALE = "deleting_stale"
    PERSISTING_STATE = "persisting_state"
    DONE = "done"
    FAILED = "failed"


class SyncStats(BaseModel):
    """Outcome counters of a single run."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.failed += 1
        if message not in self.errors:
            self.errors.append(message)


@dataclass
class _Run:
    """Mutable bookkeeping for one run."""

    previous: SyncState
    root_id: str
    stats: SyncStats = field(default_factory=SyncStats)
    bookmarks: dict[str, BookmarkState] = field(default_factory=dict)
    folders: dict[int, str] = field(default_factory=dict)
    # Previous entries kept alive because their subtree or removal failed.
    preserved: dict[str, BookmarkState] = field(default_factory=dict)
    preserved_folders: dict[int, str] = field(default_factory=dict)
    containment: dict[str, bool] = field(default_factory=dict)
    listings: dict[int, list[SourceItem] | SourceFetchFailure] = field(default_factory=dict)
    # Normalized URL -> the first collection (in pre-order) that lists it.
    owners: dict[str, int] = field(default_factory=dict)

    def claimed(self, key: str) -> bool:
        return key in self.bookmarks or key in self.preserved

    def new_state(self) -> SyncState:
        return SyncState(
            bookmarks={**self.preserved, **self.bookmarks},
            collection_folders={**self.preserved_folders, **self.folders},
            last_sync=datetime.now(timezone.utc),
        )


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class SyncEngine:
    """Reconciles a managed destination folder with the source collections.

    Only one run may be in progress per engine; a second concurrent call
    raises :class:`SyncInProgressError`.  Sibling collections are
    processed concurrently, but a collection's folder is always resolved
    and its own bookmarks issued before its children start.

    Args:
        source: Listing of source collections and their items.
        destination: Mutation interface of the destination store.
        state_store: Where the :class:`SyncState` is loaded from and saved to.
        include_unsorted: Whether to sync the unsorted pseudo-collection.
    """

    def __init__(
        self,
        source: SourceListing,
        destination: DestinationStore,
        state_store: SyncStateStore,
        *,
        include_unsorted: bool = True,
    ) -> None:
        self._source = source
        self._destination = destination
        self._state_store = state_store
        self._include_unsorted = include_unsorted
        self._lock = asyncio.Lock()
        self._phase = SyncPhase.IDLE
        self._abort_requested = False

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def abort(self) -> None:
        """Request the current run to stop before its next phase.

        Mutations already issued are kept; the previous state stays
        authoritative because nothing is persisted.
        """
        if self.is_running:
            logger.info("Abort requested during phase %s", self._phase)
            self._abort_requested = True

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def incremental_sync(
        self,
        source_tree: TreeNode[SourceCollection] | None,
        destination_root_id: str,
    ) -> SyncStats:
        """Apply only what changed since the last persisted state.

        Args:
            source_tree: The source collection tree, or ``None`` to fetch it.
            destination_root_id: Id of the managed destination folder.

        Returns:
            The run's ``SyncStats``.

        Raises:
            MalformedTreeError: If the source collections do not form a tree.
            DestinationFolderMissing: If the managed root does not exist.
            StatePersistFailure: If the new state cannot be written.
            SyncAborted: If :meth:`abort` was called during the run.
            SyncInProgressError: If another run is in progress.
        """
        async with self._running():
            self._enter(SyncPhase.LOADING_STATE)
            previous = await self._state_store.load() or SyncState()
            logger.info(
                "Loaded previous state: %d bookmark(s), %d folder(s)",
                len(previous.bookmarks), len(previous.collection_folders),
            )

            self._enter(SyncPhase.BUILDING_SOURCE_TREE)
            source_tree = await self._prepare(source_tree, destination_root_id)
            run = _Run(previous=previous, root_id=destination_root_id)

            self._enter(SyncPhase.WALKING_TREE)
            await self._walk(run, source_tree)

            self._enter(SyncPhase.DELETING_STALE)
            await self._delete_stale(run)

            self._enter(SyncPhase.PERSISTING_STATE)
            await self._persist(run)

            self._enter(SyncPhase.DONE)
            self._log_stats("Incremental sync", run.stats)
            return run.stats

    async def full_resync(
        self,
        source_tree: TreeNode[SourceCollection] | None,
        destination_root_id: str,
    ) -> SyncStats:
        """Clear the managed folder and rebuild it from the source.

        The previous state is ignored.  Clearing happens before
        recreation, so an interrupted run leaves the folder partially
        rebuilt until the next successful run.

        Raises:
            The same errors as :meth:`incremental_sync`.
        """
        async with self._running():
            self._enter(SyncPhase.BUILDING_SOURCE_TREE)
            source_tree = await self._prepare(source_tree, destination_root_id)
            run = _Run(previous=SyncState(), root_id=destination_root_id)

            self._enter(SyncPhase.CLEARING_DESTINATION)
            await self._clear_destination(run)

            self._enter(SyncPhase.WALKING_TREE)
            await self._walk(run, source_tree)

            self._enter(SyncPhase.PERSISTING_STATE)
            await self._persist(run)

            self._enter(SyncPhase.DONE)
            self._log_stats("Full resync", run.stats)
            return run.stats

    async def compute_diff(self, destination_root_id: str) -> SyncDiff[Any, DestinationNode]:
        """Diff the full source tree against the managed destination subtree."""
        left = await build_source_tree(self._source, include_unsorted=self._include_unsorted)
        right = await build_destination_tree(self._destination, destination_root_id)
        return compute_diff(left, right)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _running(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise SyncInProgressError("A sync run is already in progress")
        async with self._lock:
            self._abort_requested = False
            try:
                yield
            except BaseException:
                logger.warning("Sync run failed during phase %s", self._phase)
                self._phase = SyncPhase.FAILED
                raise

    def _enter(self, phase: SyncPhase) -> None:
        if self._abort_requested:
            raise SyncAborted(f"Sync aborted before phase {phase}")
        logger.debug("Entering phase %s", phase)
        self._phase = phase

    async def _prepare(
        self, source_tree: TreeNode[SourceCollection] | None, destination_root_id: str
    ) -> TreeNode[SourceCollection]:
        if source_tree is None:
            source_tree = await self._source.list_collections_as_tree()
        if await self._destination.get_folder(destination_root_id) is None:
            raise DestinationFolderMissing(destination_root_id)
        return source_tree

    async def _persist(self, run: _Run) -> None:
        try:
            await self._state_store.save(run.new_state())
        except StatePersistFailure:
            raise
        except Exception as exc:
            raise StatePersistFailure(f"Failed to persist sync state: {exc}") from exc

    @staticmethod
    def _log_stats(label: str, stats: SyncStats) -> None:
        logger.info(
            "%s finished: %d added, %d updated, %d deleted, %d unchanged, %d failed",
            label, stats.added, stats.updated, stats.deleted, stats.unchanged, stats.failed,
        )

    # ------------------------------------------------------------------
    # Tree walk
    # ------------------------------------------------------------------

    async def _walk(self, run: _Run, source_tree: TreeNode[SourceCollection]) -> None:
        await self._fetch_listings(run, source_tree)
        await self._reconcile_collection(run, source_tree, run.root_id)
        if self._include_unsorted:
            await self._reconcile_unsorted(run)

    async def _fetch_listings(self, run: _Run, source_tree: TreeNode[SourceCollection]) -> None:
        """List every collection's items and assign each URL to one collection.

        Listings are fetched concurrently, but ownership follows the
        pre-order of the source tree (unsorted last), so a URL listed by
        several collections always lands in the same one.
        """
        collection_ids = [
            node.data.collection_id for node in source_tree.walk() if node.data is not None
        ]
        if self._include_unsorted:
            collection_ids.append(UNSORTED_COLLECTION_ID)

        results = await asyncio.gather(*(self._fetch_items(cid) for cid in collection_ids))
        for collection_id, result in zip(collection_ids, results):
            run.listings[collection_id] = result
            if isinstance(result, SourceFetchFailure):
                continue
            for item in result:
                run.owners.setdefault(normalize_url(item.link), collection_id)
        logger.debug(
            "Fetched %d listing(s) covering %d distinct URL(s)",
            len(collection_ids), len(run.owners),
        )

    async def _fetch_items(self, collection_id: int) -> list[SourceItem] | SourceFetchFailure:
        try:
            return await self._list_items(collection_id)
        except SourceFetchFailure as exc:
            return exc

    @staticmethod
    def _listing(run: _Run, collection_id: int) -> list[SourceItem]:
        result = run.listings.get(collection_id, [])
        if isinstance(result, SourceFetchFailure):
            raise result
        return result

    async def _reconcile_collection(
        self,
        run: _Run,
        node: TreeNode[SourceCollection],
        parent_folder_id: str,
    ) -> None:
        """Resolve this collection's folder, sync its bookmarks, then recurse.

        A synthetic root (``data is None``) maps onto ``parent_folder_id``
        and has no bookmarks of its own.
        """
        folder_id = parent_folder_id
        collection = node.data
        if collection is not None:
            try:
                folder_id = await self._resolve_folder(
                    run, collection.collection_id, collection.name, parent_folder_id
                )
                items = self._listing(run, collection.collection_id)
            except (MutationFailure, SourceFetchFailure) as exc:
                logger.warning("Skipping collection %s: %s", collection.collection_id, exc)
                run.stats.record_error(str(exc))
                self._preserve_subtree(run, node)
                return

            await asyncio.gather(
                *(
                    self._reconcile_item(run, item, collection.collection_id, folder_id)
                    for item in items
                )
            )

        await asyncio.gather(
            *(self._reconcile_collection(run, child, folder_id) for child in node.children)
        )

    async def _reconcile_unsorted(self, run: _Run) -> None:
        """Sync the unsorted pseudo-collection into its own top-level folder."""
        try:
            items = self._listing(run, UNSORTED_COLLECTION_ID)
        except SourceFetchFailure as exc:
            logger.warning("Failed to sync unsorted bookmarks: %s", exc)
            run.stats.record_error(str(exc))
            self._preserve_collections(run, {UNSORTED_COLLECTION_ID})
            return

        pending = [
            item
            for item in items
            if run.owners.get(normalize_url(item.link)) == UNSORTED_COLLECTION_ID
        ]
        logger.debug("Found %d unsorted bookmark(s), %d pending", len(items), len(pending))
        if not pending:
            # A previously created folder is left for stale-folder cleanup.
            return

        try:
            folder_id = await self._resolve_folder(
                run,
                UNSORTED_COLLECTION_ID,
                UNSORTED_FOLDER_TITLE,
                run.root_id,
                adopt_by_title=True,
            )
        except MutationFailure as exc:
            logger.warning("Failed to resolve unsorted folder: %s", exc)
            run.stats.record_error(str(exc))
            self._preserve_collections(run, {UNSORTED_COLLECTION_ID})
            return

        await asyncio.gather(
            *(
                self._reconcile_item(run, item, UNSORTED_COLLECTION_ID, folder_id)
                for item in pending
            )
        )

    async def _reconcile_item(
        self,
        run: _Run,
        item: SourceItem,
        collection_id: int,
        folder_id: str,
    ) -> None:
        """Create, update/move, or leave alone a single bookmark."""
        key = normalize_url(item.link)
        if run.owners.get(key) != collection_id or key in run.bookmarks:
            logger.debug("Duplicate bookmark %s in collection %s", item.link, collection_id)
            return

        state = BookmarkState.from_item(item, collection_id)
        run.bookmarks[key] = state
        previous = run.previous.bookmarks.get(key)

        if previous is None:
            try:
                await self._destination.create_item(folder_id, item.title, item.link)
            except Exception as exc:
                del run.bookmarks[key]
                self._record_mutation_failure(run, "create bookmark", item.link, exc)
                return
            logger.debug("Created bookmark %s", item.link)
            run.stats.added += 1
            return

        title_changed = previous.title != item.title
        moved = previous.source_collection_id != collection_id
        if not title_changed and not moved:
            run.stats.unchanged += 1
            return

        try:
            for bookmark in await self._managed_matches(run, previous.url, item.link):
                if title_changed:
                    await self._destination.update_item(bookmark.id, title=item.title)
                if moved and bookmark.parent_id != folder_id:
                    await self._destination.move_item(bookmark.id, folder_id)
        except Exception as exc:
            # Keep the old entry so the change is detected and retried next run.
            run.bookmarks[key] = previous
            self._record_mutation_failure(run, "update bookmark", item.link, exc)
            return
        logger.debug("Updated bookmark %s (moved=%s)", item.link, moved)
        run.stats.updated += 1

    async def _resolve_folder(
        self,
        run: _Run,
        collection_id: int,
        title: str,
        parent_folder_id: str,
        *,
        adopt_by_title: bool = False,
    ) -> str:
        """Find the destination folder for a collection, creating it if needed.

        Raises:
            MutationFailure: If a new folder had to be created and creation failed.
        """
        folder: DestinationNode | None = None
        existing_id = run.previous.collection_folders.get(collection_id)
        if existing_id is not None:
            try:
                folder = await self._get_folder(existing_id)
            except DestinationFolderMissing as exc:
                logger.warning("%s; recreating folder for collection %s", exc, collection_id)
            except Exception as exc:
                logger.warning(
                    "Failed to fetch folder %s for collection %s: %s",
                    existing_id, collection_id, exc,
                )
        elif adopt_by_title:
            children = await self._destination.list_children(parent_folder_id)
            folder = next(
                (c for c in children if c.is_folder and c.title == title), None
            )

        if folder is None:
            try:
                folder = await self._destination.create_folder(parent_folder_id, title)
            except Exception as exc:
                raise MutationFailure("create folder", repr(title), exc) from exc
            logger.debug(
                "Created folder %r (%s) for collection %s", title, folder.id, collection_id
            )
        elif folder.title != title:
            try:
                await self._destination.update_item(folder.id, title=title)
            except Exception as exc:
                self._record_mutation_failure(run, "rename folder", folder.id, exc)
            else:
                logger.debug("Renamed folder %s from %r to %r", folder.id, folder.title, title)

        run.folders[collection_id] = folder.id
        return folder.id

    async def _get_folder(self, folder_id: str) -> DestinationNode:
        folder = await self._destination.get_folder(folder_id)
        if folder is None:
            raise DestinationFolderMissing(folder_id)
        return folder

    async def _list_items(self, collection_id: int) -> list[SourceItem]:
        try:
            return await self._source.list_items(collection_id)
        except Exception as exc:
            raise SourceFetchFailure(collection_id, exc) from exc

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def _delete_stale(self, run: _Run) -> None:
        stale = [
            (key, state)
            for key, state in run.previous.bookmarks.items()
            if not run.claimed(key)
        ]
        logger.info("Deleting %d stale bookmark(s)", len(stale))
        await asyncio.gather(*(self._delete_bookmark(run, key, state) for key, state in stale))
        await self._delete_stale_folders(run)

    async def _delete_bookmark(self, run: _Run, key: str, state: BookmarkState) -> None:
        try:
            for bookmark in await self._managed_matches(run, state.url):
                await self._destination.remove_item(bookmark.id)
                run.stats.deleted += 1
        except Exception as exc:
            run.preserved[key] = state
            self._record_mutation_failure(run, "delete bookmark", state.url, exc)

    async def _delete_stale_folders(self, run: _Run) -> None:
        """Remove folders of collections that no longer exist in the source.

        A folder is only removed when it lies inside the managed root and
        its subtree holds no bookmarks and no folder still mapped to a
        collection; otherwise it is left in place and forgotten.  Runs
        sequentially so nested stale folders are handled in one pass.
        """
        live = {run.root_id, *run.folders.values(), *run.preserved_folders.values()}
        stale = [
            (collection_id, folder_id)
            for collection_id, folder_id in run.previous.collection_folders.items()
            if collection_id not in run.folders
            and collection_id not in run.preserved_folders
            and folder_id not in live
        ]
        for collection_id, folder_id in stale:
            try:
                removed = await self._remove_unused_folder(run, folder_id, live)
            except Exception as exc:
                run.preserved_folders[collection_id] = folder_id
                self._record_mutation_failure(run, "remove folder", folder_id, exc)
                continue
            if removed:
                logger.debug("Removed folder %s of collection %s", folder_id, collection_id)
            else:
                logger.info(
                    "Keeping folder %s of removed collection %s", folder_id, collection_id
                )

    async def _remove_unused_folder(self, run: _Run, folder_id: str, live: set[str]) -> bool:
        folder = await self._destination.get_folder(folder_id)
        if folder is None:
            # Already gone, usually with a removed ancestor.
            return True
        if folder.parent_id is None:
            return False
        if not await self._is_in_managed_tree(run, folder.parent_id):
            return False
        subtree = await build_destination_tree(self._destination, folder_id)
        for node in subtree.walk():
            if node is subtree or node.data is None:
                continue
            if not node.data.is_folder or node.data.id in live:
                return False
        await self._destination.remove_subtree(folder_id)
        return True

    async def _clear_destination(self, run: _Run) -> None:
        tree = await build_destination_tree(self._destination, run.root_id)
        for child in tree.children:
            assert child.data is not None  # noqa: S101
            try:
                await self._destination.remove_subtree(child.data.id)
            except Exception as exc:
                self._record_mutation_failure(run, "clear", child.data.id, exc)
                continue
            run.stats.deleted += sum(1 for _ in child.leaves())

    async def _managed_matches(self, run: _Run, *urls: str) -> list[DestinationNode]:
        """Destination bookmarks with any of ``urls`` inside the managed folder."""
        seen: set[str] = set()
        matches: list[DestinationNode] = []
        spellings = dict.fromkeys(s for url in urls for s in url_spellings(url))
        for url in spellings:
            for bookmark in await self._destination.find_items_by_url(url):
                if bookmark.id in seen or bookmark.parent_id is None:
                    continue
                seen.add(bookmark.id)
                if await self._is_in_managed_tree(run, bookmark.parent_id):
                    matches.append(bookmark)
        return matches

    async def _is_in_managed_tree(self, run: _Run, folder_id: str) -> bool:
        """Walk the ancestor chain of ``folder_id`` up to the managed root."""
        visited: list[str] = []
        current: str | None = folder_id
        result = False
        while current is not None:
            if current == run.root_id:
                result = True
                break
            if current in run.containment:
                result = run.containment[current]
                break
            if current in visited:
                break
            visited.append(current)
            folder = await self._destination.get_folder(current)
            current = folder.parent_id if folder is not None else None
        for folder_id_seen in visited:
            run.containment[folder_id_seen] = result
        return result

    # ------------------------------------------------------------------
    # Failure bookkeeping
    # ------------------------------------------------------------------

    def _preserve_subtree(self, run: _Run, node: TreeNode[SourceCollection]) -> None:
        self._preserve_collections(
            run, {n.data.collection_id for n in node.walk() if n.data is not None}
        )

    @staticmethod
    def _preserve_collections(run: _Run, collection_ids: set[int]) -> None:
        """Carry previous state for collections that could not be synced this run."""
        for key, state in run.previous.bookmarks.items():
            if (
                state.source_collection_id in collection_ids
                or run.owners.get(key) in collection_ids
            ):
                run.preserved.setdefault(key, state)
        for collection_id in collection_ids:
            folder_id = run.previous.collection_folders.get(collection_id)
            if folder_id is not None:
                run.preserved_folders.setdefault(collection_id, folder_id)

    @staticmethod
    def _record_mutation_failure(
        run: _Run, operation: str, target: str, cause: BaseException
    ) -> None:
        failure = MutationFailure(operation, target, cause)
        logger.warning("%s", failure)
        run.stats.record_error(str(failure))
