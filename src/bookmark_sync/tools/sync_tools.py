"""MCP tools for running syncs, diffing, and checking sync status."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from mcp.server.fastmcp import FastMCP

from bookmark_sync.destination.chromium import ChromiumBookmarkStore
from bookmark_sync.errors import BookmarkSyncError
from bookmark_sync.sync.engine import SyncEngine
from bookmark_sync.sync.protocols import SyncStateStore

EngineFactory = Callable[[], tuple[SyncEngine, ChromiumBookmarkStore]]


def register_sync_tools(
    mcp: FastMCP, engine_factory: EngineFactory, state_store: SyncStateStore
) -> None:
    """Register sync, diff and status tools with the MCP server.

    A fresh engine is built per call so every run sees the files as they
    are on disk; runs are serialized with a single lock.
    """

    run_lock = asyncio.Lock()

    async def _run(full: bool) -> dict[str, Any]:
        if run_lock.locked():
            return {"success": False, "message": "A sync run is already in progress"}
        async with run_lock:
            engine, store = engine_factory()
            try:
                if full:
                    stats = await engine.full_resync(None, store.managed_root_id)
                else:
                    stats = await engine.incremental_sync(None, store.managed_root_id)
            except BookmarkSyncError as exc:
                return {"success": False, "message": str(exc)}
            finally:
                await asyncio.to_thread(store.save)
            return {"success": True, **stats.model_dump()}

    @mcp.tool()
    async def incremental_sync() -> dict[str, Any]:
        """Sync the source collections into the managed bookmark folder.

        Only bookmarks that were added, changed, moved or removed since the
        last sync are touched. Returns added/updated/deleted/unchanged counts.
        """
        return await _run(full=False)

    @mcp.tool()
    async def full_resync(confirm: bool = False) -> dict[str, Any]:
        """Delete everything in the managed bookmark folder and rebuild it.

        Args:
            confirm: Must be True; this discards manual edits in the folder.
        """
        if not confirm:
            return {
                "success": False,
                "message": "Full resync removes the whole managed folder; pass confirm=True.",
            }
        return await _run(full=True)

    @mcp.tool()
    async def compute_diff() -> dict[str, Any]:
        """Compare the source tree with the managed bookmark folder without changing it."""
        engine, store = engine_factory()
        diff = await engine.compute_diff(store.managed_root_id)
        return {
            **diff.summary(),
            "to_add": [n.data.url or "/".join(n.get_full_path()) for n in diff.only_in_left],
            "extraneous": [
                n.data.url or "/".join(n.get_full_path()) for n in diff.only_in_right
            ],
            "changed": [
                {"from": p.right.data.name, "to": p.left.data.name, "url": p.left.data.url}
                for p in diff.in_both_but_different
            ],
        }

    @mcp.tool()
    async def get_sync_status() -> dict[str, Any]:
        """Report when the last successful sync ran and what it recorded."""
        state = await state_store.load()
        if state is None:
            return {"synced": False}
        return {
            "synced": True,
            "last_sync": state.last_sync.isoformat(),
            "bookmarks": len(state.bookmarks),
            "collection_folders": len(state.collection_folders),
            "bookmarks_with_covers": len(state.bookmarks_with_covers()),
        }
