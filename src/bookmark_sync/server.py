"""MCP server for bookmark-sync.

Creates a FastMCP server whose tools run incremental syncs, full
resyncs, diffs and status checks against the configured export and
bookmarks files.

Run with:
    uv run bookmark-sync-mcp
    # or
    python -m bookmark_sync.server
"""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from bookmark_sync.config import settings
from bookmark_sync.destination.chromium import ChromiumBookmarkStore
from bookmark_sync.sources.export import ExportSource
from bookmark_sync.sync.engine import SyncEngine
from bookmark_sync.sync.state import JsonFileStateStore
from bookmark_sync.tools.sync_tools import register_sync_tools

mcp = FastMCP(
    "bookmark-sync",
    instructions=(
        "Bookmark-sync MCP server that mirrors bookmark-service collections "
        "into a managed folder of the local browser bookmarks. Use these "
        "tools to sync, preview differences, and check sync status."
    ),
)


def _build_engine() -> tuple[SyncEngine, ChromiumBookmarkStore]:
    store = ChromiumBookmarkStore.open(settings.bookmarks_file, settings.root_folder)
    engine = SyncEngine(
        source=ExportSource.from_file(settings.source_file),
        destination=store,
        state_store=JsonFileStateStore(settings.state_file, key=settings.state_key),
        include_unsorted=settings.include_unsorted,
    )
    return engine, store


def _initialize() -> None:
    """Validate settings and register tools."""
    settings.validate()
    register_sync_tools(
        mcp,
        _build_engine,
        JsonFileStateStore(settings.state_file, key=settings.state_key),
    )


def main() -> None:
    """Entry point for the MCP server."""
    _initialize()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
