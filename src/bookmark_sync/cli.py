"""CLI entrypoint for bookmark-sync.

Syncs a bookmark-service JSON export into a managed folder of a Chromium
``Bookmarks`` file.  Close the browser before running commands that
write the bookmarks file.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import click

from bookmark_sync.config import settings
from bookmark_sync.destination.chromium import ChromiumBookmarkStore
from bookmark_sync.errors import BookmarkSyncError
from bookmark_sync.sources.export import ExportSource
from bookmark_sync.sync.engine import SyncEngine, SyncStats
from bookmark_sync.sync.state import JsonFileStateStore


@dataclass
class _Options:
    source_file: str
    bookmarks_file: str
    root_folder: str
    state_file: str
    state_key: str
    include_unsorted: bool


def _build_engine(opts: _Options) -> tuple[SyncEngine, ChromiumBookmarkStore]:
    """Construct a SyncEngine over the export file and the bookmarks file."""
    if not opts.bookmarks_file:
        raise click.UsageError(
            "No bookmarks file given (use --bookmarks-file or BOOKMARK_SYNC_BOOKMARKS_FILE)."
        )
    store = ChromiumBookmarkStore.open(opts.bookmarks_file, opts.root_folder)
    engine = SyncEngine(
        source=ExportSource.from_file(opts.source_file),
        destination=store,
        state_store=JsonFileStateStore(opts.state_file, key=opts.state_key),
        include_unsorted=opts.include_unsorted,
    )
    return engine, store


def _run_and_save(
    opts: _Options,
    run: Callable[[SyncEngine, str], Awaitable[SyncStats]],
) -> SyncStats:
    """Run a sync coroutine and write the bookmarks file whatever the outcome.

    Destination mutations are never rolled back, so the file is saved
    even when the run fails part-way.
    """
    try:
        engine, store = _build_engine(opts)
    except (OSError, ValueError, BookmarkSyncError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    try:
        return asyncio.run(run(engine, store.managed_root_id))
    except BookmarkSyncError as exc:
        click.echo(f"FAIL: {exc}", err=True)
        sys.exit(1)
    finally:
        store.save()


def _echo_stats(label: str, stats: SyncStats) -> None:
    click.echo(
        f"{label}: {stats.added} added, {stats.updated} updated, "
        f"{stats.deleted} deleted, {stats.unchanged} unchanged"
    )
    for message in stats.errors:
        click.echo(f"  error: {message}", err=True)


@click.group()
@click.option(
    "--source-file",
    default=settings.source_file,
    show_default=True,
    help="Bookmark-service JSON export to sync from.",
)
@click.option(
    "--bookmarks-file",
    default=settings.bookmarks_file,
    help="Chromium 'Bookmarks' file to sync into.",
)
@click.option(
    "--root-folder",
    default=settings.root_folder,
    show_default=True,
    help="Title of the managed folder under 'Other bookmarks'.",
)
@click.option("--state-file", default=settings.state_file, show_default=True)
@click.option("--state-key", default=settings.state_key, show_default=True)
@click.option(
    "--unsorted/--no-unsorted",
    "include_unsorted",
    default=settings.include_unsorted,
    help="Also sync the unsorted pseudo-collection.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, **kwargs: Any) -> None:
    """bookmark-sync CLI: mirror source collections into local bookmarks."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = _Options(**kwargs)


@cli.command()
@click.pass_obj
def sync(opts: _Options) -> None:
    """Apply only what changed since the last sync."""
    stats = _run_and_save(
        opts, lambda engine, root_id: engine.incremental_sync(None, root_id)
    )
    _echo_stats("Synced", stats)
    if stats.failed:
        sys.exit(2)


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
def reset(opts: _Options, yes: bool) -> None:
    """Delete everything in the managed folder and rebuild it."""
    if not yes:
        click.confirm(
            f"This removes everything inside '{opts.root_folder}'. Continue?", abort=True
        )
    stats = _run_and_save(
        opts, lambda engine, root_id: engine.full_resync(None, root_id)
    )
    _echo_stats("Rebuilt", stats)
    if stats.failed:
        sys.exit(2)


@cli.command()
@click.pass_obj
def diff(opts: _Options) -> None:
    """Show how the managed folder differs from the source (read-only)."""
    try:
        engine, store = _build_engine(opts)
        result = asyncio.run(engine.compute_diff(store.managed_root_id))
    except (OSError, ValueError, BookmarkSyncError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    def describe(node: Any) -> str:
        path = " / ".join(node.get_full_path())
        return f"{path} <{node.data.url}>" if node.data.url else f"{path}/"

    for node in result.only_in_left:
        click.echo(f"+ {describe(node)}")
    for node in result.only_in_right:
        click.echo(f"- {describe(node)}")
    for pair in result.in_both_but_different:
        click.echo(f"~ {describe(pair.left)}  (was {pair.right.data.name!r})")

    summary = result.summary()
    click.echo(
        f"\n{summary['only_in_left']} to add, {summary['only_in_right']} extraneous, "
        f"{summary['in_both_but_different']} changed, {summary['unchanged']} unchanged."
    )


@cli.command()
@click.pass_obj
def status(opts: _Options) -> None:
    """Print what the last successful sync recorded."""
    state = asyncio.run(JsonFileStateStore(opts.state_file, key=opts.state_key).load())
    if state is None:
        click.echo("Never synced.")
        return
    click.echo(f"Last sync: {state.last_sync.isoformat()}")
    click.echo(f"Bookmarks: {len(state.bookmarks)}")
    click.echo(f"Collection folders: {len(state.collection_folders)}")


if __name__ == "__main__":
    cli()
