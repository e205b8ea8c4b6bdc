"""Shared test payloads and builders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bookmark_sync.models import SourceCollection, SourceItem
from bookmark_sync.sources.export import ExportSource


@dataclass(frozen=True)
class FakeNode:
    """Minimal NodeData whose hash is its id."""

    id: str
    parent_id: str | None
    name: str
    url: str | None = None

    @property
    def hash(self) -> str:
        return self.id

    @property
    def is_folder(self) -> bool:
        return self.url is None


def folder(node_id: str, parent_id: str | None, name: str | None = None) -> FakeNode:
    return FakeNode(id=node_id, parent_id=parent_id, name=name or node_id)


def leaf(node_id: str, parent_id: str | None, url: str, name: str | None = None) -> FakeNode:
    return FakeNode(id=node_id, parent_id=parent_id, name=name or node_id, url=url)


def make_source(
    collections: list[tuple[int, str, int | None]],
    items: list[tuple[int, int, str, str]],
) -> ExportSource:
    """Build an ExportSource from ``(id, title, parent)`` and ``(id, collection, title, link)``."""
    return ExportSource(
        [SourceCollection(cid, title, parent) for cid, title, parent in collections],
        [
            SourceItem(item_id=iid, collection_id=cid, title=title, link=link)
            for iid, cid, title, link in items
        ],
    )


class FlakyDestination:
    """Wraps a destination store and fails the chosen operations.

    ``failures`` maps an operation name to the number of times it should
    fail before succeeding again; ``-1`` fails forever.
    """

    def __init__(self, inner: Any, **failures: int) -> None:
        self._inner = inner
        self._failures = dict(failures)

    def __getattr__(self, name: str) -> Any:
        target = getattr(self._inner, name)
        if name not in self._failures:
            return target

        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            remaining = self._failures[name]
            if remaining != 0:
                self._failures[name] = remaining - 1 if remaining > 0 else -1
                raise RuntimeError(f"{name} unavailable")
            return await target(*args, **kwargs)

        return wrapper
