"""Tests for the JSON export source listing."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from bookmark_sync.models import UNSORTED_COLLECTION_ID
from bookmark_sync.sources.export import ExportSource

EXPORT = {
    "collections": [
        {"_id": 12, "title": "Reading"},
        {"_id": 13, "title": "Python", "parent": {"$id": 12}},
        {"_id": 14, "title": None},
    ],
    "raindrops": [
        {
            "_id": 100,
            "title": "Docs",
            "link": "https://docs.python.org/",
            "collection": {"$id": 13},
            "lastUpdate": "2024-01-02T03:04:05.000Z",
            "cover": "https://docs.python.org/cover.png",
        },
        {"_id": 101, "title": "Loose", "link": "https://loose.example", "collectionId": -1},
        {"_id": 102, "title": "Binned", "link": "https://trash.example", "collectionId": -99},
        {"_id": 103, "title": "", "link": "https://untitled.example", "collection": {"$id": 12}},
    ],
}


def test_collections_form_a_tree() -> None:
    source = ExportSource.from_dict(EXPORT)

    tree = asyncio.run(source.list_collections_as_tree())

    assert [c.data.name for c in tree.children] == ["Reading", "No Title"]
    assert tree.find("13").get_full_path() == ["Reading", "Python"]


def test_items_are_grouped_by_collection() -> None:
    source = ExportSource.from_dict(EXPORT)

    [docs] = asyncio.run(source.list_items(13))
    [loose] = asyncio.run(source.list_items(UNSORTED_COLLECTION_ID))

    assert docs.item_id == 100
    assert docs.last_update == "2024-01-02T03:04:05.000Z"
    assert docs.cover == "https://docs.python.org/cover.png"
    assert docs.id == "item:100"
    assert docs.parent_id == "13"
    assert loose.link == "https://loose.example"
    assert asyncio.run(source.list_items(-99)) == []
    assert asyncio.run(source.list_items(999)) == []


def test_list_items_returns_a_copy() -> None:
    source = ExportSource.from_dict(EXPORT)

    asyncio.run(source.list_items(12)).clear()

    assert len(asyncio.run(source.list_items(12))) == 1


def test_from_file(tmp_path: Path) -> None:
    path = tmp_path / "export.json"
    path.write_text(json.dumps(EXPORT), encoding="utf-8")

    source = ExportSource.from_file(path)

    assert [i.title for i in asyncio.run(source.list_items(12))] == [""]
