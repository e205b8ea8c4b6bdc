"""End-to-end tests for the click CLI over temporary files."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from bookmark_sync.cli import cli

EXPORT = {
    "collections": [{"_id": 1, "title": "Reading"}],
    "raindrops": [
        {"_id": 10, "title": "A", "link": "http://a.com/", "collection": {"$id": 1}},
        {"_id": 11, "title": "U", "link": "http://u.com", "collectionId": -1},
    ],
}

BOOKMARKS = {
    "roots": {
        "bookmark_bar": {"id": "1", "name": "Bookmarks bar", "type": "folder", "children": []},
        "other": {"id": "2", "name": "Other bookmarks", "type": "folder", "children": []},
        "synced": {"id": "3", "name": "Mobile bookmarks", "type": "folder", "children": []},
    },
    "version": 1,
}


@pytest.fixture
def files(tmp_path: Path) -> dict[str, Path]:
    paths = {
        "source": tmp_path / "export.json",
        "bookmarks": tmp_path / "Bookmarks",
        "state": tmp_path / "state.json",
    }
    paths["source"].write_text(json.dumps(EXPORT), encoding="utf-8")
    paths["bookmarks"].write_text(json.dumps(BOOKMARKS), encoding="utf-8")
    return paths


def _invoke(files: dict[str, Path], *args: str):
    return CliRunner().invoke(
        cli,
        [
            "--source-file", str(files["source"]),
            "--bookmarks-file", str(files["bookmarks"]),
            "--state-file", str(files["state"]),
            *args,
        ],
    )


def _managed_folder(files: dict[str, Path]) -> dict:
    document = json.loads(files["bookmarks"].read_text(encoding="utf-8"))
    [managed] = document["roots"]["other"]["children"]
    return managed


def test_sync_writes_bookmarks_and_state(files: dict[str, Path]) -> None:
    result = _invoke(files, "sync")

    assert result.exit_code == 0, result.output
    assert "2 added, 0 updated, 0 deleted, 0 unchanged" in result.output
    managed = _managed_folder(files)
    assert managed["name"] == "Raindrop"
    assert sorted(c["name"] for c in managed["children"]) == ["Reading", "📥 Unsorted"]
    state = json.loads(files["state"].read_text(encoding="utf-8"))
    assert set(state["syncState"]["collectionFolders"]) == {"1", "-1"}


def test_second_sync_is_a_no_op(files: dict[str, Path]) -> None:
    _invoke(files, "sync")
    result = _invoke(files, "sync")

    assert result.exit_code == 0, result.output
    assert "0 added, 0 updated, 0 deleted, 2 unchanged" in result.output


def test_diff_and_status(files: dict[str, Path]) -> None:
    before = _invoke(files, "status")
    assert "Never synced." in before.output

    diff = _invoke(files, "diff")
    assert diff.exit_code == 0, diff.output
    assert "+ Reading / A <http://a.com/>" in diff.output
    assert "4 to add" in diff.output

    _invoke(files, "sync")
    status = _invoke(files, "status")
    assert "Bookmarks: 2" in status.output
    assert "Collection folders: 2" in status.output


def test_reset_requires_confirmation(files: dict[str, Path]) -> None:
    _invoke(files, "sync")

    declined = CliRunner().invoke(
        cli,
        [
            "--source-file", str(files["source"]),
            "--bookmarks-file", str(files["bookmarks"]),
            "--state-file", str(files["state"]),
            "reset",
        ],
        input="n\n",
    )
    assert declined.exit_code != 0

    result = _invoke(files, "--no-unsorted", "reset", "--yes")
    assert result.exit_code == 0, result.output
    assert "1 added, 0 updated, 2 deleted" in result.output
    assert [c["name"] for c in _managed_folder(files)["children"]] == ["Reading"]


def test_missing_bookmarks_file_is_a_usage_error(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cli, ["--bookmarks-file", "", "--state-file", str(tmp_path / "s.json"), "sync"]
    )

    assert result.exit_code != 0
