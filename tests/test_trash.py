"""Tests for scenedeck.trash - trash directory and provenance index."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from scenedeck.exceptions import VaultError
from scenedeck.index import load_index, register_entry
from scenedeck.models import AssetIndexEntry, TrashMeta, TrashOriginRef
from scenedeck.trash import (
    move_file_into_trash,
    purge_expired_trash,
    read_trash_index,
    record_trash_entry,
    restore_from_trash,
    unique_destination,
)


def trash_asset(vault: Path, filename: str, asset_id: str | None = None) -> str:
    source = vault / "assets" / filename
    trashed = move_file_into_trash(source, vault / ".trash")
    meta = TrashMeta(asset_id=asset_id, origin_refs=[TrashOriginRef(scene_id="s1", cut_id="c1")], reason="test")
    return record_trash_entry(vault / ".trash", source, trashed, meta).id


class TestMoveToTrash:
    def test_name_clash_gets_suffix(self, tmp_vault: Path) -> None:
        (tmp_vault / ".trash" / "photo.png").write_bytes(b"old")
        (tmp_vault / "assets" / "photo.png").write_bytes(b"new")

        trashed = move_file_into_trash(tmp_vault / "assets" / "photo.png", tmp_vault / ".trash")

        assert trashed.name == "photo_1.png"
        assert trashed.read_bytes() == b"new"

    def test_missing_file_raises(self, tmp_vault: Path) -> None:
        with pytest.raises(VaultError):
            move_file_into_trash(tmp_vault / "assets" / "nope.png", tmp_vault / ".trash")

    def test_record_moves_index_entry_into_trash(self, tmp_vault: Path) -> None:
        (tmp_vault / "assets" / "img_a.png").write_bytes(b"a")
        register_entry(
            tmp_vault,
            AssetIndexEntry(
                id="a", hash="h", filename="img_a.png", original_name="a.png", type="image", imported_at="now"
            ),
        )

        trash_asset(tmp_vault, "img_a.png", asset_id="a")

        assert load_index(tmp_vault).assets == []
        item = read_trash_index(tmp_vault / ".trash").items[0]
        assert item.index_entry.id == "a"
        assert item.origin_refs[0].cut_id == "c1"
        assert item.trash_relative_path == ".trash/img_a.png"

    def test_unique_destination(self, tmp_path: Path) -> None:
        (tmp_path / "a.png").write_bytes(b"")
        (tmp_path / "a_1.png").write_bytes(b"")
        assert unique_destination(tmp_path, "a.png").name == "a_2.png"


class TestPurge:
    def test_purges_only_expired(self, tmp_vault: Path) -> None:
        for name in ("old.png", "fresh.png"):
            (tmp_vault / "assets" / name).write_bytes(b"x")
            trash_asset(tmp_vault, name)
        index = read_trash_index(tmp_vault / ".trash")
        index.items[0].deleted_at = (datetime.now(timezone.utc) - timedelta(days=31)).isoformat()

        purged = purge_expired_trash(tmp_vault / ".trash", index)

        assert [item.filename for item in purged.items] == ["fresh.png"]
        assert not (tmp_vault / ".trash" / "old.png").exists()
        assert (tmp_vault / ".trash" / "fresh.png").exists()

    def test_unparseable_timestamp_is_kept(self, tmp_vault: Path) -> None:
        (tmp_vault / "assets" / "x.png").write_bytes(b"x")
        trash_asset(tmp_vault, "x.png")
        index = read_trash_index(tmp_vault / ".trash")
        index.items[0].deleted_at = "yesterday-ish"

        later = datetime.now(timezone.utc) + timedelta(days=365)
        assert len(purge_expired_trash(tmp_vault / ".trash", index, now=later).items) == 1


class TestRestore:
    def test_restore_puts_file_back(self, tmp_vault: Path) -> None:
        (tmp_vault / "assets" / "x.png").write_bytes(b"x")
        trash_id = trash_asset(tmp_vault, "x.png")

        restored = restore_from_trash(tmp_vault, trash_id)

        assert restored.filename == "x.png"
        assert (tmp_vault / "assets" / "x.png").read_bytes() == b"x"
        assert read_trash_index(tmp_vault / ".trash").items == []

    def test_unknown_entry_raises(self, tmp_vault: Path) -> None:
        with pytest.raises(VaultError):
            restore_from_trash(tmp_vault, "nope")

    def test_refuses_to_overwrite(self, tmp_vault: Path) -> None:
        (tmp_vault / "assets" / "x.png").write_bytes(b"x")
        trash_id = trash_asset(tmp_vault, "x.png")
        (tmp_vault / "assets" / "x.png").write_bytes(b"replacement")

        with pytest.raises(VaultError):
            restore_from_trash(tmp_vault, trash_id)
