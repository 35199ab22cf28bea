"""Tests for scenedeck.index - persistence, storyline ordering, verification."""

from __future__ import annotations

import json
from pathlib import Path

from conftest import make_asset, make_cut
from scenedeck.index import (
    build_usage_refs,
    load_index,
    ordered_asset_ids,
    register_entry,
    reorder_index,
    save_index,
    verify_vault,
)
from scenedeck.models import AssetIndex, AssetIndexEntry, Scene


def entry(asset_id: str, file_hash: str | None = None, **fields) -> AssetIndexEntry:
    fields.setdefault("filename", f"img_{asset_id}.png")
    return AssetIndexEntry(
        id=asset_id,
        hash=file_hash or f"hash-{asset_id}",
        original_name=f"{asset_id}.png",
        type="image",
        imported_at="2026-01-01T00:00:00+00:00",
        **fields,
    )


def storyline() -> list[Scene]:
    a, b, c = make_asset("a"), make_asset("b"), make_asset("c")
    second = Scene(id="s2", name="Second", order=1, cuts=[make_cut("c3", a, 0), make_cut("c4", c, 1)])
    first = Scene(id="s1", name="First", order=0, cuts=[make_cut("c2", a, 1), make_cut("c1", b, 0)])
    return [second, first]


class TestLoadSave:
    def test_missing_index_is_empty(self, tmp_path: Path) -> None:
        assert load_index(tmp_path).assets == []

    def test_malformed_index_is_empty(self, tmp_path: Path) -> None:
        (tmp_path / ".index.json").write_text("{broken")
        assert load_index(tmp_path).assets == []

    def test_round_trip_uses_camel_case(self, tmp_path: Path) -> None:
        save_index(tmp_path, AssetIndex(assets=[entry("a")]))

        raw = json.loads((tmp_path / ".index.json").read_text())
        assert raw["assets"][0]["originalName"] == "a.png"
        assert "usageRefs" in raw["assets"][0]
        assert load_index(tmp_path).assets[0].id == "a"

    def test_original_path_stored_vault_relative(self, tmp_path: Path) -> None:
        inside = tmp_path / "assets" / "img_a.png"
        save_index(tmp_path, AssetIndex(assets=[entry("a", original_path=str(inside))]))
        assert load_index(tmp_path).assets[0].original_path == "assets/img_a.png"


class TestOrdering:
    def test_ordered_asset_ids_first_reference_wins(self) -> None:
        assert ordered_asset_ids(storyline()) == ["b", "a", "c"]

    def test_usage_refs_follow_storyline(self) -> None:
        usage = build_usage_refs(storyline())
        assert [(r.scene_id, r.cut_id) for r in usage["a"]] == [("s1", "c2"), ("s2", "c3")]
        assert usage["a"][0].cut_index == 2

    def test_reorder_puts_unreferenced_last_in_prior_order(self) -> None:
        index = AssetIndex(assets=[entry("z"), entry("c"), entry("y"), entry("a"), entry("b")])

        reordered = reorder_index(index, storyline())

        assert [e.id for e in reordered.assets] == ["b", "a", "c", "z", "y"]
        assert reordered.assets[-1].usage_refs == []
        assert [e.id for e in index.assets] == ["z", "c", "y", "a", "b"]

    def test_usage_refs_are_recomputed(self) -> None:
        stale = entry("a")
        stale.usage_refs = build_usage_refs(storyline())["c"]
        reordered = reorder_index(AssetIndex(assets=[stale]), storyline())
        assert {r.cut_id for r in reordered.assets[0].usage_refs} == {"c2", "c3"}


class TestRegisterEntry:
    def test_same_hash_returns_existing(self, tmp_path: Path) -> None:
        register_entry(tmp_path, entry("first", "h1"))

        backing = register_entry(tmp_path, entry("second", "h1"))

        assert backing.id == "first"
        assert [e.id for e in load_index(tmp_path).assets] == ["first"]

    def test_same_id_is_replaced(self, tmp_path: Path) -> None:
        register_entry(tmp_path, entry("a", "h1"))
        register_entry(tmp_path, entry("a", "h2"))
        assert [e.hash for e in load_index(tmp_path).assets] == ["h2"]


class TestVerifyVault:
    def test_reports_missing_and_orphaned(self, tmp_vault: Path) -> None:
        save_index(tmp_vault, AssetIndex(assets=[entry("a"), entry("b")]))
        (tmp_vault / "assets" / "img_a.png").write_bytes(b"x")
        (tmp_vault / "assets" / "stray.png").write_bytes(b"y")
        (tmp_vault / "assets" / ".DS_Store").write_bytes(b"")

        report = verify_vault(tmp_vault)

        assert report == {"valid": False, "missing": ["img_b.png"], "orphaned": ["stray.png"]}

    def test_empty_vault_is_valid(self, tmp_vault: Path) -> None:
        assert verify_vault(tmp_vault)["valid"]
