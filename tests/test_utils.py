"""Tests for scenedeck.utils module."""

from __future__ import annotations

from pathlib import Path

from scenedeck.utils import (
    format_duration,
    format_size,
    generate_asset_id,
    is_path_inside,
    parse_iso,
    to_vault_relative,
)


class TestFormatDuration:
    def test_seconds_only(self) -> None:
        assert format_duration(45.0) == "0:45"

    def test_minutes_and_seconds(self) -> None:
        assert format_duration(125.0) == "2:05"

    def test_hours_minutes_seconds(self) -> None:
        assert format_duration(3725.0) == "1:02:05"

    def test_zero(self) -> None:
        assert format_duration(0.0) == "0:00"

    def test_float_seconds(self) -> None:
        assert format_duration(90.7) == "1:30"


class TestFormatSize:
    def test_bytes(self) -> None:
        assert format_size(512) == "512.0 B"

    def test_megabytes(self) -> None:
        assert format_size(3 * 1024 * 1024) == "3.0 MB"

    def test_unknown(self) -> None:
        assert format_size(None) == "-"


class TestIds:
    def test_asset_id_shape(self) -> None:
        asset_id = generate_asset_id()
        assert asset_id.startswith("asset_")
        assert len(asset_id) == len("asset_") + 16

    def test_asset_ids_are_unique(self) -> None:
        assert generate_asset_id() != generate_asset_id()


class TestParseIso:
    def test_zulu_suffix(self) -> None:
        parsed = parse_iso("2026-03-01T10:00:00Z")
        assert parsed is not None
        assert parsed.utcoffset().total_seconds() == 0

    def test_naive_is_utc(self) -> None:
        assert parse_iso("2026-03-01T10:00:00").tzinfo is not None

    def test_garbage(self) -> None:
        assert parse_iso("last tuesday") is None
        assert parse_iso(None) is None


class TestVaultPaths:
    def test_inside(self, tmp_path: Path) -> None:
        assert is_path_inside(tmp_path, tmp_path / "assets" / "a.png")
        assert not is_path_inside(tmp_path / "assets", tmp_path / "other.png")

    def test_relative_inside_vault(self, tmp_path: Path) -> None:
        assert to_vault_relative(tmp_path, tmp_path / "assets" / "a.png") == "assets/a.png"

    def test_outside_vault_stays_absolute(self, tmp_path: Path) -> None:
        outside = tmp_path.parent / "elsewhere.png"
        assert to_vault_relative(tmp_path, outside) == str(outside)

    def test_relative_input_normalised(self, tmp_path: Path) -> None:
        assert to_vault_relative(tmp_path, "assets\\a.png") == "assets/a.png"

    def test_empty(self, tmp_path: Path) -> None:
        assert to_vault_relative(tmp_path, None) == ""
