"""Tests for scenedeck CLI commands."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path

from typer.testing import CliRunner

from conftest import asset_files
from scenedeck import __version__
from scenedeck.cli import app
from scenedeck.index import load_index
from scenedeck.models import TrashMeta
from scenedeck.trash import move_file_into_trash, read_trash_index, record_trash_entry

runner = CliRunner()


def import_into(vault: Path, *files: Path) -> None:
    result = runner.invoke(app, ["import", *map(str, files), "--vault", str(vault)])
    assert result.exit_code == 0, result.output


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestInitCommand:
    def test_init_creates_vault(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["init", "pilot", "-d", str(tmp_path)])

        assert result.exit_code == 0
        vault = tmp_path / "pilot"
        assert (vault / "project.sdp").exists()
        assert (vault / "scenedeck.yaml").exists()
        assert (vault / "assets").is_dir()
        assert (vault / ".trash").is_dir()

    def test_init_fails_if_project_exists(self, tmp_path: Path) -> None:
        runner.invoke(app, ["init", "pilot", "-d", str(tmp_path)])
        result = runner.invoke(app, ["init", "pilot", "-d", str(tmp_path)])

        assert result.exit_code == 1
        assert "already holds a project" in result.output


class TestVaultLookup:
    def test_fails_outside_vault(self, tmp_path: Path) -> None:
        original_cwd = os.getcwd()
        try:
            os.chdir(tmp_path)
            result = runner.invoke(app, ["index"])
        finally:
            os.chdir(original_cwd)

        assert result.exit_code == 1
        assert "Not in a SceneDeck vault" in result.output

    def test_finds_vault_from_cwd(self, tmp_vault: Path) -> None:
        original_cwd = os.getcwd()
        try:
            os.chdir(tmp_vault / "assets")
            result = runner.invoke(app, ["index"])
        finally:
            os.chdir(original_cwd)

        assert result.exit_code == 0
        assert "The asset index is empty" in result.output


class TestImportCommand:
    def test_import_adds_cuts(self, tmp_vault: Path, make_file: Callable[..., Path]) -> None:
        result = runner.invoke(
            app, ["import", str(make_file("a.png")), str(make_file("b.png")), "--vault", str(tmp_vault)]
        )

        assert result.exit_code == 0, result.output
        assert "Added 2 cut(s)" in result.output
        assert len(asset_files(tmp_vault)) == 2
        project = json.loads((tmp_vault / "project.sdp").read_text())
        assert len(project["scenes"][0]["cuts"]) == 2

    def test_import_into_new_named_scene(self, tmp_vault: Path, make_file: Callable[..., Path]) -> None:
        result = runner.invoke(
            app, ["import", str(make_file("a.png")), "--scene", "Finale", "--vault", str(tmp_vault)]
        )

        assert result.exit_code == 0, result.output
        project = json.loads((tmp_vault / "project.sdp").read_text())
        assert [s["name"] for s in project["scenes"]] == ["Scene 1", "Finale"]
        assert len(project["scenes"][1]["cuts"]) == 1

    def test_duplicate_content_shares_one_file(self, tmp_vault: Path, make_file: Callable[..., Path]) -> None:
        import_into(tmp_vault, make_file("a.png", b"same"))
        import_into(tmp_vault, make_file("copy.png", b"same"))

        assert len(asset_files(tmp_vault)) == 1
        assert len(load_index(tmp_vault).assets) == 1

    def test_missing_files_only(self, tmp_vault: Path) -> None:
        result = runner.invoke(app, ["import", "nope.png", "--vault", str(tmp_vault)])

        assert result.exit_code == 1
        assert "No files to import" in result.output


class TestVerifyAndCheck:
    def test_clean_vault(self, tmp_vault: Path, make_file: Callable[..., Path]) -> None:
        import_into(tmp_vault, make_file("a.png"))

        assert runner.invoke(app, ["verify", "--vault", str(tmp_vault)]).exit_code == 0
        result = runner.invoke(app, ["check", "--vault", str(tmp_vault)])
        assert result.exit_code == 0
        assert "resolve to existing files" in result.output

    def test_deleted_asset_is_reported(self, tmp_vault: Path, make_file: Callable[..., Path]) -> None:
        import_into(tmp_vault, make_file("a.png"))
        asset_files(tmp_vault)[0].unlink()

        verify = runner.invoke(app, ["verify", "--vault", str(tmp_vault)])
        check = runner.invoke(app, ["check", "--vault", str(tmp_vault)])

        assert verify.exit_code == 1
        assert "Missing" in verify.output
        assert check.exit_code == 1
        assert "Missing assets (1)" in check.output


class TestTrashCommands:
    def test_empty_trash(self, tmp_vault: Path) -> None:
        result = runner.invoke(app, ["trash", "list", "--vault", str(tmp_vault)])
        assert result.exit_code == 0
        assert "The trash is empty" in result.output

    def test_purge_all(self, tmp_vault: Path) -> None:
        source = tmp_vault / "assets" / "old.png"
        source.write_bytes(b"x")
        trashed = move_file_into_trash(source, tmp_vault / ".trash")
        record_trash_entry(tmp_vault / ".trash", source, trashed, TrashMeta(reason="test"))

        listed = runner.invoke(app, ["trash", "list", "--vault", str(tmp_vault)])
        kept = runner.invoke(app, ["trash", "purge", "--vault", str(tmp_vault)])
        purged = runner.invoke(app, ["trash", "purge", "--all", "--vault", str(tmp_vault)])

        assert "Trash (kept 30 days)" in listed.output
        assert "Purged 0 item(s)" in kept.output
        assert "Purged 1 item(s)" in purged.output
        assert read_trash_index(tmp_vault / ".trash").items == []
        assert not trashed.exists()
