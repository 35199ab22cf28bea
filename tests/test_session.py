"""Tests for scenedeck.session - saving, loading and recovery end to end."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import FakeExtractor, asset_files
from scenedeck.index import load_index
from scenedeck.resolver import Delete
from scenedeck.session import ProjectSession, load_project, open_project


@pytest.fixture
def session(tmp_path: Path) -> ProjectSession:
    return ProjectSession.create(tmp_path / "vault", "demo", extractor=FakeExtractor())


class TestSaveAndLoad:
    @pytest.mark.asyncio
    async def test_round_trip(self, session: ProjectSession, make_file: Callable[..., Path]) -> None:
        scene_id = session.state.scenes[0].id
        await session.import_files(scene_id, [make_file("a.png"), make_file("b.png")])
        await session.save()
        await session.close()

        reopened = await open_project(session.vault.path, extractor=FakeExtractor())

        cuts = reopened.state.scenes[0].cuts
        assert [c.asset.name for c in cuts] == ["a.png", "b.png"]
        assert all(Path(c.asset.path).is_absolute() for c in cuts)
        assert Path(cuts[0].asset.path).exists()
        await reopened.close()

    @pytest.mark.asyncio
    async def test_project_file_stores_vault_relative_paths(
        self, session: ProjectSession, make_file: Callable[..., Path]
    ) -> None:
        await session.import_files(session.state.scenes[0].id, [make_file("a.png")])
        await session.save()
        await session.close()

        raw = json.loads(session.vault.project_path.read_text())
        asset = raw["scenes"][0]["cuts"][0]["asset"]
        assert asset["path"].startswith("assets/img_")
        assert asset["vaultRelativePath"] == asset["path"]

    @pytest.mark.asyncio
    async def test_save_reorders_index_by_storyline(
        self, session: ProjectSession, make_file: Callable[..., Path]
    ) -> None:
        scene_id = session.state.scenes[0].id
        commands = await session.import_files(scene_id, [make_file("a.png"), make_file("b.png")])
        session.state.reorder_cut(scene_id, 1, 0)
        await session.save()
        await session.close()

        ids = [entry.id for entry in load_index(session.vault.path).assets]
        assert ids == [commands[1].result.asset.id, commands[0].result.asset.id]

    @pytest.mark.asyncio
    async def test_groups_survive_reload(self, session: ProjectSession, make_file: Callable[..., Path]) -> None:
        scene_id = session.state.scenes[0].id
        commands = await session.import_files(scene_id, [make_file("a.png"), make_file("b.png")])
        group_id = session.state.create_group(scene_id, [c.cut_id for c in commands], "Pair")
        await session.save()
        await session.close()

        reopened = await open_project(session.vault.path, extractor=FakeExtractor())

        assert reopened.state.groups[group_id].name == "Pair"
        assert reopened.state.groups[group_id].cut_ids == [c.cut_id for c in commands]
        await reopened.close()

    @pytest.mark.asyncio
    async def test_clip_thumbnail_taken_at_in_point_on_load(
        self, session: ProjectSession, make_file: Callable[..., Path]
    ) -> None:
        scene_id = session.state.scenes[0].id
        video = make_file("take.mp4", b"video bytes")
        clip, full = await session.import_files(scene_id, [video, video])
        session.state.update_cut_clip_points(scene_id, clip.cut_id, 1.5, 3.0)
        await session.save()
        await session.close()

        extractor = FakeExtractor(thumbnail="data:image/jpeg;base64,CLIP")
        reopened = await open_project(session.vault.path, extractor=extractor)

        cuts = reopened.state.scenes[0].cuts
        assert extractor.thumbnail_calls == [(Path(cuts[0].asset.path), 1.5)]
        assert cuts[0].asset.thumbnail == "data:image/jpeg;base64,CLIP"
        assert cuts[1].asset.thumbnail != "data:image/jpeg;base64,CLIP"
        await reopened.close()

    @pytest.mark.asyncio
    async def test_undo_import_through_session(
        self, session: ProjectSession, make_file: Callable[..., Path]
    ) -> None:
        scene_id = session.state.scenes[0].id
        await session.import_files(scene_id, [make_file("a.png")])

        await session.undo()

        assert session.state.scenes[0].cuts == []
        await session.close()


class TestMissingAssets:
    @pytest.mark.asyncio
    async def test_delete_missing_asset(self, session: ProjectSession, make_file: Callable[..., Path]) -> None:
        scene_id = session.state.scenes[0].id
        await session.import_files(scene_id, [make_file("keep.png"), make_file("lost.png")])
        lost = session.state.scenes[0].cuts[1]
        await session.save()
        await session.close()
        Path(lost.asset.path).unlink()

        pending = await load_project(session.vault.path, extractor=FakeExtractor())
        assert [info.cut_id for info in pending.missing] == [lost.id]

        pending.recovery.decide(lost.id, Delete())
        reopened = await pending.finalize()

        assert pending.report.deleted == [lost.id]
        assert [c.asset.name for c in reopened.state.scenes[0].cuts] == ["keep.png"]
        assert reopened.autosave.is_dirty
        await reopened.close()

        raw = json.loads(session.vault.project_path.read_text())
        assert len(raw["scenes"][0]["cuts"]) == 1

    @pytest.mark.asyncio
    async def test_open_project_skips_missing(self, session: ProjectSession, make_file: Callable[..., Path]) -> None:
        await session.import_files(session.state.scenes[0].id, [make_file("lost.png")])
        await session.save()
        await session.close()
        for path in asset_files(session.vault.path):
            path.unlink()

        reopened = await open_project(session.vault.path, extractor=FakeExtractor())

        assert len(reopened.state.scenes[0].cuts) == 1
        assert not reopened.autosave.is_dirty
        await reopened.close()


class TestTrash:
    @pytest.mark.asyncio
    async def test_trash_unreferenced_asset(self, session: ProjectSession, make_file: Callable[..., Path]) -> None:
        scene_id = session.state.scenes[0].id
        commands = await session.import_files(scene_id, [make_file("a.png")])
        asset_id = commands[0].result.asset.id
        session.state.remove_cut(scene_id, commands[0].cut_id)

        await session.trash_asset(asset_id)

        assert asset_files(session.vault.path) == []
        assert load_index(session.vault.path).find_by_id(asset_id) is None
        await session.close()
