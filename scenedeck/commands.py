"""
scenedeck.commands - Concrete reversible commands.

Each command snapshots the pre-state it needs on first execute so undo
restores it exactly and redo reproduces the same ids. Commands whose
inverse is destructive or may be impossible (restoring a file from the
trash) ask the optional ``confirm`` callback first and raise
UndoCancelledError when the user declines.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from pathlib import Path

from scenedeck.exceptions import CommandExecutionError, UndoCancelledError
from scenedeck.gateway import FilesystemGateway
from scenedeck.history import Command
from scenedeck.importer import AssetImporter, CutImportResult, CutImportSource, build_asset_for_cut
from scenedeck.index import ASSETS_DIRNAME, load_index
from scenedeck.media import MediaMetadataExtractor
from scenedeck.models import Asset, Cut, CutGroup, Scene, TrashEntry, TrashMeta, TrashOriginRef
from scenedeck.state import ProjectState
from scenedeck.trash import TRASH_DIRNAME, restore_from_trash
from scenedeck.utils import new_id

ConfirmCallback = Callable[[str], bool | Awaitable[bool]]


async def _confirm(confirm: ConfirmCallback | None, message: str) -> None:
    if confirm is None:
        return
    answer = confirm(message)
    if inspect.isawaitable(answer):
        answer = await answer
    if not answer:
        raise UndoCancelledError(f"Cancelled: {message}")


# Cuts


class AddCutCommand(Command):
    def __init__(
        self,
        state: ProjectState,
        scene_id: str,
        asset: Asset,
        insert_index: int | None = None,
        display_time: float | None = None,
    ) -> None:
        self.state = state
        self.scene_id = scene_id
        self.asset = asset
        self.insert_index = insert_index
        self.display_time = display_time
        self.cut_id: str | None = None
        self._snapshot: Cut | None = None
        self._index = 0
        self.description = f"Add cut {asset.name}"

    async def execute(self) -> None:
        if self._snapshot is None:
            self.cut_id = self.state.add_cut(
                self.scene_id, self.asset, self.insert_index, self.display_time
            )
            cut, self._index = self.state.require_cut(self.scene_id, self.cut_id)
            self._snapshot = cut.model_copy(deep=True)
        else:
            self.state.insert_cut(self.scene_id, self._snapshot.model_copy(deep=True), self._index)

    async def undo(self) -> None:
        if self.cut_id is not None:
            self.state.remove_cut(self.scene_id, self.cut_id)


class RemoveCutCommand(Command):
    """Remove a cut; undo reinserts the same cut at its old position."""

    def __init__(
        self,
        state: ProjectState,
        scene_id: str,
        cut_id: str,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        self.state = state
        self.scene_id = scene_id
        self.cut_id = cut_id
        self.confirm = confirm
        self._cut: Cut | None = None
        self._index = 0
        self._group: CutGroup | None = None
        self._group_position = 0
        self.description = "Remove cut"

    async def execute(self) -> None:
        cut, self._index = self.state.require_cut(self.scene_id, self.cut_id)
        group = self.state.group_of(self.cut_id)
        if group is not None:
            self._group = group.model_copy(deep=True)
            self._group_position = group.cut_ids.index(self.cut_id)
        else:
            self._group = None
        self._cut = cut.model_copy(deep=True)
        self.state.remove_cut(self.scene_id, self.cut_id)

    async def undo(self) -> None:
        if self._cut is None:
            return
        await _confirm(self.confirm, "Restore the removed cut?")
        self.state.insert_cut(self.scene_id, self._cut.model_copy(deep=True), self._index)
        if self._group is not None:
            self.state.restore_cut_to_group(self._group, self.cut_id, self._group_position)


class UpdateDisplayTimeCommand(Command):
    def __init__(self, state: ProjectState, scene_id: str, cut_id: str, display_time: float) -> None:
        if display_time <= 0:
            raise ValueError("display_time must be positive")
        self.state = state
        self.scene_id = scene_id
        self.cut_id = cut_id
        self.display_time = display_time
        self._old: float | None = None
        self.description = f"Set display time to {display_time:g}s"

    async def execute(self) -> None:
        self._old = self.state.update_cut_display_time(self.scene_id, self.cut_id, self.display_time)

    async def undo(self) -> None:
        if self._old is not None:
            self.state.update_cut_display_time(self.scene_id, self.cut_id, self._old)


class BatchUpdateDisplayTimeCommand(Command):
    """Set the display time of several cuts as one undoable step."""

    def __init__(self, state: ProjectState, updates: list[tuple[str, str, float]]) -> None:
        self.state = state
        self.updates = updates
        self._old: list[tuple[str, str, float]] = []
        self.description = f"Set display time of {len(updates)} cuts"

    async def execute(self) -> None:
        self._old = []
        try:
            for scene_id, cut_id, display_time in self.updates:
                old = self.state.update_cut_display_time(scene_id, cut_id, display_time)
                self._old.append((scene_id, cut_id, old))
        except Exception:
            await self.undo()
            raise

    async def undo(self) -> None:
        for scene_id, cut_id, old in reversed(self._old):
            self.state.update_cut_display_time(scene_id, cut_id, old)


class ReorderCutsCommand(Command):
    def __init__(self, state: ProjectState, scene_id: str, old_index: int, new_index: int) -> None:
        self.state = state
        self.scene_id = scene_id
        self.old_index = old_index
        self.new_index = new_index
        self.description = "Reorder cuts"

    async def execute(self) -> None:
        self.state.reorder_cut(self.scene_id, self.old_index, self.new_index)

    async def undo(self) -> None:
        self.state.reorder_cut(self.scene_id, self.new_index, self.old_index)


class MoveCutBetweenScenesCommand(Command):
    def __init__(
        self,
        state: ProjectState,
        from_scene_id: str,
        to_scene_id: str,
        cut_id: str,
        to_index: int,
    ) -> None:
        self.state = state
        self.from_scene_id = from_scene_id
        self.to_scene_id = to_scene_id
        self.cut_id = cut_id
        self.to_index = to_index
        self._layout: dict[str, list[str]] = {}
        self._groups: dict[str, CutGroup] = {}
        self.description = "Move cut"

    async def execute(self) -> None:
        self._layout = self.state.cut_layout()
        self._groups = self.state.groups_snapshot()
        self.state.move_cut_to_scene(self.from_scene_id, self.to_scene_id, self.cut_id, self.to_index)

    async def undo(self) -> None:
        self.state.restore_cut_layout(self._layout)
        self.state.restore_groups(self._groups)


class MoveCutsToSceneCommand(Command):
    """Move several cuts (possibly from different scenes) to one position."""

    def __init__(self, state: ProjectState, cut_ids: list[str], to_scene_id: str, to_index: int) -> None:
        self.state = state
        self.cut_ids = list(cut_ids)
        self.to_scene_id = to_scene_id
        self.to_index = to_index
        self._layout: dict[str, list[str]] = {}
        self._groups: dict[str, CutGroup] = {}
        self.description = f"Move {len(cut_ids)} cuts"

    async def execute(self) -> None:
        self._layout = self.state.cut_layout()
        self._groups = self.state.groups_snapshot()
        self.state.move_cuts_to_scene(self.cut_ids, self.to_scene_id, self.to_index)

    async def undo(self) -> None:
        self.state.restore_cut_layout(self._layout)
        self.state.restore_groups(self._groups)


class _ClipCommand(Command):
    def __init__(self, state: ProjectState, scene_id: str, cut_id: str) -> None:
        self.state = state
        self.scene_id = scene_id
        self.cut_id = cut_id
        self._old: tuple[float | None, float | None, bool, float] | None = None

    def _snapshot(self) -> None:
        cut, _ = self.state.require_cut(self.scene_id, self.cut_id)
        self._old = (cut.in_point, cut.out_point, cut.is_clip, cut.display_time)

    async def undo(self) -> None:
        if self._old is None:
            return
        in_point, out_point, is_clip, display_time = self._old
        if is_clip and in_point is not None and out_point is not None:
            self.state.update_cut_clip_points(self.scene_id, self.cut_id, in_point, out_point)
        else:
            self.state.clear_cut_clip_points(self.scene_id, self.cut_id)
        self.state.update_cut_display_time(self.scene_id, self.cut_id, display_time)


class UpdateClipPointsCommand(_ClipCommand):
    def __init__(
        self, state: ProjectState, scene_id: str, cut_id: str, in_point: float, out_point: float
    ) -> None:
        super().__init__(state, scene_id, cut_id)
        self.in_point = in_point
        self.out_point = out_point
        self.description = "Set clip points"

    async def execute(self) -> None:
        self._snapshot()
        self.state.update_cut_clip_points(self.scene_id, self.cut_id, self.in_point, self.out_point)


class ClearClipPointsCommand(_ClipCommand):
    def __init__(self, state: ProjectState, scene_id: str, cut_id: str) -> None:
        super().__init__(state, scene_id, cut_id)
        self.description = "Clear clip points"

    async def execute(self) -> None:
        self._snapshot()
        self.state.clear_cut_clip_points(self.scene_id, self.cut_id)


# Scenes


class AddSceneCommand(Command):
    def __init__(
        self, state: ProjectState, name: str | None = None, confirm: ConfirmCallback | None = None
    ) -> None:
        self.state = state
        self.name = name
        self.confirm = confirm
        self.scene_id: str | None = None
        self.description = f"Add scene {name}" if name else "Add scene"

    async def execute(self) -> None:
        self.scene_id = self.state.add_scene(self.name, scene_id=self.scene_id)
        self.name = self.state.require_scene(self.scene_id).name

    async def undo(self) -> None:
        if self.scene_id is None:
            return
        scene = self.state.require_scene(self.scene_id)
        if scene.cuts:
            await _confirm(self.confirm, f"Remove scene '{scene.name}' and its {len(scene.cuts)} cuts?")
        self.state.remove_scene(self.scene_id)


class RemoveSceneCommand(Command):
    def __init__(
        self, state: ProjectState, scene_id: str, confirm: ConfirmCallback | None = None
    ) -> None:
        self.state = state
        self.scene_id = scene_id
        self.confirm = confirm
        self._removed: tuple[Scene, int, list[CutGroup]] | None = None
        self.description = "Remove scene"

    async def execute(self) -> None:
        scene, index, groups = self.state.remove_scene(self.scene_id)
        self._removed = (
            scene.model_copy(deep=True),
            index,
            [g.model_copy(deep=True) for g in groups],
        )

    async def undo(self) -> None:
        if self._removed is None:
            return
        scene, index, groups = self._removed
        await _confirm(self.confirm, f"Restore scene '{scene.name}'?")
        self.state.insert_scene(
            scene.model_copy(deep=True), index, [g.model_copy(deep=True) for g in groups]
        )


class RenameSceneCommand(Command):
    def __init__(self, state: ProjectState, scene_id: str, name: str) -> None:
        self.state = state
        self.scene_id = scene_id
        self.name = name
        self._old: str | None = None
        self.description = f"Rename scene to {name}"

    async def execute(self) -> None:
        self._old = self.state.rename_scene(self.scene_id, self.name)

    async def undo(self) -> None:
        if self._old is not None:
            self.state.rename_scene(self.scene_id, self._old)


class DuplicateSceneCommand(Command):
    """Copy a scene (cuts and groups get fresh ids) right after the original."""

    def __init__(
        self, state: ProjectState, scene_id: str, confirm: ConfirmCallback | None = None
    ) -> None:
        self.state = state
        self.scene_id = scene_id
        self.confirm = confirm
        self._copy: tuple[Scene, list[CutGroup]] | None = None
        self.new_scene_id: str | None = None
        self.description = "Duplicate scene"

    def _build_copy(self) -> tuple[Scene, list[CutGroup]]:
        source = self.state.require_scene(self.scene_id)
        id_map = {cut.id: new_id() for cut in source.cuts}
        scene = source.model_copy(deep=True)
        scene.id = new_id()
        scene.name = f"{source.name} (copy)"
        for cut in scene.cuts:
            cut.id = id_map[cut.id]
        groups = []
        for group in self.state.groups_for_scene(self.scene_id):
            copied = group.model_copy(deep=True)
            copied.id = new_id()
            copied.scene_id = scene.id
            copied.cut_ids = [id_map[cid] for cid in group.cut_ids if cid in id_map]
            groups.append(copied)
        return scene, groups

    async def execute(self) -> None:
        if self._copy is None:
            self._copy = self._build_copy()
        scene, groups = self._copy
        self.new_scene_id = scene.id
        index = self.state.scene_index(self.scene_id) + 1
        self.state.insert_scene(
            scene.model_copy(deep=True), index, [g.model_copy(deep=True) for g in groups]
        )

    async def undo(self) -> None:
        if self.new_scene_id is None:
            return
        await _confirm(self.confirm, "Remove the duplicated scene?")
        self.state.remove_scene(self.new_scene_id)


# Groups


class _GroupCommand(Command):
    def __init__(self, state: ProjectState) -> None:
        self.state = state
        self._groups: dict[str, CutGroup] = {}

    async def undo(self) -> None:
        self.state.restore_groups(self._groups)


class CreateGroupCommand(_GroupCommand):
    def __init__(
        self, state: ProjectState, scene_id: str, cut_ids: list[str], name: str | None = None
    ) -> None:
        super().__init__(state)
        self.scene_id = scene_id
        self.cut_ids = list(cut_ids)
        self.name = name
        self.group_id = new_id()
        self.description = f"Group {len(cut_ids)} cuts"

    async def execute(self) -> None:
        self._groups = self.state.groups_snapshot()
        self.state.create_group(self.scene_id, self.cut_ids, self.name, group_id=self.group_id)


class DeleteGroupCommand(_GroupCommand):
    """Ungroup: the cuts stay in the scene."""

    def __init__(self, state: ProjectState, group_id: str) -> None:
        super().__init__(state)
        self.group_id = group_id
        self.description = "Ungroup cuts"

    async def execute(self) -> None:
        self.state.require_group(self.group_id)
        self._groups = self.state.groups_snapshot()
        self.state.delete_group(self.group_id)


class RenameGroupCommand(Command):
    def __init__(self, state: ProjectState, group_id: str, name: str) -> None:
        self.state = state
        self.group_id = group_id
        self.name = name
        self._old: str | None = None
        self.description = f"Rename group to {name}"

    async def execute(self) -> None:
        self._old = self.state.rename_group(self.group_id, self.name)

    async def undo(self) -> None:
        if self._old is not None:
            self.state.rename_group(self.group_id, self._old)


class RemoveCutFromGroupCommand(_GroupCommand):
    def __init__(self, state: ProjectState, group_id: str, cut_id: str) -> None:
        super().__init__(state)
        self.group_id = group_id
        self.cut_id = cut_id
        self.description = "Remove cut from group"

    async def execute(self) -> None:
        self._groups = self.state.groups_snapshot()
        self.state.remove_cut_from_group(self.group_id, self.cut_id)


# Asset-bearing


class ImportCutCommand(Command):
    """Add a cut for a file, importing it into the vault.

    A loading placeholder is shown while the file is hashed and copied.
    An import failure does not fail the command: the cut keeps an
    unmanaged asset. Redo reinserts the imported cut without importing
    again.
    """

    def __init__(
        self,
        state: ProjectState,
        scene_id: str,
        source: CutImportSource,
        vault_root: Path | None,
        importer: AssetImporter,
        extractor: MediaMetadataExtractor,
        insert_index: int | None = None,
        default_display_time: float = 1.0,
    ) -> None:
        self.state = state
        self.scene_id = scene_id
        self.source = source
        self.vault_root = vault_root
        self.importer = importer
        self.extractor = extractor
        self.insert_index = insert_index
        self.default_display_time = default_display_time
        self.cut_id: str | None = None
        self.result: CutImportResult | None = None
        self._snapshot: Cut | None = None
        self._index = 0
        self.description = f"Import {source.name}"

    async def execute(self) -> None:
        if self._snapshot is not None:
            self.state.insert_cut(self.scene_id, self._snapshot.model_copy(deep=True), self._index)
            return

        cut_id = self.state.add_loading_cut(
            self.scene_id, self.source.asset_id, self.source.name, self.insert_index
        )
        try:
            result = await build_asset_for_cut(
                self.source,
                self.vault_root,
                self.importer,
                self.extractor,
                default_display_time=self.default_display_time,
            )
        except Exception as e:
            self.state.remove_cut(self.scene_id, cut_id)
            raise CommandExecutionError(f"Could not add {self.source.name}: {e}") from e

        self.state.update_cut_with_asset(self.scene_id, cut_id, result.asset, result.display_time)
        cut, self._index = self.state.require_cut(self.scene_id, cut_id)
        self._snapshot = cut.model_copy(deep=True)
        self.cut_id = cut_id
        self.result = result

    async def undo(self) -> None:
        if self.cut_id is not None:
            self.state.remove_cut(self.scene_id, self.cut_id)


class TrashAssetCommand(Command):
    """Move an unreferenced vault asset into the trash.

    Undo asks for confirmation: the file may have been deleted from the
    trash by hand in the meantime.
    """

    def __init__(
        self,
        state: ProjectState,
        vault_root: Path,
        asset_id: str,
        gateway: FilesystemGateway,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        self.state = state
        self.vault_root = vault_root
        self.asset_id = asset_id
        self.gateway = gateway
        self.confirm = confirm
        self.trash_entry: TrashEntry | None = None
        self.description = "Move asset to trash"

    async def execute(self) -> None:
        if any(cut.asset_id == self.asset_id for cut in self.state.iter_cuts()):
            raise CommandExecutionError(f"Asset {self.asset_id} is still used by a cut")
        entry = load_index(self.vault_root).find_by_id(self.asset_id)
        if entry is None:
            raise CommandExecutionError(f"Asset {self.asset_id} is not in the vault index")
        meta = TrashMeta(
            asset_id=self.asset_id,
            origin_refs=[
                TrashOriginRef(scene_id=ref.scene_id, cut_id=ref.cut_id) for ref in entry.usage_refs
            ],
            reason="user-trash",
        )
        self.trash_entry = await self.gateway.move_to_trash(
            self.vault_root / ASSETS_DIRNAME / entry.filename,
            self.vault_root / TRASH_DIRNAME,
            meta,
        )
        self.state.asset_cache.pop(self.asset_id, None)

    async def undo(self) -> None:
        if self.trash_entry is None:
            return
        await _confirm(self.confirm, f"Restore {self.trash_entry.filename} from the trash?")
        await asyncio.to_thread(restore_from_trash, self.vault_root, self.trash_entry.id)
        self.trash_entry = None
