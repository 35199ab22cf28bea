"""
scenedeck.state - The mutable project state commands operate on.

Scenes own ordered cuts; cuts reference assets by id. Group membership is
kept in a separate table (group id -> cut ids) so deleting a cut or scene
never leaves a dangling back-pointer. Listeners are notified after every
mutation; the autosave controller filters out UI-only churn itself.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

from scenedeck.exceptions import ProjectStateError
from scenedeck.metadata import (
    attach_audio,
    detach_audio,
    get_asset_metadata,
    remove_scene_metadata,
    update_audio_offset,
    upsert_scene_metadata,
)
from scenedeck.models import Asset, Cut, CutGroup, MetadataStore, Scene, SourcePanelState
from scenedeck.utils import new_id

StateListener = Callable[["ProjectState"], None]


class ProjectState:
    """Scenes, cuts, groups and panel state of one open project."""

    def __init__(
        self,
        name: str = "untitled",
        vault_path: Path | None = None,
        scenes: list[Scene] | None = None,
        groups: list[CutGroup] | None = None,
        source_panel: SourcePanelState | None = None,
    ) -> None:
        self.name = name
        self.vault_path = vault_path
        self.scenes: list[Scene] = scenes or []
        self.groups: dict[str, CutGroup] = {g.id: g for g in groups or []}
        self.source_panel = source_panel or SourcePanelState()
        self.metadata_store = MetadataStore()
        self.asset_cache: dict[str, Asset] = {}

        # UI-only fields; never part of the persisted project.
        self.selected_scene_id: str | None = None
        self.selected_cut_ids: set[str] = set()
        self.details_panel_open = False
        self.active_drag: str | None = None

        self.version = 0
        self._listeners: list[StateListener] = []
        self._cache_assets()

    # Observation

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            listener(self)

    def _cache_assets(self) -> None:
        for cut in self.iter_cuts():
            if cut.asset is not None:
                self.asset_cache[cut.asset.id] = cut.asset

    # Lookup

    def get_scene(self, scene_id: str) -> Scene | None:
        return next((s for s in self.scenes if s.id == scene_id), None)

    def require_scene(self, scene_id: str) -> Scene:
        scene = self.get_scene(scene_id)
        if scene is None:
            raise ProjectStateError(f"Unknown scene {scene_id}")
        return scene

    def scene_index(self, scene_id: str) -> int:
        return self.scenes.index(self.require_scene(scene_id))

    def find_cut(self, cut_id: str) -> tuple[Scene, Cut, int] | None:
        for scene in self.scenes:
            for i, cut in enumerate(scene.cuts):
                if cut.id == cut_id:
                    return scene, cut, i
        return None

    def require_cut(self, scene_id: str, cut_id: str) -> tuple[Cut, int]:
        scene = self.require_scene(scene_id)
        for i, cut in enumerate(scene.cuts):
            if cut.id == cut_id:
                return cut, i
        raise ProjectStateError(f"Unknown cut {cut_id} in scene {scene_id}")

    def iter_cuts(self) -> Iterator[Cut]:
        for scene in self.scenes:
            yield from scene.cuts

    def group_of(self, cut_id: str) -> CutGroup | None:
        return next((g for g in self.groups.values() if cut_id in g.cut_ids), None)

    def groups_for_scene(self, scene_id: str) -> list[CutGroup]:
        return [g for g in self.groups.values() if g.scene_id == scene_id]

    def require_group(self, group_id: str) -> CutGroup:
        group = self.groups.get(group_id)
        if group is None:
            raise ProjectStateError(f"Unknown group {group_id}")
        return group

    # Whole-project

    def replace_scenes(self, scenes: list[Scene], groups: list[CutGroup] | None = None) -> None:
        self.scenes = scenes
        self.groups = {g.id: g for g in groups or []}
        self._cache_assets()
        self._changed()

    def rename_project(self, name: str) -> None:
        self.name = name
        self._changed()

    def set_source_panel(self, source_panel: SourcePanelState) -> None:
        self.source_panel = source_panel
        self._changed()

    def groups_snapshot(self) -> dict[str, CutGroup]:
        return {gid: g.model_copy(deep=True) for gid, g in self.groups.items()}

    def restore_groups(self, snapshot: dict[str, CutGroup]) -> None:
        self.groups = {gid: g.model_copy(deep=True) for gid, g in snapshot.items()}
        self._changed()

    # Scenes

    def _renumber_scenes(self) -> None:
        for i, scene in enumerate(self.scenes):
            scene.order = i

    def add_scene(self, name: str | None = None, scene_id: str | None = None) -> str:
        scene = Scene(
            id=scene_id or new_id(),
            name=name or f"Scene {len(self.scenes) + 1}",
            order=len(self.scenes),
        )
        self.scenes.append(scene)
        self.metadata_store = upsert_scene_metadata(self.metadata_store, scene)
        self._changed()
        return scene.id

    def insert_scene(self, scene: Scene, index: int, groups: list[CutGroup] | None = None) -> None:
        self.scenes.insert(min(max(index, 0), len(self.scenes)), scene)
        for group in groups or []:
            self.groups[group.id] = group
        self._renumber_scenes()
        self._cache_assets()
        self.metadata_store = upsert_scene_metadata(self.metadata_store, scene)
        self._changed()

    def remove_scene(self, scene_id: str) -> tuple[Scene, int, list[CutGroup]]:
        scene = self.require_scene(scene_id)
        index = self.scenes.index(scene)
        removed_groups = self.groups_for_scene(scene_id)
        for group in removed_groups:
            del self.groups[group.id]
        self.scenes.remove(scene)
        self._renumber_scenes()
        self.metadata_store = remove_scene_metadata(self.metadata_store, scene_id)
        if self.selected_scene_id == scene_id:
            self.selected_scene_id = None
            self.details_panel_open = False
        self._changed()
        return scene, index, removed_groups

    def rename_scene(self, scene_id: str, name: str) -> str:
        scene = self.require_scene(scene_id)
        old_name = scene.name
        scene.name = name
        self.metadata_store = upsert_scene_metadata(self.metadata_store, scene)
        self._changed()
        return old_name

    # Audio attachments

    def attach_audio_to_asset(self, asset_id: str, audio_asset: Asset, offset: float = 0.0) -> None:
        self.asset_cache[audio_asset.id] = audio_asset
        self.metadata_store = attach_audio(
            self.metadata_store, asset_id, audio_asset.id, audio_asset.name, offset
        )
        self._changed()

    def detach_audio_from_asset(self, asset_id: str) -> None:
        self.metadata_store = detach_audio(self.metadata_store, asset_id)
        self._changed()

    def update_audio_offset(self, asset_id: str, offset: float) -> None:
        self.metadata_store = update_audio_offset(self.metadata_store, asset_id, offset)
        self._changed()

    def get_attached_audio(self, asset_id: str) -> Asset | None:
        """The cached audio asset attached to ``asset_id``, if any."""
        entry = get_asset_metadata(self.metadata_store, asset_id)
        if entry is None or not entry.attached_audio_id:
            return None
        return self.asset_cache.get(entry.attached_audio_id)

    # Cuts

    @staticmethod
    def _renumber_cuts(scene: Scene) -> None:
        for i, cut in enumerate(scene.cuts):
            cut.order = i

    def add_cut(
        self,
        scene_id: str,
        asset: Asset,
        insert_index: int | None = None,
        display_time: float | None = None,
    ) -> str:
        scene = self.require_scene(scene_id)
        cut = Cut(id=new_id(), asset_id=asset.id, asset=asset)
        if display_time is not None:
            cut.display_time = display_time
        self.asset_cache[asset.id] = asset
        self.insert_cut(scene_id, cut, len(scene.cuts) if insert_index is None else insert_index)
        return cut.id

    def add_loading_cut(
        self, scene_id: str, asset_id: str, loading_name: str, insert_index: int | None = None
    ) -> str:
        """Placeholder cut shown while its file is being imported."""
        scene = self.require_scene(scene_id)
        cut = Cut(id=new_id(), asset_id=asset_id, is_loading=True, loading_name=loading_name)
        self.insert_cut(scene_id, cut, len(scene.cuts) if insert_index is None else insert_index)
        return cut.id

    def update_cut_with_asset(
        self, scene_id: str, cut_id: str, asset: Asset, display_time: float | None = None
    ) -> None:
        cut, _ = self.require_cut(scene_id, cut_id)
        cut.asset = asset
        cut.asset_id = asset.id
        if display_time is not None:
            cut.display_time = display_time
        cut.is_loading = False
        cut.loading_name = None
        self.asset_cache[asset.id] = asset
        self._changed()

    def update_cut_thumbnail(self, scene_id: str, cut_id: str, thumbnail: str) -> None:
        """Give one cut its own thumbnail; other cuts of the asset keep theirs."""
        cut, _ = self.require_cut(scene_id, cut_id)
        if cut.asset is None:
            raise ProjectStateError(f"Cut {cut_id} has no asset")
        cut.asset = cut.asset.model_copy(update={"thumbnail": thumbnail})
        self._changed()

    def insert_cut(self, scene_id: str, cut: Cut, index: int) -> None:
        scene = self.require_scene(scene_id)
        scene.cuts.insert(min(max(index, 0), len(scene.cuts)), cut)
        self._renumber_cuts(scene)
        if cut.asset is not None:
            self.asset_cache[cut.asset.id] = cut.asset
        self._changed()

    def _drop_from_groups(self, cut_id: str) -> None:
        for group in list(self.groups.values()):
            if cut_id in group.cut_ids:
                group.cut_ids = [cid for cid in group.cut_ids if cid != cut_id]
                if not group.cut_ids:
                    del self.groups[group.id]

    def remove_cut(self, scene_id: str, cut_id: str) -> Cut | None:
        """Remove a cut from its scene and from any group.

        The cut's asset and vault file are untouched.
        """
        scene = self.require_scene(scene_id)
        cut = next((c for c in scene.cuts if c.id == cut_id), None)
        if cut is None:
            return None
        scene.cuts.remove(cut)
        self._renumber_cuts(scene)
        self._drop_from_groups(cut_id)
        self.selected_cut_ids.discard(cut_id)
        self._changed()
        return cut

    def update_cut_display_time(self, scene_id: str, cut_id: str, display_time: float) -> float:
        cut, _ = self.require_cut(scene_id, cut_id)
        old = cut.display_time
        cut.display_time = display_time
        self._changed()
        return old

    def reorder_cut(self, scene_id: str, old_index: int, new_index: int) -> None:
        scene = self.require_scene(scene_id)
        if not 0 <= old_index < len(scene.cuts):
            raise ProjectStateError(f"Cut index {old_index} out of range in scene {scene_id}")
        cut = scene.cuts.pop(old_index)
        scene.cuts.insert(min(max(new_index, 0), len(scene.cuts)), cut)
        self._renumber_cuts(scene)
        self._changed()

    def move_cut_to_scene(
        self, from_scene_id: str, to_scene_id: str, cut_id: str, to_index: int
    ) -> None:
        from_scene = self.require_scene(from_scene_id)
        to_scene = self.require_scene(to_scene_id)
        cut, _ = self.require_cut(from_scene_id, cut_id)
        from_scene.cuts.remove(cut)
        self._renumber_cuts(from_scene)
        if from_scene_id != to_scene_id:
            self._drop_from_groups(cut_id)
        to_scene.cuts.insert(min(max(to_index, 0), len(to_scene.cuts)), cut)
        self._renumber_cuts(to_scene)
        self._changed()

    def move_cuts_to_scene(self, cut_ids: list[str], to_scene_id: str, to_index: int) -> None:
        """Move several cuts to one position, keeping their storyline order."""
        to_scene = self.require_scene(to_scene_id)
        wanted = set(cut_ids)
        moving: list[Cut] = []
        insert_at = to_index
        for scene in self.scenes:
            kept = []
            for i, cut in enumerate(scene.cuts):
                if cut.id in wanted:
                    moving.append(cut)
                    if scene is to_scene and i < to_index:
                        insert_at -= 1
                    if scene.id != to_scene_id:
                        self._drop_from_groups(cut.id)
                else:
                    kept.append(cut)
            scene.cuts = kept
            self._renumber_cuts(scene)
        insert_at = min(max(insert_at, 0), len(to_scene.cuts))
        to_scene.cuts[insert_at:insert_at] = moving
        self._renumber_cuts(to_scene)
        self._changed()

    def update_cut_clip_points(
        self, scene_id: str, cut_id: str, in_point: float, out_point: float
    ) -> None:
        cut, _ = self.require_cut(scene_id, cut_id)
        cut.in_point = in_point
        cut.out_point = out_point
        cut.is_clip = True
        cut.display_time = abs(out_point - in_point)
        self._changed()

    def clear_cut_clip_points(self, scene_id: str, cut_id: str) -> None:
        cut, _ = self.require_cut(scene_id, cut_id)
        cut.in_point = None
        cut.out_point = None
        cut.is_clip = False
        if cut.asset is not None and cut.asset.duration:
            cut.display_time = cut.asset.duration
        self._changed()

    def relink_cut_asset(self, scene_id: str, cut_id: str, asset: Asset) -> None:
        """Point a cut at a new asset; clip points survive only video-to-video."""
        cut, _ = self.require_cut(scene_id, cut_id)
        both_video = cut.asset is not None and cut.asset.type == "video" and asset.type == "video"
        if not both_video:
            cut.in_point = None
            cut.out_point = None
            cut.is_clip = False
        cut.asset = asset
        cut.asset_id = asset.id
        self.asset_cache[asset.id] = asset
        self._changed()

    # Groups

    def create_group(
        self,
        scene_id: str,
        cut_ids: list[str],
        name: str | None = None,
        group_id: str | None = None,
    ) -> str:
        """Group cuts of one scene; a cut leaves any group it was in."""
        scene = self.require_scene(scene_id)
        scene_cut_ids = {c.id for c in scene.cuts}
        unknown = [cid for cid in cut_ids if cid not in scene_cut_ids]
        if unknown:
            raise ProjectStateError(f"Cuts {unknown} are not in scene {scene_id}")
        for cid in cut_ids:
            self._drop_from_groups(cid)
        group = CutGroup(
            id=group_id or new_id(),
            scene_id=scene_id,
            name=name or f"Group {len(self.groups_for_scene(scene_id)) + 1}",
            cut_ids=list(cut_ids),
        )
        self.groups[group.id] = group
        self._changed()
        return group.id

    def delete_group(self, group_id: str) -> CutGroup | None:
        group = self.groups.pop(group_id, None)
        if group is not None:
            self._changed()
        return group

    def rename_group(self, group_id: str, name: str) -> str:
        group = self.require_group(group_id)
        old_name = group.name
        group.name = name
        self._changed()
        return old_name

    def remove_cut_from_group(self, group_id: str, cut_id: str) -> int:
        group = self.require_group(group_id)
        if cut_id not in group.cut_ids:
            raise ProjectStateError(f"Cut {cut_id} is not in group {group_id}")
        position = group.cut_ids.index(cut_id)
        group.cut_ids.remove(cut_id)
        if not group.cut_ids:
            del self.groups[group_id]
        self._changed()
        return position

    def restore_cut_to_group(self, group: CutGroup, cut_id: str, position: int) -> None:
        """Put a cut back into a group, recreating the group if it was dropped."""
        existing = self.groups.get(group.id)
        if existing is None:
            restored = group.model_copy(deep=True)
            restored.cut_ids = [cut_id]
            self.groups[group.id] = restored
        elif cut_id not in existing.cut_ids:
            existing.cut_ids.insert(min(max(position, 0), len(existing.cut_ids)), cut_id)
        self._changed()

    def cut_layout(self) -> dict[str, list[str]]:
        return {scene.id: [c.id for c in scene.cuts] for scene in self.scenes}

    def restore_cut_layout(self, layout: dict[str, list[str]]) -> None:
        """Rearrange cuts across scenes to match a previous ``cut_layout()``."""
        by_id = {cut.id: cut for cut in self.iter_cuts()}
        for scene in self.scenes:
            if scene.id in layout:
                scene.cuts = [by_id[cid] for cid in layout[scene.id] if cid in by_id]
                self._renumber_cuts(scene)
        self._changed()

    # UI-only

    def select_cut(self, cut_id: str | None) -> None:
        self.selected_cut_ids = {cut_id} if cut_id else set()
        self.details_panel_open = cut_id is not None
        self._changed()

    def select_scene(self, scene_id: str | None) -> None:
        self.selected_scene_id = scene_id
        self._changed()

    def set_active_drag(self, drag: str | None) -> None:
        self.active_drag = drag
        self._changed()
