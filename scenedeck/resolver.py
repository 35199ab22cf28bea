"""
scenedeck.resolver - Path resolution and missing-asset recovery.

On load, vault-relative asset references are turned into absolute paths
under the current vault root and checked on disk. Missing files never fail
the load: they are collected into a queue that a RecoverySession walks
through (relink, delete or skip) before the project is usable.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Literal

from scenedeck.exceptions import ResolutionError
from scenedeck.gateway import FilesystemGateway
from scenedeck.importer import AssetImporter, CutImportSource, build_asset_for_cut
from scenedeck.logging import logger
from scenedeck.media import MediaMetadataExtractor, get_media_type
from scenedeck.models import Asset, Scene
from scenedeck.state import ProjectState
from scenedeck.utils import to_posix


def looks_vault_relative(path: str | None) -> bool:
    """True for relative paths such as ``assets/img_ab12cd34ef56.png``."""
    if not path or path.startswith(("data:", "http://", "https://", "file:")):
        return False
    if Path(path).is_absolute() or PurePosixPath(to_posix(path)).is_absolute():
        return False
    return True


def resolve_asset_path(asset: Asset, vault_root: Path) -> Path | None:
    """Absolute location of a vault-managed asset, or None for unmanaged ones."""
    if asset.vault_relative_path:
        return vault_root / asset.vault_relative_path
    if looks_vault_relative(asset.path):
        return vault_root / asset.path
    return None


@dataclass
class MissingAssetInfo:
    name: str
    cut_id: str
    scene_id: str
    asset: Asset


@dataclass
class ResolutionResult:
    scenes: list[Scene]
    missing: list[MissingAssetInfo] = field(default_factory=list)


async def resolve_scenes(
    scenes: list[Scene], vault_root: Path, gateway: FilesystemGateway
) -> ResolutionResult:
    """Rewrite asset paths to absolute ones and find the missing files.

    Returns a resolved copy of ``scenes``; the input is not modified.
    """
    resolved = [scene.model_copy(deep=True) for scene in scenes]
    checks = []
    for scene in resolved:
        for cut in scene.cuts:
            if cut.asset is None:
                continue
            target = resolve_asset_path(cut.asset, vault_root)
            if target is None:
                continue
            relative = cut.asset.vault_relative_path or to_posix(cut.asset.path)
            cut.asset = cut.asset.model_copy(
                update={"path": str(target), "vault_relative_path": relative}
            )
            checks.append((scene, cut, target))

    exists = await asyncio.gather(*(gateway.path_exists(target) for _, _, target in checks))

    missing = []
    for (scene, cut, target), found in zip(checks, exists):
        if not found:
            logger.debug("Missing asset %s for cut %s", target, cut.id)
            missing.append(
                MissingAssetInfo(name=cut.asset.name, cut_id=cut.id, scene_id=scene.id, asset=cut.asset)
            )
    return ResolutionResult(scenes=resolved, missing=missing)


# Recovery decisions


@dataclass(frozen=True)
class Relink:
    new_path: Path


@dataclass(frozen=True)
class Delete:
    pass


@dataclass(frozen=True)
class Skip:
    pass


RecoveryAction = Relink | Delete | Skip
RecoveryStatus = Literal["pending", "decided", "applied"]


@dataclass
class RecoveryDecision:
    cut_id: str
    scene_id: str
    action: RecoveryAction


@dataclass
class RecoveryItem:
    info: MissingAssetInfo
    status: RecoveryStatus = "pending"
    action: RecoveryAction | None = None


@dataclass
class RecoveryReport:
    relinked: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class RecoverySession:
    """Walks the missing-asset queue: pending -> decided -> applied."""

    def __init__(self, missing: list[MissingAssetInfo]) -> None:
        self.items = [RecoveryItem(info=info) for info in missing]

    def _item(self, cut_id: str) -> RecoveryItem:
        for item in self.items:
            if item.info.cut_id == cut_id:
                return item
        raise ResolutionError(f"Cut {cut_id} has no missing asset")

    @property
    def pending(self) -> list[RecoveryItem]:
        return [item for item in self.items if item.status == "pending"]

    @property
    def decisions(self) -> list[RecoveryDecision]:
        return [
            RecoveryDecision(cut_id=item.info.cut_id, scene_id=item.info.scene_id, action=item.action)
            for item in self.items
            if item.action is not None
        ]

    def is_decided(self) -> bool:
        return not self.pending

    def decide(self, cut_id: str, action: RecoveryAction) -> None:
        item = self._item(cut_id)
        if item.status == "applied":
            raise ResolutionError(f"Recovery for cut {cut_id} was already applied")
        item.action = action
        item.status = "decided"

    def skip_all(self) -> list[RecoveryDecision]:
        """Decide ``Skip`` for every item that has no decision yet."""
        for item in self.pending:
            item.action = Skip()
            item.status = "decided"
        return self.decisions

    def close(self) -> list[RecoveryDecision]:
        """Closing without deciding skips the remaining items."""
        return self.skip_all()

    async def apply(
        self,
        state: ProjectState,
        importer: AssetImporter,
        extractor: MediaMetadataExtractor,
        default_display_time: float = 1.0,
        thumbnail_time_offset: float = 0.0,
    ) -> RecoveryReport:
        """Apply every decided item to ``state``.

        Undecided items are skipped. A relink whose new file cannot be used
        is reported in ``failed`` and the cut is left untouched.
        """
        self.close()
        report = RecoveryReport()
        for item in self.items:
            if item.status == "applied":
                continue
            info = item.info
            action = item.action
            if isinstance(action, Delete):
                state.remove_cut(info.scene_id, info.cut_id)
                report.deleted.append(info.cut_id)
            elif isinstance(action, Relink):
                if await self._relink(
                    state, info, action.new_path, importer, extractor,
                    default_display_time, thumbnail_time_offset,
                ):
                    report.relinked.append(info.cut_id)
                else:
                    report.failed.append(info.cut_id)
            else:
                report.skipped.append(info.cut_id)
            item.status = "applied"
        return report

    async def _relink(
        self,
        state: ProjectState,
        info: MissingAssetInfo,
        new_path: Path,
        importer: AssetImporter,
        extractor: MediaMetadataExtractor,
        default_display_time: float,
        thumbnail_time_offset: float,
    ) -> bool:
        media_type = get_media_type(new_path)
        if media_type is None or not await importer.gateway.path_exists(new_path):
            logger.warning("Cannot relink %s to %s", info.name, new_path)
            return False

        source = CutImportSource(
            asset_id=info.asset.id,
            name=new_path.name,
            source_path=new_path,
            type=media_type,
            file_size=await importer.gateway.file_size(new_path),
            thumbnail_time_offset=thumbnail_time_offset,
        )
        result = await build_asset_for_cut(
            source,
            state.vault_path,
            importer,
            extractor,
            default_display_time=default_display_time,
            read_image_thumbnail=True,
        )

        # Clip points survive a video-to-video relink; the display time
        # always follows the new file's duration.
        state.relink_cut_asset(info.scene_id, info.cut_id, result.asset)
        if result.asset.type == "video":
            state.update_cut_display_time(info.scene_id, info.cut_id, result.display_time)
        return True
