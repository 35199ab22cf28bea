"""
scenedeck.session - An open project: state, history, importer and autosave.

Loading is two-step. load_project() reads the project file and resolves
asset paths; if files are missing the returned PendingProject carries a
RecoverySession that must be decided before finalize() hands out a usable
ProjectSession.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from scenedeck.autosave import AutosaveController, ErrorCallback
from scenedeck.commands import ConfirmCallback, ImportCutCommand, TrashAssetCommand
from scenedeck.config import SceneDeckConfig, load_config
from scenedeck.gateway import FilesystemGateway
from scenedeck.history import Command, CommandHistory
from scenedeck.importer import AssetImporter, CutImportSource
from scenedeck.index import load_index, reorder_index, save_index
from scenedeck.logging import logger
from scenedeck.media import FfmpegMediaExtractor, MediaMetadataExtractor, get_media_type
from scenedeck.metadata import load_metadata_store, save_metadata_store, sync_scene_metadata
from scenedeck.models import Scene
from scenedeck.project import (
    PROJECT_FILENAME,
    ProjectDocument,
    Vault,
    build_project_document,
    ensure_scene_ids,
    read_project,
    write_project,
)
from scenedeck.resolver import (
    MissingAssetInfo,
    RecoveryReport,
    RecoverySession,
    ResolutionResult,
    resolve_scenes,
)
from scenedeck.state import ProjectState
from scenedeck.utils import generate_asset_id


class ProjectSession:
    """Everything needed to edit one vault-backed project."""

    def __init__(
        self,
        vault: Vault,
        state: ProjectState,
        config: SceneDeckConfig,
        gateway: FilesystemGateway | None = None,
        extractor: MediaMetadataExtractor | None = None,
        on_autosave_error: ErrorCallback | None = None,
    ) -> None:
        self.vault = vault
        self.state = state
        self.config = config
        self.gateway = gateway or FilesystemGateway(config.trash_retention_days)
        self.importer = AssetImporter(self.gateway, config.hash_prefix_length)
        self.extractor = extractor or FfmpegMediaExtractor()
        self.history = CommandHistory(config.max_history)
        self._save_lock = asyncio.Lock()
        self.autosave = AutosaveController(
            self.save,
            debounce_seconds=config.autosave_debounce_seconds,
            max_wait_seconds=config.autosave_max_wait_seconds,
            on_error=on_autosave_error,
            enabled=config.autosave_enabled,
        )
        self._unwatch = self.autosave.watch(state)

    @classmethod
    def create(
        cls,
        vault_dir: Path,
        name: str | None = None,
        gateway: FilesystemGateway | None = None,
        extractor: MediaMetadataExtractor | None = None,
    ) -> ProjectSession:
        """Create a new vault on disk and open it."""
        vault = Vault(vault_dir)
        vault.create(name)
        document = read_project(vault.project_path)
        return cls(vault, _state_from_document(document), load_config(vault_dir), gateway, extractor)

    async def save(self) -> None:
        """Write the project file, the reordered asset index and the metadata store.

        The writes are synchronous on purpose: no await may separate the
        index load from its save, or a concurrent import could be lost.
        """
        async with self._save_lock:
            state = self.state
            fixed = ensure_scene_ids(state.scenes)
            if fixed:
                logger.info("Assigned ids to %d scenes", fixed)

            index = reorder_index(load_index(self.vault.path), state.scenes)
            save_index(self.vault.path, index)

            document = build_project_document(
                state.name,
                self.vault.path,
                state.scenes,
                list(state.groups.values()),
                state.source_panel,
            )
            write_project(self.vault.project_path, document)

            state.metadata_store = sync_scene_metadata(state.metadata_store, state.scenes)
            save_metadata_store(self.vault.path, state.metadata_store)
            logger.debug("Saved %s", self.vault.project_path)

    async def execute(self, command: Command) -> None:
        await self.history.execute_command(command)

    async def undo(self) -> Command | None:
        return await self.history.undo()

    async def redo(self) -> Command | None:
        return await self.history.redo()

    async def import_files(
        self, scene_id: str, paths: list[Path], insert_index: int | None = None
    ) -> list[ImportCutCommand]:
        """Add one cut per file to a scene, importing each into the vault.

        Unsupported files are skipped with a warning.
        """
        commands = []
        for path in paths:
            media_type = get_media_type(path)
            if media_type is None:
                logger.warning("Skipping unsupported file %s", path)
                continue
            source = CutImportSource(
                asset_id=generate_asset_id(),
                name=path.name,
                source_path=path.resolve(),
                type=media_type,
                file_size=await self.gateway.file_size(path),
                thumbnail_time_offset=self.config.thumbnail_time_offset,
            )
            command = ImportCutCommand(
                self.state,
                scene_id,
                source,
                self.vault.path,
                self.importer,
                self.extractor,
                insert_index=None if insert_index is None else insert_index + len(commands),
                default_display_time=self.config.default_display_time,
            )
            await self.execute(command)
            commands.append(command)
        return commands

    async def trash_asset(self, asset_id: str, confirm: ConfirmCallback | None = None) -> None:
        await self.execute(
            TrashAssetCommand(self.state, self.vault.path, asset_id, self.gateway, confirm)
        )

    async def close(self) -> None:
        """Flush pending autosaves and stop watching the state."""
        await self.autosave.flush()
        self.autosave.close()
        self._unwatch()


@dataclass
class PendingProject:
    """A loaded but not yet usable project."""

    vault: Vault
    config: SceneDeckConfig
    document: ProjectDocument
    resolution: ResolutionResult
    gateway: FilesystemGateway
    extractor: MediaMetadataExtractor
    recovery: RecoverySession = field(init=False)
    report: RecoveryReport | None = None

    def __post_init__(self) -> None:
        self.recovery = RecoverySession(self.resolution.missing)

    @property
    def missing(self) -> list[MissingAssetInfo]:
        return self.resolution.missing

    @property
    def needs_recovery(self) -> bool:
        return bool(self.resolution.missing)

    async def finalize(self, on_autosave_error: ErrorCallback | None = None) -> ProjectSession:
        """Apply recovery decisions and open the project.

        Items left undecided are skipped.
        """
        document = self.document
        state = _state_from_document(document, self.resolution.scenes)
        state.metadata_store = load_metadata_store(self.vault.path)

        if self.recovery.items:
            importer = AssetImporter(self.gateway, self.config.hash_prefix_length)
            self.report = await self.recovery.apply(
                state,
                importer,
                self.extractor,
                default_display_time=self.config.default_display_time,
                thumbnail_time_offset=self.config.thumbnail_time_offset,
            )
        await self._refresh_clip_thumbnails(state)

        session = ProjectSession(
            self.vault, state, self.config, self.gateway, self.extractor, on_autosave_error
        )
        if self.report is not None and (self.report.deleted or self.report.relinked):
            session.autosave.schedule()
        return session

    async def _refresh_clip_thumbnails(self, state: ProjectState) -> None:
        """Show every video clip at its in point rather than the file's first frame."""
        for scene in state.scenes:
            for cut in scene.cuts:
                asset = cut.asset
                if not cut.is_clip or cut.in_point is None or asset is None:
                    continue
                if asset.type != "video" or not asset.path:
                    continue
                path = Path(asset.path)
                if not await self.gateway.path_exists(path):
                    continue
                thumbnail = await self.extractor.generate_thumbnail(path, cut.in_point)
                if thumbnail is not None:
                    state.update_cut_thumbnail(scene.id, cut.id, thumbnail)


def _state_from_document(
    document: ProjectDocument, scenes: list[Scene] | None = None
) -> ProjectState:
    return ProjectState(
        name=document.name,
        vault_path=document.vault_path,
        scenes=scenes if scenes is not None else document.scenes,
        groups=document.groups,
        source_panel=document.source_panel,
    )


async def load_project(
    path: Path,
    gateway: FilesystemGateway | None = None,
    extractor: MediaMetadataExtractor | None = None,
) -> PendingProject:
    """Read a project and resolve its asset paths against its vault.

    Args:
        path: Vault directory or its project.sdp file

    Raises:
        VaultError: If the project file is missing or malformed
        ConfigError: If scenedeck.yaml is invalid
    """
    project_path = path / PROJECT_FILENAME if path.is_dir() else path
    vault = Vault(project_path.parent)
    config = load_config(vault.path)
    document = read_project(project_path)
    gateway = gateway or FilesystemGateway(config.trash_retention_days)

    if document.needs_resolution:
        resolution = await resolve_scenes(document.scenes, vault.path, gateway)
    else:
        resolution = ResolutionResult(scenes=document.scenes)
    if resolution.missing:
        logger.warning("%d assets are missing from %s", len(resolution.missing), vault.path)

    return PendingProject(
        vault=vault,
        config=config,
        document=document,
        resolution=resolution,
        gateway=gateway,
        extractor=extractor or FfmpegMediaExtractor(),
    )


async def open_project(
    path: Path,
    gateway: FilesystemGateway | None = None,
    extractor: MediaMetadataExtractor | None = None,
) -> ProjectSession:
    """Load a project, skipping every missing asset."""
    pending = await load_project(path, gateway, extractor)
    pending.recovery.skip_all()
    return await pending.finalize()
