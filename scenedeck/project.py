"""
scenedeck.project - Vault directory layout and the project document.

A vault is a self-contained directory:

    <vault>/project.sdp       project document (JSON)
    <vault>/assets/           content-addressed media files
    <vault>/.trash/           trashed files + .trash.json
    <vault>/.index.json       asset index
    <vault>/.metadata.json    audio attachments, scene snapshots
    <vault>/scenedeck.yaml    settings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from scenedeck.config import CONFIG_FILENAME, create_default_config, write_config
from scenedeck.exceptions import VaultError
from scenedeck.index import ASSETS_DIRNAME, INDEX_FILENAME, save_index
from scenedeck.io import read_json, write_json
from scenedeck.metadata import METADATA_FILENAME, save_metadata_store
from scenedeck.models import Asset, AssetIndex, CutGroup, MetadataStore, Scene, SourcePanelState
from scenedeck.trash import TRASH_DIRNAME
from scenedeck.utils import new_id, to_posix, to_vault_relative, utc_now_iso

PROJECT_FILENAME = "project.sdp"
PROJECT_VERSION = 3


class Vault:
    """Represents a SceneDeck vault directory."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.project_path = path / PROJECT_FILENAME
        self.config_path = path / CONFIG_FILENAME
        self.assets_dir = path / ASSETS_DIRNAME
        self.trash_dir = path / TRASH_DIRNAME
        self.index_path = path / INDEX_FILENAME
        self.metadata_path = path / METADATA_FILENAME

    def exists(self) -> bool:
        return self.project_path.exists()

    def create(self, name: str | None = None) -> None:
        """Create the vault directory structure with an empty project."""
        if self.exists():
            raise VaultError(f"A project already exists in {self.path}")
        name = name or self.path.name
        self.path.mkdir(parents=True, exist_ok=True)
        self.assets_dir.mkdir(exist_ok=True)
        self.trash_dir.mkdir(exist_ok=True)

        if not self.config_path.exists():
            write_config(create_default_config(name), self.config_path)
        save_index(self.path, AssetIndex())
        save_metadata_store(self.path, MetadataStore())

        first_scene = Scene(id=new_id(), name="Scene 1")
        write_project(
            self.project_path,
            build_project_document(name, self.path, [first_scene], [], SourcePanelState()),
        )


def find_vault_dir(start: Path | None = None) -> Path | None:
    """Find the vault directory by looking for project.sdp upwards."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / PROJECT_FILENAME).exists():
            return current
        current = current.parent
    return None


# Saving


def prepare_asset_for_save(asset: Asset, vault_root: Path | None) -> dict[str, Any]:
    """Serialize an asset with its portable path.

    Vault-managed assets store ``vaultRelativePath`` as ``path``; other
    assets keep their absolute path.
    """
    data = asset.to_json_dict()
    if asset.vault_relative_path:
        data["path"] = to_posix(asset.vault_relative_path)
    elif vault_root is not None and asset.path:
        relative = to_vault_relative(vault_root, asset.path)
        if relative.startswith(f"{ASSETS_DIRNAME}/"):
            data["path"] = relative
            data["vaultRelativePath"] = relative
    if asset.original_path and vault_root is not None:
        data["originalPath"] = to_vault_relative(vault_root, asset.original_path)
    return data


def prepare_scenes_for_save(
    scenes: list[Scene], groups: list[CutGroup], vault_root: Path | None
) -> list[dict[str, Any]]:
    """Serialize scenes; each scene carries its own cut groups."""
    result = []
    for scene in scenes:
        data = scene.to_json_dict()
        for cut_data, cut in zip(data.get("cuts", []), scene.cuts):
            if cut.asset is not None:
                cut_data["asset"] = prepare_asset_for_save(cut.asset, vault_root)
            cut_data.pop("isLoading", None)
            cut_data.pop("loadingName", None)
        data["groups"] = [g.to_json_dict() for g in groups if g.scene_id == scene.id]
        result.append(data)
    return result


def ensure_scene_ids(scenes: list[Scene]) -> int:
    """Give every scene without an id a fresh one.

    Returns:
        Number of scenes that were fixed
    """
    fixed = 0
    for scene in scenes:
        if not scene.id:
            scene.id = new_id()
            fixed += 1
    return fixed


def build_project_document(
    name: str,
    vault_root: Path | None,
    scenes: list[Scene],
    groups: list[CutGroup],
    source_panel: SourcePanelState,
) -> dict[str, Any]:
    return {
        "version": PROJECT_VERSION,
        "name": name,
        "vaultPath": str(vault_root) if vault_root else None,
        "scenes": prepare_scenes_for_save(scenes, groups, vault_root),
        "sourcePanel": source_panel.to_json_dict(),
        "savedAt": utc_now_iso(),
    }


def write_project(path: Path, document: dict[str, Any]) -> None:
    write_json(path, document)


# Loading


@dataclass
class ProjectDocument:
    name: str
    version: int
    vault_path: Path
    scenes: list[Scene]
    groups: list[CutGroup] = field(default_factory=list)
    source_panel: SourcePanelState = field(default_factory=SourcePanelState)
    saved_at: str | None = None

    @property
    def needs_resolution(self) -> bool:
        """Version 2+ projects, or older ones holding ``assets/`` paths."""
        if self.version >= 2:
            return True
        return any(
            cut.asset is not None and to_posix(cut.asset.path).startswith(f"{ASSETS_DIRNAME}/")
            for scene in self.scenes
            for cut in scene.cuts
        )


def read_project(path: Path) -> ProjectDocument:
    """Parse a project file.

    The vault is the directory holding the file, whatever ``vaultPath``
    says: vaults can be moved between machines.

    Raises:
        VaultError: If the file is missing or malformed
    """
    if not path.exists():
        raise VaultError(f"Project file not found: {path}")
    try:
        data = read_json(path)
    except ValueError as e:
        raise VaultError(f"Project file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise VaultError(f"Project file {path} must contain a JSON object")

    groups: list[CutGroup] = []
    scenes: list[Scene] = []
    try:
        for i, raw_scene in enumerate(data.get("scenes", [])):
            raw_scene = dict(raw_scene)
            raw_groups = raw_scene.pop("groups", [])
            scene = Scene.model_validate(raw_scene)
            if "order" not in raw_scene:
                scene.order = i
            scenes.append(scene)
            for raw_group in raw_groups:
                raw_group = dict(raw_group)
                raw_group.setdefault("sceneId", scene.id)
                groups.append(CutGroup.model_validate(raw_group))
        source_panel = SourcePanelState.model_validate(data.get("sourcePanel") or {})
    except (ValidationError, TypeError, AttributeError) as e:
        raise VaultError(f"Project file {path} is malformed: {e}") from e

    return ProjectDocument(
        name=data.get("name") or path.parent.name,
        version=int(data.get("version", 1)),
        vault_path=path.parent,
        scenes=scenes,
        groups=groups,
        source_panel=source_panel,
        saved_at=data.get("savedAt"),
    )
