"""
scenedeck.models - Pydantic data model for vault documents and scenes.

Python attributes are snake_case; every model serializes with the
camelCase keys used in project.sdp, .index.json, .metadata.json and
.trash.json.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MediaType = Literal["image", "video", "audio"]


class VaultModel(BaseModel):
    """Base for all persisted models: camelCase on disk, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Asset(VaultModel):
    """A media file referenced by cuts.

    ``path`` is always the runtime (absolute) location. Only
    ``vault_relative_path`` is portable; when it is set the asset is
    vault-managed.
    """

    id: str
    name: str
    path: str
    type: MediaType = "image"
    vault_relative_path: str | None = None
    original_path: str | None = None
    hash: str | None = None
    file_size: int | None = None
    duration: float | None = None
    thumbnail: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_vault_managed(self) -> bool:
        return bool(self.vault_relative_path)


class Cut(VaultModel):
    id: str
    asset_id: str
    asset: Asset | None = None
    display_time: float = 1.0
    order: int = 0
    in_point: float | None = None
    out_point: float | None = None
    is_clip: bool = False
    is_loading: bool = False
    loading_name: str | None = None


class SceneNote(VaultModel):
    id: str
    type: Literal["text", "image"] = "text"
    content: str = ""
    created_at: str | None = None


class Scene(VaultModel):
    id: str = ""
    name: str
    cuts: list[Cut] = Field(default_factory=list)
    order: int = 0
    notes: list[SceneNote] = Field(default_factory=list)
    folder_path: str | None = None


class CutGroup(VaultModel):
    """A named group of cuts within one scene.

    Membership lives here (group -> cut ids); cuts carry no back-pointer.
    """

    id: str
    scene_id: str
    name: str
    cut_ids: list[str] = Field(default_factory=list)
    is_collapsed: bool = True


class SourceFolder(VaultModel):
    path: str
    name: str


class SourcePanelState(VaultModel):
    folders: list[SourceFolder] = Field(default_factory=list)
    expanded_paths: list[str] = Field(default_factory=list)
    view_mode: Literal["list", "grid"] = "list"


class AssetUsageRef(VaultModel):
    """Where a cut in the storyline uses an asset."""

    scene_id: str
    cut_id: str
    order: int
    scene_name: str | None = None
    scene_order: int | None = None
    cut_index: int | None = None


class AssetIndexEntry(VaultModel):
    id: str
    hash: str
    filename: str
    original_name: str
    original_path: str = ""
    type: MediaType
    file_size: int = 0
    imported_at: str
    usage_refs: list[AssetUsageRef] = Field(default_factory=list)


class AssetIndex(VaultModel):
    version: int = 1
    assets: list[AssetIndexEntry] = Field(default_factory=list)

    def find_by_id(self, asset_id: str) -> AssetIndexEntry | None:
        return next((e for e in self.assets if e.id == asset_id), None)

    def find_by_hash(self, file_hash: str) -> AssetIndexEntry | None:
        return next((e for e in self.assets if e.hash == file_hash), None)

    def find_by_filename(self, filename: str) -> AssetIndexEntry | None:
        return next((e for e in self.assets if e.filename == filename), None)

    def upsert(self, entry: AssetIndexEntry) -> None:
        for i, existing in enumerate(self.assets):
            if existing.id == entry.id:
                self.assets[i] = entry
                return
        self.assets.append(entry)

    def remove(self, asset_id: str) -> AssetIndexEntry | None:
        entry = self.find_by_id(asset_id)
        if entry is not None:
            self.assets = [e for e in self.assets if e.id != asset_id]
        return entry


class TrashOriginRef(VaultModel):
    scene_id: str | None = None
    cut_id: str | None = None
    note: str | None = None


class TrashMeta(VaultModel):
    """Provenance recorded when a vault file is moved to the trash."""

    asset_id: str | None = None
    origin_refs: list[TrashOriginRef] = Field(default_factory=list)
    reason: str | None = None


class TrashEntry(VaultModel):
    id: str
    deleted_at: str
    trash_relative_path: str
    filename: str
    asset_id: str | None = None
    original_path: str | None = None
    reason: str | None = None
    origin_refs: list[TrashOriginRef] = Field(default_factory=list)
    index_entry: AssetIndexEntry | None = None


class TrashIndex(VaultModel):
    version: int = 1
    retention_days: int = 30
    items: list[TrashEntry] = Field(default_factory=list)


class AssetMetadata(VaultModel):
    asset_id: str
    attached_audio_id: str | None = None
    attached_audio_source_name: str | None = None
    attached_audio_offset: float | None = None
    audio_analysis: dict[str, Any] | None = None

    def has_payload(self) -> bool:
        return any(
            value is not None
            for key, value in self.model_dump().items()
            if key != "asset_id"
        )


class SceneMetadata(VaultModel):
    id: str
    name: str
    notes: list[SceneNote] = Field(default_factory=list)
    updated_at: str | None = None


class MetadataStore(VaultModel):
    version: int = 1
    metadata: dict[str, AssetMetadata] = Field(default_factory=dict)
    scene_metadata: dict[str, SceneMetadata] = Field(default_factory=dict)


class VideoMetadata(VaultModel):
    duration: float
    width: int | None = None
    height: int | None = None
