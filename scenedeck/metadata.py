"""
scenedeck.metadata - Persisting asset attachments and scene snapshots in
``<vault>/.metadata.json``.

All helpers return a new MetadataStore and leave the input untouched.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from scenedeck.io import read_json_or_default, write_json
from scenedeck.logging import logger
from scenedeck.models import AssetMetadata, MetadataStore, Scene, SceneMetadata
from scenedeck.utils import utc_now_iso

METADATA_FILENAME = ".metadata.json"
METADATA_VERSION = 1


def load_metadata_store(vault_root: Path) -> MetadataStore:
    data = read_json_or_default(
        vault_root / METADATA_FILENAME,
        lambda: {"version": METADATA_VERSION, "metadata": {}, "sceneMetadata": {}},
    )
    try:
        return MetadataStore.model_validate(data)
    except ValueError as e:
        logger.warning("Metadata store in %s is malformed, starting fresh: %s", vault_root, e)
        return MetadataStore(version=METADATA_VERSION)


def save_metadata_store(vault_root: Path, store: MetadataStore) -> None:
    write_json(vault_root / METADATA_FILENAME, store.to_json_dict())


def get_asset_metadata(store: MetadataStore, asset_id: str) -> AssetMetadata | None:
    return store.metadata.get(asset_id)


def update_asset_metadata(store: MetadataStore, metadata: AssetMetadata) -> MetadataStore:
    return store.model_copy(update={"metadata": {**store.metadata, metadata.asset_id: metadata}})


def remove_asset_metadata(store: MetadataStore, asset_id: str) -> MetadataStore:
    remaining = {k: v for k, v in store.metadata.items() if k != asset_id}
    return store.model_copy(update={"metadata": remaining})


def _existing(store: MetadataStore, asset_id: str) -> AssetMetadata:
    current = store.metadata.get(asset_id)
    return current.model_copy() if current else AssetMetadata(asset_id=asset_id)


def attach_audio(
    store: MetadataStore,
    asset_id: str,
    audio_asset_id: str,
    source_name: str,
    offset: float = 0.0,
) -> MetadataStore:
    """Attach an audio asset to ``asset_id`` with a playback offset in seconds."""
    entry = _existing(store, asset_id)
    entry.attached_audio_id = audio_asset_id
    entry.attached_audio_source_name = source_name
    entry.attached_audio_offset = offset
    return update_asset_metadata(store, entry)


def detach_audio(store: MetadataStore, asset_id: str) -> MetadataStore:
    """Remove the audio attachment; drops the entry when nothing else remains."""
    current = store.metadata.get(asset_id)
    if current is None:
        return store
    entry = current.model_copy(
        update={
            "attached_audio_id": None,
            "attached_audio_source_name": None,
            "attached_audio_offset": None,
        }
    )
    if not entry.has_payload():
        return remove_asset_metadata(store, asset_id)
    return update_asset_metadata(store, entry)


def update_audio_offset(store: MetadataStore, asset_id: str, offset: float) -> MetadataStore:
    current = store.metadata.get(asset_id)
    if current is None or not current.attached_audio_id:
        return store
    return update_asset_metadata(store, current.model_copy(update={"attached_audio_offset": offset}))


def update_audio_analysis(
    store: MetadataStore, asset_id: str, analysis: dict[str, Any] | None
) -> MetadataStore:
    entry = _existing(store, asset_id)
    entry.audio_analysis = analysis
    return update_asset_metadata(store, entry)


def _scene_snapshot(scene: Scene) -> SceneMetadata:
    return SceneMetadata(
        id=scene.id,
        name=scene.name,
        notes=[note.model_copy() for note in scene.notes],
        updated_at=utc_now_iso(),
    )


def upsert_scene_metadata(store: MetadataStore, scene: Scene) -> MetadataStore:
    return store.model_copy(
        update={"scene_metadata": {**store.scene_metadata, scene.id: _scene_snapshot(scene)}}
    )


def remove_scene_metadata(store: MetadataStore, scene_id: str) -> MetadataStore:
    remaining = {k: v for k, v in store.scene_metadata.items() if k != scene_id}
    return store.model_copy(update={"scene_metadata": remaining})


def sync_scene_metadata(store: MetadataStore, scenes: list[Scene]) -> MetadataStore:
    """Refresh the name/notes snapshot of every live scene.

    Snapshots of scenes no longer present are kept.
    """
    scene_metadata = dict(store.scene_metadata)
    for scene in scenes:
        scene_metadata[scene.id] = _scene_snapshot(scene)
    return store.model_copy(update={"scene_metadata": scene_metadata})
