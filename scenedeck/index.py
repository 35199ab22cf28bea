"""
scenedeck.index - Asset index persistence, storyline ordering and
vault verification.

The index (``<vault>/.index.json``) maps asset ids to the hash-named
files under ``assets/``. Usage references are never maintained
incrementally: every save recomputes them from the live scene graph.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from scenedeck.io import read_json_or_default, write_json
from scenedeck.logging import logger
from scenedeck.models import AssetIndex, AssetIndexEntry, AssetUsageRef, Scene
from scenedeck.utils import to_vault_relative

INDEX_FILENAME = ".index.json"
ASSETS_DIRNAME = "assets"
INDEX_VERSION = 1


def index_path(vault_root: Path) -> Path:
    return vault_root / INDEX_FILENAME


def load_index(vault_root: Path) -> AssetIndex:
    """Load the vault's asset index; an absent or unreadable index is empty."""
    data = read_json_or_default(
        index_path(vault_root), lambda: {"version": INDEX_VERSION, "assets": []}
    )
    try:
        return AssetIndex.model_validate(data)
    except ValueError as e:
        logger.warning("Asset index in %s is malformed, starting fresh: %s", vault_root, e)
        return AssetIndex(version=INDEX_VERSION)


def save_index(vault_root: Path, index: AssetIndex) -> None:
    """Write the index, storing original paths vault-relative where possible."""
    normalized = index.model_copy(deep=True)
    for entry in normalized.assets:
        entry.original_path = to_vault_relative(vault_root, entry.original_path)
    write_json(index_path(vault_root), normalized.to_json_dict())


def _storyline(scenes: Iterable[Scene]) -> list[Scene]:
    return sorted(scenes, key=lambda s: s.order)


def ordered_asset_ids(scenes: Iterable[Scene]) -> list[str]:
    """Asset ids in storyline order; the first reference wins."""
    ordered: list[str] = []
    seen: set[str] = set()
    for scene in _storyline(scenes):
        for cut in sorted(scene.cuts, key=lambda c: c.order):
            asset_id = cut.asset.id if cut.asset else cut.asset_id
            if asset_id and asset_id not in seen:
                seen.add(asset_id)
                ordered.append(asset_id)
    return ordered


def build_usage_refs(scenes: Iterable[Scene]) -> dict[str, list[AssetUsageRef]]:
    """Map every referenced asset id to the cuts using it."""
    usage: dict[str, list[AssetUsageRef]] = {}
    for scene in _storyline(scenes):
        for position, cut in enumerate(sorted(scene.cuts, key=lambda c: c.order)):
            asset_id = cut.asset.id if cut.asset else cut.asset_id
            if not asset_id:
                continue
            usage.setdefault(asset_id, []).append(
                AssetUsageRef(
                    scene_id=scene.id,
                    cut_id=cut.id,
                    order=cut.order,
                    scene_name=scene.name,
                    scene_order=scene.order,
                    cut_index=position + 1,
                )
            )
    return usage


def reorder_index(index: AssetIndex, scenes: list[Scene]) -> AssetIndex:
    """Return a copy of ``index`` in storyline order with fresh usage refs.

    Referenced entries come first, in the order their assets first appear
    walking scenes and cuts; unreferenced entries follow in their previous
    relative order.
    """
    usage = build_usage_refs(scenes)
    entries = [
        entry.model_copy(update={"usage_refs": usage.get(entry.id, [])})
        for entry in index.assets
    ]
    by_id = {entry.id: entry for entry in entries}
    order = ordered_asset_ids(scenes)

    referenced = [by_id[asset_id] for asset_id in order if asset_id in by_id]
    referenced_ids = {entry.id for entry in referenced}
    remaining = [entry for entry in entries if entry.id not in referenced_ids]
    return AssetIndex(version=index.version, assets=referenced + remaining)


def register_entry(vault_root: Path, entry: AssetIndexEntry) -> AssetIndexEntry:
    """Insert ``entry`` unless content with the same hash is already indexed.

    Returns the entry that backs the content afterwards. Loading and saving
    happen without a suspension point in between, so concurrent imports on
    the event loop cannot interleave their read-modify-write.
    """
    index = load_index(vault_root)
    existing = index.find_by_hash(entry.hash)
    if existing is not None and existing.id != entry.id:
        return existing
    index.upsert(entry)
    save_index(vault_root, index)
    return entry


def verify_vault(vault_root: Path) -> dict[str, Any]:
    """Compare the index with the files under ``assets/``.

    Returns:
        Dict with 'valid' (no indexed file missing), 'missing' (indexed
        filenames absent on disk) and 'orphaned' (files nobody indexes)
    """
    assets_dir = vault_root / ASSETS_DIRNAME
    index = load_index(vault_root)
    indexed = {entry.filename for entry in index.assets}
    missing = sorted(name for name in indexed if not (assets_dir / name).exists())

    orphaned: list[str] = []
    if assets_dir.exists():
        orphaned = sorted(
            p.name
            for p in assets_dir.iterdir()
            if p.is_file() and not p.name.startswith(".") and p.name not in indexed
        )

    return {"valid": not missing, "missing": missing, "orphaned": orphaned}
