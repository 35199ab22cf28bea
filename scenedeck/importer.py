"""
scenedeck.importer - Content-addressed import into the vault.

The pipeline is an explicit sequence of fallible stages:

    hash -> dedup check -> copy -> index update -> (trash replaced vault file)

Any stage up to the index update failing raises AssetImportError; moving
a replaced vault file to the trash is best-effort. ``build_asset_for_cut``
is the caller-side wrapper that turns that failure into an unmanaged
asset instead of aborting the operation that asked for the import.
"""

from __future__ import annotations

import base64
import binascii
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from scenedeck.exceptions import AssetImportError, VaultError
from scenedeck.gateway import FilesystemGateway
from scenedeck.index import ASSETS_DIRNAME, load_index, register_entry
from scenedeck.logging import logger
from scenedeck.media import FILENAME_PREFIXES, MediaMetadataExtractor, get_media_type, to_data_url
from scenedeck.models import (
    Asset,
    AssetIndexEntry,
    MediaType,
    TrashEntry,
    TrashMeta,
    TrashOriginRef,
)
from scenedeck.trash import TRASH_DIRNAME
from scenedeck.utils import is_path_inside, to_vault_relative, utc_now_iso

DATA_URL_PATTERN = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)
DATA_URL_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}


@dataclass
class ImportResult:
    """Outcome of one import. ``asset_id`` is the id backing the content,
    which for a duplicate is the previously imported asset's id."""

    asset_id: str
    path: Path
    relative_path: str
    hash: str
    is_duplicate: bool
    entry: AssetIndexEntry
    asset: Asset
    trash_entry: TrashEntry | None = None


class AssetImporter:
    """Copies source files into ``<vault>/assets`` under hash-derived names."""

    def __init__(self, gateway: FilesystemGateway, hash_prefix_length: int = 12) -> None:
        self.gateway = gateway
        self.hash_prefix_length = hash_prefix_length

    async def import_asset(
        self,
        source_path: str | Path,
        vault_root: Path,
        asset_id: str,
        base_asset: Asset | None = None,
    ) -> ImportResult:
        """Import one file into the vault, deduplicating by content.

        Args:
            source_path: File to import
            vault_root: Vault directory
            asset_id: Id to register when the content is new
            base_asset: Fields (name, duration, thumbnail...) carried onto the result

        Returns:
            ImportResult; ``is_duplicate`` is True when identical content was
            already indexed and nothing was copied

        Raises:
            AssetImportError: If the file is unsupported, unreadable or cannot be copied
        """
        source = Path(source_path)
        assets_dir = vault_root / ASSETS_DIRNAME

        media_type = get_media_type(source.name)
        if media_type is None:
            raise AssetImportError(str(source), "Unsupported file type")

        file_hash = await self._hash_stage(source)

        # Index and trash JSON are read and written synchronously: the files
        # are small and register_entry must not yield between load and save.
        index = load_index(vault_root)
        origin_refs = self._origin_refs(index.find_by_id(asset_id))
        existing = index.find_by_hash(file_hash)
        if existing is not None:
            dest = assets_dir / existing.filename
            if not await self.gateway.path_exists(dest):
                logger.warning("Indexed file %s was missing, restoring it", existing.filename)
                await self._copy_stage(source, dest)
            trash_entry = await self._trash_replaced_stage(source, dest, vault_root, asset_id, origin_refs)
            return self._result(existing, dest, True, base_asset, source, trash_entry)

        dest, already_present = await self._destination_stage(
            assets_dir, file_hash, media_type, source.suffix.lower()
        )
        if not already_present:
            await self._copy_stage(source, dest)

        try:
            file_size = await self.gateway.file_size(dest)
        except OSError as e:
            raise AssetImportError(str(source), f"Cannot stat imported file: {e}") from e

        entry = AssetIndexEntry(
            id=asset_id,
            hash=file_hash,
            filename=dest.name,
            original_name=base_asset.name if base_asset else source.name,
            original_path=to_vault_relative(vault_root, source),
            type=media_type,
            file_size=file_size,
            imported_at=utc_now_iso(),
        )
        backing = register_entry(vault_root, entry)
        if backing.id != asset_id:
            # An overlapping import registered this content first.
            if dest.name != backing.filename:
                dest.unlink(missing_ok=True)
            dest = assets_dir / backing.filename
            trash_entry = await self._trash_replaced_stage(source, dest, vault_root, asset_id, origin_refs)
            return self._result(backing, dest, True, base_asset, source, trash_entry)

        trash_entry = await self._trash_replaced_stage(source, dest, vault_root, asset_id, origin_refs)
        logger.debug("Imported %s as %s", source, dest.name)
        return self._result(entry, dest, False, base_asset, source, trash_entry)

    async def import_data_url(
        self, data_url: str, vault_root: Path, asset_id: str, base_asset: Asset | None = None
    ) -> ImportResult:
        """Import a base64 ``data:image/...`` URL through the normal pipeline."""
        match = DATA_URL_PATTERN.match(data_url)
        if not match:
            raise AssetImportError("data-url", "Invalid data URL")

        mime_type = match.group(1).lower()
        ext = DATA_URL_EXTENSIONS.get(mime_type)
        if ext is None:
            raise AssetImportError("data-url", f"Unsupported image type: {mime_type}")
        try:
            payload = base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError) as e:
            raise AssetImportError("data-url", f"Invalid base64 payload: {e}") from e

        temp_path = Path(tempfile.gettempdir()) / "scenedeck" / f"dataurl_{asset_id}{ext}"
        try:
            await self.gateway.write_bytes(temp_path, payload)
            return await self.import_asset(temp_path, vault_root, asset_id, base_asset)
        finally:
            temp_path.unlink(missing_ok=True)

    async def _hash_stage(self, source: Path) -> str:
        try:
            return await self.gateway.hash(source)
        except OSError as e:
            raise AssetImportError(str(source), f"Cannot hash file: {e}") from e

    async def _destination_stage(
        self, assets_dir: Path, file_hash: str, media_type: MediaType, ext: str
    ) -> tuple[Path, bool]:
        """Pick the hash-derived filename.

        Returns the destination and whether identical content is already
        there (an unindexed file left behind by an earlier run).
        """
        stem = f"{FILENAME_PREFIXES[media_type]}_{file_hash[: self.hash_prefix_length]}"
        dest = assets_dir / f"{stem}{ext}"
        if not await self.gateway.path_exists(dest):
            return dest, False
        try:
            if await self.gateway.hash(dest) == file_hash:
                return dest, True
        except OSError as e:
            raise AssetImportError(str(dest), f"Cannot hash existing vault file: {e}") from e

        # Same prefix, different content.
        counter = 1
        while True:
            candidate = assets_dir / f"{stem}_{counter}{ext}"
            if not await self.gateway.path_exists(candidate):
                return candidate, False
            counter += 1

    async def _copy_stage(self, source: Path, dest: Path) -> None:
        try:
            await self.gateway.copy_file(source, dest)
        except OSError as e:
            raise AssetImportError(str(source), f"Cannot copy into vault: {e}") from e

    @staticmethod
    def _origin_refs(previous: AssetIndexEntry | None) -> list[TrashOriginRef]:
        if previous is None:
            return []
        return [TrashOriginRef(scene_id=ref.scene_id, cut_id=ref.cut_id) for ref in previous.usage_refs]

    async def _trash_replaced_stage(
        self,
        source: Path,
        dest: Path,
        vault_root: Path,
        asset_id: str,
        origin_refs: list[TrashOriginRef],
    ) -> TrashEntry | None:
        """A vault-resident source that now maps to a different file is
        moved to the trash instead of being left orphaned.

        Runs after the index update; a failure leaves the old file in place
        and does not undo the import.
        """
        assets_dir = vault_root / ASSETS_DIRNAME
        if not is_path_inside(assets_dir, source):
            return None
        if source.resolve() == dest.resolve():
            return None

        meta = TrashMeta(asset_id=asset_id, origin_refs=origin_refs, reason="rehash")
        try:
            return await self.gateway.move_to_trash(source, vault_root / TRASH_DIRNAME, meta)
        except (OSError, VaultError) as e:
            logger.warning("Could not move replaced file %s to trash: %s", source, e)
            return None

    def _result(
        self,
        entry: AssetIndexEntry,
        dest: Path,
        is_duplicate: bool,
        base_asset: Asset | None,
        source: Path,
        trash_entry: TrashEntry | None,
    ) -> ImportResult:
        relative_path = f"{ASSETS_DIRNAME}/{entry.filename}"
        fields = base_asset.model_dump() if base_asset else {}
        fields.update(
            id=entry.id,
            name=fields.get("name") or source.name,
            path=str(dest),
            type=fields.get("type") or entry.type,
            vault_relative_path=relative_path,
            original_path=str(source),
            hash=entry.hash,
            file_size=entry.file_size,
        )
        return ImportResult(
            asset_id=entry.id,
            path=dest,
            relative_path=relative_path,
            hash=entry.hash,
            is_duplicate=is_duplicate,
            entry=entry,
            asset=Asset(**fields),
            trash_entry=trash_entry,
        )


@dataclass
class CutImportSource:
    asset_id: str
    name: str
    source_path: Path
    type: MediaType
    file_size: int | None = None
    existing_asset: Asset | None = None
    preferred_duration: float | None = None
    preferred_thumbnail: str | None = None
    thumbnail_time_offset: float = 0.0


@dataclass
class CutImportResult:
    asset: Asset
    display_time: float
    import_result: ImportResult | None = None
    error: AssetImportError | None = None


async def build_asset_for_cut(
    source: CutImportSource,
    vault_root: Path | None,
    importer: AssetImporter,
    extractor: MediaMetadataExtractor,
    default_display_time: float = 1.0,
    read_image_thumbnail: bool = False,
) -> CutImportResult:
    """Build the asset for a new or relinked cut.

    Videos get duration, frame size and a thumbnail from the extractor.
    The file is then imported into the vault; if that fails the asset
    stays unmanaged at its original absolute path.
    """
    existing = source.existing_asset
    duration = source.preferred_duration or (existing.duration if existing else None)
    thumbnail = source.preferred_thumbnail or (existing.thumbnail if existing else None)
    metadata = existing.metadata if existing else None

    if source.type == "video":
        if not duration:
            video_meta = await extractor.extract_video_metadata(source.source_path)
            if video_meta is not None:
                duration = video_meta.duration
                if metadata is None:
                    metadata = {"width": video_meta.width, "height": video_meta.height}
        if not thumbnail:
            thumbnail = await extractor.generate_thumbnail(
                source.source_path, source.thumbnail_time_offset
            )
    elif source.type == "image" and read_image_thumbnail and not thumbnail:
        try:
            data = await importer.gateway.read_bytes(source.source_path)
        except OSError as e:
            logger.warning("Cannot read %s for thumbnail: %s", source.source_path, e)
        else:
            thumbnail = to_data_url(data, source.source_path)

    base = Asset(
        id=source.asset_id,
        name=existing.name if existing else source.name,
        path=str(source.source_path),
        type=source.type,
        thumbnail=thumbnail,
        duration=duration,
        metadata=metadata,
        file_size=source.file_size or (existing.file_size if existing else None),
        original_path=str(source.source_path),
    )

    asset = base
    import_result = None
    error = None
    if vault_root is not None:
        try:
            import_result = await importer.import_asset(
                source.source_path, vault_root, source.asset_id, base
            )
            asset = import_result.asset
        except AssetImportError as e:
            logger.warning("Keeping %s unmanaged: %s", source.source_path, e)
            error = e

    display_time = asset.duration if asset.type == "video" and asset.duration else default_display_time
    return CutImportResult(asset=asset, display_time=display_time, import_result=import_result, error=error)
