"""
scenedeck.trash - Vault trash with provenance.

Files are never deleted outright: they move into ``<vault>/.trash/`` and
a ``.trash.json`` entry records where they came from, which asset they
backed and why they were removed. Entries older than the retention
window are purged whenever the trash index is written.
"""

from __future__ import annotations

import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

from scenedeck.exceptions import VaultError
from scenedeck.index import ASSETS_DIRNAME, load_index, save_index
from scenedeck.io import read_json_or_default, write_json
from scenedeck.logging import logger
from scenedeck.models import TrashEntry, TrashIndex, TrashMeta
from scenedeck.utils import new_id, parse_iso, to_vault_relative, utc_now_iso

TRASH_DIRNAME = ".trash"
TRASH_INDEX_NAME = ".trash.json"
DEFAULT_RETENTION_DAYS = 30


def read_trash_index(trash_dir: Path) -> TrashIndex:
    data = read_json_or_default(
        trash_dir / TRASH_INDEX_NAME,
        lambda: {"version": 1, "retentionDays": DEFAULT_RETENTION_DAYS, "items": []},
    )
    try:
        return TrashIndex.model_validate(data)
    except ValueError as e:
        logger.warning("Trash index in %s is malformed, starting fresh: %s", trash_dir, e)
        return TrashIndex(retention_days=DEFAULT_RETENTION_DAYS)


def write_trash_index(trash_dir: Path, index: TrashIndex) -> None:
    write_json(trash_dir / TRASH_INDEX_NAME, index.to_json_dict())


def purge_expired_trash(
    trash_dir: Path, index: TrashIndex, now: datetime | None = None
) -> TrashIndex:
    """Delete trashed files past the retention window.

    Items with an unparseable timestamp are kept, as are items whose file
    could not be removed.
    """
    now = now or datetime.now(timezone.utc)
    ttl = timedelta(days=index.retention_days)
    keep: list[TrashEntry] = []

    for item in index.items:
        deleted_at = parse_iso(item.deleted_at)
        if deleted_at is None or now - deleted_at <= ttl:
            keep.append(item)
            continue
        target = trash_dir / item.filename
        if target.exists():
            try:
                target.unlink()
            except OSError as e:
                logger.warning("Failed to purge trash file %s: %s", target, e)
                keep.append(item)

    return index.model_copy(update={"items": keep})


def unique_destination(directory: Path, filename: str) -> Path:
    """``directory/filename``, or ``stem_N.ext`` when that name is taken."""
    dest = directory / filename
    stem, suffix = Path(filename).stem, Path(filename).suffix
    counter = 1
    while dest.exists():
        dest = directory / f"{stem}_{counter}{suffix}"
        counter += 1
    return dest


def move_file_into_trash(file_path: Path, trash_dir: Path) -> Path:
    """Move one file into the trash directory, returning its new location.

    Raises:
        VaultError: If the file can neither be renamed nor copied
    """
    trash_dir.mkdir(parents=True, exist_ok=True)
    dest = unique_destination(trash_dir, file_path.name)
    try:
        file_path.rename(dest)
    except OSError:
        try:
            shutil.copy2(file_path, dest)
            file_path.unlink()
        except OSError as e:
            raise VaultError(f"Failed to move {file_path} to trash: {e}") from e
    return dest


def record_trash_entry(
    trash_dir: Path,
    original_path: Path,
    trashed_path: Path,
    meta: TrashMeta | None,
    retention_days: int | None = None,
) -> TrashEntry:
    """Write the provenance entry for a file already moved into the trash.

    When the file backed an index entry, that entry is removed from the
    index and kept inside the trash entry so a restore can re-register it.
    """
    vault_root = trash_dir.parent
    meta = meta or TrashMeta()

    index_entry = None
    if meta.asset_id:
        index = load_index(vault_root)
        candidate = index.find_by_id(meta.asset_id)
        if candidate is not None and candidate.filename == original_path.name:
            index_entry = index.remove(meta.asset_id)
            save_index(vault_root, index)

    trash_index = read_trash_index(trash_dir)
    if retention_days is not None:
        trash_index.retention_days = retention_days
    trash_index = purge_expired_trash(trash_dir, trash_index)

    entry = TrashEntry(
        id=new_id(),
        deleted_at=utc_now_iso(),
        asset_id=meta.asset_id,
        original_path=to_vault_relative(vault_root, original_path),
        trash_relative_path=f"{TRASH_DIRNAME}/{trashed_path.name}",
        filename=trashed_path.name,
        reason=meta.reason,
        origin_refs=list(meta.origin_refs),
        index_entry=index_entry,
    )
    trash_index.items.append(entry)
    write_trash_index(trash_dir, trash_index)
    logger.debug("Trashed %s as %s (%s)", original_path, trashed_path.name, meta.reason)
    return entry


def restore_from_trash(vault_root: Path, trash_id: str) -> TrashEntry:
    """Move a trashed file back to where it came from.

    Vault asset files go back under ``assets/`` and their index entry is
    re-registered.

    Raises:
        VaultError: If the entry is unknown or its file is no longer in the trash
    """
    trash_dir = vault_root / TRASH_DIRNAME
    trash_index = read_trash_index(trash_dir)
    entry = next((item for item in trash_index.items if item.id == trash_id), None)
    if entry is None:
        raise VaultError(f"No trash entry {trash_id}")

    source = trash_dir / entry.filename
    if not source.exists():
        raise VaultError(f"Trashed file {entry.filename} no longer exists")

    if entry.index_entry is not None:
        target = vault_root / ASSETS_DIRNAME / entry.index_entry.filename
    elif entry.original_path and not Path(entry.original_path).is_absolute():
        target = vault_root / entry.original_path
    elif entry.original_path:
        target = Path(entry.original_path)
    else:
        target = vault_root / ASSETS_DIRNAME / entry.filename

    if target.exists():
        raise VaultError(f"Cannot restore {entry.filename}: {target} already exists")
    target.parent.mkdir(parents=True, exist_ok=True)
    source.rename(target)

    if entry.index_entry is not None:
        index = load_index(vault_root)
        index.upsert(entry.index_entry)
        save_index(vault_root, index)

    trash_index.items = [item for item in trash_index.items if item.id != trash_id]
    write_trash_index(trash_dir, trash_index)
    return entry
