"""
scenedeck.gateway - Asynchronous filesystem gateway.

Every suspension point of the asset pipeline (hashing, copying, existence
checks, reads) goes through this class so the rest of the core stays
free of blocking I/O and can be driven by a fake in tests.
"""

from __future__ import annotations

import asyncio
import hashlib
import shutil
from pathlib import Path

import aiofiles
import aiofiles.os

from scenedeck.models import TrashEntry, TrashMeta
from scenedeck.trash import move_file_into_trash, record_trash_entry

CHUNK_SIZE = 1024 * 1024


class FilesystemGateway:
    """Async file operations used by the importer and resolver."""

    def __init__(self, trash_retention_days: int | None = None) -> None:
        self.trash_retention_days = trash_retention_days

    async def hash(self, path: Path) -> str:
        """Compute the SHA-256 hex digest of a file."""
        sha256 = hashlib.sha256()
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                sha256.update(chunk)
        return sha256.hexdigest()

    async def copy_file(self, src: Path, dst: Path) -> None:
        dst.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copy2, src, dst)

    async def move_to_trash(
        self, path: Path, trash_dir: Path, meta: TrashMeta | None = None
    ) -> TrashEntry:
        """Move ``path`` into ``trash_dir`` and record its provenance."""
        trashed = await asyncio.to_thread(move_file_into_trash, path, trash_dir)
        return record_trash_entry(
            trash_dir, path, trashed, meta, retention_days=self.trash_retention_days
        )

    async def path_exists(self, path: Path) -> bool:
        return await aiofiles.os.path.exists(path)

    async def read_bytes(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def write_bytes(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)

    async def file_size(self, path: Path) -> int:
        stat = await aiofiles.os.stat(path)
        return stat.st_size

    async def list_directory(self, path: Path) -> list[Path]:
        if not await self.path_exists(path):
            return []
        names = await aiofiles.os.listdir(path)
        return sorted(path / name for name in names)
