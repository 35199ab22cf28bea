"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from pathlib import Path

import pytest

from scenedeck.gateway import FilesystemGateway
from scenedeck.importer import AssetImporter
from scenedeck.models import Asset, Cut, Scene, VideoMetadata
from scenedeck.project import Vault
from scenedeck.state import ProjectState

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class FakeExtractor:
    """Media extractor returning fixed video metadata without ffmpeg."""

    def __init__(self, duration: float = 4.5, thumbnail: str | None = "data:image/jpeg;base64,AAAA"):
        self.duration = duration
        self.thumbnail = thumbnail
        self.metadata_calls: list[Path] = []
        self.thumbnail_calls: list[tuple[Path, float]] = []

    async def extract_video_metadata(self, path: Path) -> VideoMetadata | None:
        self.metadata_calls.append(path)
        return VideoMetadata(duration=self.duration, width=1920, height=1080)

    async def generate_thumbnail(self, path: Path, time_offset: float = 0.0) -> str | None:
        self.thumbnail_calls.append((path, time_offset))
        return self.thumbnail


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def asset_files(vault: Path) -> list[Path]:
    """Files under assets/, ignoring dotfiles."""
    return sorted(p for p in (vault / "assets").iterdir() if p.is_file() and not p.name.startswith("."))


@pytest.fixture
def tmp_vault(tmp_path: Path) -> Path:
    """Create a vault with an empty project."""
    vault_dir = tmp_path / "vault"
    Vault(vault_dir).create("test-vault")
    return vault_dir


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Directory outside the vault holding files to import."""
    directory = tmp_path / "incoming"
    directory.mkdir()
    return directory


@pytest.fixture
def make_file(source_dir: Path) -> Callable[..., Path]:
    """Write a file into source_dir; default content is a small PNG-like payload."""

    def _make(name: str, content: bytes | None = None) -> Path:
        path = source_dir / name
        path.write_bytes(content if content is not None else PNG_HEADER + name.encode())
        return path

    return _make


@pytest.fixture
def gateway() -> FilesystemGateway:
    return FilesystemGateway()


@pytest.fixture
def importer(gateway: FilesystemGateway) -> AssetImporter:
    return AssetImporter(gateway)


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


def make_asset(asset_id: str, media_type: str = "image", **fields) -> Asset:
    ext = {"image": ".png", "video": ".mp4", "audio": ".wav"}[media_type]
    fields.setdefault("path", f"/media/{asset_id}{ext}")
    return Asset(id=asset_id, name=f"{asset_id}{ext}", type=media_type, **fields)


def make_cut(cut_id: str, asset: Asset, order: int = 0, display_time: float = 1.0) -> Cut:
    return Cut(id=cut_id, asset_id=asset.id, asset=asset, order=order, display_time=display_time)


@pytest.fixture
def state() -> ProjectState:
    """Two scenes: scene-a with three cuts, scene-b empty."""
    assets = [make_asset(f"asset-{i}") for i in range(3)]
    scene_a = Scene(
        id="scene-a",
        name="Opening",
        order=0,
        cuts=[make_cut(f"cut-{i}", a, order=i, display_time=1.0 + i) for i, a in enumerate(assets)],
    )
    scene_b = Scene(id="scene-b", name="Ending", order=1)
    return ProjectState(name="demo", scenes=[scene_a, scene_b])
