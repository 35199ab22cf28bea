"""
scenedeck.media - Media type detection and the metadata extractor.

The extractor is the narrow interface the core uses for video duration,
dimensions and thumbnails. ``FfmpegMediaExtractor`` implements it with
ffprobe/ffmpeg subprocesses; tests substitute a fake.
"""

from __future__ import annotations

import asyncio
import base64
import json
import mimetypes
import shutil
from pathlib import Path
from typing import Any, Protocol

from scenedeck.exceptions import DependencyError
from scenedeck.logging import logger
from scenedeck.models import MediaType, VideoMetadata

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".svg"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov", ".avi", ".mkv"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".ogg", ".m4a", ".aac", ".flac"}

FILENAME_PREFIXES: dict[str, str] = {"image": "img", "video": "vid", "audio": "aud"}


def get_media_type(filename: str | Path) -> MediaType | None:
    """Classify a file by extension; None for unsupported files."""
    ext = Path(filename).suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    return None


def to_data_url(data: bytes, filename: str | Path) -> str:
    """Encode raw image bytes as a ``data:`` URL usable as a thumbnail."""
    mime, _ = mimetypes.guess_type(str(filename))
    return f"data:{mime or 'application/octet-stream'};base64,{base64.b64encode(data).decode('ascii')}"


class MediaMetadataExtractor(Protocol):
    async def extract_video_metadata(self, path: Path) -> VideoMetadata | None: ...

    async def generate_thumbnail(self, path: Path, time_offset: float = 0.0) -> str | None: ...


def parse_ffprobe_output(data: dict[str, Any]) -> VideoMetadata:
    """Pick duration and frame size out of ``ffprobe -print_format json`` output."""
    video_stream = next(
        (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
        None,
    )
    format_info = data.get("format", {})
    duration = float(format_info.get("duration") or 0)
    if not duration and video_stream:
        duration = float(video_stream.get("duration") or 0)

    width = height = None
    if video_stream:
        width = video_stream.get("width")
        height = video_stream.get("height")

    return VideoMetadata(duration=duration, width=width, height=height)


class FfmpegMediaExtractor:
    """Extract video metadata and thumbnails with the ffmpeg toolchain."""

    def __init__(self, ffprobe: str | None = None, ffmpeg: str | None = None) -> None:
        self.ffprobe = ffprobe or shutil.which("ffprobe")
        self.ffmpeg = ffmpeg or shutil.which("ffmpeg")

    def check(self) -> None:
        """Raise DependencyError when ffprobe or ffmpeg is missing."""
        hint = "Install with: brew install ffmpeg (macOS) or apt install ffmpeg (Linux)"
        if not self.ffprobe:
            raise DependencyError("ffprobe", "FFprobe not found in PATH", hint)
        if not self.ffmpeg:
            raise DependencyError("ffmpeg", "FFmpeg not found in PATH", hint)

    async def _run(self, *cmd: str) -> tuple[int, bytes, bytes]:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        return proc.returncode or 0, stdout, stderr

    async def extract_video_metadata(self, path: Path) -> VideoMetadata | None:
        if not self.ffprobe:
            logger.warning("ffprobe not available, skipping metadata for %s", path)
            return None
        code, stdout, stderr = await self._run(
            self.ffprobe,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(path),
        )
        if code != 0:
            logger.warning("ffprobe failed for %s: %s", path, stderr.decode(errors="replace"))
            return None
        try:
            return parse_ffprobe_output(json.loads(stdout))
        except (ValueError, TypeError) as e:
            logger.warning("Unreadable ffprobe output for %s: %s", path, e)
            return None

    async def generate_thumbnail(self, path: Path, time_offset: float = 0.0) -> str | None:
        if not self.ffmpeg:
            return None
        code, stdout, stderr = await self._run(
            self.ffmpeg,
            "-v",
            "error",
            "-ss",
            f"{max(time_offset, 0.0):.3f}",
            "-i",
            str(path),
            "-frames:v",
            "1",
            "-vf",
            "scale=320:-2",
            "-f",
            "image2pipe",
            "-vcodec",
            "mjpeg",
            "-",
        )
        if code != 0 or not stdout:
            logger.warning("Thumbnail extraction failed for %s: %s", path, stderr.decode(errors="replace"))
            return None
        return to_data_url(stdout, "thumbnail.jpg")
