"""
scenedeck.utils - Shared utility functions.

Formatting and id helpers used by the CLI and the core modules.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS or MM:SS.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (HH:MM:SS if >= 1 hour, otherwise MM:SS)
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_size(size_bytes: int | None) -> str:
    """Format a byte count as a human-readable size ("1.5 MB")."""
    if size_bytes is None:
        return "-"
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def new_id() -> str:
    """Return a fresh random id for scenes, cuts and groups."""
    return str(uuid.uuid4())


def generate_asset_id() -> str:
    """Return a fresh asset id (``asset_<hex>``)."""
    return f"asset_{uuid.uuid4().hex[:16]}"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; None when absent or malformed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_posix(path: str | Path) -> str:
    """Render a path with forward slashes."""
    return str(path).replace("\\", "/")


def is_path_inside(root: Path, candidate: Path) -> bool:
    """True when ``candidate`` lies inside ``root`` (after resolving)."""
    try:
        candidate.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def to_vault_relative(vault_root: Path, target: str | Path | None) -> str:
    """Express ``target`` relative to the vault when it lives inside it.

    Relative inputs are returned normalised; absolute paths outside the
    vault are kept absolute.
    """
    if not target:
        return ""
    target_path = Path(target)
    if not target_path.is_absolute():
        return to_posix(target)
    if is_path_inside(vault_root, target_path):
        return target_path.resolve().relative_to(vault_root.resolve()).as_posix()
    return to_posix(target_path)
