"""
scenedeck.io - JSON read/write helpers, atomic file writes.

Every vault document (project.sdp, .index.json, .metadata.json,
.trash.json) goes through these helpers.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from scenedeck.logging import logger


def read_json(path: Path) -> dict[str, Any]:
    """Read JSON file with UTF-8 encoding.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON data as dictionary

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def read_json_or_default(
    path: Path, default: Callable[[], dict[str, Any]]
) -> dict[str, Any]:
    """Read a JSON document, falling back to ``default()`` when it is
    absent, unreadable or not a JSON object.

    Vault side-files are rebuilt from scratch rather than blocking a load.
    """
    if not path.exists():
        return default()
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s, starting fresh: %s", path, e)
        return default()
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return default()
    return data


def write_json(path: Path, data: dict[str, Any], indent: int = 2) -> None:
    """Write JSON file atomically with pretty formatting.

    Writes to a temp file in the same directory first, then replaces the
    destination so an interrupted write never leaves a truncated document.

    Args:
        path: Destination path for JSON file
        data: Data to write
        indent: Indentation level for pretty printing (default: 2)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            json.dump(data, tmp, indent=indent, ensure_ascii=False)
        except Exception:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    os.replace(tmp_path, path)
