"""
scenedeck.config - YAML config loading and validation.

Handles loading scenedeck.yaml from a vault directory and validating all
parameters. A vault without a config file runs on defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from scenedeck.exceptions import ConfigError

CONFIG_FILENAME = "scenedeck.yaml"


class SceneDeckConfig(BaseModel):
    """Resolved configuration for a SceneDeck vault."""

    project_name: str = "untitled"

    autosave_enabled: bool = True
    autosave_debounce_ms: int = Field(default=1000, gt=0)
    autosave_max_wait_ms: int | None = Field(default=None, gt=0)

    max_history: int = Field(default=50, gt=0)

    trash_retention_days: int = Field(default=30, ge=0)

    default_display_time: float = Field(default=1.0, gt=0.0)
    thumbnail_time_offset: float = Field(default=0.0, ge=0.0)
    hash_prefix_length: int = Field(default=12, ge=8, le=64)

    config_path: Path | None = None

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("project_name must not be empty")
        return v

    @property
    def autosave_debounce_seconds(self) -> float:
        return self.autosave_debounce_ms / 1000.0

    @property
    def autosave_max_wait_seconds(self) -> float | None:
        if self.autosave_max_wait_ms is None:
            return None
        return self.autosave_max_wait_ms / 1000.0


def load_config(vault_dir: Path) -> SceneDeckConfig:
    """Load and validate configuration from a vault directory.

    Raises:
        ConfigError: If the file exists but is not valid YAML or fails validation
    """
    config_file = vault_dir / CONFIG_FILENAME
    if not config_file.exists():
        return SceneDeckConfig(project_name=vault_dir.name or "untitled")

    try:
        with open(config_file, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_file} must contain a mapping")

    raw_config = {k: v for k, v in raw_config.items() if v is not None}
    raw_config["config_path"] = config_file
    try:
        return SceneDeckConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e


def create_default_config(project_name: str) -> dict[str, Any]:
    """Create a default config for a new vault."""
    defaults = SceneDeckConfig(project_name=project_name)
    return defaults.model_dump(exclude={"config_path", "autosave_max_wait_ms"})


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
