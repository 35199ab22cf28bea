"""
scenedeck.exceptions - Custom exception classes.

All SceneDeck-specific exceptions inherit from SceneDeckError.
"""


class SceneDeckError(Exception):
    """Base exception for all SceneDeck errors."""

    pass


class ConfigError(SceneDeckError):
    """Configuration loading or validation error."""

    pass


class VaultError(SceneDeckError):
    """Vault directory, project file or index error."""

    pass


class AssetImportError(SceneDeckError):
    """Hashing or copying a file into the vault failed.

    Non-fatal: callers fall back to an unmanaged asset.
    """

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"{source}: {message}")


class ResolutionError(SceneDeckError):
    """A vault-relative reference could not be resolved."""

    pass


class CommandExecutionError(SceneDeckError):
    """A command failed to execute, undo or redo."""

    pass


class UndoCancelledError(CommandExecutionError):
    """The user declined the confirmation for a destructive inverse."""

    pass


class AutosaveError(SceneDeckError):
    """Background save failed."""

    pass


class DependencyError(SceneDeckError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")


class ProjectStateError(SceneDeckError):
    """A mutation referenced a scene, cut or group that does not exist."""

    pass
