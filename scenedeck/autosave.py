"""
scenedeck.autosave - Debounced background saving.

The controller watches a ProjectState, compares a projection of it that
leaves out UI-only fields, and coalesces bursts of changes into a single
save. At most one save runs at a time; changes arriving during a save set
a pending flag that triggers exactly one follow-up save.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

from scenedeck.exceptions import AutosaveError
from scenedeck.logging import logger
from scenedeck.state import ProjectState

SaveCallback = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[AutosaveError], None]


def project_snapshot(state: ProjectState) -> dict[str, Any]:
    """The persisted part of the state: no selection, panels or drags.

    Scene metadata snapshots are left out; they are rebuilt from the
    scenes on every save.
    """
    return {
        "name": state.name,
        "vaultPath": str(state.vault_path) if state.vault_path else None,
        "scenes": [scene.to_json_dict() for scene in state.scenes],
        "groups": sorted(
            (group.to_json_dict() for group in state.groups.values()), key=lambda g: g["id"]
        ),
        "sourcePanel": state.source_panel.to_json_dict(),
        "assetMetadata": {
            asset_id: entry.to_json_dict() for asset_id, entry in state.metadata_store.metadata.items()
        },
    }


def snapshot_key(state: ProjectState) -> str:
    return json.dumps(project_snapshot(state), sort_keys=True)


class AutosaveController:
    """Debounce saves and keep them from overlapping.

    Args:
        save: Coroutine function that writes the project
        debounce_seconds: Quiet period after the last change before saving
        max_wait_seconds: Save at the latest this long after the first
            unsaved change, even if changes keep coming. None disables it.
        on_error: Called once per streak of failed saves
        enabled: When False, schedule() does nothing
    """

    def __init__(
        self,
        save: SaveCallback,
        debounce_seconds: float = 1.0,
        max_wait_seconds: float | None = None,
        on_error: ErrorCallback | None = None,
        enabled: bool = True,
    ) -> None:
        self._save = save
        self.debounce_seconds = debounce_seconds
        self.max_wait_seconds = max_wait_seconds
        self.on_error = on_error
        self.enabled = enabled
        self.save_count = 0
        self.last_error: AutosaveError | None = None

        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._pending = False
        self._first_dirty_at: float | None = None
        self._error_notified = False

    @property
    def is_saving(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_dirty(self) -> bool:
        return self._timer is not None or self._pending or self.is_saving

    def schedule(self) -> None:
        """Mark the project dirty and (re)arm the debounce timer."""
        if not self.enabled:
            return
        if self.is_saving:
            self._pending = True
            return

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._first_dirty_at is None:
            self._first_dirty_at = now
        delay = self.debounce_seconds
        if self.max_wait_seconds is not None:
            remaining = self._first_dirty_at + self.max_wait_seconds - now
            delay = max(0.0, min(delay, remaining))

        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(delay, self._start_save)

    def _start_save(self) -> None:
        self._timer = None
        if self.is_saving:
            self._pending = True
            return
        self._task = asyncio.get_running_loop().create_task(self._run_save())

    async def _run_save(self) -> None:
        self._first_dirty_at = None
        while True:
            self._pending = False
            try:
                await self._save()
            except Exception as e:
                self._report_failure(e)
            else:
                self.save_count += 1
                self.last_error = None
                self._error_notified = False
            if not self._pending:
                break
            logger.debug("Changes arrived during save, saving again")

    def _report_failure(self, error: Exception) -> None:
        self.last_error = AutosaveError(f"Autosave failed: {error}")
        if self._error_notified:
            logger.debug("Autosave still failing: %s", error)
            return
        self._error_notified = True
        logger.error("Autosave failed, save manually: %s", error)
        if self.on_error is not None:
            self.on_error(self.last_error)

    async def flush(self) -> None:
        """Save now if a save is scheduled, and wait for any save in progress."""
        if self._timer is not None:
            self._timer.cancel()
            self._start_save()
        if self._task is not None:
            await self._task

    def watch(self, state: ProjectState) -> Callable[[], None]:
        """Schedule a save whenever the persisted projection of ``state`` changes.

        Returns:
            Function that stops watching.
        """
        last = snapshot_key(state)

        def on_change(changed: ProjectState) -> None:
            nonlocal last
            current = snapshot_key(changed)
            if current != last:
                last = current
                self.schedule()

        return state.subscribe(on_change)

    def close(self) -> None:
        """Stop scheduling; a save already running is left to finish."""
        self.enabled = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = False
