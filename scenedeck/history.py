"""
scenedeck.history - Reversible command history.

Every state mutation goes through CommandHistory.execute_command so it can
be undone and redone. Commands carry whatever pre-state they need to be
symmetric; the history only manages the two stacks.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque

from scenedeck.exceptions import CommandExecutionError, UndoCancelledError
from scenedeck.logging import logger

DEFAULT_MAX_HISTORY = 50


class Command(ABC):
    """An encapsulated, reversible operation."""

    description: str = ""

    @abstractmethod
    async def execute(self) -> None:
        """Apply the operation. Called again on redo."""

    @abstractmethod
    async def undo(self) -> None:
        """Revert the operation."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}: {self.description}>"


class CommandHistory:
    """Bounded past/future stacks of executed commands.

    Calls are serialised through an internal lock, so overlapping triggers
    (a key-repeat firing undo twice) queue instead of interleaving.
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        if max_history <= 0:
            raise ValueError("max_history must be positive")
        self.max_history = max_history
        self._past: deque[Command] = deque()
        self._future: list[Command] = []
        self._lock = asyncio.Lock()

    @property
    def past(self) -> tuple[Command, ...]:
        return tuple(self._past)

    @property
    def future(self) -> tuple[Command, ...]:
        return tuple(self._future)

    def can_undo(self) -> bool:
        return bool(self._past)

    def can_redo(self) -> bool:
        return bool(self._future)

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    async def execute_command(self, command: Command) -> None:
        """Run a command and record it.

        Raises:
            CommandExecutionError: If the command fails. Nothing is recorded.
        """
        async with self._lock:
            try:
                await command.execute()
            except Exception as e:
                _raise_command_error("execute", command, e)
            self._past.append(command)
            self._future.clear()
            while len(self._past) > self.max_history:
                dropped = self._past.popleft()
                logger.debug("History full, dropped: %s", dropped.description)

    async def undo(self) -> Command | None:
        """Undo the most recent command.

        Returns:
            The undone command, or None if there was nothing to undo.
        """
        async with self._lock:
            if not self._past:
                logger.warning("Nothing to undo")
                return None
            command = self._past.pop()
            try:
                await command.undo()
            except Exception as e:
                self._past.append(command)
                _raise_command_error("undo", command, e)
            self._future.append(command)
            return command

    async def redo(self) -> Command | None:
        """Re-execute the most recently undone command.

        Returns:
            The redone command, or None if there was nothing to redo.
        """
        async with self._lock:
            if not self._future:
                logger.warning("Nothing to redo")
                return None
            command = self._future.pop()
            try:
                await command.execute()
            except Exception as e:
                self._future.append(command)
                _raise_command_error("redo", command, e)
            self._past.append(command)
            while len(self._past) > self.max_history:
                self._past.popleft()
            return command


def _raise_command_error(action: str, command: Command, error: Exception) -> None:
    if isinstance(error, UndoCancelledError):
        logger.info("Cancelled %s of '%s'", action, command.description)
        raise error
    logger.error("Failed to %s '%s': %s", action, command.description, error)
    if isinstance(error, CommandExecutionError):
        raise error
    raise CommandExecutionError(f"Failed to {action} '{command.description}': {error}") from error
