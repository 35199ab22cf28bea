"""Tests for scenedeck.history - the undo/redo engine."""

from __future__ import annotations

import asyncio
import logging

import pytest

from scenedeck.exceptions import CommandExecutionError, UndoCancelledError
from scenedeck.history import Command, CommandHistory


class RecordingCommand(Command):
    def __init__(self, name: str, log: list[str], fail_execute: bool = False, fail_undo: bool = False):
        self.description = name
        self.log = log
        self.fail_execute = fail_execute
        self.fail_undo = fail_undo

    async def execute(self) -> None:
        await asyncio.sleep(0)
        if self.fail_execute:
            raise OSError("disk full")
        self.log.append(f"do {self.description}")

    async def undo(self) -> None:
        await asyncio.sleep(0)
        if self.fail_undo:
            raise RuntimeError("cannot undo")
        self.log.append(f"undo {self.description}")


class DeclinedUndoCommand(Command):
    description = "restore clip"

    async def execute(self) -> None:
        pass

    async def undo(self) -> None:
        raise UndoCancelledError("Undo cancelled by user")


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_pushes_onto_past(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        command = RecordingCommand("a", log)

        await history.execute_command(command)

        assert log == ["do a"]
        assert history.past == (command,)
        assert history.can_undo()
        assert not history.can_redo()

    @pytest.mark.asyncio
    async def test_new_command_clears_future(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        await history.execute_command(RecordingCommand("a", log))
        await history.undo()
        assert history.can_redo()

        await history.execute_command(RecordingCommand("b", log))

        assert history.future == ()

    @pytest.mark.asyncio
    async def test_bounded_history_drops_oldest(self) -> None:
        log: list[str] = []
        history = CommandHistory(max_history=3)
        commands = [RecordingCommand(str(i), log) for i in range(4)]

        for command in commands:
            await history.execute_command(command)

        assert len(history.past) == 3
        assert history.past == tuple(commands[1:])

    @pytest.mark.asyncio
    async def test_failed_execute_is_not_recorded(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        await history.execute_command(RecordingCommand("a", log))
        await history.undo()

        with pytest.raises(CommandExecutionError) as exc_info:
            await history.execute_command(RecordingCommand("bad", log, fail_execute=True))

        assert isinstance(exc_info.value.__cause__, OSError)
        assert history.past == ()
        assert len(history.future) == 1

    @pytest.mark.asyncio
    async def test_command_error_is_not_rewrapped(self) -> None:
        error = CommandExecutionError("refused")

        class Refusing(Command):
            description = "refuse"

            async def execute(self) -> None:
                raise error

            async def undo(self) -> None:
                pass

        history = CommandHistory()
        with pytest.raises(CommandExecutionError) as exc_info:
            await history.execute_command(Refusing())
        assert exc_info.value is error

    def test_max_history_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            CommandHistory(max_history=0)


class TestUndoRedo:
    @pytest.mark.asyncio
    async def test_undo_then_redo(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        command = RecordingCommand("a", log)
        await history.execute_command(command)

        assert await history.undo() is command
        assert await history.redo() is command

        assert log == ["do a", "undo a", "do a"]
        assert history.past == (command,)
        assert history.future == ()

    @pytest.mark.asyncio
    async def test_redo_takes_most_recently_undone(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        first, second = RecordingCommand("1", log), RecordingCommand("2", log)
        await history.execute_command(first)
        await history.execute_command(second)
        await history.undo()
        await history.undo()

        assert await history.redo() is first
        assert await history.redo() is second

    @pytest.mark.asyncio
    async def test_undo_on_empty_history_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        history = CommandHistory()
        with caplog.at_level(logging.WARNING, logger="scenedeck"):
            assert await history.undo() is None
            assert await history.redo() is None
        assert "Nothing to undo" in caplog.text
        assert "Nothing to redo" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_undo_restores_past(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        command = RecordingCommand("a", log, fail_undo=True)
        await history.execute_command(command)

        with pytest.raises(CommandExecutionError):
            await history.undo()

        assert history.past == (command,)
        assert history.future == ()

    @pytest.mark.asyncio
    async def test_declined_undo_is_not_an_error(self, caplog: pytest.LogCaptureFixture) -> None:
        history = CommandHistory()
        command = DeclinedUndoCommand()
        await history.execute_command(command)

        with caplog.at_level(logging.INFO, logger="scenedeck"):
            with pytest.raises(UndoCancelledError):
                await history.undo()

        assert history.past == (command,)
        assert "Cancelled undo of 'restore clip'" in caplog.text
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    @pytest.mark.asyncio
    async def test_failed_redo_restores_future(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        command = RecordingCommand("a", log)
        await history.execute_command(command)
        await history.undo()
        command.fail_execute = True

        with pytest.raises(CommandExecutionError):
            await history.redo()

        assert history.past == ()
        assert history.future == (command,)

    @pytest.mark.asyncio
    async def test_overlapping_undos_are_serialised(self) -> None:
        log: list[str] = []
        history = CommandHistory()
        for name in ("a", "b", "c"):
            await history.execute_command(RecordingCommand(name, log))

        await asyncio.gather(history.undo(), history.undo(), history.undo())

        assert log[3:] == ["undo c", "undo b", "undo a"]
        assert history.past == ()
        assert [c.description for c in history.future] == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        history = CommandHistory()
        await history.execute_command(RecordingCommand("a", []))
        history.clear()
        assert not history.can_undo()
        assert not history.can_redo()
