"""Unit tests for shell utilities.

Tests for the async subprocess helpers used by the actions.
"""

import asyncio
from unittest.mock import patch

import pytest
from nixctl.action.errors import CommandFailure, CommandSpawnFailure
from nixctl.utils.shell import CommandResult, command_exists, execute_command, run_command


class TestCommandResult:
    """Tests for CommandResult dataclass."""

    def test_success_when_returncode_zero(self) -> None:
        """CommandResult.success is True when returncode is 0."""
        result = CommandResult(args=("true",), stdout="output", stderr="", returncode=0)
        assert result.success is True

    def test_failure_when_returncode_nonzero(self) -> None:
        """CommandResult.success is False when returncode is non-zero."""
        result = CommandResult(args=("false",), stdout="", stderr="error", returncode=1)
        assert result.success is False

    def test_is_frozen(self) -> None:
        """CommandResult is immutable."""
        result = CommandResult(args=(), stdout="", stderr="", returncode=0)
        with pytest.raises(AttributeError):
            result.returncode = 1  # type: ignore[misc]


class TestRunCommand:
    """Tests for run_command function."""

    @pytest.mark.asyncio
    async def test_captures_output(self) -> None:
        """stdout, stderr and the exit status are captured."""
        result = await run_command(["sh", "-c", "echo out; echo err >&2; exit 3"])

        assert result.args == ("sh", "-c", "echo out; echo err >&2; exit 3")
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert result.returncode == 3

    @pytest.mark.asyncio
    async def test_cwd(self, tmp_path) -> None:
        """The command runs in the given directory."""
        result = await run_command(["pwd"], cwd=str(tmp_path))

        assert result.stdout.strip() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        """An unknown executable is a spawn failure."""
        with pytest.raises(CommandSpawnFailure) as exc_info:
            await run_command(["nixctl-no-such-command"])

        assert exc_info.value.command == ["nixctl-no-such-command"]

    @pytest.mark.asyncio
    async def test_timeout_terminates_child(self) -> None:
        """The child is terminated when the timeout expires."""
        with pytest.raises(TimeoutError):
            await run_command(["sleep", "10"], timeout=0.1)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        """Cancelling the caller terminates the child and re-raises."""
        task = asyncio.create_task(run_command(["sleep", "10"]))
        await asyncio.sleep(0.1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestExecuteCommand:
    """Tests for execute_command function."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        """A zero exit status returns the result."""
        result = await execute_command(["echo", "hello"])

        assert result.stdout == "hello\n"

    @pytest.mark.asyncio
    async def test_failure_carries_output(self) -> None:
        """A non-zero exit status raises CommandFailure with the output."""
        with pytest.raises(CommandFailure) as exc_info:
            await execute_command(["sh", "-c", "echo broken >&2; exit 2"])

        failure = exc_info.value
        assert failure.returncode == 2
        assert failure.stderr == "broken\n"
        assert "exit 2" in str(failure)
        assert "stderr: broken" in str(failure)


class TestCommandExists:
    """Tests for command_exists function."""

    def test_existing_command(self) -> None:
        """command_exists returns True for existing commands."""
        with patch("shutil.which", return_value="/usr/bin/systemctl"):
            assert command_exists("systemctl") is True

    def test_nonexistent_command(self) -> None:
        """command_exists returns False for non-existent commands."""
        with patch("shutil.which", return_value=None):
            assert command_exists("nonexistent-command-12345") is False
