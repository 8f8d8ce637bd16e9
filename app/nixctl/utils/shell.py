"""Shell execution utilities.

Provides asynchronous subprocess execution with output capture and
conversion of failures into action error kinds.
"""

import asyncio
import logging
import shlex
import shutil
from dataclasses import dataclass

from nixctl.action.errors import CommandFailure, CommandSpawnFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a shell command execution.

    Attributes:
        args: Command and arguments that were executed.
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        returncode: Exit code of the command.
    """

    args: tuple[str, ...]
    stdout: str
    stderr: str
    returncode: int

    @property
    def success(self) -> bool:
        """Check if command executed successfully."""
        return self.returncode == 0


async def run_command(
    args: list[str],
    *,
    timeout: float | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """Execute a command and return the result without checking its status.

    The child runs in its own session with stdin closed, so terminal signals
    aimed at nixctl do not reach it directly. If the awaiting task is
    cancelled (or the timeout expires) the child is terminated before the
    cancellation propagates.

    Args:
        args: Command and arguments to execute.
        timeout: Maximum time in seconds to wait, None to wait forever.
        cwd: Working directory for the command. If None, uses current directory.

    Returns:
        CommandResult with stdout, stderr, and returncode.

    Raises:
        CommandSpawnFailure: If the executable cannot be started.
        TimeoutError: If command exceeds timeout.
    """
    logger.debug("Executing `%s`", shlex.join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            start_new_session=True,
        )
    except OSError as e:
        raise CommandSpawnFailure(args, e) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (asyncio.CancelledError, TimeoutError):
        if process.returncode is None:
            process.terminate()
            await process.wait()
        raise

    result = CommandResult(
        args=tuple(args),
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        returncode=process.returncode if process.returncode is not None else -1,
    )
    logger.debug("Command `%s` exited with %d", shlex.join(args), result.returncode)
    return result


async def execute_command(args: list[str], *, timeout: float | None = None) -> CommandResult:
    """Execute a command and require it to succeed.

    Args:
        args: Command and arguments to execute.
        timeout: Maximum time in seconds to wait, None to wait forever.

    Returns:
        CommandResult of the successful run.

    Raises:
        CommandFailure: If the command exits with a non-zero status.
        CommandSpawnFailure: If the executable cannot be started.
    """
    result = await run_command(args, timeout=timeout)
    if not result.success:
        raise CommandFailure(args, result.returncode, result.stdout, result.stderr)
    return result


def command_exists(name: str) -> bool:
    """Check if a command exists in the system PATH.

    Args:
        name: Command name to check.

    Returns:
        True if command exists, False otherwise.
    """
    return shutil.which(name) is not None
