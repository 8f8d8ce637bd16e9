"""Error taxonomy for actions.

Every failure an action can report is an :class:`ActionErrorKind`. Kinds are
attributed to the action that raised them by wrapping them in an
:class:`ActionError`, which carries the action's tag. Composite actions
aggregate sibling failures with :func:`collect_errors`.
"""

from __future__ import annotations

import shlex
from pathlib import Path


class ActionErrorKind(Exception):
    """Base class for the reasons an action can fail."""


class IoFailure(ActionErrorKind):
    """A filesystem call failed on a specific path.

    Attributes:
        operation: Short verb describing the call (e.g. "write", "remove").
        path: Path the call was made against.
        source: Underlying OS error.
    """

    def __init__(self, operation: str, path: Path | str, source: OSError) -> None:
        self.operation = operation
        self.path = Path(path)
        self.source = source
        super().__init__(f"Failed to {operation} `{self.path}`: {source}")


class CommandFailure(ActionErrorKind):
    """A subprocess exited with a non-zero status.

    Attributes:
        command: The argument vector that was executed.
        returncode: Exit status of the process.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(self, command: list[str], returncode: int, stdout: str, stderr: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"Failed to execute command `{shlex.join(self.command)}` (exit {returncode})"
        if stdout.strip():
            message += f"\nstdout: {stdout.strip()}"
        if stderr.strip():
            message += f"\nstderr: {stderr.strip()}"
        super().__init__(message)


class CommandSpawnFailure(ActionErrorKind):
    """A subprocess could not be started at all."""

    def __init__(self, command: list[str], source: OSError) -> None:
        self.command = list(command)
        self.source = source
        super().__init__(f"Failed to start command `{shlex.join(self.command)}`: {source}")


class MalformedState(ActionErrorKind):
    """Existing on-disk state cannot be interpreted."""

    def __init__(self, detail: str, path: Path | str | None = None) -> None:
        self.detail = detail
        self.path = Path(path) if path is not None else None
        if self.path is not None:
            super().__init__(f"{detail} (`{self.path}`)")
        else:
            super().__init__(detail)


class AlreadyExists(ActionErrorKind):
    """A conflicting resource is already present and must not be overwritten."""

    def __init__(self, path: Path | str, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(
            f"`{self.path}` already exists: {detail}. "
            "Remove or correct it manually, then try again"
        )


class UnknownUrlScheme(ActionErrorKind):
    """A URL uses a scheme the action cannot fetch from."""

    def __init__(self, url: str, supported: tuple[str, ...] = ("http", "https", "file")) -> None:
        self.url = url
        self.supported = supported
        schemes = ", ".join(f"`{s}://`" for s in supported)
        super().__init__(f"Unknown URL scheme in `{url}`, only {schemes} are supported")


class PlanConflict(ActionErrorKind):
    """Two planned children would mutate the same target."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class MultipleChildren(ActionErrorKind):
    """Two or more sibling actions failed in the same call."""

    def __init__(self, errors: list[ActionError]) -> None:
        self.errors = list(errors)
        lines = "\n".join(f"* {err}" for err in self.errors)
        super().__init__(f"Multiple child errors:\n{lines}")


class ChildFailed(ActionErrorKind):
    """A child action failed; wraps its error for attribution."""

    def __init__(self, error: ActionError) -> None:
        self.error = error
        super().__init__(str(error))


class Custom(ActionErrorKind):
    """An operation-specific error the engine only transports."""

    def __init__(self, source: BaseException) -> None:
        self.source = source
        super().__init__(str(source) or type(source).__name__)


class ActionError(Exception):
    """An :class:`ActionErrorKind` attributed to the action that raised it.

    Attributes:
        tag: Tag of the action that failed.
        kind: Structured reason for the failure.
    """

    def __init__(self, tag: str, kind: ActionErrorKind) -> None:
        self.tag = tag
        self.kind = kind
        super().__init__(f"Action `{tag}` errored: {kind}")

    def leaves(self) -> list[ActionError]:
        """Flatten child wrappers and aggregates into the underlying errors.

        Returns:
            The errors that carry a non-structural kind, in tree order.
        """
        if isinstance(self.kind, ChildFailed):
            return self.kind.error.leaves()
        if isinstance(self.kind, MultipleChildren):
            found: list[ActionError] = []
            for err in self.kind.errors:
                found.extend(err.leaves())
            return found
        return [self]


def collect_errors(tag: str, errors: list[ActionError]) -> ActionError | None:
    """Fold sibling errors into at most one error.

    Args:
        tag: Tag of the composite that ran the siblings.
        errors: Errors in the order they were collected.

    Returns:
        None when nothing failed, the single error unchanged when exactly
        one sibling failed, otherwise an aggregate error for ``tag``.
    """
    if not errors:
        return None
    if len(errors) == 1:
        return errors[0]
    return ActionError(tag, MultipleChildren(errors))
