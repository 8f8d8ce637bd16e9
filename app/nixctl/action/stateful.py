"""Stateful wrapper that makes actions idempotent.

A :class:`StatefulAction` pairs an action with its :class:`ActionState` and
only runs the action's body when the state says it is needed.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from nixctl.action.base import Action, ActionDescription, ActionState, action_from_dict
from nixctl.action.errors import ActionError, ActionErrorKind, ChildFailed, Custom

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Action)


class StatefulAction(Generic[T]):
    """An action together with its completion state.

    Attributes:
        action: The wrapped action.
        state: Whether the action is currently applied.
    """

    __slots__ = ("action", "state")

    def __init__(self, action: T, state: ActionState = ActionState.UNCOMPLETED) -> None:
        self.action = action
        self.state = state

    @classmethod
    def completed(cls, action: T) -> StatefulAction[T]:
        """Wrap an action the system already satisfies."""
        return cls(action, ActionState.COMPLETED)

    @classmethod
    def uncompleted(cls, action: T) -> StatefulAction[T]:
        """Wrap an action that still has to run."""
        return cls(action, ActionState.UNCOMPLETED)

    def __repr__(self) -> str:
        return f"StatefulAction({self.action!r}, state={self.state.value})"

    @property
    def tag(self) -> str:
        """Tag of the wrapped action."""
        return self.action.action_tag

    @property
    def is_completed(self) -> bool:
        """Check if the action is currently applied."""
        return self.state == ActionState.COMPLETED

    @property
    def is_partially_applied(self) -> bool:
        """Check if some descendant is applied while this action is not.

        This happens when a composite failed after some children succeeded.
        """
        return any(child.is_completed or child.is_partially_applied for child in self.action.children)

    def _needs_revert(self) -> bool:
        return self.state == ActionState.COMPLETED or self.is_partially_applied

    def tracing_synopsis(self) -> str:
        """One-line synopsis of the wrapped action."""
        return self.action.tracing_synopsis()

    def describe_execute(self) -> list[ActionDescription]:
        """Describe what :meth:`try_execute` would do; empty if nothing."""
        if self.state == ActionState.COMPLETED:
            return []
        return self.action.execute_description()

    def describe_revert(self) -> list[ActionDescription]:
        """Describe what :meth:`try_revert` would do; empty if nothing."""
        if not self._needs_revert():
            return []
        return self.action.revert_description()

    async def try_execute(self) -> None:
        """Execute the action unless it is already completed.

        Raises:
            ActionError: If the action failed. The state is left unchanged.
        """
        context = self.action.tracing_context()
        if self.state == ActionState.COMPLETED:
            logger.debug("Completed: (Already done) %s %s", self.tracing_synopsis(), context)
            return

        logger.debug("Executing: %s %s", self.tracing_synopsis(), context)
        try:
            await self.action.execute()
        except Exception as e:
            raise self._attribute(e) from e
        self.state = ActionState.COMPLETED
        logger.debug("Completed: %s", self.tracing_synopsis())

    async def try_revert(self) -> None:
        """Revert the action unless neither it nor any descendant is applied.

        Raises:
            ActionError: If the revert failed. The state is left unchanged.
        """
        context = self.action.tracing_context()
        if not self._needs_revert():
            logger.debug("Reverted: (Already done) %s %s", self.tracing_synopsis(), context)
            return

        logger.debug("Reverting: %s %s", self.tracing_synopsis(), context)
        try:
            await self.action.revert()
        except Exception as e:
            raise self._attribute(e) from e
        self.state = ActionState.UNCOMPLETED
        logger.debug("Reverted: %s", self.tracing_synopsis())

    def _attribute(self, error: Exception) -> ActionError:
        """Attach this action's tag to an error raised by its body."""
        if isinstance(error, ActionError):
            if error.tag == self.tag:
                return error
            return ActionError(self.tag, ChildFailed(error))
        if isinstance(error, ActionErrorKind):
            return ActionError(self.tag, error)
        return ActionError(self.tag, Custom(error))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the action and its state."""
        return {
            "action": {"action_name": self.tag, **self.action.to_dict()},
            "state": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatefulAction[Any]:
        """Rebuild a wrapper from :meth:`to_dict` output.

        Raises:
            UnknownActionTagError: If the action tag is not registered.
            KeyError: If required fields are missing.
            ValueError: If the state is invalid.
        """
        return cls(action_from_dict(data["action"]), ActionState(data["state"]))
