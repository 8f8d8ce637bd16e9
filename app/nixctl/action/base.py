"""Abstract base class for actions.

This module defines the Action interface that every system mutation
implements, the completion state tracked for each planned action, and the
registry used to rebuild actions from a serialized plan.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Self, TypeVar

from nixctl.action.errors import ActionError, ActionErrorKind


class ActionState(str, Enum):
    """Completion state of a planned action.

    Attributes:
        UNCOMPLETED: The action has not run, or has been reverted.
        COMPLETED: The action has run successfully, or the system already
            satisfied it at plan time.
    """

    UNCOMPLETED = "Uncompleted"
    COMPLETED = "Completed"


@dataclass(frozen=True, slots=True)
class ActionDescription:
    """Human-readable explanation of what an action does.

    Attributes:
        description: One-line summary.
        explanation: Additional lines shown in explain mode.
    """

    description: str
    explanation: tuple[str, ...] = ()


class UnknownActionTagError(ValueError):
    """Raised when a serialized action names a tag nobody registered."""


class Action(ABC):
    """Abstract base class for all actions.

    An action owns only plain data (paths, URLs, flags and any planned child
    actions). Planning is done by a ``plan`` classmethod on each concrete
    action, which returns a ``StatefulAction`` wrapping the new instance.

    Attributes:
        action_tag: Unique tag used for diagnostics and serialization.
    """

    action_tag: ClassVar[str]

    @abstractmethod
    def tracing_synopsis(self) -> str:
        """Return a one-line synopsis of the action."""

    def tracing_context(self) -> dict[str, str]:
        """Return structured context attached to log records."""
        return {}

    @property
    def children(self) -> list[Any]:
        """Planned child ``StatefulAction`` objects, in execute order.

        Leaf actions have none. Composites override this so a partially
        applied composite can still be reverted.
        """
        return []

    @abstractmethod
    def execute_description(self) -> list[ActionDescription]:
        """Describe the effects of executing the action."""

    @abstractmethod
    def revert_description(self) -> list[ActionDescription]:
        """Describe the effects of reverting the action.

        An empty list documents a deliberate no-op revert.
        """

    @abstractmethod
    async def execute(self) -> None:
        """Perform the mutation.

        Raises:
            ActionErrorKind: If the mutation could not be completed.
            ActionError: If a child action failed.
        """

    @abstractmethod
    async def revert(self) -> None:
        """Undo the mutation on a best-effort basis.

        Raises:
            ActionErrorKind: If the compensation could not be completed.
            ActionError: If a child action failed.
        """

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialize the action's own data (without the tag)."""

    @classmethod
    @abstractmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Rebuild the action from :meth:`to_dict` output."""

    @classmethod
    def error(cls, kind: ActionErrorKind) -> ActionError:
        """Attribute ``kind`` to this action type."""
        return ActionError(cls.action_tag, kind)


A = TypeVar("A", bound=type[Action])

ACTION_REGISTRY: dict[str, type[Action]] = {}


def register_action(cls: A) -> A:
    """Class decorator registering an action under its tag.

    Raises:
        ValueError: If another class already claimed the tag.
    """
    existing = ACTION_REGISTRY.get(cls.action_tag)
    if existing is not None and existing is not cls:
        msg = f"Action tag `{cls.action_tag}` is already registered by {existing.__name__}"
        raise ValueError(msg)
    ACTION_REGISTRY[cls.action_tag] = cls
    return cls


def action_from_dict(data: dict[str, Any]) -> Action:
    """Rebuild an action from its serialized form.

    Args:
        data: Mapping with an ``action_name`` discriminator plus the fields
            produced by the action's ``to_dict``.

    Returns:
        The concrete action instance.

    Raises:
        UnknownActionTagError: If the tag is not registered.
        KeyError: If required fields are missing.
    """
    payload = dict(data)
    tag = payload.pop("action_name")
    try:
        cls = ACTION_REGISTRY[tag]
    except KeyError:
        msg = f"Unknown action tag `{tag}`"
        raise UnknownActionTagError(msg) from None
    return cls.from_dict(payload)
