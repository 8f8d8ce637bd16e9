"""Action execution engine.

This package exports the action contract, the stateful wrapper, the error
taxonomy and the helpers composite actions use to run their children.
"""

from nixctl.action.base import (
    ACTION_REGISTRY,
    Action,
    ActionDescription,
    ActionState,
    UnknownActionTagError,
    action_from_dict,
    register_action,
)
from nixctl.action.composite import (
    all_completed,
    ensure_distinct_targets,
    execute_concurrently,
    execute_sequentially,
    join_all,
    raise_collected,
    revert_concurrently,
    revert_each,
    revert_sequentially,
)
from nixctl.action.errors import (
    ActionError,
    ActionErrorKind,
    AlreadyExists,
    ChildFailed,
    CommandFailure,
    CommandSpawnFailure,
    Custom,
    IoFailure,
    MalformedState,
    MultipleChildren,
    PlanConflict,
    UnknownUrlScheme,
    collect_errors,
)
from nixctl.action.stateful import StatefulAction

__all__ = [
    "ACTION_REGISTRY",
    "Action",
    "ActionDescription",
    "ActionError",
    "ActionErrorKind",
    "ActionState",
    "AlreadyExists",
    "ChildFailed",
    "CommandFailure",
    "CommandSpawnFailure",
    "Custom",
    "IoFailure",
    "MalformedState",
    "MultipleChildren",
    "PlanConflict",
    "StatefulAction",
    "UnknownActionTagError",
    "UnknownUrlScheme",
    "action_from_dict",
    "all_completed",
    "collect_errors",
    "ensure_distinct_targets",
    "execute_concurrently",
    "execute_sequentially",
    "join_all",
    "raise_collected",
    "register_action",
    "revert_concurrently",
    "revert_each",
    "revert_sequentially",
]
