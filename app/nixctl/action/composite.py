"""Helpers for actions that own child actions.

Children with a dependency between them run one after another; independent
children are fanned out onto separate asyncio tasks. A failing sibling never
cancels the others: every task is joined before the errors are folded with
:func:`~nixctl.action.errors.collect_errors`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Iterable, Sequence
from pathlib import Path
from typing import Any

from nixctl.action.errors import ActionError, PlanConflict, collect_errors
from nixctl.action.stateful import StatefulAction

logger = logging.getLogger(__name__)


async def join_all(coros: Sequence[Coroutine[Any, Any, None]]) -> list[ActionError]:
    """Run coroutines as tasks and join every one of them.

    If the calling task is cancelled while children are running, the
    children are left to finish before the cancellation propagates.

    Returns:
        Errors raised by the coroutines, in submission order.
    """
    if not coros:
        return []

    tasks = [asyncio.create_task(coro) for coro in coros]
    gathered = asyncio.gather(*tasks, return_exceptions=True)
    try:
        results = await asyncio.shield(gathered)
    except asyncio.CancelledError:
        logger.warning("Cancelled with %d child action(s) running, waiting for them", len(tasks))
        await asyncio.wait(tasks)
        raise

    errors: list[ActionError] = []
    for result in results:
        if isinstance(result, ActionError):
            errors.append(result)
        elif isinstance(result, BaseException):
            # try_execute/try_revert only raise ActionError
            raise result
    return errors


async def revert_each(children: Sequence[StatefulAction[Any]]) -> list[ActionError]:
    """Revert children last-executed-first, attempting every one.

    Args:
        children: Children in execute order.

    Returns:
        Errors raised by the reverts, in the order they were attempted.
    """
    errors: list[ActionError] = []
    for child in reversed(children):
        try:
            await child.try_revert()
        except ActionError as e:
            errors.append(e)
    return errors


def raise_collected(tag: str, errors: list[ActionError]) -> None:
    """Raise the folded form of ``errors``, if any.

    Raises:
        ActionError: The single failure, or an aggregate for ``tag``.
    """
    error = collect_errors(tag, errors)
    if error is not None:
        raise error


async def execute_concurrently(tag: str, children: Sequence[StatefulAction[Any]]) -> None:
    """Execute independent children concurrently.

    Args:
        tag: Tag of the owning composite, used for the aggregate error.
        children: Children with no ordering constraints between them.

    Raises:
        ActionError: The single failure, or an aggregate of all failures.
    """
    raise_collected(tag, await join_all([child.try_execute() for child in children]))


async def revert_concurrently(tag: str, children: Sequence[StatefulAction[Any]]) -> None:
    """Revert independent children concurrently.

    Args:
        tag: Tag of the owning composite, used for the aggregate error.
        children: Children that were executed concurrently.

    Raises:
        ActionError: The single failure, or an aggregate of all failures.
    """
    raise_collected(tag, await join_all([child.try_revert() for child in children]))


async def execute_sequentially(children: Iterable[StatefulAction[Any]]) -> None:
    """Execute dependent children in order, stopping at the first failure.

    Raises:
        ActionError: The first child failure.
    """
    for child in children:
        await child.try_execute()


async def revert_sequentially(tag: str, children: Sequence[StatefulAction[Any]]) -> None:
    """Revert dependent children last-executed-first.

    Every child is attempted even if an earlier revert failed.

    Args:
        tag: Tag of the owning composite, used for the aggregate error.
        children: Children in execute order.

    Raises:
        ActionError: The single failure, or an aggregate of all failures.
    """
    raise_collected(tag, await revert_each(children))


def ensure_distinct_targets(targets: Iterable[Path | str]) -> None:
    """Reject plans where two children would mutate the same path.

    Raises:
        PlanConflict: If a path appears more than once.
    """
    seen: set[Path] = set()
    for target in targets:
        path = Path(target)
        if path in seen:
            msg = f"More than one planned action targets `{path}`"
            raise PlanConflict(msg)
        seen.add(path)


def all_completed(children: Iterable[StatefulAction[Any]]) -> bool:
    """Check if every child is already completed (vacuously true)."""
    return all(child.is_completed for child in children)
