"""Create a directory with a given owner and mode."""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.errors import IoFailure, MalformedState
from nixctl.action.stateful import StatefulAction
from nixctl.utils.files import apply_ownership

logger = logging.getLogger(__name__)


@register_action
@dataclass
class CreateDirectory(Action):
    """Create a directory.

    Revert removes the directory only if it is empty, unless
    ``force_prune_on_revert`` is set, in which case it is removed with its
    contents.

    Attributes:
        path: Directory to create.
        user: Owner to set, or None to keep the default.
        group: Group to set, or None to keep the default.
        mode: Permission bits to set, or None to keep the default.
        force_prune_on_revert: Remove a non-empty directory on revert.
    """

    action_tag = "create_directory"

    path: Path
    user: str | None = None
    group: str | None = None
    mode: int | None = None
    force_prune_on_revert: bool = False

    @classmethod
    async def plan(
        cls,
        path: Path | str,
        user: str | None = None,
        group: str | None = None,
        mode: int | None = None,
        force_prune_on_revert: bool = False,
    ) -> StatefulAction[Self]:
        """Plan creating ``path``; already-present directories are completed.

        Raises:
            ActionError: If ``path`` exists but is not a directory.
        """
        this = cls(Path(path), user, group, mode, force_prune_on_revert)
        if this.path.exists():
            if not this.path.is_dir():
                raise cls.error(MalformedState("Path exists and is not a directory", this.path))
            logger.debug("Creating directory `%s` already complete", this.path)
            return StatefulAction.completed(this)
        return StatefulAction.uncompleted(this)

    def tracing_synopsis(self) -> str:
        return f"Create directory `{self.path}`"

    def tracing_context(self) -> dict[str, str]:
        context = {"path": str(self.path)}
        if self.user is not None:
            context["user"] = self.user
        if self.group is not None:
            context["group"] = self.group
        if self.mode is not None:
            context["mode"] = oct(self.mode)
        return context

    def execute_description(self) -> list[ActionDescription]:
        return [ActionDescription(self.tracing_synopsis())]

    def revert_description(self) -> list[ActionDescription]:
        qualifier = "with its contents" if self.force_prune_on_revert else "if it is empty"
        return [ActionDescription(f"Remove the directory `{self.path}` {qualifier}")]

    async def execute(self) -> None:
        await asyncio.to_thread(self._create)

    def _create(self) -> None:
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailure("create directory", self.path, e) from e
        apply_ownership(self.path, self.user, self.group, self.mode)

    async def revert(self) -> None:
        await asyncio.to_thread(self._remove)

    def _remove(self) -> None:
        if not self.path.exists():
            return
        try:
            is_empty = not any(self.path.iterdir())
        except OSError as e:
            raise IoFailure("read directory", self.path, e) from e

        try:
            if is_empty:
                self.path.rmdir()
            elif self.force_prune_on_revert:
                shutil.rmtree(self.path)
            else:
                logger.warning("Not removing directory `%s` since it is not empty", self.path)
        except OSError as e:
            raise IoFailure("remove directory", self.path, e) from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "user": self.user,
            "group": self.group,
            "mode": self.mode,
            "force_prune_on_revert": self.force_prune_on_revert,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            path=Path(data["path"]),
            user=data.get("user"),
            group=data.get("group"),
            mode=data.get("mode"),
            force_prune_on_revert=data.get("force_prune_on_revert", False),
        )
