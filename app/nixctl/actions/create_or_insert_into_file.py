"""Create a file or insert a snippet into an existing one."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Self

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.errors import ActionErrorKind, MalformedState
from nixctl.action.stateful import StatefulAction
from nixctl.utils.files import apply_ownership, read_text, remove_file, write_text

logger = logging.getLogger(__name__)


class Position(str, Enum):
    """Where the snippet goes in an existing file."""

    BEGINNING = "beginning"
    END = "end"


@register_action
@dataclass
class CreateOrInsertIntoFile(Action):
    """Insert ``buf`` into ``path``, creating the file if needed.

    Revert removes the inserted snippet, and deletes the file when it was
    created by this action and nothing else is left in it.

    Attributes:
        path: File to edit.
        user: Owner to set on a newly created file.
        group: Group to set on a newly created file.
        mode: Permission bits to set on a newly created file.
        buf: Snippet to insert.
        position: Insert at the beginning or end of existing content.
        creates_file: Whether the file did not exist at plan time.
    """

    action_tag = "create_or_insert_into_file"

    path: Path
    user: str | None
    group: str | None
    mode: int | None
    buf: str
    position: Position = Position.END
    creates_file: bool = False

    @classmethod
    async def plan(
        cls,
        path: Path | str,
        user: str | None,
        group: str | None,
        mode: int | None,
        buf: str,
        position: Position = Position.END,
    ) -> StatefulAction[Self]:
        """Plan inserting ``buf``; a file already containing it is completed.

        Raises:
            ActionError: If ``path`` is a symlink or a directory, or cannot be
                read as UTF-8 text.
        """
        target = Path(path)
        if target.is_symlink():
            raise cls.error(MalformedState("Refusing to edit a symlinked file", target))
        if target.is_dir():
            raise cls.error(MalformedState("Path is a directory, expected a file", target))

        this = cls(target, user, group, mode, buf, position, creates_file=not target.exists())
        if not this.creates_file:
            try:
                discovered = await asyncio.to_thread(read_text, target)
            except ActionErrorKind as e:
                raise cls.error(e) from e
            if buf in discovered:
                logger.debug("Inserting into `%s` already complete", target)
                return StatefulAction.completed(this)
        return StatefulAction.uncompleted(this)

    def tracing_synopsis(self) -> str:
        if self.creates_file:
            return f"Create `{self.path}`"
        return f"Insert Nix setup into `{self.path}`"

    def tracing_context(self) -> dict[str, str]:
        return {"path": str(self.path), "position": self.position.value}

    def execute_description(self) -> list[ActionDescription]:
        return [
            ActionDescription(
                self.tracing_synopsis(),
                (f"Add the following to the {self.position.value} of the file:", self.buf.strip()),
            )
        ]

    def revert_description(self) -> list[ActionDescription]:
        return [ActionDescription(f"Remove the Nix setup from `{self.path}`")]

    async def execute(self) -> None:
        await asyncio.to_thread(self._insert)

    def _insert(self) -> None:
        if not self.path.exists():
            write_text(self.path, self.buf)
            apply_ownership(self.path, self.user, self.group, self.mode)
            return

        existing = read_text(self.path)
        if self.buf in existing:
            return
        if self.position == Position.BEGINNING:
            content = self.buf + existing
        else:
            separator = "" if not existing or existing.endswith("\n") else "\n"
            content = existing + separator + self.buf
        mode = self.path.stat().st_mode & 0o7777
        write_text(self.path, content)
        apply_ownership(self.path, None, None, mode)

    async def revert(self) -> None:
        await asyncio.to_thread(self._remove)

    def _remove(self) -> None:
        if not self.path.exists():
            return
        existing = read_text(self.path)
        if self.buf not in existing:
            logger.debug("`%s` no longer contains the inserted snippet", self.path)
            return
        remaining = existing.replace(self.buf, "", 1)
        if self.creates_file and not remaining.strip():
            remove_file(self.path)
            return
        mode = self.path.stat().st_mode & 0o7777
        write_text(self.path, remaining)
        apply_ownership(self.path, None, None, mode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "user": self.user,
            "group": self.group,
            "mode": self.mode,
            "buf": self.buf,
            "position": self.position.value,
            "creates_file": self.creates_file,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            path=Path(data["path"]),
            user=data.get("user"),
            group=data.get("group"),
            mode=data.get("mode"),
            buf=data["buf"],
            position=Position(data.get("position", Position.END.value)),
            creates_file=data.get("creates_file", False),
        )
