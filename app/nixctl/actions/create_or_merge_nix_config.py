"""Create ``nix.conf`` or merge settings into an existing one.

``nix.conf`` is a list of ``name = value`` lines. Comments start with ``#``
and ``include``/``!include`` lines pull in other files; both are kept as is.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.errors import ActionErrorKind, AlreadyExists, MalformedState
from nixctl.action.stateful import StatefulAction
from nixctl.utils.files import apply_ownership, read_text, remove_file, write_text

logger = logging.getLogger(__name__)

HEADER = "# Generated by nixctl. See `man nix.conf` for details.\n"

# Space separated list settings whose values are unioned instead of replaced
MERGEABLE_SETTINGS = frozenset({"experimental-features", "extra-experimental-features"})


def _line_setting(line: str) -> tuple[str, str] | None:
    """Split a config line into ``(name, value)``, None for non-settings."""
    stripped = line.split("#", 1)[0].strip()
    if not stripped or stripped.startswith(("include ", "!include ")):
        return None
    if "=" not in stripped:
        msg = f"Malformed nix.conf line: {line.strip()!r}"
        raise ValueError(msg)
    name, value = stripped.split("=", 1)
    return name.strip(), value.strip()


def parse_nix_config(text: str) -> dict[str, str]:
    """Parse ``nix.conf`` content into an ordered mapping.

    Later definitions of the same setting win, as in Nix itself.

    Raises:
        ValueError: If a non-comment line has no ``=``.
    """
    settings: dict[str, str] = {}
    for line in text.splitlines():
        setting = _line_setting(line)
        if setting is not None:
            settings[setting[0]] = setting[1]
    return settings


@register_action
@dataclass
class CreateOrMergeNixConfig(Action):
    """Write the pending settings into ``nix.conf``.

    Attributes:
        path: Location of ``nix.conf``.
        pending: Settings this action adds. For mergeable list settings the
            value holds only the items this action adds.
        creates_file: Whether the file did not exist at plan time.
    """

    action_tag = "create_or_merge_nix_config"

    path: Path
    pending: dict[str, str] = field(default_factory=dict)
    creates_file: bool = False

    @classmethod
    async def plan(cls, path: Path | str, settings: dict[str, str]) -> StatefulAction[Self]:
        """Plan merging ``settings`` into the file at ``path``.

        Settings already present with the same value are dropped; if nothing
        is left the action is completed.

        Raises:
            ActionError: If the existing file cannot be parsed, or sets a
                planned setting to a different value.
        """
        target = Path(path)
        if target.is_dir():
            raise cls.error(MalformedState("Path is a directory, expected a file", target))

        if not target.exists():
            return StatefulAction.uncompleted(cls(target, dict(settings), creates_file=True))

        try:
            text = await asyncio.to_thread(read_text, target)
            existing = parse_nix_config(text)
        except ActionErrorKind as e:
            raise cls.error(e) from e
        except ValueError as e:
            raise cls.error(MalformedState(str(e), target)) from e

        pending: dict[str, str] = {}
        for name, value in settings.items():
            if name not in existing:
                pending[name] = value
            elif name in MERGEABLE_SETTINGS:
                have = existing[name].split()
                missing = [item for item in value.split() if item not in have]
                if missing:
                    pending[name] = " ".join(missing)
            elif existing[name] != value:
                detail = f"`{name}` is set to `{existing[name]}`, expected `{value}`"
                raise cls.error(AlreadyExists(target, detail))

        this = cls(target, pending, creates_file=False)
        if not pending:
            logger.debug("Merging Nix configuration into `%s` already complete", target)
            return StatefulAction.completed(this)
        return StatefulAction.uncompleted(this)

    def tracing_synopsis(self) -> str:
        verb = "Create" if self.creates_file else "Merge settings into"
        return f"{verb} Nix configuration `{self.path}`"

    def tracing_context(self) -> dict[str, str]:
        return {"path": str(self.path), "settings": ", ".join(self.pending)}

    def execute_description(self) -> list[ActionDescription]:
        explanation = tuple(f"Set `{name} = {value}`" for name, value in self.pending.items())
        return [ActionDescription(self.tracing_synopsis(), explanation)]

    def revert_description(self) -> list[ActionDescription]:
        return [ActionDescription(f"Remove the settings nixctl added to `{self.path}`")]

    async def execute(self) -> None:
        await asyncio.to_thread(self._merge)

    def _merge(self) -> None:
        text = read_text(self.path) if self.path.exists() else HEADER
        remaining = dict(self.pending)
        lines: list[str] = []
        for line in text.splitlines():
            setting = _line_setting(line)
            if setting is not None and setting[0] in remaining and setting[0] in MERGEABLE_SETTINGS:
                name, value = setting
                merged = " ".join(part for part in (value, remaining.pop(name)) if part)
                lines.append(f"{name} = {merged}")
            else:
                lines.append(line)
        lines.extend(f"{name} = {value}" for name, value in remaining.items())

        write_text(self.path, "\n".join(lines) + "\n")
        if self.creates_file:
            apply_ownership(self.path, None, None, 0o644)

    async def revert(self) -> None:
        await asyncio.to_thread(self._unmerge)

    def _unmerge(self) -> None:
        if not self.path.exists():
            return
        lines: list[str] = []
        for line in read_text(self.path).splitlines():
            setting = _line_setting(line)
            if setting is None or setting[0] not in self.pending:
                lines.append(line)
                continue
            name, value = setting
            ours = self.pending[name]
            if name in MERGEABLE_SETTINGS:
                kept = [item for item in value.split() if item not in ours.split()]
                if kept:
                    lines.append(f"{name} = {' '.join(kept)}")
            elif value != ours:
                lines.append(line)

        if self.creates_file and all(_line_setting(line) is None for line in lines):
            remove_file(self.path)
            return
        write_text(self.path, "\n".join(lines) + "\n")

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "pending": dict(self.pending),
            "creates_file": self.creates_file,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            path=Path(data["path"]),
            pending=dict(data.get("pending", {})),
            creates_file=data.get("creates_file", False),
        )
