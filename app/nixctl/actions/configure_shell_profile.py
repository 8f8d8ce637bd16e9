"""Make shell profiles source the Nix daemon environment."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.composite import (
    all_completed,
    ensure_distinct_targets,
    execute_concurrently,
    execute_sequentially,
    join_all,
    raise_collected,
    revert_each,
)
from nixctl.action.errors import ActionErrorKind
from nixctl.action.stateful import StatefulAction
from nixctl.actions.create_directory import CreateDirectory
from nixctl.actions.create_or_insert_into_file import CreateOrInsertIntoFile, Position
from nixctl.core.context import HostContext

logger = logging.getLogger(__name__)

PROFILE_NIX_FILE_SHELL = "/nix/var/nix/profiles/default/etc/profile.d/nix-daemon.sh"

SHELL_SNIPPET = (
    "\n"
    "# Nix\n"
    f"if [ -e '{PROFILE_NIX_FILE_SHELL}' ]; then\n"
    f"    . '{PROFILE_NIX_FILE_SHELL}'\n"
    "fi\n"
    "# End Nix\n"
    "\n"
)


@register_action
@dataclass
class ConfigureShellProfile(Action):
    """Insert the Nix sourcing snippet into every configured shell profile.

    Missing parent directories are created first, one after another. The
    profile edits target distinct files and run concurrently.

    Attributes:
        create_directories: Parent directories to create, outermost first.
        create_or_insert_into_files: One snippet insert per profile.
    """

    action_tag = "configure_shell_profile"

    create_directories: list[StatefulAction[CreateDirectory]] = field(default_factory=list)
    create_or_insert_into_files: list[StatefulAction[CreateOrInsertIntoFile]] = field(
        default_factory=list
    )

    @classmethod
    async def plan(cls, profiles: list[Path], host: HostContext) -> StatefulAction[Self]:
        """Plan the profile edits.

        A leading ``~`` in a profile is the home of ``host``. Profiles that do
        not exist yet are created. Profiles that are symlinks are skipped,
        since tools like home-manager manage them.

        Args:
            profiles: Shell profile files to edit.
            host: Identity that should own created files and directories.

        Raises:
            ActionError: If two profiles resolve to the same file, or a
                profile cannot be edited.
        """
        targets: list[Path] = []
        for profile in (host.expand_home(Path(p)) for p in profiles):
            if profile.is_symlink():
                logger.info("Skipping symlinked shell profile `%s`", profile)
            else:
                targets.append(profile)
        try:
            ensure_distinct_targets(targets)
        except ActionErrorKind as e:
            raise cls.error(e) from e

        missing_dirs: list[Path] = []
        for target in targets:
            for parent in reversed(target.parents):
                if not parent.exists() and parent not in missing_dirs:
                    missing_dirs.append(parent)

        create_directories = [
            await CreateDirectory.plan(directory, host.username, host.group, 0o755)
            for directory in missing_dirs
        ]
        create_or_insert_into_files = [
            await CreateOrInsertIntoFile.plan(
                target, host.username, host.group, 0o644, SHELL_SNIPPET, Position.BEGINNING
            )
            for target in targets
        ]

        this = cls(create_directories, create_or_insert_into_files)
        if all_completed(this.children):
            return StatefulAction.completed(this)
        return StatefulAction.uncompleted(this)

    @property
    def children(self) -> list[StatefulAction[Any]]:
        return [*self.create_directories, *self.create_or_insert_into_files]

    def tracing_synopsis(self) -> str:
        return "Configure the shell profiles"

    def tracing_context(self) -> dict[str, str]:
        return {
            "profiles": ", ".join(str(child.action.path) for child in self.create_or_insert_into_files)
        }

    def execute_description(self) -> list[ActionDescription]:
        explanation = ["Update shell profiles to import Nix"]
        explanation.extend(
            description.description
            for child in self.children
            for description in child.describe_execute()
        )
        return [ActionDescription(self.tracing_synopsis(), tuple(explanation))]

    def revert_description(self) -> list[ActionDescription]:
        explanation = [
            description.description
            for child in [*self.create_or_insert_into_files, *reversed(self.create_directories)]
            for description in child.describe_revert()
        ]
        return [ActionDescription("Unconfigure the shell profiles", tuple(explanation))]

    async def execute(self) -> None:
        await execute_sequentially(self.create_directories)
        await execute_concurrently(self.action_tag, self.create_or_insert_into_files)

    async def revert(self) -> None:
        errors = await join_all([child.try_revert() for child in self.create_or_insert_into_files])
        errors.extend(await revert_each(self.create_directories))
        raise_collected(self.action_tag, errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "create_directories": [child.to_dict() for child in self.create_directories],
            "create_or_insert_into_files": [
                child.to_dict() for child in self.create_or_insert_into_files
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            create_directories=[
                StatefulAction.from_dict(child) for child in data.get("create_directories", [])
            ],
            create_or_insert_into_files=[
                StatefulAction.from_dict(child)
                for child in data.get("create_or_insert_into_files", [])
            ],
        )
