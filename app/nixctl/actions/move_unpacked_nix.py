"""Move an unpacked Nix release into the store."""

import asyncio
import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.errors import IoFailure, MalformedState
from nixctl.action.stateful import StatefulAction
from nixctl.utils.files import apply_ownership

logger = logging.getLogger(__name__)

_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


@register_action
@dataclass
class MoveUnpackedNix(Action):
    """Move the store paths of an unpacked release into ``dest/store``.

    Each moved path is made read-only and a back-link is left at its old
    location, so the scratch directory still shows which paths came from
    this release. Revert is a deliberate no-op: store paths may already be
    referenced by profiles, and deleting them is left to garbage collection.

    Attributes:
        unpacked_path: Scratch directory holding the ``nix-*`` release root.
        dest: Root of the Nix installation, usually ``/nix``.
        group: Group to own ``dest/store`` when it is created.
    """

    action_tag = "move_unpacked_nix"

    unpacked_path: Path
    dest: Path
    group: str | None = None

    @classmethod
    async def plan(
        cls,
        unpacked_path: Path | str,
        dest: Path | str,
        group: str | None = None,
    ) -> StatefulAction[Self]:
        """Plan the move.

        The scratch directory is not inspected, since the fetch action that
        runs first creates it.
        """
        return StatefulAction.uncompleted(cls(Path(unpacked_path), Path(dest), group))

    def tracing_synopsis(self) -> str:
        return f"Move the downloaded Nix into `{self.dest}`"

    def tracing_context(self) -> dict[str, str]:
        return {"src": str(self.unpacked_path), "dest": str(self.dest)}

    def execute_description(self) -> list[ActionDescription]:
        return [
            ActionDescription(
                self.tracing_synopsis(),
                (
                    f"Nix is being downloaded to `{self.unpacked_path}` "
                    f"and should be in `{self.dest}`",
                ),
            )
        ]

    def revert_description(self) -> list[ActionDescription]:
        return []

    async def execute(self) -> None:
        await asyncio.to_thread(self._move)

    def _find_release_root(self) -> Path:
        try:
            found = sorted(p for p in self.unpacked_path.glob("nix-*") if p.is_dir())
        except OSError as e:
            raise IoFailure("read directory", self.unpacked_path, e) from e
        if len(found) != 1:
            msg = f"Expected exactly one `nix-*` directory in the unpacked tarball, found {len(found)}"
            raise MalformedState(msg, self.unpacked_path)
        return found[0]

    def _move(self) -> None:
        src_store = self._find_release_root() / "store"
        try:
            entries = sorted(src_store.iterdir())
        except OSError as e:
            raise IoFailure("read directory", src_store, e) from e

        dest_store = self.dest / "store"
        if dest_store.exists():
            if not dest_store.is_dir():
                raise MalformedState("Path was not a directory", dest_store)
        else:
            try:
                dest_store.mkdir(parents=True)
            except OSError as e:
                raise IoFailure("create directory", dest_store, e) from e
            apply_ownership(dest_store, None, self.group, None)

        for entry in entries:
            if entry.is_symlink():
                # back-link left by an earlier, interrupted run
                continue
            entry_dest = dest_store / entry.name
            if entry_dest.exists() or entry_dest.is_symlink():
                logger.debug("Removing already existing package `%s`", entry_dest)
                self._remove_existing(entry_dest)
            logger.debug("Renaming `%s` to `%s`", entry, entry_dest)
            try:
                os.rename(entry, entry_dest)
            except OSError as e:
                raise IoFailure(f"rename `{entry}` to", entry_dest, e) from e

            self._make_read_only(entry_dest)

            try:
                os.symlink(entry_dest, entry)
            except OSError as e:
                raise IoFailure(f"symlink `{entry_dest}` at", entry, e) from e

    @staticmethod
    def _remove_existing(path: Path) -> None:
        try:
            if path.is_dir() and not path.is_symlink():
                for root, dirs, _files in os.walk(path):
                    for name in dirs:
                        child = Path(root) / name
                        if not child.is_symlink():
                            child.chmod(child.stat().st_mode | stat.S_IWUSR)
                path.chmod(path.stat().st_mode | stat.S_IWUSR)
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            raise IoFailure("remove", path, e) from e

    @staticmethod
    def _make_read_only(path: Path) -> None:
        targets = [path]
        if path.is_dir() and not path.is_symlink():
            for root, dirs, files in os.walk(path):
                targets.extend(Path(root) / name for name in dirs + files)
        for target in targets:
            if target.is_symlink():
                continue
            try:
                mode = target.stat().st_mode
                os.chmod(target, stat.S_IMODE(mode) & ~_WRITE_BITS)
            except OSError as e:
                raise IoFailure("set permissions on", target, e) from e

    async def revert(self) -> None:
        pass

    def to_dict(self) -> dict[str, Any]:
        return {
            "unpacked_path": str(self.unpacked_path),
            "dest": str(self.dest),
            "group": self.group,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            unpacked_path=Path(data["unpacked_path"]),
            dest=Path(data["dest"]),
            group=data.get("group"),
        )
