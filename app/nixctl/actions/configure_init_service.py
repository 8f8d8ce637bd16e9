"""Register the Nix daemon with the init system.

With systemd the goal state is the socket unit enabled (and active when the
daemon is started) and the service unit stopped, since it is socket
activated.
"""

import asyncio
import logging
import os
from collections.abc import Awaitable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.errors import (
    ActionError,
    ActionErrorKind,
    AlreadyExists,
    Custom,
    IoFailure,
    collect_errors,
)
from nixctl.action.stateful import StatefulAction
from nixctl.core.settings import InitSystem
from nixctl.utils.files import remove_file
from nixctl.utils.shell import command_exists, execute_command, run_command

logger = logging.getLogger(__name__)

# Present when the machine was booted with systemd, see sd_booted(3)
SYSTEMD_BOOTED_MARKER = Path("/run/systemd/system")

DEFAULT_PROFILE = Path("/nix/var/nix/profiles/default")
DEFAULT_UNIT_DIR = Path("/etc/systemd/system")
DEFAULT_TMPFILES_DIR = Path("/etc/tmpfiles.d")

SERVICE_NAME = "nix-daemon.service"
SOCKET_NAME = "nix-daemon.socket"
TMPFILES_NAME = "nix-daemon.conf"
TMPFILES_PREFIX = "--prefix=/nix/var/nix"


class SystemdMissingError(Exception):
    """systemd was requested but the machine is not running it."""

    def __init__(self) -> None:
        super().__init__(
            "systemd was not found, pass `init = \"none\"` to skip daemon registration"
        )


class UnsupportedInitSystemError(Exception):
    """The init system cannot be configured on this platform."""

    def __init__(self, init: InitSystem) -> None:
        self.init = init
        super().__init__(f"Init system `{init.value}` is not supported on this platform")


def check_unit_destination(src: Path, dest: Path) -> None:
    """Make sure ``dest`` is free or already links to ``src``.

    Raises:
        AlreadyExists: If ``dest`` is a file, a symlink elsewhere, or has a
            ``.d`` override directory.
        IoFailure: If an existing symlink cannot be read.
    """
    if dest.is_symlink():
        try:
            link = Path(os.readlink(dest))
        except OSError as e:
            raise IoFailure("read symlink", dest, e) from e
        if link != src:
            raise AlreadyExists(dest, f"it is a symlink to `{link}`, expected `{src}`")
    elif dest.exists():
        raise AlreadyExists(dest, "it is a regular file, expected a symlink")

    override = dest.with_name(dest.name + ".d")
    if override.exists():
        raise AlreadyExists(override, "systemd overrides for the unit are present")


async def is_enabled(unit: str) -> bool:
    result = await run_command(["systemctl", "is-enabled", unit])
    return result.stdout.strip() in ("enabled", "enabled-runtime", "linked")


async def is_active(unit: str) -> bool:
    result = await run_command(["systemctl", "is-active", unit])
    return result.stdout.strip() == "active"


@register_action
@dataclass
class ConfigureInitService(Action):
    """Configure the init system to run the Nix daemon.

    Attributes:
        init: Init system to configure.
        start_daemon: Start the daemon once registered.
        profile: Default Nix profile providing the unit files.
        unit_dir: Directory the systemd units are linked into.
        tmpfiles_dir: Directory the tmpfiles.d config is linked into.
    """

    action_tag = "configure_init_service"

    init: InitSystem
    start_daemon: bool
    profile: Path = DEFAULT_PROFILE
    unit_dir: Path = DEFAULT_UNIT_DIR
    tmpfiles_dir: Path = DEFAULT_TMPFILES_DIR

    @property
    def service_src(self) -> Path:
        return self.profile / "lib/systemd/system" / SERVICE_NAME

    @property
    def socket_src(self) -> Path:
        return self.profile / "lib/systemd/system" / SOCKET_NAME

    @property
    def tmpfiles_src(self) -> Path:
        return self.profile / "lib/tmpfiles.d" / TMPFILES_NAME

    @property
    def service_dest(self) -> Path:
        return self.unit_dir / SERVICE_NAME

    @property
    def socket_dest(self) -> Path:
        return self.unit_dir / SOCKET_NAME

    @property
    def tmpfiles_dest(self) -> Path:
        return self.tmpfiles_dir / TMPFILES_NAME

    @classmethod
    async def plan(
        cls,
        init: InitSystem,
        start_daemon: bool,
        profile: Path = DEFAULT_PROFILE,
        unit_dir: Path = DEFAULT_UNIT_DIR,
        tmpfiles_dir: Path = DEFAULT_TMPFILES_DIR,
    ) -> StatefulAction[Self]:
        """Check the init system is usable and the unit paths are free.

        Raises:
            ActionError: If systemd is missing, the init system is
                unsupported, or a conflicting unit file exists.
        """
        this = cls(init, start_daemon, Path(profile), Path(unit_dir), Path(tmpfiles_dir))
        if init == InitSystem.LAUNCHD:
            raise cls.error(Custom(UnsupportedInitSystemError(init)))
        if init == InitSystem.SYSTEMD:
            if not SYSTEMD_BOOTED_MARKER.exists() or not command_exists("systemctl"):
                raise cls.error(Custom(SystemdMissingError()))
            try:
                check_unit_destination(this.service_src, this.service_dest)
                check_unit_destination(this.socket_src, this.socket_dest)
            except ActionErrorKind as e:
                raise cls.error(e) from e
        return StatefulAction.uncompleted(this)

    def tracing_synopsis(self) -> str:
        if self.init == InitSystem.SYSTEMD:
            return "Configure Nix daemon related settings with systemd"
        return "Leave the Nix daemon unconfigured"

    def tracing_context(self) -> dict[str, str]:
        return {"init": self.init.value, "start_daemon": str(self.start_daemon)}

    def execute_description(self) -> list[ActionDescription]:
        if self.init != InitSystem.SYSTEMD:
            return []
        explanation = [
            f"Run `systemd-tmpfiles --create {TMPFILES_PREFIX}`",
            f"Symlink `{self.service_src}` to `{self.service_dest}`",
            f"Symlink `{self.socket_src}` to `{self.socket_dest}`",
            "Run `systemctl daemon-reload`",
        ]
        if self.start_daemon:
            explanation.append(f"Run `systemctl enable --now {self.socket_src}`")
        return [ActionDescription(self.tracing_synopsis(), tuple(explanation))]

    def revert_description(self) -> list[ActionDescription]:
        if self.init != InitSystem.SYSTEMD:
            return []
        return [
            ActionDescription(
                "Unconfigure Nix daemon related settings with systemd",
                (
                    f"Run `systemctl disable {SOCKET_NAME}`",
                    f"Run `systemctl disable {SERVICE_NAME}`",
                    f"Run `systemd-tmpfiles --remove {TMPFILES_PREFIX}`",
                    "Run `systemctl daemon-reload`",
                ),
            )
        ]

    async def execute(self) -> None:
        if self.init != InitSystem.SYSTEMD:
            return

        if await is_enabled(SOCKET_NAME):
            await execute_command(["systemctl", "disable", SOCKET_NAME])
        socket_was_active = await is_active(SOCKET_NAME)
        if socket_was_active:
            await execute_command(["systemctl", "stop", SOCKET_NAME])

        if await is_enabled(SERVICE_NAME):
            args = ["systemctl", "disable", SERVICE_NAME]
            if await is_active(SERVICE_NAME):
                args.append("--now")
            await execute_command(args)
        elif await is_active(SERVICE_NAME):
            await execute_command(["systemctl", "stop", SERVICE_NAME])

        if not self.tmpfiles_dest.exists():
            await asyncio.to_thread(self._link, self.tmpfiles_src, self.tmpfiles_dest)
        await execute_command(["systemd-tmpfiles", "--create", TMPFILES_PREFIX])

        for src, dest in ((self.service_src, self.service_dest), (self.socket_src, self.socket_dest)):
            check_unit_destination(src, dest)
            await asyncio.to_thread(self._link, src, dest)

        await execute_command(["systemctl", "daemon-reload"])

        args = ["systemctl", "enable", str(self.socket_src)]
        if self.start_daemon or socket_was_active:
            args.append("--now")
        await execute_command(args)

    @staticmethod
    def _link(src: Path, dest: Path) -> None:
        remove_file(dest)
        logger.debug("Symlinking `%s` to `%s`", src, dest)
        try:
            os.symlink(src, dest)
        except OSError as e:
            raise IoFailure(f"symlink `{src}` at", dest, e) from e

    async def revert(self) -> None:
        if self.init != InitSystem.SYSTEMD:
            return

        errors: list[ActionError] = []

        async def attempt(step: Awaitable[Any]) -> None:
            try:
                await step
            except ActionErrorKind as e:
                errors.append(self.error(e))

        async def disable_socket() -> None:
            if await is_enabled(SOCKET_NAME):
                await execute_command(["systemctl", "disable", SOCKET_NAME, "--now"])

        async def disable_service() -> None:
            if await is_enabled(SERVICE_NAME):
                await execute_command(["systemctl", "disable", SERVICE_NAME, "--now"])
            elif await is_active(SERVICE_NAME):
                await execute_command(["systemctl", "stop", SERVICE_NAME])

        await attempt(disable_socket())
        await attempt(disable_service())

        await attempt(execute_command(["systemd-tmpfiles", "--remove", TMPFILES_PREFIX]))
        for dest in (self.tmpfiles_dest, self.service_dest, self.socket_dest):
            await attempt(asyncio.to_thread(remove_file, dest))
        await attempt(execute_command(["systemctl", "daemon-reload"]))

        error = collect_errors(self.action_tag, errors)
        if error is not None:
            raise error

    def to_dict(self) -> dict[str, Any]:
        return {
            "init": self.init.value,
            "start_daemon": self.start_daemon,
            "profile": str(self.profile),
            "unit_dir": str(self.unit_dir),
            "tmpfiles_dir": str(self.tmpfiles_dir),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            init=InitSystem(data["init"]),
            start_daemon=data["start_daemon"],
            profile=Path(data.get("profile", DEFAULT_PROFILE)),
            unit_dir=Path(data.get("unit_dir", DEFAULT_UNIT_DIR)),
            tmpfiles_dir=Path(data.get("tmpfiles_dir", DEFAULT_TMPFILES_DIR)),
        )
