"""Install plan: the ordered top-level actions and the driver that runs them.

A plan is built once from the settings, can be described without touching
the system, and is executed strictly in order. When an action fails during
install, everything executed so far is reverted last-first before the
failure is reported. After install (or uninstall) the plan is written as a
JSON receipt so a later run can pick up the exact states.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from pydantic import ValidationError

from nixctl import __version__
from nixctl.action.base import ActionDescription, UnknownActionTagError
from nixctl.action.composite import revert_each
from nixctl.action.errors import ActionError, collect_errors
from nixctl.action.stateful import StatefulAction
from nixctl.actions.configure_init_service import ConfigureInitService
from nixctl.actions.configure_shell_profile import ConfigureShellProfile
from nixctl.actions.fetch_and_unpack_nix import FetchAndUnpackNix
from nixctl.actions.move_unpacked_nix import MoveUnpackedNix
from nixctl.actions.place_nix_configuration import PlaceNixConfiguration
from nixctl.core.context import HostContext
from nixctl.core.settings import CommonSettings, settings_to_dict

logger = logging.getLogger(__name__)

PLAN_TAG = "install_plan"


class InstallFailedError(Exception):
    """An install failed and was (possibly partially) reverted.

    Attributes:
        error: The failure that stopped the install.
        revert_error: Failure of the automatic revert, None if it succeeded.
    """

    def __init__(self, error: ActionError, revert_error: ActionError | None = None) -> None:
        self.error = error
        self.revert_error = revert_error
        message = f"Install failed: {error}"
        if revert_error is not None:
            message += f"\nReverting the partial install also failed: {revert_error}"
        super().__init__(message)


class UninstallFailedError(Exception):
    """One or more actions could not be reverted.

    Attributes:
        error: Single or aggregate error of the failed reverts.
    """

    def __init__(self, error: ActionError) -> None:
        self.error = error
        super().__init__(f"Uninstall failed: {error}")


class ReceiptError(Exception):
    """Base exception for receipt errors."""


class ReceiptNotFoundError(ReceiptError):
    """Raised when the receipt file is not found."""


class ReceiptParseError(ReceiptError):
    """Raised when the receipt cannot be parsed into a plan."""


@dataclass
class InstallPlan:
    """Ordered top-level actions plus the settings they were planned from.

    Attributes:
        actions: Top-level actions in execute order.
        settings: Settings the plan was built from.
        version: nixctl version that built the plan.
    """

    actions: list[StatefulAction[Any]]
    settings: CommonSettings = field(default_factory=CommonSettings)
    version: str = __version__

    @classmethod
    async def plan(cls, settings: CommonSettings, host: HostContext) -> InstallPlan:
        """Plan every top-level action in install order.

        Args:
            settings: Resolved installer settings.
            host: Identity of the user the installation is for.

        Returns:
            The plan, with actions the system already satisfies completed.

        Raises:
            ActionError: If any action cannot be planned.
        """
        actions: list[StatefulAction[Any]] = [
            await FetchAndUnpackNix.plan(
                settings.nix_package_url,
                settings.scratch_dir,
                settings.proxy,
                settings.ssl_cert_file,
            ),
            await MoveUnpackedNix.plan(settings.scratch_dir, settings.nix_root, host.group),
            await PlaceNixConfiguration.plan(settings),
            await ConfigureShellProfile.plan(settings.shell_profiles, host),
            await ConfigureInitService.plan(settings.init, settings.start_daemon),
        ]
        return cls(actions, settings)

    def describe_install(self, explain: bool = False) -> list[ActionDescription]:
        """Describe what :meth:`install` would do.

        Args:
            explain: Keep the per-action explanation lines.
        """
        descriptions: list[ActionDescription] = []
        for action in self.actions:
            for description in action.describe_execute():
                if explain:
                    descriptions.append(description)
                else:
                    descriptions.append(ActionDescription(description.description))
        return descriptions

    def describe_uninstall(self) -> list[ActionDescription]:
        """Describe what :meth:`uninstall` would do, in revert order."""
        return [
            description
            for action in reversed(self.actions)
            for description in action.describe_revert()
        ]

    @property
    def pending(self) -> list[StatefulAction[Any]]:
        """Top-level actions that still have to run."""
        return [action for action in self.actions if not action.is_completed]

    async def install(self) -> None:
        """Execute every action in order.

        On the first failure everything executed so far, including the failed
        action (whose children may have partly completed), is reverted
        last-first. Every revert is attempted.

        Raises:
            InstallFailedError: If an action failed.
        """
        for index, action in enumerate(self.actions):
            try:
                await action.try_execute()
            except ActionError as e:
                logger.error("Install failed at `%s`, reverting", action.tag)
                revert_errors = await revert_each(self.actions[: index + 1])
                raise InstallFailedError(e, collect_errors(PLAN_TAG, revert_errors)) from e

    async def uninstall(self) -> None:
        """Revert every action last-first, attempting each one.

        Raises:
            UninstallFailedError: If any revert failed.
        """
        error = collect_errors(PLAN_TAG, await revert_each(self.actions))
        if error is not None:
            raise UninstallFailedError(error)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the plan with every action state."""
        return {
            "version": self.version,
            "actions": [action.to_dict() for action in self.actions],
            "settings": settings_to_dict(self.settings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstallPlan:
        """Rebuild a plan from :meth:`to_dict` output.

        Raises:
            ReceiptParseError: If the data does not describe a plan.
        """
        try:
            actions = [StatefulAction.from_dict(item) for item in data["actions"]]
            settings = CommonSettings.model_validate(data.get("settings", {}))
            version = str(data.get("version", __version__))
        except UnknownActionTagError as e:
            raise ReceiptParseError(str(e)) from e
        except ValidationError as e:
            raise ReceiptParseError(f"Invalid settings in receipt: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ReceiptParseError(f"Invalid receipt content: {e!r}") from e

        if version != __version__:
            logger.warning("Receipt was written by nixctl %s, this is %s", version, __version__)
        return cls(actions, settings, version)


def write_receipt(plan: InstallPlan, path: Path) -> Path:
    """Write the plan as JSON, atomically.

    Args:
        plan: Plan to persist.
        path: Destination of the receipt.

    Returns:
        Path where the receipt was written.

    Raises:
        ReceiptError: If the file cannot be written.
    """
    tmp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            json.dump(plan.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(str(tmp_path), str(path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ReceiptError(f"Failed to write receipt: {e}") from e

    logger.debug("Wrote receipt to %s", path)
    return path


def load_receipt(path: Path) -> InstallPlan:
    """Load a plan from a JSON receipt.

    Raises:
        ReceiptNotFoundError: If the receipt doesn't exist.
        ReceiptParseError: If the JSON or its content is invalid.
        ReceiptError: If the file cannot be read.
    """
    if not path.exists():
        raise ReceiptNotFoundError(f"Receipt not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ReceiptParseError(f"Invalid JSON syntax: {e}") from e
    except OSError as e:
        raise ReceiptError(f"Failed to read receipt: {e}") from e

    if not isinstance(data, dict):
        raise ReceiptParseError("Receipt must be a JSON object")
    return InstallPlan.from_dict(data)
