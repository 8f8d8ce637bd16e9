"""Place ``/etc/nix/nix.conf`` for the daemon."""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self
from urllib.parse import urlparse

import httpx

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.composite import all_completed, execute_sequentially, revert_sequentially
from nixctl.action.errors import ActionErrorKind, Custom, IoFailure, MalformedState, UnknownUrlScheme
from nixctl.action.stateful import StatefulAction
from nixctl.actions.create_directory import CreateDirectory
from nixctl.actions.create_or_merge_nix_config import (
    MERGEABLE_SETTINGS,
    CreateOrMergeNixConfig,
    parse_nix_config,
)
from nixctl.actions.fetch_and_unpack_nix import URL_SCHEMES, fetch_bytes
from nixctl.core.settings import CommonSettings

logger = logging.getLogger(__name__)

EXPERIMENTAL_FEATURES = ("nix-command", "flakes")


async def resolve_extra_conf(entry: str, proxy: str | None, ssl_cert_file: Path | None) -> str:
    """Turn an ``extra_conf`` entry into configuration text.

    An entry is a URL (http, https, file), the path of an existing file, or
    literal configuration text, checked in that order.

    Raises:
        UnknownUrlScheme: If the entry looks like a URL with another scheme.
        IoFailure: If a file cannot be read.
        Custom: If a download fails.
    """
    parsed = urlparse(entry)
    if parsed.scheme and "://" in entry and not any(c.isspace() for c in entry):
        if parsed.scheme not in URL_SCHEMES:
            raise UnknownUrlScheme(entry, URL_SCHEMES)
        try:
            data = await fetch_bytes(entry, proxy, ssl_cert_file)
        except httpx.HTTPError as e:
            raise Custom(e) from e
        return data.decode("utf-8", errors="replace")

    if "\n" not in entry and _is_existing_file(entry):
        return (await fetch_bytes(entry, proxy, ssl_cert_file)).decode("utf-8", errors="replace")
    return entry


def _is_existing_file(entry: str) -> bool:
    # Long literal settings exceed NAME_MAX and raise on stat
    try:
        return Path(entry).is_file()
    except (OSError, ValueError):
        return False


def required_settings(settings: CommonSettings, ssl_cert_file: Path | None) -> dict[str, str]:
    """Settings nixctl always writes, overriding ``extra_conf``."""
    required = {"build-users-group": settings.nix_build_group_name}
    if sys.platform != "darwin":
        required["auto-optimise-store"] = "true"
    required["bash-prompt-prefix"] = "(nix:$name)\\040"
    required["max-jobs"] = "auto"
    if ssl_cert_file is not None:
        required["ssl-cert-file"] = str(ssl_cert_file)
    required["extra-nix-path"] = "nixpkgs=flake:nixpkgs"
    required["keep-derivations"] = "false"
    required["keep-outputs"] = "false"
    return required


def merge_experimental_features(config: dict[str, str]) -> None:
    """Add the features nixctl needs to ``experimental-features`` in place."""
    features = config.get("experimental-features", "").split()
    features.extend(f for f in EXPERIMENTAL_FEATURES if f not in features)
    config["experimental-features"] = " ".join(features)


@register_action
@dataclass
class PlaceNixConfiguration(Action):
    """Create the Nix configuration directory and merge ``nix.conf``.

    Attributes:
        create_directory: Creates the configuration directory.
        create_or_merge_nix_config: Writes the settings into ``nix.conf``.
    """

    action_tag = "place_nix_configuration"

    create_directory: StatefulAction[CreateDirectory]
    create_or_merge_nix_config: StatefulAction[CreateOrMergeNixConfig]

    @classmethod
    async def plan(cls, settings: CommonSettings) -> StatefulAction[Self]:
        """Resolve ``extra_conf`` and plan the directory and config children.

        Raises:
            ActionError: If an extra configuration source cannot be read or
                parsed, or ``nix.conf`` conflicts with the planned settings.
        """
        texts: list[str] = []
        for entry in settings.extra_conf:
            try:
                texts.append(await resolve_extra_conf(entry, settings.proxy, settings.ssl_cert_file))
            except ActionErrorKind as e:
                raise cls.error(e) from e

        try:
            config = parse_nix_config("\n".join(texts))
        except ValueError as e:
            raise cls.error(MalformedState(f"Invalid extra configuration: {e}")) from e

        ssl_cert_file = None
        if settings.ssl_cert_file is not None:
            try:
                ssl_cert_file = settings.ssl_cert_file.resolve(strict=True)
            except OSError as e:
                raise cls.error(IoFailure("canonicalize", settings.ssl_cert_file, e)) from e

        merge_experimental_features(config)
        for name, value in required_settings(settings, ssl_cert_file).items():
            if name in config and name not in MERGEABLE_SETTINGS and config[name] != value:
                logger.debug("Overriding `%s = %s` from the extra configuration", name, config[name])
            config[name] = value

        create_directory = await CreateDirectory.plan(
            settings.nix_conf_dir, mode=0o755, force_prune_on_revert=settings.force
        )
        create_or_merge_nix_config = await CreateOrMergeNixConfig.plan(settings.nix_conf_path, config)

        this = cls(create_directory, create_or_merge_nix_config)
        if all_completed(this.children):
            return StatefulAction.completed(this)
        return StatefulAction.uncompleted(this)

    @property
    def children(self) -> list[StatefulAction[Any]]:
        return [self.create_directory, self.create_or_merge_nix_config]

    def tracing_synopsis(self) -> str:
        return f"Place the Nix configuration in `{self.create_or_merge_nix_config.action.path}`"

    def execute_description(self) -> list[ActionDescription]:
        explanation = ["This file is read by the Nix daemon to set its configuration options at runtime."]
        for child in self.children:
            for description in child.describe_execute():
                explanation.append(description.description)
                explanation.extend(description.explanation)
        return [ActionDescription(self.tracing_synopsis(), tuple(explanation))]

    def revert_description(self) -> list[ActionDescription]:
        explanation = [
            description.description
            for child in reversed(self.children)
            for description in child.describe_revert()
        ]
        return [ActionDescription("Remove the Nix configuration", tuple(explanation))]

    async def execute(self) -> None:
        await execute_sequentially(self.children)

    async def revert(self) -> None:
        await revert_sequentially(self.action_tag, self.children)

    def to_dict(self) -> dict[str, Any]:
        return {
            "create_directory": self.create_directory.to_dict(),
            "create_or_merge_nix_config": self.create_or_merge_nix_config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            create_directory=StatefulAction.from_dict(data["create_directory"]),
            create_or_merge_nix_config=StatefulAction.from_dict(data["create_or_merge_nix_config"]),
        )
