"""Installer settings and their TOML I/O.

Settings are fully resolved before planning starts; planning functions read
them but never change them.
"""

import os
import platform
import tomllib
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated, Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nixctl.core.paths import get_settings_path

NIX_VERSION = "2.24.10"

# Scratch directory the tarball is unpacked into before being moved to /nix
SCRATCH_DIR = Path("/nix/temp-install-dir")


class InitSystem(str, Enum):
    """Init system that should run the Nix daemon.

    Attributes:
        SYSTEMD: Register socket-activated units with systemd.
        LAUNCHD: Register a launchd agent (macOS, not supported here).
        NONE: Leave the daemon unmanaged.
    """

    SYSTEMD = "systemd"
    LAUNCHD = "launchd"
    NONE = "none"


def default_nix_package_url() -> str:
    """Return the release tarball URL for this machine's architecture."""
    system = f"{platform.machine() or 'x86_64'}-{platform.system().lower() or 'linux'}"
    return f"https://releases.nixos.org/nix/nix-{NIX_VERSION}/nix-{NIX_VERSION}-{system}.tar.xz"


# Resolved against the invoking user's home at plan time
DEFAULT_SHELL_PROFILES = (Path("~/.bashrc"), Path("~/.zshrc"))


class CommonSettings(BaseModel):
    """Settings shared by every planned action.

    Attributes:
        nix_package_url: URL (http, https, file) or local path of the Nix tarball.
        nix_build_group_name: Group that owns the store and build users.
        proxy: Optional proxy URL used for downloads.
        ssl_cert_file: Optional CA bundle for downloads and ``nix.conf``.
        extra_conf: Extra ``nix.conf`` content; each entry is a URL, a path or
            literal configuration text.
        force: Remove the Nix configuration directory with its contents on
            uninstall, even when other files were added to it.
        init: Init system that should run the daemon.
        start_daemon: Start the daemon once it is registered.
        shell_profiles: Shell profile files that should source Nix. A leading
            ``~`` means the home directory of the invoking user.
        nix_root: Root of the Nix installation.
        scratch_dir: Directory the tarball is unpacked into.
        nix_conf_dir: Directory holding ``nix.conf``.
    """

    model_config = ConfigDict(extra="forbid")

    nix_package_url: str = Field(
        default_factory=default_nix_package_url,
        description="URL or path of the Nix release tarball",
    )
    nix_build_group_name: Annotated[
        str,
        Field(min_length=1, description="Group owning the store"),
    ] = "nixbld"
    proxy: str | None = None
    ssl_cert_file: Path | None = None
    extra_conf: list[str] = Field(default_factory=list)
    force: bool = False
    init: InitSystem = InitSystem.SYSTEMD
    start_daemon: bool = True
    shell_profiles: list[Path] = Field(default_factory=lambda: list(DEFAULT_SHELL_PROFILES))
    nix_root: Path = Path("/nix")
    scratch_dir: Path = SCRATCH_DIR
    nix_conf_dir: Path = Path("/etc/nix")

    @property
    def nix_conf_path(self) -> Path:
        """Path of ``nix.conf`` inside :attr:`nix_conf_dir`."""
        return self.nix_conf_dir / "nix.conf"


class SettingsError(Exception):
    """Base exception for settings errors."""


class SettingsNotFoundError(SettingsError):
    """Raised when the settings file is not found."""


class SettingsParseError(SettingsError):
    """Raised when the settings file cannot be parsed."""


def load_settings(path: Path | None = None) -> CommonSettings:
    """Load settings from a TOML file.

    Args:
        path: Path to the settings file. If None, uses default settings path.

    Returns:
        Validated CommonSettings object.

    Raises:
        SettingsNotFoundError: If the settings file doesn't exist.
        SettingsParseError: If the TOML syntax is invalid.
        SettingsError: If the content doesn't match the schema.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        raise SettingsNotFoundError(f"Settings not found: {settings_path}")

    try:
        with open(settings_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise SettingsParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise SettingsError(f"Failed to read settings: {e}") from e

    try:
        return CommonSettings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings content: {e}") from e


def load_settings_or_default(path: Path | None = None) -> CommonSettings:
    """Load settings, falling back to defaults when no file exists.

    Raises:
        SettingsParseError: If the TOML syntax is invalid.
        SettingsError: If the content doesn't match the schema.
    """
    try:
        return load_settings(path)
    except SettingsNotFoundError:
        if path is not None:
            raise
        return CommonSettings()


def settings_to_dict(settings: CommonSettings) -> dict[str, Any]:
    """Convert settings to plain TOML/JSON compatible data.

    None values are dropped, TOML has no null.
    """
    data = settings.model_dump(mode="json")
    return {key: value for key, value in data.items() if value is not None}


def save_settings(settings: CommonSettings, path: Path | None = None) -> Path:
    """Save settings to a TOML file.

    The file is written atomically by first writing to a temporary file
    and then using os.replace() for atomic rename.

    Args:
        settings: The settings to save.
        path: Path to save to. If None, uses default settings path.

    Returns:
        Path where the settings were saved.

    Raises:
        SettingsError: If the file cannot be written.
    """
    settings_path = path or get_settings_path()

    tmp_path: Path | None = None
    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="wb",
            dir=settings_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(settings_to_dict(settings), f)
        os.replace(str(tmp_path), str(settings_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise SettingsError(f"Failed to write settings: {e}") from e

    return settings_path
