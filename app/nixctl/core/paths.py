"""XDG-compliant path management for nixctl.

This module provides standardized paths following the XDG Base Directory
Specification for the settings file and the install receipt.

XDG defaults:
- Config: ~/.config/nixctl/
- State: ~/.local/state/nixctl/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "nixctl"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/nixctl/ (or XDG_CONFIG_HOME/nixctl/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    Returns:
        Path to ~/.local/state/nixctl/ (or XDG_STATE_HOME/nixctl/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_settings_path() -> Path:
    """Get the default settings file path.

    Returns:
        Path to ~/.config/nixctl/settings.toml.
    """
    return get_config_dir() / "settings.toml"


def get_receipt_path() -> Path:
    """Get the install receipt path.

    The receipt is the serialized plan after install, used by uninstall.

    Returns:
        Path to ~/.local/state/nixctl/receipt.json.
    """
    return get_state_dir() / "receipt.json"

