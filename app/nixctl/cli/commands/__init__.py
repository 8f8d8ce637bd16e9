"""CLI commands for nixctl.

This package contains all subcommand implementations.
"""

from nixctl.cli.commands import config, install, plan, uninstall

__all__ = ["config", "install", "plan", "uninstall"]
