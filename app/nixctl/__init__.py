"""nixctl - Install and uninstall Nix through planned, revertible actions."""

__version__ = "0.1.0"
