"""Utility modules for nixctl.

This module exports commonly used utility functions.
"""

from nixctl.utils.formatting import (
    console,
    err_console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from nixctl.utils.shell import CommandResult, command_exists, execute_command, run_command

__all__ = [
    "CommandResult",
    "command_exists",
    "console",
    "err_console",
    "execute_command",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "run_command",
]
