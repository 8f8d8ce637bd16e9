"""Shared helpers for CLI commands.

Loading settings, building plans and reading receipts all end the command
with a one-line error and exit code 1 when they fail.
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.logging import RichHandler
from rich.markup import escape

from nixctl.action.errors import ActionError
from nixctl.cli.display import print_action_error
from nixctl.core.context import HostContext
from nixctl.core.paths import get_receipt_path
from nixctl.core.settings import CommonSettings, SettingsError, load_settings_or_default
from nixctl.plan import InstallPlan, ReceiptError, ReceiptNotFoundError, load_receipt
from nixctl.utils.formatting import err_console, print_error, print_info


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route log records through Rich on stderr.

    Args:
        verbose: Log at DEBUG level.
        quiet: Only log errors.
    """
    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=False)],
        force=True,
    )


def require_settings(path: Path | None) -> CommonSettings:
    """Load settings, exiting with an error message on failure.

    Args:
        path: Explicit settings file. If None, the default path is used and
            a missing file means defaults.
    """
    try:
        return load_settings_or_default(path)
    except SettingsError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e


def detect_host() -> HostContext:
    """Resolve the invoking user, exiting with an error message on failure."""
    try:
        return HostContext.detect()
    except KeyError as e:
        print_error(f"Cannot resolve the invoking user: {e}")
        raise typer.Exit(code=1) from e


def build_plan(settings: CommonSettings) -> InstallPlan:
    """Plan an install, rendering planning errors and exiting on failure."""
    host = detect_host()
    try:
        return asyncio.run(InstallPlan.plan(settings, host))
    except ActionError as e:
        print_action_error(e, "Planning failed")
        raise typer.Exit(code=1) from e


def require_receipt(path: Path | None) -> InstallPlan:
    """Load a receipt, exiting with an error message on failure."""
    receipt_path = path or get_receipt_path()
    try:
        return load_receipt(receipt_path)
    except ReceiptNotFoundError as e:
        print_error(escape(str(e)))
        print_info("Nothing was installed by nixctl, or pass --receipt.")
        raise typer.Exit(code=1) from e
    except ReceiptError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e
