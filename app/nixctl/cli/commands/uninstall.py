"""Uninstall command implementation.

Reverts the actions recorded in the install receipt, last-first, and
rewrites the receipt with the states they ended up in.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from nixctl.cli.common import require_receipt
from nixctl.cli.display import create_descriptions_table, print_action_error
from nixctl.core.paths import get_receipt_path
from nixctl.plan import ReceiptError, UninstallFailedError, write_receipt
from nixctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Revert an install recorded in a receipt.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def uninstall(
    ctx: typer.Context,
    receipt: Annotated[
        Path | None,
        typer.Option(
            "--receipt",
            "-r",
            help="Install receipt to revert.",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would be reverted without making changes.",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip confirmation prompt and proceed.",
        ),
    ] = False,
) -> None:
    """Revert an install.

    Every recorded action is attempted even if an earlier one fails to
    revert; all failures are reported together.

    Examples:
        nixctl uninstall --dry-run    # Preview
        nixctl uninstall -y           # Skip confirmation
    """
    if ctx.invoked_subcommand is not None:
        return

    receipt_path = receipt or get_receipt_path()
    install_plan = require_receipt(receipt_path)

    descriptions = install_plan.describe_uninstall()
    if not descriptions:
        print_info("Nothing to revert.")
        return

    title = "Planned Reverts (Dry Run)" if dry_run else "Planned Reverts"
    console.print(create_descriptions_table(descriptions, title=title, style="revert"))

    if dry_run:
        print_info("[DRY-RUN] No changes were made.")
        return

    if not yes and not typer.confirm("\nProceed with the uninstall?", default=False):
        print_info("Aborted.")
        raise typer.Exit(code=0)

    failure: UninstallFailedError | None = None
    try:
        asyncio.run(install_plan.uninstall())
    except UninstallFailedError as e:
        failure = e

    try:
        write_receipt(install_plan, receipt_path)
    except ReceiptError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e

    if failure is not None:
        print_action_error(failure.error, "Uninstall failed")
        raise typer.Exit(code=1) from failure

    print_success("Nix was uninstalled.")
