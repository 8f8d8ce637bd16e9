"""Install command implementation.

Plans (or loads) the install, shows the planned steps, executes them and
writes the receipt used by ``nixctl uninstall``.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from nixctl.cli.common import build_plan, require_receipt, require_settings
from nixctl.cli.display import create_descriptions_table, print_install_failure, print_plan_summary
from nixctl.core.paths import get_receipt_path
from nixctl.plan import InstallFailedError, InstallPlan, ReceiptError, write_receipt
from nixctl.utils.formatting import console, print_error, print_info, print_success, print_warning

app = typer.Typer(
    help="Install Nix.",
    invoke_without_command=True,
)


def _save_receipt(install_plan: InstallPlan, path: Path) -> None:
    try:
        saved = write_receipt(install_plan, path)
    except ReceiptError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e
    print_info(f"Receipt written: {saved}")


@app.callback(invoke_without_command=True)
def install(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Settings file to plan from.",
        ),
    ] = None,
    plan_path: Annotated[
        Path | None,
        typer.Option(
            "--plan",
            "-p",
            help="Execute a plan saved by `nixctl plan --out`.",
        ),
    ] = None,
    explain: Annotated[
        bool,
        typer.Option(
            "--explain",
            "-e",
            help="Show details for every planned step.",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would be done without making changes.",
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
    receipt: Annotated[
        Path | None,
        typer.Option(
            "--receipt",
            "-r",
            help="Where to write the install receipt.",
        ),
    ] = None,
) -> None:
    """Install Nix.

    If any step fails, everything done so far is reverted before the
    error is reported.

    Examples:
        nixctl install --dry-run --explain   # Preview every step
        nixctl install --yes                 # Install without confirmation
        nixctl install --plan plan.json      # Execute a saved plan
    """
    if ctx.invoked_subcommand is not None:
        return

    if plan_path is not None:
        if config is not None:
            print_warning("--config is ignored when --plan is given.")
        install_plan = require_receipt(plan_path)
    else:
        install_plan = build_plan(require_settings(config))

    descriptions = install_plan.describe_install(explain=explain)
    if not descriptions:
        print_success("Nothing to do, everything is already in place.")
        return

    title = "Planned Actions (Dry Run)" if dry_run else "Planned Actions"
    console.print(create_descriptions_table(descriptions, title=title))
    print_plan_summary(len(install_plan.pending), len(install_plan.actions))

    if dry_run:
        print_info("[DRY-RUN] No changes were made.")
        return

    if not yes and not typer.confirm("\nProceed with the install?", default=False):
        print_info("Aborted.")
        raise typer.Exit(code=0)

    receipt_path = receipt or get_receipt_path()
    try:
        asyncio.run(install_plan.install())
    except InstallFailedError as e:
        print_install_failure(e)
        if e.revert_error is not None:
            _save_receipt(install_plan, receipt_path)
        raise typer.Exit(code=1) from e

    _save_receipt(install_plan, receipt_path)
    print_success("Nix was installed successfully!")
