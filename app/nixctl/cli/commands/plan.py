"""Plan command implementation.

Builds the install plan from the settings and prints it as JSON, or writes
it to a file that ``nixctl install --plan`` can pick up later.
"""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from nixctl.cli.common import build_plan, require_settings
from nixctl.plan import ReceiptError, write_receipt
from nixctl.utils.formatting import print_error, print_success

app = typer.Typer(
    help="Plan an install and print it as JSON.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def plan_install(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Settings file to plan from.",
        ),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option(
            "--out",
            "-o",
            help="Write the plan to this file instead of stdout.",
        ),
    ] = None,
) -> None:
    """Plan an install without changing the system.

    Examples:
        nixctl plan                       # Print the plan
        nixctl plan --out plan.json       # Save it for `nixctl install --plan`
    """
    if ctx.invoked_subcommand is not None:
        return

    settings = require_settings(config)
    install_plan = build_plan(settings)

    if out is None:
        typer.echo(json.dumps(install_plan.to_dict(), indent=2))
        return

    try:
        write_receipt(install_plan, out)
    except ReceiptError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e
    print_success(f"Plan written: {out}")
