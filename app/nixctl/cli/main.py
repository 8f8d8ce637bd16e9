"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from typing import Annotated

import typer

from nixctl import __version__
from nixctl.cli.commands import config, install, plan, uninstall
from nixctl.cli.common import configure_logging

# Create main Typer app
app = typer.Typer(
    name="nixctl",
    help="Install Nix through planned, revertible actions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"nixctl version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Log every action step.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only log errors.",
        ),
    ] = False,
) -> None:
    """nixctl - Install Nix through planned, revertible actions.

    Every change to the system is planned up front, can be previewed, and
    is recorded in a receipt so it can be reverted later.
    """
    configure_logging(verbose=verbose, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


# Register commands
app.add_typer(plan.app, name="plan")
app.add_typer(install.app, name="install")
app.add_typer(uninstall.app, name="uninstall")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
