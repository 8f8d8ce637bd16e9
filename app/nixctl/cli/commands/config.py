"""Settings file commands."""

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from nixctl.core.paths import get_settings_path
from nixctl.core.settings import CommonSettings, SettingsError, save_settings
from nixctl.utils.formatting import print_error, print_info, print_success, print_warning

app = typer.Typer(
    help="Manage the nixctl settings file.",
    no_args_is_help=True,
)


@app.command()
def init(
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            "-p",
            help="Where to write the settings file.",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite an existing settings file.",
        ),
    ] = False,
) -> None:
    """Write a settings file with the default values."""
    settings_path = path or get_settings_path()

    if settings_path.exists():
        if not force:
            print_error(f"Settings already exist: {settings_path}")
            print_info("Use --force to overwrite or specify a different path with --path.")
            raise typer.Exit(code=1)
        print_warning(f"Overwriting existing settings: {settings_path}")

    try:
        saved_path = save_settings(CommonSettings(), settings_path)
    except SettingsError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e
    print_success(f"Settings created: {saved_path}")
