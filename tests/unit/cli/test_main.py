"""Unit tests for the main CLI application."""

from unittest.mock import patch

from nixctl import __version__
from nixctl.cli.main import app
from typer.testing import CliRunner

runner = CliRunner()


class TestMainApp:
    """Tests for global options and command registration."""

    def test_version(self) -> None:
        """--version prints the version and exits."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"nixctl version {__version__}" in result.output

    def test_help_lists_commands(self) -> None:
        """Every command is registered."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("plan", "install", "uninstall", "config"):
            assert command in result.output

    def test_verbose_configures_debug_logging(self, cli_env) -> None:
        """--verbose is passed on to the logging setup."""
        with patch("nixctl.cli.main.configure_logging") as mock_logging:
            result = runner.invoke(app, ["--verbose", "config", "init"])

        assert result.exit_code == 0
        mock_logging.assert_called_once_with(verbose=True, quiet=False)

    def test_quiet(self, cli_env) -> None:
        """--quiet is passed on to the logging setup."""
        with patch("nixctl.cli.main.configure_logging") as mock_logging:
            runner.invoke(app, ["-q", "config", "init"])

        mock_logging.assert_called_once_with(verbose=False, quiet=True)
