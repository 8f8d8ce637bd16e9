"""Unit tests for the plan command."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

from nixctl.action.errors import ActionError, UnknownUrlScheme
from nixctl.cli.main import app
from nixctl.core.settings import InitSystem
from nixctl.plan import InstallPlan, load_receipt
from typer.testing import CliRunner

runner = CliRunner()

PLAN = "nixctl.cli.common.InstallPlan.plan"


class TestPlanCommand:
    """Tests for nixctl plan."""

    def test_prints_json(
        self, cli_env: dict[str, Path], fake: Callable[..., Any], journal: list[str]
    ) -> None:
        """Without --out the plan is printed as JSON."""
        with patch(PLAN, new=AsyncMock(return_value=InstallPlan([fake("a")]))):
            result = runner.invoke(app, ["plan"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["actions"][0]["action"]["action_name"] == "test_fake"
        assert data["actions"][0]["state"] == "Uncompleted"
        assert journal == []

    def test_writes_file(
        self, cli_env: dict[str, Path], fake: Callable[..., Any], tmp_path: Path
    ) -> None:
        """--out writes a plan that loads back."""
        out = tmp_path / "plan.json"

        with patch(PLAN, new=AsyncMock(return_value=InstallPlan([fake("a"), fake("b")]))):
            result = runner.invoke(app, ["plan", "--out", str(out)])

        assert result.exit_code == 0
        assert "Plan written" in result.output
        assert [action.action.name for action in load_receipt(out).actions] == ["a", "b"]

    def test_uses_settings_file(
        self, cli_env: dict[str, Path], fake: Callable[..., Any], tmp_path: Path
    ) -> None:
        """--config settings are passed to planning."""
        settings = tmp_path / "settings.toml"
        settings.write_text('init = "none"\n')

        with patch(PLAN, new=AsyncMock(return_value=InstallPlan([]))) as mock_plan:
            result = runner.invoke(app, ["plan", "-c", str(settings)])

        assert result.exit_code == 0
        planned_settings = mock_plan.await_args.args[0]
        assert planned_settings.init == InitSystem.NONE

    def test_planning_error(self, cli_env: dict[str, Path]) -> None:
        """A planning failure exits with code 1."""
        error = ActionError("fetch_and_unpack_nix", UnknownUrlScheme("ftp://x"))

        with patch(PLAN, new=AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["plan"])

        assert result.exit_code == 1
        assert "UnknownUrlScheme" in result.output
