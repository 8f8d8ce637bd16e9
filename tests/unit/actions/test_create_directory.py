"""Unit tests for the create_directory action."""

from pathlib import Path

import pytest
from nixctl.action.base import ActionState
from nixctl.action.errors import ActionError, MalformedState
from nixctl.actions.create_directory import CreateDirectory


class TestPlan:
    """Tests for CreateDirectory.plan."""

    @pytest.mark.asyncio
    async def test_missing_directory_is_uncompleted(self, tmp_path: Path) -> None:
        """A missing directory has to be created."""
        action = await CreateDirectory.plan(tmp_path / "new")

        assert action.state == ActionState.UNCOMPLETED

    @pytest.mark.asyncio
    async def test_existing_directory_is_completed(self, tmp_path: Path) -> None:
        """An existing directory is already done."""
        action = await CreateDirectory.plan(tmp_path)

        assert action.state == ActionState.COMPLETED

    @pytest.mark.asyncio
    async def test_existing_file_is_rejected(self, tmp_path: Path) -> None:
        """A file in the way is malformed state."""
        target = tmp_path / "file"
        target.write_text("x")

        with pytest.raises(ActionError) as exc_info:
            await CreateDirectory.plan(target)

        assert exc_info.value.tag == "create_directory"
        assert isinstance(exc_info.value.kind, MalformedState)


class TestExecuteRevert:
    """Tests for executing and reverting CreateDirectory."""

    @pytest.mark.asyncio
    async def test_execute_then_revert_restores_state(self, tmp_path: Path) -> None:
        """Execute creates the directory with its mode, revert removes it."""
        target = tmp_path / "a" / "b"
        action = await CreateDirectory.plan(target, mode=0o750)

        await action.try_execute()

        assert target.is_dir()
        assert target.stat().st_mode & 0o777 == 0o750

        await action.try_revert()

        assert not target.exists()
        assert action.state == ActionState.UNCOMPLETED

    @pytest.mark.asyncio
    async def test_revert_keeps_non_empty_directory(self, tmp_path: Path) -> None:
        """Content added later is not deleted without force_prune_on_revert."""
        target = tmp_path / "d"
        action = await CreateDirectory.plan(target)
        await action.try_execute()
        (target / "keep").write_text("data")

        await action.try_revert()

        assert (target / "keep").exists()

    @pytest.mark.asyncio
    async def test_revert_prunes_when_forced(self, tmp_path: Path) -> None:
        """force_prune_on_revert removes the directory with its content."""
        target = tmp_path / "d"
        action = await CreateDirectory.plan(target, force_prune_on_revert=True)
        await action.try_execute()
        (target / "nested").mkdir()
        (target / "nested" / "file").write_text("data")

        await action.try_revert()

        assert not target.exists()

    @pytest.mark.asyncio
    async def test_completed_plan_does_nothing(self, tmp_path: Path) -> None:
        """Executing a completed plan leaves the directory untouched."""
        tmp_path.chmod(0o755)
        action = await CreateDirectory.plan(tmp_path, mode=0o700)

        await action.try_execute()

        assert tmp_path.stat().st_mode & 0o777 == 0o755


class TestSerialization:
    """Tests for to_dict/from_dict."""

    def test_round_trip(self, tmp_path: Path) -> None:
        """All fields survive a round trip."""
        action = CreateDirectory(tmp_path / "x", "root", "wheel", 0o755, True)

        assert CreateDirectory.from_dict(action.to_dict()) == action
