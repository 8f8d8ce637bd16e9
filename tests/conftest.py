"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules, including a
fake action that records every execute and revert into a journal.
"""

import asyncio
import grp
import os
import pwd
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self
from unittest.mock import patch

import pytest
from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.composite import (
    execute_concurrently,
    execute_sequentially,
    revert_concurrently,
    revert_sequentially,
)
from nixctl.action.errors import CommandFailure
from nixctl.action.stateful import StatefulAction
from nixctl.core.context import HostContext


@register_action
@dataclass
class FakeAction(Action):
    """Action that only records calls, optionally failing with a command error."""

    action_tag = "test_fake"

    name: str
    fail_execute: bool = False
    fail_revert: bool = False
    delay: float = 0.0
    journal: list[str] = field(default_factory=list, repr=False, compare=False)

    def tracing_synopsis(self) -> str:
        return f"Fake `{self.name}`"

    def execute_description(self) -> list[ActionDescription]:
        return [ActionDescription(f"Execute {self.name}")]

    def revert_description(self) -> list[ActionDescription]:
        return [ActionDescription(f"Revert {self.name}")]

    async def execute(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.journal.append(f"execute:{self.name}")
        if self.fail_execute:
            raise CommandFailure(["false", self.name], 1, "", f"{self.name} exploded")

    async def revert(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.journal.append(f"revert:{self.name}")
        if self.fail_revert:
            raise CommandFailure(["false", self.name], 1, "", f"{self.name} refused")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fail_execute": self.fail_execute,
            "fail_revert": self.fail_revert,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(data["name"], data["fail_execute"], data["fail_revert"])


@register_action
@dataclass
class FakeGroup(Action):
    """Composite over fake children, run concurrently or in order."""

    action_tag = "test_fake_group"

    members: list[StatefulAction[Any]]
    concurrent: bool = True

    @property
    def children(self) -> list[StatefulAction[Any]]:
        return self.members

    def tracing_synopsis(self) -> str:
        return "Fake group"

    def execute_description(self) -> list[ActionDescription]:
        return [d for child in self.children for d in child.describe_execute()]

    def revert_description(self) -> list[ActionDescription]:
        return [d for child in reversed(self.children) for d in child.describe_revert()]

    async def execute(self) -> None:
        if self.concurrent:
            await execute_concurrently(self.action_tag, self.children)
        else:
            await execute_sequentially(self.children)

    async def revert(self) -> None:
        if self.concurrent:
            await revert_concurrently(self.action_tag, self.children)
        else:
            await revert_sequentially(self.action_tag, self.children)

    def to_dict(self) -> dict[str, Any]:
        return {
            "members": [child.to_dict() for child in self.members],
            "concurrent": self.concurrent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls([StatefulAction.from_dict(c) for c in data["members"]], data["concurrent"])


@pytest.fixture
def journal() -> list[str]:
    """Shared record of fake calls, in call order."""
    return []


@pytest.fixture
def fake(journal: list[str]) -> Callable[..., StatefulAction[FakeAction]]:
    """Factory for uncompleted fake actions writing into ``journal``."""

    def make(name: str, **kwargs: Any) -> StatefulAction[FakeAction]:
        return StatefulAction.uncompleted(FakeAction(name, journal=journal, **kwargs))

    return make


@pytest.fixture
def fake_group() -> Callable[..., StatefulAction[FakeGroup]]:
    """Factory for uncompleted fake groups."""

    def make(children: list[StatefulAction[Any]], concurrent: bool = True) -> StatefulAction[FakeGroup]:
        return StatefulAction.uncompleted(FakeGroup(children, concurrent))

    return make


@pytest.fixture
def host(tmp_path: Path) -> HostContext:
    """HostContext for the user running the tests, with a temporary home."""
    entry = pwd.getpwuid(os.getuid())
    return HostContext(
        uid=os.getuid(),
        username=entry.pw_name,
        group=grp.getgrgid(os.getgid()).gr_name,
        home=tmp_path,
    )


@pytest.fixture
def cli_env(tmp_path: Path) -> Iterator[dict[str, Path]]:
    """Point XDG config and state at ``tmp_path`` and leave logging alone."""
    config_home = tmp_path / "config"
    state_home = tmp_path / "state"
    with (
        patch.dict(
            os.environ,
            {"XDG_CONFIG_HOME": str(config_home), "XDG_STATE_HOME": str(state_home)},
        ),
        patch("nixctl.cli.main.configure_logging"),
    ):
        yield {
            "settings": config_home / "nixctl" / "settings.toml",
            "receipt": state_home / "nixctl" / "receipt.json",
        }
