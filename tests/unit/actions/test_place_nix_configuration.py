"""Unit tests for the place_nix_configuration composite."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from nixctl.action.base import ActionState
from nixctl.action.errors import ActionError, AlreadyExists, UnknownUrlScheme
from nixctl.action.stateful import StatefulAction
from nixctl.actions.create_or_merge_nix_config import parse_nix_config
from nixctl.actions.place_nix_configuration import PlaceNixConfiguration, resolve_extra_conf
from nixctl.core.settings import CommonSettings


def _settings(tmp_path: Path, **kwargs) -> CommonSettings:
    return CommonSettings(nix_conf_dir=tmp_path / "etc" / "nix", **kwargs)


class TestResolveExtraConf:
    """Tests for resolve_extra_conf."""

    @pytest.mark.asyncio
    async def test_literal_string(self) -> None:
        """Plain configuration text is used as is."""
        assert await resolve_extra_conf("trusted-users = root", None, None) == "trusted-users = root"

    @pytest.mark.asyncio
    async def test_long_literal_line(self) -> None:
        """A literal longer than a file name is still taken as text."""
        entry = "extra-trusted-public-keys = " + "k" * 300

        assert await resolve_extra_conf(entry, None, None) == entry

    @pytest.mark.asyncio
    async def test_path(self, tmp_path: Path) -> None:
        """An existing file is read."""
        extra = tmp_path / "extra.conf"
        extra.write_text("sandbox = true\n")

        assert await resolve_extra_conf(str(extra), None, None) == "sandbox = true\n"

    @pytest.mark.asyncio
    async def test_file_url(self, tmp_path: Path) -> None:
        """file:// URLs are read."""
        extra = tmp_path / "extra.conf"
        extra.write_text("sandbox = false\n")

        assert await resolve_extra_conf(extra.as_uri(), None, None) == "sandbox = false\n"

    @pytest.mark.asyncio
    async def test_http_url(self) -> None:
        """http(s) URLs are downloaded."""
        with patch(
            "nixctl.actions.place_nix_configuration.fetch_bytes",
            new=AsyncMock(return_value=b"substituters = https://cache\n"),
        ) as mock_fetch:
            text = await resolve_extra_conf("https://example.com/nix.conf", "http://proxy:3128", None)

        assert text == "substituters = https://cache\n"
        mock_fetch.assert_awaited_once_with("https://example.com/nix.conf", "http://proxy:3128", None)

    @pytest.mark.asyncio
    async def test_unknown_scheme(self) -> None:
        """Other URL schemes are rejected."""
        with pytest.raises(UnknownUrlScheme):
            await resolve_extra_conf("s3://bucket/nix.conf", None, None)


class TestPlan:
    """Tests for PlaceNixConfiguration.plan."""

    @pytest.mark.asyncio
    async def test_plans_required_settings(self, tmp_path: Path) -> None:
        """Required settings are merged with the extra configuration."""
        settings = _settings(
            tmp_path,
            extra_conf=["trusted-users = root\nexperimental-features = ca-derivations"],
        )

        action = await PlaceNixConfiguration.plan(settings)

        assert action.state == ActionState.UNCOMPLETED
        pending = action.action.create_or_merge_nix_config.action.pending
        assert pending["build-users-group"] == "nixbld"
        assert pending["trusted-users"] == "root"
        assert pending["experimental-features"] == "ca-derivations nix-command flakes"
        assert pending["bash-prompt-prefix"] == "(nix:$name)\\040"
        assert pending["extra-nix-path"] == "nixpkgs=flake:nixpkgs"
        assert "ssl-cert-file" not in pending

    @pytest.mark.asyncio
    async def test_long_extra_conf_line(self, tmp_path: Path) -> None:
        """Long single-line settings plan like any other."""
        key = "cache.example.org-1:" + "A" * 300
        settings = _settings(tmp_path, extra_conf=[f"extra-trusted-public-keys = {key}"])

        action = await PlaceNixConfiguration.plan(settings)

        pending = action.action.create_or_merge_nix_config.action.pending
        assert pending["extra-trusted-public-keys"] == key

    @pytest.mark.asyncio
    async def test_force_prunes_config_dir(self, tmp_path: Path) -> None:
        """``force`` lets uninstall remove the directory with its contents."""
        forced = await PlaceNixConfiguration.plan(_settings(tmp_path, force=True))
        plain = await PlaceNixConfiguration.plan(_settings(tmp_path))

        assert forced.action.create_directory.action.force_prune_on_revert is True
        assert plain.action.create_directory.action.force_prune_on_revert is False

    @pytest.mark.asyncio
    async def test_ssl_cert_file_is_canonical(self, tmp_path: Path) -> None:
        """The CA bundle is written as its resolved path."""
        cert = tmp_path / "ca.pem"
        cert.write_text("cert")
        link = tmp_path / "link.pem"
        link.symlink_to(cert)

        action = await PlaceNixConfiguration.plan(_settings(tmp_path, ssl_cert_file=link))

        pending = action.action.create_or_merge_nix_config.action.pending
        assert pending["ssl-cert-file"] == str(cert.resolve())

    @pytest.mark.asyncio
    async def test_unknown_extra_conf_scheme(self, tmp_path: Path) -> None:
        """An unsupported extra_conf URL fails planning."""
        with pytest.raises(ActionError) as exc_info:
            await PlaceNixConfiguration.plan(_settings(tmp_path, extra_conf=["s3://bucket/x"]))

        assert exc_info.value.tag == "place_nix_configuration"
        assert isinstance(exc_info.value.kind, UnknownUrlScheme)

    @pytest.mark.asyncio
    async def test_conflicting_existing_config(self, tmp_path: Path) -> None:
        """An existing nix.conf with a different value is a conflict."""
        conf_dir = tmp_path / "etc" / "nix"
        conf_dir.mkdir(parents=True)
        (conf_dir / "nix.conf").write_text("max-jobs = 8\n")

        with pytest.raises(ActionError) as exc_info:
            await PlaceNixConfiguration.plan(_settings(tmp_path))

        assert isinstance(exc_info.value.kind, AlreadyExists)

    @pytest.mark.asyncio
    async def test_already_placed_is_completed(self, tmp_path: Path) -> None:
        """Re-planning after execute finds nothing to do."""
        settings = _settings(tmp_path)
        first = await PlaceNixConfiguration.plan(settings)
        await first.try_execute()

        second = await PlaceNixConfiguration.plan(settings)

        assert second.state == ActionState.COMPLETED
        assert second.describe_execute() == []


class TestExecuteRevert:
    """Tests for executing and reverting PlaceNixConfiguration."""

    @pytest.mark.asyncio
    async def test_inverse(self, tmp_path: Path) -> None:
        """Execute writes nix.conf, revert removes it and the directory."""
        settings = _settings(tmp_path, extra_conf=["sandbox = true"])
        action = await PlaceNixConfiguration.plan(settings)

        await action.try_execute()

        written = parse_nix_config(settings.nix_conf_path.read_text())
        assert written["sandbox"] == "true"
        assert written["max-jobs"] == "auto"

        await action.try_revert()

        assert not settings.nix_conf_dir.exists()
        assert (tmp_path / "etc").exists()
        assert action.state == ActionState.UNCOMPLETED

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path: Path) -> None:
        """Children and their states survive serialization."""
        action = await PlaceNixConfiguration.plan(_settings(tmp_path))

        restored = StatefulAction.from_dict(action.to_dict())

        assert restored.to_dict() == action.to_dict()
        assert isinstance(restored.action, PlaceNixConfiguration)
