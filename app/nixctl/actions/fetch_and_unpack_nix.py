"""Fetch the Nix release tarball and unpack it into a scratch directory."""

import asyncio
import io
import logging
import ssl
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self
from urllib.parse import urlparse

import httpx

from nixctl.action.base import Action, ActionDescription, register_action
from nixctl.action.errors import Custom, IoFailure, UnknownUrlScheme
from nixctl.action.stateful import StatefulAction

logger = logging.getLogger(__name__)

URL_SCHEMES = ("http", "https", "file")
PROXY_SCHEMES = ("http", "https", "socks5")

# Timeout for the tarball download (connect, read) in seconds
_FETCH_TIMEOUT = httpx.Timeout(300.0, connect=30.0)


class UnknownProxySchemeError(Exception):
    """The configured proxy URL uses an unsupported scheme."""

    def __init__(self, proxy: str) -> None:
        self.proxy = proxy
        super().__init__(
            f"Unknown proxy scheme in `{proxy}`, `https://`, `socks5://`, and `http://` supported"
        )


class UnarchiveError(Exception):
    """The fetched tarball could not be unpacked."""


def build_client(proxy: str | None, ssl_cert_file: Path | None) -> httpx.AsyncClient:
    """Create an HTTP client honouring the proxy and CA bundle settings."""
    verify: ssl.SSLContext | bool = True
    if ssl_cert_file is not None:
        verify = ssl.create_default_context(cafile=str(ssl_cert_file))
    return httpx.AsyncClient(
        proxy=proxy,
        verify=verify,
        follow_redirects=True,
        timeout=_FETCH_TIMEOUT,
    )


async def fetch_bytes(url_or_path: str, proxy: str | None, ssl_cert_file: Path | None) -> bytes:
    """Read a URL (http, https, file) or a local path.

    Raises:
        UnknownUrlScheme: If the URL scheme is not supported.
        IoFailure: If a local file cannot be read.
        httpx.HTTPError: If the download fails.
    """
    parsed = urlparse(url_or_path)
    if parsed.scheme in ("http", "https"):
        async with build_client(proxy, ssl_cert_file) as client:
            response = await client.get(url_or_path)
            response.raise_for_status()
            return response.content

    if parsed.scheme == "file":
        path = Path(parsed.path)
    elif parsed.scheme == "":
        path = Path(url_or_path)
    else:
        raise UnknownUrlScheme(url_or_path, URL_SCHEMES)

    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as e:
        raise IoFailure("read", path, e) from e


def validate_url_or_path(url_or_path: str) -> None:
    """Check a URL scheme without fetching anything.

    Raises:
        UnknownUrlScheme: If the URL scheme is not supported.
    """
    scheme = urlparse(url_or_path).scheme
    if scheme and scheme not in URL_SCHEMES:
        raise UnknownUrlScheme(url_or_path, URL_SCHEMES)


@register_action
@dataclass
class FetchAndUnpackNix(Action):
    """Fetch a ``.tar.xz`` Nix release and unpack it into ``dest``.

    Revert is a deliberate no-op: the scratch directory is consumed by the
    move into ``/nix`` and nothing outside it is touched.

    Attributes:
        url_or_path: URL (http, https, file) or local path of the tarball.
        dest: Scratch directory to unpack into.
        proxy: Optional proxy URL.
        ssl_cert_file: Optional CA bundle.
    """

    action_tag = "fetch_and_unpack_nix"

    url_or_path: str
    dest: Path
    proxy: str | None = None
    ssl_cert_file: Path | None = None

    @classmethod
    async def plan(
        cls,
        url_or_path: str,
        dest: Path | str,
        proxy: str | None = None,
        ssl_cert_file: Path | None = None,
    ) -> StatefulAction[Self]:
        """Validate the source, proxy and CA bundle.

        Raises:
            ActionError: If a scheme is unsupported or the CA bundle is unreadable.
        """
        try:
            validate_url_or_path(url_or_path)
        except UnknownUrlScheme as e:
            raise cls.error(e) from e

        if proxy is not None and urlparse(proxy).scheme not in PROXY_SCHEMES:
            raise cls.error(Custom(UnknownProxySchemeError(proxy)))

        if ssl_cert_file is not None:
            try:
                ssl.create_default_context(cafile=str(ssl_cert_file))
            except (OSError, ssl.SSLError) as e:
                raise cls.error(IoFailure("load certificate", ssl_cert_file, e)) from e

        return StatefulAction.uncompleted(cls(url_or_path, Path(dest), proxy, ssl_cert_file))

    def tracing_synopsis(self) -> str:
        return f"Fetch `{self.url_or_path}` to `{self.dest}`"

    def tracing_context(self) -> dict[str, str]:
        context = {"url_or_path": self.url_or_path, "dest": str(self.dest)}
        if self.proxy is not None:
            context["proxy"] = self.proxy
        if self.ssl_cert_file is not None:
            context["ssl_cert_file"] = str(self.ssl_cert_file)
        return context

    def execute_description(self) -> list[ActionDescription]:
        return [ActionDescription(self.tracing_synopsis())]

    def revert_description(self) -> list[ActionDescription]:
        return []

    async def execute(self) -> None:
        try:
            data = await fetch_bytes(self.url_or_path, self.proxy, self.ssl_cert_file)
        except httpx.HTTPError as e:
            raise Custom(e) from e

        logger.debug("Unpacking %d bytes into `%s`", len(data), self.dest)
        await asyncio.to_thread(self._unpack, data)

    def _unpack(self, data: bytes) -> None:
        try:
            self.dest.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailure("create directory", self.dest, e) from e
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
                archive.extractall(self.dest, filter="tar")
        except (tarfile.TarError, OSError) as e:
            raise Custom(UnarchiveError(f"Unarchiving into `{self.dest}` failed: {e}")) from e

    async def revert(self) -> None:
        pass

    def to_dict(self) -> dict[str, Any]:
        return {
            "url_or_path": self.url_or_path,
            "dest": str(self.dest),
            "proxy": self.proxy,
            "ssl_cert_file": str(self.ssl_cert_file) if self.ssl_cert_file else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        ssl_cert_file = data.get("ssl_cert_file")
        return cls(
            url_or_path=data["url_or_path"],
            dest=Path(data["dest"]),
            proxy=data.get("proxy"),
            ssl_cert_file=Path(ssl_cert_file) if ssl_cert_file else None,
        )
