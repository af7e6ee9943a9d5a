"""SSRF-guarded HTTP fetcher for attacker-influenced URLs."""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlsplit

import aiohttp
from aiohttp.abc import AbstractResolver, ResolveResult

from mediastore.errors import (
    FetchStage,
    NetworkError,
    ResponseTooLargeError,
    TooManyRedirectsError,
    UnsafeUrlError,
    ValidationError,
)
from mediastore.models.config import RemoteFetchConfig
from mediastore.net.addresses import (
    HostResolver,
    check_addresses,
    is_local_hostname,
    parse_ip,
    resolve_host,
    system_resolve,
)
from mediastore.redaction import redact_url_credentials

logger = logging.getLogger(__name__)

SessionFactory = Callable[[AbstractResolver, aiohttp.ClientTimeout], Any]

_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FetchTarget:
    """A URL that passed scheme/credential/hostname checks."""

    url: str
    scheme: str
    host: str
    port: int


@dataclass(frozen=True)
class RemoteResponse:
    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class PinnedResolver(AbstractResolver):
    """aiohttp resolver that only answers for one host, with pre-checked addresses.

    The connector dials these addresses while the request keeps the original
    hostname for the Host header and TLS SNI.
    """

    def __init__(self, host: str, addresses: list[str]) -> None:
        self._host = host.lower()
        self._addresses = list(addresses)

    async def resolve(
        self, host: str, port: int = 0, family: socket.AddressFamily = socket.AF_INET
    ) -> list[ResolveResult]:
        if host.lower() != self._host:
            raise OSError(f"Refusing to resolve unexpected host {host!r}")
        results: list[ResolveResult] = []
        for address in self._addresses:
            addr_family = socket.AF_INET6 if ":" in address else socket.AF_INET
            if family not in (socket.AF_UNSPEC, addr_family):
                continue
            results.append(
                {
                    "hostname": host,
                    "host": address,
                    "port": port,
                    "family": addr_family,
                    "proto": 0,
                    "flags": socket.AI_NUMERICHOST,
                }
            )
        if not results:
            raise OSError(f"No pinned address for {host!r} in family {family!r}")
        return results

    async def close(self) -> None:
        return None


def default_session_factory(
    resolver: AbstractResolver, timeout: aiohttp.ClientTimeout
) -> aiohttp.ClientSession:
    connector = aiohttp.TCPConnector(resolver=resolver, use_dns_cache=False, force_close=True)
    return aiohttp.ClientSession(connector=connector, timeout=timeout)


def validate_url(url: str, *, https_only: bool = False) -> FetchTarget:
    """Check scheme, embedded credentials and hostname of ``url``.

    Raises:
        ValidationError: URL cannot be parsed.
        UnsafeUrlError: Disallowed scheme, credentials, or a localhost alias.
    """
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as exc:
        raise ValidationError(f"Malformed URL: {redact_url_credentials(url)!r}") from exc

    scheme = parts.scheme.lower()
    allowed = ("https",) if https_only else ("http", "https")
    if scheme not in allowed:
        raise UnsafeUrlError(
            f"URL scheme {scheme or '(none)'!r} is not allowed",
            stage=FetchStage.VALIDATE_URL,
            url=redact_url_credentials(url),
        )
    if parts.username is not None or parts.password is not None or "@" in parts.netloc:
        raise UnsafeUrlError(
            "URL must not carry embedded credentials",
            stage=FetchStage.VALIDATE_URL,
            url=redact_url_credentials(url),
        )
    host = parts.hostname
    if not host:
        raise ValidationError(f"URL has no host: {url!r}")
    if is_local_hostname(host):
        raise UnsafeUrlError(
            f"Host {host!r} is a loopback alias",
            stage=FetchStage.VALIDATE_URL,
            url=url,
        )
    return FetchTarget(
        url=url.strip(),
        scheme=scheme,
        host=host,
        port=port or (443 if scheme == "https" else 80),
    )


class SecureRemoteFetcher:
    """Fetch remote URLs while refusing internal addresses.

    Each hop: validate the URL, resolve DNS once, reject if any address is
    reserved, connect to the resolved address only, stream the body under a
    byte cap. Redirects are followed manually up to ``max_redirects`` and
    every target goes through the same checks.
    """

    def __init__(
        self,
        config: RemoteFetchConfig | None = None,
        *,
        resolver: HostResolver = system_resolve,
        session_factory: SessionFactory = default_session_factory,
    ) -> None:
        self._config = config or RemoteFetchConfig()
        self._resolver = resolver
        self._session_factory = session_factory

    @property
    def config(self) -> RemoteFetchConfig:
        return self._config

    async def head(self, url: str) -> RemoteResponse:
        return await self.fetch(url, method="HEAD")

    async def fetch(self, url: str, *, method: str = "GET") -> RemoteResponse:
        """Fetch ``url`` and return status, headers and the capped body.

        Raises:
            SecurityRejectedError: A hop was blocked (see ``FetchStage``).
            NetworkError: DNS, connect or read failure.
        """
        current = url
        redirects = 0
        while True:
            target = validate_url(current, https_only=self._config.https_only)
            addresses = await resolve_host(
                target.host,
                target.port,
                timeout_s=self._config.dns_timeout_s,
                resolver=self._resolver,
            )
            check_addresses(target.host, addresses)
            response = await self._request_pinned(method, target, addresses)

            location = response.header("Location")
            if response.status not in _REDIRECT_STATUSES or not location:
                return response

            if redirects >= self._config.max_redirects:
                raise TooManyRedirectsError(
                    f"Redirect limit ({self._config.max_redirects}) exceeded",
                    stage=FetchStage.REDIRECT,
                    url=redact_url_credentials(target.url),
                )
            redirects += 1
            current = urljoin(target.url, location)
            if response.status == 303 and method != "HEAD":
                method = "GET"
            logger.debug(
                "Following redirect %d/%d: %s",
                redirects,
                self._config.max_redirects,
                redact_url_credentials(current),
            )

    async def _request_pinned(
        self, method: str, target: FetchTarget, addresses: list[str]
    ) -> RemoteResponse:
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
        resolver = PinnedResolver(target.host, addresses)
        headers = {"User-Agent": self._config.user_agent}
        try:
            async with self._session_factory(resolver, timeout) as session:
                async with session.request(
                    method, target.url, headers=headers, allow_redirects=False
                ) as resp:
                    response_headers = {str(k): str(v) for k, v in resp.headers.items()}
                    if method == "HEAD" or resp.status in _REDIRECT_STATUSES:
                        body = b""
                    else:
                        body = await self._read_capped(resp, target)
                    return RemoteResponse(
                        url=target.url,
                        status=resp.status,
                        headers=response_headers,
                        body=body,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise NetworkError(
                f"Request to {target.host} failed: {type(exc).__name__}: {exc}",
                stage=FetchStage.CONNECT,
                cause=exc,
            ) from exc

    async def _read_capped(self, resp: Any, target: FetchTarget) -> bytes:
        cap = self._config.max_bytes
        declared = resp.content_length
        if declared is not None and declared > cap:
            raise ResponseTooLargeError(
                f"Declared Content-Length {declared} exceeds cap of {cap} bytes",
                stage=FetchStage.STREAM,
                url=target.url,
            )
        chunks: list[bytes] = []
        received = 0
        async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
            received += len(chunk)
            if received > cap:
                raise ResponseTooLargeError(
                    f"Response body exceeded cap of {cap} bytes",
                    stage=FetchStage.STREAM,
                    url=target.url,
                )
            chunks.append(chunk)
        return b"".join(chunks)
