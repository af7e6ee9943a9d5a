"""Fake DNS + HTTP for SecureRemoteFetcher.

``FakeWeb`` is both the host resolver and the session factory the fetcher
takes, so tests drive a real fetcher without sockets.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp
from aiohttp.abc import AbstractResolver

from mediastore.models.config import RemoteFetchConfig
from mediastore.net.fetcher import SecureRemoteFetcher


class _FakeContent:
    def __init__(self, body: bytes) -> None:
        self._body = body

    async def iter_chunked(self, n: int) -> AsyncIterator[bytes]:
        for start in range(0, len(self._body), n):
            yield self._body[start : start + n]


class FakeFetchResponse:
    def __init__(
        self,
        status: int = 200,
        *,
        body: bytes = b"",
        headers: Mapping[str, str] | None = None,
        content_length: int | None = -1,
    ) -> None:
        self.status = status
        self.headers = dict(headers or {})
        self.content = _FakeContent(body)
        # -1 means "declare the real length"
        self.content_length = len(body) if content_length == -1 else content_length

    async def __aenter__(self) -> FakeFetchResponse:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


@dataclass
class FetchRequest:
    method: str
    url: str
    headers: dict[str, str]
    resolver: AbstractResolver


class _FakeFetchSession:
    def __init__(self, web: FakeWeb, resolver: AbstractResolver) -> None:
        self._web = web
        self._resolver = resolver

    async def __aenter__(self) -> _FakeFetchSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        allow_redirects: bool = True,
    ) -> Any:
        assert allow_redirects is False, "fetcher must follow redirects itself"
        self._web.requests.append(FetchRequest(method, url, dict(headers or {}), self._resolver))
        route = self._web.routes.get((method, url), self._web.routes.get(("*", url)))
        if route is None:
            return FakeFetchResponse(404)
        if isinstance(route, BaseException):
            raise route
        return route


class FakeWeb:
    def __init__(self, dns: Mapping[str, list[str]] | None = None) -> None:
        self.dns: dict[str, list[str]] = dict(dns or {})
        self.routes: dict[tuple[str, str], FakeFetchResponse | BaseException] = {}
        self.requests: list[FetchRequest] = []
        self.lookups: list[str] = []
        self.timeouts: list[aiohttp.ClientTimeout] = []

    def route(
        self,
        url: str,
        *,
        status: int = 200,
        body: bytes = b"",
        headers: Mapping[str, str] | None = None,
        method: str = "*",
        content_length: int | None = -1,
    ) -> None:
        self.routes[(method, url)] = FakeFetchResponse(
            status, body=body, headers=headers, content_length=content_length
        )

    def fail(self, url: str, exc: BaseException, *, method: str = "*") -> None:
        self.routes[(method, url)] = exc

    async def resolve(self, host: str, port: int) -> list[str]:
        self.lookups.append(host)
        if host not in self.dns:
            raise OSError(f"Name or service not known: {host}")
        return list(self.dns[host])

    def session_factory(
        self, resolver: AbstractResolver, timeout: aiohttp.ClientTimeout
    ) -> _FakeFetchSession:
        self.timeouts.append(timeout)
        return _FakeFetchSession(self, resolver)

    def fetcher(self, config: RemoteFetchConfig | None = None) -> SecureRemoteFetcher:
        return SecureRemoteFetcher(
            config, resolver=self.resolve, session_factory=self.session_factory
        )
