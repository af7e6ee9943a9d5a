"""Hostname and IP address rules for outbound fetches."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from collections.abc import Awaitable, Callable, Iterable

from mediastore.errors import BlockedAddressError, FetchStage, NetworkError

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
HostResolver = Callable[[str, int], Awaitable[list[str]]]

_LOCAL_HOSTNAMES = frozenset(
    {
        "localhost",
        "localhost.localdomain",
        "ip6-localhost",
        "ip6-loopback",
    }
)

_BLOCKED_V4 = tuple(
    ipaddress.IPv4Network(net)
    for net in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.0.0.0/24",
        "192.0.2.0/24",
        "192.88.99.0/24",
        "192.168.0.0/16",
        "198.18.0.0/15",
        "198.51.100.0/24",
        "203.0.113.0/24",
        "224.0.0.0/4",
        "240.0.0.0/4",
        "255.255.255.255/32",
    )
)

_BLOCKED_V6 = tuple(
    ipaddress.IPv6Network(net)
    for net in (
        "::/128",
        "::1/128",
        "fc00::/7",
        "fe80::/10",
        "ff00::/8",
        "2001:db8::/32",
    )
)


def is_local_hostname(host: str) -> bool:
    """True for ``localhost`` and its common aliases."""
    name = host.strip().rstrip(".").lower()
    return name in _LOCAL_HOSTNAMES or name.endswith(".localhost")


def parse_ip(host: str) -> IPAddress | None:
    """Parse a literal IP host (brackets and zone ids allowed), else None."""
    candidate = host.strip().strip("[]").split("%", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def is_reserved_address(ip: IPAddress) -> bool:
    """True when ``ip`` is loopback, private, link-local, multicast or otherwise non-public."""
    if isinstance(ip, ipaddress.IPv6Address):
        mapped = ip.ipv4_mapped
        if mapped is not None:
            return is_reserved_address(mapped)
        if any(ip in net for net in _BLOCKED_V6):
            return True
    elif any(ip in net for net in _BLOCKED_V4):
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def check_addresses(host: str, addresses: Iterable[str]) -> list[str]:
    """Return the addresses if none are reserved.

    Every record is checked, so one public A record cannot mask a private one.

    Raises:
        BlockedAddressError: Any address is reserved, or none were given.
    """
    checked = list(addresses)
    if not checked:
        raise BlockedAddressError(
            f"Host {host} did not resolve to any address",
            stage=FetchStage.CHECK_RESERVED,
        )
    for address in checked:
        ip = parse_ip(address)
        if ip is None or is_reserved_address(ip):
            raise BlockedAddressError(
                f"Host {host} resolves to a non-public address ({address})",
                stage=FetchStage.CHECK_RESERVED,
            )
    return checked


async def system_resolve(host: str, port: int) -> list[str]:
    """Resolve all A/AAAA records for ``host`` via the event loop's resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    seen: dict[str, None] = {}
    for _family, _type, _proto, _canon, sockaddr in infos:
        seen.setdefault(str(sockaddr[0]), None)
    return list(seen)


async def resolve_host(
    host: str,
    port: int,
    *,
    timeout_s: float,
    resolver: HostResolver = system_resolve,
) -> list[str]:
    """Resolve ``host`` once; literal IPs are returned as-is.

    Raises:
        NetworkError: DNS failure or timeout.
    """
    literal = parse_ip(host)
    if literal is not None:
        return [str(literal)]
    try:
        return await asyncio.wait_for(resolver(host, port), timeout=timeout_s)
    except TimeoutError as exc:
        raise NetworkError(
            f"DNS lookup for {host} timed out after {timeout_s}s",
            stage=FetchStage.RESOLVE_DNS,
            cause=exc,
        ) from exc
    except OSError as exc:
        raise NetworkError(
            f"DNS lookup for {host} failed: {exc}",
            stage=FetchStage.RESOLVE_DNS,
            cause=exc,
        ) from exc
