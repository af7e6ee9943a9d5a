"""Outbound network access for attacker-influenced URLs."""

from mediastore.net.addresses import check_addresses, is_local_hostname, is_reserved_address
from mediastore.net.fetcher import (
    PinnedResolver,
    RemoteResponse,
    SecureRemoteFetcher,
    validate_url,
)

__all__ = [
    "PinnedResolver",
    "RemoteResponse",
    "SecureRemoteFetcher",
    "check_addresses",
    "is_local_hostname",
    "is_reserved_address",
    "validate_url",
]
