"""Shared aiohttp plumbing for REST-backed adapters."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import aiohttp

from mediastore.errors import (
    ConfigurationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    StorageError,
    ValidationError,
)

HttpSessionFactory = Callable[[aiohttp.ClientTimeout], Any]

_MAX_DETAIL_CHARS = 300


def default_http_session_factory(timeout: aiohttp.ClientTimeout) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(timeout=timeout)


def status_error(status: int, message: str, *, key: str | None = None) -> StorageError:
    """Classify a non-success HTTP status."""
    if status in (401, 403):
        return ConfigurationError(message, key=key)
    if status == 404:
        return NotFoundError(message, key=key)
    if status in (409, 412):
        return ConflictError(message, key=key)
    if status == 429 or status >= 500:
        return NetworkError(message, key=key)
    if 400 <= status < 500:
        return ValidationError(message, key=key)
    return StorageError(message, key=key)


def transport_error(exc: BaseException, message: str, *, key: str | None = None) -> NetworkError:
    return NetworkError(f"{message}: {type(exc).__name__}: {exc}", key=key, cause=exc)


async def response_detail(resp: Any) -> str:
    """Short error text from a response body, for messages."""
    try:
        text = await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return ""
    text = " ".join(text.split())
    return text[:_MAX_DETAIL_CHARS]
