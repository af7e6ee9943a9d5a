"""Vercel Blob storage backend (REST API over aiohttp)."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any
from urllib.parse import quote

import aiohttp

from mediastore.errors import (
    ConfigurationError,
    StorageError,
    UnsupportedProviderError,
    ValidationError,
)
from mediastore.interfaces import StorageAdapter
from mediastore.models.config import ProviderConfig, StorageSettings, VercelBlobConfig
from mediastore.models.storage import UploadFile, UploadResult
from mediastore.path_template import join_prefix, to_public_url
from mediastore.plugins.storage import check_file_size
from mediastore.plugins.storage._http import (
    HttpSessionFactory,
    default_http_session_factory,
    response_detail,
    status_error,
    transport_error,
)

logger = logging.getLogger(__name__)

VERCEL_BLOB_API_URL = "https://blob.vercel-storage.com"
VERCEL_BLOB_API_VERSION = "7"

_MAX_AGE_RE = re.compile(r"max-age\s*=\s*(\d+)", re.IGNORECASE)


def cache_max_age(cache_control: str | None) -> int | None:
    """Seconds from a ``cacheControl`` setting: ``"3600"`` or ``"public, max-age=3600"``."""
    if not cache_control:
        return None
    value = cache_control.strip()
    if value.isdigit():
        return int(value)
    match = _MAX_AGE_RE.search(value)
    return int(match.group(1)) if match else None


class VercelBlobStorage(StorageAdapter):
    """Token-authenticated blob PUT/DELETE against the Vercel Blob API.

    The API may return a URL of its own for the stored blob; it is returned
    as-is, and the key stays the requested pathname.
    """

    @classmethod
    def create(
        cls,
        config: ProviderConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        settings: StorageSettings | None = None,
        http_session_factory: HttpSessionFactory | None = None,
        **_: object,
    ) -> VercelBlobStorage:
        if not isinstance(config, VercelBlobConfig):
            raise UnsupportedProviderError(
                f"VERCEL_BLOB provider needs VercelBlobConfig, got {type(config).__name__}"
            )
        return cls(
            config,
            base_url=base_url,
            max_file_size=max_file_size,
            settings=settings,
            session_factory=http_session_factory,
        )

    def __init__(
        self,
        config: VercelBlobConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        settings: StorageSettings | None = None,
        session_factory: HttpSessionFactory | None = None,
        api_url: str = VERCEL_BLOB_API_URL,
    ) -> None:
        self._config = config
        self._base_url = base_url
        self._max_file_size = max_file_size
        self._settings = settings or StorageSettings()
        self._session_factory = session_factory or default_http_session_factory
        self._api_url = api_url.rstrip("/")
        self._session: Any | None = None
        self._shutdown_called = False

    async def _ensure_session(self) -> Any:
        """Lazy-create HTTP session with timeout."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._settings.request_timeout_s)
            self._session = self._session_factory(timeout)
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "authorization": f"Bearer {self._config.token}",
            "x-api-version": VERCEL_BLOB_API_VERSION,
        }

    async def upload(self, key: str, file: UploadFile) -> UploadResult:
        self._ensure_open()
        check_file_size(file, self._max_file_size)
        pathname = join_prefix(self._config.base_path, key)
        headers = self._headers()
        headers.update(
            {
                "x-content-type": file.content_type,
                "x-add-random-suffix": "0",
                "x-allow-overwrite": "1",
                "x-vercel-blob-access": self._config.access,
            }
        )
        max_age = cache_max_age(self._config.cache_control)
        if max_age is not None:
            headers["x-cache-control-max-age"] = str(max_age)

        session = await self._ensure_session()
        url = f"{self._api_url}/{quote(pathname, safe='/')}"
        try:
            async with session.put(url, data=file.buffer, headers=headers) as resp:
                if resp.status != 200:
                    detail = await response_detail(resp)
                    raise status_error(
                        resp.status,
                        f"Vercel Blob upload failed: HTTP {resp.status} {detail}".rstrip(),
                        key=pathname,
                    )
                data = await resp.json()
        except StorageError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise transport_error(exc, "Vercel Blob upload failed", key=pathname) from exc

        if not isinstance(data, dict):
            raise ValidationError("Vercel Blob response is not a JSON object", key=pathname)
        returned_path = data.get("pathname")
        if isinstance(returned_path, str) and returned_path != pathname:
            logger.warning(
                "Vercel Blob stored %s under a different pathname: %s",
                pathname,
                returned_path,
            )
        blob_url = data.get("url")
        return UploadResult(
            key=pathname,
            url=blob_url if isinstance(blob_url, str) and blob_url else self._blob_url(pathname),
            size=file.size,
        )

    async def delete(self, key: str) -> None:
        self._ensure_open()
        pathname = join_prefix(self._config.base_path, key)
        session = await self._ensure_session()
        payload = {"urls": [self._blob_url(pathname)]}
        try:
            async with session.post(
                f"{self._api_url}/delete", json=payload, headers=self._headers()
            ) as resp:
                if resp.status in (200, 404):
                    return
                detail = await response_detail(resp)
                raise status_error(
                    resp.status,
                    f"Vercel Blob delete failed: HTTP {resp.status} {detail}".rstrip(),
                    key=pathname,
                )
        except StorageError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise transport_error(exc, "Vercel Blob delete failed", key=pathname) from exc

    async def exists(self, key: str) -> bool:
        self._ensure_open()
        pathname = join_prefix(self._config.base_path, key)
        session = await self._ensure_session()
        try:
            async with session.get(
                self._api_url, params={"url": self._blob_url(pathname)}, headers=self._headers()
            ) as resp:
                if resp.status == 200:
                    return True
                if resp.status == 404:
                    return False
                detail = await response_detail(resp)
                raise status_error(
                    resp.status,
                    f"Vercel Blob lookup failed: HTTP {resp.status} {detail}".rstrip(),
                    key=pathname,
                )
        except StorageError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise transport_error(exc, "Vercel Blob lookup failed", key=pathname) from exc

    def _blob_url(self, pathname: str) -> str:
        if not self._base_url:
            raise ConfigurationError(
                "VERCEL_BLOB provider needs baseUrl to address blobs by URL", key=pathname
            )
        return to_public_url(self._base_url, pathname)

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        self._shutdown_called = True
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")
