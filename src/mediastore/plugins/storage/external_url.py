"""External URL passthrough: objects live on a host this service does not manage."""

from __future__ import annotations

import logging

from mediastore.errors import ConfigurationError, NetworkError, UnsupportedProviderError
from mediastore.interfaces import StorageAdapter
from mediastore.models.config import ExternalUrlConfig, ProviderConfig
from mediastore.models.storage import UploadFile, UploadResult
from mediastore.net.fetcher import RemoteResponse, SecureRemoteFetcher
from mediastore.path_template import normalize_key, to_public_url
from mediastore.plugins.storage import check_file_size

logger = logging.getLogger(__name__)


class ExternalUrlStorage(StorageAdapter):
    """Returns ``baseUrl + key`` as the object reference without moving bytes.

    The base URL is admin-supplied, so its reachability check goes through
    ``SecureRemoteFetcher`` like any other attacker-influenced URL.
    """

    @classmethod
    def create(
        cls,
        config: ProviderConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        fetcher: SecureRemoteFetcher | None = None,
        **_: object,
    ) -> ExternalUrlStorage:
        if not isinstance(config, ExternalUrlConfig):
            raise UnsupportedProviderError(
                f"EXTERNAL_URL provider takes no settings, got {type(config).__name__}"
            )
        return cls(base_url=base_url, max_file_size=max_file_size, fetcher=fetcher)

    def __init__(
        self,
        *,
        base_url: str,
        max_file_size: int | None = None,
        fetcher: SecureRemoteFetcher | None = None,
    ) -> None:
        self._base_url = base_url
        self._max_file_size = max_file_size
        self._fetcher = fetcher or SecureRemoteFetcher()
        self._shutdown_called = False

    async def upload(self, key: str, file: UploadFile) -> UploadResult:
        self._ensure_open()
        check_file_size(file, self._max_file_size)
        normalized = normalize_key(key)
        if not self._base_url:
            raise ConfigurationError("EXTERNAL_URL provider needs baseUrl", key=normalized)
        await self._check_reachable(normalized)
        return UploadResult(
            key=normalized,
            url=to_public_url(self._base_url, normalized),
            size=file.size,
        )

    async def delete(self, key: str) -> None:
        # The external host owns its objects.
        self._ensure_open()
        normalize_key(key)

    async def exists(self, key: str) -> bool:
        self._ensure_open()
        normalize_key(key)
        return False

    async def _check_reachable(self, key: str) -> RemoteResponse:
        response = await self._fetcher.head(self._base_url)
        if response.status == 405:
            response = await self._fetcher.fetch(self._base_url)
        if response.status >= 500:
            raise NetworkError(
                f"External URL host answered HTTP {response.status}",
                key=key,
            )
        logger.debug("External URL base reachable: HTTP %d", response.status)
        return response

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        self._shutdown_called = True

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")
