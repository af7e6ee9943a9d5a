"""Interface definitions for storage adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mediastore.models.storage import UploadFile, UploadResult


class Shutdownable(ABC):
    """Async shutdown interface for managed components."""

    @abstractmethod
    async def shutdown(self, timeout: float | None = None) -> None:
        """Release resources (HTTP sessions, clients)."""
        raise NotImplementedError


class StorageAdapter(Shutdownable, ABC):
    """One backend's upload/delete/exists over object keys.

    Adapters are created per call by the facade and used as async context
    managers so sessions never outlive the operation.
    """

    @classmethod
    @abstractmethod
    def create(
        cls,
        config: Any,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        **runtime: Any,
    ) -> StorageAdapter:
        """Build the adapter from validated provider settings.

        ``runtime`` carries shared collaborators (settings, sessions, fetcher,
        clock); adapters take what they use and ignore the rest.
        """
        raise NotImplementedError

    @abstractmethod
    async def upload(self, key: str, file: UploadFile) -> UploadResult:
        """Store ``file`` under ``key``.

        Implementation notes:
        - MUST reject payloads above the provider's max file size, never truncate
        - The returned key is what ``delete`` accepts (prefixes included)
        - Raise the most specific ``StorageError`` kind for backend failures
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the object at ``key``.

        Must be idempotent: deleting a missing object should succeed.
        """
        raise NotImplementedError

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if an object is already stored at ``key``."""
        raise NotImplementedError

    async def __aenter__(self) -> StorageAdapter:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()
