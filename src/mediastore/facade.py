"""Single entry point for uploads and deletes across all providers."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from mediastore.errors import FileTooLargeError, StorageError
from mediastore.interfaces import StorageAdapter
from mediastore.logging_setup import storage_log_context
from mediastore.models.config import ProviderFields, RemoteFetchConfig, StorageSettings
from mediastore.models.enums import StorageOperation
from mediastore.models.storage import DeleteRequest, UploadRequest, UploadResult
from mediastore.net.fetcher import SecureRemoteFetcher
from mediastore.path_template import build_context, normalize_key, resolve_template
from mediastore.plugins.storage import adapter_class_for
from mediastore.plugins.storage._http import HttpSessionFactory
from mediastore.uniqueness import ensure_unique

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StorageFacade:
    """Upload and delete objects on any configured provider.

    Holds no per-call state: each operation builds its adapter, runs, and
    releases it. Errors keep their kind and gain provider/operation context.
    """

    def __init__(
        self,
        *,
        settings: StorageSettings | None = None,
        fetch_config: RemoteFetchConfig | None = None,
        clock: Clock | None = None,
        fetcher: SecureRemoteFetcher | None = None,
        s3_session: Any | None = None,
        http_session_factory: HttpSessionFactory | None = None,
    ) -> None:
        self._settings = settings or StorageSettings()
        self._clock = clock or _utc_now
        self._fetcher = fetcher or SecureRemoteFetcher(fetch_config)
        self._s3_session = s3_session
        self._http_session_factory = http_session_factory

    def open_adapter(self, provider: ProviderFields) -> StorageAdapter:
        """Build the adapter for ``provider.type``. Use it as an async context manager."""
        adapter_cls = adapter_class_for(provider.type)
        return adapter_cls.create(
            provider.config,
            base_url=provider.base_url,
            max_file_size=provider.max_file_size,
            settings=self._settings,
            fetcher=self._fetcher,
            s3_session=self._s3_session,
            http_session_factory=self._http_session_factory,
            clock=self._clock,
        )

    async def upload_object(self, request: UploadRequest) -> UploadResult:
        """Render the key, optionally make it unique, and store the file.

        Raises:
            FileTooLargeError: Before any backend connection is opened.
            StorageError: Any other failure, annotated with provider and operation.
        """
        operation = StorageOperation.UPLOAD
        key: str | None = None
        with storage_log_context(request.type, operation):
            try:
                file = request.file
                if request.max_file_size is not None and file.size > request.max_file_size:
                    raise FileTooLargeError(file.size, request.max_file_size)

                context = build_context(file.filename, file.buffer, self._clock())
                key = resolve_template(request.path_template, context)

                async with self.open_adapter(request) as adapter:
                    if request.ensure_unique_name:
                        key = await ensure_unique(
                            key,
                            adapter.exists,
                            max_attempts=self._settings.max_unique_attempts,
                        )
                    try:
                        result = await adapter.upload(key, file)
                    except StorageError as exc:
                        exc.attempted_key = key
                        raise
            except StorageError as exc:
                exc.with_context(provider_type=str(request.type), operation=str(operation), key=key)
                raise
            except Exception as exc:
                exc.add_note(f"storage provider={request.type} operation={operation} key={key}")
                raise

        logger.info(
            "Uploaded object",
            extra={"key": result.key, "size": result.size},
        )
        return result

    async def delete_object(self, request: DeleteRequest) -> None:
        """Delete by stored key. Missing objects are not an error."""
        operation = StorageOperation.DELETE
        with storage_log_context(request.type, operation):
            await self._annotated(
                request,
                operation,
                request.key,
                lambda adapter: adapter.delete(normalize_key(request.key)),
            )
        logger.info("Deleted object", extra={"key": request.key})

    async def object_exists(self, provider: ProviderFields, key: str) -> bool:
        operation = StorageOperation.EXISTS
        with storage_log_context(provider.type, operation):
            return await self._annotated(
                provider, operation, key, lambda adapter: adapter.exists(normalize_key(key))
            )

    async def _annotated(
        self,
        provider: ProviderFields,
        operation: StorageOperation,
        key: str | None,
        call: Callable[[StorageAdapter], Awaitable[T]],
    ) -> T:
        try:
            async with self.open_adapter(provider) as adapter:
                return await call(adapter)
        except StorageError as exc:
            exc.with_context(provider_type=str(provider.type), operation=str(operation), key=key)
            raise
        except Exception as exc:
            exc.add_note(f"storage provider={provider.type} operation={operation} key={key}")
            raise
