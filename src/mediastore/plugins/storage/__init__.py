"""Storage adapters, one per provider type."""

from __future__ import annotations

from typing import assert_never

from mediastore.errors import FileTooLargeError
from mediastore.interfaces import StorageAdapter
from mediastore.models.enums import StorageProviderType
from mediastore.models.storage import UploadFile


def check_file_size(file: UploadFile, max_file_size: int | None) -> None:
    """Raise when the payload is above the provider limit."""
    if max_file_size is not None and file.size > max_file_size:
        raise FileTooLargeError(file.size, max_file_size)


def adapter_class_for(provider_type: StorageProviderType) -> type[StorageAdapter]:
    """Return the adapter class for ``provider_type``."""
    from mediastore.plugins.storage.external_url import ExternalUrlStorage
    from mediastore.plugins.storage.github_pages import GithubPagesStorage
    from mediastore.plugins.storage.local import LocalStorage
    from mediastore.plugins.storage.s3 import S3Storage
    from mediastore.plugins.storage.vercel_blob import VercelBlobStorage

    match provider_type:
        case StorageProviderType.LOCAL:
            return LocalStorage
        case StorageProviderType.AWS_S3:
            return S3Storage
        case StorageProviderType.VERCEL_BLOB:
            return VercelBlobStorage
        case StorageProviderType.GITHUB_PAGES:
            return GithubPagesStorage
        case StorageProviderType.EXTERNAL_URL:
            return ExternalUrlStorage
        case _:
            assert_never(provider_type)


__all__ = ["adapter_class_for", "check_file_size"]
