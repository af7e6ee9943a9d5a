"""Storage request and result models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mediastore.models.config import ProviderFields, StorageProvider


class UploadFile(BaseModel):
    """In-memory payload handed to an upload. Owned by the call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    buffer: bytes
    filename: str = Field(min_length=1)
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.buffer)


class UploadRequest(ProviderFields):
    """Upload addressed at an explicit provider (saved or not)."""

    file: UploadFile
    ensure_unique_name: bool = False

    @classmethod
    def for_provider(
        cls, provider: StorageProvider, file: UploadFile, *, ensure_unique_name: bool = False
    ) -> UploadRequest:
        return cls(
            type=provider.type,
            base_url=provider.base_url,
            path_template=provider.path_template,
            max_file_size=provider.max_file_size,
            config=provider.config,
            file=file,
            ensure_unique_name=ensure_unique_name,
        )


class DeleteRequest(ProviderFields):
    """Delete by object key (never by URL)."""

    key: str = Field(min_length=1)

    @classmethod
    def for_provider(cls, provider: StorageProvider, key: str) -> DeleteRequest:
        return cls(
            type=provider.type,
            base_url=provider.base_url,
            path_template=provider.path_template,
            max_file_size=provider.max_file_size,
            config=provider.config,
            key=key,
        )


class ConnectivityCheckRequest(ProviderFields):
    """Provider settings to verify with an upload-then-delete round trip."""

    skip: bool = False

    @classmethod
    def for_provider(cls, provider: StorageProvider, *, skip: bool = False) -> ConnectivityCheckRequest:
        return cls(
            type=provider.type,
            base_url=provider.base_url,
            path_template=provider.path_template,
            max_file_size=provider.max_file_size,
            config=provider.config,
            skip=skip,
        )


class UploadResult(BaseModel):
    """Result of a storage upload."""

    key: str
    url: str
    size: int
    etag: str | None = None


class PersistentMediaRecord(BaseModel):
    """Media row fields the sync job needs from the persistence layer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int | str
    storage_url: str
    persistent_path: str | None = None
