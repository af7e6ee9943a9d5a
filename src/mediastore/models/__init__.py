"""Data models for mediastore."""

from mediastore.models.config import (
    DEFAULT_PATH_TEMPLATE,
    AppConfig,
    ExternalUrlConfig,
    GithubPagesConfig,
    LocalConfig,
    ProviderConfig,
    RemoteFetchConfig,
    S3Config,
    StorageProvider,
    StorageSettings,
    SyncSettings,
    VercelBlobConfig,
    config_model_for,
    parse_provider_config,
)
from mediastore.models.enums import StorageOperation, StorageProviderType
from mediastore.models.storage import (
    ConnectivityCheckRequest,
    DeleteRequest,
    PersistentMediaRecord,
    UploadFile,
    UploadRequest,
    UploadResult,
)

__all__ = [
    "DEFAULT_PATH_TEMPLATE",
    "AppConfig",
    "ConnectivityCheckRequest",
    "DeleteRequest",
    "ExternalUrlConfig",
    "GithubPagesConfig",
    "LocalConfig",
    "PersistentMediaRecord",
    "ProviderConfig",
    "RemoteFetchConfig",
    "S3Config",
    "StorageOperation",
    "StorageProvider",
    "StorageProviderType",
    "StorageSettings",
    "SyncSettings",
    "UploadFile",
    "UploadRequest",
    "UploadResult",
    "VercelBlobConfig",
    "config_model_for",
    "parse_provider_config",
]
