"""Multi-backend object storage for CMS media."""

__version__ = "0.1.0"

# Export commonly used types
from mediastore.connectivity import ConnectivityProbe
from mediastore.errors import StorageError
from mediastore.facade import StorageFacade
from mediastore.models.enums import StorageProviderType
from mediastore.models.storage import (
    ConnectivityCheckRequest,
    DeleteRequest,
    UploadFile,
    UploadRequest,
    UploadResult,
)
from mediastore.net.fetcher import SecureRemoteFetcher

__all__ = [
    "ConnectivityCheckRequest",
    "ConnectivityProbe",
    "DeleteRequest",
    "SecureRemoteFetcher",
    "StorageError",
    "StorageFacade",
    "StorageProviderType",
    "UploadFile",
    "UploadRequest",
    "UploadResult",
    "__version__",
]
