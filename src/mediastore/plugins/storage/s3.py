"""S3-compatible storage backend."""

from __future__ import annotations

import logging
from typing import Any

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    NoCredentialsError,
    ReadTimeoutError,
)

from mediastore.errors import (
    ConfigurationError,
    ConflictError,
    NetworkError,
    StorageError,
    UnsupportedProviderError,
    ValidationError,
)
from mediastore.interfaces import StorageAdapter
from mediastore.models.config import ProviderConfig, S3Config, StorageSettings
from mediastore.models.storage import UploadFile, UploadResult
from mediastore.path_template import join_prefix, to_public_url
from mediastore.plugins.storage import check_file_size

logger = logging.getLogger(__name__)

_AUTH_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AllAccessDisabled",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "ExpiredToken",
        "InvalidToken",
        "TokenRefreshRequired",
        "NoSuchBucket",
        "AuthorizationHeaderMalformed",
        "PermanentRedirect",
    }
)
_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3Storage(StorageAdapter):
    """Stores objects in an S3-compatible bucket with one PUT per object."""

    @classmethod
    def create(
        cls,
        config: ProviderConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        settings: StorageSettings | None = None,
        s3_session: Any | None = None,
        **_: object,
    ) -> S3Storage:
        if not isinstance(config, S3Config):
            raise UnsupportedProviderError(
                f"AWS_S3 provider needs S3Config, got {type(config).__name__}"
            )
        return cls(
            config,
            base_url=base_url,
            max_file_size=max_file_size,
            settings=settings,
            session=s3_session,
        )

    def __init__(
        self,
        config: S3Config,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        settings: StorageSettings | None = None,
        session: Any | None = None,
    ) -> None:
        self._config = config
        self._base_url = base_url
        self._max_file_size = max_file_size
        self._settings = settings or StorageSettings()
        self._session = session or aioboto3.Session()
        self._shutdown_called = False

    def _client_kwargs(self) -> dict[str, Any]:
        timeout = self._settings.request_timeout_s
        kwargs: dict[str, Any] = {
            "region_name": self._config.region,
            "aws_access_key_id": self._config.access_key_id,
            "aws_secret_access_key": self._config.secret_access_key,
            # No SDK-level retries: callers own the retry policy.
            "config": BotoConfig(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"total_max_attempts": 1},
                s3={"addressing_style": "path" if self._config.force_path_style else "auto"},
            ),
        }
        if self._config.endpoint:
            kwargs["endpoint_url"] = self._config.endpoint
        return kwargs

    def _full_key(self, key: str) -> str:
        return join_prefix(self._config.base_path, key)

    async def upload(self, key: str, file: UploadFile) -> UploadResult:
        self._ensure_open()
        check_file_size(file, self._max_file_size)
        full_key = self._full_key(key)
        put_kwargs: dict[str, Any] = {
            "Bucket": self._config.bucket,
            "Key": full_key,
            "Body": file.buffer,
            "ContentType": file.content_type,
        }
        if self._config.acl:
            put_kwargs["ACL"] = self._config.acl

        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                response = await s3.put_object(**put_kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _map_boto_error(exc, full_key, "upload") from exc

        etag = response.get("ETag") if isinstance(response, dict) else None
        return UploadResult(
            key=full_key,
            url=to_public_url(self._base_url, full_key),
            size=file.size,
            etag=etag.strip('"') if etag else None,
        )

    async def delete(self, key: str) -> None:
        self._ensure_open()
        full_key = self._full_key(key)
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                await s3.delete_object(Bucket=self._config.bucket, Key=full_key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return
            raise _map_boto_error(exc, full_key, "delete") from exc
        except BotoCoreError as exc:
            raise _map_boto_error(exc, full_key, "delete") from exc

    async def exists(self, key: str) -> bool:
        self._ensure_open()
        full_key = self._full_key(key)
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                await s3.head_object(Bucket=self._config.bucket, Key=full_key)
                return True
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return False
            raise _map_boto_error(exc, full_key, "exists") from exc
        except BotoCoreError as exc:
            raise _map_boto_error(exc, full_key, "exists") from exc

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        self._shutdown_called = True

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")


def _error_code(exc: ClientError) -> str:
    error = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
    return str(error.get("Code", ""))


def _http_status(exc: ClientError) -> int | None:
    meta = exc.response.get("ResponseMetadata", {}) if isinstance(exc.response, dict) else {}
    status = meta.get("HTTPStatusCode")
    return status if isinstance(status, int) else None


def _map_boto_error(exc: Exception, key: str, action: str) -> StorageError:
    """Classify a botocore failure into the storage error taxonomy."""
    if isinstance(exc, ClientError):
        code = _error_code(exc)
        status = _http_status(exc)
        message = f"S3 {action} of {key} failed: {code or 'error'} (HTTP {status})"
        if code in _AUTH_ERROR_CODES or status in (401, 403):
            return ConfigurationError(message, key=key, cause=exc)
        if status == 409 or code in ("OperationAborted", "ConditionalRequestConflict"):
            return ConflictError(message, key=key, cause=exc)
        if (status is not None and status >= 500) or code in ("SlowDown", "RequestTimeout"):
            return NetworkError(message, key=key, cause=exc)
        if status == 400:
            return ValidationError(message, key=key, cause=exc)
        return ConfigurationError(message, key=key, cause=exc)
    if isinstance(exc, NoCredentialsError):
        return ConfigurationError(
            f"S3 {action} of {key} failed: no credentials", key=key, cause=exc
        )
    if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError, BotoConnectionError)):
        return NetworkError(f"S3 {action} of {key} failed: {exc}", key=key, cause=exc)
    return StorageError(f"S3 {action} of {key} failed: {type(exc).__name__}", key=key, cause=exc)
