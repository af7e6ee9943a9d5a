"""Error taxonomy for storage operations.

Errors are classified by *kind* so callers never need backend-specific
knowledge:

- ValidationError: malformed input, never retried.
- ConfigurationError: bad or rejected credentials/settings, never retried.
- NetworkError: timeouts, DNS failures, resets. Callers may retry with backoff.
- SecurityRejectedError: a remote fetch was blocked. Never retried.
- ConflictError: backend-side conflict. Callers may retry once with fresh state.
- NotFoundError: target absent. Deletes treat this as success.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class FetchStage(StrEnum):
    """Stages of a guarded remote fetch, used to tag rejections."""

    VALIDATE_URL = "validate_url"
    RESOLVE_DNS = "resolve_dns"
    CHECK_RESERVED = "check_reserved"
    CONNECT = "connect"
    STREAM = "stream"
    REDIRECT = "redirect"


class StorageError(Exception):
    """Base exception for all storage errors.

    The facade fills in ``provider_type`` and ``operation`` on the way out;
    upload failures additionally carry the ``key`` that was attempted. Only
    errors raised by the backend write itself set ``attempted_key``: an object
    may exist under that key even though the upload failed.
    """

    def __init__(
        self,
        message: str,
        *,
        provider_type: str | None = None,
        operation: str | None = None,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider_type = provider_type
        self.operation = operation
        self.key = key
        self.attempted_key: str | None = None
        if cause is not None:
            self.__cause__ = cause

    def with_context(
        self,
        *,
        provider_type: str | None = None,
        operation: str | None = None,
        key: str | None = None,
    ) -> StorageError:
        """Fill in missing context fields and return self for re-raising."""
        if self.provider_type is None:
            self.provider_type = provider_type
        if self.operation is None:
            self.operation = operation
        if self.key is None:
            self.key = key
        return self

    def __str__(self) -> str:
        context = [
            f"{name}={value}"
            for name, value in (
                ("provider", self.provider_type),
                ("operation", self.operation),
            )
            if value
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ValidationError(StorageError):
    """Malformed request: bad template, oversized file, bad URL, bad key."""


class InvalidTemplateError(ValidationError):
    """Path template has an unknown placeholder or renders an empty segment."""


class FileTooLargeError(ValidationError):
    """Payload exceeds the provider's maxFileSize."""

    def __init__(self, size: int, limit: int, **kwargs: Any) -> None:
        super().__init__(
            f"File size {size} bytes exceeds limit of {limit} bytes",
            **kwargs,
        )
        self.size = size
        self.limit = limit


class PathTraversalError(ValidationError):
    """Object key would resolve outside the backend root."""


class UnsupportedProviderError(ValidationError):
    """Provider type is unknown or its config does not match the type."""


class ConfigurationError(StorageError):
    """Missing or rejected credentials/settings for the selected backend."""


class NetworkError(StorageError):
    """Timeout, DNS failure, connection reset or backend unavailability."""

    def __init__(self, message: str, *, stage: FetchStage | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage


class SecurityRejectedError(StorageError):
    """A remote fetch was blocked for security reasons."""

    def __init__(self, message: str, *, stage: FetchStage, url: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage
        self.url = url


class UnsafeUrlError(SecurityRejectedError):
    """URL scheme, credentials or hostname are not allowed."""


class BlockedAddressError(SecurityRejectedError):
    """Host resolves to a loopback/private/reserved address."""


class ResponseTooLargeError(SecurityRejectedError):
    """Response body exceeded the byte cap."""


class TooManyRedirectsError(SecurityRejectedError):
    """Redirect chain exceeded the configured bound."""


class ConflictError(StorageError):
    """Backend-side conflict; callers may retry once with refreshed state."""


class KeyExhaustionError(ConflictError):
    """No free object key found within the attempt bound."""

    def __init__(self, candidate_key: str, attempts: int) -> None:
        super().__init__(
            f"Could not find a free key for {candidate_key!r} after {attempts} attempts",
            key=candidate_key,
        )
        self.attempts = attempts


class CommitConflictError(ConflictError):
    """Git commit was rejected because the base SHA moved."""


class NotFoundError(StorageError):
    """Target object is absent."""


class ConnectivityCheckError(StorageError):
    """Upload-then-delete probe failed; ``phase`` is "upload" or "delete"."""

    def __init__(self, message: str, *, phase: str, cause: BaseException, **kwargs: Any) -> None:
        super().__init__(message, cause=cause, **kwargs)
        self.phase = phase

    def __str__(self) -> str:
        return self.message


class MediaSyncError(StorageError):
    """One or more items of a media sync run failed."""

    def __init__(self, failed: int, total: int) -> None:
        super().__init__(f"{failed} of {total} files failed to sync", operation="sync")
        self.failed = failed
        self.total = total
