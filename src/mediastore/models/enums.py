"""Centralized enums for type safety and IDE support."""

from enum import StrEnum
from typing import Annotated, Any

from pydantic import BeforeValidator


class StorageProviderType(StrEnum):
    """Closed set of storage backends.

    Adding a member without handling it in every ``match`` over this enum is
    flagged by the type checker through ``typing.assert_never``.
    """

    LOCAL = "LOCAL"
    AWS_S3 = "AWS_S3"
    VERCEL_BLOB = "VERCEL_BLOB"
    GITHUB_PAGES = "GITHUB_PAGES"
    EXTERNAL_URL = "EXTERNAL_URL"


class StorageOperation(StrEnum):
    """Operation names used for log context and error enrichment."""

    UPLOAD = "upload"
    DELETE = "delete"
    EXISTS = "exists"
    VERIFY = "verify"


def _validate_provider_type(value: Any) -> Any:
    """Accept provider types case-insensitively ("local", "aws_s3")."""
    if isinstance(value, str):
        return value.strip().upper()
    return value


StorageProviderTypeField = Annotated[StorageProviderType, BeforeValidator(_validate_provider_type)]
