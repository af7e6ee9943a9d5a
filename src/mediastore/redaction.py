"""Credential redaction for error messages, logs and config payloads."""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import SplitResult, urlsplit, urlunsplit

from pydantic import BaseModel

REDACTED = "***redacted***"
_SENSITIVE_KEY_TOKENS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "access_key",
    "accesskey",
    "credential",
    "private_key",
    "passphrase",
    "bearer",
    "authorization",
    "signature",
)
_MIN_SECRET_LEN = 4

# Credential-shaped substrings that may show up in backend error text.
_TOKEN_PATTERNS = (
    # AWS access key ids
    re.compile(r"\b(?:AKIA|ASIA|AGPA|AIDA|AROA|ANPA|ANVA)[A-Z0-9]{16}\b"),
    # GitHub tokens
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"),
    # Vercel Blob read/write tokens
    re.compile(r"\bvercel_blob_rw_[A-Za-z0-9_]+\b"),
)
_AUTH_SCHEME_RE = re.compile(r"(?i)\b(bearer|token|basic)\s+[A-Za-z0-9._~+/=-]{8,}")
_AMZ_QUERY_RE = re.compile(r"(?i)\b(X-Amz-(?:Signature|Credential|Security-Token))=[^&\s\"']+")
_KEY_VALUE_RE = re.compile(
    r"(?i)\b([\w-]*(?:secret|token|password|passwd|api[_-]?key|access[_-]?key(?:[_-]?id)?|signature)[\w-]*)"
    r"(\s*[=:]\s*[\"']?)([^\s\"'&,;]+)"
)
_URL_USERINFO_RE = re.compile(r"(?i)\b([a-z][a-z0-9+.-]*://)[^/\s:@]+(?::[^/\s@]*)?@")


def redact_url_credentials(url: str) -> str:
    """Redact username/password components from a URL string."""
    parts = urlsplit(url)
    if parts.username is None and parts.password is None:
        return url

    host = parts.hostname or ""
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    if parts.port is not None:
        host = f"{host}:{parts.port}"

    redacted = SplitResult(
        scheme=parts.scheme,
        netloc=f"{REDACTED}@{host}",
        path=parts.path,
        query=parts.query,
        fragment=parts.fragment,
    )
    return urlunsplit(redacted)


def is_sensitive_key(key: str) -> bool:
    """Return True when a config key holds a secret."""
    normalized = re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
    if normalized.endswith("_env"):
        return False
    return any(token in normalized for token in _SENSITIVE_KEY_TOKENS)


def redact_config(value: object, *, key: str | None = None) -> object:
    """Recursively redact sensitive values from config-like payloads."""
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, dict):
        return {
            nested_key: redact_config(nested_value, key=str(nested_key))
            for nested_key, nested_value in value.items()
        }
    if isinstance(value, list):
        return [redact_config(item, key=key) for item in value]
    if isinstance(value, str):
        if key is not None and is_sensitive_key(key):
            return REDACTED
        if key is not None and "url" in key.lower():
            return redact_url_credentials(value)
    return value


def secret_values(config: BaseModel | dict[str, object] | None) -> list[str]:
    """Collect the string values of sensitive fields in a config."""
    if config is None:
        return []
    payload = config.model_dump() if isinstance(config, BaseModel) else config
    found: list[str] = []
    for key, value in payload.items():
        if isinstance(value, str) and value and is_sensitive_key(str(key)):
            found.append(value)
        elif isinstance(value, dict):
            found.extend(secret_values(value))
    return found


def scrub_secrets(text: str, secrets: Iterable[str] = ()) -> str:
    """Remove known secret values and credential-shaped substrings from text."""
    scrubbed = text
    known = sorted({s for s in secrets if s and len(s) >= _MIN_SECRET_LEN}, key=len, reverse=True)
    for secret in known:
        scrubbed = scrubbed.replace(secret, REDACTED)
    scrubbed = _URL_USERINFO_RE.sub(lambda m: f"{m.group(1)}{REDACTED}@", scrubbed)
    for pattern in _TOKEN_PATTERNS:
        scrubbed = pattern.sub(REDACTED, scrubbed)
    scrubbed = _AUTH_SCHEME_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", scrubbed)
    scrubbed = _AMZ_QUERY_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", scrubbed)
    scrubbed = _KEY_VALUE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", scrubbed)
    return scrubbed
