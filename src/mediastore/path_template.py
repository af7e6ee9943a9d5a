"""Helpers for building object keys from path templates."""

from __future__ import annotations

import hashlib
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime

from mediastore.errors import InvalidTemplateError, PathTraversalError

PLACEHOLDERS = frozenset({"year", "month", "day", "filename", "basename", "ext", "hash"})

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")
_UNSAFE_CHARS_RE = re.compile(r"[^\w.-]+")
_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]:")
_BASE62_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


@dataclass(frozen=True)
class TemplateContext:
    """Inputs for rendering a path template."""

    now: datetime
    filename: str
    ext: str
    hash: str
    basename: str = ""


def _strip_control(value: str) -> str:
    return "".join(ch for ch in value if unicodedata.category(ch)[0] != "C")


def sanitize_segment(value: str) -> str:
    """Make a single path segment safe: no separators, no dot-only names."""
    cleaned = _UNSAFE_CHARS_RE.sub("_", _strip_control(value).strip())
    if not cleaned or set(cleaned) == {"."}:
        return "file"
    return cleaned


def split_filename(filename: str) -> tuple[str, str]:
    """Split an uploaded filename into (sanitized basename, lowercase ext without dot).

    Only the last path component is kept, so ``../../x.png`` becomes ``x``/``png``.
    """
    name = _strip_control(filename).replace("\\", "/").rsplit("/", 1)[-1].strip()
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem or set(stem) == {"."}:
        stem, ext = name, ""
    ext = re.sub(r"[^a-z0-9]+", "", ext.lower())
    return sanitize_segment(stem), ext


def short_hash(data: bytes) -> str:
    """SHA-256 of ``data`` in base62, first 8 characters."""
    num = int.from_bytes(hashlib.sha256(data).digest(), "big")
    digits = []
    while num:
        num, rem = divmod(num, 62)
        digits.append(_BASE62_CHARS[rem])
    encoded = "".join(reversed(digits)) or "0"
    return encoded[:8].rjust(8, "0")


def build_context(filename: str, data: bytes, now: datetime) -> TemplateContext:
    """Derive template inputs from an upload."""
    basename, ext = split_filename(filename)
    full_name = f"{basename}.{ext}" if ext else basename
    return TemplateContext(
        now=now,
        filename=full_name,
        ext=ext,
        hash=short_hash(data),
        basename=basename,
    )


def resolve_template(template: str, context: TemplateContext) -> str:
    """Render ``template`` into a relative object key.

    Raises:
        InvalidTemplateError: Unknown placeholder, stray brace, or empty/dot segment.
    """
    values = {
        "year": f"{context.now.year:04d}",
        "month": f"{context.now.month:02d}",
        "day": f"{context.now.day:02d}",
        "filename": context.filename,
        "basename": context.basename or split_filename(context.filename)[0],
        "ext": context.ext,
        "hash": context.hash,
    }

    unknown = [name for name in _PLACEHOLDER_RE.findall(template) if name not in PLACEHOLDERS]
    if unknown:
        raise InvalidTemplateError(f"Unknown placeholder in path template: {{{unknown[0]}}}")

    leftover = _PLACEHOLDER_RE.sub("", template)
    if "{" in leftover or "}" in leftover:
        raise InvalidTemplateError(f"Unbalanced brace in path template: {template!r}")

    rendered = _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)
    if "\\" in rendered:
        raise InvalidTemplateError(f"Backslash in path template: {template!r}")

    segments = rendered.strip().lstrip("/").split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise InvalidTemplateError(
                f"Path template {template!r} renders an empty or relative segment"
            )
    return "/".join(segments)


def normalize_key(key: str) -> str:
    """Validate a backend-relative object key.

    Raises:
        PathTraversalError: Absolute, drive-prefixed, backslashed or ``..`` keys.
    """
    raw = str(key).strip()
    if not raw or "\\" in raw or raw.startswith("/") or _DRIVE_PREFIX_RE.match(raw):
        raise PathTraversalError(f"Invalid object key: {key!r}", key=str(key))
    if any(unicodedata.category(ch) == "Cc" for ch in raw):
        raise PathTraversalError(f"Invalid object key: {key!r}", key=str(key))
    for part in raw.split("/"):
        if part in ("", ".", ".."):
            raise PathTraversalError(f"Invalid object key: {key!r}", key=str(key))
    return raw


def _clean_prefix(prefix: str | None) -> str:
    if not prefix:
        return ""
    parts = [part for part in prefix.replace("\\", "/").split("/") if part not in ("", ".")]
    if ".." in parts:
        raise PathTraversalError(f"Invalid base path: {prefix!r}")
    return "/".join(parts)


def join_prefix(prefix: str | None, key: str) -> str:
    """Prepend ``prefix`` to ``key`` unless the key already carries it."""
    normalized = normalize_key(key)
    cleaned = _clean_prefix(prefix)
    if not cleaned:
        return normalized
    if normalized == cleaned or normalized.startswith(f"{cleaned}/"):
        return normalized
    return f"{cleaned}/{normalized}"


def to_public_url(base_url: str, key: str) -> str:
    """Build the public URL for ``key`` under ``base_url``."""
    return f"{base_url.rstrip('/')}/{key.lstrip('/')}"


def insert_suffix(key: str, suffix: str) -> str:
    """Insert ``suffix`` before the extension of the key's last segment."""
    head, sep, name = key.rpartition("/")
    stem, dot, ext = name.rpartition(".")
    if dot and stem:
        name = f"{stem}{suffix}.{ext}"
    else:
        name = f"{name}{suffix}"
    return f"{head}{sep}{name}"
