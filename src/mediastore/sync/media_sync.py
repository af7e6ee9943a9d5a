"""Mirror persistent media from storage URLs into a local directory.

This module is intended to be run via the CLI (`mediastore sync`).
"""

from __future__ import annotations

import asyncio
import hashlib
import itertools
import json
import logging
import os
import uuid
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from mediastore.errors import MediaSyncError, NetworkError, ValidationError
from mediastore.fs_utils import is_within, prune_empty_parents, write_atomic
from mediastore.models.config import SyncSettings
from mediastore.models.storage import PersistentMediaRecord
from mediastore.net.fetcher import SecureRemoteFetcher
from mediastore.redaction import scrub_secrets

logger = logging.getLogger("mediastore.media_sync")


class SyncOptions(BaseModel):
    """Options for the media sync workflow (CLI-facing)."""

    target_dir: Path
    concurrency: int = Field(default=16, ge=1, le=64)
    protected_files: frozenset[str] = frozenset()
    prune_stale: bool = True

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> SyncOptions:
        return cls(
            target_dir=Path(settings.target_dir),
            concurrency=settings.concurrency,
            protected_files=frozenset(settings.protected_files),
            prune_stale=settings.prune_stale,
        )


class MediaRecordSource(Protocol):
    """Read side of the persistence layer the sync job needs."""

    async def list_persistent_media(self) -> list[PersistentMediaRecord]:
        """Records with a persistent path, in priority order (first wins)."""
        ...


class ManifestRecordSource:
    """Media records from a YAML or JSON manifest file.

    Accepts a top-level list of records or a mapping with a ``media`` list.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._records: list[PersistentMediaRecord] | None = None

    async def __aenter__(self) -> ManifestRecordSource:
        self._records = await asyncio.to_thread(self._load)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._records = None

    async def list_persistent_media(self) -> list[PersistentMediaRecord]:
        if self._records is None:
            raise RuntimeError("ManifestRecordSource used outside its context")
        return list(self._records)

    def _load(self) -> list[PersistentMediaRecord]:
        try:
            with self._path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except OSError as exc:
            raise ValidationError(f"Cannot read media manifest {self._path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid media manifest {self._path}: {exc}") from exc

        items: Any = raw.get("media") if isinstance(raw, dict) else raw
        if items is None:
            return []
        if not isinstance(items, list):
            raise ValidationError(f"Media manifest {self._path} must hold a list of records")
        try:
            return [PersistentMediaRecord.model_validate(item) for item in items]
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid record in media manifest {self._path}: {exc}") from exc


@dataclass(frozen=True)
class _Counts:
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0

    def __add__(self, other: "_Counts") -> "_Counts":
        return _Counts(
            downloaded=self.downloaded + other.downloaded,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
        )


@dataclass(frozen=True)
class SyncSummary:
    run_id: str
    total: int
    downloaded: int
    skipped: int
    failed: int
    removed: int


def _log_json(level: int, message: str, payload: dict[str, object]) -> None:
    if "message" not in payload:
        payload = {"message": message, **payload}
    logger.log(level, json.dumps(payload, sort_keys=True, ensure_ascii=False))


def normalize_etag(etag: str | None) -> str | None:
    """Strip weak prefix and quotes from an ETag; lowercase it."""
    if not etag:
        return None
    value = etag.strip()
    if value[:2].upper() == "W/":
        value = value[2:]
    value = value.strip('"').lower()
    return value or None


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def normalize_persistent_path(raw_path: str) -> str | None:
    """Return a clean relative POSIX path, or None when it is unsafe."""
    replaced = raw_path.replace("\\", "/").strip()
    if not replaced or replaced.startswith("/"):
        return None
    if len(replaced) >= 2 and replaced[1] == ":" and replaced[0].isalpha():
        return None
    segments = replaced.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return None
    return str(PurePosixPath(*segments))


def select_sync_targets(records: Iterable[PersistentMediaRecord]) -> list[PersistentMediaRecord]:
    """Normalize paths and drop invalid or duplicate ones (first record wins)."""
    selected: dict[str, PersistentMediaRecord] = {}
    for record in records:
        if not record.persistent_path:
            continue
        normalized = normalize_persistent_path(record.persistent_path)
        if normalized is None:
            logger.warning(
                "Skip invalid persistent path on media #%s: %s", record.id, record.persistent_path
            )
            continue
        winner = selected.get(normalized)
        if winner is not None:
            logger.warning(
                "Duplicate persistent path %r on media #%s, keeping media #%s",
                normalized,
                record.id,
                winner.id,
            )
            continue
        selected[normalized] = record.model_copy(update={"persistent_path": normalized})
    return list(selected.values())


def _list_files(root: Path) -> list[str]:
    if not root.exists():
        return []
    files: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            full = Path(dirpath) / name
            files.append(full.relative_to(root).as_posix())
    return files


def cleanup_stale_files(root: Path, targets: set[str], protected: frozenset[str]) -> int:
    """Delete files under ``root`` that are neither targets nor protected."""
    removed = 0
    for relative in _list_files(root):
        if relative in protected or relative in targets:
            continue
        path = root.joinpath(*relative.split("/"))
        if not is_within(path, root):
            continue
        path.unlink(missing_ok=True)
        prune_empty_parents(path.parent, root)
        removed += 1
    return removed


def _local_md5(path: Path) -> str | None:
    if not path.is_file():
        return None
    return md5_hex(path.read_bytes())


def _write_target(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    write_atomic(path, data)


async def run_media_sync(
    opts: SyncOptions,
    source: AbstractAsyncContextManager[MediaRecordSource],
    *,
    fetcher: SecureRemoteFetcher | None = None,
) -> SyncSummary:
    """Run the media sync workflow.

    Raises:
        MediaSyncError: One or more items failed (after all were attempted).
    """
    run_id = str(uuid.uuid4())
    fetcher = fetcher or SecureRemoteFetcher()
    root = opts.target_dir.expanduser().resolve()
    await asyncio.to_thread(root.mkdir, parents=True, exist_ok=True)

    async with source as records_source:
        records = select_sync_targets(await records_source.list_persistent_media())

    targets = {record.persistent_path for record in records if record.persistent_path}
    removed = 0
    if opts.prune_stale:
        removed = await asyncio.to_thread(
            cleanup_stale_files, root, targets, opts.protected_files
        )

    total = len(records)
    cursor = itertools.count()

    async def worker() -> _Counts:
        counts = _Counts()
        while True:
            index = next(cursor)
            if index >= total:
                return counts
            counts = counts + await _sync_item(records[index], root, fetcher, run_id)

    worker_count = min(opts.concurrency, max(total, 1))
    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(worker()) for _ in range(worker_count)]
    totals = sum((task.result() for task in tasks), _Counts())

    summary = SyncSummary(
        run_id=run_id,
        total=total,
        downloaded=totals.downloaded,
        skipped=totals.skipped,
        failed=totals.failed,
        removed=removed,
    )
    _log_json(
        logging.INFO,
        "Media sync summary",
        {
            "event": "media_sync.summary",
            "run_id": run_id,
            "target_dir": str(root),
            "total": total,
            "downloaded": summary.downloaded,
            "skipped": summary.skipped,
            "failed": summary.failed,
            "removed": removed,
            "workers": worker_count,
        },
    )
    if summary.failed:
        raise MediaSyncError(summary.failed, total)
    return summary


async def _remote_etag(fetcher: SecureRemoteFetcher, url: str) -> str | None:
    try:
        response = await fetcher.head(url)
    except NetworkError:
        return None
    if not response.ok:
        return None
    return normalize_etag(response.header("ETag"))


async def _sync_item(
    record: PersistentMediaRecord,
    root: Path,
    fetcher: SecureRemoteFetcher,
    run_id: str,
) -> _Counts:
    assert record.persistent_path is not None
    output = root.joinpath(*record.persistent_path.split("/"))
    try:
        if not is_within(output, root):
            raise ValidationError(f"Path escapes target directory: {record.persistent_path}")

        local_etag = await asyncio.to_thread(_local_md5, output)
        remote_etag = await _remote_etag(fetcher, record.storage_url)
        if local_etag and remote_etag and local_etag == remote_etag:
            return _Counts(skipped=1)

        response = await fetcher.fetch(record.storage_url)
        if not response.ok:
            raise NetworkError(f"Download failed (HTTP {response.status})")
        if local_etag and local_etag == md5_hex(response.body):
            return _Counts(skipped=1)

        await asyncio.to_thread(_write_target, output, response.body)
        return _Counts(downloaded=1)
    except Exception as exc:
        _log_json(
            logging.WARNING,
            "Media sync failed for item",
            {
                "event": "media_sync.error",
                "run_id": run_id,
                "media_id": record.id,
                "persistent_path": record.persistent_path,
                "error_type": type(exc).__name__,
                "error": scrub_secrets(str(exc)),
            },
        )
        return _Counts(failed=1)
