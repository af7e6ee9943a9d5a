"""Local filesystem storage backend."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from pathlib import Path

from mediastore.errors import (
    ConfigurationError,
    PathTraversalError,
    StorageError,
    UnsupportedProviderError,
    ValidationError,
)
from mediastore.fs_utils import prune_empty_parents, write_atomic
from mediastore.interfaces import StorageAdapter
from mediastore.models.config import LocalConfig, ProviderConfig
from mediastore.models.storage import UploadFile, UploadResult
from mediastore.path_template import normalize_key, to_public_url
from mediastore.plugins.storage import check_file_size

logger = logging.getLogger(__name__)

_STORE_ATTEMPTS = 3


class LocalStorage(StorageAdapter):
    """Stores objects as files under a root directory.

    Writes go to a temp file in the target directory and are renamed into
    place, so readers never see a partial file.
    """

    @classmethod
    def create(
        cls,
        config: ProviderConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        **_: object,
    ) -> LocalStorage:
        if not isinstance(config, LocalConfig):
            raise UnsupportedProviderError(
                f"LOCAL provider needs LocalConfig, got {type(config).__name__}"
            )
        return cls(config, base_url=base_url, max_file_size=max_file_size)

    def __init__(
        self,
        config: LocalConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        prune_empty_dirs: bool = True,
    ) -> None:
        self.root = Path(config.root_dir).expanduser().resolve()
        self._create_dirs = config.create_dir_if_not_exists
        self._file_mode = config.file_mode
        self._dir_mode = config.dir_mode
        self._base_url = base_url
        self._max_file_size = max_file_size
        self._prune_empty_dirs = prune_empty_dirs
        self._shutdown_called = False

    async def upload(self, key: str, file: UploadFile) -> UploadResult:
        self._ensure_open()
        check_file_size(file, self._max_file_size)
        normalized = normalize_key(key)
        dest = self._full_dest_path(normalized)
        try:
            etag = await asyncio.to_thread(self._store, dest, file.buffer)
        except OSError as exc:
            raise _map_os_error(exc, normalized, "write") from exc
        logger.debug("Stored %d bytes at %s", file.size, dest)
        return UploadResult(
            key=normalized,
            url=to_public_url(self._base_url, normalized),
            size=file.size,
            etag=etag,
        )

    async def delete(self, key: str) -> None:
        self._ensure_open()
        normalized = normalize_key(key)
        path = self._full_dest_path(normalized)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as exc:
            raise _map_os_error(exc, normalized, "delete") from exc
        if self._prune_empty_dirs:
            await asyncio.to_thread(self._prune_parents, path.parent)

    async def exists(self, key: str) -> bool:
        self._ensure_open()
        path = self._full_dest_path(normalize_key(key))
        return await asyncio.to_thread(path.exists)

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        self._shutdown_called = True

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")

    def _full_dest_path(self, key: str) -> Path:
        dest = self.root.joinpath(*key.split("/")).resolve()
        # resolve() follows symlinks, so a linked directory cannot escape the root.
        if dest == self.root or not dest.is_relative_to(self.root):
            raise PathTraversalError(f"Key {key!r} resolves outside the storage root", key=key)
        return dest

    def _prepare_parent(self, parent: Path) -> None:
        if not self.root.exists():
            if not self._create_dirs:
                raise ConfigurationError(f"Storage root does not exist: {self.root}")
            self._make_dir(self.root, parents=True)
        elif not self.root.is_dir():
            raise ConfigurationError(f"Storage root is not a directory: {self.root}")

        current = self.root
        for part in parent.relative_to(self.root).parts:
            current = current / part
            if current.is_dir():
                continue
            if not self._create_dirs:
                raise ConfigurationError(f"Directory does not exist: {current}")
            self._make_dir(current, parents=False)

    def _store(self, dest: Path, data: bytes) -> str:
        # A concurrent delete may prune the parent between mkdir and the write.
        attempt = 1
        while True:
            self._prepare_parent(dest.parent)
            try:
                return self._write_atomic(dest, data)
            except FileNotFoundError:
                if attempt >= _STORE_ATTEMPTS:
                    raise
                attempt += 1
                logger.debug("Parent of %s vanished during write, recreating", dest)

    def _make_dir(self, path: Path, *, parents: bool) -> None:
        path.mkdir(parents=parents, exist_ok=True)
        if self._dir_mode is not None:
            # mkdir modes are masked by the umask; chmod is not.
            os.chmod(path, self._dir_mode)

    def _write_atomic(self, dest: Path, data: bytes) -> str:
        write_atomic(dest, data, file_mode=self._file_mode)
        return hashlib.md5(data).hexdigest()

    def _prune_parents(self, directory: Path) -> None:
        prune_empty_parents(directory, self.root)


def _map_os_error(exc: OSError, key: str, action: str) -> StorageError:
    detail = exc.strerror or str(exc)
    if isinstance(exc, PermissionError):
        return ConfigurationError(
            f"Permission denied to {action} {key}: {detail}", key=key, cause=exc
        )
    if isinstance(exc, (IsADirectoryError, NotADirectoryError)):
        return ValidationError(f"Cannot {action} {key}: {detail}", key=key, cause=exc)
    return ConfigurationError(f"Failed to {action} {key}: {detail}", key=key, cause=exc)
