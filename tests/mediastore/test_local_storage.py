"""Tests for LocalStorage backend."""

from __future__ import annotations

import asyncio
import hashlib
import os
import stat
from pathlib import Path

import pytest

from mediastore.errors import (
    ConfigurationError,
    FileTooLargeError,
    PathTraversalError,
    UnsupportedProviderError,
)
from mediastore.models.config import LocalConfig, S3Config
from mediastore.models.storage import UploadFile
import mediastore.plugins.storage.local as local_module
from mediastore.plugins.storage.local import LocalStorage


def _make_storage(root: Path, **config: object) -> LocalStorage:
    """Create a LocalStorage instance rooted at ``root``."""
    cfg = LocalConfig(root_dir=str(root), **config)  # type: ignore[arg-type]
    return LocalStorage(cfg, base_url="https://cdn.example.com/media/", max_file_size=1024)


def _file(data: bytes = b"png-bytes", name: str = "a.png") -> UploadFile:
    return UploadFile(buffer=data, filename=name, content_type="image/png")


class TestLocalStorageHappyPath:
    """Integration tests for complete object lifecycle."""

    @pytest.mark.asyncio
    async def test_upload_exists_delete_roundtrip(self, storage_root: Path) -> None:
        """Full lifecycle: upload -> exists -> delete -> delete again."""
        # Given: A LocalStorage instance with a missing root
        storage = _make_storage(storage_root)

        # When: Uploading a file
        result = await storage.upload("2024/03/a.png", _file())

        # Then: File is stored under the root and addressed by key and URL
        assert result.key == "2024/03/a.png"
        assert result.url == "https://cdn.example.com/media/2024/03/a.png"
        assert result.size == len(b"png-bytes")
        assert result.etag == hashlib.md5(b"png-bytes").hexdigest()
        assert (storage_root / "2024" / "03" / "a.png").read_bytes() == b"png-bytes"
        assert await storage.exists("2024/03/a.png") is True

        # When: Deleting twice
        await storage.delete(result.key)
        await storage.delete(result.key)

        # Then: The object is gone, empty parents are pruned, the root stays
        assert await storage.exists("2024/03/a.png") is False
        assert not (storage_root / "2024").exists()
        assert storage_root.is_dir()

    @pytest.mark.asyncio
    async def test_overwrite_replaces_content(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root)
        await storage.upload("a.png", _file(b"one"))
        await storage.upload("a.png", _file(b"two"))
        assert (storage_root / "a.png").read_bytes() == b"two"

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root)
        await storage.upload("dir/a.png", _file())
        assert sorted(p.name for p in (storage_root / "dir").iterdir()) == ["a.png"]

    @pytest.mark.asyncio
    async def test_delete_keeps_non_empty_parents(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root)
        await storage.upload("2024/03/a.png", _file())
        await storage.upload("2024/03/b.png", _file())

        await storage.delete("2024/03/a.png")

        assert (storage_root / "2024" / "03" / "b.png").exists()


class TestLocalStorageConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_upload_and_delete_in_same_directory(
        self, storage_root: Path
    ) -> None:
        # Given: One adapter shared by two tasks working in d/
        storage = _make_storage(storage_root)

        async def churn(name: str) -> None:
            for i in range(200):
                key = f"d/{name}{i}.bin"
                await storage.upload(key, _file(b"x"))
                await storage.delete(key)

        # When: Each task keeps emptying the directory the other writes into
        await asyncio.gather(churn("x"), churn("y"))

        # Then: Every call succeeded and nothing is left behind
        assert list(storage_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_write_recreates_parent_pruned_mid_upload(
        self, storage_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # Given: A delete that prunes d/ right before the first write lands
        real_write = local_module.write_atomic
        calls: list[Path] = []

        def flaky_write(dest: Path, data: bytes, *, file_mode: int | None = None) -> None:
            calls.append(dest)
            if len(calls) == 1:
                dest.parent.rmdir()
            real_write(dest, data, file_mode=file_mode)

        monkeypatch.setattr(local_module, "write_atomic", flaky_write)
        storage = _make_storage(storage_root)

        # When: Uploading
        await storage.upload("d/a.png", _file(b"data"))

        # Then: The directory was recreated and the write retried
        assert len(calls) == 2
        assert (storage_root / "d" / "a.png").read_bytes() == b"data"

    @pytest.mark.asyncio
    async def test_unrecoverable_os_error_maps_to_configuration_error(
        self, storage_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def failing_write(dest: Path, data: bytes, *, file_mode: int | None = None) -> None:
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(local_module, "write_atomic", failing_write)
        storage = _make_storage(storage_root)

        with pytest.raises(ConfigurationError, match="No space left"):
            await storage.upload("a.png", _file())


class TestLocalStoragePermissions:
    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    async def test_applies_file_and_dir_modes(self, storage_root: Path) -> None:
        # Given: Explicit modes in config
        storage = _make_storage(storage_root, file_mode=0o600, dir_mode=0o750)

        # When: Uploading into a new directory
        await storage.upload("2024/a.png", _file())

        # Then: Modes are applied regardless of umask
        assert stat.S_IMODE((storage_root / "2024" / "a.png").stat().st_mode) == 0o600
        assert stat.S_IMODE((storage_root / "2024").stat().st_mode) == 0o750

    @pytest.mark.asyncio
    async def test_missing_root_without_create_flag(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root, create_dir_if_not_exists=False)
        with pytest.raises(ConfigurationError, match="does not exist"):
            await storage.upload("a.png", _file())
        assert not storage_root.exists()

    @pytest.mark.asyncio
    async def test_missing_subdir_without_create_flag(self, storage_root: Path) -> None:
        storage_root.mkdir()
        storage = _make_storage(storage_root, create_dir_if_not_exists=False)

        with pytest.raises(ConfigurationError):
            await storage.upload("new/a.png", _file())

        # Existing directories are fine
        result = await storage.upload("a.png", _file())
        assert result.key == "a.png"

    @pytest.mark.asyncio
    async def test_root_is_a_file(self, tmp_path: Path) -> None:
        root = tmp_path / "file"
        root.write_text("x")
        storage = _make_storage(root)
        with pytest.raises(ConfigurationError, match="not a directory"):
            await storage.upload("a.png", _file())


class TestLocalStorageSafety:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["../escape.png", "/etc/passwd", "a/../../b.png", "a\\b.png"])
    async def test_rejects_traversal(self, storage_root: Path, key: str) -> None:
        storage = _make_storage(storage_root)
        with pytest.raises(PathTraversalError):
            await storage.upload(key, _file())

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name != "posix", reason="symlinks")
    async def test_rejects_symlink_escape(self, tmp_path: Path, storage_root: Path) -> None:
        # Given: A directory inside the root that links outside it
        outside = tmp_path / "outside"
        outside.mkdir()
        storage_root.mkdir()
        (storage_root / "link").symlink_to(outside, target_is_directory=True)
        storage = _make_storage(storage_root)

        # When/Then: Writing through the link is refused
        with pytest.raises(PathTraversalError):
            await storage.upload("link/a.png", _file())
        assert list(outside.iterdir()) == []

    @pytest.mark.asyncio
    async def test_delete_rejects_traversal(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root)
        with pytest.raises(PathTraversalError):
            await storage.delete("../x.png")

    @pytest.mark.asyncio
    async def test_file_too_large(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root)
        with pytest.raises(FileTooLargeError) as exc_info:
            await storage.upload("big.bin", _file(b"x" * 2048, "big.bin"))
        assert exc_info.value.limit == 1024
        assert not storage_root.exists()

    @pytest.mark.asyncio
    async def test_shutdown_blocks_further_calls(self, storage_root: Path) -> None:
        storage = _make_storage(storage_root)
        await storage.shutdown()
        with pytest.raises(RuntimeError):
            await storage.upload("a.png", _file())

    def test_create_rejects_foreign_config(self) -> None:
        config = S3Config(access_key_id="a", secret_access_key="b", region="r", bucket="b")
        with pytest.raises(UnsupportedProviderError):
            LocalStorage.create(config)
