"""CLI entrypoint for mediastore."""

from __future__ import annotations

import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import NoReturn

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]
from pydantic import ValidationError

from mediastore.config import ConfigError, load_config
from mediastore.connectivity import ConnectivityProbe
from mediastore.errors import StorageError
from mediastore.facade import StorageFacade
from mediastore.logging_setup import configure_logging
from mediastore.models.config import AppConfig, StorageProvider, describe_validation_error
from mediastore.models.storage import (
    ConnectivityCheckRequest,
    DeleteRequest,
    UploadFile,
    UploadRequest,
)
from mediastore.net.fetcher import SecureRemoteFetcher
from mediastore.redaction import scrub_secrets, secret_values
from mediastore.sync.media_sync import ManifestRecordSource, SyncOptions, run_media_sync


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level)


def _fail(message: str) -> NoReturn:
    print(f"✗ {message}", file=sys.stderr)
    sys.exit(1)


def _load(config: str) -> AppConfig:
    try:
        return load_config(Path(config))
    except ConfigError as e:
        _fail(f"Config invalid: {e}")


def _provider(cfg: AppConfig, name: str | None) -> StorageProvider:
    try:
        return cfg.get_provider(name)
    except KeyError as e:
        _fail(str(e.args[0]) if e.args else "Unknown storage provider")


def _facade(cfg: AppConfig) -> StorageFacade:
    return StorageFacade(settings=cfg.storage, fetch_config=cfg.fetch)


def _storage_failure(e: StorageError, cfg: AppConfig) -> NoReturn:
    secrets = [s for p in cfg.providers for s in secret_values(p.config)]
    _fail(scrub_secrets(str(e), secrets))


class MediaStore:
    """mediastore CLI - multi-backend media object storage."""

    def validate(self, config: str) -> None:
        """Validate config file without touching any backend.

        Args:
            config: Path to YAML config file
        """
        cfg = _load(config)
        print(f"✓ Config valid: {config}")
        for provider in cfg.providers:
            flags = []
            if provider.is_default:
                flags.append("default")
            if not provider.is_active:
                flags.append("inactive")
            suffix = f" ({', '.join(flags)})" if flags else ""
            print(f"  {provider.name}: {provider.type} -> {provider.base_url or '-'}{suffix}")
        print(f"  Remote fetch cap: {cfg.fetch.max_bytes} bytes, redirects: {cfg.fetch.max_redirects}")

    def verify(
        self,
        config: str,
        provider: str | None = None,
        skip: bool = False,
        log_level: str = "INFO",
    ) -> None:
        """Upload and delete a healthcheck file on a provider.

        Args:
            config: Path to YAML config file
            provider: Provider name (default: the provider marked isDefault)
            skip: Skip the probe entirely
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = _load(config)
        target = _provider(cfg, provider)
        probe = ConnectivityProbe(_facade(cfg))
        try:
            asyncio.run(probe.verify(ConnectivityCheckRequest.for_provider(target, skip=skip)))
        except StorageError as e:
            _storage_failure(e, cfg)
        print(f"✓ Storage reachable: {target.name} ({target.type})")

    def upload(
        self,
        config: str,
        file: str,
        provider: str | None = None,
        content_type: str | None = None,
        unique: bool = False,
        log_level: str = "INFO",
    ) -> None:
        """Upload a local file through the provider's path template.

        Args:
            config: Path to YAML config file
            file: Local file to upload
            provider: Provider name (default: the provider marked isDefault)
            content_type: MIME type (guessed from the file name when omitted)
            unique: Append a suffix when the key is already taken
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = _load(config)
        target = _provider(cfg, provider)
        path = Path(file)
        try:
            data = path.read_bytes()
        except OSError as e:
            _fail(f"Cannot read {path}: {e.strerror or e}")
        mime = content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        request = UploadRequest.for_provider(
            target,
            UploadFile(buffer=data, filename=path.name, content_type=mime),
            ensure_unique_name=unique,
        )
        try:
            result = asyncio.run(_facade(cfg).upload_object(request))
        except StorageError as e:
            _storage_failure(e, cfg)
        print(f"✓ Uploaded {result.size} bytes")
        print(f"  key: {result.key}")
        print(f"  url: {result.url}")

    def delete(
        self,
        config: str,
        key: str,
        provider: str | None = None,
        log_level: str = "INFO",
    ) -> None:
        """Delete an object by the key its upload returned.

        Args:
            config: Path to YAML config file
            key: Object key
            provider: Provider name (default: the provider marked isDefault)
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = _load(config)
        target = _provider(cfg, provider)
        try:
            asyncio.run(_facade(cfg).delete_object(DeleteRequest.for_provider(target, key)))
        except StorageError as e:
            _storage_failure(e, cfg)
        print(f"✓ Deleted {key}")

    def sync(
        self,
        config: str,
        manifest: str,
        target_dir: str | None = None,
        concurrency: int | None = None,
        log_level: str = "INFO",
    ) -> None:
        """Mirror persistent media listed in a manifest into a local directory.

        Args:
            config: Path to YAML config file
            manifest: YAML/JSON list of {id, storageUrl, persistentPath}
            target_dir: Override sync.targetDir
            concurrency: Override sync.concurrency
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = _load(config)
        opts = SyncOptions.from_settings(cfg.sync)
        updates: dict[str, object] = {}
        if target_dir is not None:
            updates["target_dir"] = Path(target_dir)
        if concurrency is not None:
            updates["concurrency"] = int(concurrency)
        if updates:
            try:
                opts = SyncOptions.model_validate({**opts.model_dump(), **updates})
            except ValidationError as e:
                _fail(f"Invalid sync options: {describe_validation_error(e)}")

        try:
            summary = asyncio.run(
                run_media_sync(
                    opts,
                    ManifestRecordSource(Path(manifest)),
                    fetcher=SecureRemoteFetcher(cfg.fetch),
                )
            )
        except StorageError as e:
            _storage_failure(e, cfg)
        except KeyboardInterrupt:
            sys.exit(130)
        print(
            "✓ Persistent media sync completed "
            f"(downloaded: {summary.downloaded}, skipped: {summary.skipped}, "
            f"cleaned: {summary.removed})"
        )


def main() -> None:
    """Main CLI entrypoint."""
    # Strip --help/-h when it's the only arg so Fire shows its commands list
    if len(sys.argv) == 2 and sys.argv[1] in ("--help", "-h"):
        sys.argv.pop()
    fire.Fire(MediaStore)


if __name__ == "__main__":
    main()
