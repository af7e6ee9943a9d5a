"""Upload-then-delete probe that proves a provider's settings work."""

from __future__ import annotations

import logging

from mediastore.errors import ConnectivityCheckError, NetworkError
from mediastore.facade import StorageFacade
from mediastore.logging_setup import storage_log_context
from mediastore.models.config import GithubPagesConfig, ProviderConfig
from mediastore.models.enums import StorageOperation
from mediastore.models.storage import (
    ConnectivityCheckRequest,
    DeleteRequest,
    UploadFile,
    UploadRequest,
)
from mediastore.redaction import scrub_secrets, secret_values

logger = logging.getLogger(__name__)

HEALTHCHECK_FILENAME = "healthcheck.txt"
HEALTHCHECK_CONTENT = b"healthcheck"
HEALTHCHECK_CONTENT_TYPE = "text/plain"
HEALTHCHECK_COMMIT_MESSAGE = "chore(cms): storage healthcheck {{filename}}"
FAILURE_PREFIX = "存储连通性校验失败："


class ConnectivityProbe:
    """Verify a provider by uploading a small file and deleting it again.

    Any failure becomes a single ``ConnectivityCheckError`` whose message is
    ``存储连通性校验失败：[phase] cause`` with credentials scrubbed from the cause.
    """

    def __init__(self, facade: StorageFacade) -> None:
        self._facade = facade

    async def verify(self, request: ConnectivityCheckRequest) -> None:
        if request.skip:
            logger.debug("Connectivity probe skipped for %s", request.type)
            return

        with storage_log_context(request.type, StorageOperation.VERIFY):
            config = _probe_config(request.config)
            secrets = secret_values(request.config)

            upload = UploadRequest(
                type=request.type,
                base_url=request.base_url,
                path_template=request.path_template,
                max_file_size=request.max_file_size,
                config=config,
                file=UploadFile(
                    buffer=HEALTHCHECK_CONTENT,
                    filename=HEALTHCHECK_FILENAME,
                    content_type=HEALTHCHECK_CONTENT_TYPE,
                ),
                ensure_unique_name=True,
            )
            try:
                result = await self._facade.upload_object(upload)
            except Exception as exc:
                await self._cleanup_after_failed_upload(request, config, exc, secrets)
                raise _failure(request, "upload", exc, secrets) from exc

            try:
                await self._facade.delete_object(self._delete_request(request, config, result.key))
            except Exception as exc:
                logger.warning(
                    "Connectivity probe left an orphaned object: %s",
                    scrub_secrets(_describe(exc), secrets),
                    extra={"orphan_key": result.key},
                )
                raise _failure(request, "delete", exc, secrets) from exc

            logger.info("Storage connectivity verified", extra={"probe_key": result.key})

    async def _cleanup_after_failed_upload(
        self,
        request: ConnectivityCheckRequest,
        config: ProviderConfig,
        exc: Exception,
        secrets: list[str],
    ) -> None:
        """Best-effort delete when the write itself failed and may have landed."""
        key = getattr(exc, "attempted_key", None)
        if not isinstance(exc, NetworkError) or not key:
            return
        try:
            await self._facade.delete_object(self._delete_request(request, config, key))
        except Exception as cleanup_exc:
            logger.warning(
                "Probe cleanup after failed upload did not succeed: %s",
                scrub_secrets(_describe(cleanup_exc), secrets),
                extra={"orphan_key": key},
            )
        else:
            logger.info(
                "Probe cleanup after failed upload removed any partial object",
                extra={"probe_key": key},
            )

    @staticmethod
    def _delete_request(
        request: ConnectivityCheckRequest, config: ProviderConfig, key: str
    ) -> DeleteRequest:
        return DeleteRequest(
            type=request.type,
            base_url=request.base_url,
            path_template=request.path_template,
            max_file_size=request.max_file_size,
            config=config,
            key=key,
        )


def _probe_config(config: ProviderConfig) -> ProviderConfig:
    if isinstance(config, GithubPagesConfig) and not config.commit_message_template:
        return config.model_copy(update={"commit_message_template": HEALTHCHECK_COMMIT_MESSAGE})
    return config


def _describe(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


def _failure(
    request: ConnectivityCheckRequest,
    phase: str,
    exc: Exception,
    secrets: list[str],
) -> ConnectivityCheckError:
    cause = scrub_secrets(_describe(exc), secrets)
    return ConnectivityCheckError(
        f"{FAILURE_PREFIX}[{phase}] {cause}",
        phase=phase,
        cause=exc,
        provider_type=str(request.type),
        operation=str(StorageOperation.VERIFY),
        key=getattr(exc, "key", None),
    )
