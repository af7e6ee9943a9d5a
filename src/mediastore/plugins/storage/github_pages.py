"""Git repository storage backend via the GitHub contents API."""

from __future__ import annotations

import asyncio
import base64
import logging
import posixpath
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import aiohttp

from mediastore.errors import (
    CommitConflictError,
    StorageError,
    UnsupportedProviderError,
    ValidationError,
)
from mediastore.interfaces import StorageAdapter
from mediastore.models.config import GithubPagesConfig, ProviderConfig, StorageSettings
from mediastore.models.storage import UploadFile, UploadResult
from mediastore.path_template import join_prefix, to_public_url
from mediastore.plugins.storage import check_file_size
from mediastore.plugins.storage._http import (
    HttpSessionFactory,
    default_http_session_factory,
    response_detail,
    status_error,
    transport_error,
)

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_MESSAGE = "chore(cms): upload {{filename}}"
DEFAULT_DELETE_MESSAGE = "chore(cms): delete {{filename}}"
GITHUB_API_VERSION = "2022-11-28"


def render_commit_message(template: str, key: str, now: datetime) -> str:
    """Fill ``{{filename}}`` (last key segment) and ``{{datetime}}`` (ISO 8601)."""
    return template.replace("{{filename}}", posixpath.basename(key)).replace(
        "{{datetime}}", now.isoformat()
    )


class GithubPagesStorage(StorageAdapter):
    """Stores objects as files committed to a branch of a Git repository.

    Every upload and delete is a commit. A moved branch head surfaces as
    ``CommitConflictError`` so callers can retry with a fresh SHA; nothing
    is retried here.
    """

    @classmethod
    def create(
        cls,
        config: ProviderConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        settings: StorageSettings | None = None,
        http_session_factory: HttpSessionFactory | None = None,
        clock: Callable[[], datetime] | None = None,
        **_: object,
    ) -> GithubPagesStorage:
        if not isinstance(config, GithubPagesConfig):
            raise UnsupportedProviderError(
                f"GITHUB_PAGES provider needs GithubPagesConfig, got {type(config).__name__}"
            )
        return cls(
            config,
            base_url=base_url,
            max_file_size=max_file_size,
            settings=settings,
            session_factory=http_session_factory,
            clock=clock,
        )

    def __init__(
        self,
        config: GithubPagesConfig,
        *,
        base_url: str = "",
        max_file_size: int | None = None,
        settings: StorageSettings | None = None,
        session_factory: HttpSessionFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._base_url = base_url
        self._max_file_size = max_file_size
        self._settings = settings or StorageSettings()
        self._session_factory = session_factory or default_http_session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._session: Any | None = None
        self._shutdown_called = False

    async def _ensure_session(self) -> Any:
        """Lazy-create HTTP session with timeout."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._settings.request_timeout_s)
            self._session = self._session_factory(timeout)
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _contents_url(self, path: str) -> str:
        cfg = self._config
        return (
            f"{cfg.api_base_url}/repos/{quote(cfg.owner, safe='')}/{quote(cfg.repo, safe='')}"
            f"/contents/{quote(path, safe='/')}"
        )

    def _committer(self) -> dict[str, str]:
        return {"name": self._config.committer_name, "email": self._config.committer_email}

    def _message(self, default_template: str, path: str) -> str:
        template = self._config.commit_message_template or default_template
        return render_commit_message(template, path, self._clock())

    async def upload(self, key: str, file: UploadFile) -> UploadResult:
        self._ensure_open()
        check_file_size(file, self._max_file_size)
        path = join_prefix(self._config.base_path, key)

        existing = await self._get_contents(path, action="upload")
        if isinstance(existing, list):
            raise ValidationError(f"Target path is a directory: {path}", key=path)
        body: dict[str, Any] = {
            "message": self._message(DEFAULT_UPLOAD_MESSAGE, path),
            "content": base64.b64encode(file.buffer).decode("ascii"),
            "branch": self._config.branch,
            "committer": self._committer(),
        }
        if existing is not None and existing.get("sha"):
            body["sha"] = existing["sha"]

        data = await self._send("PUT", path, body, action="upload")
        content = data.get("content") if isinstance(data, dict) else None
        sha = content.get("sha") if isinstance(content, dict) else None
        return UploadResult(
            key=path,
            url=to_public_url(self._base_url, path),
            size=file.size,
            etag=sha if isinstance(sha, str) else None,
        )

    async def delete(self, key: str) -> None:
        self._ensure_open()
        path = join_prefix(self._config.base_path, key)

        existing = await self._get_contents(path, action="delete")
        if existing is None:
            return
        if isinstance(existing, list) or not existing.get("sha"):
            raise ValidationError(f"Target path is a directory or invalid: {path}", key=path)
        body = {
            "message": self._message(DEFAULT_DELETE_MESSAGE, path),
            "sha": existing["sha"],
            "branch": self._config.branch,
            "committer": self._committer(),
        }
        await self._send("DELETE", path, body, action="delete", missing_ok=True)

    async def exists(self, key: str) -> bool:
        self._ensure_open()
        path = join_prefix(self._config.base_path, key)
        return await self._get_contents(path, action="exists") is not None

    async def _get_contents(self, path: str, *, action: str) -> dict[str, Any] | list[Any] | None:
        """Fetch file metadata on the branch; None when the path is absent."""
        session = await self._ensure_session()
        try:
            async with session.get(
                self._contents_url(path),
                params={"ref": self._config.branch},
                headers=self._headers(),
            ) as resp:
                if resp.status == 404:
                    return None
                if resp.status != 200:
                    detail = await response_detail(resp)
                    raise status_error(
                        resp.status,
                        f"GitHub {action} lookup of {path} failed: HTTP {resp.status} {detail}".rstrip(),
                        key=path,
                    )
                data = await resp.json()
        except StorageError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise transport_error(exc, f"GitHub {action} lookup of {path} failed", key=path) from exc
        if not isinstance(data, (dict, list)):
            raise ValidationError(f"Unexpected GitHub contents response for {path}", key=path)
        return data

    async def _send(
        self,
        method: str,
        path: str,
        body: dict[str, Any],
        *,
        action: str,
        missing_ok: bool = False,
    ) -> Any:
        session = await self._ensure_session()
        try:
            async with session.request(
                method, self._contents_url(path), json=body, headers=self._headers()
            ) as resp:
                if resp.status == 404 and missing_ok:
                    return None
                if resp.status not in (200, 201):
                    detail = await response_detail(resp)
                    message = f"GitHub {action} of {path} failed: HTTP {resp.status} {detail}".rstrip()
                    if resp.status == 409 or (resp.status == 422 and "sha" in detail.lower()):
                        raise CommitConflictError(message, key=path)
                    raise status_error(resp.status, message, key=path)
                data = await resp.json()
        except StorageError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise transport_error(exc, f"GitHub {action} of {path} failed", key=path) from exc
        logger.debug("Committed %s of %s to %s", action, path, self._config.branch)
        return data

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        self._shutdown_called = True
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")
