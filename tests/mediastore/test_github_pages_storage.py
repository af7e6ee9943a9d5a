"""Tests for GitHub Pages (contents API) storage plugin."""

from __future__ import annotations

import base64
from datetime import datetime, timezone

import pytest

from mediastore.errors import (
    CommitConflictError,
    ConfigurationError,
    ConflictError,
    ValidationError,
)
from mediastore.models.config import GithubPagesConfig
from mediastore.models.storage import UploadFile
from mediastore.plugins.storage.github_pages import GithubPagesStorage, render_commit_message
from tests.mediastore.mocks import FakeHttpSession, FakeResponse

NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)
CONTENTS = "https://api.github.com/repos/acme/site/contents"


def _storage(session: FakeHttpSession, **config: object) -> GithubPagesStorage:
    values: dict[str, object] = {
        "owner": "acme",
        "repo": "site",
        "branch": "gh-pages",
        "token": "ghp_secret",
        "base_path": "static/media",
    }
    values.update(config)
    return GithubPagesStorage.create(
        GithubPagesConfig.model_validate(values),
        base_url="https://acme.github.io/site",
        http_session_factory=session.factory(),
        clock=lambda: NOW,
    )


def _file(data: bytes = b"png-bytes") -> UploadFile:
    return UploadFile(buffer=data, filename="a.png", content_type="image/png")


class TestGithubUpload:
    @pytest.mark.asyncio
    async def test_creates_new_file(self) -> None:
        # Given: The path does not exist on the branch yet
        session = FakeHttpSession(
            [
                FakeResponse(404),
                FakeResponse(201, json_data={"content": {"sha": "newsha"}}),
            ]
        )

        # When: Uploading
        result = await _storage(session).upload("2024/03/a.png", _file())

        # Then: Lookup on the branch, then a PUT commit without a base sha
        lookup, put = session.calls
        assert lookup.method == "GET"
        assert lookup.url == f"{CONTENTS}/static/media/2024/03/a.png"
        assert lookup.kwargs["params"] == {"ref": "gh-pages"}
        assert lookup.headers["Authorization"] == "Bearer ghp_secret"

        assert put.method == "PUT"
        assert put.json["message"] == "chore(cms): upload a.png"
        assert base64.b64decode(put.json["content"]) == b"png-bytes"
        assert put.json["branch"] == "gh-pages"
        assert put.json["committer"] == {"name": "CMS Bot", "email": "cms-bot@example.com"}
        assert "sha" not in put.json

        # Then: Key includes the base path and the URL is on the Pages host
        assert result.key == "static/media/2024/03/a.png"
        assert result.url == "https://acme.github.io/site/static/media/2024/03/a.png"
        assert result.etag == "newsha"

    @pytest.mark.asyncio
    async def test_updates_existing_file_with_sha(self) -> None:
        session = FakeHttpSession(
            [
                FakeResponse(200, json_data={"sha": "oldsha", "type": "file"}),
                FakeResponse(200, json_data={"content": {"sha": "newsha"}}),
            ]
        )
        await _storage(session).upload("a.png", _file())
        assert session.calls[1].json["sha"] == "oldsha"

    @pytest.mark.asyncio
    async def test_custom_commit_template(self) -> None:
        session = FakeHttpSession(
            [FakeResponse(404), FakeResponse(201, json_data={"content": {"sha": "s"}})]
        )
        storage = _storage(session, commit_message_template="media: {{filename}} at {{datetime}}")

        await storage.upload("a.png", _file())

        assert session.calls[1].json["message"] == (
            "media: a.png at 2024-03-15T10:30:00+00:00"
        )

    @pytest.mark.asyncio
    async def test_directory_target_rejected(self) -> None:
        session = FakeHttpSession([FakeResponse(200, json_data=[{"name": "x"}])])
        with pytest.raises(ValidationError):
            await _storage(session).upload("a.png", _file())

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "text"),
        [(409, "conflict"), (422, '{"message": "sha wasn\'t supplied"}')],
    )
    async def test_moved_head_is_commit_conflict(self, status: int, text: str) -> None:
        # Given: The branch moved between lookup and commit
        session = FakeHttpSession(
            [FakeResponse(200, json_data={"sha": "stale"}), FakeResponse(status, text=text)]
        )

        # When/Then: The conflict surfaces without a retry
        with pytest.raises(CommitConflictError) as exc_info:
            await _storage(session).upload("a.png", _file())
        assert isinstance(exc_info.value, ConflictError)
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_bad_token(self) -> None:
        session = FakeHttpSession([FakeResponse(401, text="Bad credentials")])
        with pytest.raises(ConfigurationError, match="Bad credentials"):
            await _storage(session).upload("a.png", _file())


class TestGithubDeleteExists:
    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self) -> None:
        session = FakeHttpSession([FakeResponse(404)])
        await _storage(session).delete("static/media/a.png")
        assert [c.method for c in session.calls] == ["GET"]

    @pytest.mark.asyncio
    async def test_delete_commits_with_sha(self) -> None:
        session = FakeHttpSession(
            [FakeResponse(200, json_data={"sha": "abc"}), FakeResponse(200, json_data={})]
        )
        await _storage(session).delete("static/media/2024/a.png")

        delete = session.calls[1]
        assert delete.method == "DELETE"
        assert delete.url == f"{CONTENTS}/static/media/2024/a.png"
        assert delete.json["sha"] == "abc"
        assert delete.json["message"] == "chore(cms): delete a.png"

    @pytest.mark.asyncio
    async def test_delete_race_with_removal_is_success(self) -> None:
        session = FakeHttpSession([FakeResponse(200, json_data={"sha": "abc"}), FakeResponse(404)])
        await _storage(session).delete("a.png")

    @pytest.mark.asyncio
    async def test_exists(self) -> None:
        session = FakeHttpSession([FakeResponse(200, json_data={"sha": "abc"}), FakeResponse(404)])
        storage = _storage(session)
        assert await storage.exists("a.png") is True
        assert await storage.exists("b.png") is False


def test_api_base_url_for_enterprise() -> None:
    session = FakeHttpSession()
    storage = _storage(session, api_base_url="https://ghe.example.com/api/v3/")
    assert storage._contents_url("x/a.png") == (
        "https://ghe.example.com/api/v3/repos/acme/site/contents/x/a.png"
    )


def test_render_commit_message() -> None:
    assert render_commit_message("up {{filename}}", "a/b/c.png", NOW) == "up c.png"
    assert render_commit_message("{{datetime}}", "c.png", NOW) == NOW.isoformat()
