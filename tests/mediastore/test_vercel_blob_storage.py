"""Tests for Vercel Blob storage plugin."""

from __future__ import annotations

import aiohttp
import pytest

from mediastore.errors import ConfigurationError, NetworkError, NotFoundError, ValidationError
from mediastore.models.config import VercelBlobConfig
from mediastore.models.storage import UploadFile
from mediastore.plugins.storage._http import status_error
from mediastore.plugins.storage.vercel_blob import VercelBlobStorage, cache_max_age
from tests.mediastore.mocks import FakeHttpSession, FakeResponse

BASE_URL = "https://abc123.public.blob.vercel-storage.com"


def _storage(
    session: FakeHttpSession, *, base_url: str = BASE_URL, **config: object
) -> VercelBlobStorage:
    values: dict[str, object] = {"token": "vercel_blob_rw_secret", "base_path": "cms"}
    values.update(config)
    return VercelBlobStorage.create(
        VercelBlobConfig.model_validate(values),
        base_url=base_url,
        http_session_factory=session.factory(),
    )


def _file() -> UploadFile:
    return UploadFile(buffer=b"png-bytes", filename="a b.png", content_type="image/png")


class TestVercelUpload:
    @pytest.mark.asyncio
    async def test_put_with_headers(self) -> None:
        # Given: The API accepts the blob and returns its URL
        session = FakeHttpSession(
            [
                FakeResponse(
                    200,
                    json_data={
                        "url": f"{BASE_URL}/cms/2024/a%20b.png",
                        "pathname": "cms/2024/a b.png",
                    },
                )
            ]
        )
        storage = _storage(session, cache_control="public, max-age=3600")

        # When: Uploading
        result = await storage.upload("2024/a b.png", _file())

        # Then: One authenticated PUT to the quoted pathname
        call = session.calls[0]
        assert call.method == "PUT"
        assert call.url == "https://blob.vercel-storage.com/cms/2024/a%20b.png"
        assert call.kwargs["data"] == b"png-bytes"
        headers = call.headers
        assert headers["authorization"] == "Bearer vercel_blob_rw_secret"
        assert headers["x-content-type"] == "image/png"
        assert headers["x-add-random-suffix"] == "0"
        assert headers["x-allow-overwrite"] == "1"
        assert headers["x-cache-control-max-age"] == "3600"
        assert headers["x-vercel-blob-access"] == "public"

        # Then: Key is the requested pathname, URL is what the API returned
        assert result.key == "cms/2024/a b.png"
        assert result.url == f"{BASE_URL}/cms/2024/a%20b.png"

    @pytest.mark.asyncio
    async def test_falls_back_to_base_url(self) -> None:
        session = FakeHttpSession([FakeResponse(200, json_data={})])
        result = await _storage(session).upload("a.png", _file())
        assert result.url == f"{BASE_URL}/cms/a.png"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (401, ConfigurationError),
            (403, ConfigurationError),
            (400, ValidationError),
            (429, NetworkError),
            (502, NetworkError),
        ],
    )
    async def test_status_mapping(self, status: int, expected: type[Exception]) -> None:
        session = FakeHttpSession([FakeResponse(status, text="  blob\n error ")])
        with pytest.raises(expected, match="blob error"):
            await _storage(session).upload("a.png", _file())

    @pytest.mark.asyncio
    async def test_transport_failure(self) -> None:
        session = FakeHttpSession([aiohttp.ClientConnectionError("reset by peer")])
        with pytest.raises(NetworkError) as exc_info:
            await _storage(session).upload("a.png", _file())
        assert exc_info.value.key == "cms/a.png"


class TestVercelDeleteExists:
    @pytest.mark.asyncio
    async def test_delete_posts_blob_url(self) -> None:
        session = FakeHttpSession([FakeResponse(200, json_data={})])
        await _storage(session).delete("cms/2024/a.png")

        call = session.calls[0]
        assert call.method == "POST"
        assert call.url == "https://blob.vercel-storage.com/delete"
        assert call.json == {"urls": [f"{BASE_URL}/cms/2024/a.png"]}

    @pytest.mark.asyncio
    async def test_delete_missing_is_success(self) -> None:
        session = FakeHttpSession([FakeResponse(404)])
        await _storage(session).delete("a.png")

    @pytest.mark.asyncio
    async def test_delete_failure(self) -> None:
        session = FakeHttpSession([FakeResponse(500, text="boom")])
        with pytest.raises(NetworkError):
            await _storage(session).delete("a.png")

    @pytest.mark.asyncio
    async def test_exists(self) -> None:
        session = FakeHttpSession([FakeResponse(200, json_data={}), FakeResponse(404)])
        storage = _storage(session)

        assert await storage.exists("a.png") is True
        assert await storage.exists("b.png") is False
        assert session.calls[0].kwargs["params"] == {"url": f"{BASE_URL}/cms/a.png"}

    @pytest.mark.asyncio
    async def test_exists_needs_base_url(self) -> None:
        session = FakeHttpSession()
        with pytest.raises(ConfigurationError, match="baseUrl"):
            await _storage(session, base_url="").exists("a.png")
        assert session.calls == []


@pytest.mark.asyncio
async def test_shutdown_closes_session() -> None:
    session = FakeHttpSession([FakeResponse(404)])
    async with _storage(session) as storage:
        await storage.exists("a.png")
    assert session.closed is True
    assert session.timeout is not None


def test_not_found_status_maps_to_not_found() -> None:
    assert isinstance(status_error(404, "gone"), NotFoundError)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("3600", 3600), ("public, max-age=60", 60), ("no-store", None), (None, None)],
)
def test_cache_max_age(value: str | None, expected: int | None) -> None:
    assert cache_max_age(value) == expected
