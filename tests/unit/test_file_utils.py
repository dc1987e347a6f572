"""Unit tests for file helpers."""

import hashlib

import httpx
import pytest

from app.services.exceptions import DownloadFailed
from app.utils.files import (
    calculate_md5,
    download_image,
    ensure_directory_exists,
    get_file_extension,
    url_file_extension,
)


def test_calculate_md5_matches_hashlib(tmp_path):
    payload = b"not really an image" * 10000
    path = tmp_path / "blob.bin"
    path.write_bytes(payload)
    assert calculate_md5(path) == hashlib.md5(payload).hexdigest()


def test_calculate_md5_is_content_addressed(tmp_path):
    first = tmp_path / "a.jpg"
    second = tmp_path / "b.jpg"
    first.write_bytes(b"same bytes")
    second.write_bytes(b"same bytes")
    assert calculate_md5(first) == calculate_md5(second)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/data/photo.JPG", ".jpg"),
        ("/data/photo.tar.png", ".png"),
        ("/data/noext", ""),
    ],
)
def test_get_file_extension(path, expected):
    assert get_file_extension(path) == expected


def test_url_file_extension_ignores_query():
    assert url_file_extension("https://example.com/img/cat.JPEG?size=large#top") == ".jpeg"
    assert url_file_extension("https://example.com/") == ""


def test_ensure_directory_exists_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    assert ensure_directory_exists(target) == target
    assert target.is_dir()
    # Idempotent
    ensure_directory_exists(target)


@pytest.mark.asyncio
async def test_download_image_writes_body(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/cat.jpg"
        return httpx.Response(200, content=b"\xff\xd8image-bytes")

    destination = tmp_path / "nested" / "cat.jpg"
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await download_image("https://example.com/cat.jpg", destination, client=client)

    assert result == destination
    assert destination.read_bytes() == b"\xff\xd8image-bytes"


@pytest.mark.asyncio
async def test_download_image_non_2xx_raises(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, content=b"missing")

    destination = tmp_path / "cat.jpg"
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(DownloadFailed, match="Failed to download image"):
            await download_image("https://example.com/cat.jpg", destination, client=client)

    assert not destination.exists()


@pytest.mark.asyncio
async def test_download_image_network_error_raises(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(DownloadFailed, match="connection refused"):
            await download_image("https://example.com/cat.jpg", tmp_path / "cat.jpg", client=client)
