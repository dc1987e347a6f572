"""File helpers: content hashing, extensions, directories and remote downloads."""

import hashlib
import logging
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from app.services.exceptions import DownloadFailed

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def calculate_md5(file_path: str | Path) -> str:
    """Hex MD5 digest of a file's contents. Used as a dedup key, not for security."""
    digest = hashlib.md5()
    with open(file_path, "rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def get_file_extension(file_path: str | Path) -> str:
    return Path(file_path).suffix.lower()


def url_file_extension(url: str) -> str:
    """Extension of the path component of a URL, ignoring query and fragment."""
    return get_file_extension(urlsplit(url).path)


def ensure_directory_exists(directory: str | Path) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


async def download_image(
    url: str,
    destination: str | Path,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Stream the body at ``url`` into ``destination``.

    Network errors, non-2xx responses and timeouts raise DownloadFailed; a
    partially written file is removed.
    """
    destination = Path(destination)
    try:
        ensure_directory_exists(destination.parent)
        if client is not None:
            await _stream_to_file(client, url, destination)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
                await _stream_to_file(owned, url, destination)
    except (httpx.HTTPError, OSError) as exc:
        destination.unlink(missing_ok=True)
        raise DownloadFailed(f"Failed to download image: {exc}") from exc

    logger.debug(f"Downloaded {url} to {destination}")
    return destination


async def _stream_to_file(client: httpx.AsyncClient, url: str, destination: Path) -> None:
    async with client.stream("GET", url) as response:
        response.raise_for_status()
        with open(destination, "wb") as fh:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                fh.write(chunk)
