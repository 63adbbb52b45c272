"""Turns an ingest request into a single local media file."""

import asyncio
import logging
import os
from collections.abc import Callable
from urllib.parse import urlparse

import httpx

from .errors import FetchFailed, FetchTimeout, InvalidRequest, NotFound, StorageError, TooLarge
from .models import MAX_MEDIA_BYTES, MediaArtifact, Origin, UploadedFile, resolve_request
from .storage import TempStorage

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".mp4"


def _suffix_for(url_path: str) -> str:
    suffix = os.path.splitext(url_path)[1].lower()
    if 1 < len(suffix) <= 6 and suffix[1:].isalnum():
        return suffix
    return DEFAULT_SUFFIX


class MediaAcquirer:
    """Resolves an upload or a remote URL into a MediaArtifact on local disk."""

    def __init__(
        self,
        storage: TempStorage,
        http_client: httpx.AsyncClient | None = None,
        fetch_timeout: float = 10.0,
        max_bytes: int = MAX_MEDIA_BYTES,
        chunk_size: int = 1 << 16,
    ) -> None:
        self.storage = storage
        self.http_client = http_client
        self.fetch_timeout = fetch_timeout
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size

    async def acquire(self, request, track: Callable[[str], None] | None = None) -> MediaArtifact:
        """Materialize the request's media and enforce the size cap.

        ``track`` is called with every scratch path allocated here, before any
        byte is written, so the caller can release it whatever happens next.
        """
        request = resolve_request(request)

        if isinstance(request, UploadedFile):
            path, origin = request.local_path, Origin.UPLOADED
            try:
                size = self.storage.size_of(path)
            except NotFound as exc:
                raise InvalidRequest("Uploaded file is missing") from exc
        else:
            path, origin = await self._download(request.url, track), Origin.DOWNLOADED
            size = self.storage.size_of(path)

        if size > self.max_bytes:
            raise TooLarge(f"Video is {size} bytes, the limit is {self.max_bytes}", path=path)

        logger.info("Acquired %s video (%d bytes) at %s", origin.value, size, path)
        return MediaArtifact(path=path, size_bytes=size, origin=origin)

    async def _download(self, url: str, track: Callable[[str], None] | None) -> str:
        try:
            parsed = urlparse(url)
            # .port validates the port range lazily
            parsed.port
        except ValueError as exc:
            raise InvalidRequest(f"Malformed video URL: {url}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidRequest(f"Unsupported video URL: {url}")

        path = self.storage.allocate(_suffix_for(parsed.path))
        if track is not None:
            track(path)

        try:
            # The timeout bounds the whole transfer, not only the connection
            await asyncio.wait_for(self._stream_to(url, path), timeout=self.fetch_timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise FetchTimeout(f"Fetching {url} took longer than {self.fetch_timeout:g}s", path=path) from exc
        except httpx.InvalidURL as exc:
            raise InvalidRequest(f"Malformed video URL: {url}") from exc
        except httpx.HTTPStatusError as exc:
            raise FetchFailed(
                f"Fetching {url} failed with status {exc.response.status_code}", path=path
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchFailed(f"Fetching {url} failed: {exc}", path=path) from exc
        except OSError as exc:
            raise StorageError(f"Cannot write {path}: {exc}") from exc

        return path

    async def _stream_to(self, url: str, path: str) -> None:
        if self.http_client is not None:
            await self._copy(self.http_client, url, path)
            return
        async with httpx.AsyncClient(timeout=self.fetch_timeout) as client:
            await self._copy(client, url, path)

    async def _copy(self, client: httpx.AsyncClient, url: str, path: str) -> None:
        written = 0
        async with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            with open(path, "wb") as f:
                async for chunk in response.aiter_bytes(self.chunk_size):
                    f.write(chunk)
                    written += len(chunk)
                    # Past the cap the size check will reject the file anyway
                    if written > self.max_bytes:
                        break
        logger.debug("Downloaded %d bytes from %s", written, url)
