"""HTTP access for scraping endpoints and resolved media URLs."""

import asyncio
from pathlib import Path
from typing import Awaitable, Dict, Optional, Tuple, TypeVar

import httpx
import structlog

from app.core.config import DEFAULT_USER_AGENT
from app.providers.exceptions import DownloadError

logger = structlog.get_logger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024

T = TypeVar("T")


def extension_for_content_type(content_type: Optional[str]) -> str:
    """Pick a file extension for a media response."""
    if content_type and "audio" in content_type.lower():
        return "mp3"
    return "mp4"


class HttpFetcher:
    """Thin wrapper over httpx.AsyncClient used by the fallback strategies.

    Redirects are followed up to ``max_redirects``; every request carries a
    browser User-Agent.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 60.0,
        max_redirects: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout or None
        self.max_redirects = max_redirects
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            transport=self._transport,
        )

    async def post_form(
        self,
        url: str,
        data: Dict[str, str],
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """POST a urlencoded form and return the response text.

        Raises:
            DownloadError: On transport failure, timeout or a non-200 status.
        """
        try:
            async with self._client() as client:
                response = await self._bounded(client.post(url, data=data, headers=headers))
        except asyncio.TimeoutError as e:
            raise DownloadError(f"Request to {url} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise DownloadError(f"Request to {url} returned HTTP {response.status_code}")

        return response.text

    async def download_to(self, url: str, workdir: Path, stem: str = "video") -> Path:
        """Stream ``url`` into ``workdir/<stem>.<ext>``.

        The extension follows the response Content-Type. ``timeout`` bounds
        the whole transfer, not each read. A transfer that fails or is
        cancelled part way leaves no file behind.

        Raises:
            DownloadError: On transport failure, timeout, non-200 status or
                empty body.
        """
        logger.debug("http_download_started", url=url)

        try:
            target, written = await self._bounded(self._stream_to(url, workdir, stem))
        except httpx.TooManyRedirects as e:
            raise DownloadError(f"Too many redirects (max {self.max_redirects})") from e
        except asyncio.TimeoutError as e:
            raise DownloadError(f"Failed to download media: timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download media: {e}") from e

        if written == 0:
            target.unlink(missing_ok=True)
            raise DownloadError("Downloaded media is empty")

        logger.info("http_download_completed", path=str(target), size=written)
        return target

    async def _bounded(self, operation: Awaitable[T]) -> T:
        if self.timeout:
            return await asyncio.wait_for(operation, timeout=self.timeout)
        return await operation

    async def _stream_to(self, url: str, workdir: Path, stem: str) -> Tuple[Path, int]:
        async with self._client() as client:
            async with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise DownloadError(f"Failed to download media: HTTP {response.status_code}")

                ext = extension_for_content_type(response.headers.get("content-type"))
                target = workdir / f"{stem}.{ext}"
                written = 0
                try:
                    with open(target, "wb") as f:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            f.write(chunk)
                            written += len(chunk)
                except BaseException:
                    target.unlink(missing_ok=True)
                    logger.warning("http_download_aborted", path=str(target), written=written)
                    raise
        return target, written
