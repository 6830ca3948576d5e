"""Abstract base classes for retrieval strategies."""

from abc import ABC, abstractmethod
from pathlib import Path

from app.models.media import FormatTag, MediaRequest
from app.providers.http_client import HttpFetcher


class RetrievalStrategy(ABC):
    """One way of getting a media file into a work directory."""

    name: str = ""

    @abstractmethod
    async def fetch(self, request: MediaRequest, workdir: Path) -> Path:
        """
        Fetch the requested media into ``workdir``.

        Args:
            request: Source URL and requested format
            workdir: Per-request directory the file must be written into

        Returns:
            Path of the staged file

        Raises:
            DownloadError: If the strategy could not produce a file
            ToolNotFoundError: If a required external binary is missing
            MediaURLNotFoundError: If a scraping endpoint returned no link
        """
        pass


class MediaURLResolver(ABC):
    """Turns a page URL into a direct media URL via a third-party service."""

    name: str = ""

    @abstractmethod
    async def resolve(self, url: str, fmt: FormatTag) -> str:
        """
        Resolve a direct media URL.

        Raises:
            MediaURLNotFoundError: If no link could be extracted
            DownloadError: If the service request failed
        """
        pass


class ResolverStrategy(RetrievalStrategy):
    """Adapts a MediaURLResolver to the RetrievalStrategy contract.

    The resolved URL is downloaded over HTTP into the work directory.
    """

    def __init__(self, resolver: MediaURLResolver, fetcher: HttpFetcher):
        self.resolver = resolver
        self.fetcher = fetcher
        self.name = resolver.name

    async def fetch(self, request: MediaRequest, workdir: Path) -> Path:
        media_url = await self.resolver.resolve(request.url, request.format)
        return await self.fetcher.download_to(media_url, workdir)
