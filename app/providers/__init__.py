"""Retrieval strategy implementations."""

from app.providers.base import MediaURLResolver, ResolverStrategy, RetrievalStrategy
from app.providers.exceptions import (
    DownloadError,
    FallbackExhaustedError,
    InvalidURLError,
    MediaURLNotFoundError,
    MissingURLError,
    ProviderError,
    ToolNotFoundError,
    TranscodingError,
    UnsupportedFormatError,
    VideoUnavailableError,
)
from app.providers.http_client import HttpFetcher
from app.providers.manager import ProviderManager
from app.providers.scrapers import CdnGuessResolver, SnaptikResolver, SsstikResolver
from app.providers.ytdlp import YtDlpProvider

__all__ = [
    "RetrievalStrategy",
    "MediaURLResolver",
    "ResolverStrategy",
    "HttpFetcher",
    "ProviderManager",
    "YtDlpProvider",
    "SsstikResolver",
    "SnaptikResolver",
    "CdnGuessResolver",
    "ProviderError",
    "MissingURLError",
    "InvalidURLError",
    "UnsupportedFormatError",
    "VideoUnavailableError",
    "DownloadError",
    "ToolNotFoundError",
    "MediaURLNotFoundError",
    "FallbackExhaustedError",
    "TranscodingError",
]
