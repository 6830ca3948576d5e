"""Provider-specific exceptions."""

from typing import List, Optional, Tuple


class ProviderError(Exception):
    """Base exception for provider errors."""

    pass


class MissingURLError(ProviderError):
    """Raised when no URL was supplied."""

    pass


class InvalidURLError(ProviderError):
    """Raised when URL is invalid or unsupported."""

    pass


class UnsupportedFormatError(ProviderError):
    """Raised when the requested format tag is not recognised."""

    pass


class VideoUnavailableError(ProviderError):
    """Raised when video is not accessible."""

    pass


class DownloadError(ProviderError):
    """Raised when download operation fails."""

    pass


class ToolNotFoundError(DownloadError):
    """Raised when an external binary cannot be executed."""

    pass


class MediaURLNotFoundError(DownloadError):
    """Raised when a scraping endpoint response holds no media link."""

    pass


class TranscodingError(ProviderError):
    """Raised when audio/video transcoding fails."""

    pass


class FallbackExhaustedError(DownloadError):
    """Raised when every retrieval strategy failed.

    The message is the last strategy's error; ``attempts`` keeps every
    (strategy, error) pair in the order they were tried.
    """

    def __init__(self, attempts: List[Tuple[str, Exception]]):
        self.attempts = attempts
        if attempts:
            name, last_error = attempts[-1]
            message = f"All retrieval strategies failed (last: {name}): {last_error}"
        else:
            message = "No retrieval strategy is enabled"
        super().__init__(message)

    @property
    def last_error(self) -> Optional[Exception]:
        return self.attempts[-1][1] if self.attempts else None
