"""Validate and download orchestration.

Every download runs inside its own staging work directory; the file is read
into memory before the directory is removed, so callers never see a partial
result and nothing outlives the request.
"""

import asyncio
import time
from typing import Optional, Union

import structlog

from app.core.metrics import MetricsCollector
from app.core.template import FilenameBuilder, filename_builder
from app.core.validation import URLValidator, extract_video_id, validate_format_tag
from app.models.media import DownloadedMedia, FormatTag, MediaInfo, MediaRequest
from app.providers.exceptions import (
    InvalidURLError,
    MissingURLError,
    ProviderError,
    ToolNotFoundError,
    UnsupportedFormatError,
)
from app.providers.manager import ProviderManager
from app.providers.ytdlp import YtDlpProvider
from app.services.staging import StagingArea
from app.services.transcoder import Transcoder

logger = structlog.get_logger(__name__)

PLACEHOLDER_TITLE = "TikTok Video"


class MediaService:
    """Entry point used by the HTTP layer."""

    def __init__(
        self,
        manager: ProviderManager,
        staging: StagingArea,
        validator: Optional[URLValidator] = None,
        ytdlp: Optional[YtDlpProvider] = None,
        transcoder: Optional[Transcoder] = None,
        filenames: Optional[FilenameBuilder] = None,
    ):
        self.manager = manager
        self.staging = staging
        self.validator = validator or URLValidator()
        self.ytdlp = ytdlp
        self.transcoder = transcoder
        self.filenames = filenames or filename_builder

    def check_url(self, url: Optional[str]) -> str:
        """Return the trimmed URL or raise a client error.

        Raises:
            MissingURLError: If no URL was given
            InvalidURLError: If the URL fails the shape check
        """
        if not url or not url.strip():
            raise MissingURLError("URL is required")

        result = self.validator.validate(url)
        if not result.is_valid:
            raise InvalidURLError(result.error_message or "Not a valid TikTok URL")
        return result.sanitized_value or url.strip()

    @staticmethod
    def parse_format(value: Union[str, FormatTag, None]) -> FormatTag:
        if isinstance(value, FormatTag):
            return value
        result = validate_format_tag(value)
        if not result.is_valid:
            raise UnsupportedFormatError(result.error_message)
        return FormatTag(result.sanitized_value)

    def placeholder_info(self, url: str) -> MediaInfo:
        return MediaInfo(
            title=PLACEHOLDER_TITLE,
            webpage_url=url,
            duration=None,
            video_id=extract_video_id(url),
        )

    async def validate(self, url: Optional[str]) -> MediaInfo:
        """
        Check a URL and look up its metadata.

        When yt-dlp is not installed the URL has still passed the shape
        check, so placeholder metadata is returned instead of an error.

        Raises:
            MissingURLError: If no URL was given
            InvalidURLError: If the URL fails the shape check
            DownloadError: If yt-dlp rejects the URL
        """
        url = self.check_url(url)

        if self.ytdlp is None or not self.manager.is_provider_enabled(YtDlpProvider.name):
            logger.info("video_info_placeholder", url=url, reason="ytdlp_disabled")
            return self.placeholder_info(url)

        try:
            return await self.ytdlp.get_info(url)
        except ToolNotFoundError as e:
            logger.warning("video_info_placeholder", url=url, reason="ytdlp_missing", error=str(e))
            return self.placeholder_info(url)

    async def download(
        self, url: Optional[str], fmt: Union[str, FormatTag, None] = None
    ) -> DownloadedMedia:
        """
        Fetch media through the fallback chain and return it in memory.

        Raises:
            MissingURLError: If no URL was given
            UnsupportedFormatError: If the format tag is unknown
            InvalidURLError: If the URL fails the shape check
            FallbackExhaustedError: If every retrieval strategy failed
            TranscodingError: If the enhancement pass failed
            StagingError: If the work directory could not be created
        """
        if not url or not url.strip():
            raise MissingURLError("URL is required")
        format_tag = self.parse_format(fmt)
        url = self.check_url(url)

        request = MediaRequest(url=url, format=format_tag)
        start_time = time.monotonic()
        logger.info("download_started", url=url, format=format_tag.value)

        async with self.staging.workdir() as workdir:
            path, strategy = await self.manager.fetch_with_fallback(request, workdir)

            if format_tag is FormatTag.NO_WATERMARK and self.transcoder and self.transcoder.enabled:
                path = await self.transcoder.enhance(path)

            title = await self._lookup_title(url, strategy)
            content = await asyncio.to_thread(path.read_bytes)

        filename = self.filenames.build(title, format_tag)
        media = DownloadedMedia(
            content=content,
            filename=filename,
            media_type=format_tag.media_type,
            strategy=strategy,
        )

        duration = time.monotonic() - start_time
        MetricsCollector.record_download(strategy, format_tag.value, duration, media.size)
        logger.info(
            "download_completed",
            strategy=strategy,
            filename=filename,
            size=media.size,
            duration=round(duration, 3),
        )
        return media

    async def _lookup_title(self, url: str, strategy: str) -> Optional[str]:
        """Best-effort title for the attachment filename.

        Uses a cached lookup when there is one; otherwise asks yt-dlp only
        if it just produced the file, so a broken yt-dlp is not retried.
        """
        if self.ytdlp is None:
            return None

        cached = self.ytdlp.cached_info(url)
        if cached is not None:
            return cached.title

        if strategy != YtDlpProvider.name:
            return None

        try:
            info = await self.ytdlp.get_info(url)
        except ProviderError as e:
            logger.warning("title_lookup_failed", url=url, error=str(e))
            return None
        return info.title
