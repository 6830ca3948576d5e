"""Third-party scraping resolvers used when yt-dlp is unavailable or fails.

These are best-effort regex extractors over the services' HTML responses;
a markup change on their side surfaces as MediaURLNotFoundError and the
fallback chain moves on.
"""

import html
import re
from typing import Dict, Optional, Pattern

import structlog

from app.core.validation import extract_video_id
from app.models.media import FormatTag
from app.providers.base import MediaURLResolver
from app.providers.exceptions import MediaURLNotFoundError
from app.providers.http_client import HttpFetcher

logger = structlog.get_logger(__name__)


def _extract_link(pattern: Pattern[str], body: str) -> Optional[str]:
    match = pattern.search(body)
    if not match:
        return None
    link = html.unescape(match.group(1)).strip()
    return link or None


class SsstikResolver(MediaURLResolver):
    """Resolves media links through ssstik.io."""

    name = "ssstik"

    _LINK_CLASS = "pure-button pure-button-primary is-center u-bl dl-button download_link"

    LINK_PATTERNS: Dict[FormatTag, Pattern[str]] = {
        FormatTag.AUDIO: re.compile(
            rf'href="(.*?)" class="{_LINK_CLASS} without_watermark_audio"'
        ),
        FormatTag.NO_WATERMARK: re.compile(rf'href="(.*?)" class="{_LINK_CLASS} without_watermark"'),
        FormatTag.VIDEO: re.compile(rf'href="(.*?)" class="{_LINK_CLASS} with_watermark"'),
    }

    def __init__(
        self,
        fetcher: HttpFetcher,
        endpoint: str = "https://ssstik.io/abc?url=dl",
        token: str = "azW54a",
    ):
        self.fetcher = fetcher
        self.endpoint = endpoint
        self.token = token

    async def resolve(self, url: str, fmt: FormatTag) -> str:
        body = await self.fetcher.post_form(
            self.endpoint,
            data={"id": url, "locale": "en", "tt": self.token},
            headers={"Origin": "https://ssstik.io", "Referer": "https://ssstik.io/en"},
        )
        link = _extract_link(self.LINK_PATTERNS[fmt], body)
        if not link:
            raise MediaURLNotFoundError(f"No {fmt.value} link in ssstik response")

        logger.debug("media_url_resolved", resolver=self.name, format=fmt.value)
        return link


class SnaptikResolver(MediaURLResolver):
    """Resolves media links through snaptik.app.

    The service only exposes one download button, used for every format.
    """

    name = "snaptik"

    LINK_PATTERN = re.compile(r'href="(.*?)" class="abutton is-success is-fullwidth"')

    def __init__(self, fetcher: HttpFetcher, endpoint: str = "https://snaptik.app/abc.php"):
        self.fetcher = fetcher
        self.endpoint = endpoint

    async def resolve(self, url: str, fmt: FormatTag) -> str:
        body = await self.fetcher.post_form(self.endpoint, data={"url": url})
        link = _extract_link(self.LINK_PATTERN, body)
        if not link:
            raise MediaURLNotFoundError("No download link in snaptik response")

        logger.debug("media_url_resolved", resolver=self.name, format=fmt.value)
        return link


class CdnGuessResolver(MediaURLResolver):
    """Builds a direct CDN URL from the numeric video id.

    Only ``/video/<id>`` URLs can be resolved; short links carry no id.
    """

    name = "cdn_guess"

    def __init__(self, url_template: str):
        self.url_template = url_template

    async def resolve(self, url: str, fmt: FormatTag) -> str:
        video_id = extract_video_id(url)
        if not video_id:
            raise MediaURLNotFoundError(f"Could not extract video id from URL: {url}")
        return self.url_template.format(video_id=video_id)
