"""Attachment filename construction.

Builds the ``Content-Disposition`` filename for a downloaded file from the
video title and the requested format. Header values must be latin-1 safe, so
titles are reduced to printable ASCII.
"""

import re
import unicodedata
from typing import FrozenSet, Optional

import structlog

from app.models.media import FormatTag

logger = structlog.get_logger(__name__)


class FilenameBuilder:
    """Builds safe attachment filenames from video titles."""

    # Characters illegal in filenames on Windows/Linux/Mac, replaced with "_"
    ILLEGAL_CHARS: FrozenSet[str] = frozenset('<>:"/\\|?*')

    CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x1f\x7f]")
    NON_ASCII_PATTERN = re.compile(r"[^\x00-\x7f]")
    WHITESPACE_PATTERN = re.compile(r"\s+")

    WINDOWS_RESERVED: FrozenSet[str] = frozenset(
        {"CON", "PRN", "AUX", "NUL"}
        | {f"COM{i}" for i in range(1, 10)}
        | {f"LPT{i}" for i in range(1, 10)}
    )

    DEFAULT_STEM = "tiktok-video"
    MIN_STEM_LENGTH = 3
    MAX_STEM_LENGTH = 120

    def __init__(self, default_stem: Optional[str] = None):
        self.default_stem = default_stem or self.DEFAULT_STEM

    def sanitize_title(self, title: Optional[str]) -> str:
        """
        Reduce a video title to a filename stem.

        Emoji and other non-ASCII characters are dropped, illegal characters
        become underscores. Stems shorter than three characters fall back to
        the default stem.

        Args:
            title: Raw video title, possibly None

        Returns:
            Sanitized filename stem without extension
        """
        if not title:
            return self.default_stem

        stem = unicodedata.normalize("NFKC", title)
        stem = self.NON_ASCII_PATTERN.sub("", stem)
        stem = self.CONTROL_CHAR_PATTERN.sub(" ", stem)
        for char in self.ILLEGAL_CHARS:
            stem = stem.replace(char, "_")
        stem = self.WHITESPACE_PATTERN.sub(" ", stem).strip().strip(".")

        if len(stem) > self.MAX_STEM_LENGTH:
            stem = stem[: self.MAX_STEM_LENGTH].rstrip()

        if stem.upper() in self.WINDOWS_RESERVED:
            stem = f"_{stem}"

        if len(stem) < self.MIN_STEM_LENGTH:
            logger.debug("title_too_short_for_filename", title=title, result=stem)
            return self.default_stem

        return stem

    def build(self, title: Optional[str], fmt: FormatTag) -> str:
        """
        Build the attachment filename for a title and format.

        Examples:
            ("Dance", AUDIO) -> "Dance-audio.mp3"
            ("Dance", VIDEO) -> "Dance-video.mp4"
            ("Dance", NO_WATERMARK) -> "Dance-enhanced-HD.mp4"
        """
        stem = self.sanitize_title(title)
        if fmt is FormatTag.NO_WATERMARK:
            return f"{stem}-enhanced-HD.mp4"
        return f"{stem}-{fmt.value}.{fmt.extension}"


# Singleton instance for convenience
filename_builder = FilenameBuilder()


def content_disposition(filename: str) -> str:
    """Render a Content-Disposition header value for an attachment."""
    return f'attachment; filename="{filename}"'
