"""Media data models shared by providers, services and the API layer."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FormatTag(str, Enum):
    """Output mode requested by the caller."""

    VIDEO = "video"
    AUDIO = "audio"
    NO_WATERMARK = "no-watermark"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FormatTag":
        """Parse a caller-supplied tag, accepting ``hd`` for ``no-watermark``.

        Raises:
            ValueError: If the tag is not recognised.
        """
        if value is None or not str(value).strip():
            return cls.VIDEO
        normalized = str(value).strip().lower()
        if normalized == "hd":
            return cls.NO_WATERMARK
        return cls(normalized)

    @property
    def media_type(self) -> str:
        return "audio/mpeg" if self is FormatTag.AUDIO else "video/mp4"

    @property
    def extension(self) -> str:
        return "mp3" if self is FormatTag.AUDIO else "mp4"


@dataclass(frozen=True)
class MediaRequest:
    """A single fetch request: source URL plus requested format."""

    url: str
    format: FormatTag = FormatTag.VIDEO


@dataclass
class MediaInfo:
    """Video metadata returned by the validate endpoint."""

    title: str
    webpage_url: str
    duration: Optional[float] = None  # seconds
    video_id: Optional[str] = None
    uploader: Optional[str] = None


@dataclass
class DownloadedMedia:
    """Final payload returned to the caller."""

    content: bytes
    filename: str
    media_type: str
    strategy: str

    @property
    def size(self) -> int:
        return len(self.content)
