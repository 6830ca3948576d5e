"""Data models for the application."""

from app.models.media import DownloadedMedia, FormatTag, MediaInfo, MediaRequest

__all__ = [
    "DownloadedMedia",
    "FormatTag",
    "MediaInfo",
    "MediaRequest",
]
