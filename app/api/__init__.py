"""API endpoints."""

from app.api import health, media, metrics

__all__ = [
    "health",
    "media",
    "metrics",
]
