"""Service layer implementations."""

from app.services.media_service import MediaService
from app.services.staging import (
    DiskUsage,
    StagingArea,
    StagingError,
    SweepResult,
    configure_staging,
    get_staging_area,
    reset_staging,
)
from app.services.transcoder import Transcoder

__all__ = [
    # Media service
    "MediaService",
    # Transcoder
    "Transcoder",
    # Staging
    "DiskUsage",
    "StagingArea",
    "StagingError",
    "SweepResult",
    "configure_staging",
    "get_staging_area",
    "reset_staging",
]
