"""Validate and download endpoints.

- POST /api/validate: metadata lookup for a video URL
- POST /api/download-video: returns the media file itself
- POST /api/process: combined endpoint selecting either by ``action``
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.api.schemas import (
    DownloadRequest,
    ErrorDetail,
    ProcessRequest,
    ValidateRequest,
    ValidateResponse,
)
from app.core.errors import APIError, ErrorCode, map_exception_to_api_error
from app.core.template import content_disposition
from app.providers.exceptions import (
    InvalidURLError,
    MissingURLError,
    ProviderError,
    UnsupportedFormatError,
)
from app.services.media_service import MediaService
from app.services.staging import StagingError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["media"])

VALIDATE_ERROR = "Invalid or unsupported URL"
DOWNLOAD_ERROR = "Failed to download video"
VALID_ACTIONS = ("validate", "download")

ERROR_RESPONSES: dict = {
    400: {"description": "Invalid request", "model": ErrorDetail},
    500: {"description": "Server error", "model": ErrorDetail},
}


# Dependency placeholder (to be configured in main app)
async def get_media_service() -> MediaService:
    """Get media service instance."""
    raise NotImplementedError("Media service dependency not configured")


def _missing_url() -> APIError:
    return APIError(ErrorCode.MISSING_URL, "A video URL must be provided", error="URL is required")


async def _validate(service: MediaService, url: Optional[str]) -> ValidateResponse:
    try:
        info = await service.validate(url)
    except MissingURLError:
        raise _missing_url()
    except InvalidURLError as e:
        raise APIError(ErrorCode.INVALID_URL, str(e), error=VALIDATE_ERROR)
    except ProviderError as e:
        # yt-dlp rejecting the URL is the caller's problem, not ours
        raise map_exception_to_api_error(e, error=VALIDATE_ERROR, status_code=400)

    return ValidateResponse(
        success=True,
        title=info.title,
        duration=info.duration,
        webpage_url=info.webpage_url,
    )


async def _download(service: MediaService, url: Optional[str], fmt: Optional[str]) -> Response:
    try:
        media = await service.download(url, fmt)
    except MissingURLError:
        raise _missing_url()
    except UnsupportedFormatError as e:
        raise APIError(ErrorCode.INVALID_FORMAT, str(e))
    except InvalidURLError as e:
        raise APIError(ErrorCode.INVALID_URL, str(e), error=VALIDATE_ERROR)
    except (ProviderError, StagingError) as e:
        raise map_exception_to_api_error(e, error=DOWNLOAD_ERROR, status_code=500)

    return Response(
        content=media.content,
        media_type=media.media_type,
        headers={
            "Content-Disposition": content_disposition(media.filename),
            "X-Retrieval-Strategy": media.strategy,
        },
    )


@router.post(
    "/validate",
    response_model=ValidateResponse,
    responses=ERROR_RESPONSES,
)
async def validate_video(
    request: Optional[ValidateRequest] = None,
    service: MediaService = Depends(get_media_service),  # noqa: B008
) -> ValidateResponse:
    """
    Validate a video URL and return its basic metadata.

    The URL must match one of the configured shapes before yt-dlp is run.
    """
    request = request or ValidateRequest()
    logger.info("validate_requested", url=request.url)
    return await _validate(service, request.url)


@router.post(
    "/download-video",
    response_class=Response,
    responses={
        200: {
            "description": "Media file",
            "content": {"video/mp4": {}, "audio/mpeg": {}},
        },
        **ERROR_RESPONSES,
    },
)
async def download_video(
    request: Optional[DownloadRequest] = None,
    service: MediaService = Depends(get_media_service),  # noqa: B008
) -> Response:
    """
    Download a video (or its audio) and return the file.

    Formats:
    - video (default): best available single file
    - audio: mp3 extraction
    - no-watermark (alias hd): watermark-free stream, enhanced with ffmpeg
    """
    request = request or DownloadRequest()
    logger.info("download_requested", url=request.url, format=request.format)
    return await _download(service, request.url, request.format)


@router.post(
    "/process",
    responses={
        200: {"description": "Validation result or media file"},
        **ERROR_RESPONSES,
    },
)
async def process_video(
    request: Optional[ProcessRequest] = None,
    service: MediaService = Depends(get_media_service),  # noqa: B008
) -> Any:
    """
    Validate or download depending on ``action``.
    """
    request = request or ProcessRequest()
    logger.info("process_requested", url=request.url, action=request.action)

    if not request.url or not request.url.strip():
        raise _missing_url()

    if request.action not in VALID_ACTIONS:
        raise APIError(
            ErrorCode.INVALID_ACTION,
            'Action must be either "validate" or "download"',
        )

    if request.action == "validate":
        return await _validate(service, request.url)
    return await _download(service, request.url, request.format)
