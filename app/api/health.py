"""Health check endpoints.

- /health: component report (yt-dlp, ffmpeg, staging disk) and strategy list
- /liveness: process is up
- /readiness: at least one retrieval strategy enabled and staging writable
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, Literal, Tuple

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app import __version__
from app.api.schemas import ComponentHealth, HealthResponse, LivenessResponse, ReadinessResponse
from app.core.checks import check_ffmpeg, check_ytdlp
from app.services.staging import StagingError, get_staging_area

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])

# Track application start time for uptime calculation
_start_time: float = time.time()


def _tool_paths() -> Tuple[str, str]:
    """Configured yt-dlp and ffmpeg binaries, or bare names before startup."""
    try:
        from app.main import get_config

        tools = get_config().tools
        return tools.ytdlp, tools.ffmpeg
    except RuntimeError:
        return "yt-dlp", "ffmpeg"


def _strategies() -> Dict[str, bool]:
    try:
        from app.main import get_provider_manager

        return get_provider_manager().list_providers()
    except RuntimeError:
        return {}


async def _check_ytdlp(binary: str) -> ComponentHealth:
    result = await check_ytdlp(binary)
    if result.available:
        return ComponentHealth(status="healthy", version=result.version)
    return ComponentHealth(
        status="unhealthy",
        details={"error": result.error or "yt-dlp not available"},
    )


async def _check_ffmpeg(binary: str) -> ComponentHealth:
    result = await check_ffmpeg(binary)
    if result.available:
        return ComponentHealth(status="healthy", version=result.version)
    return ComponentHealth(
        status="unhealthy",
        details={"error": result.error or "ffmpeg not available"},
    )


def _check_staging() -> ComponentHealth:
    """Check the staging area is initialized and report its disk usage."""
    try:
        staging = get_staging_area()
        if not staging.initialized:
            return ComponentHealth(
                status="unhealthy",
                details={"error": "Staging area not initialized"},
            )
        usage = staging.get_disk_usage()

        return ComponentHealth(
            status="healthy",
            details={
                "root_dir": str(staging.root),
                "active_workdirs": staging.active_count(),
                "available_gb": round(usage.available / (1024**3), 2),
                "used_percent": round(usage.percent_used, 1),
            },
        )
    except RuntimeError:
        return ComponentHealth(
            status="unhealthy",
            details={"error": "Staging area not configured"},
        )
    except StagingError as e:
        return ComponentHealth(
            status="unhealthy",
            details={"error": str(e)},
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "All components healthy"},
        503: {"description": "One or more components unhealthy"},
    },
)
async def health_check() -> JSONResponse:
    """
    Detailed health check endpoint.

    Returns HTTP 200 if all components are healthy,
    HTTP 503 if any component is unhealthy.
    """
    ytdlp_path, ffmpeg_path = _tool_paths()
    ytdlp_health, ffmpeg_health = await asyncio.gather(
        _check_ytdlp(ytdlp_path), _check_ffmpeg(ffmpeg_path)
    )

    components = {
        "ytdlp": ytdlp_health,
        "ffmpeg": ffmpeg_health,
        "staging": _check_staging(),
    }

    all_healthy = all(c.status == "healthy" for c in components.values())
    overall_status: Literal["healthy", "unhealthy"] = "healthy" if all_healthy else "unhealthy"

    response = HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        components=components,
        strategies=_strategies(),
    )

    status_code = status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE

    logger.info(
        "health_check_completed",
        status=overall_status,
        components={k: v.status for k, v in components.items()},
    )

    return JSONResponse(content=response.model_dump(), status_code=status_code)


@router.get("/liveness", response_model=LivenessResponse)
async def liveness_check() -> LivenessResponse:
    """
    Liveness probe endpoint.

    Returns HTTP 200 if the process is alive.
    """
    return LivenessResponse(status="alive")


@router.get(
    "/readiness",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Service is ready to accept traffic"},
        503: {"description": "Service is not ready"},
    },
)
async def readiness_check() -> JSONResponse:
    """
    Readiness probe endpoint.

    Ready when at least one retrieval strategy is enabled and the staging
    area is usable. yt-dlp itself is not required: the scraping fallbacks
    can serve requests without it.
    """
    issues = []

    if not any(_strategies().values()):
        issues.append("No retrieval strategy enabled")

    if _check_staging().status != "healthy":
        issues.append("Staging not ready")

    if issues:
        response = ReadinessResponse(
            status="not_ready",
            ready=False,
            message="; ".join(issues),
        )
        return JSONResponse(
            content=response.model_dump(),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return JSONResponse(
        content=ReadinessResponse(status="ready", ready=True).model_dump(),
        status_code=status.HTTP_200_OK,
    )
