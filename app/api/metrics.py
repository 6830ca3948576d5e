"""Prometheus metrics endpoint."""

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.errors import APIError, ErrorCode

router = APIRouter(tags=["monitoring"])


def _metrics_enabled() -> bool:
    try:
        from app.main import get_config

        return get_config().monitoring.metrics_enabled
    except RuntimeError:
        return True


@router.get(
    "/metrics",
    response_class=Response,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns 404 when ``monitoring.metrics_enabled`` is off.
    """
    if not _metrics_enabled():
        raise APIError(ErrorCode.NOT_FOUND, "Metrics are disabled")

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
