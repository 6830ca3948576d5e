"""Request and response schemas for API endpoints.

This module provides Pydantic models for API request validation
and response serialization with OpenAPI examples.

Request fields are optional at the schema level so that a missing URL or
an unknown format reaches the handlers and gets the endpoint's own error
body instead of a generic validation error.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

EXAMPLE_URL = "https://www.tiktok.com/@user/video/7234567890123456789"


class ValidateRequest(BaseModel):
    """Request body for the validate endpoint."""

    url: Optional[str] = Field(None, description="Video page URL", examples=[EXAMPLE_URL])
    action: Optional[str] = Field(None, description="Ignored; accepted for compatibility")


class ValidateResponse(BaseModel):
    """Video metadata returned by the validate endpoint."""

    success: bool = Field(True, examples=[True])
    title: str = Field(..., examples=["Morning routine"])
    duration: Optional[float] = Field(None, description="Duration in seconds", examples=[31.2])
    webpage_url: str = Field(..., examples=[EXAMPLE_URL])


class DownloadRequest(BaseModel):
    """Request body for the download endpoint."""

    url: Optional[str] = Field(None, description="Video page URL", examples=[EXAMPLE_URL])
    format: Optional[str] = Field(
        None,
        description="Output mode; 'hd' is accepted for 'no-watermark'. Defaults to 'video'.",
        examples=["video", "audio", "no-watermark"],
    )


class ProcessRequest(BaseModel):
    """Request body for the combined validate/download endpoint."""

    url: Optional[str] = Field(None, description="Video page URL", examples=[EXAMPLE_URL])
    action: Optional[str] = Field(None, examples=["validate", "download"])
    format: Optional[str] = Field(None, examples=["video", "audio", "no-watermark"])


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    version: Optional[str] = Field(default=None, examples=["2025.01.15"])
    details: Optional[Dict[str, Any]] = Field(default=None, examples=[{"available_gb": 12.5}])


class HealthResponse(BaseModel):
    """Detailed health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    version: str = Field(..., examples=["1.0.0"])
    uptime_seconds: float = Field(..., examples=[3600.5])
    components: Dict[str, ComponentHealth]
    strategies: Dict[str, bool] = Field(
        default_factory=dict,
        description="Retrieval strategies in fallback order and whether each is enabled",
        examples=[{"ytdlp": True, "ssstik": True, "snaptik": True, "cdn_guess": True}],
    )


class LivenessResponse(BaseModel):
    """Simple liveness check response for container orchestration."""

    status: Literal["alive"] = Field(..., examples=["alive"])


class ReadinessResponse(BaseModel):
    """Readiness check response for load balancer integration."""

    status: Literal["ready", "not_ready"] = Field(..., examples=["ready"])
    ready: bool = Field(..., examples=[True])
    message: Optional[str] = Field(default=None, examples=["No retrieval strategy enabled"])


class ErrorDetail(BaseModel):
    """Structured error response.

    ``error`` is the short summary callers match on; ``details`` carries the
    underlying cause.
    """

    error: str = Field(
        ...,
        description="Short error summary",
        examples=["Invalid or unsupported URL", "Failed to download video"],
    )
    details: Optional[str] = Field(
        None,
        description="Underlying cause",
        examples=["Not a valid TikTok URL"],
    )
    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["INVALID_URL", "ALL_FALLBACKS_FAILED"],
    )
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    request_id: Optional[str] = Field(
        None,
        description="Request ID for tracing",
        examples=["req_550e8400e29b"],
    )
