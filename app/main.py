"""FastAPI application entry point.

This module assembles all components and creates the main application.
Nothing touches the filesystem at import time: the staging area is set up
in the lifespan and torn down at shutdown.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, Optional, Tuple

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app import __version__
from app.api import health, media, metrics
from app.core.config import Config, ConfigService, SecurityConfig
from app.core.errors import APIError, global_exception_handler
from app.core.logging import clear_request_id, configure_logging, set_request_id
from app.core.metrics import MetricsCollector, initialize_metrics
from app.core.startup import StartupValidator
from app.core.validation import URLValidator
from app.providers.base import ResolverStrategy
from app.providers.http_client import HttpFetcher
from app.providers.manager import ProviderManager
from app.providers.scrapers import CdnGuessResolver, SnaptikResolver, SsstikResolver
from app.providers.ytdlp import YtDlpProvider
from app.services.media_service import MediaService
from app.services.staging import configure_staging, reset_staging
from app.services.transcoder import Transcoder

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds a request id for logging, honouring an inbound X-Request-ID."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        inbound = request.headers.get(REQUEST_ID_HEADER)
        request_id = set_request_id(inbound[:64] if inbound else None)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics.

    Records request count and duration for all endpoints,
    using FastAPI route templates to normalize paths.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and record metrics."""
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Fixed label for unmatched routes keeps cardinality bounded
        route = request.scope.get("route")
        endpoint = route.path if route else "/unmatched"

        MetricsCollector.record_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            duration=duration,
        )

        return response


# Global service instances
_config: Optional[Config] = None
_provider_manager: Optional[ProviderManager] = None
_media_service: Optional[MediaService] = None


def get_config() -> Config:
    """Get the loaded configuration."""
    if _config is None:
        raise RuntimeError("Configuration not loaded")
    return _config


def get_provider_manager() -> ProviderManager:
    """Get the global provider manager instance."""
    if _provider_manager is None:
        raise RuntimeError("Provider manager not configured")
    return _provider_manager


def get_media_service() -> MediaService:
    """Get the global media service instance."""
    if _media_service is None:
        raise RuntimeError("Media service not configured")
    return _media_service


def build_provider_manager(
    config: Config, disabled: Iterable[str] = ()
) -> Tuple[ProviderManager, YtDlpProvider]:
    """Register every retrieval strategy in the configured order.

    Strategies listed in ``fallbacks.disabled`` or in ``disabled`` (from
    startup checks) are registered but left disabled.
    """
    fetcher = HttpFetcher(
        user_agent=config.fallbacks.user_agent,
        timeout=config.timeouts.http,
        max_redirects=config.fallbacks.max_redirects,
    )
    ytdlp = YtDlpProvider(
        binary=config.tools.ytdlp,
        ffmpeg_binary=config.tools.ffmpeg,
        retry_attempts=config.retries.attempts,
        retry_backoff=config.retries.backoff,
        metadata_timeout=config.timeouts.metadata,
        download_timeout=config.timeouts.download,
        cache_ttl=config.cache.metadata_ttl,
        cache_maxsize=config.cache.metadata_maxsize,
    )
    strategies = {
        "ytdlp": ytdlp,
        "ssstik": ResolverStrategy(
            SsstikResolver(
                fetcher,
                endpoint=config.fallbacks.ssstik_url,
                token=config.fallbacks.ssstik_token,
            ),
            fetcher,
        ),
        "snaptik": ResolverStrategy(
            SnaptikResolver(fetcher, endpoint=config.fallbacks.snaptik_url), fetcher
        ),
        "cdn_guess": ResolverStrategy(
            CdnGuessResolver(config.fallbacks.cdn_url_template), fetcher
        ),
    }

    switched_off = set(config.fallbacks.disabled) | set(disabled)
    manager = ProviderManager()
    for name in config.fallbacks.order:
        manager.register_provider(name, strategies[name])
        if name in switched_off:
            manager.disable_provider(name)

    return manager, ytdlp


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    global _config, _provider_manager, _media_service

    config_service = ConfigService()
    config = config_service.load()
    config_service.validate()

    configure_logging(config.logging.level, config.logging.format)
    logger.info("application_starting", version=__version__, config_path=config_service.config_path)

    initialize_metrics(__version__)

    startup = await StartupValidator(config).validate_all()
    for warning in startup.warnings:
        logger.warning("startup_warning", warning=warning)
    if not startup.success:
        raise RuntimeError(f"Startup validation failed: {'; '.join(startup.errors)}")

    staging = configure_staging(config.staging)
    staging.sweep_stale()

    _provider_manager, ytdlp = build_provider_manager(config, startup.disabled_providers)

    transcoder = Transcoder(
        config.transcoder,
        binary=config.tools.ffmpeg,
        timeout=config.timeouts.transcode,
    )
    if startup.enhance_disabled:
        transcoder.enabled = False
        logger.warning("enhancement_disabled", reason="ffmpeg unavailable")

    _media_service = MediaService(
        manager=_provider_manager,
        staging=staging,
        validator=URLValidator(config.validation.url_patterns),
        ytdlp=ytdlp,
        transcoder=transcoder,
    )
    _config = config

    logger.info(
        "application_startup_complete",
        version=__version__,
        degraded_mode=startup.degraded_mode,
        strategies=_provider_manager.list_providers(),
        staging_root=str(staging.root),
    )

    try:
        yield
    finally:
        logger.info("application_shutting_down")
        reset_staging()
        _media_service = None
        _provider_manager = None
        _config = None
        logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="TikTok Fetch API",
        description="Fetches social media videos through yt-dlp with scraping fallbacks",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Default ["*"]; override via APP_SECURITY_CORS_ORIGINS
    security_config = SecurityConfig()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=security_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Retrieval-Strategy", REQUEST_ID_HEADER],
    )

    app.add_middleware(MetricsMiddleware)

    # Added last so it runs first and the id is bound for everything below
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(APIError, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)

    app.dependency_overrides[media.get_media_service] = get_media_service

    app.include_router(health.router)
    app.include_router(media.router)
    app.include_router(metrics.router)

    return app


# Create the application instance
app = create_app()


def main() -> None:
    """Run the API with uvicorn using the configured host and port."""
    import uvicorn

    config = ConfigService().load()
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
