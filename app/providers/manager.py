"""Strategy manager for registration and ordered fallback."""

import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import structlog

from app.core.metrics import MetricsCollector
from app.models.media import MediaRequest
from app.providers.base import RetrievalStrategy
from app.providers.exceptions import FallbackExhaustedError, ProviderError

logger = structlog.get_logger(__name__)


class ProviderManager:
    """Manages retrieval strategy registration and fallback order.

    Strategies are tried in registration order. The registry is only
    mutated at startup.
    """

    def __init__(self) -> None:
        """Initialize the provider manager."""
        self._providers: Dict[str, RetrievalStrategy] = {}
        self._enabled_providers: Dict[str, bool] = {}
        self._order: List[str] = []

    def register_provider(
        self, name: str, provider: RetrievalStrategy, enabled: bool = True
    ) -> None:
        """
        Register a retrieval strategy.

        Args:
            name: Strategy name (e.g., "ytdlp")
            provider: Strategy instance
            enabled: Whether the strategy is enabled
        """
        self._providers[name] = provider
        self._enabled_providers[name] = enabled
        if name not in self._order:
            self._order.append(name)

        logger.info("provider_registered", provider=name, enabled=enabled)

    def disable_provider(self, name: str) -> None:
        """
        Disable a registered strategy.

        Raises:
            ValueError: If strategy is not registered
        """
        if name not in self._providers:
            raise ValueError(f"Provider '{name}' is not registered")

        self._enabled_providers[name] = False
        logger.info("provider_disabled", provider=name)

    def is_provider_enabled(self, name: str) -> bool:
        return self._enabled_providers.get(name, False)

    def list_providers(self) -> Dict[str, bool]:
        """
        List all registered strategies and their status, in fallback order.

        Returns:
            Dictionary mapping strategy names to enabled status
        """
        return {name: self._enabled_providers.get(name, False) for name in self._order}

    def enabled_providers(self) -> List[str]:
        return [name for name in self._order if self._enabled_providers.get(name, False)]

    async def fetch_with_fallback(
        self, request: MediaRequest, workdir: Path
    ) -> Tuple[Path, str]:
        """
        Try each enabled strategy in order until one produces a file.

        Each attempt runs in its own subdirectory of ``workdir``, named after
        the strategy. The subdirectory of a failed attempt is removed before
        the next strategy starts, so no leftover of one attempt is ever seen
        by another.

        Args:
            request: Source URL and requested format
            workdir: Per-request directory

        Returns:
            Tuple of (staged file path, winning strategy name)

        Raises:
            FallbackExhaustedError: If every enabled strategy failed
        """
        attempts: List[Tuple[str, Exception]] = []

        for name in self.enabled_providers():
            provider = self._providers[name]
            attempt_dir = workdir / name
            attempt_dir.mkdir()
            try:
                path = await self.execute_with_error_isolation(
                    name, provider.fetch, request, attempt_dir
                )
            except ProviderError as e:
                shutil.rmtree(attempt_dir, ignore_errors=True)
                attempts.append((name, e))
                MetricsCollector.record_attempt(name, "failed")
                logger.warning(
                    "retrieval_strategy_failed",
                    provider=name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            MetricsCollector.record_attempt(name, "success")
            logger.info("retrieval_strategy_succeeded", provider=name, path=str(path))
            return path, name

        error = FallbackExhaustedError(attempts)
        logger.error(
            "all_retrieval_strategies_failed",
            attempted=[name for name, _ in attempts],
            error=str(error),
        )
        raise error

    async def execute_with_error_isolation(
        self, provider_name: str, operation: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> Any:
        """
        Execute a strategy operation with error isolation.

        Unexpected exceptions are wrapped in ProviderError so one broken
        strategy cannot stop the fallback chain.

        Raises:
            ProviderError: If operation fails
        """
        try:
            logger.debug(
                "provider_operation_started",
                provider=provider_name,
                operation=getattr(operation, "__name__", repr(operation)),
            )
            return await operation(*args, **kwargs)

        except ProviderError:
            raise

        except Exception as e:
            logger.error(
                "provider_operation_unexpected_error",
                provider=provider_name,
                operation=getattr(operation, "__name__", repr(operation)),
                error=str(e),
                exc_info=True,
            )
            raise ProviderError(
                f"Provider '{provider_name}' encountered an unexpected error: {str(e)}"
            ) from e
