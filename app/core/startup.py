"""Startup validation for the application.

Checks the external tools and the staging area before requests are
accepted. In degraded mode a missing yt-dlp only disables the ``ytdlp``
strategy (the scraping fallbacks still work) and a missing ffmpeg only
disables the enhancement pass. Staging is required in every mode.
"""

import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from app.core.checks import check_ffmpeg, check_ytdlp
from app.core.config import Config
from app.core.resources import ResourceRequirements, check_minimum_resources

logger = structlog.get_logger(__name__)


@dataclass
class ComponentCheckResult:
    """Result of a startup component check.

    Attributes:
        name: Component name (e.g., "ytdlp", "ffmpeg", "staging")
        passed: Whether the check passed
        critical: If True, failure blocks startup (unless degraded mode)
        version: Version string if available
        message: Human-readable message about the result
        details: Additional details about the check
    """

    name: str
    passed: bool
    critical: bool
    version: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StartupResult:
    """Result of full startup validation.

    Attributes:
        success: Whether startup can proceed
        degraded_mode: Whether the application is running in degraded mode
        checks: List of individual component check results
        disabled_providers: Retrieval strategies to disable
        enhance_disabled: Whether the ffmpeg enhancement pass must be skipped
        errors: List of error messages for critical failures
        warnings: List of warning messages for non-critical issues
    """

    success: bool
    degraded_mode: bool
    checks: List[ComponentCheckResult] = field(default_factory=list)
    disabled_providers: List[str] = field(default_factory=list)
    enhance_disabled: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class StartupValidator:
    """Validates system components at startup.

    Supports degraded mode where the application can start with warnings
    when optional components are unavailable.
    """

    # Components that must be available even in degraded mode
    ALWAYS_CRITICAL_COMPONENTS = {"staging"}

    # Resource thresholds for a service that only holds one file per request
    RESOURCE_REQUIREMENTS = ResourceRequirements(
        min_memory_gb=0.25, min_disk_gb=1.0, warn_memory_gb=0.5, warn_disk_gb=5.0
    )

    def __init__(self, config: Config):
        """Initialize the startup validator.

        Args:
            config: Application configuration.
        """
        self.config = config
        self.allow_degraded = config.security.allow_degraded_start
        self.results: List[ComponentCheckResult] = []
        self.disabled_providers: List[str] = []
        self.enhance_disabled = False
        self.errors: List[str] = []
        self.warnings: List[str] = []

    async def validate_all(self) -> StartupResult:
        """Run all startup validations.

        Returns:
            StartupResult with overall status and component details.
        """
        logger.info(
            "startup_validation_started",
            allow_degraded_start=self.allow_degraded,
        )

        self.results = []
        self.disabled_providers = []
        self.enhance_disabled = False
        self.errors = []
        self.warnings = []

        await self._run_checks()

        critical_failures = [r for r in self.results if not r.passed and r.critical]
        non_critical_failures = [r for r in self.results if not r.passed and not r.critical]

        if critical_failures:
            if self.allow_degraded:
                truly_critical = [
                    r for r in critical_failures if r.name in self.ALWAYS_CRITICAL_COMPONENTS
                ]
                if truly_critical:
                    for r in truly_critical:
                        self.errors.append(f"{r.name}: {r.message}")
                    success = False
                    degraded_mode = False
                else:
                    for r in critical_failures:
                        self.warnings.append(f"{r.name}: {r.message}")
                    success = True
                    degraded_mode = True
            else:
                for r in critical_failures:
                    self.errors.append(f"{r.name}: {r.message}")
                success = False
                degraded_mode = False
        else:
            success = True
            degraded_mode = len(non_critical_failures) > 0 and self.allow_degraded

        for r in non_critical_failures:
            self.warnings.append(f"{r.name}: {r.message}")

        if success:
            self._resource_warnings()

        result = StartupResult(
            success=success,
            degraded_mode=degraded_mode,
            checks=self.results,
            disabled_providers=self.disabled_providers,
            enhance_disabled=self.enhance_disabled,
            errors=self.errors,
            warnings=self.warnings,
        )

        log_method = logger.info if success else logger.error
        log_method(
            "startup_validation_completed",
            success=success,
            degraded_mode=degraded_mode,
            disabled_providers=self.disabled_providers,
            enhance_disabled=self.enhance_disabled,
            error_count=len(self.errors),
            warning_count=len(self.warnings),
        )

        return result

    async def _run_checks(self) -> None:
        """Run all component checks."""
        self.results.append(await self.check_ytdlp())
        self.results.append(await self.check_ffmpeg())
        self.results.append(await self.check_staging())

    async def check_ytdlp(self) -> ComponentCheckResult:
        """Check yt-dlp availability and version.

        A failure disables the ``ytdlp`` strategy in degraded mode.
        """
        result = await check_ytdlp(self.config.tools.ytdlp)

        if result.available:
            logger.info("ytdlp_check_passed", version=result.version)
            return ComponentCheckResult(
                name="ytdlp",
                passed=True,
                critical=True,
                version=result.version,
                message="yt-dlp is available",
                details=result.details,
            )

        logger.error("ytdlp_check_failed", error=result.error)
        if self.allow_degraded:
            self.disabled_providers.append("ytdlp")
        return ComponentCheckResult(
            name="ytdlp",
            passed=False,
            critical=True,
            message=result.error or "yt-dlp is not available",
        )

    async def check_ffmpeg(self) -> ComponentCheckResult:
        """Check ffmpeg availability and version.

        A failure disables the enhancement pass in degraded mode.
        """
        result = await check_ffmpeg(self.config.tools.ffmpeg)

        if result.available:
            logger.info("ffmpeg_check_passed", version=result.version)
            return ComponentCheckResult(
                name="ffmpeg",
                passed=True,
                critical=True,
                version=result.version,
                message="ffmpeg is available",
                details=result.details,
            )

        logger.error("ffmpeg_check_failed", error=result.error)
        if self.allow_degraded:
            self.enhance_disabled = True
        return ComponentCheckResult(
            name="ffmpeg",
            passed=False,
            critical=True,
            message=result.error or "ffmpeg is not available",
        )

    async def check_staging(self) -> ComponentCheckResult:
        """Check the staging root can be created and written.

        This is always critical. A root created here is removed again so
        that the StagingArea creates, and later removes, it itself.
        """
        root = Path(self.config.staging.root_dir)

        try:
            created = not root.exists()
            root.mkdir(parents=True, exist_ok=True)

            test_file = root / f".startup_test_{os.getpid()}_{uuid.uuid4().hex[:8]}"
            try:
                test_file.touch()
                test_file.unlink(missing_ok=True)
            except PermissionError:
                if created:
                    root.rmdir()
                logger.error("staging_permission_error", path=str(root))
                return ComponentCheckResult(
                    name="staging",
                    passed=False,
                    critical=True,
                    message=f"Cannot write to staging directory: {root}",
                )

            if created:
                root.rmdir()

            logger.info("staging_check_passed", path=str(root))
            return ComponentCheckResult(
                name="staging",
                passed=True,
                critical=True,
                message="Staging directory is writable",
                details={"root_dir": str(root)},
            )

        except OSError as e:
            logger.error("staging_check_failed", path=str(root), error=str(e))
            return ComponentCheckResult(
                name="staging",
                passed=False,
                critical=True,
                message=f"Staging check failed: {e}",
            )

    def _resource_warnings(self) -> None:
        """Low resources never block startup; they are reported as warnings."""
        try:
            resources = check_minimum_resources(
                self.config.staging.root_dir, self.RESOURCE_REQUIREMENTS
            )
        except OSError as e:
            logger.warning("resource_check_unavailable", error=str(e))
            return

        self.warnings.extend(resources.errors)
        self.warnings.extend(resources.warnings)
