"""Per-request temporary directory management.

A StagingArea owns one root directory, set up explicitly at process start
and torn down at shutdown. Each request gets its own uniquely named work
directory under the root, which is removed when the request finishes,
whether it succeeded or failed.
"""

import asyncio
import os
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Set

import psutil
import structlog

from app.core.config import StagingConfig
from app.core.logging import get_request_id
from app.core.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


@dataclass
class DiskUsage:
    """Disk usage statistics for the staging root."""

    total: int
    used: int
    available: int
    percent_used: float


@dataclass
class SweepResult:
    """Result of a stale work directory sweep."""

    dirs_removed: int
    bytes_reclaimed: int


class StagingError(Exception):
    """Exception raised for staging-related errors."""

    pass


class StagingArea:
    """Creates and removes per-request work directories.

    This class handles:
    - Root directory initialization and permission verification
    - Unique per-request work directories with guaranteed removal
    - Sweeping directories left behind by crashed processes
    - Disk usage reporting for health checks
    """

    def __init__(self, config: StagingConfig) -> None:
        """Initialize the staging area.

        Args:
            config: Staging configuration with root path and prefix.
        """
        self.config = config
        self.root = Path(config.root_dir)
        self.prefix = config.prefix
        self.stale_age_minutes = config.stale_age_minutes

        self._active: Set[Path] = set()
        self._created_root = False
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Create the root directory and verify write permissions.

        Raises:
            StagingError: If directory creation fails or permissions are insufficient.
        """
        try:
            if not self.root.exists():
                self.root.mkdir(parents=True, exist_ok=True)
                self._created_root = True
                logger.info("staging_root_created", path=str(self.root))

            # Unique name avoids races between workers sharing the root
            test_file = self.root / f".write_test_{os.getpid()}_{uuid.uuid4().hex}"
            try:
                test_file.touch()
                test_file.unlink(missing_ok=True)
            except PermissionError as e:
                raise StagingError(
                    f"Insufficient permissions to write to staging directory: {self.root}"
                ) from e

        except OSError as e:
            raise StagingError(f"Failed to initialize staging directory: {e}") from e

        self._initialized = True
        logger.info("staging_initialized", root=str(self.root), prefix=self.prefix)

    def teardown(self) -> None:
        """Remove remaining work directories, and the root if this process created it."""
        for path in list(self._active):
            self._remove(path)

        if self._created_root and self.root.exists():
            shutil.rmtree(self.root, ignore_errors=True)
            logger.info("staging_root_removed", path=str(self.root))

        self._initialized = False

    def _new_dir_name(self) -> str:
        request_id = get_request_id() or "anon"
        safe_id = "".join(c for c in request_id if c.isalnum() or c in "-_")[:32]
        return f"{self.prefix}{safe_id}-{uuid.uuid4().hex[:12]}"

    def create_workdir(self) -> Path:
        """Create a new uniquely named work directory.

        Raises:
            StagingError: If the staging area is not initialized or mkdir fails.
        """
        if not self._initialized:
            raise StagingError("Staging area not initialized. Call initialize() first.")

        path = self.root / self._new_dir_name()
        try:
            path.mkdir(parents=False, exist_ok=False)
        except OSError as e:
            raise StagingError(f"Failed to create work directory: {e}") from e

        self._active.add(path)
        MetricsCollector.set_active_workdirs(len(self._active))
        logger.debug("workdir_created", path=str(path))
        return path

    def _remove(self, path: Path) -> None:
        shutil.rmtree(path, ignore_errors=True)
        self._active.discard(path)
        MetricsCollector.set_active_workdirs(len(self._active))
        if path.exists():
            logger.error("workdir_removal_failed", path=str(path))
        else:
            logger.debug("workdir_removed", path=str(path))

    @asynccontextmanager
    async def workdir(self) -> AsyncIterator[Path]:
        """Yield a fresh work directory, removed on exit whatever happens."""
        path = self.create_workdir()
        try:
            yield path
        finally:
            # rmtree can be slow on large files; keep it off the event loop
            await asyncio.to_thread(self._remove, path)

    def active_count(self) -> int:
        return len(self._active)

    def sweep_stale(self, max_age_minutes: Optional[int] = None) -> SweepResult:
        """Remove work directories older than the configured age.

        Directories owned by in-flight requests of this process are kept.
        """
        max_age_seconds = (
            max_age_minutes if max_age_minutes is not None else self.stale_age_minutes
        ) * 60
        now = time.time()
        dirs_removed = 0
        bytes_reclaimed = 0

        try:
            candidates = [
                p for p in self.root.iterdir() if p.is_dir() and p.name.startswith(self.prefix)
            ]
        except OSError as e:
            logger.error("staging_sweep_failed", error=str(e))
            return SweepResult(dirs_removed=0, bytes_reclaimed=0)

        for path in candidates:
            if path in self._active:
                continue
            try:
                if now - path.stat().st_mtime < max_age_seconds:
                    continue
                size = sum(f.stat().st_size for f in path.rglob("*") if f.is_file())
            except OSError as e:
                logger.warning("staging_sweep_stat_failed", path=str(path), error=str(e))
                continue

            shutil.rmtree(path, ignore_errors=True)
            if not path.exists():
                dirs_removed += 1
                bytes_reclaimed += size

        logger.info(
            "staging_sweep_completed",
            dirs_removed=dirs_removed,
            bytes_reclaimed=bytes_reclaimed,
        )
        return SweepResult(dirs_removed=dirs_removed, bytes_reclaimed=bytes_reclaimed)

    def get_disk_usage(self) -> DiskUsage:
        """Get current disk usage for the staging root.

        Raises:
            StagingError: If usage cannot be read.
        """
        try:
            usage = psutil.disk_usage(str(self.root))
        except OSError as e:
            logger.error("disk_usage_check_failed", error=str(e))
            raise StagingError(f"Failed to get disk usage: {e}") from e

        return DiskUsage(
            total=usage.total,
            used=usage.used,
            available=usage.free,
            percent_used=round(usage.percent, 2),
        )


# Global staging area instance
_staging_area: Optional[StagingArea] = None


def configure_staging(config: StagingConfig) -> StagingArea:
    """Configure and initialize the global staging area.

    Args:
        config: Staging configuration.

    Returns:
        Configured StagingArea instance.
    """
    global _staging_area
    _staging_area = StagingArea(config)
    _staging_area.initialize()
    return _staging_area


def get_staging_area() -> StagingArea:
    """Get the global staging area instance.

    Raises:
        RuntimeError: If staging area is not configured.
    """
    if _staging_area is None:
        raise RuntimeError("Staging area not configured. Call configure_staging() first.")
    return _staging_area


def reset_staging() -> None:
    """Tear down and forget the global staging area."""
    global _staging_area
    if _staging_area is not None:
        _staging_area.teardown()
    _staging_area = None
