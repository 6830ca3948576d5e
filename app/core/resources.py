"""Host resource checks for the staging area.

Every download is held in memory once and on disk in its work directory,
so available memory and free space under the staging root are the two
resources worth watching.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import psutil
import structlog

logger = structlog.get_logger(__name__)

GB = 1024**3


@dataclass
class ResourceUsage:
    """Current memory and staging-disk usage.

    Attributes:
        memory_total_gb: Total system memory in GB.
        memory_available_gb: Available memory in GB.
        memory_percent: Memory usage percentage (0-100).
        disk_path: Path the disk figures were read for.
        disk_total_gb: Total disk space in GB.
        disk_available_gb: Available disk space in GB.
        disk_percent: Disk usage percentage (0-100).
    """

    memory_total_gb: float
    memory_available_gb: float
    memory_percent: float
    disk_path: str
    disk_total_gb: float
    disk_available_gb: float
    disk_percent: float


@dataclass
class ResourceRequirements:
    """Thresholds in GB below which startup reports a problem."""

    min_memory_gb: float = 0.25
    min_disk_gb: float = 1.0
    warn_memory_gb: float = 0.5
    warn_disk_gb: float = 5.0


@dataclass
class ResourceCheckResult:
    passed: bool
    usage: ResourceUsage
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _existing_ancestor(path: Path) -> Path:
    """Nearest existing directory, so usage can be read before the root exists."""
    for candidate in [path, *path.parents]:
        if candidate.exists():
            return candidate
    return Path("/")


def get_current_usage(disk_path: Optional[str] = None) -> ResourceUsage:
    """Read memory usage and disk usage for ``disk_path`` (default ``/``)."""
    memory = psutil.virtual_memory()

    path = _existing_ancestor(Path(disk_path)) if disk_path else Path("/")
    disk = psutil.disk_usage(str(path))

    return ResourceUsage(
        memory_total_gb=round(memory.total / GB, 2),
        memory_available_gb=round(memory.available / GB, 2),
        memory_percent=round(memory.percent, 1),
        disk_path=str(path),
        disk_total_gb=round(disk.total / GB, 2),
        disk_available_gb=round(disk.free / GB, 2),
        disk_percent=round(disk.percent, 1),
    )


def check_minimum_resources(
    disk_path: Optional[str] = None,
    requirements: Optional[ResourceRequirements] = None,
) -> ResourceCheckResult:
    """Compare current usage against ``requirements``.

    Args:
        disk_path: Staging root (or any path on the same filesystem).
        requirements: Thresholds. Uses defaults if not specified.
    """
    if requirements is None:
        requirements = ResourceRequirements()

    usage = get_current_usage(disk_path)
    errors: List[str] = []
    warnings: List[str] = []

    if usage.memory_available_gb < requirements.min_memory_gb:
        errors.append(
            f"Insufficient memory: {usage.memory_available_gb:.2f}GB available, "
            f"minimum {requirements.min_memory_gb:.2f}GB required"
        )
    elif usage.memory_available_gb < requirements.warn_memory_gb:
        warnings.append(
            f"Low memory: {usage.memory_available_gb:.2f}GB available, "
            f"recommended {requirements.warn_memory_gb:.2f}GB"
        )

    if usage.disk_available_gb < requirements.min_disk_gb:
        errors.append(
            f"Insufficient disk space under {usage.disk_path}: "
            f"{usage.disk_available_gb:.1f}GB available, "
            f"minimum {requirements.min_disk_gb:.1f}GB required"
        )
    elif usage.disk_available_gb < requirements.warn_disk_gb:
        warnings.append(
            f"Low disk space under {usage.disk_path}: "
            f"{usage.disk_available_gb:.1f}GB available, "
            f"recommended {requirements.warn_disk_gb:.1f}GB"
        )

    if errors:
        logger.error("resource_check_failed", errors=errors)
    elif warnings:
        logger.warning("resource_check_warnings", warnings=warnings)
    else:
        logger.info(
            "resource_check_passed",
            memory_available_gb=usage.memory_available_gb,
            disk_available_gb=usage.disk_available_gb,
        )

    return ResourceCheckResult(
        passed=not errors,
        usage=usage,
        errors=errors,
        warnings=warnings,
    )
