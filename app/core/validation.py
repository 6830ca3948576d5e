"""Input validation utilities for the API layer.

URL shape checks are driven by a configurable list of regular expressions.
Observed deployments disagreed on the exact pattern, so none of them is
treated as authoritative; the defaults accept the common TikTok shapes.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Pattern, Sequence
from urllib.parse import urlparse

import structlog

from app.core.config import DEFAULT_URL_PATTERNS
from app.models.media import FormatTag

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool
    error_message: Optional[str] = None
    sanitized_value: Optional[str] = None


class URLValidator:
    """Validates URLs against scheme rules and configured shape patterns."""

    # Dangerous URL schemes that should always be rejected
    DANGEROUS_SCHEMES: FrozenSet[str] = frozenset(
        {
            "javascript",
            "data",
            "file",
            "vbscript",
            "about",
        }
    )

    MAX_URL_LENGTH = 2048

    def __init__(self, patterns: Optional[Sequence[str]] = None):
        """
        Initialize URL validator.

        Args:
            patterns: Regular expressions a URL must match (any of them).
                Uses the default TikTok shapes if not provided.

        Raises:
            ValueError: If a pattern does not compile.
        """
        raw_patterns = list(patterns) if patterns else list(DEFAULT_URL_PATTERNS)
        try:
            self.patterns: List[Pattern[str]] = [
                re.compile(p, re.IGNORECASE) for p in raw_patterns
            ]
        except re.error as e:
            raise ValueError(f"Invalid URL pattern: {e}") from e

    def validate(self, url: Optional[str]) -> ValidationResult:
        """Validate a URL.

        Args:
            url: URL to validate

        Returns:
            ValidationResult with validation status and any error message
        """
        if not url or not isinstance(url, str) or not url.strip():
            return ValidationResult(is_valid=False, error_message="URL is required")

        url = url.strip()
        if len(url) > self.MAX_URL_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=f"URL exceeds maximum length of {self.MAX_URL_LENGTH}",
            )

        try:
            parsed = urlparse(url)
        except ValueError as e:
            logger.warning("url_parse_failed", url=url, error=str(e))
            return ValidationResult(is_valid=False, error_message="Invalid URL format")

        scheme = parsed.scheme.lower()
        if scheme in self.DANGEROUS_SCHEMES:
            logger.warning("dangerous_url_scheme", url=url, scheme=scheme)
            return ValidationResult(
                is_valid=False, error_message=f"URL scheme '{scheme}' is not allowed"
            )

        if scheme not in ("http", "https"):
            return ValidationResult(
                is_valid=False, error_message="URL must use http or https scheme"
            )

        if not parsed.netloc:
            return ValidationResult(is_valid=False, error_message="URL must include a valid domain")

        if not any(pattern.match(url) for pattern in self.patterns):
            logger.debug("url_shape_rejected", url=url)
            return ValidationResult(
                is_valid=False,
                error_message="Not a valid TikTok URL",
            )

        return ValidationResult(is_valid=True, sanitized_value=url)

    def is_valid(self, url: Optional[str]) -> bool:
        """Quick check if URL is valid."""
        return self.validate(url).is_valid


VIDEO_ID_PATTERN = re.compile(r"video/(\d+)")


def extract_video_id(url: str) -> Optional[str]:
    """Extract the numeric video id from a ``/video/<id>`` URL."""
    match = VIDEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def validate_format_tag(value: Optional[str]) -> ValidationResult:
    """
    Validate a caller-supplied format tag.

    ``None`` or blank means the default (``video``); ``hd`` is accepted as
    an alias of ``no-watermark``.
    """
    try:
        tag = FormatTag.parse(value)
    except ValueError:
        valid = [f.value for f in FormatTag] + ["hd"]
        return ValidationResult(
            is_valid=False,
            error_message=f"Invalid format '{value}'. Valid options: {', '.join(valid)}",
        )
    return ValidationResult(is_valid=True, sanitized_value=tag.value)
