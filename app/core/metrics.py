"""Prometheus metrics collection for the API.

This module defines and manages Prometheus metrics for monitoring
request rates, retrieval strategy outcomes, transcodes, staging and errors.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("tiktok_fetch_api", "Social video fetch API application information")

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 120.0],
)

# Retrieval strategy metrics
retrieval_attempts_total = Counter(
    "retrieval_attempts_total",
    "Retrieval attempts by strategy and outcome",
    ["strategy", "outcome"],
)

downloads_total = Counter(
    "downloads_total",
    "Completed downloads by winning strategy and format",
    ["strategy", "format"],
)

download_duration_seconds = Histogram(
    "download_duration_seconds",
    "End-to-end download duration in seconds",
    ["strategy"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

download_size_bytes = Histogram(
    "download_size_bytes",
    "Returned file size in bytes",
    ["format"],
    buckets=[1e5, 1e6, 5e6, 10e6, 50e6, 100e6, 250e6, 500e6],
)

# Transcode metrics
transcodes_total = Counter(
    "transcodes_total",
    "Enhancement transcodes by outcome",
    ["outcome"],
)

# Staging metrics
active_workdirs = Gauge(
    "active_workdirs",
    "Number of per-request work directories currently on disk",
)

# Error metrics
errors_total = Counter(
    "errors_total",
    "Total errors by error code and endpoint",
    ["error_code", "endpoint"],
)


class MetricsCollector:
    """Centralized metrics collection and update helper.

    Provides static methods for recording various metrics throughout
    the application in a consistent manner.
    """

    @staticmethod
    def record_request(
        method: str,
        endpoint: str,
        status: int,
        duration: float,
    ) -> None:
        """Record HTTP request metrics.

        Args:
            method: HTTP method (GET, POST, etc.).
            endpoint: Normalized endpoint path.
            status: HTTP response status code.
            duration: Request duration in seconds.
        """
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    @staticmethod
    def record_attempt(strategy: str, outcome: str) -> None:
        """Record one retrieval attempt ('success' or 'failed')."""
        retrieval_attempts_total.labels(strategy=strategy, outcome=outcome).inc()

    @staticmethod
    def record_download(strategy: str, fmt: str, duration: float, size: int) -> None:
        """Record a completed download.

        Args:
            strategy: Name of the strategy that produced the file.
            fmt: Requested format tag value.
            duration: Total handling time in seconds.
            size: Returned payload size in bytes.
        """
        downloads_total.labels(strategy=strategy, format=fmt).inc()
        download_duration_seconds.labels(strategy=strategy).observe(duration)
        if size > 0:
            download_size_bytes.labels(format=fmt).observe(size)

    @staticmethod
    def record_transcode(outcome: str) -> None:
        transcodes_total.labels(outcome=outcome).inc()

    @staticmethod
    def set_active_workdirs(count: int) -> None:
        active_workdirs.set(count)

    @staticmethod
    def record_error(error_code: str, endpoint: str) -> None:
        """Record an error occurrence.

        Args:
            error_code: Error code from ErrorCode class.
            endpoint: Endpoint where the error occurred.
        """
        errors_total.labels(error_code=error_code, endpoint=endpoint).inc()


def initialize_metrics(version: str) -> None:
    """Initialize application metrics with version information.

    Should be called during application startup.
    """
    app_info.info({"version": version})
