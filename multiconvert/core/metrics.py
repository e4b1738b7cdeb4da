"""Prometheus metrics collection for the API.

Defines the counters, histograms and gauges for request rates, job
outcomes, the temporary artifact store and rate limiting.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("multiconvert_api", "Multi-converter API application information")

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
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Job metrics
jobs_total = Counter(
    "jobs_total",
    "Total jobs reaching a terminal state by family, kind and status",
    ["family", "kind", "status"],
)

job_duration_seconds = Histogram(
    "job_duration_seconds",
    "Time from job creation to terminal state in seconds",
    ["family", "kind"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
)

jobs_in_flight = Gauge(
    "jobs_in_flight",
    "Number of jobs whose strategy is currently running",
)

# Artifact store metrics
artifact_files = Gauge(
    "artifact_files",
    "Number of files in the temporary artifact directory",
)

artifact_bytes = Gauge(
    "artifact_bytes",
    "Total size of the temporary artifact directory in bytes",
)

reaper_deleted_total = Counter(
    "reaper_deleted_total",
    "Total artifacts deleted by the scheduled reaper",
)

# Error metrics
errors_total = Counter(
    "errors_total",
    "Total errors by error code and endpoint",
    ["error_code", "endpoint"],
)

# Rate limiting metrics
rate_limit_exceeded_total = Counter(
    "rate_limit_exceeded_total",
    "Total rate limit exceeded events",
    ["client_hash", "category"],
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
            endpoint: Route template, e.g. ``/jobs/convert/{job_id}``.
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
    def record_job(family: str, kind: str, status: str, duration: float) -> None:
        """Record a job reaching a terminal state.

        Args:
            family: Job family ('convert' or 'fetch').
            kind: Conversion kind or fetch format.
            status: Terminal status ('completed' or 'error').
            duration: Seconds from creation to the terminal transition.
        """
        jobs_total.labels(family=family, kind=kind, status=status).inc()
        job_duration_seconds.labels(family=family, kind=kind).observe(duration)

    @staticmethod
    def update_in_flight(count: int) -> None:
        jobs_in_flight.set(count)

    @staticmethod
    def update_storage_metrics(file_count: int, total_bytes: int) -> None:
        """Update artifact store gauges.

        Args:
            file_count: Number of files currently in the temp directory.
            total_bytes: Total size of those files in bytes.
        """
        artifact_files.set(file_count)
        artifact_bytes.set(total_bytes)

    @staticmethod
    def record_reaped(count: int) -> None:
        if count > 0:
            reaper_deleted_total.inc(count)

    @staticmethod
    def record_error(error_code: str, endpoint: str) -> None:
        """Record an error occurrence.

        Args:
            error_code: Error code from ErrorCode class.
            endpoint: Endpoint where the error occurred.
        """
        errors_total.labels(error_code=error_code, endpoint=endpoint).inc()

    @staticmethod
    def record_rate_limit_exceeded(client_hash: str, category: str) -> None:
        """Record a rate limit exceeded event.

        Args:
            client_hash: Hashed client identifier (API key or IP).
            category: Rate limit category ('submission' or 'query').
        """
        rate_limit_exceeded_total.labels(
            client_hash=client_hash,
            category=category,
        ).inc()


def initialize_metrics(version: str) -> None:
    """Initialize application metrics with version information.

    Should be called during application startup.

    Args:
        version: Application version string.
    """
    app_info.info({"version": version})
