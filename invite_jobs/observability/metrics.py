"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from invite_jobs.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_ENQUEUED,
    METRIC_LOCKS_ACQUIRED,
    METRIC_LOCKS_REFUSED,
    METRIC_STALE_LOCKS_RECLAIMED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Jobs enqueued, by type
    - Attempt outcomes and durations, by type and outcome
    - Lock acquisitions and refusals
    - Stale locks reclaimed by the reaper
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["job_type"],
            registry=self._registry,
        )

        # outcome is one of succeeded, retried, failed, superseded
        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of job attempts by outcome",
            ["job_type", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Handler execution duration in seconds",
            ["job_type", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.locks_acquired = Counter(
            METRIC_LOCKS_ACQUIRED,
            "Total number of job locks acquired",
            ["runner_id"],
            registry=self._registry,
        )

        self.locks_refused = Counter(
            METRIC_LOCKS_REFUSED,
            "Total number of job lock attempts refused",
            ["reason"],
            registry=self._registry,
        )

        self.stale_locks_reclaimed = Counter(
            METRIC_STALE_LOCKS_RECLAIMED,
            "Total number of running jobs returned to pending by the reaper",
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_job_enqueued(self, job_type: str) -> None:
        """Record a job submission."""
        self.jobs_enqueued.labels(job_type=job_type).inc()

    def record_job_outcome(
        self,
        job_type: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record the outcome of one attempt."""
        self.jobs_completed.labels(job_type=job_type, outcome=outcome).inc()
        self.job_duration.labels(job_type=job_type, outcome=outcome).observe(
            duration_seconds
        )

    def record_lock_acquired(self, runner_id: str) -> None:
        """Record a successful lock."""
        self.locks_acquired.labels(runner_id=runner_id).inc()

    def record_lock_refused(self, reason: str) -> None:
        """Record a refused lock."""
        self.locks_refused.labels(reason=reason).inc()

    def record_stale_locks_reclaimed(self, count: int) -> None:
        """Record jobs reclaimed by the reaper."""
        self.stale_locks_reclaimed.inc(count)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
