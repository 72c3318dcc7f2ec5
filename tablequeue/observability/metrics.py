"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from tablequeue.constants import (
    METRIC_CLAIM_LATENCY,
    METRIC_JOB_DURATION,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_PURGED,
    METRIC_JOBS_PUSHED,
    METRIC_JOBS_RECOVERED,
    METRIC_QUEUE_PENDING,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for table queues.

    Collects metrics for:
    - Jobs pushed, claimed, recovered and purged
    - Job outcomes and execution duration
    - Claim latency
    - Pending jobs per queue
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_pushed = Counter(
            METRIC_JOBS_PUSHED,
            "Total number of jobs pushed",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed",
            ["queue"],
            registry=self._registry,
        )

        # outcome is one of deleted, released, buried
        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of processed jobs by outcome",
            ["queue", "outcome"],
            registry=self._registry,
        )

        self.jobs_recovered = Counter(
            METRIC_JOBS_RECOVERED,
            "Total number of abandoned jobs returned to pending",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_purged = Counter(
            METRIC_JOBS_PURGED,
            "Total number of finished jobs removed by garbage collection",
            ["queue"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["queue", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.claim_latency = Histogram(
            METRIC_CLAIM_LATENCY,
            "Time spent in pop, garbage collection included",
            ["queue"],
            buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        self.queue_pending = Gauge(
            METRIC_QUEUE_PENDING,
            "Number of pending jobs in the queue",
            ["queue"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """The registry the metrics are registered with."""
        return self._registry

    def record_job_pushed(self, queue: str) -> None:
        """Record a job submission."""
        self.jobs_pushed.labels(queue=queue).inc()

    def record_job_claimed(self, queue: str) -> None:
        """Record a successful claim."""
        self.jobs_claimed.labels(queue=queue).inc()

    def record_job_completed(
        self,
        queue: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record a processed job."""
        self.jobs_completed.labels(queue=queue, outcome=outcome).inc()
        self.job_duration.labels(queue=queue, outcome=outcome).observe(duration_seconds)

    def record_jobs_recovered(self, queue: str, count: int) -> None:
        self.jobs_recovered.labels(queue=queue).inc(count)

    def record_jobs_purged(self, queue: str, count: int) -> None:
        self.jobs_purged.labels(queue=queue).inc(count)

    def observe_claim_latency(self, queue: str, seconds: float) -> None:
        self.claim_latency.labels(queue=queue).observe(seconds)

    def update_queue_pending(self, queue: str, pending: int) -> None:
        """Update the pending gauge for a queue."""
        self.queue_pending.labels(queue=queue).set(pending)


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
    """Get the metrics collector instance, creating it on first use."""
    if _metrics is None:
        return setup_metrics()
    return _metrics


def serve_metrics(port: int) -> None:
    """
    Expose the default registry over HTTP.

    Args:
        port: Port to listen on. 0 disables the endpoint.
    """
    if port > 0:
        start_http_server(port)
