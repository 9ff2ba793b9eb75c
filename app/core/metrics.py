"""Prometheus metrics for the encoding pipeline.

Exposes queue depth, watchdog repair outcomes, scheduled publish outcomes and
periodic task timings.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "video_encoding_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Encoding Queue Metrics
# ============================================
QUEUE_DEPTH = Gauge(
    "encoding_queue_depth",
    "Number of encoding jobs in the in-memory queue by status",
    ["status"],
    registry=REGISTRY,
)

ENCODING_JOB_EVENTS_TOTAL = Counter(
    "encoding_job_events_total",
    "Encoding job lifecycle events",
    ["event"],
    registry=REGISTRY,
)

PROVIDER_SUBMISSIONS_TOTAL = Counter(
    "encoding_provider_submissions_total",
    "Encoding provider job submissions",
    ["status"],
    registry=REGISTRY,
)


# ============================================
# Watchdog Metrics
# ============================================
WATCHDOG_OUTCOMES_TOTAL = Counter(
    "encoding_watchdog_outcomes_total",
    "Per-video outcomes of encoding watchdog runs",
    ["outcome"],
    registry=REGISTRY,
)


# ============================================
# Scheduled Publish Metrics
# ============================================
SCHEDULED_PUBLISH_TOTAL = Counter(
    "scheduled_publish_total",
    "Scheduled publish outcomes",
    ["outcome"],
    registry=REGISTRY,
)


# ============================================
# Periodic Task Metrics
# ============================================
PERIODIC_TASK_DURATION_SECONDS = Histogram(
    "periodic_task_duration_seconds",
    "Periodic task run duration in seconds",
    ["task"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
    registry=REGISTRY,
)

PERIODIC_TASK_RUNS_TOTAL = Counter(
    "periodic_task_runs_total",
    "Periodic task runs by result",
    ["task", "result"],
    registry=REGISTRY,
)


def record_queue_stats(stats) -> None:
    """Publish queue statistics as gauges.

    Args:
        stats: QueueStats snapshot
    """
    QUEUE_DEPTH.labels(status="pending").set(stats.pending)
    QUEUE_DEPTH.labels(status="processing").set(stats.processing)
    QUEUE_DEPTH.labels(status="completed").set(stats.completed)
    QUEUE_DEPTH.labels(status="failed").set(stats.failed)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format.

    Returns:
        bytes: Prometheus-formatted metrics
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
