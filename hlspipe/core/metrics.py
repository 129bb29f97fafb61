"""Prometheus metrics for the transcode worker and playback API."""

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()


# ============================================
# Transcode Worker Metrics
# ============================================
TRANSCODE_JOBS_TOTAL = Counter(
    "transcode_jobs_total",
    "Transcode job deliveries by outcome",
    ["outcome"],
    registry=REGISTRY,
)

TRANSCODE_JOB_DURATION_SECONDS = Histogram(
    "transcode_job_duration_seconds",
    "Wall time spent processing one transcode job",
    buckets=[5, 15, 30, 60, 120, 300, 600, 1200, 1800, 3600],
    registry=REGISTRY,
)

TRANSCODE_SEGMENTS_UPLOADED_TOTAL = Counter(
    "transcode_segments_uploaded_total",
    "Segment objects uploaded to the content store",
    ["rendition"],
    registry=REGISTRY,
)


# ============================================
# Playback Metrics
# ============================================
PLAYBACK_MANIFEST_REQUESTS_TOTAL = Counter(
    "playback_manifest_requests_total",
    "Playback manifest resolutions by result",
    ["result"],
    registry=REGISTRY,
)


def record_job_outcome(outcome: str, duration_seconds: float) -> None:
    """Record the outcome of one processed job.

    Args:
        outcome: ready, failed, retried, dead_lettered or malformed
        duration_seconds: Processing wall time
    """
    TRANSCODE_JOBS_TOTAL.labels(outcome=outcome).inc()
    TRANSCODE_JOB_DURATION_SECONDS.observe(duration_seconds)


def record_segment_uploaded(rendition: str) -> None:
    TRANSCODE_SEGMENTS_UPLOADED_TOTAL.labels(rendition=rendition).inc()


def record_playback_request(result: str) -> None:
    PLAYBACK_MANIFEST_REQUESTS_TOTAL.labels(result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get Prometheus content type."""
    return CONTENT_TYPE_LATEST
