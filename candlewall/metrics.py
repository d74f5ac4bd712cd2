"""
Prometheus metrics for the candle wall.

This module provides:
- HTTP request counter (method, path, status)
- Candle submission outcome counter (result)
- Moderation verdict counter (verdict, source)
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: accepted, validation_rejected, moderation_rejected, service_unavailable
candle_submissions_total = Counter(
    "candle_submissions_total",
    "Total candle submission outcomes",
    labelnames=["result"]
)

# source: classifier (a real verdict) or error (fail-closed on a fault)
moderation_verdicts_total = Counter(
    "moderation_verdicts_total",
    "Total moderation verdicts",
    labelnames=["verdict", "source"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_submission_outcome(result: str) -> None:
    candle_submissions_total.labels(result=result).inc()


def record_moderation_verdict(verdict: str, degraded: bool) -> None:
    moderation_verdicts_total.labels(
        verdict=verdict,
        source="error" if degraded else "classifier"
    ).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
