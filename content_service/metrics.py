"""
Prometheus metrics for Content Service.

Tracks HTTP traffic, repository operations and cache snapshot refreshes.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "content_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "content_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0),
)

# Repository metrics
content_db_operations_total = Counter(
    "content_db_operations_total",
    "Total repository operations",
    ["entity", "operation", "outcome"],
)

content_db_operation_duration_seconds = Histogram(
    "content_db_operation_duration_seconds",
    "Repository operation duration in seconds",
    ["entity", "operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Cache metrics
content_cache_refresh_total = Counter(
    "content_cache_refresh_total",
    "Total cache snapshot refreshes",
    ["entity", "outcome"],
)

content_cache_reads_total = Counter(
    "content_cache_reads_total",
    "Total cache snapshot reads",
    ["entity", "result"],
)


def track_request_metrics(method: str, endpoint: str, status_code: int, duration: float):
    """Track HTTP request metrics."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)


def track_db_operation(entity: str, operation: str, outcome: str, duration: float):
    """Track a repository operation; outcome is "success" or the error kind."""
    content_db_operations_total.labels(entity=entity, operation=operation, outcome=outcome).inc()
    content_db_operation_duration_seconds.labels(entity=entity, operation=operation).observe(
        duration
    )


def track_cache_refresh(entity: str, outcome: str):
    content_cache_refresh_total.labels(entity=entity, outcome=outcome).inc()


def track_cache_read(entity: str, hit: bool):
    content_cache_reads_total.labels(entity=entity, result="hit" if hit else "miss").inc()


async def metrics_endpoint() -> Response:
    """Expose metrics in Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
